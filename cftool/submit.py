from dataclasses import dataclass
from pathlib import Path
from time import sleep as _sleep
from typing import Optional
from urllib.parse import urljoin

from cftool.codeforces import (
    NOT_FOUND,
    ContestPath,
    SubmitErrorKind,
    classify_submit_error,
    extract_csrf_token,
    extract_form_error,
    extract_languages,
    extract_newest_submission_id,
    extract_problem_indices,
    require,
)
from cftool.errors import (
    AuthError,
    ProtocolError,
    RateLimitError,
    SubmissionNotConfirmedError,
    SubmissionRejectedError,
    UnknownLanguageError,
)
from cftool.util.codeforces import BFAA, TTA, Links, ftaa


@dataclass
class SubmissionRequest:
    contest: ContestPath
    problem: str
    filename: str
    source: bytes
    lang_id: str

    @classmethod
    def from_file(cls, contest, problem, file, lang_id):
        file = Path(file)
        return cls(contest, problem, file.name, file.read_bytes(), str(lang_id))


@dataclass(frozen=True)
class SubmissionResult:
    submission_id: int
    contest: ContestPath
    handle: Optional[str] = None
    problem: Optional[str] = None  # None - not known (e.g. for "cftool status")
    lang_id: Optional[str] = None


_REJECT_REASONS = {
    SubmitErrorKind.DUPLICATE: SubmissionRejectedError.Reason.DUPLICATE,
    SubmitErrorKind.PROBLEM_NOT_FOUND: SubmissionRejectedError.Reason.PROBLEM_NOT_FOUND,
    SubmitErrorKind.OTHER: SubmissionRejectedError.Reason.OTHER,
}


class SubmissionController:
    """One submission = one POST. The POST is never repeated, even after a network error."""

    def __init__(self, manager, confirm_attempts=3, confirm_delay=1.0, sleep=None):
        self._manager = manager
        self._fetcher = manager.fetcher
        self._confirm_attempts = confirm_attempts
        self._confirm_delay = confirm_delay
        self._sleep = sleep or _sleep

    def submit(self, session, request: SubmissionRequest) -> SubmissionResult:
        contest = request.contest

        # Network errors are retried by the manager, nothing is posted yet
        page = self._manager.fetch_page(session, contest.submit_path)
        token = require(extract_csrf_token(page.text), 'csrf_token on the submit page', page.url)

        languages = extract_languages(page.text)
        if languages is not NOT_FOUND and request.lang_id not in languages:
            raise UnknownLanguageError(f'Language {request.lang_id} is not available in contest {contest}')

        problems = extract_problem_indices(page.text)
        if problems is not NOT_FOUND and request.problem not in problems:
            raise SubmissionRejectedError(
                SubmissionRejectedError.Reason.PROBLEM_NOT_FOUND,
                f'Problem {request.problem} is not found in contest {contest}'
            )

        response = self._fetcher.post(
            session,
            contest.submit_path,
            params={'csrf_token': token},
            data={
                'csrf_token': token,
                'ftaa': ftaa(),
                'bfaa': BFAA,
                'action': 'submitSolutionFormSubmitted',
                'submittedProblemIndex': request.problem,
                'programTypeId': request.lang_id,
                'source': '',
                'tabSize': '4',
                '_tta': TTA,
            },
            files={'sourceFile': (request.filename, request.source)},
            allow_redirects=False,
        )
        self._check_submit_response(session, response)

        submission_id = self._confirm(session, contest)
        return SubmissionResult(submission_id, contest, session.handle, request.problem, request.lang_id)

    def _check_submit_response(self, session, response):
        if response.is_redirect:
            location = urljoin(response.url, response.headers.get('Location', ''))
            if Links.is_status_url(location):
                return
            if Links.is_login_url(location):
                self._manager.invalidate(session)
                raise AuthError('Session has expired, the solution was not submitted. Try again')
            raise ProtocolError('unexpected redirect after submit', location)

        error = extract_form_error(response.text)
        if error is NOT_FOUND:
            raise ProtocolError('submission result', response.url)

        kind = classify_submit_error(error)
        if kind is SubmitErrorKind.RATE_LIMITED:
            raise RateLimitError(error.message)
        raise SubmissionRejectedError(_REJECT_REASONS[kind], error.message)

    def _confirm(self, session, contest):

        def newest_submission():
            page = self._manager.fetch_page(session, contest.status_path)
            return extract_newest_submission_id(page.text, session.handle)

        for attempt in range(self._confirm_attempts):
            if attempt:
                self._sleep(self._confirm_delay)
            submission_id = newest_submission()
            if submission_id is not NOT_FOUND:
                return submission_id
        raise SubmissionNotConfirmedError
