from dataclasses import dataclass
from enum import Enum
from threading import Event
from time import monotonic
from typing import Optional

from cftool.codeforces import (
    NOT_FOUND,
    VerdictState,
    extract_meta_csrf_token,
    extract_submission_ids,
    extract_throttle_message,
    extract_verdict,
    require,
)
from cftool.errors import NetworkError, ProtocolError, RateLimitError
from cftool.submit import SubmissionResult
from cftool.util.codeforces import Links
from cftool.util.common import Backoff


def _check_throttled(page):
    message = extract_throttle_message(page.text)
    if message is not NOT_FOUND:
        raise RateLimitError(message)


class PollState(Enum):
    POLLING = 'polling'
    FINAL = 'final'
    TIMED_OUT = 'timed out'
    ERRORED = 'errored'
    CANCELLED = 'cancelled'


@dataclass(frozen=True)
class PollOutcome:
    state: PollState
    verdict: Optional[VerdictState]  # last parsed state
    fetches: int
    elapsed: float


class VerdictPoller:
    """Fetches the status page until the submission gets a final verdict or the time is up.

    Only the submission id from the given result is looked up.
    """

    def __init__(self, manager, *, clock=monotonic, sleep=None, max_failures=3, ceiling=8.0):
        """
        Args:
            manager: SessionManager, used to fetch pages and to log in again if the session expires.
            clock: Monotonic time source.
            sleep: sleep(seconds). The default one is interrupted by cancel().
            max_failures: How many network / parsing errors in a row are tolerated.
            ceiling: Max delay between requests.
        """
        self._manager = manager
        self._clock = clock
        self._cancelled = Event()
        self._sleep = sleep or self._cancelled.wait
        self._max_failures = max_failures
        self._ceiling = ceiling
        self.state = PollState.POLLING

    def cancel(self):
        self._cancelled.set()

    def fetch_verdict(self, session, result: SubmissionResult, retry=True) -> VerdictState:
        page = self._manager.fetch_page(session, result.contest.status_path, retry=retry)
        verdict = extract_verdict(page.text, result.submission_id)
        if verdict is NOT_FOUND:
            _check_throttled(page)
        return require(
            verdict,
            f'verdict of submission {result.submission_id}',
            page.url
        )

    def poll(self, session, result: SubmissionResult, max_duration=60.0, base_interval=1.0, on_update=None):
        self._cancelled.clear()
        self.state = PollState.POLLING

        start = self._clock()
        delays = iter(Backoff(base_interval, 2.0, max(base_interval, self._ceiling)))
        verdict = None
        fetches = 0
        failures = 0

        def finish(state):
            self.state = state
            return PollOutcome(state, verdict, fetches, self._clock() - start)

        while True:
            if self._cancelled.is_set():
                return finish(PollState.CANCELLED)

            fetches += 1
            try:
                current = self.fetch_verdict(session, result, retry=False)
            except RateLimitError:
                delay = self._ceiling
            except (NetworkError, ProtocolError):
                failures += 1
                if failures > self._max_failures:
                    self.state = PollState.ERRORED
                    raise
                delay = next(delays)
            else:
                failures = 0
                verdict = current
                if on_update is not None:
                    on_update(current)
                if current.is_terminal():
                    return finish(PollState.FINAL)
                delay = next(delays)

            remaining = max_duration - (self._clock() - start)
            if remaining <= 0:
                return finish(PollState.TIMED_OUT)
            self._sleep(min(delay, remaining))

    def judge_protocol(self, session, result: SubmissionResult) -> str:
        """Compilation log (checker comment) of the submission."""
        page = self._manager.fetch_page(session, result.contest.status_path)
        token = require(extract_meta_csrf_token(page.text), 'X-Csrf-Token meta tag', page.url)
        response = self._manager.fetcher.post(session, Links.JUDGE_PROTOCOL, data={
            'submissionId': str(result.submission_id),
            'csrf_token': token,
        })
        try:
            return response.json()
        except ValueError as e:
            raise ProtocolError('judge protocol response', response.url) from e

    def last_submission(self, session, contest) -> Optional[SubmissionResult]:
        """Newest submission of the session user in the contest, None if there are none."""
        page = self._manager.fetch_page(session, contest.status_path)
        ids = extract_submission_ids(page.text, session.handle)
        if ids is NOT_FOUND:
            _check_throttled(page)
        ids = require(ids, 'status table', page.url)
        if not ids:
            return None
        return SubmissionResult(ids[0], contest, session.handle)
