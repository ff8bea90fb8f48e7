import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Union

# from bs4 import BeautifulSoup  # lazy import, bs4 takes a while to load

from cftool.errors import InvalidPathError, InvalidProblemError, ProtocolError


"""
This module contains:
- Contest paths and problem indices
- Verdicts and the tables used to recognize them
- Page parsers (extract_xxx). They don't make requests and know nothing about sessions.
"""


class NotFound:
    """Returned by extractors when the anchor element is absent."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return 'NOT_FOUND'


NOT_FOUND = NotFound()


def require(value, what, url=None):
    """Escalate NOT_FOUND to ProtocolError."""
    if value is NOT_FOUND:
        raise ProtocolError(what, url)
    return value


# ---------- CONTEST PATHS ----------


class ContestKind(Enum):
    CONTEST = 'contest'
    GYM = 'gym'
    GROUP = 'group'


@dataclass(frozen=True)
class ContestPath:
    kind: ContestKind
    contest_id: int
    group_id: Optional[str] = None

    @property
    def path(self):
        if self.kind is ContestKind.GROUP:
            return f'group/{self.group_id}/contest/{self.contest_id}'
        return f'{self.kind.value}/{self.contest_id}'

    @property
    def submit_path(self):
        return f'/{self.path}/submit'

    @property
    def status_path(self):
        return f'/{self.path}/my'

    def submission_path(self, submission_id):
        return f'/{self.path}/submission/{submission_id}'

    def __str__(self):
        if self.kind is ContestKind.CONTEST:
            return str(self.contest_id)
        if self.kind is ContestKind.GYM:
            return f'gym/{self.contest_id}'
        return f'group/{self.group_id}/{self.contest_id}'


_CONTEST_RE = re.compile(r'(?P<contest>[0-9]+)')
_GYM_RE = re.compile(r'gym/(?P<contest>[0-9]+)')
_GROUP_RE = re.compile(r'group/(?P<group>[A-Za-z0-9]+)/(?P<contest>[0-9]+)')


def resolve_contest_path(raw: str) -> ContestPath:
    """Parse "1234", "gym/1234" or "group/<group id>/1234"."""
    text = raw.strip() if isinstance(raw, str) else ''

    match = _CONTEST_RE.fullmatch(text)
    if match:
        return ContestPath(ContestKind.CONTEST, int(match['contest']))
    match = _GYM_RE.fullmatch(text)
    if match:
        return ContestPath(ContestKind.GYM, int(match['contest']))
    match = _GROUP_RE.fullmatch(text)
    if match:
        return ContestPath(ContestKind.GROUP, int(match['contest']), match['group'])
    raise InvalidPathError(raw)


_PROBLEM_RE = re.compile(r'[A-Z]([1-9][0-9]*)?')


def normalize_problem_index(raw: str, force=False) -> str:
    problem = raw.strip().upper()
    if not problem or (not force and not _PROBLEM_RE.fullmatch(problem)):
        raise InvalidProblemError(raw)
    return problem


def guess_problem_index(file) -> Optional[str]:
    """a.cpp -> A, b2.py -> B2"""
    stem = Path(file).stem.upper()
    if _PROBLEM_RE.fullmatch(stem):
        return stem
    return None


# ---------- VERDICTS ----------


class VerdictKind(Enum):
    QUEUED = 'In queue'
    RUNNING = 'Running'
    ACCEPTED = 'Accepted'
    WRONG_ANSWER = 'Wrong answer'
    TIME_LIMIT = 'Time limit exceeded'
    MEMORY_LIMIT = 'Memory limit exceeded'
    RUNTIME_ERROR = 'Runtime error'
    COMPILE_ERROR = 'Compilation error'
    SYSTEM_FAILURE = 'System failure'
    SKIPPED = 'Skipped'
    UNKNOWN = 'Unknown'


TERMINAL_VERDICTS = frozenset([
    VerdictKind.ACCEPTED,
    VerdictKind.WRONG_ANSWER,
    VerdictKind.TIME_LIMIT,
    VerdictKind.MEMORY_LIMIT,
    VerdictKind.RUNTIME_ERROR,
    VerdictKind.COMPILE_ERROR,
    VerdictKind.SYSTEM_FAILURE,
    VerdictKind.SKIPPED,
])

# NOTE the site changes these texts from time to time.
# Prefixes of the (lowercase) verdict text, checked in order.
VERDICT_MARKERS = [
    ('in queue', VerdictKind.QUEUED),
    ('pending judgement', VerdictKind.QUEUED),
    ('waiting', VerdictKind.QUEUED),
    ('compiling', VerdictKind.RUNNING),
    ('running', VerdictKind.RUNNING),
    ('testing', VerdictKind.RUNNING),
    ('accepted', VerdictKind.ACCEPTED),
    ('pretests passed', VerdictKind.ACCEPTED),
    ('perfect result', VerdictKind.ACCEPTED),
    ('wrong answer', VerdictKind.WRONG_ANSWER),
    ('hacked', VerdictKind.WRONG_ANSWER),
    ('partial result', VerdictKind.WRONG_ANSWER),
    ('time limit exceeded', VerdictKind.TIME_LIMIT),
    ('idleness limit exceeded', VerdictKind.TIME_LIMIT),
    ('memory limit exceeded', VerdictKind.MEMORY_LIMIT),
    ('runtime error', VerdictKind.RUNTIME_ERROR),
    ('security violated', VerdictKind.RUNTIME_ERROR),
    ('output limit exceeded', VerdictKind.RUNTIME_ERROR),
    ('compilation error', VerdictKind.COMPILE_ERROR),
    ('denial of judgement', VerdictKind.SYSTEM_FAILURE),
    ('judgement failed', VerdictKind.SYSTEM_FAILURE),
    ('skipped', VerdictKind.SKIPPED),
]

# verdict-xxx css classes, used when the text is not recognized
_VERDICT_CLASSES = {
    'verdict-accepted': VerdictKind.ACCEPTED,
    'verdict-waiting': VerdictKind.QUEUED,
}

_TEST_RE = re.compile(r'on (?:pre)?test (\d+)', re.I)


@dataclass(frozen=True)
class VerdictState:
    kind: VerdictKind
    text: str
    submission_id: Optional[int] = None
    test: Optional[int] = None

    @classmethod
    def from_text(cls, text, submission_id=None, css_classes=()):
        text = ' '.join(text.split())
        lowered = text.lower()
        kind = next((kind for prefix, kind in VERDICT_MARKERS if lowered.startswith(prefix)), None)
        if kind is None:
            kind = next(
                (_VERDICT_CLASSES[cls_] for cls_ in css_classes if cls_ in _VERDICT_CLASSES),
                VerdictKind.UNKNOWN
            )
        match = _TEST_RE.search(text)
        test = int(match.group(1)) if match else None
        return cls(kind, text or kind.value, submission_id, test)

    def is_terminal(self):
        return self.kind in TERMINAL_VERDICTS

    def color(self):
        if self.kind is VerdictKind.ACCEPTED:
            return 'green'
        if self.is_terminal():
            return 'red'
        return 'bright_yellow'

    def __str__(self):
        return self.text


# ---------- SUBMIT ERRORS ----------


class SubmitErrorKind(Enum):
    DUPLICATE = 'duplicate'
    RATE_LIMITED = 'rate limited'
    PROBLEM_NOT_FOUND = 'problem not found'
    OTHER = 'other'


# Substrings of the (lowercase) form error text, checked in order
SUBMIT_ERROR_MARKERS = [
    ('exactly the same code', SubmitErrorKind.DUPLICATE),
    ('too often', SubmitErrorKind.RATE_LIMITED),
    ('too many', SubmitErrorKind.RATE_LIMITED),
    ('no such problem', SubmitErrorKind.PROBLEM_NOT_FOUND),
    ('choose problem', SubmitErrorKind.PROBLEM_NOT_FOUND),
    ('problem index', SubmitErrorKind.PROBLEM_NOT_FOUND),
]

_PROBLEM_FIELDS = ('submittedProblemIndex', 'problemIndex')


def classify_submit_error(error: 'FormError') -> SubmitErrorKind:
    message = error.message.lower()
    kind = next((kind for marker, kind in SUBMIT_ERROR_MARKERS if marker in message), None)
    if kind is not None:
        return kind
    if error.field in _PROBLEM_FIELDS:
        return SubmitErrorKind.PROBLEM_NOT_FOUND
    return SubmitErrorKind.OTHER


# Substrings of the (lowercase) text of a page served instead of the requested one to a too active client
THROTTLE_MARKERS = [
    'too many requests',
    'requests too often',
    'temporarily blocked',
    'rate limit exceeded',
]


# ---------- EXTRACTORS ----------


class FormError(NamedTuple):
    field: Optional[str]
    message: str


def _soup(html):
    from bs4 import BeautifulSoup
    return BeautifulSoup(html, 'html.parser')


def _text(tag):
    return ' '.join(tag.get_text(' ', strip=True).split())


def extract_csrf_token(html) -> Union[str, NotFound]:
    """Value of the csrf_token hidden input (login and submit forms)."""
    token = _soup(html).find('input', attrs={'name': 'csrf_token'})
    if token is None or not token.get('value'):
        return NOT_FOUND
    return token['value']


def extract_meta_csrf_token(html) -> Union[str, NotFound]:
    """Token for XHR requests, present on every page for logged in users."""
    meta = _soup(html).find('meta', attrs={'name': 'X-Csrf-Token'})
    if meta is None or not meta.get('content'):
        return NOT_FOUND
    return meta['content']


def extract_handle(html) -> Union[str, NotFound]:
    """Handle of the logged in user from the page header.

    Anonymous pages have "Enter | Register" links instead of "<handle> | Logout".
    """
    header = _soup(html).find('div', class_='lang-chooser')
    if header is None:
        return NOT_FOUND
    if header.find('a', href=re.compile(r'/logout')) is None:
        return NOT_FOUND
    profile = header.find('a', href=re.compile(r'^(https?://[^/]+)?/profile/'))
    if profile is None:
        return NOT_FOUND
    handle = _text(profile) or profile['href'].rsplit('/', 1)[-1]
    return handle or NOT_FOUND


def extract_login_error(html) -> Union[str, NotFound]:
    soup = _soup(html)
    error = soup.find('span', class_='for__password')
    if error is None:
        form = soup.find('form', id='enterForm')
        error = form.find('span', class_='error') if form is not None else None
    if error is None or not _text(error):
        return NOT_FOUND
    return _text(error)


def extract_form_error(html) -> Union[FormError, NotFound]:
    """First non-empty field error of a form, e.g. <span class="error for__source">...</span>."""
    for span in _soup(html).find_all('span', class_='error'):
        message = _text(span)
        if not message:
            continue
        field = next((c[len('for__'):] for c in span.get('class', []) if c.startswith('for__')), None)
        return FormError(field, message)
    return NOT_FOUND


def extract_languages(html) -> Union[Dict[str, str], NotFound]:
    """{programTypeId: compiler name} from the submit form."""
    select = _soup(html).find('select', attrs={'name': 'programTypeId'})
    if select is None:
        return NOT_FOUND
    return {
        option['value']: _text(option)
        for option in select.find_all('option') if option.get('value')
    }


def extract_problem_indices(html) -> Union[List[str], NotFound]:
    select = _soup(html).find('select', attrs={'name': 'submittedProblemIndex'})
    if select is None:
        return NOT_FOUND
    return [option['value'] for option in select.find_all('option') if option.get('value')]


def _status_rows(soup):
    table = soup.find('table', class_='status-frame-datatable')
    if table is None:
        return None
    return table.find_all('tr', attrs={'data-submission-id': True})


def _row_handles(row):
    party = row.find('td', class_='status-party-cell')
    if party is None:
        return []
    return [
        link['href'].rsplit('/', 1)[-1].lower()
        for link in party.find_all('a', href=re.compile(r'/profile/'))
    ]


def extract_submission_ids(html, handle=None) -> Union[List[int], NotFound]:
    """Submission ids from the status table, newest first.

    If `handle` is set, only rows of this participant are returned.
    """
    rows = _status_rows(_soup(html))
    if rows is None:
        return NOT_FOUND
    if handle is not None:
        rows = [row for row in rows if handle.lower() in _row_handles(row)]
    return [int(row['data-submission-id']) for row in rows]


def extract_newest_submission_id(html, handle=None) -> Union[int, NotFound]:
    ids = extract_submission_ids(html, handle)
    if not ids:
        return NOT_FOUND
    return ids[0]


def extract_verdict(html, submission_id) -> Union[VerdictState, NotFound]:
    rows = _status_rows(_soup(html))
    if rows is None:
        return NOT_FOUND
    row = next((row for row in rows if row['data-submission-id'] == str(submission_id)), None)
    if row is None:
        return NOT_FOUND
    cell = row.find('td', class_='status-verdict-cell')
    if cell is None:
        return NOT_FOUND

    css_classes = [
        cls_ for span in cell.find_all('span') for cls_ in span.get('class', [])
    ]
    return VerdictState.from_text(_text(cell), int(submission_id), css_classes)


def extract_throttle_message(html) -> Union[str, NotFound]:
    """Text of the "slow down" notice, which the site serves with status 200."""
    for string in _soup(html).find_all(string=True):
        text = ' '.join(string.split())
        if any(marker in text.lower() for marker in THROTTLE_MARKERS):
            return text
    return NOT_FOUND
