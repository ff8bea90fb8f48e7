from typing import NamedTuple, Optional
from urllib.parse import urlsplit

from requests.cookies import RequestsCookieJar

from cftool.util.codeforces import AuthData, PageFetcher, Session, SessionManager


ORIGIN = 'https://codeforces.com'
HANDLE = 'tourist'


class FakeResponse:
    def __init__(self, url, text='', status_code=200, headers=None, json_data=None):
        self.url = url
        self.text = text
        self.status_code = status_code
        self.headers = headers or {}
        self._json = json_data

    @property
    def ok(self):
        return self.status_code < 400

    @property
    def is_redirect(self):
        return 'Location' in self.headers and self.status_code in (301, 302, 303, 307, 308)

    def json(self):
        if self._json is None:
            raise ValueError('not a json response')
        return self._json


class Request(NamedTuple):
    method: str
    path: str
    params: Optional[dict]
    data: Optional[dict]
    files: Optional[dict]
    allow_redirects: bool


class FakeHttp:
    """requests.Session stand-in. Serves responses by (method, path) and records requests.

    A route is a list of responses (or exceptions, or callables taking the FakeHttp),
    they are returned in order, the last one is repeated.
    """

    def __init__(self):
        self.headers = {}
        self.cookies = RequestsCookieJar()
        self.routes = {}
        self.requests = []

    def add(self, method, path, *responses):
        self.routes.setdefault((method, path), []).extend(responses)
        return self

    def request(self, method, url, timeout=None, params=None, data=None, files=None, allow_redirects=True):
        path = urlsplit(url).path
        self.requests.append(Request(method, path, params, data, files, allow_redirects))
        queue = self.routes.get((method, path))
        if not queue:
            raise AssertionError(f'Unexpected request: {method} {path}')
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            response = response(self)
        return response

    def sent(self, method, path=None):
        return [r for r in self.requests if r.method == method and (path is None or r.path == path)]


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


# ---------- PAGES ----------


def header(handle=None):
    if handle is None:
        return '<div class="lang-chooser"><a href="/enter?back=%2F">Enter</a> | <a href="/register">Register</a></div>'
    return (
        '<div class="lang-chooser">'
        f'<a href="/profile/{handle}">{handle}</a> | <a href="/0123456789abcdef/logout">Logout</a>'
        '</div>'
    )


def page(body='', handle=HANDLE, csrf='meta-token'):
    return (
        f'<html><head><meta name="X-Csrf-Token" content="{csrf}"/></head>'
        f'<body>{header(handle)}{body}</body></html>'
    )


def login_page(error=None, csrf='login-token'):
    token = f'<input type="hidden" name="csrf_token" value="{csrf}"/>' if csrf else ''
    error = f'<span class="error for__password">{error}</span>' if error else ''
    return page(
        '<form id="enterForm" method="post" action="">'
        f'{token}'
        '<input name="handleOrEmail"/><input name="password" type="password"/>'
        f'{error}'
        '</form>',
        handle=None,
    )


def submit_page(languages=('54', '61', '73', '31', '41'), problems=('A', 'B', 'C'), csrf='submit-token', error=None):
    token = f'<input type="hidden" name="csrf_token" value="{csrf}"/>' if csrf else ''
    options = ''.join(f'<option value="{lang}">compiler {lang}</option>' for lang in languages)
    indices = ''.join(f'<option value="{index}">{index} - Problem</option>' for index in problems)
    error = f'<span class="error for__source">{error}</span>' if error else ''
    return page(
        '<form class="submit-form" method="post" enctype="multipart/form-data">'
        f'{token}'
        f'<select name="submittedProblemIndex"><option value="">Choose problem</option>{indices}</select>'
        f'<select name="programTypeId">{options}</select>'
        '<textarea name="source"></textarea>'
        f'{error}'
        '</form>'
    )


QUEUED = '<span class="submissionVerdictWrapper"><span class="verdict-waiting">In queue</span></span>'
ACCEPTED = '<span class="submissionVerdictWrapper"><span class="verdict-accepted">Accepted</span></span>'
COMPILE_ERROR = '<span class="submissionVerdictWrapper"><span class="verdict-rejected">Compilation error</span></span>'


def running(test):
    return f'<span class="submissionVerdictWrapper"><span class="verdict-waiting">Running on test {test}</span></span>'


def wrong_answer(test):
    return (
        '<span class="submissionVerdictWrapper"><span class="verdict-rejected">'
        f'Wrong answer on test <span class="verdict-format-judged">{test}</span>'
        '</span></span>'
    )


def status_row(submission_id, verdict, handle=HANDLE):
    return (
        f'<tr data-submission-id="{submission_id}">'
        f'<td class="id-cell"><a href="/contest/1234/submission/{submission_id}">{submission_id}</a></td>'
        f'<td class="status-party-cell"><a href="/profile/{handle}" class="rated-user">{handle}</a></td>'
        f'<td class="status-verdict-cell">{verdict}</td>'
        '</tr>'
    )


def throttle_page():
    """Served with status 200 instead of the requested page"""
    return page('<div class="message">Too many requests. Please try again in a minute</div>')


def status_page(*rows):
    return page(
        '<div class="datatable"><table class="status-frame-datatable">'
        '<tr class="first-row"><th>#</th><th>Who</th><th>Verdict</th></tr>'
        f'{"".join(rows)}'
        '</table></div>'
    )


# ---------- HELPERS ----------


def ok(path, text):
    return FakeResponse(ORIGIN + path, text)


def redirect(path, location, status_code=302):
    return FakeResponse(ORIGIN + path, '', status_code, headers={'Location': location})


def to_login_page():
    """What a GET of a protected page looks like after requests follows the redirect"""
    return FakeResponse(ORIGIN + '/enter?back=%2Fcontest%2F1234%2Fsubmit', login_page())


def serve_login(http, handle=HANDLE, error=None):
    def do_login(http_):
        if error is None:
            http_.cookies.set('JSESSIONID', 'new-session', domain='codeforces.com', path='/')
            return ok('/', page(handle=handle))
        return ok('/enter', login_page(error=error))

    http.add('GET', '/enter', ok('/enter', login_page()))
    http.add('POST', '/enter', do_login)
    return http


def logged_in_session(handle=HANDLE):
    session = Session(ORIGIN, handle=handle, captured_at=100.0)
    session.cookies.set('JSESSIONID', 'saved-session', domain='codeforces.com', path='/')
    return session


def make_manager(
        http, auth_data=AuthData(HANDLE, 'secret'), store=None, clock=lambda: 1000.0, retry_limit=3, sleeps=None
):
    fetcher = PageFetcher(ORIGIN, http=http)
    sleep = sleeps.append if sleeps is not None else (lambda _: None)
    return SessionManager(
        fetcher, auth_data, store=store, quiet=True, clock=clock, retry_limit=retry_limit, sleep=sleep
    )
