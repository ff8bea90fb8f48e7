import random
import re
import string
from copy import copy
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from threading import Lock
from time import time
from typing import Optional
from urllib.parse import urljoin, urlsplit

import click

from cftool import __version__
from cftool.codeforces import NOT_FOUND, extract_csrf_token, extract_handle, extract_login_error, require
from cftool.errors import AuthError, ConfigError, NetworkError, NoAuthDataError, RateLimitError, UnknownLanguageError
from cftool.util.common import with_retries


"""
This module contains:
- Core datatypes (AuthData, Session, Lang, Links)
- Request wrappers (PageFetcher, SessionManager)
"""


DEFAULT_TIMEOUT = 20.0
USER_AGENT = f'Mozilla/5.0 (compatible; cftool/{__version__})'

# Codeforces checks that these fields are present, the values are not validated
BFAA = 'f1b3f18c715565b589b7823cda7448ce'
TTA = '176'


def ftaa():
    """Random browser id, the site only checks its length."""
    return ''.join(random.choice(string.ascii_lowercase + string.digits) for _ in range(18))


def _check_response(resp):
    # will not raise on auth errors (the site redirects to the login page instead)
    if resp.status_code == 429:
        raise RateLimitError
    if not resp.ok:
        raise NetworkError(f'{resp.url} returned status code {resp.status_code}')


def _cookie_jar():
    from requests.cookies import RequestsCookieJar
    return RequestsCookieJar()


@dataclass
class AuthData:
    handle: str
    password: Optional[str] = None  # None - ask when needed

    @classmethod
    def load_from_config(cls) -> Optional['AuthData']:
        from cftool.util.storage import Config

        handle = Config().auth.handle
        if handle:
            return cls(handle)
        return None

    def save_to_config(self):
        """Only the handle is saved, the password is asked again when the session expires."""
        from cftool.util.storage import Config

        config = Config()
        config.auth.handle = self.handle
        config.save()


@dataclass(eq=False)
class Session:
    """Cookies of a logged in user. Only SessionManager changes them."""
    origin: str
    cookies: 'requests.cookies.RequestsCookieJar' = field(default_factory=_cookie_jar)
    captured_at: float = 0.0
    handle: Optional[str] = None
    valid: bool = True


class Links:
    """
    Site links.

    Paths are relative to the server origin in "https://host[:port]" format.
    """

    DEFAULT_ORIGIN = 'https://codeforces.com'
    LOGIN = '/enter'
    PROBE = '/'
    JUDGE_PROTOCOL = '/data/judgeProtocol'

    @staticmethod
    def validate_origin(url):
        parts = urlsplit(url.strip())
        if parts.scheme != 'https':
            raise ConfigError(f'Server URL must use https: "{url}"')
        if not parts.netloc:
            raise ConfigError(f'Invalid server URL: "{url}"')
        # Remove path and/or trailing slash(es)
        return parts._replace(path='', query='', fragment='').geturl()

    @staticmethod
    def is_login_url(url):
        return urlsplit(url).path.rstrip('/') == Links.LOGIN

    @staticmethod
    def is_status_url(url):
        path = urlsplit(url).path.rstrip('/')
        return path.endswith('/my') or path.endswith('/status')

    @staticmethod
    def requires_login(response):
        """The server redirected (or wants to redirect) us to the login page."""
        if response.is_redirect:
            location = urljoin(response.url, response.headers.get('Location', ''))
            return Links.is_login_url(location)
        return Links.is_login_url(response.url)


class Lang(Enum):
    @property
    def id(self):
        return str(self.value)

    # NOTE compiler ids may change
    c = 43
    cxx14 = 50
    cxx17 = 54
    cxx17_64 = 61
    cxx20 = 73
    py2 = 7
    py3 = 31
    pypy2 = 40
    pypy3 = 41
    rust2021 = 75
    java = 36


class Dialects:
    """Language selection by alias or by file extension, using preferred dialects."""

    _cxx_re = re.compile(r'(?:c\+\+|cxx|cpp)(?P<std>[0-9][0-9a-z](?:-64)?)')
    _cxx_versions = {
        '14': Lang.cxx14, '1y': Lang.cxx14,
        '17': Lang.cxx17, '1z': Lang.cxx17,
        '17-64': Lang.cxx17_64, '1z-64': Lang.cxx17_64,
        '20': Lang.cxx20, '2a': Lang.cxx20,
        '20-64': Lang.cxx20, '2a-64': Lang.cxx20,
    }
    _py_dialects = {
        'py2': Lang.py2, 'python2': Lang.py2, 'cpython2': Lang.py2,
        'py3': Lang.py3, 'python3': Lang.py3, 'cpython3': Lang.py3,
        'pypy2': Lang.pypy2,
        'pypy3': Lang.pypy3,
    }
    _rust_editions = {'2021': Lang.rust2021}
    _other = {'c': Lang.c, 'java': Lang.java, 'rust2021': Lang.rust2021}

    def __init__(self, cxx='c++17-64', py='py3', rust='2021'):
        self.cxx = self.cxx_dialect(cxx)
        self.py = self.py_dialect(py)
        if rust not in self._rust_editions:
            raise UnknownLanguageError(f'Unknown or unsupported Rust edition: {rust}')
        self.rust = self._rust_editions[rust]

    @classmethod
    def cxx_dialect(cls, name):
        match = cls._cxx_re.fullmatch(name.lower())
        std = match['std'] if match else None
        if std in ('11', '1x', '11-64', '1x-64'):
            raise UnknownLanguageError('C++11 support has been removed by Codeforces')
        if std not in cls._cxx_versions:
            raise UnknownLanguageError(f'Unknown or unsupported C++ dialect: {name}')
        return cls._cxx_versions[std]

    @classmethod
    def py_dialect(cls, name):
        if name.lower() not in cls._py_dialects:
            raise UnknownLanguageError(f'Unknown or unsupported Python dialect: {name}')
        return cls._py_dialects[name.lower()]

    @classmethod
    def resolve(cls, name) -> str:
        """Language id by a numeric id or an alias ("c++17", "pypy3", ...)."""
        name = name.strip()
        if name.isdigit():
            return name
        lowered = name.lower()
        if lowered in cls._other:
            return cls._other[lowered].id
        if lowered in cls._py_dialects:
            return cls._py_dialects[lowered].id
        return cls.cxx_dialect(lowered).id

    def for_extension(self, ext) -> Lang:
        ext = ext.lstrip('.')
        if ext == 'c':
            return Lang.c
        if ext in ('cc', 'cp', 'cxx', 'cpp', 'CPP', 'c++', 'C'):
            return self.cxx
        if ext == 'py':
            return self.py
        if ext == 'rs':
            return self.rust
        if ext == 'java':
            return Lang.java
        raise UnknownLanguageError(f'Cannot guess the language of a ".{ext}" file, use --lang')

    def for_file(self, file) -> Lang:
        return self.for_extension(Path(file).suffix)


class PageFetcher:
    """Requests on behalf of sessions bound to one origin. Never looks into page content.

    Requests are serialized, each one has its own timeout.
    Proxies are taken from the usual environment variables by requests.
    """

    def __init__(self, origin, *, timeout=DEFAULT_TIMEOUT, user_agent=None, http=None):
        import requests

        self.origin = Links.validate_origin(origin)
        self.timeout = timeout
        self._http = http if http is not None else requests.Session()
        self._http.headers.update({'User-Agent': user_agent or USER_AGENT})
        self._lock = Lock()

    def url(self, path):
        return urljoin(self.origin, path)

    def _request(self, method, session, path, **kwargs):
        import requests

        if session.origin != self.origin:
            raise ValueError(f'Session for {session.origin} cannot be used with {self.origin}')

        url = self.url(path)
        with self._lock:
            self._http.cookies = session.cookies
            try:
                response = self._http.request(method, url, timeout=self.timeout, **kwargs)
            except requests.RequestException as e:
                raise NetworkError(f'{method} {url} failed: {e}') from e
        _check_response(response)
        return response

    def get(self, session, path, **kwargs):
        return self._request('GET', session, path, **kwargs)

    def post(self, session, path, **kwargs):
        return self._request('POST', session, path, **kwargs)


class SessionManager:
    """Owns login state: establishes, checks, renews and stores sessions."""

    def __init__(
            self,
            fetcher: PageFetcher,
            auth_data: Optional[AuthData] = None,
            *,
            store=None,
            quiet: bool = False,
            clock=time,
            retry_limit: int = 3,
            sleep=None,
    ):
        """
        Args:
            fetcher: Transport for the configured origin.
            auth_data: Credentials for (re)login. The manager keeps a copy.
            store: Optional SessionStore. If present, sessions are loaded from it and saved after login.
            quiet: If True, don't show internal (re)login attempts. Useful for scripts.
            clock: Source of capture timestamps.
            retry_limit: How many times a failed read-only GET is repeated. POST requests are never repeated.
            sleep: sleep(seconds) between the repeated requests.
        """
        self._fetcher = fetcher
        self._auth_data = copy(auth_data) if auth_data is not None else None
        self._store = store
        self.quiet = quiet
        self._clock = clock
        self.retry_limit = retry_limit
        self._sleep = sleep

    @property
    def fetcher(self):
        return self._fetcher

    @property
    def origin(self):
        return self._fetcher.origin

    def establish(self, auth_data: Optional[AuthData] = None, persisted: Optional[Session] = None) -> Session:
        """Return a usable session.

        A persisted (passed or stored) session is checked with one request and returned as is if it still works.
        Otherwise a new session is created with a login.
        """
        if auth_data is not None:
            self._auth_data = copy(auth_data)

        if persisted is None and self._store is not None:
            persisted = self._store.load(self.origin)

        if persisted is not None:
            if persisted.origin == self.origin and self.probe(persisted):
                persisted.valid = True
                return persisted
            self._warn('Saved session is expired or belongs to another server, logging in')

        return self.login()

    def login(self, auth_data: Optional[AuthData] = None) -> Session:
        """Log in even if there is a saved session."""
        if auth_data is not None:
            self._auth_data = copy(auth_data)
        session = Session(self.origin)
        self._login(session)
        return session

    def probe(self, session: Session) -> bool:
        page = self._get(session, Links.PROBE)
        handle = extract_handle(page.text)
        if handle is NOT_FOUND:
            return False
        session.handle = handle
        return True

    def persist(self, session: Session) -> bool:
        """Save the session for later runs. Errors are reported, not raised."""
        if self._store is None:
            return False
        try:
            self._store.save(session)
        except OSError as e:
            click.secho(f'Cannot save the session: {e}', fg='red', err=True)
            return False
        return True

    def invalidate(self, session: Session):
        session.valid = False

    def ensure(self, session: Session) -> Session:
        if not session.valid:
            self.relogin(session)
        return session

    def relogin(self, session: Session):
        self._warn('Session is missing or invalid, trying to log in with saved data')
        self._login(session)

    def logout(self):
        if self._store is None:
            return False
        return self._store.erase()

    def fetch_page(self, session: Session, path, retry=True, **kwargs):
        """GET a page that needs login. Logs in again (once) if the session has expired.

        Only for read-only pages: the request may be repeated.
        With retry=False a network error is raised at once, for callers with their own retry loop.
        """
        self.ensure(session)
        get = self._get if retry else self._fetcher.get
        response = get(session, path, **kwargs)
        if Links.requires_login(response):
            self.invalidate(session)
            self.relogin(session)
            response = get(session, path, **kwargs)
            if Links.requires_login(response):
                self.invalidate(session)
                raise AuthError('The server does not accept the new session')
        return response

    def _get(self, session: Session, path, **kwargs):
        # 429 is not repeated right away, the caller decides how long to wait
        @with_retries(NetworkError, attempts=self.retry_limit + 1, sleep=self._sleep, fatal=RateLimitError)
        def get():
            return self._fetcher.get(session, path, **kwargs)

        return get()

    def _warn(self, message):
        if not self.quiet:
            click.secho(message, fg='yellow', err=True)

    def _login(self, session: Session):
        auth_data = self._auth_data
        if auth_data is None or not auth_data.handle:
            raise NoAuthDataError
        if auth_data.password is None:
            auth_data.password = click.prompt(f'Password for {auth_data.handle}', hide_input=True)

        session.cookies.clear()
        session.valid = False

        page = self._get(session, Links.LOGIN)
        token = require(extract_csrf_token(page.text), 'csrf_token on the login page', page.url)

        response = self._fetcher.post(session, Links.LOGIN, data={
            'csrf_token': token,
            'action': 'enter',
            'ftaa': ftaa(),
            'bfaa': BFAA,
            'handleOrEmail': auth_data.handle,
            'password': auth_data.password,
            '_tta': TTA,
            'remember': 'on',
        })

        error = extract_login_error(response.text)
        if error is not NOT_FOUND:
            raise AuthError(f'Failed to log in as {auth_data.handle}: {error}')

        handle = extract_handle(response.text)
        if handle is NOT_FOUND:
            if Links.is_login_url(response.url):
                raise AuthError(f'Failed to log in as {auth_data.handle}')
            require(handle, 'user handle after login', response.url)

        session.handle = handle
        session.captured_at = self._clock()
        session.valid = True
        self.persist(session)
