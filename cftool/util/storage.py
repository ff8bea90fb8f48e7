import gzip
import pickle
from configparser import ConfigParser, Error as ConfigParserError
from os import environ
from pathlib import Path
from typing import Optional

import click

from cftool.errors import ConfigError
from cftool.util.codeforces import Session
from cftool.util.common import Singleton, config_directory, format_file


PROJECT_CONFIG = 'cftool.ini'


class Section:
    """
    in config.ini all option names are lowercase and all underscores are replaced with dashes

    Values are looked up in command line overrides, then in the project file, then in the global file.
    Changed values are written to the global file.
    """
    def __init__(self, config: 'Config', name):
        super().__setattr__('_config', config)
        super().__setattr__('_name', Section.canonical_name(name))

    @staticmethod
    def canonical_name(name):
        return name.capitalize()

    @staticmethod
    def to_option(name):
        return name.lower().replace('_', '-')

    def _convert(self, key, value):
        type_ = self.__annotations__[key]
        try:
            if type_ is bool:
                return ConfigParser.BOOLEAN_STATES[value.lower()]
            return type_(value)
        except (KeyError, ValueError):
            raise ConfigError(
                f'Invalid value of "{Section.to_option(key)}" in section "{self._name}": "{value}"'
            ) from None

    def _is_option(self, key):
        return key in super().__getattribute__('__annotations__')

    def _check_key(self, key):
        if not self._is_option(key):
            raise AttributeError(f'Option "{key}" is not allowed in config section "{self._name}"')

    def _lookup(self, key):
        return self._config.lookup(self._name, Section.to_option(key))

    def __getattribute__(self, key):
        if not super().__getattribute__('_is_option')(key):
            return super().__getattribute__(key)

        value = next((value for value in self._lookup(key) if value is not None), None)
        if value is not None:
            return self._convert(key, value)
        return getattr(type(self), key, None)  # default

    def __setattr__(self, key, value):
        self._check_key(key)
        self._config.store(self._name, Section.to_option(key), str(value))

    def __delattr__(self, key):
        self._check_key(key)
        self._config.store(self._name, Section.to_option(key), None)


class EnvSection(Section):
    """Options may be overridden with CFTOOL_<OPTION_NAME> environment variables.

    Command line values still win over the environment.
    """

    @staticmethod
    def to_envvar(name):
        return f'CFTOOL_{name.upper()}'

    def _lookup(self, key):
        values = super()._lookup(key)
        yield next(values)  # command line
        yield environ.get(EnvSection.to_envvar(key))
        yield from values


class AuthSection(Section):
    handle: str


class OptionsSection(EnvSection):
    server_url: str = 'https://codeforces.com'
    contest: str
    lang: str
    prefer_cxx: str = 'c++17-64'
    prefer_py: str = 'py3'
    rust_edition: str = '2021'
    timeout: float = 20.0
    poll_timeout: float = 60.0
    poll_interval: float = 1.0
    poll_ceiling: float = 8.0
    retry_limit: int = 3
    user_agent: str
    no_cookie: bool = False
    session_file: str


class ConfigModel:
    auth: AuthSection
    options: OptionsSection


def _read_config(file):
    parser = ConfigParser()
    try:
        with file.open() as f:
            parser.read_file(f)
    except OSError as e:
        raise ConfigError(f'Cannot read config file {file}: {e}') from e
    except ConfigParserError as e:
        raise ConfigError(f'Invalid config file {file}: {e}') from e
    return parser


class Config(metaclass=Singleton):
    """cftool config

    Layers: command line overrides, the project file (./cftool.ini or --config) and the global config.ini.
    Only the global file is ever saved.
    """

    def __init__(self, file=None):
        self._file = file or config_directory() / 'config.ini'
        self._config = _read_config(self._file) if self._file.is_file() else ConfigParser()
        self._project = ConfigParser()
        self._project_file = None
        self._overrides = {}

    @property
    def project_file(self) -> Optional[Path]:
        return self._project_file

    def load_project(self, file):
        """Use options from a project config file. They take precedence over the global ones."""
        file = Path(file)
        self._project = _read_config(file)
        self._project_file = file

    def override(self, section, **options):
        """Values from the command line. None values are skipped. Overrides are never saved."""
        model = getattr(self, section)
        for key, value in options.items():
            model._check_key(key)
            if value is not None:
                self._overrides[(model._name, Section.to_option(key))] = str(value)

    def lookup(self, section, option):
        """Raw values of the option from every layer, most important first"""
        yield self._overrides.get((section, option))
        for parser in (self._project, self._config):
            yield parser.get(section, option, fallback=None)

    def store(self, section, option, value):
        """Change the global config. None removes the option."""
        if value is None:
            if self._config.has_section(section):
                self._config.remove_option(section, option)
            return
        if not self._config.has_section(section):
            self._config.add_section(section)
        self._config.set(section, option, value)

    def save(self):
        self._file.parent.mkdir(parents=True, exist_ok=True)
        with self._file.open('w') as f:
            self._config.write(f)

    def __getattribute__(self, key):
        if key in ConfigModel.__annotations__:
            section_type = ConfigModel.__annotations__[key]
            return section_type(self, key)
        return super().__getattribute__(key)

    def __delattr__(self, key):
        if key in ConfigModel.__annotations__:
            self._config.remove_section(Section.canonical_name(key))
        else:
            super().__delattr__(key)


class SessionStore:
    """Session file: cookies, origin, handle and capture time. The password is never stored.

    The file is a gzipped pickle with a fixed mtime and sorted cookies,
    so saving a loaded session produces exactly the same bytes.
    """

    VERSION = 1
    _cookie_fields = ('name', 'value', 'domain', 'path', 'secure', 'expires')

    def __init__(self, path):
        self._file = Path(path)

    @classmethod
    def for_handle(cls, handle):
        directory = config_directory() / 'sessions'
        directory.mkdir(exist_ok=True)
        return cls(directory / f'{handle}.pickle.gz')

    @property
    def file(self):
        return self._file

    @classmethod
    def dumps(cls, session: Session) -> bytes:
        cookies = sorted(
            ({name: getattr(cookie, name) for name in cls._cookie_fields} for cookie in session.cookies),
            key=lambda cookie: (cookie['domain'], cookie['path'], cookie['name'])
        )
        data = {
            '__version__': cls.VERSION,
            'origin': session.origin,
            'captured_at': session.captured_at,
            'handle': session.handle,
            'cookies': cookies,
        }
        return gzip.compress(pickle.dumps(data, protocol=4), mtime=0)

    @classmethod
    def loads(cls, blob: bytes) -> Session:
        """Raises ValueError if the blob is corrupted or was written by another version."""
        from requests.cookies import RequestsCookieJar, create_cookie

        try:
            data = pickle.loads(gzip.decompress(blob))
            version = data['__version__']
        except (OSError, EOFError, pickle.UnpicklingError, KeyError, TypeError) as e:
            raise ValueError(f'corrupted session data: {e!r}') from e
        if version != cls.VERSION:
            raise ValueError(f'incompatible session version {version}')

        try:
            jar = RequestsCookieJar()
            for cookie in data['cookies']:
                jar.set_cookie(create_cookie(**cookie))
            return Session(
                origin=data['origin'],
                cookies=jar,
                captured_at=data['captured_at'],
                handle=data['handle'],
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f'incomplete session data: {e!r}') from e

    def load(self, origin: str) -> Optional[Session]:
        if not self._file.is_file():
            return None
        try:
            session = self.loads(self._file.read_bytes())
        except ValueError as e:
            click.secho(f'Session file {self._file} is ignored: {e}', fg='yellow', err=True)
            return None
        if session.origin != origin:
            click.secho(
                f'Saved session belongs to {session.origin}, not {origin}, it will not be used',
                fg='yellow', err=True
            )
            return None
        return session

    def save(self, session: Session):
        self._file.parent.mkdir(parents=True, exist_ok=True)
        self._file.write_bytes(self.dumps(session))

    def erase(self):
        if self._file.exists():
            self._file.unlink()
            click.secho('Removed ', fg='green', nl=False, err=True)
            click.echo(format_file(self._file), err=True)
            return True
        return False
