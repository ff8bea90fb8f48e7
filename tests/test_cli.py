import pytest
from click.testing import CliRunner

from cftool.cli import cli
from cftool.util.storage import Config, SessionStore

from fakes import HANDLE, FakeHttp, logged_in_session, ok, page


@pytest.fixture
def workdir(config, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ('a.cpp', 'b.py', 'main.cpp', 'a.hs'):
        (tmp_path / name).write_text('\n')
    return tmp_path


@pytest.fixture
def clients(monkeypatch):
    """Clients created by the submit command. They are logged in and never send requests"""
    created = []

    class LoggedInClient:
        def __init__(self, **kwargs):
            self.options = Config().options
            self.session = logged_in_session()
            created.append(self)

        def submitter(self):
            raise AssertionError('nothing should be submitted')

    monkeypatch.setattr('cftool.cmd.submit.CodeforcesClient', LoggedInClient)
    return created


def run(*args, color=False):
    return CliRunner().invoke(cli, list(args), color=color)


# ---------- SUBMIT ----------


def test_dry_run(workdir, clients):
    result = run('submit', 'a.cpp', '-c', '1234', '--dry-run')
    assert result.exit_code == 0
    assert 'Contest 1234, problem A, language 61' in result.output
    assert f'Logged in as {HANDLE}' in result.output
    assert len(clients) == 1


def test_dry_run_checks_the_session(workdir, config, monkeypatch):
    config.auth.handle = HANDLE
    SessionStore.for_handle(HANDLE).save(logged_in_session())
    http = FakeHttp().add('GET', '/', ok('/', page()))
    monkeypatch.setattr('requests.Session', lambda: http)

    result = run('submit', 'a.cpp', '-c', '1234', '--dry-run')

    assert result.exit_code == 0
    assert f'Logged in as {HANDLE}' in result.output
    assert [(r.method, r.path) for r in http.requests] == [('GET', '/')]


def test_options_from_config(workdir, config, clients):
    config.options.lang = 'pypy3'
    config.options.contest = 'group/abc/15'
    result = run('submit', 'b.py', '--dry-run')
    assert result.exit_code == 0
    assert 'Contest group/abc/15, problem B, language 41' in result.output


def test_options_from_env(workdir, monkeypatch, clients):
    monkeypatch.setenv('CFTOOL_CONTEST', 'gym/100001')
    monkeypatch.setenv('CFTOOL_PREFER_CXX', 'c++20')
    result = run('submit', 'a.cpp', '--dry-run')
    assert result.exit_code == 0
    assert 'Contest gym/100001, problem A, language 73' in result.output


def test_explicit_options(workdir, clients):
    result = run('submit', 'main.cpp', '-c', '1234', '-p', 'c1', '-l', '54', '--dry-run')
    assert result.exit_code == 0
    assert 'problem C1, language 54' in result.output


@pytest.mark.parametrize('args,exit_code', [
    (['a.cpp', '-c', 'abc'], 7),
    (['a.cpp', '-c', '1234', '-p', 'AA'], 7),
    (['a.cpp', '-c', '1234', '-p', 'AA', '-f'], 0),
    (['a.cpp', '-c', '1234', '-l', 'c++11'], 8),
    (['a.hs', '-c', '1234'], 8),
    (['main.cpp', '-c', '1234'], 2),
    (['a.cpp'], 2),
    (['missing.cpp', '-c', '1234'], 2),
])
def test_submit_arguments(workdir, clients, args, exit_code):
    result = run('submit', *args, '--dry-run')
    assert result.exit_code == exit_code
    # arguments are checked before logging in
    assert len(clients) == (1 if exit_code == 0 else 0)


# ---------- CONFIG FILES AND GLOBAL OPTIONS ----------


def test_project_config(workdir, config, clients):
    config.options.contest = '1234'
    (workdir / 'cftool.ini').write_text('[Options]\ncontest = gym/100001\nlang = py3\n')

    result = run('submit', 'b.py', '--dry-run')

    assert result.exit_code == 0
    assert 'Contest gym/100001, problem B, language 31' in result.output


def test_env_beats_project_config(workdir, monkeypatch, clients):
    (workdir / 'cftool.ini').write_text('[Options]\ncontest = gym/100001\n')
    monkeypatch.setenv('CFTOOL_CONTEST', '1500')
    result = run('submit', 'a.cpp', '--dry-run')
    assert 'Contest 1500, problem A' in result.output


def test_config_option(workdir, clients):
    (workdir / 'cftool.ini').write_text('[Options]\ncontest = gym/100001\n')
    (workdir / 'other.ini').write_text('[Options]\ncontest = 777\n')

    result = run('--config', 'other.ini', 'submit', 'a.cpp', '--dry-run')

    assert result.exit_code == 0
    assert 'Contest 777, problem A' in result.output


def test_missing_config_file(workdir):
    assert run('--config', 'missing.ini', 'logout').exit_code == 2


def test_broken_project_config(workdir):
    (workdir / 'cftool.ini').write_text('contest = 1234\n')
    assert run('logout').exit_code == 11


def test_http_server_is_rejected(workdir, monkeypatch):
    monkeypatch.setenv('CFTOOL_SERVER_URL', 'http://codeforces.com')
    result = run('status', '-c', '1234')
    assert result.exit_code == 11


def test_server_option(workdir, monkeypatch):
    monkeypatch.setenv('CFTOOL_SERVER_URL', 'https://codeforces.com')
    result = run('--server', 'http://codeforces.com', 'status', '-c', '1234')
    assert result.exit_code == 11


def test_no_color(workdir):
    assert '\x1b[' in run('logout', color=True).output
    assert '\x1b[' not in run('--no-color', 'logout', color=True).output


# ---------- LOGOUT ----------


def test_logout(workdir, config):
    config.auth.handle = 'tourist'
    store = SessionStore.for_handle('tourist')
    store.save(logged_in_session())

    assert run('logout').exit_code == 0
    assert not store.file.exists()
    assert run('logout').exit_code == 0


def test_logout_other_handle(workdir, config):
    config.auth.handle = 'tourist'
    mine = SessionStore.for_handle('tourist')
    mine.save(logged_in_session())
    other = SessionStore.for_handle('Petr')
    other.save(logged_in_session('Petr'))

    assert run('--handle', 'Petr', 'logout').exit_code == 0
    assert not other.file.exists()
    assert mine.file.exists()


def test_cookie_option(workdir):
    store = SessionStore(workdir / 'my.session')
    store.save(logged_in_session())

    assert run('--cookie', 'my.session', 'logout').exit_code == 0
    assert not store.file.exists()
