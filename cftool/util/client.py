from pathlib import Path
from typing import Optional

import click

from cftool.codeforces import VerdictKind, resolve_contest_path
from cftool.poll import PollState, VerdictPoller
from cftool.submit import SubmissionController
from cftool.util.codeforces import AuthData, Dialects, PageFetcher, SessionManager
from cftool.util.storage import Config, SessionStore


def dialects_from_config():
    options = Config().options
    return Dialects(options.prefer_cxx, options.prefer_py, options.rust_edition)


def contest_from_config(contest=None):
    """Contest path from the option value, or from config if the option is not set."""
    contest = contest or Config().options.contest
    if not contest:
        raise click.UsageError('Contest is not specified, use -c option or set "contest" in cftool.ini or config.ini')
    return resolve_contest_path(contest)


class CodeforcesClient:
    """Components configured from Config, shared by the commands."""

    def __init__(self, *, auth: bool = True, auth_data: Optional[AuthData] = None, quiet: bool = False):
        """
        Args:
            auth: if True, establish a session (saved or new) right away.
            auth_data: Optional auth data. If not provided, the handle is loaded from config.
            quiet: If True, don't show internal (re)login attempts.
        """
        options = Config().options
        self.options = options

        if auth_data is None:
            auth_data = AuthData.load_from_config()  # Can be None

        store = None
        if options.session_file and not options.no_cookie:
            store = SessionStore(Path(options.session_file).expanduser())
        elif auth_data is not None and not options.no_cookie:
            store = SessionStore.for_handle(auth_data.handle)

        self.fetcher = PageFetcher(options.server_url, timeout=options.timeout, user_agent=options.user_agent)
        self.manager = SessionManager(
            self.fetcher, auth_data, store=store, quiet=quiet, retry_limit=options.retry_limit
        )
        self.session = self.manager.establish() if auth else None

    def submitter(self):
        return SubmissionController(self.manager)

    def poller(self):
        return VerdictPoller(
            self.manager,
            max_failures=self.options.retry_limit,
            ceiling=self.options.poll_ceiling,
        )

    def follow(self, result, timeout=None):
        """Poll the verdict, printing every change. Ctrl+C stops polling, not the command."""
        poller = self.poller()
        if timeout is None:
            timeout = self.options.poll_timeout

        shown = []

        def show(verdict):
            if shown and shown[-1] == verdict:
                return
            shown.append(verdict)
            click.secho(str(verdict), fg=verdict.color())

        try:
            outcome = poller.poll(
                self.session, result,
                max_duration=timeout,
                base_interval=self.options.poll_interval,
                on_update=show,
            )
        except KeyboardInterrupt:
            poller.cancel()
            click.secho('Polling cancelled', fg='yellow', err=True)
            return shown[-1] if shown else None

        if outcome.state is PollState.TIMED_OUT:
            click.secho(
                f'Testing is not finished after {timeout:g}s, '
                f'use "cftool status {result.submission_id}" to check the verdict later',
                fg='yellow', err=True
            )
        elif outcome.verdict.kind is VerdictKind.COMPILE_ERROR:
            log = poller.judge_protocol(self.session, result)
            if log:
                click.echo(log)
        return outcome.verdict
