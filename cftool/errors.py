from enum import Enum

import click
from click.exceptions import ClickException

from cftool.util.common import format_file


class CodeforcesError(ClickException):
    exit_code = 1

    def __init__(self, message='unknown error'):
        super().__init__(message)


class ConfigError(CodeforcesError):
    exit_code = 11


class AuthError(CodeforcesError):
    exit_code = 3

    def __init__(self, message='Auth error', fg='red'):
        super().__init__(message)
        self.fg = fg

    def show(self, file=None):
        click.secho(self.message, fg=self.fg, err=True)


class NoAuthDataError(AuthError):
    message = click.style(
        'Auth data is not found, run "cftool auth" or set the handle in ', fg='yellow'
    ) + format_file('~/.cftool/config.ini')

    def __init__(self):
        super().__init__(self.message, fg='yellow')

    def show(self, file=None):
        click.echo(self.message, err=True)


class NetworkError(CodeforcesError):
    exit_code = 4


class RateLimitError(NetworkError):
    exit_code = 5

    def __init__(self, message='Too many requests, try again later'):
        super().__init__(message)


class ProtocolError(CodeforcesError):
    """The page does not look like we expect. Usually means the site markup has changed."""
    exit_code = 6

    def __init__(self, what, url=None):
        message = f'Cannot parse the page: {what}'
        if url is not None:
            message += f' ({url})'
        super().__init__(message)
        self.what = what
        self.url = url


class InvalidPathError(CodeforcesError):
    exit_code = 7

    def __init__(self, path):
        super().__init__(
            f'Invalid contest path "{path}" '
            '(expected "1234", "gym/1234" or "group/<group id>/1234")'
        )
        self.path = path


class InvalidProblemError(CodeforcesError):
    exit_code = 7

    def __init__(self, problem):
        super().__init__(f'"{problem}" does not look like a problem index, use --force to submit anyway')
        self.problem = problem


class UnknownLanguageError(CodeforcesError):
    exit_code = 8


class SubmissionRejectedError(CodeforcesError):
    exit_code = 9

    class Reason(Enum):
        DUPLICATE = 'duplicate'
        PROBLEM_NOT_FOUND = 'problem not found'
        OTHER = 'other'

    def __init__(self, reason, message):
        super().__init__(message)
        self.reason = reason


class SubmissionNotConfirmedError(CodeforcesError):
    """The POST was sent, but the new submission did not show up. It may still exist on the server."""
    exit_code = 10

    def __init__(self, message=None):
        super().__init__(
            message or
            'The solution was sent, but the submission could not be found on the status page. '
            'Check it manually before submitting again'
        )
