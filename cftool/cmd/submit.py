from pathlib import Path

import click

from cftool.codeforces import guess_problem_index, normalize_problem_index
from cftool.submit import SubmissionRequest
from cftool.util.client import CodeforcesClient, contest_from_config, dialects_from_config
from cftool.util.codeforces import Dialects
from cftool.util.common import format_file
from cftool.util.storage import Config


@click.command(short_help='Submit a solution')
@click.argument('file', type=click.Path(exists=True, dir_okay=False))
@click.option('-p', '--problem', type=str,
              help='problem index, e.g. A or B1 (default: file name without extension)')
@click.option('-c', '--contest', type=str,
              help='"1234", "gym/1234" or "group/GROUP_ID/1234" (default: "contest" option from config)')
@click.option('-l', '--lang', type=str,
              help='language alias (c++17, py3, pypy3, ...) or compiler id (default: guessed from the extension)')
@click.option('-f', '--force', is_flag=True,
              help='do not check the problem index format')
@click.option('--poll/--no-poll', default=True,
              help='wait for the verdict (enabled by default)')
@click.option('-t', '--timeout', type=float,
              help='how long to wait for the verdict (default: "poll-timeout" option, 60s)')
@click.option('--dry-run', is_flag=True,
              help='check the arguments and log in, but do not submit')
def submit(file, problem, contest, lang, force, poll, timeout, dry_run):
    """
    Submit a solution

    The problem index is taken from the file name (a.cpp -> A) if -p is not used.
    """

    file = Path(file)
    contest = contest_from_config(contest)

    if problem is None:
        problem = guess_problem_index(file)
        if problem is None:
            raise click.UsageError('Could not detect the problem index, use -p option')
    problem = normalize_problem_index(problem, force)

    lang = lang or Config().options.lang
    if lang:
        lang_id = Dialects.resolve(lang)
    else:
        lang_id = dialects_from_config().for_file(file).id

    request = SubmissionRequest.from_file(contest, problem, file, lang_id)
    click.echo(f'Contest {contest}, problem {problem}, language {lang_id}: ', nl=False)
    click.echo(format_file(file))

    client = CodeforcesClient()
    if dry_run:
        click.secho(f'Logged in as {client.session.handle}, nothing is submitted (dry run)', fg='yellow')
        return

    result = client.submitter().submit(client.session, request)
    click.secho(f'Submitted {problem}, submission id {result.submission_id}', fg='green')
    click.echo(client.fetcher.url(contest.submission_path(result.submission_id)))

    if poll:
        client.follow(result, timeout)
