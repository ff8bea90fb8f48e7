import click

from cftool.submit import SubmissionResult
from cftool.util.client import CodeforcesClient, contest_from_config


@click.command(short_help='Show the verdict of a submission')
@click.argument('submission_id', type=int, required=False)
@click.option('-c', '--contest', type=str,
              help='"1234", "gym/1234" or "group/GROUP_ID/1234" (default: "contest" option from config)')
@click.option('--poll', is_flag=True,
              help='wait for the final verdict')
@click.option('-t', '--timeout', type=float,
              help='how long to wait for the verdict (default: "poll-timeout" option, 60s)')
def status(submission_id, contest, poll, timeout):
    """
    Show the verdict of a submission

    If SUBMISSION_ID is not specified, your last submission in the contest is used
    """

    contest = contest_from_config(contest)
    client = CodeforcesClient()
    poller = client.poller()

    if submission_id is None:
        result = poller.last_submission(client.session, contest)
        if result is None:
            click.secho(f'No submissions in contest {contest}', fg='yellow')
            return
    else:
        result = SubmissionResult(submission_id, contest, client.session.handle)

    click.secho(f'Submission {result.submission_id}: ', bold=True, nl=False)
    if poll:
        click.echo()
        client.follow(result, timeout)
        return

    verdict = poller.fetch_verdict(client.session, result)
    click.secho(str(verdict), fg=verdict.color())
