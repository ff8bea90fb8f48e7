import click

from cftool.util.client import CodeforcesClient


@click.command(short_help='Remove the saved session')
def logout():
    """Remove the saved session. The handle stays in config.ini"""

    client = CodeforcesClient(auth=False)
    if not client.manager.logout():
        click.secho('There is no saved session', fg='yellow', err=True)
