import click

from cftool.util.client import CodeforcesClient
from cftool.util.codeforces import AuthData


@click.command(short_help='Log in and save the session to configuration directory')
@click.option('-u', '--handle', prompt=True, help='Codeforces handle or email')
@click.password_option('-p', '--password', confirmation_prompt=False)
def auth(handle, password):
    """Log in and save the session to configuration directory

    \b
    Stored files:
    - config.ini                  - contains the handle and options
    - sessions/HANDLE.pickle.gz   - last active session cookies

    The password is never stored, it is asked again when the session expires."""

    auth_data = AuthData(handle, password)
    # Use new auth data instead of saved
    client = CodeforcesClient(auth=False, auth_data=auth_data)
    # login even if there is a saved session
    session = client.manager.login()

    auth_data.save_to_config()

    click.secho(f'Successfully logged in as {session.handle}', fg='green')
    click.secho('Successfully saved auth data', fg='green', err=True)
