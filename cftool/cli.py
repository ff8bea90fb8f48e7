from pathlib import Path

import click

from cftool.cmd.auth import auth
from cftool.cmd.logout import logout
from cftool.cmd.status import status
from cftool.cmd.submit import submit
from cftool.util.storage import PROJECT_CONFIG, Config


@click.group()
@click.option('--config', 'config_file', type=click.Path(exists=True, dir_okay=False),
              help=f'project config file (default: ./{PROJECT_CONFIG} if it exists)')
@click.option('--server', type=str,
              help='server URL, e.g. https://codeforces.com (default: "server-url" option)')
@click.option('--handle', '--identy', 'handle', type=str,
              help='use the saved session and password prompt of this handle instead of the one from config')
@click.option('--cookie', type=click.Path(dir_okay=False),
              help='session file (default: sessions/HANDLE.pickle.gz in the config directory)')
@click.option('--no-color', is_flag=True,
              help='disable colored output')
@click.pass_context
def cli(ctx, config_file, server, handle, cookie, no_color):
    """Codeforces submit tool"""

    config = Config()
    project = Path(config_file) if config_file else Path(PROJECT_CONFIG)
    if project.is_file():
        config.load_project(project)

    config.override('auth', handle=handle)
    config.override('options', server_url=server, session_file=cookie)

    if no_color:
        ctx.color = False


cli.add_command(auth)
cli.add_command(submit)
cli.add_command(status)
cli.add_command(logout)
