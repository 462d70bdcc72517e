import logging

import click

from vmfleet import __version__
from vmfleet.utils.logging import setup_logging

from .power import run, status


@click.group()
@click.version_option(__version__, prog_name='vmfleet')
@click.option('--verbose', '-v', is_flag=True, help='Enables verbose mode.')
@click.option('--quiet', '-q', is_flag=True, help='Enables quiet mode.')
@click.option('--host', help='vCenter host or URL [env: VCENTER_HOST].')
@click.option('--username', help='vCenter user [env: VCENTER_USERNAME].')
@click.option('--password', help='vCenter password [env: VCENTER_PASSWORD].')
@click.option('--port', type=int, help='vCenter HTTPS port [env: VCENTER_PORT].')
@click.option('--insecure', is_flag=True, help='Skip TLS certificate verification.')
@click.option('--timeout', type=click.FloatRange(min=0, min_open=True),
              help='Per-request timeout in seconds [env: VCENTER_TIMEOUT_S].')
@click.pass_context
def app(ctx, verbose, quiet, host, username, password, port, insecure, timeout):
    """
    vmfleet: bulk power control for vCenter virtual machines.
    """
    ctx.ensure_object(dict)
    ctx.obj['VERBOSE'] = verbose
    ctx.obj['QUIET'] = quiet
    ctx.obj['SETTINGS'] = {
        'HOST': host,
        'USERNAME': username,
        'PASSWORD': password,
        'PORT': port,
        'VERIFY_TLS': False if insecure else None,
        'TIMEOUT_S': timeout,
    }

    if verbose:
        setup_logging(level=logging.DEBUG)
    elif quiet:
        setup_logging(level=logging.ERROR)
    else:
        setup_logging()


app.add_command(status, name='status')
app.add_command(run, name='run')

if __name__ == '__main__':
    app()
