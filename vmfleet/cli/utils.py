import asyncio
import functools
import logging
import sys
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape

from vmfleet.config import Settings, SettingsError, load_settings
from vmfleet.fleet import FleetConfigError
from vmfleet.vcenter.errors import AuthError, QueryError, VCenterError
from vmfleet.vcenter.models import PowerState, VMListFilter

console = Console()
logger = logging.getLogger(__name__)

EXIT_FATAL = 2
EXIT_INTERRUPTED = 130


def handle_async_command(async_func):
    """Decorator to handle async CLI commands.

    The command may return an exit status. Operator-facing failures are
    printed as one line and exit with status 2.
    """
    @functools.wraps(async_func)
    def wrapper(*args, **kwargs):
        try:
            code = asyncio.run(async_func(*args, **kwargs))
        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user[/yellow]")
            sys.exit(EXIT_INTERRUPTED)
        except AuthError as e:
            console.print(f"[red]Authentication failed: {escape(str(e))}[/red]")
            sys.exit(EXIT_FATAL)
        except QueryError as e:
            console.print(f"[red]Inventory query failed, no actions were issued: {escape(str(e))}[/red]")
            sys.exit(EXIT_FATAL)
        except (SettingsError, FleetConfigError) as e:
            console.print(f"[red]Configuration error: {escape(str(e))}[/red]")
            sys.exit(EXIT_FATAL)
        except VCenterError as e:
            console.print(f"[red]vCenter error: {escape(str(e))}[/red]")
            sys.exit(EXIT_FATAL)
        except click.ClickException:
            raise
        except Exception as e:
            logger.debug("Unhandled error", exc_info=True)
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            sys.exit(EXIT_FATAL)
        if code:
            sys.exit(code)
    return wrapper


def filter_options(func):
    """Adds the repeatable inventory filter options to a command."""
    options = [
        click.option('--vm', 'vms', multiple=True, help='VM identifier, e.g. vm-1234 (repeatable).'),
        click.option('--name', 'names', multiple=True, help='VM name (repeatable).'),
        click.option('--cluster', 'clusters', multiple=True, help='Cluster identifier (repeatable).'),
        click.option('--datacenter', 'datacenters', multiple=True, help='Datacenter identifier (repeatable).'),
        click.option('--folder', 'folders', multiple=True, help='Folder identifier (repeatable).'),
        click.option('--esx-host', 'hosts', multiple=True, help='ESXi host identifier (repeatable).'),
        click.option('--resource-pool', 'resource_pools', multiple=True, help='Resource pool identifier (repeatable).'),
        click.option(
            '--power-state', 'power_states', multiple=True,
            type=click.Choice([s.value for s in PowerState], case_sensitive=False),
            help='Only VMs in this power state (repeatable).',
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_filter(**dimensions) -> Optional[VMListFilter]:
    """Turn repeatable filter options into a VMListFilter, None if all empty."""
    values = {name: set(items) for name, items in dimensions.items() if items}
    return VMListFilter(**values) if values else None


def settings_from(obj: dict) -> Settings:
    return load_settings(**obj.get('SETTINGS', {}))
