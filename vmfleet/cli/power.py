import click
from rich.console import Console

from vmfleet.cli.report import render_inventory, render_plan, render_report
from vmfleet.cli.utils import build_filter, filter_options, handle_async_command, settings_from
from vmfleet.fleet import load_fleet_config
from vmfleet.reconcile.engine import ReconciliationEngine
from vmfleet.vcenter.inventory import InventoryQuery
from vmfleet.vcenter.models import RunMode
from vmfleet.vcenter.session import SessionClient

console = Console()


@click.command()
@filter_options
@click.option('--json', 'json_output', is_flag=True, help='Output in JSON format.')
@click.pass_obj
@handle_async_command
async def status(obj, json_output: bool, **dimensions) -> None:
    """Lists VMs and their power state."""
    settings = settings_from(obj)
    connection = settings.connection_config()

    async with SessionClient(timeout_s=settings.TIMEOUT_S, auth_timeout_s=settings.AUTH_TIMEOUT_S) as client:
        await client.connect(connection)
        vms = await InventoryQuery(client).list_filtered(build_filter(**dimensions))

    render_inventory(console, vms, json_output=json_output)


@click.command()
@click.argument('mode', type=click.Choice([m.value for m in RunMode], case_sensitive=False))
@click.option('--fleet', 'fleet_path', type=click.Path(dir_okay=False),
              help='YAML fleet file with priority groups, desired states and a default filter.')
@filter_options
@click.option('--dry-run', is_flag=True, help='Show the plan without issuing any power action.')
@click.option('--best-effort', is_flag=True,
              help='Continue with later groups even when a group had failures.')
@click.option('--max-concurrent', type=click.IntRange(min=1),
              help='Maximum simultaneous power requests (default from VCENTER_MAX_CONCURRENT).')
@click.option('--json', 'json_output', is_flag=True, help='Output in JSON format.')
@click.pass_obj
@handle_async_command
async def run(
    obj,
    mode: str,
    fleet_path,
    dry_run: bool,
    best_effort: bool,
    max_concurrent,
    json_output: bool,
    **dimensions,
) -> int:
    """
    Brings the fleet to MODE: start, shutdown or auto.

    Exits 0 when every action succeeded or nothing was needed, 1 when any
    VM failed, 2 on configuration, authentication or inventory errors.
    """
    run_mode = RunMode(mode.lower())
    settings = settings_from(obj)
    connection = settings.connection_config()

    fleet = load_fleet_config(fleet_path) if fleet_path else None
    if run_mode == RunMode.AUTO and (fleet is None or not fleet.desired_state):
        raise click.UsageError("auto mode needs a --fleet file with a desired_state section")

    vm_filter = build_filter(**dimensions)
    if fleet is not None and fleet.filter is not None:
        vm_filter = fleet.filter.merged(vm_filter)

    async with SessionClient(timeout_s=settings.TIMEOUT_S, auth_timeout_s=settings.AUTH_TIMEOUT_S) as client:
        await client.connect(connection)
        engine = ReconciliationEngine(
            client,
            max_concurrent=max_concurrent or settings.MAX_CONCURRENT,
            fail_fast=settings.FAIL_FAST and not best_effort,
        )
        plan = await engine.plan(
            run_mode,
            vm_filter,
            desired_states=fleet.desired_states() if fleet else None,
            groups=fleet.priority_groups() if fleet else None,
        )
        if dry_run:
            render_plan(console, plan, json_output=json_output)
            return 0
        report = await engine.execute(plan)

    render_report(console, report, json_output=json_output)
    return report.exit_code
