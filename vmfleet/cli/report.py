"""
Console rendering of inventory, plans and reconciliation reports.
"""

import json
from typing import Sequence

from rich.console import Console
from rich.json import JSON
from rich.markup import escape
from rich.table import Table

from vmfleet.reconcile.engine import ReconcileReport
from vmfleet.reconcile.plan import ReconcilePlan, SkippedVM
from vmfleet.vcenter.models import PowerState, VMSummary

STATE_STYLES = {
    PowerState.POWERED_ON: "green",
    PowerState.POWERED_OFF: "dim",
    PowerState.SUSPENDED: "yellow",
}


def render_inventory(console: Console, vms: Sequence[VMSummary], json_output: bool = False) -> None:
    if json_output:
        data = [vm.model_dump(mode="json", by_alias=True) for vm in vms]
        console.print(JSON(json.dumps(data)))
        return

    table = Table(title=f"Virtual Machines ({len(vms)})")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Power State")
    table.add_column("CPUs", justify="right")
    table.add_column("Memory (MiB)", justify="right")
    for vm in sorted(vms, key=lambda v: v.name.lower()):
        style = STATE_STYLES[vm.power_state]
        table.add_row(
            escape(vm.id),
            escape(vm.name),
            f"[{style}]{vm.power_state.value}[/{style}]",
            str(vm.cpu_count) if vm.cpu_count is not None else "-",
            str(vm.memory_size_mib) if vm.memory_size_mib is not None else "-",
        )
    console.print(table)

    counts = {state: sum(1 for vm in vms if vm.power_state == state) for state in PowerState}
    console.print(", ".join(f"{state.value}: {count}" for state, count in counts.items()))


def _render_skipped(console: Console, skipped: Sequence[SkippedVM]) -> None:
    if not skipped:
        return
    table = Table(title="Skipped")
    table.add_column("VM", style="cyan")
    table.add_column("Name")
    table.add_column("Reason")
    for item in skipped:
        table.add_row(escape(item.vm_id), escape(item.vm_name or "-"), item.reason.value)
    console.print(table)


def render_plan(console: Console, plan: ReconcilePlan, json_output: bool = False) -> None:
    if json_output:
        console.print(JSON(json.dumps(plan.to_dict())))
        return

    console.print(f"[bold blue]Plan for '{plan.mode.value}' (dry run)[/bold blue]")
    if plan.is_empty:
        console.print("[green]Nothing to do.[/green]")
    else:
        table = Table()
        table.add_column("Step", justify="right")
        table.add_column("Group")
        table.add_column("VM", style="cyan")
        table.add_column("Name")
        table.add_column("Current")
        table.add_column("Action", style="bold")
        for step, group in enumerate(plan.groups, 1):
            for action in group.actions:
                table.add_row(
                    str(step), escape(group.name), escape(action.vm_id), escape(action.vm_name or "-"),
                    action.current_state.value, action.action.value,
                )
        console.print(table)
    _render_skipped(console, plan.skipped)


def render_report(console: Console, report: ReconcileReport, json_output: bool = False) -> None:
    if json_output:
        console.print(JSON(json.dumps(report.to_dict())))
        return

    if report.outcomes:
        table = Table(title=f"Reconciliation '{report.mode.value}'")
        table.add_column("VM", style="cyan")
        table.add_column("Name")
        table.add_column("Action")
        table.add_column("Result")
        table.add_column("Reason")
        for outcome in report.outcomes:
            if outcome.success:
                result, reason = "[green]OK[/green]", ""
            else:
                result = "[red]FAILED[/red]"
                reason = outcome.error.value if outcome.error else ""
                if outcome.message:
                    message = escape(outcome.message)
                    reason = f"{reason}: {message}" if reason else message
            table.add_row(
                escape(outcome.vm_id), escape(outcome.vm_name or "-"), outcome.requested_action.value, result, reason,
            )
        console.print(table)
    else:
        console.print("[green]Nothing to do: every VM is already in the target state.[/green]")

    _render_skipped(console, report.skipped)

    summary = report.summary()
    color = "red" if summary['failed'] else "green"
    console.print(
        f"[{color}]{summary['succeeded']} succeeded, {summary['failed']} failed, "
        f"{summary['skipped']} skipped[/{color}]"
    )
