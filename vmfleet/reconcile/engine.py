"""
Reconciliation engine.

Lists the inventory, builds the action plan and executes it group by group.
Actions inside a group run concurrently behind a semaphore; a group starts
only after every action of the previous group reached a terminal state.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from vmfleet.reconcile.plan import (
    ActionGroup,
    PlannedAction,
    PriorityGroup,
    ReconcilePlan,
    SkippedVM,
    SkipReason,
    build_plan,
)
from vmfleet.vcenter.errors import AuthError, SessionExpiredError
from vmfleet.vcenter.inventory import InventoryQuery
from vmfleet.vcenter.models import (
    ActionOutcome,
    ErrorKind,
    PowerState,
    RunMode,
    VMListFilter,
)
from vmfleet.vcenter.power import PowerActionInvoker
from vmfleet.vcenter.session import SessionClient

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation pass."""

    mode: RunMode
    outcomes: List[ActionOutcome] = field(default_factory=list)
    skipped: List[SkippedVM] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def succeeded(self) -> List[ActionOutcome]:
        return [o for o in self.outcomes if o.success]

    @property
    def failed(self) -> List[ActionOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def exit_code(self) -> int:
        """0 on full success or nothing to do, 1 when any VM failed."""
        return 1 if self.failed else 0

    def summary(self) -> Dict[str, int]:
        return {
            'succeeded': len(self.succeeded),
            'failed': len(self.failed),
            'skipped': len(self.skipped),
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            'mode': self.mode.value,
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'summary': self.summary(),
            'outcomes': [o.to_dict() for o in self.outcomes],
            'skipped': [s.to_dict() for s in self.skipped],
        }


class ReconciliationEngine:
    """
    Brings a fleet of VMs to a requested collective power state.

    A failed VM never stops the other VMs of its group. With ``fail_fast``
    a group containing failures holds the barrier: later groups are not
    dispatched and their VMs are reported as blocked. Best-effort mode
    (``fail_fast=False``) carries on with the next group.
    """

    def __init__(
        self,
        client: SessionClient,
        inventory: Optional[InventoryQuery] = None,
        invoker: Optional[PowerActionInvoker] = None,
        max_concurrent: int = 10,
        fail_fast: bool = True,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.client = client
        self.inventory = inventory or InventoryQuery(client)
        self.invoker = invoker or PowerActionInvoker(client)
        self.max_concurrent = max_concurrent
        self.fail_fast = fail_fast

    async def plan(
        self,
        mode: RunMode,
        vm_filter: Optional[VMListFilter] = None,
        desired_states: Optional[Mapping[str, PowerState]] = None,
        groups: Optional[Sequence[PriorityGroup]] = None,
    ) -> ReconcilePlan:
        """
        Query the inventory and compute the plan without acting.

        Raises:
            QueryError: The inventory could not be listed or decoded. No plan
                is built from a partial inventory.
        """
        vms = await self.inventory.list_filtered(vm_filter)
        return build_plan(mode, vms, desired_states=desired_states, groups=groups)

    async def run(
        self,
        mode: RunMode,
        vm_filter: Optional[VMListFilter] = None,
        desired_states: Optional[Mapping[str, PowerState]] = None,
        groups: Optional[Sequence[PriorityGroup]] = None,
    ) -> ReconcileReport:
        """Plan and execute one reconciliation pass."""
        plan = await self.plan(mode, vm_filter, desired_states=desired_states, groups=groups)
        return await self.execute(plan)

    async def execute(self, plan: ReconcilePlan) -> ReconcileReport:
        """
        Execute a plan group by group.

        Returns:
            Report with one outcome per dispatched VM.
        """
        report = ReconcileReport(mode=plan.mode, skipped=list(plan.skipped))

        if plan.is_empty:
            logger.info("Nothing to do for %s: every VM is already in the target state", plan.mode.value)
            report.finished_at = datetime.now(timezone.utc)
            return report

        semaphore = asyncio.Semaphore(self.max_concurrent)

        for index, group in enumerate(plan.groups):
            logger.info(
                "Dispatching group %d/%d '%s': %d VM(s)",
                index + 1, len(plan.groups), group.name, len(group.actions),
            )
            results = await self._execute_group(group, semaphore)
            report.outcomes.extend(results)

            failures = [r for r in results if not r.success]
            remaining = plan.groups[index + 1:]
            if failures and self.fail_fast and remaining:
                blocked = [a for g in remaining for a in g.actions]
                logger.error(
                    "Group '%s' had %d failure(s); holding %d VM(s) in later groups",
                    group.name, len(failures), len(blocked),
                )
                report.skipped.extend(
                    SkippedVM(a.vm_id, SkipReason.BLOCKED, vm_name=a.vm_name, action=a.action)
                    for a in blocked
                )
                break

        report.finished_at = datetime.now(timezone.utc)
        summary = report.summary()
        logger.info(
            "Reconciliation %s completed: %d succeeded, %d failed, %d skipped",
            plan.mode.value, summary['succeeded'], summary['failed'], summary['skipped'],
        )
        return report

    async def _execute_group(
        self, group: ActionGroup, semaphore: asyncio.Semaphore
    ) -> List[ActionOutcome]:
        async def dispatch_with_semaphore(action: PlannedAction) -> ActionOutcome:
            async with semaphore:
                return await self._dispatch(action)

        tasks = [dispatch_with_semaphore(action) for action in group.actions]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        outcomes = []
        for action, result in zip(group.actions, results):
            if isinstance(result, Exception):
                logger.error("Unexpected error acting on %s: %r", action.vm_id, result)
                outcomes.append(ActionOutcome(
                    vm_id=action.vm_id,
                    vm_name=action.vm_name,
                    requested_action=action.action,
                    success=False,
                    error=ErrorKind.TRANSPORT_FAILURE,
                    message=str(result),
                ))
            elif isinstance(result, BaseException):
                raise result
            else:
                outcomes.append(result)
        return outcomes

    async def _dispatch(self, action: PlannedAction) -> ActionOutcome:
        """Apply one action, re-authenticating once if the session expired."""
        try:
            return await self.invoker.apply_action(action.vm_id, action.action, vm_name=action.vm_name)
        except SessionExpiredError as e:
            stale_token = e.token

        try:
            await self.client.reauthenticate(stale_token)
        except AuthError as e:
            logger.error("Re-authentication failed while acting on %s: %s", action.vm_id, e)
            return self._expired(action, f"Re-authentication failed: {e}")

        try:
            return await self.invoker.apply_action(action.vm_id, action.action, vm_name=action.vm_name)
        except SessionExpiredError as e:
            return self._expired(action, str(e))

    @staticmethod
    def _expired(action: PlannedAction, message: str) -> ActionOutcome:
        return ActionOutcome(
            vm_id=action.vm_id,
            vm_name=action.vm_name,
            requested_action=action.action,
            success=False,
            error=ErrorKind.SESSION_EXPIRED,
            message=message,
        )
