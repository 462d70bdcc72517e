"""
Action plan construction for a reconciliation pass.

``build_plan`` is a pure function with no I/O: it turns a run mode, an
inventory snapshot and the optional fleet configuration into ordered action
groups plus the list of VMs that need nothing.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence

from vmfleet.vcenter.models import PowerAction, PowerState, RunMode, VMSummary

logger = logging.getLogger(__name__)

UNGROUPED = "ungrouped"


class SkipReason(str, Enum):
    """Why a VM received no action."""
    ALREADY_IN_STATE = "already_in_state"
    NO_DESIRED_STATE = "no_desired_state"
    NOT_IN_INVENTORY = "not_in_inventory"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class PriorityGroup:
    """Named set of VM ids that may be acted on concurrently."""
    name: str
    vm_ids: Sequence[str]


@dataclass(frozen=True)
class PlannedAction:
    vm_id: str
    vm_name: Optional[str]
    action: PowerAction
    current_state: PowerState


@dataclass(frozen=True)
class SkippedVM:
    vm_id: str
    reason: SkipReason
    vm_name: Optional[str] = None
    action: Optional[PowerAction] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            'vm_id': self.vm_id,
            'vm_name': self.vm_name,
            'reason': self.reason.value,
            'action': self.action.value if self.action else None,
        }


@dataclass
class ActionGroup:
    """Actions dispatched together; the next group waits for all of them."""
    name: str
    actions: List[PlannedAction] = field(default_factory=list)


@dataclass
class ReconcilePlan:
    mode: RunMode
    groups: List[ActionGroup] = field(default_factory=list)
    skipped: List[SkippedVM] = field(default_factory=list)

    @property
    def actions(self) -> List[PlannedAction]:
        return [action for group in self.groups for action in group.actions]

    @property
    def is_empty(self) -> bool:
        return not self.actions

    def to_dict(self) -> Dict:
        return {
            'mode': self.mode.value,
            'groups': [
                {
                    'name': group.name,
                    'actions': [
                        {
                            'vm_id': a.vm_id,
                            'vm_name': a.vm_name,
                            'action': a.action.value,
                            'current_state': a.current_state.value,
                        }
                        for a in group.actions
                    ],
                }
                for group in self.groups
            ],
            'skipped': [s.to_dict() for s in self.skipped],
        }


def needs_shutdown(state: PowerState) -> bool:
    # Suspended VMs cannot take a guest shutdown and already hold no CPU.
    return state == PowerState.POWERED_ON


def needs_start(state: PowerState) -> bool:
    return state in (PowerState.POWERED_OFF, PowerState.SUSPENDED)


def _action_for(mode: RunMode, vm: VMSummary, desired: Mapping[str, PowerState]) -> Optional[PowerAction]:
    if mode == RunMode.SHUTDOWN:
        return PowerAction.SHUTDOWN if needs_shutdown(vm.power_state) else None
    if mode == RunMode.START:
        return PowerAction.START if needs_start(vm.power_state) else None

    target = desired[vm.id]
    if target == PowerState.POWERED_ON:
        return PowerAction.START if needs_start(vm.power_state) else None
    return PowerAction.SHUTDOWN if needs_shutdown(vm.power_state) else None


def _group_actions(
    actions: List[PlannedAction],
    groups: Sequence[PriorityGroup],
    reverse: bool,
) -> List[ActionGroup]:
    """Bucket actions by priority group in startup order, reversed for shutdown."""
    membership: Dict[str, str] = {}
    for group in groups:
        for vm_id in group.vm_ids:
            membership.setdefault(vm_id, group.name)

    buckets: Dict[str, ActionGroup] = {g.name: ActionGroup(g.name) for g in groups}
    buckets.setdefault(UNGROUPED, ActionGroup(UNGROUPED))
    for action in actions:
        buckets[membership.get(action.vm_id, UNGROUPED)].actions.append(action)

    ordered = [buckets[name] for name in buckets if buckets[name].actions]
    if reverse:
        ordered.reverse()
    return ordered


def build_plan(
    mode: RunMode,
    vms: Sequence[VMSummary],
    desired_states: Optional[Mapping[str, PowerState]] = None,
    groups: Optional[Sequence[PriorityGroup]] = None,
) -> ReconcilePlan:
    """
    Compute which VMs need which action, and in what order.

    Args:
        mode: Fleet-wide intent.
        vms: Current inventory snapshot.
        desired_states: VM id -> POWERED_ON/POWERED_OFF, consulted in AUTO mode.
        groups: Priority groups in startup order. START runs them in order,
            SHUTDOWN in reverse; VMs outside every group run last on start and
            first on shutdown.

    Returns:
        The plan. VMs needing nothing are listed in ``skipped``.
    """
    desired = dict(desired_states or {})
    unsupported = sorted(k for k, v in desired.items() if v == PowerState.SUSPENDED)
    if unsupported:
        raise ValueError(f"Desired state SUSPENDED is not supported: {', '.join(unsupported)}")
    groups = list(groups or [])
    plan = ReconcilePlan(mode=mode)

    starts: List[PlannedAction] = []
    shutdowns: List[PlannedAction] = []
    seen = set()

    for vm in vms:
        if vm.id in seen:
            continue
        seen.add(vm.id)

        if mode == RunMode.AUTO and vm.id not in desired:
            plan.skipped.append(SkippedVM(vm.id, SkipReason.NO_DESIRED_STATE, vm_name=vm.name))
            continue

        action = _action_for(mode, vm, desired)
        if action is None:
            plan.skipped.append(SkippedVM(vm.id, SkipReason.ALREADY_IN_STATE, vm_name=vm.name))
            continue

        planned = PlannedAction(vm.id, vm.name, action, vm.power_state)
        (starts if action == PowerAction.START else shutdowns).append(planned)

    if mode == RunMode.AUTO:
        for vm_id in desired:
            if vm_id not in seen:
                logger.warning("VM %s has a desired state but is not in the inventory", vm_id)
                plan.skipped.append(SkippedVM(vm_id, SkipReason.NOT_IN_INVENTORY))

    plan.groups = _group_actions(shutdowns, groups, reverse=True) + _group_actions(
        starts, groups, reverse=False
    )

    logger.info(
        "Planned %s: %d action(s) in %d group(s), %d skipped",
        mode.value, len(plan.actions), len(plan.groups), len(plan.skipped),
    )
    return plan
