"""
Power-state reconciliation: plan construction and grouped execution.
"""

from vmfleet.reconcile.engine import ReconcileReport, ReconciliationEngine
from vmfleet.reconcile.plan import (
    ActionGroup,
    PlannedAction,
    PriorityGroup,
    ReconcilePlan,
    SkippedVM,
    SkipReason,
    build_plan,
)

__all__ = [
    "ActionGroup",
    "PlannedAction",
    "PriorityGroup",
    "ReconcilePlan",
    "ReconcileReport",
    "ReconciliationEngine",
    "SkipReason",
    "SkippedVM",
    "build_plan",
]
