"""
Loads and validates the YAML fleet file.

The fleet file declares priority groups in startup order, the desired power
state of individual VMs for ``auto`` runs, and a default inventory filter.
All VM references are vCenter VM identifiers (``vm-1234``), never names.

Example::

    groups:
      - name: data
        vms: [vm-101, vm-102]
      - name: apps
        vms: [vm-201]
    desired_state:
      vm-101: POWERED_ON
      vm-201: POWERED_OFF
    filter:
      clusters: [domain-c8]
"""
import logging
from pathlib import Path
from typing import Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from vmfleet.reconcile.plan import UNGROUPED, PriorityGroup
from vmfleet.vcenter.models import PowerState, VMListFilter

logger = logging.getLogger(__name__)


class FleetConfigError(Exception):
    """The fleet file could not be read or failed validation."""
    pass


class GroupSpec(BaseModel):
    """One priority group."""
    name: str = Field(..., min_length=1, description="Group name shown in logs and reports.")
    vms: List[str] = Field(default_factory=list, description="VM identifiers in this group.")


class FleetConfig(BaseModel):
    """Pydantic model for validating a fleet file."""
    groups: List[GroupSpec] = Field(default_factory=list, description="Priority groups in startup order.")
    desired_state: Dict[str, Literal["POWERED_ON", "POWERED_OFF"]] = Field(
        default_factory=dict, description="Desired power state per VM id for auto runs."
    )
    filter: Optional[VMListFilter] = None

    @model_validator(mode="after")
    def check_groups(self) -> "FleetConfig":
        names = set()
        owners: Dict[str, str] = {}
        for group in self.groups:
            if group.name == UNGROUPED:
                raise ValueError(f"Group name '{UNGROUPED}' is reserved for VMs outside every group")
            if group.name in names:
                raise ValueError(f"Duplicate group name '{group.name}'")
            names.add(group.name)
            for vm_id in group.vms:
                if vm_id in owners:
                    raise ValueError(
                        f"VM '{vm_id}' is listed in both '{owners[vm_id]}' and '{group.name}'"
                    )
                owners[vm_id] = group.name
        return self

    def priority_groups(self) -> List[PriorityGroup]:
        return [PriorityGroup(name=g.name, vm_ids=tuple(g.vms)) for g in self.groups]

    def desired_states(self) -> Dict[str, PowerState]:
        return {vm_id: PowerState(state) for vm_id, state in self.desired_state.items()}


def load_fleet_config(path: Union[str, Path]) -> FleetConfig:
    """
    Load and validate a fleet file.

    Raises:
        FleetConfigError: The file is missing, is not YAML, or is invalid.
    """
    path = Path(path)
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise FleetConfigError(f"Cannot read fleet file {path}: {e.strerror}") from e
    except yaml.YAMLError as e:
        raise FleetConfigError(f"Fleet file {path} is not valid YAML: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise FleetConfigError(f"Fleet file {path} must contain a mapping at the top level")

    try:
        config = FleetConfig.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}" for err in e.errors()
        )
        raise FleetConfigError(f"Invalid fleet file {path}: {problems}") from e

    logger.info(
        "Loaded fleet file %s: %d group(s), %d desired state(s)",
        path, len(config.groups), len(config.desired_state),
    )
    return config
