"""
Data models for the vCenter REST API.

Field names and enum values mirror the wire format of the vCenter
``/api`` endpoints so responses can be validated directly.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set, Union
from urllib.parse import urlsplit

import httpx
from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator


class PowerState(str, Enum):
    """VM power state as reported by the management plane."""
    POWERED_OFF = "POWERED_OFF"
    POWERED_ON = "POWERED_ON"
    SUSPENDED = "SUSPENDED"


class PowerAction(str, Enum):
    """Power transition requested for a single VM."""
    SHUTDOWN = "shutdown"
    REBOOT = "reboot"
    STANDBY = "standby"
    START = "start"

    @property
    def is_guest_action(self) -> bool:
        """Guest actions signal the guest OS instead of the hypervisor."""
        return self is not PowerAction.START


class RunMode(str, Enum):
    """Declarative intent for the whole fleet."""
    START = "start"
    SHUTDOWN = "shutdown"
    AUTO = "auto"


class ErrorKind(str, Enum):
    """Reason a power action failed."""
    TRANSPORT_FAILURE = "transport_failure"
    REJECTED = "rejected"
    TIMEOUT = "timeout"
    SESSION_EXPIRED = "session_expired"


class ConnectionConfig(BaseModel):
    """Where and how to authenticate against the management plane."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(..., description="Hostname, IP address or https:// URL of vCenter.")
    username: str
    password: SecretStr
    port: Optional[int] = None
    verify_tls: bool = True

    @model_validator(mode="after")
    def check_port(self) -> "ConnectionConfig":
        if self.port and urlsplit(self._host_url()).port is not None:
            raise ValueError(f"Port given both in host '{self.host}' and as port={self.port}")
        return self

    def _host_url(self) -> str:
        host = self.host.rstrip("/")
        if "://" not in host:
            host = f"https://{host}"
        return host

    @property
    def base_url(self) -> str:
        host = self._host_url()
        if self.port:
            host = f"{host}:{self.port}"
        return host


class VMSummary(BaseModel):
    """
    Snapshot of one VM from ``GET /api/vcenter/vm``.

    Only ``vm``, ``name`` and ``power_state`` are required; sizing fields are
    missing for VMs the caller cannot fully inspect.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(..., alias="vm")
    name: str
    power_state: PowerState
    cpu_count: Optional[int] = None
    memory_size_mib: Optional[int] = None


class VMListFilter(BaseModel):
    """
    Inventory filter for ``GET /api/vcenter/vm``.

    ``None`` means no constraint on that dimension. An empty set is a
    constraint that matches nothing.
    """

    model_config = ConfigDict(frozen=True)

    clusters: Optional[Set[str]] = None
    datacenters: Optional[Set[str]] = None
    folders: Optional[Set[str]] = None
    hosts: Optional[Set[str]] = None
    names: Optional[Set[str]] = None
    power_states: Optional[Set[PowerState]] = None
    resource_pools: Optional[Set[str]] = None
    vms: Optional[Set[str]] = None

    @property
    def is_empty(self) -> bool:
        """True when no dimension is constrained."""
        return all(getattr(self, name) is None for name in type(self).model_fields)

    @property
    def matches_nothing(self) -> bool:
        """True when some dimension is constrained to the empty set."""
        return any(getattr(self, name) == set() for name in type(self).model_fields)

    def to_params(self) -> Dict[str, List[str]]:
        """Query parameters, one repeated key per present dimension."""
        params: Dict[str, List[str]] = {}
        for name in type(self).model_fields:
            values = getattr(self, name)
            if values is None:
                continue
            params[name] = sorted(v.value if isinstance(v, Enum) else v for v in values)
        return params

    @classmethod
    def from_params(cls, params: Union[httpx.QueryParams, Mapping[str, Any]]) -> "VMListFilter":
        """Inverse of ``to_params``; accepts a mapping or parsed query params."""
        parsed = params if isinstance(params, httpx.QueryParams) else httpx.QueryParams(params)
        data: Dict[str, Any] = {}
        for name in cls.model_fields:
            if name in parsed:
                data[name] = set(parsed.get_list(name))
        return cls(**data)

    @classmethod
    def from_query_string(cls, query: str) -> "VMListFilter":
        """Rebuild a filter from a serialized query string."""
        return cls.from_params(httpx.QueryParams(query))

    def merged(self, other: Optional["VMListFilter"]) -> "VMListFilter":
        """Dimensions set on ``other`` replace the ones set here."""
        if other is None:
            return self
        data = self.model_dump()
        data.update(other.model_dump(exclude_none=True))
        return type(self)(**data)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Session:
    """An authenticated vCenter session."""

    token: str
    base_url: str
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ActionOutcome:
    """Result of one power action against one VM."""

    vm_id: str
    requested_action: PowerAction
    success: bool
    error: Optional[ErrorKind] = None
    vm_name: Optional[str] = None
    message: Optional[str] = None
    status_code: Optional[int] = None
    started_at: datetime = field(default_factory=_utcnow)
    finished_at: datetime = field(default_factory=_utcnow)

    @property
    def duration(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/JSON output."""
        return {
            'vm_id': self.vm_id,
            'vm_name': self.vm_name,
            'requested_action': self.requested_action.value,
            'success': self.success,
            'error': self.error.value if self.error else None,
            'message': self.message,
            'status_code': self.status_code,
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat(),
        }
