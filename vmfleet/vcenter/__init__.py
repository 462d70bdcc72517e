"""
vCenter REST client: session handling, inventory queries and power actions.
"""

from vmfleet.vcenter.errors import (
    AuthError,
    AuthMalformedResponseError,
    AuthRejectedError,
    AuthTransportError,
    NotConnectedError,
    QueryDecodeError,
    QueryError,
    QueryTransportError,
    SessionExpiredError,
    TransportError,
    VCenterError,
)
from vmfleet.vcenter.inventory import InventoryQuery
from vmfleet.vcenter.models import (
    ActionOutcome,
    ConnectionConfig,
    ErrorKind,
    PowerAction,
    PowerState,
    RunMode,
    Session,
    VMListFilter,
    VMSummary,
)
from vmfleet.vcenter.power import PowerActionInvoker
from vmfleet.vcenter.session import SessionClient

__all__ = [
    "ActionOutcome",
    "AuthError",
    "AuthMalformedResponseError",
    "AuthRejectedError",
    "AuthTransportError",
    "ConnectionConfig",
    "ErrorKind",
    "InventoryQuery",
    "NotConnectedError",
    "PowerAction",
    "PowerActionInvoker",
    "PowerState",
    "QueryDecodeError",
    "QueryError",
    "QueryTransportError",
    "RunMode",
    "Session",
    "SessionClient",
    "SessionExpiredError",
    "TransportError",
    "VCenterError",
    "VMListFilter",
    "VMSummary",
]
