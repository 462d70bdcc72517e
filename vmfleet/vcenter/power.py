"""
Per-VM power actions.

Guest actions (shutdown, reboot, standby) signal the guest OS through VMware
Tools and only request a transition; a guest without tools accepts the call
and never converges. ``start`` is a hypervisor-level power-on that also
resumes suspended VMs.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from .errors import SessionExpiredError, TransportError
from .models import ActionOutcome, ErrorKind, PowerAction
from .session import SessionClient

logger = logging.getLogger(__name__)


def _error_message(response) -> str:
    """Extract the management plane's error text, falling back to the body."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        messages = data.get("messages") or []
        texts = [m.get("default_message") for m in messages if isinstance(m, dict)]
        texts = [t for t in texts if t]
        if texts:
            return "; ".join(texts)
        if data.get("error_type"):
            return str(data["error_type"])
    return str(data)[:200]


class PowerActionInvoker:
    """Issues power actions for single VMs."""

    def __init__(self, client: SessionClient):
        self.client = client

    @staticmethod
    def action_path(vm_id: str, action: PowerAction) -> str:
        if action.is_guest_action:
            return f"/api/vcenter/vm/{vm_id}/guest/power"
        return f"/api/vcenter/vm/{vm_id}/power"

    async def apply_action(
        self,
        vm_id: str,
        action: PowerAction,
        vm_name: Optional[str] = None,
    ) -> ActionOutcome:
        """
        Request one power action for one VM.

        Never raises for per-VM failures; they are returned as a failed
        outcome. ``SessionExpiredError`` propagates so the caller can
        re-authenticate and retry.
        """
        path = self.action_path(vm_id, action)
        started_at = datetime.now(timezone.utc)
        label = vm_name or vm_id

        def outcome(success: bool, **kwargs) -> ActionOutcome:
            return ActionOutcome(
                vm_id=vm_id,
                vm_name=vm_name,
                requested_action=action,
                success=success,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
                **kwargs,
            )

        logger.info("Requesting %s for %s", action.value, label)
        try:
            response = await self.client.request("POST", path, params={"action": action.value})
        except SessionExpiredError:
            raise
        except TransportError as e:
            kind = ErrorKind.TIMEOUT if e.timed_out else ErrorKind.TRANSPORT_FAILURE
            logger.error("%s for %s failed: %s", action.value, label, e)
            return outcome(False, error=kind, message=str(e))

        if response.is_success:
            logger.info("%s accepted for %s", action.value, label)
            return outcome(True, status_code=response.status_code)

        message = _error_message(response)
        logger.warning(
            "%s rejected for %s: HTTP %s %s", action.value, label, response.status_code, message
        )
        return outcome(
            False,
            error=ErrorKind.REJECTED,
            message=message,
            status_code=response.status_code,
        )
