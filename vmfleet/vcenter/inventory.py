"""
VM inventory queries against ``GET /api/vcenter/vm``.
"""

import logging
from typing import Iterable, List, Optional

from pydantic import TypeAdapter, ValidationError

from .errors import QueryDecodeError, QueryTransportError, SessionExpiredError, TransportError
from .models import VMListFilter, VMSummary
from .session import SessionClient

logger = logging.getLogger(__name__)

_summaries = TypeAdapter(List[VMSummary])


class InventoryQuery:
    """Lists VMs visible to the session's credentials."""

    VM_PATH = "/api/vcenter/vm"

    def __init__(self, client: SessionClient):
        self.client = client

    async def list_all(self) -> List[VMSummary]:
        """List every VM visible to the credentials."""
        return await self._fetch(None)

    async def list_filtered(self, vm_filter: Optional[VMListFilter]) -> List[VMSummary]:
        """
        List VMs matching a filter.

        Args:
            vm_filter: Present dimensions become repeated query parameters.
                ``None`` or an all-absent filter lists everything.

        Raises:
            QueryTransportError: Network failure or non-success status.
            QueryDecodeError: Body is not an array of VM summaries.
        """
        if vm_filter is None or vm_filter.is_empty:
            return await self._fetch(None)
        if vm_filter.matches_nothing:
            logger.info("Filter constrains a dimension to the empty set, skipping query")
            return []
        return await self._fetch(vm_filter.to_params())

    async def list_by_ids(self, ids: Iterable[str]) -> List[VMSummary]:
        """List the VMs with the given identifiers."""
        return await self.list_filtered(VMListFilter(vms=set(ids)))

    async def _fetch(self, params) -> List[VMSummary]:
        try:
            response = await self.client.request("GET", self.VM_PATH, params=params)
        except SessionExpiredError as e:
            await self.client.reauthenticate(e.token)
            response = await self._request_once(params)
        except TransportError as e:
            raise QueryTransportError(f"Inventory request failed: {e}") from e

        if not response.is_success:
            raise QueryTransportError(
                f"Inventory request returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise QueryDecodeError("Inventory response is not valid JSON") from e
        try:
            vms = _summaries.validate_python(payload)
        except ValidationError as e:
            raise QueryDecodeError(
                f"Inventory response does not match the VM summary shape: "
                f"{e.error_count()} error(s)"
            ) from e

        logger.info("Inventory listed %d VMs", len(vms))
        return vms

    async def _request_once(self, params):
        try:
            return await self.client.request("GET", self.VM_PATH, params=params)
        except TransportError as e:
            raise QueryTransportError(f"Inventory request failed: {e}") from e
