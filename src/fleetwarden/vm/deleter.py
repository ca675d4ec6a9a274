"""Delete the cloud VM of an instance.

The cloud VM is deleted first and the instance's VM reference is dropped
only afterwards, so a failed cloud call leaves the management state as it
was. A VM the backend no longer knows about counts as deleted.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from fleetwarden.database.queries.instance import detach_active_vm
from fleetwarden.errors import VMNotFound

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from fleetwarden.cloud.factory import CloudFactory
    from fleetwarden.database.models.instance import Instance

logger = structlog.get_logger(__name__)


class VmDeleter:
    """Deletes VMs through the cloud backend that created them.

    Attributes:
        session: Database session used to drop VM records.
        cloud_factory: Resolver for cloud backends.
        enable_virtual_delete_vms: Only drop VM records, never call the cloud.
    """

    def __init__(
        self,
        session: AsyncSession,
        cloud_factory: CloudFactory,
        enable_virtual_delete_vms: bool = False,
    ) -> None:
        self.session = session
        self.cloud_factory = cloud_factory
        self.enable_virtual_delete_vms = enable_virtual_delete_vms
        self._logger = logger.bind(component="VmDeleter")

    async def delete_for_instance(self, instance: Instance) -> None:
        """Delete the instance's active VM and drop the reference to it.

        Does nothing when the instance has no active VM.
        """
        vm = instance.active_vm
        if vm is None:
            self._logger.debug("vm_delete_skipped", instance=instance.name)
            return

        if vm.cid is not None:
            await self.delete_vm_by_cid(vm.cid, vm.cpi)
        await detach_active_vm(self.session, instance)

    async def delete_vm_by_cid(self, cid: str, cpi: str | None = None) -> None:
        """Delete a VM by cloud ID, ignoring VMs that are already gone."""
        if self.enable_virtual_delete_vms:
            self._logger.info("vm_virtual_delete", vm_cid=cid, cpi=cpi)
            return

        cloud = self.cloud_factory.get(cpi)
        self._logger.info("vm_deleting", vm_cid=cid, cpi=cpi)
        try:
            await cloud.delete_vm(cid)
        except VMNotFound:
            self._logger.warning("vm_not_found_on_delete", vm_cid=cid, cpi=cpi)
