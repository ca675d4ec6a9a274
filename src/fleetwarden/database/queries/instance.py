"""Instance and VM query functions for Fleetwarden.

Provides async functions for loading instance records and for attaching,
detaching and destroying the VM records referenced by them.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetwarden.database.models.deployment import Deployment
from fleetwarden.database.models.instance import Instance
from fleetwarden.database.models.vm import Vm

logger = structlog.get_logger(__name__)


async def get_instance(
    session: AsyncSession,
    instance_id: UUID,
) -> Instance | None:
    """Retrieve an instance by ID.

    The deployment, active VM and persistent disks are eagerly loaded.

    Args:
        session: Active async database session.
        instance_id: UUID of the instance to retrieve.

    Returns:
        The Instance if found, None otherwise.
    """
    stmt = select(Instance).where(Instance.id == instance_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def find_instance(
    session: AsyncSession,
    deployment_name: str,
    job: str,
    index: int,
) -> Instance | None:
    """Retrieve an instance by deployment name, job name and index.

    Args:
        session: Active async database session.
        deployment_name: Name of the owning deployment.
        job: Instance group (job) name.
        index: Numeric index within the job.

    Returns:
        The Instance if found, None otherwise.
    """
    stmt = (
        select(Instance)
        .join(Deployment, Instance.deployment_id == Deployment.id)
        .where(
            Deployment.name == deployment_name,
            Instance.job == job,
            Instance.index == index,
        )
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def attach_vm(
    session: AsyncSession,
    instance: Instance,
    *,
    cid: str,
    agent_id: str,
    cpi: str | None = None,
    env: dict[str, Any] | None = None,
) -> Vm:
    """Create a VM record and make it the instance's active VM.

    Args:
        session: Active async database session.
        instance: Instance the VM belongs to.
        cid: Cloud identifier of the new VM.
        agent_id: Agent identifier of the new VM.
        cpi: Cloud backend name the VM was created with.
        env: Environment the VM was created with.

    Returns:
        The newly created Vm.
    """
    vm = Vm(
        instance_id=instance.id,
        cid=cid,
        agent_id=agent_id,
        cpi=cpi,
        env=dict(env or {}),
    )
    session.add(vm)
    await session.flush()

    instance.active_vm = vm
    await session.commit()

    logger.info(
        "vm_attached",
        instance=instance.name,
        vm_cid=cid,
        agent_id=agent_id,
        cpi=cpi,
    )
    return vm


async def detach_active_vm(
    session: AsyncSession,
    instance: Instance,
) -> Vm | None:
    """Clear the instance's VM reference and destroy the VM record.

    No cloud backend is contacted. Calling this on an instance without an
    active VM does nothing.

    Args:
        session: Active async database session.
        instance: Instance whose VM reference is dropped.

    Returns:
        The destroyed Vm, or None if no VM was attached.
    """
    vm = instance.active_vm
    if vm is None:
        return None

    instance.active_vm = None
    await session.delete(vm)
    await session.commit()

    logger.info(
        "vm_reference_deleted",
        instance=instance.name,
        vm_cid=vm.cid,
        agent_id=vm.agent_id,
    )
    return vm


async def update_instance_spec(
    session: AsyncSession,
    instance: Instance,
    spec: dict[str, Any],
) -> Instance:
    """Persist a new apply-spec for the instance."""
    instance.spec = spec
    await session.commit()
    return instance


async def set_update_completed(
    session: AsyncSession,
    instance: Instance,
    completed: bool,
) -> Instance:
    """Persist the instance's ``update_completed`` flag."""
    instance.update_completed = completed
    await session.commit()
    return instance
