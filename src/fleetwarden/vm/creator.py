"""Create the cloud VM for an instance plan.

A new agent ID is generated for every VM. Once the backend has created
the VM, its record becomes the instance's active VM, the instance's
apply-spec and VM environment are updated, and the creator waits for the
new agent to answer. If the agent never answers the VM is deleted again
and the timeout propagates.
"""

from __future__ import annotations

import copy
import uuid
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from fleetwarden.database.queries.instance import attach_vm
from fleetwarden.errors import RpcTimeout

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from fleetwarden.agent.client import AgentClientGateway
    from fleetwarden.cloud.factory import CloudFactory
    from fleetwarden.database.models.vm import Vm
    from fleetwarden.deployment_plan.instance_plan import InstancePlan
    from fleetwarden.vm.deleter import VmDeleter

logger = structlog.get_logger(__name__)


class IpProvider(Protocol):
    """Supplies the network settings a plan's VM is created with."""

    def network_settings_for(self, instance_plan: InstancePlan) -> dict[str, Any]:
        ...


class ExistingIpProvider:
    """Keeps the network assignments already recorded in the plan's spec."""

    def network_settings_for(self, instance_plan: InstancePlan) -> dict[str, Any]:
        return instance_plan.network_settings


class VmCreator:
    """Creates VMs for instance plans.

    Attributes:
        session: Database session recording VM and instance updates.
        cloud_factory: Resolver for cloud backends.
        agent_gateway: Source of agent clients for the new VMs.
        agent_wait_timeout: Seconds to wait for a new agent to answer.
    """

    def __init__(
        self,
        session: AsyncSession,
        cloud_factory: CloudFactory,
        agent_gateway: AgentClientGateway,
        vm_deleter: VmDeleter,
        agent_wait_timeout: float = 600,
    ) -> None:
        self.session = session
        self.cloud_factory = cloud_factory
        self.agent_gateway = agent_gateway
        self.agent_wait_timeout = agent_wait_timeout
        self._vm_deleter = vm_deleter
        self._logger = logger.bind(component="VmCreator")

    def _vm_env(self, instance_plan: InstancePlan, tags: dict[str, Any]) -> dict[str, Any]:
        env = copy.deepcopy(instance_plan.instance.env)
        instance = instance_plan.existing_instance
        bosh = env.setdefault("bosh", {})
        bosh["group"] = f"{instance.deployment.name}-{instance.job}"
        bosh["groups"] = [instance.deployment.name, instance.job]
        if tags:
            bosh["tags"] = dict(tags)
        return env

    async def create_for_instance_plan(
        self,
        instance_plan: InstancePlan,
        ip_provider: IpProvider,
        disk_cids: list[str],
        tags: dict[str, Any],
        use_existing: bool = False,
    ) -> Vm:
        """Create a VM for ``instance_plan`` and attach it to the instance.

        Args:
            instance_plan: Plan describing the instance to create a VM for.
            ip_provider: Supplies the network settings of the VM.
            disk_cids: Persistent disks the VM should be placed next to.
            tags: Tags recorded in the VM environment.
            use_existing: Creation recovers an existing instance; existing
                persistent disks are handed to the backend.

        Returns:
            The new active Vm record.
        """
        instance = instance_plan.existing_instance
        planned = instance_plan.instance
        cpi = self.cloud_factory.get_name_for_az(planned.availability_zone.name)
        cloud = self.cloud_factory.get(cpi)

        agent_id = str(uuid.uuid4())
        network_settings = ip_provider.network_settings_for(instance_plan)
        env = self._vm_env(instance_plan, tags)
        existing_disks = list(disk_cids) if use_existing else []

        self._logger.info(
            "vm_creating",
            instance=instance.name,
            agent_id=agent_id,
            cpi=cpi,
            stemcell=planned.stemcell.desc,
            disk_cids=existing_disks,
        )
        cid = await cloud.create_vm(
            agent_id,
            planned.stemcell.cid,
            planned.cloud_properties,
            network_settings,
            existing_disks,
            env,
        )

        vm = await attach_vm(
            self.session,
            instance,
            cid=cid,
            agent_id=agent_id,
            cpi=cpi,
            env=env,
        )

        planned.spec["networks"] = network_settings
        raw_spec = copy.deepcopy(planned.raw_spec)
        raw_spec["networks"] = network_settings
        raw_spec["stemcell"] = planned.stemcell.spec()
        planned.raw_spec = raw_spec
        instance.spec = raw_spec
        instance.vm_env = env
        await self.session.commit()

        agent = self.agent_gateway.client_for(agent_id, instance.name)
        try:
            await agent.wait_until_ready(deadline=self.agent_wait_timeout)
        except RpcTimeout:
            self._logger.error("vm_agent_never_ready", instance=instance.name, vm_cid=cid)
            await self._vm_deleter.delete_for_instance(instance)
            raise

        self._logger.info("vm_created", instance=instance.name, vm_cid=cid, agent_id=agent_id)
        return vm
