"""VM recovery operations for cloudcheck problem resolutions.

Implements the corrective actions applied to an instance whose VM is in a
bad state: reboot it, delete it (refusing when persistent disks are
attached), forget it, delete it from the cloud, or recreate it from the
instance's persisted state.

Only agent timeouts and task cancellation are turned into
``ProblemHandlerError``; failures from the cloud, blob store, DNS or
variable interpolation propagate unchanged. Recovery is serialized per
instance but not transactional: a failure leaves the instance as the last
completed step left it.

Components:
    - RecoveryAction: Names of the available resolutions.
    - RecoveryResult: Outcome of a resolution run through ``resolve()``.
    - RecoveryOrchestrator: Runs the resolutions.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from fleetwarden.config import FleetwardenConfig
from fleetwarden.database.queries.instance import detach_active_vm, get_instance
from fleetwarden.deployment_plan.reconstructor import InstancePlanReconstructor
from fleetwarden.deployment_plan.update_config import UpdateConfig
from fleetwarden.errors import ProblemHandlerError, RpcTimeout, TaskCancelled, handler_error
from fleetwarden.instance_updater.instance_state import (
    InstanceUpdateSerializer,
    default_serializer,
    with_instance_update,
)
from fleetwarden.instance_updater.state_applier import StateApplier
from fleetwarden.logging import (
    bind_instance_context,
    correlation_scope,
    unbind_instance_context,
)
from fleetwarden.templates.cleaner import RenderedJobTemplatesCleaner
from fleetwarden.templates.persister import RenderedTemplatesPersister
from fleetwarden.vm.creator import ExistingIpProvider, VmCreator
from fleetwarden.vm.deleter import VmDeleter

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from sqlalchemy.ext.asyncio import AsyncSession

    from fleetwarden.agent.client import AgentClient, AgentClientGateway
    from fleetwarden.cloud.factory import CloudFactory
    from fleetwarden.database.models.instance import Instance
    from fleetwarden.deployment_plan.variables import VariablesInterpolator
    from fleetwarden.dns.propagator import DnsPropagator
    from fleetwarden.templates.blobstore import BlobStore, TemplateRenderer
    from fleetwarden.vm.creator import IpProvider

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RecoveryAction(str, Enum):
    """Resolutions available for a VM problem.

    Values:
        REBOOT_VM: Reboot the VM and wait for its agent.
        DELETE_VM: Delete the VM unless persistent disks are attached.
        DELETE_VM_REFERENCE: Forget the VM without contacting the cloud.
        DELETE_VM_FROM_CLOUD: Delete the VM after validating instance metadata.
        RECREATE_VM: Recreate the VM and wait until its jobs run.
        RECREATE_VM_WITHOUT_WAIT: Recreate the VM without waiting for its jobs.
    """

    REBOOT_VM = "reboot_vm"
    DELETE_VM = "delete_vm"
    DELETE_VM_REFERENCE = "delete_vm_reference"
    DELETE_VM_FROM_CLOUD = "delete_vm_from_cloud"
    RECREATE_VM = "recreate_vm"
    RECREATE_VM_WITHOUT_WAIT = "recreate_vm_without_wait"


class RecoveryOutcome(str, Enum):
    """Outcome of a resolution.

    Values:
        OK: The resolution completed.
        PROBLEM: The resolution did not succeed for a known reason.
    """

    OK = "ok"
    PROBLEM = "problem"


# ---------------------------------------------------------------------------
# Pydantic Models
# ---------------------------------------------------------------------------


class RecoveryResult(BaseModel):
    """Result of running a resolution through ``RecoveryOrchestrator.resolve``.

    Attributes:
        action: The resolution that ran.
        instance: Name of the instance it ran against.
        outcome: Whether the resolution succeeded.
        reason: Why the resolution did not succeed, for PROBLEM outcomes.
        duration_seconds: Wall-clock duration of the resolution.
        correlation_id: Correlation ID carried by the resolution's log entries.
    """

    action: RecoveryAction
    instance: str
    outcome: RecoveryOutcome
    reason: str | None = Field(default=None)
    duration_seconds: float = Field(default=0.0)
    correlation_id: str | None = Field(default=None)

    @property
    def ok(self) -> bool:
        return self.outcome == RecoveryOutcome.OK


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class RecoveryOrchestrator:
    """Applies VM recovery operations to instance records.

    One orchestrator serves one unit of work (database session). Its
    collaborators are fixed at construction; the agent gateway's client
    cache is shared by every operation run through it. Unless a serializer
    is injected, every orchestrator in the process shares
    ``default_serializer()``, so operations on one instance never overlap
    even when they run through different orchestrators.

    Attributes:
        session: Database session holding the instance records.
        cloud_factory: Resolver for cloud backends.
        agent_gateway: Source of cached agent clients.
        dns_propagator: Publishes DNS records of recreated instances.
        config: Fleetwarden configuration.
        serializer: Per-instance update serializer held by every operation.
    """

    def __init__(
        self,
        session: AsyncSession,
        cloud_factory: CloudFactory,
        agent_gateway: AgentClientGateway,
        dns_propagator: DnsPropagator,
        blobstore: BlobStore,
        template_renderer: TemplateRenderer,
        variables_interpolator: VariablesInterpolator,
        ip_provider: IpProvider | None = None,
        serializer: InstanceUpdateSerializer | None = None,
        config: FleetwardenConfig | None = None,
    ) -> None:
        self.session = session
        self.cloud_factory = cloud_factory
        self.agent_gateway = agent_gateway
        self.dns_propagator = dns_propagator
        self.config = config or FleetwardenConfig()
        self.serializer = serializer or default_serializer()
        self.ip_provider = ip_provider or ExistingIpProvider()
        self._blobstore = blobstore
        self._template_renderer = template_renderer

        self._vm_deleter = VmDeleter(
            session,
            cloud_factory,
            enable_virtual_delete_vms=self.config.director.enable_virtual_delete_vms,
        )
        self._vm_creator = VmCreator(
            session,
            cloud_factory,
            agent_gateway,
            self._vm_deleter,
            agent_wait_timeout=self.config.director.agent_wait_timeout_seconds,
        )
        self._reconstructor = InstancePlanReconstructor(
            session,
            cloud_factory,
            variables_interpolator,
        )
        self._logger = logger.bind(component="RecoveryOrchestrator")

    # -- agent helpers -------------------------------------------------------

    def agent_client(
        self,
        agent_id: str,
        instance_name: str,
        timeout: float | None = None,
        retries: int | None = None,
    ) -> AgentClient:
        """Return the cached agent client; defaults come from the agent config."""
        return self.agent_gateway.client_for(agent_id, instance_name, timeout, retries)

    async def _agent_timeout_guard(
        self,
        instance: Instance,
        call: Callable[[AgentClient], Awaitable[Any]],
    ) -> Any:
        agent = self.agent_client(instance.agent_id, instance.name)
        try:
            return await call(agent)
        except RpcTimeout:
            handler_error(f"VM '{instance.vm_cid}' is not responding")

    @staticmethod
    def _require_vm(instance: Instance) -> None:
        if instance.active_vm is None:
            handler_error(f"Instance '{instance.name}' has no VM")

    # -- operations ----------------------------------------------------------
    #
    # Each public operation holds the instance's update lease for its whole
    # run. The lease is not re-entrant: code already holding it calls the
    # underscored bodies.

    async def reboot_vm(self, instance: Instance) -> None:
        """Reboot the instance's VM and wait for its agent to come back.

        Raises:
            ProblemHandlerError: If the agent is still unresponsive or the
                task is cancelled while waiting.
        """
        async with self.serializer.lease(str(instance.id)):
            await self._reboot_vm(instance)

    async def delete_vm(self, instance: Instance) -> None:
        """Delete the instance's VM unless it has persistent disks attached.

        Raises:
            ProblemHandlerError: If the agent does not answer or reports
                attached disks.
        """
        async with self.serializer.lease(str(instance.id)):
            await self._delete_vm(instance)

    async def delete_vm_reference(self, instance: Instance) -> None:
        """Forget the instance's VM without contacting the cloud."""
        async with self.serializer.lease(str(instance.id)):
            await detach_active_vm(self.session, instance)

    async def delete_vm_from_cloud(self, instance: Instance) -> None:
        """Delete the instance's VM after checking its metadata is intact.

        Raises:
            ProblemHandlerError: If the apply-spec or VM environment is
                missing or malformed.
        """
        async with self.serializer.lease(str(instance.id)):
            await self._delete_vm_from_cloud(instance)

    async def recreate_vm_without_wait(self, instance: Instance) -> None:
        await self.recreate_vm(instance, wait_for_running=False)

    async def recreate_vm(self, instance: Instance, wait_for_running: bool = True) -> None:
        """Replace the instance's VM with a new one built from its records.

        The old VM is deleted before the new one is created. The new VM
        gets the instance's existing persistent disks, DNS records for
        every network, freshly persisted templates, and is then converged
        through its agent. Everything runs under the instance's update
        lease.

        Args:
            instance: Instance to recreate.
            wait_for_running: Block until the instance's jobs are running.

        Raises:
            ProblemHandlerError: If the instance metadata is malformed or
                the task is cancelled while waiting on an agent. Steps
                already completed are not undone.
        """
        self._logger.debug("vm_recreating", instance=repr(instance))

        async with with_instance_update(self.session, self.serializer, instance):
            try:
                await self._recreate(instance, wait_for_running)
            except TaskCancelled:
                handler_error("Task was cancelled")

        self._logger.info("vm_recreated", instance=instance.name, vm_cid=instance.vm_cid)

    async def _reboot_vm(self, instance: Instance) -> None:
        self._require_vm(instance)
        vm = instance.active_vm

        cloud = self.cloud_factory.get(vm.cpi)
        self._logger.info("vm_rebooting", instance=instance.name, vm_cid=vm.cid)
        await cloud.reboot_vm(vm.cid)

        try:
            await self.agent_client(vm.agent_id, instance.name).wait_until_ready()
        except RpcTimeout:
            handler_error("Agent still unresponsive after reboot")
        except TaskCancelled:
            handler_error("Task was cancelled")

    async def _delete_vm(self, instance: Instance) -> None:
        self._require_vm(instance)
        disk_list = await self._agent_timeout_guard(instance, lambda agent: agent.list_disk())

        if disk_list:
            self._logger.warning(
                "vm_delete_refused",
                instance=instance.name,
                vm_cid=instance.vm_cid,
                disks=disk_list,
            )
            handler_error("VM has persistent disk attached")

        await self._vm_deleter.delete_for_instance(instance)

    async def _delete_vm_from_cloud(self, instance: Instance) -> None:
        self._logger.debug("vm_deleting_from_cloud", instance=repr(instance))

        self._validate_spec(instance.spec)
        self._validate_env(instance.vm_env)

        await self._vm_deleter.delete_for_instance(instance)

    async def _recreate(self, instance: Instance, wait_for_running: bool) -> None:
        await self._delete_vm_from_cloud(instance)

        instance_plan = await self._reconstructor.reconstruct(instance)
        disk_cid = instance.managed_persistent_disk_cid
        await self._vm_creator.create_for_instance_plan(
            instance_plan,
            self.ip_provider,
            [disk_cid] if disk_cid else [],
            instance_plan.tags,
            use_existing=True,
        )

        apply_spec = instance_plan.existing_instance.spec
        await self.dns_propagator.propagate(instance, apply_spec)

        cleaner = RenderedJobTemplatesCleaner(instance, self._blobstore, self.session)
        persister = RenderedTemplatesPersister(
            self.session, self._blobstore, self._template_renderer
        )
        await persister.persist(instance_plan)

        # Instances deployed before update policies were recorded have none
        update_config = UpdateConfig.from_apply_spec(apply_spec)

        state_applier = StateApplier(
            instance_plan,
            self.agent_client(instance.agent_id, instance.name),
            cleaner,
            self.session,
            default_watch_time=self.config.director.default_watch_time_ms,
        )
        await state_applier.apply(update_config, wait_for_running)

    # -- result-returning entry points ---------------------------------------

    def _handler_for(self, action: RecoveryAction) -> Callable[[Instance], Awaitable[None]]:
        return {
            RecoveryAction.REBOOT_VM: self.reboot_vm,
            RecoveryAction.DELETE_VM: self.delete_vm,
            RecoveryAction.DELETE_VM_REFERENCE: self.delete_vm_reference,
            RecoveryAction.DELETE_VM_FROM_CLOUD: self.delete_vm_from_cloud,
            RecoveryAction.RECREATE_VM: self.recreate_vm,
            RecoveryAction.RECREATE_VM_WITHOUT_WAIT: self.recreate_vm_without_wait,
        }[action]

    async def resolve(
        self,
        action: RecoveryAction,
        instance: Instance,
        correlation_id: str | None = None,
    ) -> RecoveryResult:
        """Run a resolution and report its outcome.

        Log entries written during the resolution carry the deployment and
        instance names and a correlation ID (``correlation_id`` if given,
        else the one already in effect, else a new one). Problem errors
        become a PROBLEM result; every other exception propagates.
        """
        handler = self._handler_for(action)

        with correlation_scope(correlation_id) as scoped_id:
            bind_instance_context(
                deployment=instance.deployment.name,
                instance=instance.name,
            )
            started = time.monotonic()
            try:
                await handler(instance)
            except ProblemHandlerError as e:
                self._logger.warning(
                    "recovery_problem",
                    action=action.value,
                    instance=instance.name,
                    reason=str(e),
                )
                return RecoveryResult(
                    action=action,
                    instance=instance.name,
                    outcome=RecoveryOutcome.PROBLEM,
                    reason=str(e),
                    duration_seconds=time.monotonic() - started,
                    correlation_id=scoped_id,
                )
            finally:
                unbind_instance_context()

            self._logger.info("recovery_completed", action=action.value, instance=instance.name)
            return RecoveryResult(
                action=action,
                instance=instance.name,
                outcome=RecoveryOutcome.OK,
                duration_seconds=time.monotonic() - started,
                correlation_id=scoped_id,
            )

    async def resolve_by_id(
        self,
        action: RecoveryAction,
        instance_id: UUID,
        correlation_id: str | None = None,
    ) -> RecoveryResult:
        """Load an instance by ID and run a resolution against it.

        Raises:
            ValueError: If the instance does not exist.
        """
        instance = await get_instance(self.session, instance_id)
        if instance is None:
            raise ValueError(f"Instance {instance_id} not found")
        return await self.resolve(action, instance, correlation_id)

    # -- validation ----------------------------------------------------------

    @staticmethod
    def _validate_spec(spec: Any) -> None:
        if spec is None:
            handler_error("Unable to look up VM apply spec")
        if not isinstance(spec, dict):
            handler_error("Invalid apply spec format")

    @staticmethod
    def _validate_env(env: Any) -> None:
        if not isinstance(env, dict):
            handler_error("Invalid VM environment format")
