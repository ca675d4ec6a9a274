"""Process-level entry point for running recovery resolutions.

A task runner builds one ``RecoveryService`` at startup and calls
``resolve()`` for each cloudcheck resolution it picks up. Every call gets
its own database session, orchestrator and agent client cache. The update
serializer, engine and backends are shared, so resolutions running in
parallel still serialize per instance.

Example:
    >>> service = RecoveryService.from_config(
    ...     load_config(),
    ...     cloud_factory=cloud_factory,
    ...     agent_transport=transport,
    ...     local_dns=local_dns,
    ...     authoritative_dns=powerdns,
    ...     blobstore=blobstore,
    ...     template_renderer=renderer,
    ...     variables_interpolator=interpolator,
    ... )
    >>> async with service:
    ...     result = await service.resolve(RecoveryAction.RECREATE_VM, instance_id)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from fleetwarden.agent.client import AgentClientGateway
from fleetwarden.config import FleetwardenConfig
from fleetwarden.database.connection import get_engine, get_session_factory
from fleetwarden.dns.propagator import DnsPropagator
from fleetwarden.instance_updater.instance_state import (
    InstanceUpdateSerializer,
    default_serializer,
)
from fleetwarden.logging import setup_logging
from fleetwarden.orchestrator.recovery import (
    RecoveryAction,
    RecoveryOrchestrator,
    RecoveryResult,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from fleetwarden.agent.transport import AgentTransport
    from fleetwarden.cloud.factory import CloudFactory
    from fleetwarden.deployment_plan.variables import VariablesInterpolator
    from fleetwarden.dns.propagator import AuthoritativeDnsBackend, DnsRecordBackend
    from fleetwarden.templates.blobstore import BlobStore, TemplateRenderer
    from fleetwarden.vm.creator import IpProvider

logger = structlog.get_logger(__name__)


class RecoveryService:
    """Shared resources for running resolutions.

    Attributes:
        config: Fleetwarden configuration.
        engine: Async SQLAlchemy engine.
        session_factory: Factory for per-resolution sessions.
        dns_propagator: DNS propagator rooted at ``config.dns.root_domain``.
        serializer: Update serializer shared by every resolution.
    """

    def __init__(
        self,
        config: FleetwardenConfig,
        *,
        cloud_factory: CloudFactory,
        agent_transport: AgentTransport,
        local_dns: DnsRecordBackend,
        authoritative_dns: AuthoritativeDnsBackend,
        blobstore: BlobStore,
        template_renderer: TemplateRenderer,
        variables_interpolator: VariablesInterpolator,
        ip_provider: IpProvider | None = None,
        cancel_check: Callable[[], bool] | None = None,
        serializer: InstanceUpdateSerializer | None = None,
    ) -> None:
        self.config = config
        self.engine = get_engine(config.database)
        self.session_factory = get_session_factory(self.engine)
        self.dns_propagator = DnsPropagator.from_config(local_dns, authoritative_dns, config.dns)
        self.serializer = serializer or default_serializer()
        self._cloud_factory = cloud_factory
        self._agent_transport = agent_transport
        self._blobstore = blobstore
        self._template_renderer = template_renderer
        self._variables_interpolator = variables_interpolator
        self._ip_provider = ip_provider
        self._cancel_check = cancel_check
        self._logger = logger.bind(component="RecoveryService")

    @classmethod
    def from_config(cls, config: FleetwardenConfig, **collaborators: Any) -> RecoveryService:
        """Configure logging from ``config`` and build the service."""
        setup_logging(config.logging)
        return cls(config, **collaborators)

    def orchestrator(self, session: AsyncSession) -> RecoveryOrchestrator:
        """Build an orchestrator for one unit of work on ``session``."""
        return RecoveryOrchestrator(
            session,
            self._cloud_factory,
            AgentClientGateway(
                self._agent_transport,
                self.config.agent,
                cancel_check=self._cancel_check,
            ),
            self.dns_propagator,
            self._blobstore,
            self._template_renderer,
            self._variables_interpolator,
            ip_provider=self._ip_provider,
            serializer=self.serializer,
            config=self.config,
        )

    async def resolve(
        self,
        action: RecoveryAction,
        instance_id: UUID,
        correlation_id: str | None = None,
    ) -> RecoveryResult:
        """Run one resolution in a fresh session.

        Raises:
            ValueError: If the instance does not exist.
        """
        async with self.session_factory() as session:
            result = await self.orchestrator(session).resolve_by_id(
                action, instance_id, correlation_id
            )

        self._logger.info(
            "resolution_finished",
            action=action.value,
            instance=result.instance,
            outcome=result.outcome.value,
            correlation_id=result.correlation_id,
        )
        return result

    async def close(self) -> None:
        await self.engine.dispose()

    async def __aenter__(self) -> RecoveryService:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
