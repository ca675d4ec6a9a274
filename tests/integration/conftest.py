"""Pytest fixtures for integration tests.

Provides an in-memory SQLite database (via aiosqlite) with the Fleetwarden
schema, the fake collaborators from ``fakes.py`` (cloud backend, agent
transport, DNS backends, blob store) and a fully wired RecoveryOrchestrator.
"""

from __future__ import annotations

import uuid
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from fleetwarden.agent.client import AgentClientGateway
from fleetwarden.cloud.factory import CloudFactory
from fleetwarden.config import AgentConfig, DirectorConfig, DnsConfig, FleetwardenConfig
from fleetwarden.database.models import Base, Instance, Stemcell
from fleetwarden.deployment_plan.variables import MappingVariablesInterpolator
from fleetwarden.dns.propagator import DnsPropagator
from fleetwarden.instance_updater.instance_state import InstanceUpdateSerializer
from fleetwarden.orchestrator.recovery import RecoveryOrchestrator
from tests.integration.fakes import (
    FakeAgentTransport,
    FakeBlobStore,
    FakeCloud,
    FakeDnsBackend,
    FakeRenderer,
    create_instance,
)

# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory SQLite async engine with the schema."""
    test_engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a session whose objects stay readable after commits."""
    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest_asyncio.fixture
async def stemcell(db_session: AsyncSession) -> Stemcell:
    model = Stemcell(
        id=uuid.uuid4(),
        name="ubuntu-jammy",
        version="1.200",
        cid="stemcell-cid-1",
        cpi="",
    )
    db_session.add(model)
    await db_session.commit()
    return model


@pytest_asyncio.fixture
async def instance(db_session: AsyncSession, stemcell: Stemcell) -> Instance:
    """Instance ``worker/0`` (uuid ``u1``) of deployment ``d1`` on VM ``vm-1``."""
    return await create_instance(db_session)


# ---------------------------------------------------------------------------
# Collaborator fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cloud() -> FakeCloud:
    backend = FakeCloud()
    backend.vms["vm-1"] = {"agent_id": "agent-vm-1"}
    backend.vms["vm-2"] = {"agent_id": "agent-vm-2"}
    return backend


@pytest.fixture
def cloud_factory(cloud: FakeCloud) -> CloudFactory:
    return CloudFactory({"default": cloud})


@pytest.fixture
def agent_transport() -> FakeAgentTransport:
    return FakeAgentTransport()


@pytest.fixture
def config() -> FleetwardenConfig:
    """Configuration with timeouts short enough for tests."""
    return FleetwardenConfig(
        agent=AgentConfig(
            timeout_seconds=0.05,
            ping_timeout_seconds=0.01,
            ping_interval_seconds=0,
        ),
        dns=DnsConfig(root_domain="bosh"),
        director=DirectorConfig(default_watch_time_ms="0-0", agent_wait_timeout_seconds=0.05),
    )


@pytest.fixture
def cancelled() -> dict[str, bool]:
    """Mutable flag read by the agent gateway's cancellation check."""
    return {"value": False}


@pytest.fixture
def agent_gateway(
    agent_transport: FakeAgentTransport,
    config: FleetwardenConfig,
    cancelled: dict[str, bool],
) -> AgentClientGateway:
    return AgentClientGateway(agent_transport, config.agent, cancel_check=lambda: cancelled["value"])


@pytest.fixture
def local_dns() -> FakeDnsBackend:
    return FakeDnsBackend()


@pytest.fixture
def authoritative_dns() -> FakeDnsBackend:
    return FakeDnsBackend()


@pytest.fixture
def dns_propagator(
    local_dns: FakeDnsBackend,
    authoritative_dns: FakeDnsBackend,
    config: FleetwardenConfig,
) -> DnsPropagator:
    return DnsPropagator.from_config(local_dns, authoritative_dns, config.dns)


@pytest.fixture
def blobstore() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def serializer() -> InstanceUpdateSerializer:
    return InstanceUpdateSerializer()


@pytest.fixture
def orchestrator(
    db_session: AsyncSession,
    cloud_factory: CloudFactory,
    agent_gateway: AgentClientGateway,
    dns_propagator: DnsPropagator,
    blobstore: FakeBlobStore,
    serializer: InstanceUpdateSerializer,
    config: FleetwardenConfig,
) -> RecoveryOrchestrator:
    return RecoveryOrchestrator(
        db_session,
        cloud_factory,
        agent_gateway,
        dns_propagator,
        blobstore,
        FakeRenderer(),
        MappingVariablesInterpolator({"worker_password": "s3cret"}),
        serializer=serializer,
        config=config,
    )
