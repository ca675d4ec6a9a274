"""Integration tests for rendered template persistence and plan reconstruction."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from fleetwarden.cloud.factory import CloudFactory
from fleetwarden.database.models import Instance, Stemcell
from fleetwarden.database.queries.templates import (
    create_templates_archive,
    get_latest_templates_archive,
)
from fleetwarden.deployment_plan.reconstructor import InstancePlanReconstructor
from fleetwarden.deployment_plan.variables import MappingVariablesInterpolator
from fleetwarden.errors import StemcellNotFound, VariableNotFound
from fleetwarden.templates.cleaner import RenderedJobTemplatesCleaner
from fleetwarden.templates.persister import RenderedTemplatesPersister
from tests.integration.fakes import (
    FakeBlobStore,
    FakeCloud,
    FakeRenderer,
    create_instance,
    default_spec,
)


@pytest.fixture
def reconstructor(db_session: AsyncSession, cloud_factory: CloudFactory) -> InstancePlanReconstructor:
    return InstancePlanReconstructor(
        db_session,
        cloud_factory,
        MappingVariablesInterpolator({"worker_password": "s3cret"}),
    )


# ---------------------------------------------------------------------------
# InstancePlanReconstructor
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_reconstruct_builds_recreate_plan(
    reconstructor: InstancePlanReconstructor,
    db_session: AsyncSession,
    stemcell: Stemcell,
) -> None:
    target = await create_instance(db_session, tags={"team": "infra"})

    plan = await reconstructor.reconstruct(target)

    assert plan.recreate is True
    assert plan.existing_instance is target
    assert plan.tags == {"team": "infra"}
    assert plan.instance.model is target
    assert plan.instance.name == "worker/u1"
    assert plan.instance.stemcell.cid == "stemcell-cid-1"
    assert plan.instance.availability_zone.name == "z1"
    assert plan.instance.availability_zone.cpi is None
    assert plan.instance.availability_zone.cloud_properties == {"instance_type": "m1.small"}
    assert plan.instance.spec["properties"]["password"] == "s3cret"
    assert plan.instance.raw_spec["properties"]["password"] == "((worker_password))"
    assert plan.network_settings == default_spec()["networks"]


@pytest.mark.asyncio
async def test_reconstruct_missing_stemcell(
    reconstructor: InstancePlanReconstructor,
    db_session: AsyncSession,
) -> None:
    target = await create_instance(db_session)

    with pytest.raises(StemcellNotFound, match="ubuntu-jammy/1.200"):
        await reconstructor.reconstruct(target)


@pytest.mark.asyncio
async def test_reconstruct_missing_variable(
    db_session: AsyncSession,
    cloud_factory: CloudFactory,
    instance: Instance,
) -> None:
    reconstructor = InstancePlanReconstructor(db_session, cloud_factory, MappingVariablesInterpolator())

    with pytest.raises(VariableNotFound):
        await reconstructor.reconstruct(instance)


@pytest.mark.asyncio
async def test_reconstruct_resolves_stemcell_per_zone_cpi(
    db_session: AsyncSession,
    stemcell: Stemcell,
) -> None:
    db_session.add(Stemcell(name="ubuntu-jammy", version="1.200", cid="ami-123", cpi="aws"))
    await db_session.commit()
    factory = CloudFactory(
        {"aws": FakeCloud(), "vsphere": FakeCloud()},
        default_cpi="vsphere",
        az_cpis={"z1": "aws"},
    )
    target = await create_instance(db_session)

    plan = await InstancePlanReconstructor(
        db_session, factory, MappingVariablesInterpolator({"worker_password": "x"})
    ).reconstruct(target)

    assert plan.instance.stemcell.cid == "ami-123"
    assert plan.instance.stemcell.cpi == "aws"


# ---------------------------------------------------------------------------
# Persister and cleaner
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_persist_uploads_and_records_archive(
    reconstructor: InstancePlanReconstructor,
    db_session: AsyncSession,
    instance: Instance,
    blobstore: FakeBlobStore,
) -> None:
    plan = await reconstructor.reconstruct(instance)

    archive = await RenderedTemplatesPersister(db_session, blobstore, FakeRenderer()).persist(plan)

    assert list(blobstore.blobs) == [archive.blobstore_id]
    assert plan.instance.spec["rendered_templates_archive"] == {
        "blobstore_id": archive.blobstore_id,
        "sha1": archive.sha1,
    }
    assert await get_latest_templates_archive(db_session, instance.id) is archive


@pytest.mark.asyncio
async def test_persist_reuses_identical_archive(
    reconstructor: InstancePlanReconstructor,
    db_session: AsyncSession,
    instance: Instance,
    blobstore: FakeBlobStore,
) -> None:
    persister = RenderedTemplatesPersister(db_session, blobstore, FakeRenderer())
    first = await persister.persist(await reconstructor.reconstruct(instance))

    second = await persister.persist(await reconstructor.reconstruct(instance))

    assert second is first
    assert len(blobstore.blobs) == 1


@pytest.mark.asyncio
async def test_persist_reuploads_when_blob_is_gone(
    reconstructor: InstancePlanReconstructor,
    db_session: AsyncSession,
    instance: Instance,
    blobstore: FakeBlobStore,
) -> None:
    persister = RenderedTemplatesPersister(db_session, blobstore, FakeRenderer())
    first = await persister.persist(await reconstructor.reconstruct(instance))
    del blobstore.blobs[first.blobstore_id]

    second = await persister.persist(await reconstructor.reconstruct(instance))

    assert second.blobstore_id != first.blobstore_id
    assert second.blobstore_id in blobstore.blobs


@pytest.mark.asyncio
async def test_cleaner_keeps_only_latest_archive(
    db_session: AsyncSession,
    instance: Instance,
    blobstore: FakeBlobStore,
) -> None:
    for blob_id in ("blob-a", "blob-b", "blob-c"):
        blobstore.blobs[blob_id] = b"tgz"
        await create_templates_archive(
            db_session, instance.id, blobstore_id=blob_id, sha1="0" * 40, content_sha1=blob_id
        )

    removed = await RenderedJobTemplatesCleaner(instance, blobstore, db_session).clean()

    assert removed == 2
    assert sorted(blobstore.deleted) == ["blob-a", "blob-b"]
    latest = await get_latest_templates_archive(db_session, instance.id)
    assert latest is not None
    assert latest.blobstore_id == "blob-c"


@pytest.mark.asyncio
async def test_cleaner_without_archives(
    db_session: AsyncSession,
    instance: Instance,
    blobstore: FakeBlobStore,
) -> None:
    assert await RenderedJobTemplatesCleaner(instance, blobstore, db_session).clean() == 0
    assert blobstore.deleted == []
