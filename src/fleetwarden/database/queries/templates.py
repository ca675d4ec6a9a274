"""Rendered templates archive query functions for Fleetwarden."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetwarden.database.models.rendered_templates import RenderedTemplatesArchive

logger = structlog.get_logger(__name__)


async def create_templates_archive(
    session: AsyncSession,
    instance_id: UUID,
    blobstore_id: str,
    sha1: str,
    content_sha1: str,
) -> RenderedTemplatesArchive:
    """Record a rendered templates archive uploaded for an instance.

    Args:
        session: Active async database session.
        instance_id: UUID of the owning instance.
        blobstore_id: Blob identifier of the uploaded archive.
        sha1: SHA-1 of the archive bytes.
        content_sha1: SHA-1 over the rendered file contents.

    Returns:
        The newly created RenderedTemplatesArchive.
    """
    archive = RenderedTemplatesArchive(
        instance_id=instance_id,
        blobstore_id=blobstore_id,
        sha1=sha1,
        content_sha1=content_sha1,
        # Client-side timestamp keeps archives created within one second ordered
        created_at=datetime.now(timezone.utc),
    )
    session.add(archive)
    await session.commit()

    logger.info(
        "templates_archive_created",
        instance_id=str(instance_id),
        blobstore_id=blobstore_id,
    )
    return archive


async def get_latest_templates_archive(
    session: AsyncSession,
    instance_id: UUID,
) -> RenderedTemplatesArchive | None:
    """Return the newest archive of an instance, or None."""
    stmt = (
        select(RenderedTemplatesArchive)
        .where(RenderedTemplatesArchive.instance_id == instance_id)
        .order_by(
            RenderedTemplatesArchive.created_at.desc(),
            RenderedTemplatesArchive.id.desc(),
        )
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_stale_templates_archives(
    session: AsyncSession,
    instance_id: UUID,
    keep_id: UUID,
) -> list[RenderedTemplatesArchive]:
    """List every archive of an instance except the one to keep."""
    stmt = select(RenderedTemplatesArchive).where(
        RenderedTemplatesArchive.instance_id == instance_id,
        RenderedTemplatesArchive.id != keep_id,
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def delete_templates_archive(
    session: AsyncSession,
    archive: RenderedTemplatesArchive,
) -> None:
    """Delete an archive record."""
    await session.delete(archive)
    await session.commit()
