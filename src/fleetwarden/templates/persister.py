"""Persist rendered job templates to the blob store.

Templates are packed into a gzipped tarball with fixed metadata, so the
same rendered content always yields the same archive. When the newest
recorded archive already holds identical content and its blob still
exists, nothing is uploaded.
"""

from __future__ import annotations

import gzip
import hashlib
import io
import tarfile
from typing import TYPE_CHECKING

import structlog

from fleetwarden.database.queries.templates import (
    create_templates_archive,
    get_latest_templates_archive,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from fleetwarden.database.models.rendered_templates import RenderedTemplatesArchive
    from fleetwarden.deployment_plan.instance_plan import InstancePlan
    from fleetwarden.templates.blobstore import BlobStore, TemplateRenderer

logger = structlog.get_logger(__name__)


def _as_bytes(content: str | bytes) -> bytes:
    return content.encode("utf-8") if isinstance(content, str) else content


def content_sha1(files: dict[str, str | bytes]) -> str:
    """SHA-1 over the paths and contents of rendered files."""
    digest = hashlib.sha1()
    for path in sorted(files):
        digest.update(path.encode("utf-8"))
        digest.update(b"\0")
        digest.update(_as_bytes(files[path]))
        digest.update(b"\0")
    return digest.hexdigest()


def build_archive(files: dict[str, str | bytes]) -> bytes:
    """Pack rendered files into a reproducible ``.tgz``."""
    raw = io.BytesIO()
    with tarfile.open(fileobj=raw, mode="w", format=tarfile.PAX_FORMAT) as tar:
        for path in sorted(files):
            data = _as_bytes(files[path])
            info = tarfile.TarInfo(name=path)
            info.size = len(data)
            info.mode = 0o644
            info.mtime = 0
            tar.addfile(info, io.BytesIO(data))
    return gzip.compress(raw.getvalue(), mtime=0)


class RenderedTemplatesPersister:
    """Uploads an instance plan's rendered templates and records the archive.

    Attributes:
        session: Database session recording archives.
    """

    def __init__(
        self,
        session: AsyncSession,
        blobstore: BlobStore,
        renderer: TemplateRenderer,
    ) -> None:
        self.session = session
        self._blobstore = blobstore
        self._renderer = renderer
        self._logger = logger.bind(component="RenderedTemplatesPersister")

    async def persist(self, instance_plan: InstancePlan) -> RenderedTemplatesArchive:
        """Persist the plan's templates and point its spec at the archive.

        Returns:
            The archive now current for the instance.
        """
        instance = instance_plan.existing_instance
        files = self._renderer.render(instance_plan)
        checksum = content_sha1(files)

        archive = await get_latest_templates_archive(self.session, instance.id)
        if (
            archive is not None
            and archive.content_sha1 == checksum
            and await self._blobstore.exists(archive.blobstore_id)
        ):
            self._logger.debug(
                "templates_archive_reused",
                instance=instance.name,
                blobstore_id=archive.blobstore_id,
            )
        else:
            contents = build_archive(files)
            blobstore_id = await self._blobstore.create(contents)
            archive = await create_templates_archive(
                self.session,
                instance.id,
                blobstore_id=blobstore_id,
                sha1=hashlib.sha1(contents).hexdigest(),
                content_sha1=checksum,
            )
            self._logger.info(
                "templates_archive_persisted",
                instance=instance.name,
                blobstore_id=blobstore_id,
                file_count=len(files),
            )

        instance_plan.instance.spec["rendered_templates_archive"] = {
            "blobstore_id": archive.blobstore_id,
            "sha1": archive.sha1,
        }
        return archive
