"""Remove rendered templates archives an instance no longer uses."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from fleetwarden.database.queries.templates import (
    delete_templates_archive,
    get_latest_templates_archive,
    list_stale_templates_archives,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from fleetwarden.database.models.instance import Instance
    from fleetwarden.templates.blobstore import BlobStore

logger = structlog.get_logger(__name__)


class RenderedJobTemplatesCleaner:
    """Deletes every archive of an instance except the newest one.

    Only run once the newest archive is known to be persisted, so the
    instance always keeps one valid template set.
    """

    def __init__(self, instance: Instance, blobstore: BlobStore, session: AsyncSession) -> None:
        self.instance = instance
        self.session = session
        self._blobstore = blobstore
        self._logger = logger.bind(component="RenderedJobTemplatesCleaner")

    async def clean(self) -> int:
        """Delete stale archives and their blobs.

        Returns:
            Number of archives removed.
        """
        latest = await get_latest_templates_archive(self.session, self.instance.id)
        if latest is None:
            return 0

        stale = await list_stale_templates_archives(self.session, self.instance.id, latest.id)
        for archive in stale:
            await self._blobstore.delete(archive.blobstore_id)
            await delete_templates_archive(self.session, archive)

        if stale:
            self._logger.info(
                "stale_templates_removed",
                instance=self.instance.name,
                removed=len(stale),
            )
        return len(stale)
