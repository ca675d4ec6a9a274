"""Rendered templates archive model for Fleetwarden.

Each row points at one blob holding the rendered job templates of an
instance. The newest row is the instance's current template set; older
rows are stale and removed by the templates cleaner.
"""

from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from fleetwarden.database.models.base import Base, TimestampMixin


class RenderedTemplatesArchive(TimestampMixin, Base):
    """A rendered templates archive stored in the blob store.

    Attributes:
        instance_id: Foreign key to the owning instance.
        blobstore_id: Identifier of the archive blob.
        sha1: SHA-1 of the archive bytes.
        content_sha1: SHA-1 over the rendered file contents, independent of
            archive metadata.
    """

    __tablename__ = "rendered_templates_archives"

    instance_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("instances.id", ondelete="CASCADE"),
        nullable=False,
    )
    blobstore_id: Mapped[str] = mapped_column(Text, nullable=False)
    sha1: Mapped[str] = mapped_column(Text, nullable=False)
    content_sha1: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        Index("ix_rendered_templates_archives_instance_id", "instance_id"),
    )
