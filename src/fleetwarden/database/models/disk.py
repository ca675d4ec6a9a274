"""Persistent disk model for Fleetwarden."""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import JSON, Boolean, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from fleetwarden.database.models.base import Base, TimestampMixin


class PersistentDisk(TimestampMixin, Base):
    """A persistent disk owned by an instance.

    Attributes:
        instance_id: Foreign key to the owning instance.
        disk_cid: Cloud identifier of the disk.
        name: Empty for the director-managed disk, otherwise the name of a
            user-defined disk.
        size: Disk size in MiB.
        active: Whether the disk is the one currently in use.
        cloud_properties: Cloud properties the disk was created with.
    """

    __tablename__ = "persistent_disks"

    instance_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("instances.id", ondelete="CASCADE"),
        nullable=False,
    )
    disk_cid: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    cloud_properties: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
