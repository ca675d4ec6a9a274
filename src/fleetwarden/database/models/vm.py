"""VM model for Fleetwarden.

A Vm row is the management-side handle for one cloud VM. It is attached
to its instance as the instance's ``active_vm``; dropping that reference
and deleting the cloud VM are separate operations.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from fleetwarden.database.models.base import Base, TimestampMixin


class Vm(TimestampMixin, Base):
    """Cloud VM attached to an instance.

    Attributes:
        id: UUID primary key (from TimestampMixin).
        instance_id: Foreign key to the owning instance.
        cid: Cloud identifier returned by the backend on creation.
        cpi: Name of the cloud backend that created the VM (None means the
            default backend).
        agent_id: Identifier the in-VM agent answers to.
        env: Environment the VM was created with.
    """

    __tablename__ = "vms"

    instance_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("instances.id", ondelete="CASCADE"),
        nullable=False,
    )
    cid: Mapped[str | None] = mapped_column(Text, nullable=True)
    cpi: Mapped[str | None] = mapped_column(Text, nullable=True)
    agent_id: Mapped[str] = mapped_column(Text, nullable=False)
    env: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    __table_args__ = (
        Index("ix_vms_instance_id", "instance_id"),
        Index("ix_vms_agent_id", "agent_id", unique=True),
    )

    def __repr__(self) -> str:
        return f"<Vm cid={self.cid!r} cpi={self.cpi!r} agent_id={self.agent_id!r}>"
