"""Deployment model for Fleetwarden.

A deployment groups the instances built from one manifest. Recovery only
needs its name (for DNS records) and its tags (propagated to recreated
VMs).
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleetwarden.database.models.base import Base, TimestampMixin


class Deployment(TimestampMixin, Base):
    """A named deployment owning a set of instances.

    Attributes:
        id: UUID primary key (from TimestampMixin).
        name: Unique deployment name.
        tags: Tags applied to every VM created for this deployment.
        instances: Relationship to the deployment's Instance records.
    """

    __tablename__ = "deployments"

    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    tags: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    instances: Mapped[list["Instance"]] = relationship(  # noqa: F821
        "Instance",
        back_populates="deployment",
        lazy="raise",
    )
