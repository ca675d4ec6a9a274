"""Stemcell model for Fleetwarden."""

from __future__ import annotations

from sqlalchemy import Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from fleetwarden.database.models.base import Base, TimestampMixin


class Stemcell(TimestampMixin, Base):
    """An uploaded stemcell, one row per cloud backend it lives on.

    Attributes:
        name: Stemcell name.
        version: Stemcell version string.
        cid: Cloud identifier of the image.
        cpi: Cloud backend the image was uploaded to (empty for default).
        operating_system: Operating system the stemcell ships.
    """

    __tablename__ = "stemcells"

    name: Mapped[str] = mapped_column(Text, nullable=False)
    version: Mapped[str] = mapped_column(Text, nullable=False)
    cid: Mapped[str] = mapped_column(Text, nullable=False)
    cpi: Mapped[str] = mapped_column(Text, nullable=False, default="")
    operating_system: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_stemcells_name_version_cpi", "name", "version", "cpi", unique=True),
    )
