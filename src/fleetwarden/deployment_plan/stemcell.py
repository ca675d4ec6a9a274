"""Stemcell references parsed from apply-specs."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from fleetwarden.errors import StemcellNotFound


class StemcellReference(BaseModel):
    """A stemcell named by an apply-spec.

    Attributes:
        name: Stemcell name.
        version: Stemcell version (numbers are normalised to strings).
        os: Operating system, when the spec records it.
        cid: Cloud ID of the image once resolved against uploaded stemcells.
        cpi: Cloud backend the image was resolved for.
    """

    name: str
    version: str
    os: str | None = Field(default=None)
    cid: str | None = Field(default=None)
    cpi: str | None = Field(default=None)

    @field_validator("version", mode="before")
    @classmethod
    def normalise_version(cls, v: Any) -> str:
        if v is None:
            raise ValueError("stemcell version is required")
        return str(v)

    @classmethod
    def parse(cls, spec: Any) -> StemcellReference:
        """Build a reference from the ``stemcell`` section of an apply-spec.

        Raises:
            StemcellNotFound: If the section is missing or incomplete.
        """
        if not isinstance(spec, dict) or not spec.get("name") or spec.get("version") is None:
            raise StemcellNotFound(f"Invalid stemcell reference in apply spec: {spec!r}")
        return cls(name=spec["name"], version=spec["version"], os=spec.get("os"))

    @property
    def desc(self) -> str:
        return f"{self.name}/{self.version}"

    def spec(self) -> dict[str, str]:
        """Apply-spec form of the reference."""
        return {"name": self.name, "version": self.version}
