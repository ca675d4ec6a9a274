"""Availability zones rebuilt from instance records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class AvailabilityZone:
    """An availability zone.

    ``cpi`` stays None when the zone is rebuilt from an instance record;
    cloud calls resolve the backend from the zone name instead.
    """

    name: str | None
    cloud_properties: dict[str, Any] = field(default_factory=dict)
    cpi: str | None = None
