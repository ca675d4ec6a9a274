"""Update policy parsed from the ``update`` section of an apply-spec.

Watch times are given in milliseconds, either as a single number or as a
``"min-max"`` range:

    >>> UpdateConfig.model_validate({"update_watch_time": "1000-5000"}).update_watch_time
    (1000, 5000)
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def parse_watch_time(value: Any) -> tuple[int, int]:
    """Parse ``1000``, ``"1000"`` or ``"1000-5000"`` into a (min, max) pair."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid watch time: {value!r}")
    if isinstance(value, int):
        return value, value
    if isinstance(value, (tuple, list)) and len(value) == 2:
        low, high = int(value[0]), int(value[1])
    elif isinstance(value, str):
        parts = [p.strip() for p in value.split("-")]
        if len(parts) == 1:
            low = high = int(parts[0])
        elif len(parts) == 2:
            low, high = int(parts[0]), int(parts[1])
        else:
            raise ValueError(f"Invalid watch time range: {value!r}")
    else:
        raise ValueError(f"Invalid watch time: {value!r}")

    if low < 0 or high < low:
        raise ValueError(f"Invalid watch time range: {value!r}")
    return low, high


class UpdateConfig(BaseModel):
    """Update policy of an instance group.

    Attributes:
        canaries: Number of canary instances.
        max_in_flight: Maximum instances updated at once.
        canary_watch_time: (min, max) milliseconds to watch a canary.
        update_watch_time: (min, max) milliseconds to watch an instance.
        serial: Whether instance groups update one after another.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    canaries: int = Field(default=1, ge=0)
    max_in_flight: int | str = Field(default=1)
    canary_watch_time: tuple[int, int] = Field(default=(30000, 30000))
    update_watch_time: tuple[int, int] = Field(default=(30000, 30000))
    serial: bool = Field(default=True)

    @field_validator("canary_watch_time", "update_watch_time", mode="before")
    @classmethod
    def validate_watch_time(cls, v: Any) -> tuple[int, int]:
        return parse_watch_time(v)

    @property
    def min_update_watch_time(self) -> int:
        return self.update_watch_time[0]

    @property
    def max_update_watch_time(self) -> int:
        return self.update_watch_time[1]

    @property
    def min_canary_watch_time(self) -> int:
        return self.canary_watch_time[0]

    @property
    def max_canary_watch_time(self) -> int:
        return self.canary_watch_time[1]

    @classmethod
    def from_apply_spec(cls, apply_spec: dict[str, Any]) -> UpdateConfig | None:
        """Return the policy of an apply-spec, or None when it has none.

        Instances deployed before update policies were recorded carry no
        ``update`` section.
        """
        update = apply_spec.get("update")
        if update is None:
            return None
        return cls.model_validate(update)
