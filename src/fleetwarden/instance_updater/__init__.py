"""Instance update serialization and state application."""

from __future__ import annotations

from fleetwarden.instance_updater.instance_state import (
    InstanceUpdateLease,
    InstanceUpdateSerializer,
    default_serializer,
    with_instance_update,
)
from fleetwarden.instance_updater.state_applier import StateApplier

__all__ = [
    "InstanceUpdateLease",
    "InstanceUpdateSerializer",
    "StateApplier",
    "default_serializer",
    "with_instance_update",
]
