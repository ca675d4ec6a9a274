"""Recovery orchestration for Fleetwarden.

This module exposes the orchestrator that resolves VM problems on managed
instances: reboot, delete, delete reference, delete from cloud, and
recreate.
"""

from __future__ import annotations

from fleetwarden.orchestrator.recovery import (
    RecoveryAction,
    RecoveryOrchestrator,
    RecoveryOutcome,
    RecoveryResult,
)

__all__ = [
    "RecoveryAction",
    "RecoveryOrchestrator",
    "RecoveryOutcome",
    "RecoveryResult",
]
