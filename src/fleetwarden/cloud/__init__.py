"""Cloud backend resolution for Fleetwarden."""

from __future__ import annotations

from fleetwarden.cloud.factory import CloudBackend, CloudFactory

__all__ = ["CloudBackend", "CloudFactory"]
