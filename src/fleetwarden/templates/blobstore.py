"""Blob store and template renderer interfaces."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from fleetwarden.deployment_plan.instance_plan import InstancePlan


class BlobStore(Protocol):
    """Stores opaque blobs by generated ID."""

    async def create(self, contents: bytes) -> str:
        """Store ``contents`` and return the new blob ID."""
        ...

    async def delete(self, blob_id: str) -> None:
        ...

    async def exists(self, blob_id: str) -> bool:
        ...


class TemplateRenderer(Protocol):
    """Renders the job templates of an instance plan."""

    def render(self, instance_plan: InstancePlan) -> dict[str, str | bytes]:
        """Return rendered file contents keyed by path inside the archive."""
        ...
