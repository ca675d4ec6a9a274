"""Per-instance update serialization.

At most one update or recovery runs against an instance at a time. A
caller takes a lease on the instance ID before touching the instance and
gives it back when done; ``lease()`` returns it on every exit path,
exceptions included. Operations on different instances never wait on
each other.

Leases only exclude each other when they come from the same serializer.
Recovery entry points default to the process-wide ``default_serializer()``
so independently built orchestrators still serialize per instance.

Example:
    >>> serializer = InstanceUpdateSerializer()
    >>> async with serializer.lease(str(instance.id)):
    ...     await recreate_steps()
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog

from fleetwarden.database.queries.instance import set_update_completed

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncSession

    from fleetwarden.database.models.instance import Instance

logger = structlog.get_logger(__name__)


class InstanceUpdateLease:
    """Exclusive right to update one instance until released.

    Attributes:
        key: Instance identity the lease is held on.
    """

    def __init__(self, serializer: InstanceUpdateSerializer, key: str) -> None:
        self.key = key
        self._serializer = serializer
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Give the lease back. Releasing twice is a no-op."""
        if self._released:
            return
        self._released = True
        self._serializer._release(self.key)


class InstanceUpdateSerializer:
    """Hands out per-instance leases backed by one ``asyncio.Lock`` each.

    Locks exist only while a lease on their key is held or awaited.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}
        self._logger = logger.bind(component="InstanceUpdateSerializer")

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    async def acquire(self, key: str) -> InstanceUpdateLease:
        """Wait for and take the lease on ``key``."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            await lock.acquire()
        except BaseException:
            self._forget(key)
            raise
        self._logger.debug("instance_lease_acquired", key=key)
        return InstanceUpdateLease(self, key)

    def _release(self, key: str) -> None:
        self._locks[key].release()
        self._forget(key)
        self._logger.debug("instance_lease_released", key=key)

    def _forget(self, key: str) -> None:
        self._users[key] -= 1
        if self._users[key] == 0:
            del self._users[key]
            del self._locks[key]

    @asynccontextmanager
    async def lease(self, key: str) -> AsyncIterator[InstanceUpdateLease]:
        held = await self.acquire(key)
        try:
            yield held
        finally:
            held.release()


@asynccontextmanager
async def with_instance_update(
    session: AsyncSession,
    serializer: InstanceUpdateSerializer,
    instance: Instance,
) -> AsyncIterator[InstanceUpdateLease]:
    """Hold the instance's lease and flag the update as in flight.

    ``update_completed`` is cleared on entry and set again only when the
    block finishes without raising.
    """
    async with serializer.lease(str(instance.id)) as held:
        await set_update_completed(session, instance, False)
        yield held
        await set_update_completed(session, instance, True)


_default_serializer: InstanceUpdateSerializer | None = None


def default_serializer() -> InstanceUpdateSerializer:
    """Return the process-wide serializer, creating it on first use."""
    global _default_serializer
    if _default_serializer is None:
        _default_serializer = InstanceUpdateSerializer()
    return _default_serializer
