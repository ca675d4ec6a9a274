"""Engine and session factories for the Fleetwarden database.

Recovery commits after every step, so sessions keep their objects loaded
across commits (``expire_on_commit=False``); otherwise reading
``instance.active_vm`` between steps would trigger an implicit async load.

Example:
    >>> engine = get_engine(DatabaseConfig(url="postgresql+asyncpg://localhost/fleetwarden"))
    >>> session_factory = get_session_factory(engine)
    >>> async with session_factory() as session:
    ...     instance = await get_instance(session, instance_id)
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from fleetwarden.config import DatabaseConfig


def _is_in_memory_sqlite(url: str) -> bool:
    parsed = make_url(url)
    return parsed.get_backend_name() == "sqlite" and parsed.database in (None, "", ":memory:")


def get_engine(config: DatabaseConfig) -> AsyncEngine:
    """Create the async engine described by ``config``.

    In-memory SQLite databases live on a single shared connection, so the
    pool size settings only apply to the other backends.
    """
    options: dict[str, Any] = {"echo": config.echo}
    if not _is_in_memory_sqlite(config.url):
        options.update(pool_size=config.pool_size, max_overflow=config.max_overflow)
    return create_async_engine(config.url, **options)


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
