"""Database layer for Fleetwarden.

This module handles database connections, session management, and the
models backing instance, VM, stemcell and rendered template records.

Public API:
    get_engine: Create an AsyncEngine from DatabaseConfig.
    get_session_factory: Create an async_sessionmaker from an engine.
    Base: SQLAlchemy declarative base for all models.
"""

from fleetwarden.database.connection import get_engine, get_session_factory
from fleetwarden.database.models import (
    Base,
    Deployment,
    Instance,
    PersistentDisk,
    RenderedTemplatesArchive,
    Stemcell,
    TimestampMixin,
    Vm,
)

__all__ = [
    "get_engine",
    "get_session_factory",
    "Base",
    "TimestampMixin",
    "Deployment",
    "Instance",
    "PersistentDisk",
    "RenderedTemplatesArchive",
    "Stemcell",
    "Vm",
]
