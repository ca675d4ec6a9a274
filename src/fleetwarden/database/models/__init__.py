"""SQLAlchemy ORM models for Fleetwarden.

This module defines the database schema for deployments, instances, the
VMs and persistent disks attached to them, uploaded stemcells, and
rendered templates archives.

All models use SQLAlchemy 2.0 declarative style with Mapped[] type annotations.
"""

from fleetwarden.database.models.base import Base, TimestampMixin
from fleetwarden.database.models.deployment import Deployment
from fleetwarden.database.models.disk import PersistentDisk
from fleetwarden.database.models.instance import Instance
from fleetwarden.database.models.rendered_templates import RenderedTemplatesArchive
from fleetwarden.database.models.stemcell import Stemcell
from fleetwarden.database.models.vm import Vm

__all__ = [
    "Base",
    "TimestampMixin",
    "Deployment",
    "Instance",
    "PersistentDisk",
    "RenderedTemplatesArchive",
    "Stemcell",
    "Vm",
]
