"""Instance model for Fleetwarden.

An Instance is the persisted identity of one managed workload slot
(``job/index`` within a deployment). Recovery operations replace the VM
attached to it; they never create or delete the instance row itself.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleetwarden.database.models.base import Base, TimestampMixin
from fleetwarden.database.models.deployment import Deployment
from fleetwarden.database.models.disk import PersistentDisk
from fleetwarden.database.models.vm import Vm


class Instance(TimestampMixin, Base):
    """A managed workload slot.

    Attributes:
        id: UUID primary key (from TimestampMixin).
        deployment_id: Foreign key to the owning deployment.
        job: Instance group (job) name.
        index: Numeric index within the job.
        uuid: Stable identifier used in DNS names and instance names.
        availability_zone: Name of the availability zone, if any.
        cloud_properties: Cloud properties the VM is created with.
        state: Desired state (``started``, ``stopped``, ``detached``).
        spec: Last-known apply-spec sent to the agent.
        vm_env: VM environment mapping.
        update_completed: False while an update or recovery is in flight.
        active_vm_id: Identifier of the attached Vm, if any.
        deployment: Relationship to the owning Deployment.
        active_vm: Relationship to the attached Vm.
        persistent_disks: Relationship to the instance's persistent disks.
    """

    __tablename__ = "instances"

    deployment_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("deployments.id"),
        nullable=False,
    )
    job: Mapped[str] = mapped_column(Text, nullable=False)
    index: Mapped[int] = mapped_column(Integer, nullable=False)
    uuid: Mapped[str] = mapped_column(
        Text, nullable=False, default=lambda: str(uuid4())
    )
    availability_zone: Mapped[str | None] = mapped_column(Text, nullable=True)
    cloud_properties: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    state: Mapped[str] = mapped_column(Text, nullable=False, default="started")
    spec: Mapped[Any] = mapped_column(JSON, nullable=True)
    vm_env: Mapped[Any] = mapped_column(JSON, nullable=True)
    update_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # No foreign key; vms.instance_id already references instances.
    active_vm_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)

    deployment: Mapped[Deployment] = relationship(
        Deployment,
        back_populates="instances",
        lazy="selectin",
    )
    active_vm: Mapped[Vm | None] = relationship(
        Vm,
        primaryjoin="foreign(Instance.active_vm_id) == Vm.id",
        lazy="selectin",
    )
    persistent_disks: Mapped[list[PersistentDisk]] = relationship(
        PersistentDisk,
        lazy="selectin",
        order_by=PersistentDisk.created_at,
    )

    __table_args__ = (
        Index("ix_instances_deployment_job_index", "deployment_id", "job", "index", unique=True),
        Index("ix_instances_uuid", "uuid", unique=True),
    )

    @property
    def name(self) -> str:
        """Instance name in ``job/uuid`` form."""
        return f"{self.job}/{self.uuid}"

    @property
    def vm_cid(self) -> str | None:
        return self.active_vm.cid if self.active_vm is not None else None

    @property
    def agent_id(self) -> str | None:
        return self.active_vm.agent_id if self.active_vm is not None else None

    @property
    def cloud_properties_hash(self) -> dict[str, Any]:
        return dict(self.cloud_properties or {})

    @property
    def managed_persistent_disk(self) -> PersistentDisk | None:
        """The active, unnamed (director-managed) persistent disk."""
        for disk in self.persistent_disks:
            if disk.active and disk.name == "":
                return disk
        return None

    @property
    def managed_persistent_disk_cid(self) -> str | None:
        disk = self.managed_persistent_disk
        return disk.disk_cid if disk is not None else None

    def __repr__(self) -> str:
        return f"<Instance {self.job}/{self.index} ({self.uuid}) vm_cid={self.vm_cid!r}>"
