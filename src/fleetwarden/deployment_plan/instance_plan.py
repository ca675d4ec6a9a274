"""Ephemeral instance plans used to recreate a VM.

An ``InstancePlan`` pairs an existing instance record with an in-memory
``PlannedInstance`` rebuilt from it. Plans are never persisted and live
for a single recreate.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fleetwarden.database.models.deployment import Deployment
    from fleetwarden.database.models.instance import Instance
    from fleetwarden.deployment_plan.availability_zone import AvailabilityZone
    from fleetwarden.deployment_plan.stemcell import StemcellReference
    from fleetwarden.deployment_plan.variables import VariablesInterpolator


@dataclass
class DesiredInstance:
    """Placeholder for the manifest-side half of a plan.

    Recreating from persisted state has no manifest to compare against.
    """

    job: str | None = None
    index: int | None = None


@dataclass
class PlannedInstance:
    """In-memory instance rebuilt from a persisted record.

    Attributes:
        job: Instance group (job) name.
        index: Numeric index within the job.
        state: Desired state copied from the record.
        cloud_properties: Cloud properties the VM is created with.
        stemcell: Stemcell the VM is created from.
        env: VM environment.
        deployment: Owning deployment.
        raw_spec: Apply-spec as persisted, placeholders unresolved.
        availability_zone: Rebuilt availability zone.
        spec: Apply-spec with variables interpolated.
        model: The record this instance was bound to.
    """

    job: str
    index: int
    state: str
    cloud_properties: dict[str, Any]
    stemcell: StemcellReference
    env: dict[str, Any]
    deployment: Deployment
    raw_spec: dict[str, Any]
    availability_zone: AvailabilityZone
    spec: dict[str, Any] = field(default_factory=dict)
    model: Instance | None = None

    def bind_existing_instance_model(self, instance: Instance) -> None:
        self.model = instance

    @property
    def uuid(self) -> str | None:
        return self.model.uuid if self.model is not None else None

    @property
    def name(self) -> str:
        return f"{self.job}/{self.uuid if self.model is not None else self.index}"


@dataclass
class InstancePlan:
    """Plan to recreate the VM of an existing instance.

    Attributes:
        existing_instance: The persisted instance record.
        instance: Instance rebuilt from the record.
        desired_instance: Manifest-side placeholder.
        recreate: Whether the VM is recreated; always True for resurrection.
        tags: Tags applied to the new VM.
        variables_interpolator: Interpolator the plan was built with.
    """

    existing_instance: Instance
    instance: PlannedInstance
    desired_instance: DesiredInstance
    variables_interpolator: VariablesInterpolator
    recreate: bool = True
    tags: dict[str, Any] = field(default_factory=dict)

    @property
    def spec(self) -> dict[str, Any]:
        """Apply-spec sent to the agent of the new VM."""
        spec = copy.deepcopy(self.instance.spec)
        spec["stemcell"] = self.instance.stemcell.spec()
        return spec

    @property
    def network_settings(self) -> dict[str, Any]:
        return copy.deepcopy(self.instance.spec.get("networks") or {})

    @property
    def templates(self) -> list[dict[str, Any]]:
        return list(self.instance.spec.get("templates") or self.instance.spec.get("jobs") or [])

    def __repr__(self) -> str:
        return f"<InstancePlan {self.instance.name} recreate={self.recreate}>"
