"""Deployment planning pieces needed to recreate an instance's VM."""

from __future__ import annotations

from fleetwarden.deployment_plan.availability_zone import AvailabilityZone
from fleetwarden.deployment_plan.instance_plan import (
    DesiredInstance,
    InstancePlan,
    PlannedInstance,
)
from fleetwarden.deployment_plan.reconstructor import InstancePlanReconstructor
from fleetwarden.deployment_plan.stemcell import StemcellReference
from fleetwarden.deployment_plan.update_config import UpdateConfig, parse_watch_time
from fleetwarden.deployment_plan.variables import (
    MappingVariablesInterpolator,
    VariablesInterpolator,
)

__all__ = [
    "AvailabilityZone",
    "DesiredInstance",
    "InstancePlan",
    "InstancePlanReconstructor",
    "MappingVariablesInterpolator",
    "PlannedInstance",
    "StemcellReference",
    "UpdateConfig",
    "VariablesInterpolator",
    "parse_watch_time",
]
