"""Rebuild an instance plan from a persisted instance record.

Resurrection has no manifest to work from: the stemcell, availability zone
and variables are all re-derived from what the instance record stores.
The zone is rebuilt from its name and cloud properties alone; the CPI
serving it is looked up by zone name through the ``CloudFactory``
whenever the cloud is called.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING

import structlog

from fleetwarden.database.queries.stemcell import find_stemcell
from fleetwarden.deployment_plan.availability_zone import AvailabilityZone
from fleetwarden.deployment_plan.instance_plan import (
    DesiredInstance,
    InstancePlan,
    PlannedInstance,
)
from fleetwarden.deployment_plan.stemcell import StemcellReference
from fleetwarden.errors import StemcellNotFound

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from fleetwarden.cloud.factory import CloudFactory
    from fleetwarden.database.models.instance import Instance
    from fleetwarden.deployment_plan.variables import VariablesInterpolator

logger = structlog.get_logger(__name__)


class InstancePlanReconstructor:
    """Builds resurrection ``InstancePlan`` objects from instance records.

    Attributes:
        session: Database session used to resolve stemcells.
        cloud_factory: Resolver mapping availability zones to CPI names.
        variables_interpolator: Interpolator bound into every plan.
    """

    def __init__(
        self,
        session: AsyncSession,
        cloud_factory: CloudFactory,
        variables_interpolator: VariablesInterpolator,
    ) -> None:
        self.session = session
        self.cloud_factory = cloud_factory
        self.variables_interpolator = variables_interpolator
        self._logger = logger.bind(component="InstancePlanReconstructor")

    async def _resolve_stemcell(self, instance: Instance) -> StemcellReference:
        stemcell = StemcellReference.parse((instance.spec or {}).get("stemcell"))
        cpi = self.cloud_factory.get_name_for_az(instance.availability_zone)
        model = await find_stemcell(self.session, stemcell.name, stemcell.version, cpi)
        if model is None:
            raise StemcellNotFound(
                f"Stemcell '{stemcell.desc}' is not uploaded for CPI '{cpi or 'default'}'"
            )
        return stemcell.model_copy(update={"cid": model.cid, "cpi": model.cpi or None})

    async def reconstruct(self, instance: Instance) -> InstancePlan:
        """Build a recreate plan for ``instance``.

        Raises:
            StemcellNotFound: If the spec's stemcell is missing or not uploaded.
            VariableNotFound: If a placeholder in the spec cannot be resolved.
        """
        stemcell = await self._resolve_stemcell(instance)
        availability_zone = AvailabilityZone(
            name=instance.availability_zone,
            cloud_properties=instance.cloud_properties_hash,
            cpi=None,
        )

        raw_spec = copy.deepcopy(instance.spec or {})
        planned = PlannedInstance(
            job=instance.job,
            index=instance.index,
            state=instance.state,
            cloud_properties=instance.cloud_properties_hash,
            stemcell=stemcell,
            env=dict(instance.vm_env or {}),
            deployment=instance.deployment,
            raw_spec=raw_spec,
            availability_zone=availability_zone,
            spec=self.variables_interpolator.interpolate(raw_spec),
        )
        planned.bind_existing_instance_model(instance)

        plan = InstancePlan(
            existing_instance=instance,
            instance=planned,
            desired_instance=DesiredInstance(),
            variables_interpolator=self.variables_interpolator,
            recreate=True,
            tags=dict(instance.deployment.tags or {}),
        )

        self._logger.debug(
            "instance_plan_reconstructed",
            instance=instance.name,
            stemcell=stemcell.desc,
            availability_zone=availability_zone.name,
        )
        return plan
