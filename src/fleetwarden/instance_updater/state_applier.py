"""Drive a freshly created VM to the state its instance plan describes.

The agent receives the plan's apply-spec; a ``started`` instance then has
its pre-start scripts run and its jobs started and, when asked to, is
watched until the agent reports ``running``. Stale rendered templates are
removed only after all of this succeeded.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from fleetwarden.database.queries.instance import update_instance_spec
from fleetwarden.deployment_plan.update_config import parse_watch_time
from fleetwarden.errors import AgentJobNotRunning

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from fleetwarden.agent.client import AgentClient
    from fleetwarden.deployment_plan.instance_plan import InstancePlan
    from fleetwarden.deployment_plan.update_config import UpdateConfig
    from fleetwarden.templates.cleaner import RenderedJobTemplatesCleaner

logger = structlog.get_logger(__name__)


class StateApplier:
    """Applies an instance plan through the instance's agent.

    Attributes:
        instance_plan: Plan being converged.
        session: Database session persisting the applied spec.
        default_watch_time: (min, max) milliseconds used without a policy.
    """

    def __init__(
        self,
        instance_plan: InstancePlan,
        agent: AgentClient,
        cleaner: RenderedJobTemplatesCleaner,
        session: AsyncSession,
        default_watch_time: str = "1000-30000",
    ) -> None:
        self.instance_plan = instance_plan
        self.session = session
        self.default_watch_time = parse_watch_time(default_watch_time)
        self._agent = agent
        self._cleaner = cleaner
        self._logger = logger.bind(
            component="StateApplier",
            instance=instance_plan.existing_instance.name,
        )

    def _watch_window(self, update_config: UpdateConfig | None) -> tuple[int, int]:
        if update_config is None:
            return self.default_watch_time
        return update_config.update_watch_time

    async def apply(self, update_config: UpdateConfig | None, wait_for_running: bool = True) -> None:
        """Apply the plan's spec and start the instance's jobs.

        Args:
            update_config: Update policy of the instance, None when the
                instance has none recorded.
            wait_for_running: Block until the jobs report ``running``.

        Raises:
            AgentJobNotRunning: If the jobs are not running by the end of
                the watch window.
        """
        instance = self.instance_plan.existing_instance
        spec = self.instance_plan.spec

        await self._agent.apply(spec)

        persisted = dict(instance.spec or {})
        if "rendered_templates_archive" in spec:
            persisted["rendered_templates_archive"] = spec["rendered_templates_archive"]
        await update_instance_spec(self.session, instance, persisted)
        self._logger.info("instance_spec_applied")

        if self.instance_plan.instance.state == "started":
            await self._agent.run_script("pre-start", {})
            await self._agent.start()
            self._logger.info("instance_jobs_started")

            if wait_for_running:
                min_watch, max_watch = self._watch_window(update_config)
                running = await self._agent.wait_until_running(min_watch, max_watch)
                if not running:
                    raise AgentJobNotRunning(
                        f"'{instance.name}' is not running after update. "
                        f"Review logs for failed jobs"
                    )
                await self._agent.run_script("post-start", {})
                self._logger.info("instance_running")

        await self._cleaner.clean()
