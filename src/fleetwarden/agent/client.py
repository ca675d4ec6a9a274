"""Agent RPC client and per-agent client gateway.

``AgentClient`` wraps one agent ID with a default timeout and a retry
count per method (zero by default, i.e. exactly one attempt). Waits that
poll the agent consult an optional cancellation check and raise
``TaskCancelled`` once it reports true; completed work is never reverted.

``AgentClientGateway`` hands out clients and caches them by agent ID for
its own lifetime. Entries are never evicted; retiring an agent ID is the
owner's concern.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import structlog

from fleetwarden.config import DEFAULT_AGENT_TIMEOUT, AgentConfig
from fleetwarden.errors import RpcTimeout, TaskCancelled

if TYPE_CHECKING:
    from collections.abc import Callable

    from fleetwarden.agent.transport import AgentTransport

logger = structlog.get_logger(__name__)


class AgentClient:
    """RPC handle for a single agent.

    Attributes:
        agent_id: Agent the client talks to.
        instance_name: Instance name used in log entries.
        timeout: Default bound for each RPC, in seconds.
        retry_methods: Retry count per method name.
    """

    def __init__(
        self,
        agent_id: str,
        instance_name: str,
        transport: AgentTransport,
        *,
        timeout: float = DEFAULT_AGENT_TIMEOUT,
        retry_methods: dict[str, int] | None = None,
        ping_timeout: float = 1.0,
        ping_interval: float = 1.0,
        cancel_check: Callable[[], bool] | None = None,
    ) -> None:
        self.agent_id = agent_id
        self.instance_name = instance_name
        self.timeout = timeout
        self.retry_methods = dict(retry_methods or {})
        self.ping_timeout = ping_timeout
        self.ping_interval = ping_interval
        self._transport = transport
        self._cancel_check = cancel_check
        self._logger = logger.bind(
            component="AgentClient", agent_id=agent_id, instance=instance_name
        )

    async def _send(self, method: str, *args: Any, timeout: float | None = None) -> Any:
        attempts = self.retry_methods.get(method, 0) + 1
        bound = self.timeout if timeout is None else timeout

        for attempt in range(1, attempts):
            try:
                return await self._transport.send(self.agent_id, method, list(args), bound)
            except RpcTimeout:
                self._logger.info(
                    "agent_rpc_retry",
                    method=method,
                    attempt=attempt,
                    max_attempts=attempts,
                )

        try:
            return await self._transport.send(self.agent_id, method, list(args), bound)
        except RpcTimeout:
            self._logger.warning(
                "agent_rpc_timeout",
                method=method,
                attempts=attempts,
                timeout=bound,
            )
            raise

    def _checkpoint(self) -> None:
        if self._cancel_check is not None and self._cancel_check():
            raise TaskCancelled(f"Task was cancelled while waiting for agent {self.agent_id}")

    async def ping(self) -> Any:
        return await self._send("ping", timeout=self.ping_timeout)

    async def wait_until_ready(self, deadline: float | None = None) -> None:
        """Ping the agent until it answers.

        Args:
            deadline: Total time to wait in seconds. Defaults to the
                client timeout.

        Raises:
            RpcTimeout: If the agent never answers within the deadline.
            TaskCancelled: If the cancellation check fires while waiting.
        """
        total = self.timeout if deadline is None else deadline
        loop = asyncio.get_running_loop()
        ends_at = loop.time() + total

        while True:
            self._checkpoint()
            try:
                await self.ping()
                self._logger.debug("agent_ready")
                return
            except RpcTimeout:
                if loop.time() >= ends_at:
                    raise RpcTimeout(self.agent_id, "ping", total) from None
            await asyncio.sleep(self.ping_interval)

    async def list_disk(self) -> list[str]:
        """Return the CIDs of the disks attached to the agent's VM."""
        disks = await self._send("list_disk")
        return list(disks or [])

    async def get_state(self) -> dict[str, Any]:
        return await self._send("get_state")

    async def apply(self, spec: dict[str, Any]) -> Any:
        return await self._send("apply", spec)

    async def run_script(self, script_name: str, options: dict[str, Any] | None = None) -> Any:
        return await self._send("run_script", script_name, options or {})

    async def start(self) -> Any:
        return await self._send("start")

    async def stop(self) -> Any:
        return await self._send("stop")

    async def wait_until_running(self, min_watch_ms: int, max_watch_ms: int) -> bool:
        """Poll ``get_state`` until the jobs report ``running``.

        The first poll happens after ``min_watch_ms``; polling continues in
        shrinking steps until ``max_watch_ms`` has elapsed.

        Returns:
            True once the agent reports ``running``, False if the watch
            window closes first.

        Raises:
            TaskCancelled: If the cancellation check fires while waiting.
        """
        for sleep_ms in watch_schedule(min_watch_ms, max_watch_ms):
            await asyncio.sleep(sleep_ms / 1000)
            self._checkpoint()
            state = await self.get_state()
            job_state = state.get("job_state") if isinstance(state, dict) else None
            self._logger.debug("agent_job_state", job_state=job_state)
            if job_state == "running":
                return True
        return False


def watch_schedule(min_watch_ms: int, max_watch_ms: int) -> list[int]:
    """Split a watch window into poll intervals.

    The first interval is ``min_watch_ms``; the rest of the window up to
    ``max_watch_ms`` is covered by steps of one second or a tenth of the
    remaining window, whichever is larger.

    >>> watch_schedule(1000, 3000)
    [1000, 1000, 1000]
    """
    if max_watch_ms < min_watch_ms:
        raise ValueError(f"Invalid watch window {min_watch_ms}-{max_watch_ms}")

    schedule = [min_watch_ms]
    remaining = max_watch_ms - min_watch_ms
    step = max(1000, remaining // 10) if remaining else 0
    while remaining > 0:
        interval = min(step, remaining)
        schedule.append(interval)
        remaining -= interval
    return schedule


class AgentClientGateway:
    """Creates and caches agent clients by agent ID.

    Attributes:
        config: Agent configuration supplying the default timeouts.
    """

    def __init__(
        self,
        transport: AgentTransport,
        config: AgentConfig | None = None,
        cancel_check: Callable[[], bool] | None = None,
    ) -> None:
        self.config = config or AgentConfig()
        self._transport = transport
        self._cancel_check = cancel_check
        self._clients: dict[str, AgentClient] = {}

    def client_for(
        self,
        agent_id: str,
        instance_name: str,
        timeout: float | None = None,
        retries: int | None = None,
    ) -> AgentClient:
        """Return the cached client for ``agent_id``, creating it on first use.

        ``timeout`` and ``retries`` only apply when the client is created;
        later calls reuse the existing handle as is.
        """
        client = self._clients.get(agent_id)
        if client is None:
            client = AgentClient(
                agent_id,
                instance_name,
                self._transport,
                timeout=self.config.timeout_seconds if timeout is None else timeout,
                retry_methods={
                    "get_state": self.config.retries if retries is None else retries
                },
                ping_timeout=self.config.ping_timeout_seconds,
                ping_interval=self.config.ping_interval_seconds,
                cancel_check=self._cancel_check,
            )
            self._clients[agent_id] = client
        return client

    def __len__(self) -> int:
        return len(self._clients)
