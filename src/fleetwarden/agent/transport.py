"""Agent message transport.

The in-VM agent is reached through a message gateway that accepts one RPC
per HTTP request and answers with either ``{"value": ...}`` or
``{"exception": {"message": ...}}``.

Example usage:
    >>> from fleetwarden.config import AgentConfig
    >>> async with HttpAgentTransport(AgentConfig()) as transport:
    ...     disks = await transport.send("agent-1", "list_disk", [], timeout=10)
"""

from __future__ import annotations

import uuid
from typing import Any, Protocol

import httpx
import structlog

from fleetwarden.config import AgentConfig
from fleetwarden.errors import RpcRemoteException, RpcTimeout

logger = structlog.get_logger(__name__)


class AgentTransport(Protocol):
    """Delivers one RPC to an agent and returns its ``value``."""

    async def send(
        self,
        agent_id: str,
        method: str,
        arguments: list[Any],
        timeout: float,
    ) -> Any:
        """Send ``method(*arguments)`` to ``agent_id``.

        Raises:
            RpcTimeout: If no answer arrives within ``timeout`` seconds.
            RpcRemoteException: If the agent answers with an exception.
        """
        ...


class HttpAgentTransport:
    """Agent transport over the HTTP message gateway.

    Attributes:
        config: Agent configuration containing the gateway endpoint.
    """

    def __init__(self, config: AgentConfig) -> None:
        self.config = config
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> HttpAgentTransport:
        self._client = httpx.AsyncClient(
            base_url=self.config.endpoint,
            timeout=httpx.Timeout(self.config.timeout_seconds),
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("HttpAgentTransport must be used as async context manager")
        return self._client

    async def send(
        self,
        agent_id: str,
        method: str,
        arguments: list[Any],
        timeout: float,
    ) -> Any:
        client = self._get_client()
        request_id = str(uuid.uuid4())
        payload = {
            "protocol": 3,
            "method": method,
            "arguments": arguments,
            "reply_to": f"director.{request_id}",
        }

        logger.debug(
            "agent_rpc_request",
            agent_id=agent_id,
            method=method,
            request_id=request_id,
        )

        try:
            response = await client.post(
                f"/agents/{agent_id}/rpc",
                json=payload,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise RpcTimeout(agent_id, method, timeout) from e

        if response.status_code == 504:
            raise RpcTimeout(agent_id, method, timeout)
        response.raise_for_status()

        data = response.json()
        if isinstance(data, dict) and "exception" in data:
            exception = data["exception"] or {}
            message = exception.get("message", "unknown agent error")
            raise RpcRemoteException(f"{method} failed on agent {agent_id}: {message}")

        if not isinstance(data, dict) or "value" not in data:
            raise RpcRemoteException(
                f"Invalid response to {method} from agent {agent_id}: {data!r}"
            )
        return data["value"]
