"""Unit tests for the agent RPC client, client gateway and HTTP transport."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest

from fleetwarden.agent.client import AgentClient, AgentClientGateway, watch_schedule
from fleetwarden.agent.transport import HttpAgentTransport
from fleetwarden.config import AgentConfig
from fleetwarden.errors import RpcRemoteException, RpcTimeout, TaskCancelled


def _client(transport: Any, **kwargs: Any) -> AgentClient:
    kwargs.setdefault("ping_timeout", 0.01)
    kwargs.setdefault("ping_interval", 0)
    return AgentClient("agent-1", "worker/u1", transport, **kwargs)


# ---------------------------------------------------------------------------
# AgentClient
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_send_passes_default_timeout() -> None:
    transport = AsyncMock()
    transport.send.return_value = ["disk-1"]

    disks = await _client(transport, timeout=10).list_disk()

    assert disks == ["disk-1"]
    transport.send.assert_awaited_once_with("agent-1", "list_disk", [], 10)


@pytest.mark.asyncio
async def test_list_disk_treats_null_as_empty() -> None:
    transport = AsyncMock()
    transport.send.return_value = None

    assert await _client(transport).list_disk() == []


@pytest.mark.asyncio
async def test_single_attempt_by_default() -> None:
    transport = AsyncMock()
    transport.send.side_effect = RpcTimeout("agent-1", "list_disk", 10)

    with pytest.raises(RpcTimeout):
        await _client(transport).list_disk()

    assert transport.send.await_count == 1


@pytest.mark.asyncio
async def test_retries_configured_method() -> None:
    transport = AsyncMock()
    transport.send.side_effect = [
        RpcTimeout("agent-1", "get_state", 10),
        RpcTimeout("agent-1", "get_state", 10),
        {"job_state": "running"},
    ]

    state = await _client(transport, retry_methods={"get_state": 2}).get_state()

    assert state == {"job_state": "running"}
    assert transport.send.await_count == 3


@pytest.mark.asyncio
async def test_retries_exhausted_raises_last_timeout() -> None:
    transport = AsyncMock()
    last = RpcTimeout("agent-1", "get_state", 10)
    transport.send.side_effect = [RpcTimeout("agent-1", "get_state", 10), last]

    with pytest.raises(RpcTimeout) as exc_info:
        await _client(transport, retry_methods={"get_state": 1}).get_state()

    assert exc_info.value is last
    assert transport.send.await_count == 2


@pytest.mark.asyncio
async def test_remote_exception_is_not_retried() -> None:
    transport = AsyncMock()
    transport.send.side_effect = RpcRemoteException("boom")

    with pytest.raises(RpcRemoteException):
        await _client(transport, retry_methods={"get_state": 3}).get_state()

    assert transport.send.await_count == 1


@pytest.mark.asyncio
async def test_rpc_arguments() -> None:
    transport = AsyncMock()
    client = _client(transport, timeout=5)

    await client.apply({"job": {"name": "worker"}})
    await client.run_script("pre-start")
    await client.start()
    await client.stop()

    calls = [call.args for call in transport.send.await_args_list]
    assert calls == [
        ("agent-1", "apply", [{"job": {"name": "worker"}}], 5),
        ("agent-1", "run_script", ["pre-start", {}], 5),
        ("agent-1", "start", [], 5),
        ("agent-1", "stop", [], 5),
    ]


@pytest.mark.asyncio
async def test_wait_until_ready_returns_once_agent_answers() -> None:
    transport = AsyncMock()
    transport.send.side_effect = [
        RpcTimeout("agent-1", "ping", 0.01),
        RpcTimeout("agent-1", "ping", 0.01),
        "pong",
    ]

    await _client(transport).wait_until_ready(deadline=5)

    assert transport.send.await_count == 3
    assert transport.send.await_args.args[3] == 0.01


@pytest.mark.asyncio
async def test_wait_until_ready_times_out() -> None:
    transport = AsyncMock()
    transport.send.side_effect = RpcTimeout("agent-1", "ping", 0.01)

    with pytest.raises(RpcTimeout, match="Timed out sending 'ping' to agent-1"):
        await _client(transport).wait_until_ready(deadline=0.05)


@pytest.mark.asyncio
async def test_wait_until_ready_honours_cancellation() -> None:
    transport = AsyncMock()
    transport.send.side_effect = RpcTimeout("agent-1", "ping", 0.01)
    checks = iter([False, False, True])

    client = _client(transport, cancel_check=lambda: next(checks))
    with pytest.raises(TaskCancelled):
        await client.wait_until_ready(deadline=60)

    assert transport.send.await_count == 2


@pytest.mark.asyncio
async def test_wait_until_running() -> None:
    transport = AsyncMock()
    transport.send.side_effect = [{"job_state": "starting"}, {"job_state": "running"}]

    assert await _client(transport).wait_until_running(0, 2) is True
    assert transport.send.await_count == 2


@pytest.mark.asyncio
async def test_wait_until_running_window_closes() -> None:
    transport = AsyncMock()
    transport.send.return_value = {"job_state": "failing"}

    assert await _client(transport).wait_until_running(0, 0) is False
    assert transport.send.await_count == 1


# ---------------------------------------------------------------------------
# watch_schedule
# ---------------------------------------------------------------------------


def test_watch_schedule_single_window() -> None:
    assert watch_schedule(5000, 5000) == [5000]


def test_watch_schedule_steps() -> None:
    assert watch_schedule(1000, 3000) == [1000, 1000, 1000]
    schedule = watch_schedule(1000, 30000)
    assert schedule[0] == 1000
    assert sum(schedule) == 30000
    assert all(step == 2900 for step in schedule[1:])


def test_watch_schedule_rejects_inverted_window() -> None:
    with pytest.raises(ValueError):
        watch_schedule(5000, 1000)


# ---------------------------------------------------------------------------
# AgentClientGateway
# ---------------------------------------------------------------------------


def test_gateway_caches_clients_by_agent_id() -> None:
    gateway = AgentClientGateway(AsyncMock(), AgentConfig(timeout_seconds=7, retries=1))

    first = gateway.client_for("agent-1", "worker/u1")
    second = gateway.client_for("agent-1", "worker/u1", timeout=99)
    other = gateway.client_for("agent-2", "worker/u2", timeout=3, retries=4)

    assert first is second
    assert first.timeout == 7
    assert first.retry_methods == {"get_state": 1}
    assert other.timeout == 3
    assert other.retry_methods == {"get_state": 4}
    assert len(gateway) == 2


def test_gateway_defaults() -> None:
    client = AgentClientGateway(AsyncMock()).client_for("agent-1", "worker/u1")

    assert client.timeout == 10
    assert client.retry_methods == {"get_state": 0}


# ---------------------------------------------------------------------------
# HttpAgentTransport
# ---------------------------------------------------------------------------


def _http_transport(handler: Any) -> HttpAgentTransport:
    transport = HttpAgentTransport(AgentConfig(endpoint="http://gateway"))
    transport._client = httpx.AsyncClient(
        base_url="http://gateway", transport=httpx.MockTransport(handler)
    )
    return transport


@pytest.mark.asyncio
async def test_http_transport_returns_value() -> None:
    seen: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/agents/agent-1/rpc"
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"value": ["disk-1"]})

    transport = _http_transport(handler)
    try:
        value = await transport.send("agent-1", "list_disk", [], timeout=5)
    finally:
        await transport.__aexit__(None, None, None)

    assert value == ["disk-1"]
    assert seen[0]["method"] == "list_disk"
    assert seen[0]["protocol"] == 3
    assert seen[0]["reply_to"].startswith("director.")


@pytest.mark.asyncio
async def test_http_transport_maps_exception_answer() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"exception": {"message": "disk busy"}})

    transport = _http_transport(handler)
    with pytest.raises(RpcRemoteException, match="disk busy"):
        await transport.send("agent-1", "apply", [{}], timeout=5)


@pytest.mark.asyncio
async def test_http_transport_maps_gateway_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(504)

    transport = _http_transport(handler)
    with pytest.raises(RpcTimeout):
        await transport.send("agent-1", "ping", [], timeout=1)


@pytest.mark.asyncio
async def test_http_transport_maps_client_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    transport = _http_transport(handler)
    with pytest.raises(RpcTimeout):
        await transport.send("agent-1", "ping", [], timeout=1)


@pytest.mark.asyncio
async def test_http_transport_requires_context_manager() -> None:
    transport = HttpAgentTransport(AgentConfig())
    with pytest.raises(RuntimeError, match="async context manager"):
        await transport.send("agent-1", "ping", [], timeout=1)
