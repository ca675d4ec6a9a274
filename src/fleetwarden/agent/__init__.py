"""In-VM agent RPC for Fleetwarden.

Provides the agent transport (HTTP message gateway), the per-agent RPC
client with timeout and per-method retries, and the gateway that caches
one client per agent ID.
"""

from __future__ import annotations

from fleetwarden.agent.client import AgentClient, AgentClientGateway
from fleetwarden.agent.transport import AgentTransport, HttpAgentTransport

__all__ = [
    "AgentClient",
    "AgentClientGateway",
    "AgentTransport",
    "HttpAgentTransport",
]
