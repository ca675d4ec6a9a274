"""Exception hierarchy for Fleetwarden.

``ProblemHandlerError`` is the only recoverable, user-facing kind: it means
"this recovery attempt did not succeed, here is why". Every other error
raised by a collaborator (cloud, blob store, DNS, interpolation) propagates
to the caller unchanged.
"""

from __future__ import annotations

from typing import NoReturn


class FleetwardenError(Exception):
    """Base exception for Fleetwarden errors."""

    pass


class ProblemHandlerError(FleetwardenError):
    """A recovery action could not resolve the problem.

    Carries only the reason; retry and timeout policy belong to the agent
    gateway.
    """

    pass


class RpcTimeout(FleetwardenError):
    """Raised when an agent RPC does not answer within its timeout.

    Attributes:
        agent_id: Agent the request was addressed to.
        method: RPC method name.
        timeout: Bound that elapsed, in seconds.
    """

    def __init__(self, agent_id: str, method: str, timeout: float) -> None:
        self.agent_id = agent_id
        self.method = method
        self.timeout = timeout
        super().__init__(
            f"Timed out sending '{method}' to {agent_id} after {timeout} seconds"
        )


class RpcRemoteException(FleetwardenError):
    """Raised when the agent answers an RPC with an exception payload."""

    pass


class TaskCancelled(FleetwardenError):
    """Raised when the surrounding task is cancelled during an agent wait."""

    pass


class AgentJobNotRunning(FleetwardenError):
    """Raised when an instance's jobs do not reach ``running`` in time."""

    pass


class CloudError(FleetwardenError):
    """Base class for errors reported by a cloud backend."""

    pass


class VMNotFound(CloudError):
    """Raised by a cloud backend when the addressed VM does not exist."""

    pass


class UnknownCloudBackend(CloudError):
    """Raised when no cloud backend is registered under a CPI name."""

    pass


class StemcellNotFound(FleetwardenError):
    """Raised when an apply-spec references a stemcell that is not uploaded."""

    pass


class VariableNotFound(FleetwardenError):
    """Raised when a ``((placeholder))`` has no value to interpolate."""

    pass


def handler_error(message: str) -> NoReturn:
    """Raise a ``ProblemHandlerError`` carrying ``message``."""
    raise ProblemHandlerError(message)