"""Errors raised by the agent-process (ACP) channel.

Every class here is caught at the channel boundary and turned into a failed
:class:`~worknotify.core.types.NotificationResult`; none of them reach the
caller of ``send()``.
"""

from dataclasses import dataclass

from worknotify.core.errors import NotifyError


class ACPError(NotifyError):
    """Base class for agent-process channel failures."""


class SpawnError(ACPError):
    """The agent subprocess could not be started."""


class TransportError(ACPError):
    """Reading from or writing to the agent's stdio failed, or the agent exited."""


class ACPProtocolError(ACPError):
    """The agent answered with a result that does not have the expected shape."""


class ACPTimeoutError(ACPError):
    """No response arrived before the request deadline.

    Attributes:
        timeout: The configured deadline in seconds.
        method: The JSON-RPC method that timed out.
    """

    def __init__(self, timeout: float, method: str | None = None) -> None:
        self.timeout = timeout
        self.method = method
        target = f" waiting for '{method}'" if method else ""
        super().__init__(f"ACP request timed out after {timeout:g}s{target}")


class RpcError(ACPError):
    """The agent answered with a JSON-RPC error object.

    Attributes:
        code: JSON-RPC error code reported by the agent.
        data: Optional structured error data reported by the agent.
    """

    def __init__(self, message: str, code: int | None = None, data: object = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data


@dataclass
class ProcessErrorContext:
    """Context for agent process errors, used to build detailed messages.

    Attributes:
        command: The command that was (or was attempted to be) run.
        cwd: Working directory of the process.
        stderr_lines: Last lines the process wrote to stderr.
    """

    command: list[str]
    cwd: str | None = None
    stderr_lines: list[str] | None = None
