"""Agent Client Protocol (ACP) channel.

Drives an AI agent subprocess over newline-delimited JSON-RPC 2.0 on its
stdin/stdout.

Components:
- protocol: message types and the line decoder
- transport: one agent subprocess and its pipes
- pending: request/response correlation with deadlines
- registry: one subprocess per (command, cwd)
- session: the initialize / session / prompt turn sequence
"""

from worknotify.acp.errors import (
    ACPError,
    ACPProtocolError,
    ACPTimeoutError,
    RpcError,
    SpawnError,
    TransportError,
)
from worknotify.acp.pending import RequestTracker
from worknotify.acp.protocol import (
    LineDecoder,
    Notification,
    Request,
    Response,
    encode_message,
    parse_message,
)
from worknotify.acp.registry import ProcessRegistry
from worknotify.acp.session import (
    DeliveryOutcome,
    SessionDriver,
    SessionState,
    format_work_items,
)
from worknotify.acp.transport import AgentProcess, ProcessState

__all__ = [
    "ACPError",
    "ACPProtocolError",
    "ACPTimeoutError",
    "AgentProcess",
    "DeliveryOutcome",
    "LineDecoder",
    "Notification",
    "ProcessRegistry",
    "ProcessState",
    "Request",
    "RequestTracker",
    "Response",
    "RpcError",
    "SessionDriver",
    "SessionState",
    "SpawnError",
    "TransportError",
    "encode_message",
    "format_work_items",
    "parse_message",
]
