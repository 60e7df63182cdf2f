"""ACP wire protocol: JSON-RPC 2.0 message types and line framing.

Agents speak newline-delimited JSON-RPC 2.0 on stdin/stdout. Each line is
one of three message shapes, modelled here as separate dataclasses and told
apart once, at decode time:

- Request: has ``id`` and ``method`` (expects a Response)
- Response: has ``id`` and exactly one of ``result`` / ``error``
- Notification: has ``method`` but no ``id`` (fire-and-forget)

ACP overview: https://agentclientprotocol.com/overview/introduction
"""

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from worknotify.core.errors import NotifyError

logger = logging.getLogger(__name__)

# ACP protocol version sent in `initialize`
PROTOCOL_VERSION: int = 1

CLIENT_NAME = "work-cli"
CLIENT_VERSION = "0.2.7"

# Methods used by the notification turn sequence
METHOD_INITIALIZE = "initialize"
METHOD_SESSION_NEW = "session/new"
METHOD_SESSION_PROMPT = "session/prompt"
METHOD_SESSION_CANCEL = "session/cancel"

# JSON-RPC 2.0 error code for requests the client does not handle
METHOD_NOT_FOUND = -32601

# Maximum characters of an undecodable line included in debug output
DEBUG_LINE_PREVIEW: int = 200


class ParseError(NotifyError):
    """Raised when a line is not a valid JSON-RPC 2.0 message."""


@dataclass(frozen=True)
class Request:
    """JSON-RPC 2.0 request.

    Attributes:
        id: Request identifier, echoed back by the matching Response.
        method: Name of the method to invoke.
        params: Optional named parameters.
    """

    id: int | str
    method: str
    params: dict[str, Any] | None = None


@dataclass(frozen=True)
class Response:
    """JSON-RPC 2.0 response.

    Attributes:
        id: Identifier of the request this answers.
        result: Result payload (mutually exclusive with error).
        error: Error object ``{code, message, data?}`` if the call failed.
    """

    id: int | str | None
    result: Any = None
    error: dict[str, Any] | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class Notification:
    """JSON-RPC 2.0 notification (no id, no response expected).

    Attributes:
        method: Notification method name (e.g. "session/update").
        params: Optional parameters.
    """

    method: str
    params: dict[str, Any] | None = None


Message = Request | Response | Notification


def parse_message(data: Any) -> Message:
    """Classify a decoded JSON value as a Request, Response or Notification.

    Args:
        data: Value produced by ``json.loads`` for one line.

    Returns:
        The typed message.

    Raises:
        ParseError: If the value is not a well-formed JSON-RPC 2.0 message.
    """
    if not isinstance(data, dict):
        raise ParseError(f"message must be a JSON object, got: {type(data).__name__}")

    jsonrpc = data.get("jsonrpc")
    if jsonrpc != "2.0":
        raise ParseError(f"jsonrpc must be '2.0', got: {jsonrpc!r}")

    params = data.get("params")
    if params is not None and not isinstance(params, dict):
        raise ParseError(f"params must be an object, got: {type(params).__name__}")

    method = data.get("method")
    has_id = "id" in data and data["id"] is not None
    request_id = data.get("id")
    if request_id is not None and (
        isinstance(request_id, bool) or not isinstance(request_id, (int, str))
    ):
        raise ParseError(f"id must be a string or integer, got: {type(request_id).__name__}")

    if method is not None:
        if not isinstance(method, str):
            raise ParseError(f"method must be a string, got: {type(method).__name__}")
        if has_id:
            return Request(id=request_id, method=method, params=params)
        return Notification(method=method, params=params)

    if "result" in data and "error" in data:
        raise ParseError("response must not carry both 'result' and 'error'")
    if "error" in data:
        error = data["error"]
        if not isinstance(error, dict):
            raise ParseError(f"error must be an object, got: {type(error).__name__}")
        return Response(id=request_id, error=error)
    if "result" in data:
        if not has_id:
            raise ParseError("successful response must carry an id")
        return Response(id=request_id, result=data["result"])

    raise ParseError("message has neither 'method' nor 'result'/'error'")


def encode_message(message: Message) -> bytes:
    """Serialize a message to one compact UTF-8 JSON line (newline included).

    ``params`` is omitted when None; a Response carries ``error`` when set,
    ``result`` otherwise.
    """
    data: dict[str, Any] = {"jsonrpc": "2.0"}

    if isinstance(message, Request):
        data["id"] = message.id
        data["method"] = message.method
        if message.params is not None:
            data["params"] = message.params
    elif isinstance(message, Notification):
        data["method"] = message.method
        if message.params is not None:
            data["params"] = message.params
    else:
        data["id"] = message.id
        if message.error is not None:
            data["error"] = message.error
        else:
            data["result"] = message.result

    return (json.dumps(data, separators=(",", ":")) + "\n").encode("utf-8")


def make_error_response(
    request_id: int | str | None,
    code: int,
    message: str,
) -> Response:
    """Create an error response for an incoming request."""
    return Response(id=request_id, error={"code": code, "message": message})


class LineDecoder:
    """Incremental decoder turning stdout chunks into JSON-RPC messages.

    Chunks are appended to a byte buffer and split on newline. Every complete
    line is decoded immediately and passed to ``on_message``; the trailing
    partial line stays buffered until a later chunk completes it. Buffering
    bytes (not text) keeps multi-byte UTF-8 characters split across chunks
    intact. A complete line that is not valid UTF-8 is dropped.

    Lines that are not valid JSON-RPC (diagnostic output printed by the agent
    on stdout, for example) are dropped. With ``debug`` enabled each dropped
    line is logged once with the parse error and a 200-character preview.

    Example:
        decoder = LineDecoder(on_message=handle)
        decoder.feed(b'{"jsonrpc":"2.0","id":1,"res')
        decoder.feed(b'ult":{}}\\n')  # handle(Response(id=1, result={}))
    """

    def __init__(
        self,
        on_message: Callable[[Message], None],
        debug: bool = False,
    ) -> None:
        self._on_message = on_message
        self._debug = debug
        self._buffer = bytearray()
        self.dropped_lines = 0

    @property
    def pending(self) -> bytes:
        """Bytes of the incomplete trailing line, not yet decoded."""
        return bytes(self._buffer)

    def feed(self, chunk: bytes | str) -> int:
        """Consume one chunk of output.

        Args:
            chunk: Raw bytes (or text) read from the agent's stdout.

        Returns:
            Number of messages decoded and delivered from this chunk.
        """
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        self._buffer.extend(chunk)

        delivered = 0
        while True:
            newline_idx = self._buffer.find(b"\n")
            if newline_idx < 0:
                break
            line = bytes(self._buffer[:newline_idx])
            del self._buffer[: newline_idx + 1]
            message = self._decode_line(line)
            if message is not None:
                self._on_message(message)
                delivered += 1
        return delivered

    def _decode_line(self, raw: bytes) -> Message | None:
        try:
            # Strip CRLF (Windows peers) and surrounding whitespace
            text = raw.decode("utf-8").strip()
            if not text:
                return None
            return parse_message(json.loads(text))
        except (UnicodeDecodeError, json.JSONDecodeError, ParseError) as e:
            self.dropped_lines += 1
            if self._debug:
                preview = raw.decode("utf-8", errors="replace").strip()
                logger.warning(
                    "ACP message parse error: %s; line: %s",
                    e,
                    preview[:DEBUG_LINE_PREVIEW],
                )
            return None
