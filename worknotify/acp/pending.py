"""Request/response correlation for agent processes.

The RequestTracker owns the pending-request table. Each outgoing request
gets the next integer id, an asyncio.Future and a deadline timer. The entry
is removed exactly once, by whichever happens first:

- a Response with a matching id from the same process
- the deadline timer firing
- the owning process exiting, or an explicit shutdown

Removal always goes through ``dict.pop`` inside a synchronous callback, so
the losing path finds nothing and becomes a no-op.

Timeouts are local only: the agent is not told that a request was
abandoned and may keep working on it.

Notifications carrying a ``sessionId`` go to the callback bound to that
session by the delivery that owns it. Notifications without one fall back
to the process's notification callback.
"""

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from worknotify.acp.error_formatter import format_process_exit
from worknotify.acp.errors import ACPError, ACPTimeoutError, RpcError, TransportError
from worknotify.acp.protocol import (
    METHOD_NOT_FOUND,
    Message,
    Notification,
    Request,
    Response,
    make_error_response,
)

if TYPE_CHECKING:
    from worknotify.acp.transport import AgentProcess

logger = logging.getLogger(__name__)

NotificationCallback = Callable[[str, Any], object]


@dataclass
class PendingRequest:
    """Bookkeeping for one outstanding request.

    Attributes:
        id: Request id.
        method: JSON-RPC method, for logs and timeout messages.
        process: Process the request was written to.
        future: Completed with the result or failed with an ACPError.
        timer: Deadline timer; cancelled when the entry is settled otherwise.
        timeout: Deadline in seconds.
    """

    id: int
    method: str
    process: "AgentProcess"
    future: asyncio.Future[Any]
    timer: asyncio.TimerHandle | None
    timeout: float


class RequestTracker:
    """Pending-request table shared by every process of one channel handler.

    Request ids are monotonically increasing integers, unique for the
    lifetime of the tracker, so a late response can never be mistaken for a
    newer request.
    """

    def __init__(self) -> None:
        self._next_id = 1
        self._pending: dict[int, PendingRequest] = {}
        self._session_callbacks: dict[str, NotificationCallback] = {}
        self._background: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    def _allocate_id(self) -> int:
        request_id = self._next_id
        self._next_id += 1
        return request_id

    async def send(
        self,
        process: "AgentProcess",
        method: str,
        params: dict[str, Any] | None,
        timeout: float,
    ) -> Any:
        """Send a request and wait for its result.

        Args:
            process: Agent process to write the request to.
            method: JSON-RPC method name.
            params: Named parameters (omitted from the wire when None).
            timeout: Seconds to wait for the matching response.

        Returns:
            The ``result`` payload of the response.

        Raises:
            ACPTimeoutError: If no response arrived within ``timeout`` seconds.
            RpcError: If the agent answered with an error object.
            TransportError: If writing failed or the process exited first.
        """
        loop = asyncio.get_running_loop()
        request_id = self._allocate_id()
        entry = PendingRequest(
            id=request_id,
            method=method,
            process=process,
            future=loop.create_future(),
            timer=None,
            timeout=timeout,
        )
        entry.timer = loop.call_later(timeout, self._expire, request_id)
        self._pending[request_id] = entry
        logger.debug("Request %s id=%d timeout=%gs", method, request_id, timeout)

        try:
            await process.write(Request(id=request_id, method=method, params=params))
        except ACPError:
            self._discard(request_id)
            if entry.future.done() and not entry.future.cancelled():
                # Deadline fired while the write was blocked
                entry.future.exception()
            raise

        try:
            return await entry.future
        except asyncio.CancelledError:
            self._discard(request_id)
            raise

    async def notify(
        self,
        process: "AgentProcess",
        method: str,
        params: dict[str, Any] | None = None,
    ) -> None:
        """Send a notification (no id, no response expected)."""
        await process.write(Notification(method=method, params=params))

    def bind_session(self, session_id: str, callback: NotificationCallback) -> None:
        """Route notifications for ``session_id`` to ``callback``."""
        self._session_callbacks[session_id] = callback

    def unbind_session(self, session_id: str, callback: NotificationCallback) -> None:
        """Remove the binding for ``session_id`` if it is still ``callback``.

        A later delivery that rebound the session keeps its own binding.
        """
        if self._session_callbacks.get(session_id) == callback:
            del self._session_callbacks[session_id]

    def handle_message(self, process: "AgentProcess", message: Message) -> None:
        """Route one decoded message from ``process``.

        Responses settle their pending entry. Notifications go to the
        callback bound to their session, or to the process's notification
        callback when they carry no session id. Requests from the agent are
        answered with "method not found".
        """
        if isinstance(message, Response):
            self._resolve(process, message)
        elif isinstance(message, Notification):
            self._dispatch_notification(process, message)
        else:
            self._reject_incoming_request(process, message)

    def _resolve(self, process: "AgentProcess", response: Response) -> None:
        request_id = response.id
        entry = self._pending.get(request_id) if isinstance(request_id, int) else None
        if entry is None:
            logger.debug("Ignoring response for unknown or settled id=%r", request_id)
            return
        if entry.process is not process:
            logger.debug(
                "Ignoring response id=%r from a process that did not send it", request_id
            )
            return

        del self._pending[request_id]
        if entry.timer is not None:
            entry.timer.cancel()
        if entry.future.done():
            return

        if response.error is not None:
            error = response.error
            logger.debug("Response %s id=%d error: %s", entry.method, request_id, error)
            entry.future.set_exception(
                RpcError(
                    str(error.get("message", "Unknown error")),
                    code=error.get("code"),
                    data=error.get("data"),
                )
            )
        else:
            logger.debug("Response %s id=%d ok", entry.method, request_id)
            entry.future.set_result(response.result)

    def _expire(self, request_id: int) -> None:
        entry = self._pending.pop(request_id, None)
        if entry is None:
            return
        logger.debug("Request %s id=%d timed out after %gs", entry.method, request_id, entry.timeout)
        if not entry.future.done():
            entry.future.set_exception(ACPTimeoutError(entry.timeout, entry.method))

    def _discard(self, request_id: int) -> None:
        entry = self._pending.pop(request_id, None)
        if entry is None:
            return
        if entry.timer is not None:
            entry.timer.cancel()
        if not entry.future.done():
            entry.future.cancel()

    def fail_process(self, process: "AgentProcess", error: ACPError | None = None) -> int:
        """Fail every outstanding request that was written to ``process``.

        Installed as the exit observer of every process in a registry.

        Returns:
            Number of requests failed.
        """
        if error is None:
            error = TransportError(format_process_exit(process.error_context, process.returncode))
        request_ids = [rid for rid, entry in self._pending.items() if entry.process is process]
        for request_id in request_ids:
            self._fail(request_id, error)
        return len(request_ids)

    def fail_all(self, error: ACPError) -> int:
        """Fail every outstanding request (used on shutdown)."""
        request_ids = list(self._pending)
        for request_id in request_ids:
            self._fail(request_id, error)
        return len(request_ids)

    def _fail(self, request_id: int, error: ACPError) -> None:
        entry = self._pending.pop(request_id, None)
        if entry is None:
            return
        if entry.timer is not None:
            entry.timer.cancel()
        if not entry.future.done():
            entry.future.set_exception(error)

    def _dispatch_notification(self, process: "AgentProcess", notification: Notification) -> None:
        params = notification.params or {}
        session_id = params.get("sessionId")
        if isinstance(session_id, str):
            callback = self._session_callbacks.get(session_id)
        else:
            callback = process.notification_callback
        if callback is None:
            logger.debug(
                "Ignoring notification %s for session %r (no callback)",
                notification.method,
                session_id,
            )
            return
        try:
            result = callback(notification.method, notification.params)
        except Exception:
            logger.exception("Error in notification callback for %s", notification.method)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._background.add(task)
            task.add_done_callback(self._on_callback_done)

    def _on_callback_done(self, task: asyncio.Future[Any]) -> None:
        self._background.discard(task)  # type: ignore[arg-type]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Error in notification callback: %s", exc, exc_info=exc)

    def _reject_incoming_request(self, process: "AgentProcess", request: Request) -> None:
        logger.debug("Rejecting agent request %s id=%r", request.method, request.id)
        reply = make_error_response(
            request.id, METHOD_NOT_FOUND, f"Method not found: {request.method}"
        )
        task = asyncio.ensure_future(process.write(reply))
        self._background.add(task)
        task.add_done_callback(self._on_reply_done)

    def _on_reply_done(self, task: asyncio.Future[Any]) -> None:
        self._background.discard(task)  # type: ignore[arg-type]
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Failed to answer agent request: %s", task.exception())
