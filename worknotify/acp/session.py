"""Session protocol driver: the turn sequence that delivers one notification.

Turns, each a request awaited before the next is sent:

    START -> INITIALIZED            initialize
          -> SESSION_READY          session/new (skipped when a sessionId is stored)
          -> SYSTEM_PROMPT_SENT     session/prompt with systemPrompt (new sessions only)
          -> DELIVERED              session/prompt with the rendered work items

Any failure ends the sequence in FAILED. The driver never raises ACP errors;
it reports them in the returned DeliveryOutcome.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from worknotify.acp.errors import ACPError, ACPProtocolError, ACPTimeoutError
from worknotify.acp.pending import RequestTracker
from worknotify.acp.protocol import (
    CLIENT_NAME,
    CLIENT_VERSION,
    METHOD_INITIALIZE,
    METHOD_SESSION_CANCEL,
    METHOD_SESSION_NEW,
    METHOD_SESSION_PROMPT,
    PROTOCOL_VERSION,
)
from worknotify.acp.registry import ProcessRegistry
from worknotify.acp.transport import AgentProcess
from worknotify.config.schema import ACPTargetConfig
from worknotify.core.types import WorkItem

logger = logging.getLogger(__name__)

NO_ITEMS_MESSAGE = "No work items to analyze."


class SessionState(Enum):
    """Progress of one delivery through the turn sequence."""

    START = "start"
    INITIALIZED = "initialized"
    SESSION_READY = "session_ready"
    SYSTEM_PROMPT_SENT = "system_prompt_sent"
    DELIVERED = "delivered"
    FAILED = "failed"


def format_work_item(item: WorkItem) -> str:
    return (
        f"Task: {item.title}\n"
        f"ID: {item.id}\n"
        f"Status: {item.state}\n"
        f"Description: {item.description or 'N/A'}"
    )


def format_work_items(items: Sequence[WorkItem]) -> str:
    """Render work items as the text of the content prompt.

    Items are separated by a blank line; an empty list renders as
    ``NO_ITEMS_MESSAGE``.
    """
    if not items:
        return NO_ITEMS_MESSAGE
    return "\n\n".join(format_work_item(item) for item in items)


def text_prompt(session_id: str, text: str) -> dict[str, Any]:
    """Params of a ``session/prompt`` request carrying a single text block."""
    return {"sessionId": session_id, "prompt": [{"type": "text", "text": text}]}


@dataclass
class DeliveryOutcome:
    """Result of one pass through the turn sequence.

    Attributes:
        state: DELIVERED or FAILED.
        session_id: Session used (or created), if one was reached.
        response: Result of the content prompt when delivered.
        error: The error that ended the sequence when failed.
        reached: Last state completed before the outcome was decided.
    """

    state: SessionState
    session_id: str | None = None
    response: Any = None
    error: Exception | None = None
    reached: SessionState = SessionState.START

    @property
    def success(self) -> bool:
        return self.state is SessionState.DELIVERED


class SessionDriver:
    """Runs the turn sequence against agent processes from a registry."""

    def __init__(self, registry: ProcessRegistry, tracker: RequestTracker) -> None:
        self._registry = registry
        self._tracker = tracker

    async def deliver(self, items: Sequence[WorkItem], config: ACPTargetConfig) -> DeliveryOutcome:
        """Deliver ``items`` to the agent described by ``config``.

        A newly created session id is written back to ``config.session_id``.
        While the prompts run, notifications for the session are routed to
        ``config.on_notification``.

        Args:
            items: Work items to render into the content prompt.
            config: Agent channel configuration.

        Returns:
            DeliveryOutcome in state DELIVERED or FAILED.

        Raises:
            ConfigError: If the command is empty (raised before any I/O).
        """
        state = SessionState.START
        session_id = config.session_id
        callback = config.on_notification
        bound = False
        try:
            process = await self._registry.ensure_process(config)

            await self._tracker.send(
                process,
                METHOD_INITIALIZE,
                {
                    "protocolVersion": PROTOCOL_VERSION,
                    "clientInfo": {"name": CLIENT_NAME, "version": CLIENT_VERSION},
                    "capabilities": config.capabilities_payload(),
                },
                config.timeout,
            )
            state = SessionState.INITIALIZED

            created = False
            if session_id is None:
                session_id = await self._new_session(process, config)
                config.session_id = session_id
                created = True
            else:
                logger.debug("Reusing ACP session %s", session_id)
            state = SessionState.SESSION_READY
            if callback is not None:
                self._tracker.bind_session(session_id, callback)
                bound = True

            if created and config.system_prompt:
                await self._prompt(process, session_id, config.system_prompt, config.timeout, config)
                state = SessionState.SYSTEM_PROMPT_SENT

            response = await self._prompt(
                process,
                session_id,
                format_work_items(items),
                config.effective_prompt_timeout(),
                config,
            )
        except ACPError as e:
            logger.warning("ACP delivery to %r failed after %s: %s", config.cmd, state.value, e)
            return DeliveryOutcome(
                state=SessionState.FAILED,
                session_id=session_id,
                error=e,
                reached=state,
            )
        finally:
            if bound:
                self._tracker.unbind_session(session_id, callback)

        logger.debug("Delivered %d item(s) to session %s", len(items), session_id)
        return DeliveryOutcome(
            state=SessionState.DELIVERED,
            session_id=session_id,
            response=response,
            reached=SessionState.DELIVERED,
        )

    async def _new_session(self, process: AgentProcess, config: ACPTargetConfig) -> str:
        result = await self._tracker.send(
            process,
            METHOD_SESSION_NEW,
            {"cwd": process.cwd, "mcpServers": []},
            config.timeout,
        )
        session_id = result.get("sessionId") if isinstance(result, dict) else None
        if not isinstance(session_id, str) or not session_id:
            raise ACPProtocolError(f"session/new returned no sessionId: {result!r}")
        logger.debug("Created ACP session %s", session_id)
        return session_id

    async def _prompt(
        self,
        process: AgentProcess,
        session_id: str,
        text: str,
        timeout: float,
        config: ACPTargetConfig,
    ) -> Any:
        try:
            return await self._tracker.send(
                process, METHOD_SESSION_PROMPT, text_prompt(session_id, text), timeout
            )
        except ACPTimeoutError:
            if config.cancel_on_timeout:
                await self._cancel(process, session_id)
            raise

    async def _cancel(self, process: AgentProcess, session_id: str) -> None:
        try:
            await self._tracker.notify(process, METHOD_SESSION_CANCEL, {"sessionId": session_id})
            logger.debug("Sent session/cancel for %s", session_id)
        except ACPError as e:
            logger.warning("Could not cancel session %s: %s", session_id, e)
