"""Notification dispatch across channel types.

Every channel handler implements the same ``send`` contract and returns a
NotificationResult instead of raising. NotificationService maps target
types to handlers and guarantees that contract even for faulty handlers.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from worknotify.config.schema import NotificationTarget, TargetConfig
from worknotify.core.types import NotificationResult, WorkItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendOptions:
    """Per-call options for a channel handler.

    Attributes:
        shutdown_after: Terminate the handler's subprocesses once the call
            completes. For one-shot callers such as a CLI invocation.
    """

    shutdown_after: bool = False


@runtime_checkable
class TargetHandler(Protocol):
    """Interface implemented by every channel handler."""

    async def send(
        self,
        work_items: Sequence[WorkItem],
        config: TargetConfig,
        options: SendOptions | None = None,
    ) -> NotificationResult: ...

    async def close(self) -> None: ...


class NotificationService:
    """Routes notifications to the handler registered for the target type."""

    def __init__(self) -> None:
        self._handlers: dict[str, TargetHandler] = {}

    def register_handler(self, target_type: str, handler: TargetHandler) -> None:
        """Register (or replace) the handler for ``target_type``."""
        self._handlers[target_type] = handler
        logger.debug("Registered %s handler for %r", type(handler).__name__, target_type)

    def get_handler(self, target_type: str) -> TargetHandler | None:
        return self._handlers.get(target_type)

    def get_supported_types(self) -> list[str]:
        return list(self._handlers)

    async def send_notification(
        self,
        work_items: Sequence[WorkItem],
        target: NotificationTarget,
        options: SendOptions | None = None,
    ) -> NotificationResult:
        """Send ``work_items`` to ``target``.

        Never raises: a missing handler or any exception from the handler is
        reported as a failed result.
        """
        handler = self._handlers.get(target.type)
        if handler is None:
            return NotificationResult.failed(
                f"No handler registered for target type: {target.type}"
            )

        try:
            result = await handler.send(work_items, target.config, options)
        except Exception as e:
            logger.warning("Notification to %r failed: %s", target.name, e)
            return NotificationResult.failed(str(e))

        if result.success:
            logger.info("Notified %r: %s", target.name, result.message)
        else:
            logger.warning("Notification to %r failed: %s", target.name, result.error)
        return result

    async def close(self) -> None:
        """Close every registered handler."""
        for target_type, handler in self._handlers.items():
            try:
                await handler.close()
            except Exception as e:
                logger.warning("Error closing %r handler: %s", target_type, e)


def create_default_service() -> NotificationService:
    """Create a service with the built-in acp, bash and telegram handlers."""
    from worknotify.notify.acp_handler import ACPTargetHandler
    from worknotify.notify.bash_handler import BashTargetHandler
    from worknotify.notify.telegram_handler import TelegramTargetHandler

    service = NotificationService()
    service.register_handler("acp", ACPTargetHandler())
    service.register_handler("bash", BashTargetHandler())
    service.register_handler("telegram", TelegramTargetHandler())
    return service
