"""Agent-process (ACP) notification channel."""

import json
import logging
from collections.abc import Sequence

from worknotify.acp.errors import TransportError
from worknotify.acp.pending import RequestTracker
from worknotify.acp.registry import ProcessRegistry
from worknotify.acp.session import DeliveryOutcome, SessionDriver
from worknotify.config.schema import ACPTargetConfig, TargetConfig
from worknotify.core.errors import ConfigError
from worknotify.core.types import NotificationResult, WorkItem
from worknotify.notify.service import SendOptions

logger = logging.getLogger(__name__)

# Characters of the agent's JSON result quoted in the success message
RESPONSE_PREVIEW: int = 200


def summarize_response(response: object) -> str:
    """Success message quoting the start of the agent's result."""
    return f"AI response: {json.dumps(response, default=str)[:RESPONSE_PREVIEW]}..."


class ACPTargetHandler:
    """Delivers work items to an AI agent subprocess over ACP.

    Agent processes are kept alive between calls and reused per
    (command, cwd). Call :meth:`close` (or pass
    ``SendOptions(shutdown_after=True)``) to terminate them.
    """

    def __init__(
        self,
        registry: ProcessRegistry | None = None,
        tracker: RequestTracker | None = None,
    ) -> None:
        self.tracker = tracker or RequestTracker()
        self.registry = registry or ProcessRegistry(
            on_message=self.tracker.handle_message,
            on_exit=self.tracker.fail_process,
        )
        self._driver = SessionDriver(self.registry, self.tracker)

    async def send(
        self,
        work_items: Sequence[WorkItem],
        config: TargetConfig,
        options: SendOptions | None = None,
    ) -> NotificationResult:
        """Deliver ``work_items`` through the agent turn sequence.

        Raises:
            ConfigError: If ``config`` is not an ACP config or its command is
                empty. Every other failure becomes a failed result.
        """
        if not isinstance(config, ACPTargetConfig):
            raise ConfigError("Invalid config type for ACPTargetHandler")

        options = options or SendOptions()
        try:
            outcome = await self._driver.deliver(work_items, config)
        except ConfigError:
            raise
        except Exception as e:
            logger.exception("Unexpected error delivering to agent %r", config.cmd)
            return NotificationResult.failed(str(e))
        finally:
            if options.shutdown_after:
                await self.close()

        return self._to_result(outcome)

    @staticmethod
    def _to_result(outcome: DeliveryOutcome) -> NotificationResult:
        if outcome.success:
            return NotificationResult.ok(summarize_response(outcome.response))
        return NotificationResult.failed(str(outcome.error))

    async def close(self) -> None:
        """Terminate every agent process and fail outstanding requests."""
        await self.registry.close_all()
        failed = self.tracker.fail_all(TransportError("ACP handler closed"))
        if failed:
            logger.debug("Failed %d outstanding request(s) on close", failed)
