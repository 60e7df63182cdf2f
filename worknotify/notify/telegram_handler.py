"""Telegram Bot API notification channel."""

import logging
from collections.abc import Sequence

import httpx

from worknotify.config.schema import TargetConfig, TelegramTargetConfig
from worknotify.core.types import NotificationResult, WorkItem
from worknotify.notify.service import SendOptions

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"
DEFAULT_TIMEOUT = 30.0

HEADER = "<b>📋 Work Items Update</b>"

_STATE_EMOJI = {
    "open": "🆕",
    "new": "🆕",
    "in_progress": "🔄",
    "active": "🔄",
    "done": "✅",
    "closed": "✅",
    "blocked": "🚫",
}
_DEFAULT_EMOJI = "📝"


def escape_html(text: str) -> str:
    """Escape the characters Telegram's HTML parse mode treats specially."""
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def state_emoji(state: str) -> str:
    return _STATE_EMOJI.get(state.lower(), _DEFAULT_EMOJI)


def format_message(work_items: Sequence[WorkItem]) -> str:
    """Render work items as a Telegram HTML message."""
    if not work_items:
        return f"{HEADER}\n\nNo items to report."

    count = len(work_items)
    header = f"{HEADER}\n<i>{count} item{'' if count == 1 else 's'}</i>\n"
    items = "\n\n".join(
        f"{index}. {state_emoji(item.state)} <b>{escape_html(item.title)}</b>\n"
        f"   ID: <code>{escape_html(item.id)}</code>"
        for index, item in enumerate(work_items, start=1)
    )
    return f"{header}\n{items}"


class TelegramTargetHandler:
    """Posts work item summaries to a Telegram chat.

    Args:
        api_base: Bot API base URL.
        timeout: HTTP timeout in seconds.
        transport: Optional httpx transport (tests pass a MockTransport).
    """

    def __init__(
        self,
        api_base: str = TELEGRAM_API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def send(
        self,
        work_items: Sequence[WorkItem],
        config: TargetConfig,
        options: SendOptions | None = None,
    ) -> NotificationResult:
        if not isinstance(config, TelegramTargetConfig):
            return NotificationResult.failed("Invalid config type for TelegramTargetHandler")

        message = format_message(work_items)
        return await self._send_message(config.bot_token, config.chat_id, message)

    async def _send_message(self, bot_token: str, chat_id: str, text: str) -> NotificationResult:
        url = f"{self._api_base}/bot{bot_token}/sendMessage"
        payload = {"chat_id": chat_id, "text": text, "parse_mode": "HTML"}

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            return NotificationResult.failed(f"Failed to send Telegram message: {e}")

        if not response.is_success:
            return NotificationResult.failed(_api_error(response))

        logger.debug("Telegram accepted message for chat %s", chat_id)
        return NotificationResult.ok(f"Sent notification to Telegram chat {chat_id}")

    async def close(self) -> None:
        """Nothing to release; clients are per request."""


def _api_error(response: httpx.Response) -> str:
    description = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        description = body.get("description")

    error = f"Telegram API error: {response.status_code} {response.reason_phrase}"
    if description:
        error += f" - {description}"
    return error
