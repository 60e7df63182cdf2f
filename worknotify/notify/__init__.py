"""Notification channels and the dispatcher that routes to them."""

from worknotify.notify.acp_handler import ACPTargetHandler
from worknotify.notify.bash_handler import BashTargetHandler
from worknotify.notify.service import (
    NotificationService,
    SendOptions,
    TargetHandler,
    create_default_service,
)
from worknotify.notify.telegram_handler import TelegramTargetHandler

__all__ = [
    "ACPTargetHandler",
    "BashTargetHandler",
    "NotificationService",
    "SendOptions",
    "TargetHandler",
    "TelegramTargetHandler",
    "create_default_service",
]
