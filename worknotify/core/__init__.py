"""Core types, errors and process utilities."""

from worknotify.core.errors import ConfigError, LoadError, NotifyError
from worknotify.core.logging_setup import configure_logging, debug_enabled
from worknotify.core.types import NotificationResult, WorkItem

__all__ = [
    "ConfigError",
    "LoadError",
    "NotifyError",
    "NotificationResult",
    "WorkItem",
    "configure_logging",
    "debug_enabled",
]
