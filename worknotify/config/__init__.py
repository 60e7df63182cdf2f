"""Target configuration models and loading."""

from worknotify.config.loader import find_target, load_targets, parse_target_config
from worknotify.config.schema import (
    ACPCapabilities,
    ACPTargetConfig,
    BashTargetConfig,
    NotificationTarget,
    TargetConfig,
    TelegramTargetConfig,
)

__all__ = [
    "ACPCapabilities",
    "ACPTargetConfig",
    "BashTargetConfig",
    "NotificationTarget",
    "TargetConfig",
    "TelegramTargetConfig",
    "find_target",
    "load_targets",
    "parse_target_config",
]
