"""Loading of named notification targets from JSON files.

A targets file looks like::

    {
      "targets": [
        {"name": "reviewer", "config": {"type": "acp", "cmd": "opencode acp"}},
        {"name": "log", "config": {"type": "bash", "script": "work:log"}}
      ]
    }
"""

import logging
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from worknotify.config.load_utils import load_json_file
from worknotify.config.schema import NotificationTarget, TargetConfig
from worknotify.core.errors import ConfigError

logger = logging.getLogger(__name__)

_TARGET_CONFIG_ADAPTER: TypeAdapter[TargetConfig] = TypeAdapter(TargetConfig)


def parse_target_config(data: object) -> TargetConfig:
    """Validate one channel configuration object.

    Raises:
        ConfigError: If the object is not a valid acp/bash/telegram config.
    """
    try:
        return _TARGET_CONFIG_ADAPTER.validate_python(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid target config: {e}") from e


def load_targets(path: Path) -> list[NotificationTarget]:
    """Load and validate every target declared in ``path``.

    Args:
        path: JSON file with a top-level ``targets`` array.

    Returns:
        Targets in file order. An empty file yields an empty list.

    Raises:
        LoadError: If the file is missing, unreadable or not a JSON object.
        ConfigError: If a target fails validation or names are duplicated.
    """
    data = load_json_file(path, error_context="targets")
    raw_targets = data.get("targets", [])
    if not isinstance(raw_targets, list):
        raise ConfigError(f"'targets' in {path} must be an array")

    targets: list[NotificationTarget] = []
    seen: set[str] = set()
    for index, raw in enumerate(raw_targets):
        try:
            target = NotificationTarget.model_validate(raw)
        except ValidationError as e:
            raise ConfigError(f"Target #{index} in {path} failed validation: {e}") from e
        if target.name in seen:
            raise ConfigError(f"Duplicate target name {target.name!r} in {path}")
        seen.add(target.name)
        targets.append(target)

    logger.debug("Loaded %d target(s) from %s", len(targets), path)
    return targets


def find_target(targets: list[NotificationTarget], name: str) -> NotificationTarget:
    """Return the target called ``name``.

    Raises:
        ConfigError: If no target has that name.
    """
    for target in targets:
        if target.name == name:
            return target
    available = ", ".join(t.name for t in targets) or "(none)"
    raise ConfigError(f"Unknown notification target {name!r}. Available: {available}")
