"""Tests for target configuration models and the targets file loader."""

import json
from pathlib import Path

import pytest

from worknotify.config import (
    ACPTargetConfig,
    BashTargetConfig,
    TelegramTargetConfig,
    find_target,
    load_targets,
    parse_target_config,
)
from worknotify.core.errors import ConfigError, LoadError


def write_targets(tmp_path: Path, data: object) -> Path:
    path = tmp_path / "targets.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestACPTargetConfig:
    def test_defaults(self) -> None:
        config = ACPTargetConfig(cmd="opencode acp")
        assert config.type == "acp"
        assert config.timeout == 300
        assert config.session_id is None
        assert config.cancel_on_timeout is False
        assert config.debug is None
        assert config.capabilities_payload() == {}

    def test_camel_case_keys(self) -> None:
        config = ACPTargetConfig.model_validate(
            {
                "type": "acp",
                "cmd": "opencode acp",
                "sessionId": "sess-9",
                "systemPrompt": "Be brief.",
                "promptTimeout": 60,
                "cancelOnTimeout": True,
            }
        )
        assert config.session_id == "sess-9"
        assert config.system_prompt == "Be brief."
        assert config.prompt_timeout == 60
        assert config.cancel_on_timeout is True

    def test_prompt_timeout_defaults_to_at_least_900(self) -> None:
        assert ACPTargetConfig(cmd="a").effective_prompt_timeout() == 900
        assert ACPTargetConfig(cmd="a", timeout=1200).effective_prompt_timeout() == 1200
        assert ACPTargetConfig(cmd="a", promptTimeout=5).effective_prompt_timeout() == 5

    def test_blank_cmd_rejected(self) -> None:
        with pytest.raises(ValueError):
            ACPTargetConfig(cmd="  ")

    def test_unknown_key_rejected(self) -> None:
        with pytest.raises(ValueError):
            ACPTargetConfig.model_validate({"cmd": "a", "tmeout": 5})

    def test_callback_not_serialized(self) -> None:
        config = ACPTargetConfig(cmd="a", on_notification=lambda m, p: None)
        assert "on_notification" not in config.model_dump()

    def test_capabilities_payload_omits_unset(self) -> None:
        config = ACPTargetConfig.model_validate(
            {"cmd": "a", "capabilities": {"terminal": {"create": False}, "editor": {}}}
        )
        assert config.capabilities_payload() == {"terminal": {"create": False}, "editor": {}}


class TestParseTargetConfig:
    def test_dispatches_on_type(self) -> None:
        assert isinstance(parse_target_config({"type": "acp", "cmd": "x"}), ACPTargetConfig)
        assert isinstance(parse_target_config({"type": "bash", "script": "work:log"}), BashTargetConfig)
        telegram = parse_target_config({"type": "telegram", "botToken": "t", "chatId": 42})
        assert isinstance(telegram, TelegramTargetConfig)
        assert telegram.chat_id == "42"

    def test_unknown_type(self) -> None:
        with pytest.raises(ConfigError):
            parse_target_config({"type": "email", "to": "a@b.c"})


class TestLoadTargets:
    def test_loads_targets_in_order(self, tmp_path: Path) -> None:
        path = write_targets(
            tmp_path,
            {
                "targets": [
                    {"name": "reviewer", "config": {"type": "acp", "cmd": "opencode acp"}},
                    {"name": "log", "config": {"type": "bash", "script": "work:log"}},
                ]
            },
        )

        targets = load_targets(path)

        assert [t.name for t in targets] == ["reviewer", "log"]
        assert [t.type for t in targets] == ["acp", "bash"]
        assert find_target(targets, "log").config.script == "work:log"

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "targets.json"
        path.write_text("", encoding="utf-8")
        assert load_targets(path) == []

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(LoadError, match="File not found"):
            load_targets(tmp_path / "absent.json")

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "targets.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(LoadError, match="Invalid JSON"):
            load_targets(path)

    def test_validation_failure(self, tmp_path: Path) -> None:
        path = write_targets(tmp_path, {"targets": [{"name": "x", "config": {"type": "bash"}}]})
        with pytest.raises(ConfigError, match="Target #0"):
            load_targets(path)

    def test_duplicate_names(self, tmp_path: Path) -> None:
        entry = {"name": "log", "config": {"type": "bash", "script": "work:log"}}
        path = write_targets(tmp_path, {"targets": [entry, entry]})
        with pytest.raises(ConfigError, match="Duplicate"):
            load_targets(path)

    def test_unknown_target_name(self) -> None:
        with pytest.raises(ConfigError, match="Unknown notification target"):
            find_target([], "missing")
