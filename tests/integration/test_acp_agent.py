"""Integration tests for the ACP channel against the stub agent subprocess."""

import asyncio
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any

import pytest

from worknotify.config.schema import ACPTargetConfig, NotificationTarget
from worknotify.notify import ACPTargetHandler, SendOptions, create_default_service

REPO_ROOT = Path(__file__).resolve().parents[2]

pytestmark = pytest.mark.skipif(
    " " in sys.executable or " " in str(REPO_ROOT),
    reason="agent command lines are split on whitespace",
)


def agent_cmd(*flags: str) -> str:
    return " ".join([sys.executable, "-m", "worknotify.acp.test_agent", *flags])


def agent_config(*flags: str, **kwargs: Any) -> ACPTargetConfig:
    return ACPTargetConfig(cmd=agent_cmd(*flags), cwd=str(REPO_ROOT), **kwargs)


async def read_record(path: Path, predicate, timeout: float = 5.0) -> list[dict[str, Any]]:
    """Poll the agent's record file until a message satisfies ``predicate``."""
    deadline = time.monotonic() + timeout
    while True:
        messages = []
        if path.exists():
            messages = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
        if any(predicate(m) for m in messages) or time.monotonic() > deadline:
            return messages
        await asyncio.sleep(0.05)


@pytest.fixture
async def handler():
    handler = ACPTargetHandler()
    yield handler
    await handler.close()


class TestDelivery:
    @pytest.mark.asyncio
    async def test_full_turn_sequence(self, handler, work_items) -> None:
        notifications: list[tuple[str, Any]] = []
        config = agent_config(on_notification=lambda m, p: notifications.append((m, p)))

        result = await handler.send(work_items, config)

        assert result.success, result.error
        assert result.message.startswith('AI response: {"stopReason": "end_turn"}')
        assert config.session_id is not None and config.session_id.startswith("sess-")
        assert [m for m, _ in notifications] == ["session/update"]
        assert notifications[0][1]["sessionId"] == config.session_id

    @pytest.mark.asyncio
    async def test_process_and_session_reused(self, handler, work_items, tmp_path) -> None:
        record = tmp_path / "record.jsonl"
        config = agent_config("--record", str(record), systemPrompt="You triage work items.")

        first = await handler.send(work_items, config)
        process = next(iter(handler.registry.list_processes()))
        second = await handler.send(work_items, config)

        assert first.success and second.success
        assert handler.registry.list_processes() == [process]

        messages = await read_record(record, lambda m: False, timeout=0.2)
        methods = [m.get("method") for m in messages]
        assert methods == [
            "initialize",
            "session/new",
            "session/prompt",
            "session/prompt",
            "initialize",
            "session/prompt",
        ]

    @pytest.mark.asyncio
    async def test_default_service_routes_to_agent(self, work_items) -> None:
        service = create_default_service()
        target = NotificationTarget(name="reviewer", config=agent_config())
        try:
            result = await service.send_notification(work_items, target)
        finally:
            await service.close()

        assert result.success, result.error

    @pytest.mark.asyncio
    async def test_shutdown_after(self, handler, work_items) -> None:
        result = await handler.send(work_items, agent_config(), SendOptions(shutdown_after=True))

        assert result.success
        assert len(handler.registry) == 0


class TestFailures:
    @pytest.mark.asyncio
    async def test_prompt_timeout(self, handler, work_items) -> None:
        config = agent_config("--hang", "session/prompt", promptTimeout=0.3)

        result = await handler.send(work_items, config)

        assert not result.success
        assert "0.3" in result.error
        # The agent keeps running; only the request was abandoned
        assert len(handler.registry) == 1

    @pytest.mark.asyncio
    async def test_cancel_on_timeout(self, handler, work_items, tmp_path) -> None:
        record = tmp_path / "record.jsonl"
        config = agent_config(
            "--hang", "session/prompt", "--record", str(record),
            promptTimeout=0.3, cancelOnTimeout=True,
        )

        result = await handler.send(work_items, config)

        assert not result.success
        messages = await read_record(record, lambda m: m.get("method") == "session/cancel")
        cancel = [m for m in messages if m.get("method") == "session/cancel"]
        assert cancel == [
            {"jsonrpc": "2.0", "method": "session/cancel", "params": {"sessionId": config.session_id}}
        ]

    @pytest.mark.asyncio
    async def test_rpc_error(self, handler, work_items) -> None:
        result = await handler.send(work_items, agent_config("--error", "initialize"))

        assert not result.success
        assert result.error == "Test agent refused initialize"

    @pytest.mark.asyncio
    async def test_agent_exit_fails_request_immediately(self, handler, work_items) -> None:
        config = agent_config("--exit-on", "session/new", timeout=30)

        started = time.monotonic()
        result = await handler.send(work_items, config)

        assert not result.success
        assert "exited with code 3" in result.error
        assert time.monotonic() - started < 10
        assert len(handler.registry) == 0

    @pytest.mark.asyncio
    async def test_missing_command(self, handler, work_items) -> None:
        config = ACPTargetConfig(cmd="definitely-not-an-agent-xyz acp")

        result = await handler.send(work_items, config)

        assert not result.success
        assert "Command not found: definitely-not-an-agent-xyz" in result.error


class TestAgentOutput:
    @pytest.mark.asyncio
    async def test_agent_requests_are_rejected(self, handler, work_items, tmp_path) -> None:
        record = tmp_path / "record.jsonl"
        config = agent_config("--ask-permission", "--record", str(record))

        result = await handler.send(work_items, config)

        assert result.success
        messages = await read_record(record, lambda m: m.get("id") == "perm-1")
        reply = next(m for m in messages if m.get("id") == "perm-1")
        assert reply["error"]["code"] == -32601

    @pytest.mark.asyncio
    async def test_stray_stdout_tolerated_and_logged_in_debug(
        self, handler, work_items, caplog: pytest.LogCaptureFixture
    ) -> None:
        config = agent_config("--noise", debug=True)

        with caplog.at_level(logging.DEBUG, logger="worknotify"):
            result = await handler.send(work_items, config)

        assert result.success
        assert "Thinking about the work items..." in caplog.text
