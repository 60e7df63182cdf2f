"""
Unit tests for the agent subprocess handle.

Covers command splitting and resolution, spawn error reporting, stderr
classification and exit bookkeeping. Subprocesses are short inline Python
scripts run with the current interpreter.
"""

import asyncio
import logging
import sys
from unittest.mock import patch

import pytest

from worknotify.acp.errors import SpawnError, TransportError
from worknotify.acp.protocol import Notification, Request, Response
from worknotify.acp.transport import (
    AgentProcess,
    ProcessState,
    resolve_command,
    split_command,
)


def make_process(command: list[str], cwd: str = ".", **kwargs) -> tuple[AgentProcess, list]:
    received: list = []
    process = AgentProcess(
        key=(" ".join(command), cwd),
        command=command,
        cwd=cwd,
        on_message=lambda proc, msg: received.append(msg),
        **kwargs,
    )
    return process, received


class TestCommandHelpers:
    def test_split_on_whitespace(self) -> None:
        assert split_command("opencode  acp --port 0") == ["opencode", "acp", "--port", "0"]

    def test_split_has_no_quoting(self) -> None:
        assert split_command('"my agent" acp') == ['"my', 'agent"', "acp"]

    def test_blank_command(self) -> None:
        assert split_command("   ") == []

    def test_resolve_unchanged_off_windows(self) -> None:
        with patch("worknotify.acp.transport.sys.platform", "linux"):
            assert resolve_command(["npx", "agent"]) == ["npx", "agent"]

    def test_resolve_uses_which_on_windows(self) -> None:
        with (
            patch("worknotify.acp.transport.sys.platform", "win32"),
            patch("worknotify.acp.transport.shutil.which", return_value=r"C:\node\npx.cmd"),
        ):
            assert resolve_command(["npx", "agent"]) == [r"C:\node\npx.cmd", "agent"]

    def test_resolve_keeps_explicit_extension_on_windows(self) -> None:
        with patch("worknotify.acp.transport.sys.platform", "win32"):
            assert resolve_command(["agent.exe"]) == ["agent.exe"]


class TestLifecycle:
    def test_initial_state(self) -> None:
        process, _ = make_process(["agent"])
        assert process.state is ProcessState.NOT_STARTED
        assert not process.is_alive
        assert process.pid is None

    @pytest.mark.asyncio
    async def test_write_before_start_fails(self) -> None:
        process, _ = make_process(["agent"])
        with pytest.raises(TransportError):
            await process.write(Notification(method="session/cancel"))

    @pytest.mark.asyncio
    async def test_missing_executable(self, tmp_path) -> None:
        process, _ = make_process(["definitely-not-an-agent-xyz", "acp"], cwd=str(tmp_path))

        with pytest.raises(SpawnError) as exc_info:
            await process.start()

        assert "Command not found: definitely-not-an-agent-xyz" in exc_info.value.message
        assert process.state is ProcessState.EXITED

    @pytest.mark.asyncio
    async def test_missing_working_directory(self, tmp_path) -> None:
        missing = tmp_path / "nope"
        process, _ = make_process([sys.executable, "-c", "pass"], cwd=str(missing))

        with pytest.raises(SpawnError) as exc_info:
            await process.start()

        assert str(missing) in exc_info.value.message

    @pytest.mark.asyncio
    async def test_echo_round_trip_and_exit(self) -> None:
        script = (
            "import sys\n"
            "line = sys.stdin.readline()\n"
            "sys.stdout.write(line.replace('\"method\":\"ping\"', '\"result\":{}'))\n"
            "sys.stdout.flush()\n"
        )
        exits: list[AgentProcess] = []
        process, received = make_process(
            [sys.executable, "-c", script], on_exit=exits.append
        )

        await process.start()
        assert process.is_alive
        await process.write(Request(id=1, method="ping"))
        await asyncio.wait_for(process.wait_closed(), timeout=10)

        assert received == [Response(id=1, result={})]
        assert process.state is ProcessState.EXITED
        assert process.returncode == 0
        assert exits == [process]

    @pytest.mark.asyncio
    async def test_write_after_exit_fails(self) -> None:
        process, _ = make_process([sys.executable, "-c", "pass"])
        await process.start()
        await asyncio.wait_for(process.wait_closed(), timeout=10)

        with pytest.raises(TransportError):
            await process.write(Request(id=1, method="initialize"))

    @pytest.mark.asyncio
    async def test_stderr_classified_and_buffered(self, caplog: pytest.LogCaptureFixture) -> None:
        script = (
            "import sys\n"
            "print('INFO service=agent starting', file=sys.stderr)\n"
            "print('error: API key missing', file=sys.stderr)\n"
        )
        process, _ = make_process([sys.executable, "-c", script])

        with caplog.at_level(logging.DEBUG, logger="worknotify.acp.transport"):
            await process.start()
            await asyncio.wait_for(process.wait_closed(), timeout=10)
            await process.close()

        levels = {
            r.getMessage().split(": ", 1)[1]: r.levelno
            for r in caplog.records
            if r.getMessage().startswith("Agent stderr")
        }
        assert levels["INFO service=agent starting"] == logging.DEBUG
        assert levels["error: API key missing"] == logging.WARNING
        assert process.stderr_lines == ["INFO service=agent starting", "error: API key missing"]

    @pytest.mark.unix_only
    @pytest.mark.asyncio
    async def test_close_terminates_running_agent(self) -> None:
        script = "import time\nwhile True: time.sleep(1)\n"
        exits: list[AgentProcess] = []
        process, _ = make_process([sys.executable, "-c", script], on_exit=exits.append)

        await process.start()
        await process.close()

        assert process.state is ProcessState.EXITED
        assert not process.is_alive
        assert exits == [process]
