"""Agent subprocess handle.

An AgentProcess owns one agent subprocess and its three pipes:
- stdout is read in chunks and fed to a LineDecoder
- stdin receives newline-delimited JSON-RPC messages
- stderr is observed for diagnostics only

Liveness is an explicit three-state enum instead of a "killed" flag so the
registry can never hand out a handle whose exit is already being processed.
"""

import asyncio
import logging
import os
import re
import shutil
import sys
from collections import deque
from collections.abc import Callable
from enum import Enum

from worknotify.acp.error_formatter import format_command_not_found, format_launch_error
from worknotify.acp.errors import ProcessErrorContext, SpawnError, TransportError
from worknotify.acp.protocol import LineDecoder, Message, encode_message
from worknotify.core.process import process_group_kwargs, terminate_process_tree

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE: int = 64 * 1024

# Lines of stderr retained for error messages
STDERR_BUFFER_LINES: int = 20

# Agent stderr lines matching this are routine log output, not problems
INFO_LINE_PATTERN: re.Pattern[str] = re.compile(r"\bINFO\b|service=")

# (command string, working directory)
ProcessKey = tuple[str, str]


class ProcessState(Enum):
    """Lifecycle of an agent subprocess."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    EXITED = "exited"


def split_command(cmd: str) -> list[str]:
    """Split a configured command string on whitespace.

    No shell quoting or escaping is supported: ``"my agent" acp`` becomes
    three arguments. An empty list means the command was blank.
    """
    return cmd.split()


def resolve_command(command: list[str]) -> list[str]:
    """Resolve the executable through PATH/PATHEXT on Windows.

    create_subprocess_exec does not try ``.cmd``/``.bat`` extensions on
    Windows, so ``npx`` must be resolved to ``npx.cmd`` first. On other
    platforms the command is returned unchanged.
    """
    if sys.platform != "win32" or not command:
        return command

    executable = command[0]
    if any(executable.lower().endswith(ext) for ext in (".exe", ".cmd", ".bat", ".com")):
        return command

    resolved = shutil.which(executable)
    if resolved:
        return [resolved] + command[1:]
    return command


class AgentProcess:
    """One running agent subprocess and its stdio plumbing.

    Attributes:
        key: Registry key (command string, working directory).
        command: Command split into program and arguments.
        cwd: Working directory of the subprocess.
        notification_callback: Callback of the config that last obtained
            this handle; receives ``(method, params)`` for notifications
            that carry no session id.
    """

    def __init__(
        self,
        key: ProcessKey,
        command: list[str],
        cwd: str,
        on_message: Callable[["AgentProcess", Message], None],
        on_exit: Callable[["AgentProcess"], None] | None = None,
        debug: bool = False,
    ) -> None:
        self.key = key
        self.command = command
        self.cwd = cwd
        self.notification_callback: Callable[[str, object], object] | None = None
        self._on_message = on_message
        self._on_exit = on_exit
        self._debug = debug
        self._state = ProcessState.NOT_STARTED
        self._process: asyncio.subprocess.Process | None = None
        self._decoder = LineDecoder(self._deliver, debug=debug)
        self._reader_task: asyncio.Task[None] | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._stderr_buffer: deque[str] = deque(maxlen=STDERR_BUFFER_LINES)
        self._write_lock = asyncio.Lock()
        self._exited = asyncio.Event()

    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def is_alive(self) -> bool:
        """True while the subprocess is running and its exit has not been observed."""
        return (
            self._state is ProcessState.RUNNING
            and self._process is not None
            and self._process.returncode is None
        )

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process is not None else None

    @property
    def stderr_lines(self) -> list[str]:
        """Last lines written to stderr, oldest first."""
        return list(self._stderr_buffer)

    @property
    def error_context(self) -> ProcessErrorContext:
        return ProcessErrorContext(
            command=self.command,
            cwd=self.cwd,
            stderr_lines=self.stderr_lines,
        )

    async def start(self) -> None:
        """Spawn the subprocess and start the stdout/stderr readers.

        Raises:
            SpawnError: If the executable is missing or cannot be started.
        """
        if self._state is not ProcessState.NOT_STARTED:
            raise SpawnError(f"Agent process {self.key[0]!r} was already started")

        try:
            self._process = await asyncio.create_subprocess_exec(
                *resolve_command(self.command),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
                **process_group_kwargs(),
            )
        except FileNotFoundError as e:
            self._state = ProcessState.EXITED
            # A missing cwd also surfaces as FileNotFoundError
            if not os.path.isdir(self.cwd):
                raise SpawnError(format_launch_error(self.error_context, e)) from e
            raise SpawnError(format_command_not_found(self.error_context, self.command[0])) from e
        except OSError as e:
            self._state = ProcessState.EXITED
            raise SpawnError(format_launch_error(self.error_context, e)) from e

        self._state = ProcessState.RUNNING
        logger.debug("Spawned agent %s (pid=%s, cwd=%s)", self.command, self.pid, self.cwd)
        self._reader_task = asyncio.create_task(self._read_stdout())
        self._stderr_task = asyncio.create_task(self._read_stderr())

    async def write(self, message: Message) -> None:
        """Write one JSON-RPC message line to the agent's stdin.

        Raises:
            TransportError: If the process is not running or the pipe is broken.
        """
        if not self.is_alive or self._process is None or self._process.stdin is None:
            raise TransportError(
                f"Agent process {' '.join(self.command)!r} is not running"
            )

        data = encode_message(message)
        if self._debug:
            logger.debug("-> %s", data.decode("utf-8").rstrip())
        async with self._write_lock:
            try:
                self._process.stdin.write(data)
                await self._process.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as e:
                raise TransportError(f"Failed to write to agent process: broken pipe ({e})") from e
            except (OSError, RuntimeError) as e:
                raise TransportError(f"Failed to write to agent process: {e}") from e

    async def wait_closed(self) -> None:
        """Wait until the exit of the subprocess has been observed."""
        await self._exited.wait()

    def _deliver(self, message: Message) -> None:
        try:
            self._on_message(self, message)
        except Exception:
            # A faulty consumer must not stop the reader loop
            logger.exception("Error handling message from agent %s", self.command[0])

    async def _read_stdout(self) -> None:
        """Feed stdout chunks to the decoder until EOF, then record the exit."""
        assert self._process is not None and self._process.stdout is not None
        try:
            while True:
                chunk = await self._process.stdout.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                self._decoder.feed(chunk)
        except Exception as e:
            logger.warning("Agent stdout reader failed for %s: %s", self.command[0], e)

        try:
            await self._process.wait()
        except Exception as e:
            logger.debug("Wait for agent exit failed: %s", e)
        self._mark_exited()

    async def _read_stderr(self) -> None:
        """Log stderr lines; routine INFO output only at DEBUG level."""
        if self._process is None or self._process.stderr is None:
            return

        while True:
            try:
                line = await self._process.stderr.readline()
            except Exception as e:
                logger.debug("Stderr reader stopped: %s", e)
                break
            if not line:
                break
            text = line.decode("utf-8", errors="replace").rstrip()
            if not text:
                continue
            self._stderr_buffer.append(text)
            if INFO_LINE_PATTERN.search(text):
                logger.debug("Agent stderr [%s]: %s", self.command[0], text)
            else:
                logger.warning("Agent stderr [%s]: %s", self.command[0], text)

    def _mark_exited(self) -> None:
        if self._state is ProcessState.EXITED:
            return
        self._state = ProcessState.EXITED
        self._exited.set()
        code = self.returncode
        if code not in (0, None):
            logger.warning("Agent process %s exited with code %s", self.command[0], code)
        else:
            logger.debug("Agent process %s exited with code %s", self.command[0], code)
        if self._on_exit is not None:
            try:
                self._on_exit(self)
            except Exception:
                logger.exception("Error in exit observer for agent %s", self.command[0])

    async def close(self) -> None:
        """Terminate the subprocess and stop its readers.

        Closing stdin first gives a well-behaved agent the chance to exit on
        EOF; the process tree is then terminated if it is still running.
        """
        process = self._process
        if process is None:
            self._state = ProcessState.EXITED
            self._exited.set()
            return

        if process.stdin is not None and not process.stdin.is_closing():
            try:
                process.stdin.close()
            except Exception as e:
                logger.debug("Stdin close error (expected during shutdown): %s", e)

        if process.returncode is None:
            try:
                await asyncio.wait_for(process.wait(), timeout=0.5)
            except TimeoutError:
                await terminate_process_tree(process)

        for task in (self._reader_task, self._stderr_task):
            if task is None or task.done():
                continue
            try:
                await asyncio.wait_for(task, timeout=1.0)
            except TimeoutError:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
            except Exception as e:
                logger.debug("Reader task ended with error during close: %s", e)

        self._mark_exited()

    def __repr__(self) -> str:
        return f"AgentProcess(command={self.command!r}, cwd={self.cwd!r}, state={self._state.value})"
