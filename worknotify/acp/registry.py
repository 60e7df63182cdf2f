"""Registry of agent subprocesses.

One subprocess is kept per distinct (command, working directory) pair and
reused across notifications. Dead processes are evicted automatically by
their exit observer; the next ``ensure_process`` call for the same key
spawns a fresh one.

Usage:
    tracker = RequestTracker()
    registry = ProcessRegistry(
        on_message=tracker.handle_message,
        on_exit=tracker.fail_process,
    )
    process = await registry.ensure_process(config)
    result = await tracker.send(process, "initialize", {...}, timeout=300)

    # Clean up
    await registry.close_all()
"""

import asyncio
import logging
import os
from collections.abc import Callable

from worknotify.acp.protocol import Message
from worknotify.acp.transport import AgentProcess, ProcessKey, split_command
from worknotify.config.schema import ACPTargetConfig
from worknotify.core.errors import ConfigError
from worknotify.core.logging_setup import debug_enabled

logger = logging.getLogger(__name__)


def process_key(config: ACPTargetConfig) -> ProcessKey:
    """Registry key for a config: the command string and its effective cwd."""
    return (config.cmd, config.cwd or os.getcwd())


class ProcessRegistry:
    """Owns every agent subprocess of one channel handler.

    Spawning is serialized by one lock per key, so concurrent callers asking
    for the same key share one process while other keys spawn independently.
    """

    def __init__(
        self,
        on_message: Callable[[AgentProcess, Message], None],
        on_exit: Callable[[AgentProcess], object] | None = None,
    ) -> None:
        """Initialize an empty registry.

        Args:
            on_message: Receives every decoded message from every process.
            on_exit: Called after a process has exited and been evicted.
        """
        self._on_message = on_message
        self._on_exit = on_exit
        self._processes: dict[ProcessKey, AgentProcess] = {}
        self._spawn_locks: dict[ProcessKey, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._processes)

    def __contains__(self, key: object) -> bool:
        return key in self._processes

    def get(self, key: ProcessKey) -> AgentProcess | None:
        """Return the registered process for ``key``, if any."""
        return self._processes.get(key)

    def list_processes(self) -> list[AgentProcess]:
        return list(self._processes.values())

    async def ensure_process(self, config: ACPTargetConfig) -> AgentProcess:
        """Return a live process for ``config``, spawning one if needed.

        The returned handle's notification callback is set to the config's
        ``on_notification``. It receives notifications that carry no session
        id; session-scoped ones are routed by the RequestTracker.

        Args:
            config: Agent channel configuration.

        Returns:
            A running AgentProcess.

        Raises:
            ConfigError: If the command is empty.
            SpawnError: If the subprocess cannot be started.
        """
        command = split_command(config.cmd)
        if not command:
            raise ConfigError("ACP target config requires a non-empty 'cmd'")

        key = process_key(config)
        process = self._live(key)
        if process is None:
            async with self._spawn_locks.setdefault(key, asyncio.Lock()):
                process = self._live(key)
                if process is None:
                    process = await self._spawn(key, command, config)

        process.notification_callback = config.on_notification
        return process

    def _live(self, key: ProcessKey) -> AgentProcess | None:
        process = self._processes.get(key)
        if process is not None and not process.is_alive:
            logger.debug("Discarding dead agent process for %s", key)
            self._processes.pop(key, None)
            return None
        return process

    async def _spawn(
        self,
        key: ProcessKey,
        command: list[str],
        config: ACPTargetConfig,
    ) -> AgentProcess:
        debug = config.debug if config.debug is not None else debug_enabled()
        process = AgentProcess(
            key=key,
            command=command,
            cwd=key[1],
            on_message=self._on_message,
            on_exit=self._evict,
            debug=debug,
        )
        await process.start()
        self._processes[key] = process
        logger.info("Started agent %r in %s (pid=%s)", config.cmd, key[1], process.pid)
        return process

    def _evict(self, process: AgentProcess) -> None:
        # A replacement may already be registered under the same key
        if self._processes.get(process.key) is process:
            del self._processes[process.key]
            logger.debug("Evicted agent process %r", process)
        if self._on_exit is not None:
            self._on_exit(process)

    async def close_all(self) -> None:
        """Terminate every registered process and clear the map."""
        processes = list(self._processes.values())
        self._processes.clear()
        for process in processes:
            try:
                await process.close()
            except Exception as e:
                logger.warning("Error closing agent process %r: %s", process, e)
