"""Subprocess spawn flags and process-tree termination.

Agent processes are started in their own process group (Unix) or with a
new process group flag (Windows) so shutdown can reach the children an
agent spawns for itself:
- Unix: SIGTERM to the group -> wait -> SIGKILL to the group
- Windows: CTRL_BREAK_EVENT -> wait -> taskkill /T /F -> kill
"""

import asyncio
import logging
import os
import signal
import subprocess
import sys
from asyncio.subprocess import Process
from typing import Any

logger = logging.getLogger(__name__)

GRACEFUL_TIMEOUT: float = 2.0

if sys.platform == "win32":
    WINDOWS_CREATIONFLAGS = (
        subprocess.CREATE_NEW_PROCESS_GROUP |
        subprocess.CREATE_NO_WINDOW
    )
else:
    WINDOWS_CREATIONFLAGS = 0


def process_group_kwargs() -> dict[str, Any]:
    """Return the platform-specific keyword arguments for create_subprocess_exec."""
    if sys.platform == "win32":
        return {"creationflags": WINDOWS_CREATIONFLAGS}
    return {"start_new_session": True}


async def terminate_process_tree(
    process: Process,
    graceful_timeout: float = GRACEFUL_TIMEOUT,
) -> None:
    """Terminate a process and all of its children.

    Graceful termination is attempted first; after ``graceful_timeout``
    seconds the whole tree is killed. Safe to call on a process that has
    already exited.

    Args:
        process: The asyncio subprocess to terminate.
        graceful_timeout: Seconds to wait before escalating to a forceful kill.
    """
    if process.returncode is not None or process.pid is None:
        return

    if sys.platform == "win32":
        await _terminate_windows(process, process.pid, graceful_timeout)
    else:
        await _terminate_unix(process, process.pid, graceful_timeout)


async def _wait(process: Process, timeout: float) -> bool:
    try:
        await asyncio.wait_for(process.wait(), timeout=timeout)
        return True
    except TimeoutError:
        return False


def _signal_group(process: Process, pid: int, sig: signal.Signals) -> None:
    try:
        pgid = os.getpgid(pid)
        os.killpg(pgid, sig)
        logger.debug("Sent %s to process group %d", sig.name, pgid)
    except (ProcessLookupError, PermissionError, OSError):
        # No group (or not ours): fall back to the single process
        try:
            process.send_signal(sig)
        except ProcessLookupError:
            pass


async def _terminate_unix(process: Process, pid: int, graceful_timeout: float) -> None:
    _signal_group(process, pid, signal.SIGTERM)
    if await _wait(process, graceful_timeout):
        return

    _signal_group(process, pid, signal.SIGKILL)
    try:
        await process.wait()
    except Exception as e:
        logger.debug("Wait after SIGKILL failed for PID %d: %s", pid, e)


async def _terminate_windows(process: Process, pid: int, graceful_timeout: float) -> None:
    try:
        os.kill(pid, signal.CTRL_BREAK_EVENT)  # type: ignore[attr-defined]
        logger.debug("Sent CTRL_BREAK_EVENT to process %d", pid)
    except (ProcessLookupError, OSError, AttributeError):
        pass
    if await _wait(process, graceful_timeout):
        return

    try:
        taskkill = await asyncio.create_subprocess_exec(
            "taskkill", "/T", "/F", "/PID", str(pid),
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
            creationflags=WINDOWS_CREATIONFLAGS,
        )
        await asyncio.wait_for(taskkill.wait(), timeout=graceful_timeout)
    except (FileNotFoundError, TimeoutError, OSError) as e:
        logger.debug("taskkill failed for PID %d: %s", pid, e)
    if await _wait(process, 0.5):
        return

    try:
        process.kill()
    except ProcessLookupError:
        return
    try:
        await process.wait()
    except Exception as e:
        logger.debug("Wait after kill failed for PID %d: %s", pid, e)
