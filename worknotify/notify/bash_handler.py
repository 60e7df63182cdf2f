"""Shell script notification channel.

The script receives ``{"timestamp", "itemCount", "items"}`` as JSON on its
stdin. The built-in script name ``work:log`` writes the same document to a
timestamped file under ``~/.work/notifications/`` instead.
"""

import asyncio
import json
import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from worknotify.acp.transport import resolve_command
from worknotify.config.schema import BashTargetConfig, TargetConfig
from worknotify.core.process import process_group_kwargs, terminate_process_tree
from worknotify.core.types import NotificationResult, WorkItem
from worknotify.notify.service import SendOptions

logger = logging.getLogger(__name__)

BUILTIN_LOG_SCRIPT = "work:log"


def default_log_dir() -> Path:
    return Path.home() / ".work" / "notifications"


def _iso_now() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_payload(work_items: Sequence[WorkItem]) -> dict[str, Any]:
    """Document handed to scripts and written by ``work:log``."""
    return {
        "timestamp": _iso_now(),
        "itemCount": len(work_items),
        "items": [item.to_dict() for item in work_items],
    }


class BashTargetHandler:
    """Runs a script (or the built-in logger) for each notification.

    Args:
        log_dir: Directory used by ``work:log``. Defaults to
            ``~/.work/notifications``.
    """

    def __init__(self, log_dir: Path | None = None) -> None:
        self._log_dir = log_dir

    async def send(
        self,
        work_items: Sequence[WorkItem],
        config: TargetConfig,
        options: SendOptions | None = None,
    ) -> NotificationResult:
        if not isinstance(config, BashTargetConfig):
            return NotificationResult.failed("Invalid config type for BashTargetHandler")

        if config.script == BUILTIN_LOG_SCRIPT:
            return self._write_log(work_items)
        return await self._run_script(config.script, work_items, config.timeout)

    def _write_log(self, work_items: Sequence[WorkItem]) -> NotificationResult:
        log_dir = self._log_dir or default_log_dir()
        payload = build_payload(work_items)
        stamp = payload["timestamp"].replace(":", "-").replace(".", "-")
        path = log_dir / f"notification-{stamp}.json"
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as e:
            return NotificationResult.failed(f"Failed to write log file: {e}")

        logger.debug("Wrote notification log %s", path)
        return NotificationResult.ok(f"Logged {len(work_items)} items to {path}")

    async def _run_script(
        self,
        script: str,
        work_items: Sequence[WorkItem],
        timeout: float,
    ) -> NotificationResult:
        data = json.dumps(build_payload(work_items)).encode("utf-8")

        try:
            process = await asyncio.create_subprocess_exec(
                *resolve_command([script]),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                **process_group_kwargs(),
            )
        except OSError as e:
            return NotificationResult.failed(f"Failed to execute script: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(data), timeout=timeout)
        except TimeoutError:
            await terminate_process_tree(process)
            return NotificationResult.failed(f"Script timed out after {timeout:g}s: {script}")

        out = stdout.decode("utf-8", errors="replace").strip()
        err = stderr.decode("utf-8", errors="replace").strip()
        if process.returncode == 0:
            return NotificationResult.ok(f"Script executed successfully: {out}")
        return NotificationResult.failed(f"Script failed with code {process.returncode}: {err}")

    async def close(self) -> None:
        """Scripts do not outlive a call; nothing to release."""
