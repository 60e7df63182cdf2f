"""Logging configuration for worknotify.

Library modules only create ``logging.getLogger(__name__)`` loggers; hosts
that want output call :func:`configure_logging` once at startup.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

logger = logging.getLogger(__name__)

DEBUG_ENV_VARS: tuple[str, ...] = ("WORK_DEBUG", "DEBUG")

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def debug_enabled() -> bool:
    """Return True when protocol debug output was requested via the environment.

    Any non-empty value of ``WORK_DEBUG`` or ``DEBUG`` other than "0" or
    "false" enables it.
    """
    for name in DEBUG_ENV_VARS:
        value = os.environ.get(name, "").strip().lower()
        if value and value not in ("0", "false", "no", "off"):
            return True
    return False


def configure_logging(
    log_file: Path | None = None,
    level: int = logging.INFO,
    console_level: int = logging.WARNING,
) -> Path | None:
    """Configure the ``worknotify`` namespace logger.

    Attaches a stderr console handler and, when ``log_file`` is given, a
    rotating file handler. Existing handlers are replaced so repeated calls
    do not duplicate output, and records do not propagate to the root logger.

    Args:
        log_file: Optional path of the log file. Its directory is created.
        level: Level for file output (default INFO).
        console_level: Level for console output (default WARNING, DEBUG when
            ``WORK_DEBUG``/``DEBUG`` is set).

    Returns:
        The log file path, or None when logging to the console only.
    """
    if debug_enabled():
        console_level = logging.DEBUG

    package_logger = logging.getLogger("worknotify")
    package_logger.handlers.clear()
    package_logger.propagate = False

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%H:%M:%S"))
    package_logger.addHandler(console_handler)

    effective = console_level
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=5 * 1024 * 1024,  # 5MB
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        package_logger.addHandler(file_handler)
        effective = min(level, console_level)

    package_logger.setLevel(effective)
    logger.debug("Logging configured (file=%s)", log_file)
    return log_file
