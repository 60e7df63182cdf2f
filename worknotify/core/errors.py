"""Typed exception hierarchy for worknotify."""


class NotifyError(Exception):
    """Base class for all worknotify errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigError(NotifyError):
    """Raised for channel configuration issues (wrong type, missing fields, validation failure).

    This is the only error a direct caller of a channel handler is expected to
    observe; it is raised before any process or network I/O happens.
    """


class LoadError(NotifyError):
    """Raised when a target definition file cannot be read or parsed."""
