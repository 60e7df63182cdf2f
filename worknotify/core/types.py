"""Core types for worknotify.

Defines the work item read by every notification channel and the result
every channel returns. Both are frozen dataclasses: channels only read items
and results are never mutated after they are produced.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class WorkItem:
    """A task, bug, epic or story selected for notification.

    Only ``id``, ``title``, ``state`` and ``description`` are interpreted by
    the agent channel. The remaining fields travel along so that channels
    which serialize whole items (the bash channel) keep them.

    Attributes:
        id: Work item identifier (e.g. "TASK-123").
        title: Short human-readable title.
        state: Lifecycle state ("new", "active", "closed", ...).
        description: Optional long description.
        kind: Item kind ("task", "bug", "epic", "story").
        priority: Priority ("low", "medium", "high", "critical").
        assignee: Optional assignee handle.
        labels: Free-form labels.
        created_at: ISO 8601 creation timestamp.
        updated_at: ISO 8601 last-update timestamp.
        closed_at: ISO 8601 close timestamp, if closed.
    """

    id: str
    title: str
    state: str
    description: str | None = None
    kind: str = "task"
    priority: str = "medium"
    assignee: str | None = None
    labels: tuple[str, ...] = field(default_factory=tuple)
    created_at: str | None = None
    updated_at: str | None = None
    closed_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase JSON shape used by external scripts."""
        data: dict[str, Any] = {
            "id": self.id,
            "kind": self.kind,
            "title": self.title,
            "state": self.state,
            "priority": self.priority,
            "labels": list(self.labels),
        }
        optional = {
            "description": self.description,
            "assignee": self.assignee,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "closedAt": self.closed_at,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorkItem":
        """Create from the camelCase JSON shape."""
        return cls(
            id=data["id"],
            title=data["title"],
            state=data["state"],
            description=data.get("description"),
            kind=data.get("kind", "task"),
            priority=data.get("priority", "medium"),
            assignee=data.get("assignee"),
            labels=tuple(data.get("labels", ())),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
            closed_at=data.get("closedAt"),
        )


@dataclass(frozen=True)
class NotificationResult:
    """Outcome of delivering a notification to one channel.

    Exactly one of ``message`` (on success) or ``error`` (on failure) is set.

    Attributes:
        success: Whether the channel accepted the notification.
        message: Human-readable description of what was delivered.
        error: Human-readable failure reason.
    """

    success: bool
    message: str | None = None
    error: str | None = None

    @classmethod
    def ok(cls, message: str) -> "NotificationResult":
        """Build a successful result."""
        return cls(success=True, message=message)

    @classmethod
    def failed(cls, error: str) -> "NotificationResult":
        """Build a failed result."""
        return cls(success=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dict, omitting unset fields."""
        data: dict[str, Any] = {"success": self.success}
        if self.message is not None:
            data["message"] = self.message
        if self.error is not None:
            data["error"] = self.error
        return data
