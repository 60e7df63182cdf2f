"""Shared pytest fixtures and configuration for pytest."""

import sys

import pytest

from worknotify.core.types import WorkItem


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for platform-specific tests."""
    config.addinivalue_line("markers", "unix_only: mark test to run only on Unix")


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Auto-skip tests based on platform markers."""
    skip_unix = pytest.mark.skip(reason="Unix-only test")

    for item in items:
        if "unix_only" in item.keywords and sys.platform == "win32":
            item.add_marker(skip_unix)


@pytest.fixture(autouse=True)
def _no_debug_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's WORK_DEBUG/DEBUG from changing test behaviour."""
    monkeypatch.delenv("WORK_DEBUG", raising=False)
    monkeypatch.delenv("DEBUG", raising=False)


@pytest.fixture
def work_items() -> list[WorkItem]:
    """Two work items in different states."""
    return [
        WorkItem(id="TASK-1", title="Fix login", state="active", description="Users cannot log in"),
        WorkItem(id="TASK-2", title="Write docs", state="new"),
    ]
