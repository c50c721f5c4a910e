"""Shared test fixtures."""

from pathlib import Path

import pytest

from schoolbell.config import Child
from schoolbell.content.retry_store import RetryStore
from schoolbell.content.store import ContentStore
from schoolbell.events import EventBus
from schoolbell.scheduler.reminder_store import ReminderStore
from schoolbell.scheduler.store import TaskStore

CHILDREN = [Child(name="Anna", user_id="1001"), Child(name="Bo", user_id="1002")]


@pytest.fixture(autouse=False)
def _no_turso(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure tests use local file, not remote Turso."""
    monkeypatch.setattr("schoolbell.config.settings.turso_database_url", "")


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
def task_store(db_path: Path) -> TaskStore:
    return TaskStore(db_path=db_path)


@pytest.fixture
def reminder_store(db_path: Path) -> ReminderStore:
    return ReminderStore(db_path=db_path)


@pytest.fixture
def content_store(db_path: Path) -> ContentStore:
    return ContentStore(db_path=db_path)


@pytest.fixture
def retry_store(db_path: Path) -> RetryStore:
    return RetryStore(db_path=db_path)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def children() -> list[Child]:
    return list(CHILDREN)


@pytest.fixture
def find_child():
    """Case-insensitive lookup over the test children."""

    def _find(name: str) -> Child | None:
        for child in CHILDREN:
            if child.name.lower() == name.lower():
                return child
        return None

    return _find
