"""TaskStore — libsql CRUD for scheduled tasks."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from schoolbell.db import Store
from schoolbell.scheduler.models import ScheduledTask

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, name, description, cron_expression, task_type, reminder_id, enabled, "
    "last_run, next_run, created_at, updated_at"
)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS scheduled_tasks (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    description TEXT NOT NULL DEFAULT '',
    cron_expression TEXT NOT NULL,
    task_type TEXT NOT NULL DEFAULT 'hardcoded',
    reminder_id TEXT,
    enabled INTEGER NOT NULL DEFAULT 1,
    last_run TEXT,
    next_run TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""

_CREATE_INDEX = (
    "CREATE INDEX IF NOT EXISTS idx_scheduled_tasks_task_type ON scheduled_tasks(task_type)"
)


class TaskStore(Store):
    """Persists scheduled tasks.

    Pass an explicit *db_path* for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    _SCHEMA = (_CREATE_TABLE, _CREATE_INDEX)

    async def add_task(self, task: ScheduledTask) -> ScheduledTask:
        """Insert a new task.

        A task without ``last_run`` gets ``last_run = now`` so it does not
        fire, or count as missed, the moment it is created.
        """
        now = datetime.now(UTC)
        task.created_at = now
        task.updated_at = now
        if task.last_run is None:
            task.last_run = now
        async with self._connect() as db:
            await db.execute(
                f"INSERT INTO scheduled_tasks ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                task.to_row(),
            )
            await db.commit()
        logger.info("Added scheduled task: %s (%s)", task.name, task.id)
        return task

    async def ensure_task(self, task: ScheduledTask) -> bool:
        """Insert *task* unless a task with the same name exists. Returns True if inserted."""
        if await self.get_task_by_name(task.name) is not None:
            return False
        await self.add_task(task)
        return True

    async def get_task(self, task_id: str) -> ScheduledTask | None:
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM scheduled_tasks WHERE id = ?", (task_id,)
            )
            row = await cursor.fetchone()
        return ScheduledTask.from_row(row) if row else None

    async def get_task_by_name(self, name: str) -> ScheduledTask | None:
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM scheduled_tasks WHERE name = ?", (name,)
            )
            row = await cursor.fetchone()
        return ScheduledTask.from_row(row) if row else None

    async def list_enabled_tasks(self) -> list[ScheduledTask]:
        """Return all enabled tasks, oldest first."""
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM scheduled_tasks WHERE enabled = 1 ORDER BY created_at"
            )
            rows = await cursor.fetchall()
        return [ScheduledTask.from_row(row) for row in rows]

    async def search_tasks(self, query: str) -> list[ScheduledTask]:
        """Case-insensitive LIKE over enabled task names and descriptions."""
        pattern = f"%{query}%"
        async with self._connect() as db:
            cursor = await db.execute(
                f"""
                SELECT {_COLUMNS} FROM scheduled_tasks
                WHERE enabled = 1 AND (name LIKE ? OR description LIKE ?)
                ORDER BY created_at
                """,
                (pattern, pattern),
            )
            rows = await cursor.fetchall()
        return [ScheduledTask.from_row(row) for row in rows]

    async def update_run_times(self, task: ScheduledTask) -> None:
        """Persist ``last_run`` and ``next_run`` from *task*."""
        task.updated_at = datetime.now(UTC)
        row = task.to_row()
        async with self._connect() as db:
            await db.execute(
                "UPDATE scheduled_tasks SET last_run = ?, next_run = ?, updated_at = ? WHERE id = ?",
                (row[7], row[8], row[10], task.id),
            )
            await db.commit()

    async def set_enabled(self, task_id: str, enabled: bool) -> bool:
        """Enable or disable a task. Returns True if a row was updated."""
        async with self._connect() as db:
            cursor = await db.execute(
                "UPDATE scheduled_tasks SET enabled = ?, updated_at = ? WHERE id = ?",
                (int(enabled), datetime.now(UTC).isoformat(), task_id),
            )
            await db.commit()
            updated = cursor.rowcount > 0
        if updated:
            logger.info("%s task: %s", "Enabled" if enabled else "Disabled", task_id)
        return updated
