"""ReminderStore — libsql CRUD for concrete and template reminders."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from schoolbell.db import Store
from schoolbell.scheduler.models import Reminder

if TYPE_CHECKING:
    from datetime import date, time

logger = logging.getLogger(__name__)

_COLUMNS = "id, text, child_name, kind, remind_date, remind_time, is_sent, created_at"

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS reminders (
    id TEXT PRIMARY KEY,
    text TEXT NOT NULL,
    child_name TEXT,
    kind TEXT NOT NULL DEFAULT 'concrete',
    remind_date TEXT,
    remind_time TEXT NOT NULL,
    is_sent INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
)
"""

_CREATE_INDEX = (
    "CREATE INDEX IF NOT EXISTS idx_reminders_due ON reminders(kind, is_sent, remind_date)"
)


class ReminderStore(Store):
    """Persists reminders.

    Dates and times are local wall-clock values (``YYYY-MM-DD`` and
    ``HH:MM:SS``), so string comparison orders them correctly.
    """

    _SCHEMA = (_CREATE_TABLE, _CREATE_INDEX)

    async def add_reminder(self, reminder: Reminder) -> Reminder:
        async with self._connect() as db:
            await db.execute(
                f"INSERT INTO reminders ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                reminder.to_row(),
            )
            await db.commit()
        logger.info(
            "Added %s reminder %s for %s: %s",
            reminder.kind.value,
            reminder.id,
            reminder.child_name or "nobody",
            reminder.text,
        )
        return reminder

    async def get_reminder(self, reminder_id: str) -> Reminder | None:
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM reminders WHERE id = ?", (reminder_id,)
            )
            row = await cursor.fetchone()
        return Reminder.from_row(row) if row else None

    async def list_due(self, on_date: date, at_time: time) -> list[Reminder]:
        """Unsent concrete reminders due at or before *on_date* *at_time*."""
        day = on_date.isoformat()
        async with self._connect() as db:
            cursor = await db.execute(
                f"""
                SELECT {_COLUMNS} FROM reminders
                WHERE kind = 'concrete' AND is_sent = 0
                  AND (remind_date < ? OR (remind_date = ? AND remind_time <= ?))
                ORDER BY remind_date, remind_time
                """,
                (day, day, at_time.strftime("%H:%M:%S")),
            )
            rows = await cursor.fetchall()
        return [Reminder.from_row(row) for row in rows]

    async def list_upcoming(self, child_name: str | None = None) -> list[Reminder]:
        """Unsent concrete reminders ordered by date and time, optionally for one child."""
        sql = f"SELECT {_COLUMNS} FROM reminders WHERE kind = 'concrete' AND is_sent = 0"
        params: tuple = ()
        if child_name:
            sql += " AND lower(child_name) = lower(?)"
            params = (child_name,)
        sql += " ORDER BY remind_date, remind_time"
        async with self._connect() as db:
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
        return [Reminder.from_row(row) for row in rows]

    async def claim(self, reminder_id: str) -> bool:
        """Mark a reminder sent if it is still unsent.

        Returns False when another pass already marked it.
        """
        async with self._connect() as db:
            cursor = await db.execute(
                "UPDATE reminders SET is_sent = 1 WHERE id = ? AND is_sent = 0",
                (reminder_id,),
            )
            await db.commit()
            return cursor.rowcount > 0

    async def mark_unsent(self, reminder_id: str) -> None:
        async with self._connect() as db:
            await db.execute("UPDATE reminders SET is_sent = 0 WHERE id = ?", (reminder_id,))
            await db.commit()

    async def exists_for_date(
        self, text: str, on_date: date, at_time: time, child_name: str | None
    ) -> bool:
        """Whether a concrete reminder with this text, date, time and child exists."""
        async with self._connect() as db:
            cursor = await db.execute(
                """
                SELECT 1 FROM reminders
                WHERE kind = 'concrete' AND text = ? AND remind_date = ? AND remind_time = ?
                  AND coalesce(child_name, '') = coalesce(?, '')
                LIMIT 1
                """,
                (text, on_date.isoformat(), at_time.strftime("%H:%M:%S"), child_name),
            )
            row = await cursor.fetchone()
        return row is not None

    async def delete_reminder(self, reminder_id: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute("DELETE FROM reminders WHERE id = ?", (reminder_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted reminder %s", reminder_id)
        return deleted
