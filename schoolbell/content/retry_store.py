"""RetryStore — bounded retry state for unpublished week letters."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from schoolbell.db import Store
from schoolbell.scheduler.models import RetryAttempt

if TYPE_CHECKING:
    from datetime import datetime

logger = logging.getLogger(__name__)

_COLUMNS = (
    "child_name, week_number, year, attempt_count, first_attempt_at, last_attempt_at, "
    "next_attempt_at, succeeded, given_up"
)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS retry_attempts (
    child_name TEXT NOT NULL,
    week_number INTEGER NOT NULL,
    year INTEGER NOT NULL,
    attempt_count INTEGER NOT NULL DEFAULT 1,
    first_attempt_at TEXT NOT NULL,
    last_attempt_at TEXT NOT NULL,
    next_attempt_at TEXT NOT NULL,
    succeeded INTEGER NOT NULL DEFAULT 0,
    given_up INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (child_name, week_number, year)
)
"""


class RetryStore(Store):
    """Persists one RetryAttempt per child and ISO week."""

    _SCHEMA = (_CREATE_TABLE,)

    async def get(self, child_name: str, week_number: int, year: int) -> RetryAttempt | None:
        async with self._connect() as db:
            cursor = await db.execute(
                f"""
                SELECT {_COLUMNS} FROM retry_attempts
                WHERE child_name = ? AND week_number = ? AND year = ?
                """,
                (child_name, week_number, year),
            )
            row = await cursor.fetchone()
        return RetryAttempt.from_row(row) if row else None

    async def list_pending(self) -> list[RetryAttempt]:
        """Entries that are neither succeeded nor given up."""
        async with self._connect() as db:
            cursor = await db.execute(
                f"""
                SELECT {_COLUMNS} FROM retry_attempts
                WHERE succeeded = 0 AND given_up = 0
                ORDER BY first_attempt_at
                """
            )
            rows = await cursor.fetchall()
        return [RetryAttempt.from_row(row) for row in rows]

    async def record_failure(
        self,
        child_name: str,
        week_number: int,
        year: int,
        *,
        now: datetime,
        next_attempt_at: datetime,
    ) -> tuple[RetryAttempt, bool]:
        """Create the entry or bump its attempt count.

        Returns the updated attempt and whether this was the first failure.
        Terminal entries are returned unchanged.
        """
        existing = await self.get(child_name, week_number, year)
        if existing is None:
            attempt = RetryAttempt(
                child_name=child_name,
                week_number=week_number,
                year=year,
                attempt_count=1,
                first_attempt_at=now,
                last_attempt_at=now,
                next_attempt_at=next_attempt_at,
            )
            async with self._connect() as db:
                await db.execute(
                    f"INSERT INTO retry_attempts ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    attempt.to_row(),
                )
                await db.commit()
            logger.info("Started retry tracking for %s", attempt.subject_key)
            return attempt, True

        if existing.is_terminal:
            return existing, False

        existing.attempt_count += 1
        existing.last_attempt_at = now
        existing.next_attempt_at = next_attempt_at
        row = existing.to_row()
        async with self._connect() as db:
            await db.execute(
                """
                UPDATE retry_attempts
                SET attempt_count = ?, last_attempt_at = ?, next_attempt_at = ?
                WHERE child_name = ? AND week_number = ? AND year = ?
                """,
                (row[3], row[5], row[6], child_name, week_number, year),
            )
            await db.commit()
        return existing, False

    async def mark_successful(self, child_name: str, week_number: int, year: int) -> bool:
        return await self._finish(child_name, week_number, year, "succeeded")

    async def mark_given_up(self, child_name: str, week_number: int, year: int) -> bool:
        return await self._finish(child_name, week_number, year, "given_up")

    async def _finish(self, child_name: str, week_number: int, year: int, column: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(
                f"""
                UPDATE retry_attempts SET {column} = 1
                WHERE child_name = ? AND week_number = ? AND year = ?
                  AND succeeded = 0 AND given_up = 0
                """,
                (child_name, week_number, year),
            )
            await db.commit()
            return cursor.rowcount > 0
