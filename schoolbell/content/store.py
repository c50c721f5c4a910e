"""ContentStore — which week letters were posted, and their fingerprints."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from schoolbell.db import Store

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS posted_content (
    child_name TEXT NOT NULL,
    week_number INTEGER NOT NULL,
    year INTEGER NOT NULL,
    content_hash TEXT NOT NULL,
    posted_at TEXT NOT NULL,
    PRIMARY KEY (child_name, week_number, year)
)
"""


class ContentStore(Store):
    """Persists posted-content fingerprints per child and ISO week."""

    _SCHEMA = (_CREATE_TABLE,)

    async def is_posted(self, child_name: str, week_number: int, year: int) -> bool:
        return await self.hash_for_period(child_name, week_number, year) is not None

    async def hash_for_period(self, child_name: str, week_number: int, year: int) -> str | None:
        """Fingerprint stored for this child and week, if posted."""
        async with self._connect() as db:
            cursor = await db.execute(
                """
                SELECT content_hash FROM posted_content
                WHERE child_name = ? AND week_number = ? AND year = ?
                """,
                (child_name, week_number, year),
            )
            row = await cursor.fetchone()
        return row[0] if row else None

    async def last_hash(self, child_name: str) -> str | None:
        """Fingerprint of the most recently posted letter for *child_name*."""
        async with self._connect() as db:
            cursor = await db.execute(
                """
                SELECT content_hash FROM posted_content
                WHERE child_name = ?
                ORDER BY posted_at DESC
                LIMIT 1
                """,
                (child_name,),
            )
            row = await cursor.fetchone()
        return row[0] if row else None

    async def mark_posted(
        self, child_name: str, week_number: int, year: int, content_hash: str
    ) -> None:
        async with self._connect() as db:
            await db.execute(
                """
                INSERT OR REPLACE INTO posted_content
                    (child_name, week_number, year, content_hash, posted_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (child_name, week_number, year, content_hash, datetime.now(UTC).isoformat()),
            )
            await db.commit()
        logger.info("Marked week letter posted for %s week %d/%d", child_name, week_number, year)
