"""WeekLetterCheck — the built-in task that fetches each child's week letter."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from schoolbell.content.dedup import DedupOutcome, has_content
from schoolbell.errors import require

if TYPE_CHECKING:
    from collections.abc import Callable

    from schoolbell.config import Child
    from schoolbell.content.dedup import ContentPipeline
    from schoolbell.content.retry import RetryEngine
    from schoolbell.content.source import ContentSource
    from schoolbell.content.store import ContentStore

logger = logging.getLogger(__name__)


def target_week(now: datetime, tz: ZoneInfo) -> tuple[int, int]:
    """ISO ``(week, year)`` to check: the current week, or next week on Sundays."""
    local = now.astimezone(tz).date()
    if local.weekday() == 6:
        local += timedelta(days=7)
    iso = local.isocalendar()
    return iso.week, iso.year


class WeekLetterCheck:
    """Fetch, dedup and post the week letter for every configured child."""

    def __init__(
        self,
        children: Callable[[], list[Child]],
        source: ContentSource,
        content_store: ContentStore,
        pipeline: ContentPipeline,
        retry_engine: RetryEngine,
        *,
        timezone: str = "UTC",
    ) -> None:
        require(
            children=children,
            source=source,
            content_store=content_store,
            pipeline=pipeline,
            retry_engine=retry_engine,
        )
        self._children = children
        self._source = source
        self._content_store = content_store
        self._pipeline = pipeline
        self._retry_engine = retry_engine
        self._tz = ZoneInfo(timezone)

    async def run(self, now: datetime | None = None) -> dict[str, str]:
        """Check every child. Returns a per-child outcome for logging and tests."""
        now = now or datetime.now(UTC)
        week, year = target_week(now, self._tz)
        children = self._children()
        if not children:
            logger.warning("No children configured, skipping week letter check")
            return {}

        logger.info("Checking week letters for week %d/%d", week, year)
        outcomes: dict[str, str] = {}
        for child in children:
            try:
                outcomes[child.name] = await self._check_child(child, week, year, now)
            except Exception:
                logger.exception("Error checking week letter for %s", child.name)
                outcomes[child.name] = "error"
        return outcomes

    async def _check_child(self, child: Child, week: int, year: int, now: datetime) -> str:
        if await self._content_store.is_posted(child.name, week, year):
            logger.info("Week letter for %s week %d/%d already posted", child.name, week, year)
            return "already_posted"

        try:
            letter = await self._source.fetch(child, week, year)
        except Exception:
            logger.exception("Failed to fetch week letter for %s", child.name)
            letter = None

        if not has_content(letter):
            await self._retry_engine.record_failure(child, week, year, now)
            return "retry"

        try:
            outcome = await self._pipeline.process(child, week, year, letter, now)
        except Exception:
            logger.exception("Failed to deliver week letter for %s", child.name)
            await self._retry_engine.record_failure(child, week, year, now)
            return "retry"
        if outcome is DedupOutcome.EMPTY:
            await self._retry_engine.record_failure(child, week, year, now)
            return "retry"
        return outcome.value
