"""RetryEngine — keep polling for week letters that were not published yet."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from schoolbell.content.dedup import DedupOutcome, has_content
from schoolbell.errors import require
from schoolbell.events import StatusMessage, child_id

if TYPE_CHECKING:
    from collections.abc import Callable

    from schoolbell.config import Child
    from schoolbell.content.dedup import ContentPipeline
    from schoolbell.content.retry_store import RetryStore
    from schoolbell.content.source import ContentSource
    from schoolbell.events import EventBus
    from schoolbell.scheduler.models import RetryAttempt

logger = logging.getLogger(__name__)

REASON_STARTED = "week_letter_retry_started"
REASON_SUCCESS = "week_letter_retry_success"
REASON_GIVEN_UP = "week_letter_retry_given_up"


class RetryEngine:
    """Bounded re-polling of the content source per child and week.

    An entry is re-polled once its ``next_attempt_at`` has passed and given
    up once it is older than *max_duration*.  Every terminal transition is
    announced exactly once.
    """

    def __init__(
        self,
        store: RetryStore,
        source: ContentSource,
        pipeline: ContentPipeline,
        bus: EventBus,
        find_child: Callable[[str], Child | None],
        *,
        retry_interval: timedelta = timedelta(hours=1),
        max_duration: timedelta = timedelta(hours=48),
    ) -> None:
        require(store=store, source=source, pipeline=pipeline, bus=bus, find_child=find_child)
        if retry_interval <= timedelta(0):
            msg = "retry_interval must be positive"
            raise ValueError(msg)
        self._store = store
        self._source = source
        self._pipeline = pipeline
        self._bus = bus
        self._find_child = find_child
        self._retry_interval = retry_interval
        self._max_duration = max_duration

    @property
    def max_attempts(self) -> int:
        return max(1, int(self._max_duration / self._retry_interval))

    async def record_failure(
        self, child: Child, week_number: int, year: int, now: datetime | None = None
    ) -> RetryAttempt:
        """Note that the letter was unavailable; announce the first failure."""
        now = now or datetime.now(UTC)
        attempt, first = await self._store.record_failure(
            child.name,
            week_number,
            year,
            now=now,
            next_attempt_at=now + self._retry_interval,
        )
        if first:
            hours = self._retry_interval.total_seconds() / 3600
            max_hours = self._max_duration.total_seconds() / 3600
            await self._announce(
                child.name,
                (
                    f"📭 The week letter for {child.name} (week {week_number}) is not "
                    f"available yet. I'll check again every {hours:g} hour(s) for up to "
                    f"{max_hours:g} hours ({self.max_attempts} attempts)."
                ),
                REASON_STARTED,
            )
        else:
            logger.info("Retry attempt %d for %s", attempt.attempt_count, attempt.subject_key)
        return attempt

    async def run_pending(self, now: datetime | None = None) -> int:
        """Process every non-terminal entry. Returns how many were re-polled."""
        now = now or datetime.now(UTC)
        polled = 0
        for attempt in await self._store.list_pending():
            try:
                if attempt.age(now) > self._max_duration:
                    await self._give_up(attempt)
                elif attempt.next_attempt_at <= now:
                    polled += 1
                    await self._poll(attempt, now)
            except Exception:
                logger.exception("Error processing retry for %s", attempt.subject_key)
        return polled

    async def _poll(self, attempt: RetryAttempt, now: datetime) -> None:
        child = self._find_child(attempt.child_name)
        if child is None:
            logger.warning("Child %s is no longer configured, giving up", attempt.child_name)
            await self._store.mark_given_up(attempt.child_name, attempt.week_number, attempt.year)
            return

        try:
            letter = await self._source.fetch(child, attempt.week_number, attempt.year)
        except Exception:
            logger.exception("Error fetching week letter for %s", attempt.subject_key)
            letter = None

        if not has_content(letter):
            await self.record_failure(child, attempt.week_number, attempt.year, now)
            return

        try:
            outcome = await self._pipeline.process(
                child, attempt.week_number, attempt.year, letter, now
            )
        except Exception:
            logger.exception("Error delivering week letter for %s", attempt.subject_key)
            await self.record_failure(child, attempt.week_number, attempt.year, now)
            return

        if outcome is DedupOutcome.EMPTY:
            await self.record_failure(child, attempt.week_number, attempt.year, now)
            return

        # The pipeline already marks a posted letter successful.
        await self._store.mark_successful(attempt.child_name, attempt.week_number, attempt.year)
        logger.info("Week letter for %s is now available (%s)", attempt.subject_key, outcome)
        await self._announce(
            child.name,
            f"✅ The week letter for {child.name} (week {attempt.week_number}) is now available!",
            REASON_SUCCESS,
        )

    async def _give_up(self, attempt: RetryAttempt) -> None:
        if not await self._store.mark_given_up(
            attempt.child_name, attempt.week_number, attempt.year
        ):
            return
        logger.warning(
            "Giving up on %s after %d attempts", attempt.subject_key, attempt.attempt_count
        )
        await self._announce(
            attempt.child_name,
            (
                f"❌ Gave up waiting for the week letter for {attempt.child_name} "
                f"(week {attempt.week_number}) after {attempt.attempt_count} attempts."
            ),
            REASON_GIVEN_UP,
        )

    async def _announce(self, child_name: str, text: str, reason: str) -> None:
        await self._bus.publish(
            StatusMessage(
                child_id=child_id(child_name),
                child_name=child_name,
                text=text,
                reason=reason,
            )
        )
