"""ContentPipeline — fingerprint week letters and post each one exactly once."""

from __future__ import annotations

import hashlib
import logging
import re
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

from bs4 import BeautifulSoup

from schoolbell.content.extraction import format_extraction_message
from schoolbell.content.source import extract_content, is_effectively_empty
from schoolbell.errors import require
from schoolbell.events import ContentReady, StatusMessage, child_id

if TYPE_CHECKING:
    from schoolbell.config import Child
    from schoolbell.content.extraction import ReminderExtractor
    from schoolbell.content.retry_store import RetryStore
    from schoolbell.content.store import ContentStore
    from schoolbell.events import EventBus

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


class DedupOutcome(StrEnum):
    EMPTY = "empty"
    UNCHANGED = "unchanged"
    POSTED = "posted"


def normalize_content(html: str) -> str:
    """Strip markup and collapse whitespace."""
    if not html:
        return ""
    text = BeautifulSoup(html, "html.parser").get_text(" ")
    return _WHITESPACE.sub(" ", text).strip()


def fingerprint(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def has_content(letter: dict[str, Any] | None) -> bool:
    """True when *letter* carries a non-placeholder body with visible text."""
    if letter is None or is_effectively_empty(letter):
        return False
    return bool(normalize_content(extract_content(letter)))


class ContentPipeline:
    """Posts fresh week letters and suppresses repeats.

    A letter is delivered when its fingerprint differs from both the one
    stored for its week and the child's most recently posted one.
    """

    def __init__(
        self,
        content_store: ContentStore,
        retry_store: RetryStore,
        bus: EventBus,
        *,
        extractor: ReminderExtractor | None = None,
        timezone: str = "UTC",
    ) -> None:
        require(content_store=content_store, retry_store=retry_store, bus=bus)
        self._content_store = content_store
        self._retry_store = retry_store
        self._bus = bus
        self._extractor = extractor
        self._tz = ZoneInfo(timezone)

    async def process(
        self,
        child: Child,
        week_number: int,
        year: int,
        letter: dict[str, Any],
        now: datetime | None = None,
    ) -> DedupOutcome:
        text = normalize_content(extract_content(letter))
        if not text:
            logger.info("Week letter for %s week %d/%d is empty", child.name, week_number, year)
            return DedupOutcome.EMPTY

        digest = fingerprint(text)
        stored = await self._content_store.hash_for_period(child.name, week_number, year)
        last = await self._content_store.last_hash(child.name)
        if digest in (stored, last):
            logger.info(
                "Week letter for %s week %d/%d unchanged, not posting",
                child.name,
                week_number,
                year,
            )
            if stored is None:
                await self._content_store.mark_posted(child.name, week_number, year, digest)
            return DedupOutcome.UNCHANGED

        await self._bus.publish(
            ContentReady(
                child_id=child_id(child.name),
                child_name=child.name,
                week_number=week_number,
                year=year,
                content=letter,
            )
        )
        await self._content_store.mark_posted(child.name, week_number, year, digest)
        await self._retry_store.mark_successful(child.name, week_number, year)

        await self._extract_reminders(child, letter, week_number, year, now or datetime.now(UTC))
        return DedupOutcome.POSTED

    async def _extract_reminders(
        self,
        child: Child,
        letter: dict[str, Any],
        week_number: int,
        year: int,
        now: datetime,
    ) -> None:
        if self._extractor is None:
            return
        try:
            result = await self._extractor.extract(child, letter, week_number, year)
        except Exception:
            logger.exception("Reminder extraction failed for %s", child.name)
            return

        text, reason = format_extraction_message(
            child.name, result, now.astimezone(self._tz).date()
        )
        await self._bus.publish(
            StatusMessage(
                child_id=child_id(child.name),
                child_name=child.name,
                text=text,
                reason=reason,
            )
        )
