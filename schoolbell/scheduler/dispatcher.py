"""ReminderDispatcher — fires due concrete reminders."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from schoolbell.errors import MissingRecipientError, require
from schoolbell.events import ReminderReady, child_id

if TYPE_CHECKING:
    from datetime import datetime

    from schoolbell.events import EventBus
    from schoolbell.scheduler.models import Reminder
    from schoolbell.scheduler.reminder_store import ReminderStore

logger = logging.getLogger(__name__)


class ReminderDispatcher:
    """Finds due, unsent reminders and publishes them.

    Each reminder is claimed (marked sent) before it is published.  If
    publishing raises, the claim is rolled back so a later tick retries it.

    Args:
        store: ReminderStore holding the reminders.
        bus: EventBus that receives ``ReminderReady`` events.
        timezone: IANA timezone that reminder dates and times are local to.
    """

    def __init__(self, store: ReminderStore, bus: EventBus, timezone: str) -> None:
        require(store=store, bus=bus, timezone=timezone)
        self._store = store
        self._bus = bus
        self._tz = ZoneInfo(timezone)

    @property
    def store(self) -> ReminderStore:
        return self._store

    async def list_due(self, now: datetime) -> list[Reminder]:
        local = now.astimezone(self._tz)
        return await self._store.list_due(local.date(), local.time())

    async def dispatch_due(self, now: datetime) -> int:
        """Publish every reminder due at *now*. Returns how many were sent."""
        reminders = await self.list_due(now)
        if not reminders:
            logger.debug("No pending reminders")
            return 0

        logger.info("Found %d pending reminder(s) to send", len(reminders))
        sent = 0
        for reminder in reminders:
            if await self.deliver(reminder):
                sent += 1
        return sent

    async def deliver(self, reminder: Reminder, text: str | None = None) -> bool:
        """Claim and publish one reminder, optionally with replacement *text*.

        Returns True when the reminder was published by this call.
        """
        try:
            if not await self._store.claim(reminder.id):
                logger.info("Reminder %s already sent by another pass, skipping", reminder.id)
                return False
        except Exception:
            logger.exception("Could not mark reminder %s as sent", reminder.id)
            return False

        outgoing = reminder if text is None else replace(reminder, text=text)
        try:
            await self.notify(outgoing, missed=text is not None)
        except Exception:
            logger.exception("Error sending reminder %s - marking as unsent for retry", reminder.id)
            try:
                await self._store.mark_unsent(reminder.id)
            except Exception:
                logger.exception(
                    "Failed to mark reminder %s as unsent after send failure", reminder.id
                )
            return False

        logger.info("Sent reminder %s: %s", reminder.id, reminder.text)
        return True

    async def notify(self, reminder: Reminder, *, missed: bool = False) -> None:
        """Publish ``ReminderReady`` for *reminder*.

        Raises:
            MissingRecipientError: If the reminder has no child.
        """
        if not reminder.child_name:
            logger.error(
                "Reminder %s has no child name - cannot send (every reminder needs a child)",
                reminder.id,
            )
            raise MissingRecipientError(reminder.id)

        await self._bus.publish(
            ReminderReady(
                child_id=child_id(reminder.child_name),
                child_name=reminder.child_name,
                reminder=reminder,
                missed=missed,
            )
        )
        logger.info("Fired reminder event %s for %s", reminder.id, reminder.child_name)
