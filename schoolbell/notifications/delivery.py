"""DeliveryService — turns bus events into chat messages for each child."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from bs4 import BeautifulSoup
from telegram.helpers import escape_markdown

from schoolbell.content.source import extract_content, letter_title
from schoolbell.errors import DeliveryError, require
from schoolbell.events import ContentReady, ReminderReady, StatusMessage

if TYPE_CHECKING:
    from collections.abc import Callable

    from schoolbell.config import Child
    from schoolbell.events import EventBus
    from schoolbell.notifications.channels import NotificationChannel

logger = logging.getLogger(__name__)

_BLANK_LINES = re.compile(r"\n\s*\n+")


def letter_to_text(letter: dict[str, Any]) -> str:
    """Readable plain text of a week letter body, paragraphs kept."""
    html = extract_content(letter)
    if not html:
        return ""
    text = BeautifulSoup(html, "html.parser").get_text("\n")
    lines = (line.strip() for line in text.splitlines())
    return _BLANK_LINES.sub("\n\n", "\n".join(lines)).strip()


def format_reminder(event: ReminderReady) -> str:
    reminder = event.reminder
    if event.missed:
        return reminder.text
    child_name = escape_markdown(event.child_name)
    return f"🔔 *Reminder* ({child_name}): {escape_markdown(reminder.text)}"


def format_content(event: ContentReady) -> str:
    title = letter_title(event.content) or f"Week {event.week_number}"
    body = escape_markdown(letter_to_text(event.content))
    heading = f"📚 *Week letter for {escape_markdown(event.child_name)}*"
    return f"{heading} - {escape_markdown(title)}\n\n{body}"


class DeliveryService:
    """Bus observer that sends every event to the child's chat on one channel.

    Raises DeliveryError when a message cannot be handed to the channel, so
    publishers can roll back (e.g. un-claim a reminder).
    """

    def __init__(
        self,
        channel: NotificationChannel,
        find_child: Callable[[str], Child | None],
    ) -> None:
        require(channel=channel, find_child=find_child)
        self._channel = channel
        self._find_child = find_child

    @property
    def channel_name(self) -> str:
        return self._channel.name

    def subscribe(self, bus: EventBus) -> None:
        bus.subscribe(ReminderReady, self.on_reminder)
        bus.subscribe(ContentReady, self.on_content)
        bus.subscribe(StatusMessage, self.on_status)

    async def on_reminder(self, event: ReminderReady) -> None:
        await self._send(event.child_name, format_reminder(event))

    async def on_content(self, event: ContentReady) -> None:
        await self._send(event.child_name, format_content(event))

    async def on_status(self, event: StatusMessage) -> None:
        logger.debug("Status message for %s (%s)", event.child_name, event.reason)
        await self._send(event.child_name, event.text)

    async def _send(self, child_name: str, message: str) -> None:
        child = self._find_child(child_name)
        if child is None or not child.user_id:
            msg = f"No chat user configured for child '{child_name}'"
            raise DeliveryError(msg)
        if not await self._channel.send(child.user_id, message):
            msg = f"Channel {self._channel.name} refused message for child '{child_name}'"
            raise DeliveryError(msg)
