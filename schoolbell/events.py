"""EventBus — publish/subscribe between the scheduler and delivery channels."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from schoolbell.scheduler.models import Reminder

logger = logging.getLogger(__name__)


def child_id(child_name: str) -> str:
    """Derive a stable identifier from a child's name."""
    slug = re.sub(r"[^a-z0-9]+", "_", child_name.strip().lower()).strip("_")
    return slug or "unknown"


@dataclass(frozen=True)
class ReminderReady:
    """A concrete reminder is due for delivery (possibly tagged as missed)."""

    child_id: str
    child_name: str
    reminder: Reminder
    missed: bool = False


@dataclass(frozen=True)
class ContentReady:
    """Fresh, deduplicated week letter content for one child and week."""

    child_id: str
    child_name: str
    week_number: int
    year: int
    content: dict[str, Any]


@dataclass(frozen=True)
class StatusMessage:
    """Informational notice; ``reason`` tags why it was sent."""

    child_id: str
    child_name: str
    text: str
    reason: str


Event = ReminderReady | ContentReady | StatusMessage
E = TypeVar("E", ReminderReady, ContentReady, StatusMessage)


class EventBus:
    """Dispatches events to registered async observers.

    Observers are awaited in registration order.  Exceptions raised by an
    observer propagate to the publisher, which decides whether to roll back
    or log.
    """

    def __init__(self) -> None:
        self._handlers: dict[type, list[Callable[[Any], Awaitable[None]]]] = {}

    def subscribe(self, event_type: type[E], handler: Callable[[E], Awaitable[None]]) -> None:
        """Register *handler* for events of *event_type*."""
        self._handlers.setdefault(event_type, []).append(handler)

    async def publish(self, event: Event) -> int:
        """Deliver *event* to every observer of its type.

        Returns the number of observers invoked.
        """
        handlers = list(self._handlers.get(type(event), []))
        if not handlers:
            logger.warning("No subscribers for %s", type(event).__name__)
            return 0
        for handler in handlers:
            await handler(event)
        return len(handlers)
