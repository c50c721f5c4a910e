"""Reminder extraction from posted week letters, and its status message."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from telegram.helpers import escape_markdown

if TYPE_CHECKING:
    from schoolbell.config import Child
    from schoolbell.scheduler.models import Reminder

REASON_SUCCESS = "ai_analysis_success"
REASON_NO_REMINDERS = "ai_analysis_no_reminders"

_WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


@dataclass
class ExtractionResult:
    """Reminders an extractor created for one week letter."""

    reminders: list[Reminder] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.reminders)


@runtime_checkable
class ReminderExtractor(Protocol):
    """Turns a week letter into stored reminders (e.g. via an LLM)."""

    async def extract(
        self, child: Child, content: dict[str, Any], week_number: int, year: int
    ) -> ExtractionResult: ...


def format_extraction_message(
    child_name: str, result: ExtractionResult, today: date
) -> tuple[str, str]:
    """Build the status text and reason tag for an extraction result.

    Reminders in the current ISO week are grouped by weekday, later ones by
    date.
    """
    child_name = escape_markdown(child_name)
    if not result.reminders:
        return (
            f"📭 No reminders found in the week letter for {child_name}.",
            REASON_NO_REMINDERS,
        )

    this_week = today.isocalendar()[:2]
    current: dict[int, list[Reminder]] = {}
    later: dict[date, list[Reminder]] = {}
    for reminder in sorted(
        result.reminders, key=lambda r: (r.remind_date or date.max, r.remind_time)
    ):
        if reminder.remind_date is None:
            continue
        if reminder.remind_date.isocalendar()[:2] == this_week:
            current.setdefault(reminder.remind_date.weekday(), []).append(reminder)
        else:
            later.setdefault(reminder.remind_date, []).append(reminder)

    lines = [f"🤖 Created {result.count} reminder(s) from the week letter for {child_name}:"]
    for weekday, items in current.items():
        lines.append(f"\n*{_WEEKDAYS[weekday]}*")
        lines.extend(_bullet(r) for r in items)
    for day, items in later.items():
        lines.append(f"\n*{day.strftime('%d/%m')}*")
        lines.extend(_bullet(r) for r in items)
    return "\n".join(lines), REASON_SUCCESS


def _bullet(reminder: Reminder) -> str:
    return f"• {reminder.remind_time.strftime('%H:%M')} {escape_markdown(reminder.text)}"
