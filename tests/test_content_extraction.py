"""Tests for the reminder-extraction status message."""

from datetime import date, time

from schoolbell.content.extraction import (
    REASON_NO_REMINDERS,
    REASON_SUCCESS,
    ExtractionResult,
    format_extraction_message,
)
from schoolbell.scheduler.models import Reminder

# Wednesday 11 June 2025 (ISO week 24)
TODAY = date(2025, 6, 11)


def _reminder(text: str, on: date, at: time = time(7, 0)) -> Reminder:
    return Reminder(id=text, text=text, remind_date=on, remind_time=at, child_name="Anna")


def test_no_reminders() -> None:
    text, reason = format_extraction_message("Anna", ExtractionResult(), TODAY)
    assert reason == REASON_NO_REMINDERS
    assert "Anna" in text


def test_current_week_grouped_by_weekday() -> None:
    result = ExtractionResult(
        [
            _reminder("Swimwear", date(2025, 6, 12)),
            _reminder("Packed lunch", date(2025, 6, 13), time(6, 45)),
        ]
    )
    text, reason = format_extraction_message("Anna", result, TODAY)

    assert reason == REASON_SUCCESS
    assert "Created 2 reminder(s)" in text
    assert "*Thursday*" in text
    assert "*Friday*" in text
    assert "• 06:45 Packed lunch" in text


def test_later_weeks_grouped_by_date() -> None:
    result = ExtractionResult([_reminder("Parents' evening", date(2025, 6, 18))])
    text, _ = format_extraction_message("Anna", result, TODAY)

    assert "*18/06*" in text
    assert "Wednesday" not in text


def test_entries_sorted_by_date_and_time() -> None:
    result = ExtractionResult(
        [
            _reminder("Late", date(2025, 6, 12), time(9, 0)),
            _reminder("Early", date(2025, 6, 12), time(7, 0)),
        ]
    )
    text, _ = format_extraction_message("Anna", result, TODAY)
    assert text.index("Early") < text.index("Late")


def test_reminder_text_is_escaped() -> None:
    result = ExtractionResult([_reminder("Bring swim_wear", date(2025, 6, 12))])
    text, _ = format_extraction_message("Anna", result, TODAY)
    assert "• 07:00 Bring swim\\_wear" in text
