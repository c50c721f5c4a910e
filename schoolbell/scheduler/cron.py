"""Crontab parsing on top of APScheduler's CronTrigger.

APScheduler numbers weekdays from Monday (0 = mon), while crontab numbers
them from Sunday (0 and 7 = sun).  Numeric day-of-week fields are rewritten
to weekday names before the trigger is built so ``30 7 * * 3`` means
Wednesday, as it would for cron.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from functools import lru_cache

from apscheduler.triggers.cron import CronTrigger

from schoolbell.errors import CronExpressionError

_CRON_DAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


def _translate_day_of_week(field: str) -> str:
    """Rewrite a numeric crontab day-of-week field as APScheduler weekday names."""
    if field in ("*", "?"):
        return "*"
    if any(ch.isalpha() for ch in field):
        return field.lower()

    days: set[int] = set()
    for part in field.split(","):
        spec, _, step_text = part.partition("/")
        step = int(step_text) if step_text else 1
        if step < 1:
            msg = f"step must be positive in {part!r}"
            raise ValueError(msg)
        if spec == "*":
            start, end = 0, 6
        elif "-" in spec:
            first, last = spec.split("-", 1)
            start, end = int(first), int(last)
        else:
            start = int(spec)
            end = 6 if step_text else start
        if not (0 <= start <= 7 and 0 <= end <= 7) or start > end:
            msg = f"day-of-week out of range in {part!r}"
            raise ValueError(msg)
        days.update(day % 7 for day in range(start, end + 1, step))
    return ",".join(_CRON_DAYS[day] for day in sorted(days))


@lru_cache(maxsize=256)
def parse_cron(expression: str, timezone: str) -> CronTrigger:
    """Build a CronTrigger for a 5-field crontab *expression*.

    Raises:
        CronExpressionError: If the expression is malformed.
    """
    fields = expression.split()
    if len(fields) != 5:
        raise CronExpressionError(expression, f"expected 5 fields, got {len(fields)}")
    minute, hour, day, month, day_of_week = fields
    try:
        return CronTrigger(
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=_translate_day_of_week(day_of_week),
            timezone=timezone,
        )
    except ValueError as exc:
        raise CronExpressionError(expression, str(exc)) from exc


def next_occurrence(expression: str, after: datetime, timezone: str) -> datetime:
    """Return the first occurrence of *expression* strictly after *after*."""
    trigger = parse_cron(expression, timezone)
    fire_time = trigger.get_next_fire_time(None, after + timedelta(microseconds=1))
    if fire_time is None:
        raise CronExpressionError(expression, "never fires")
    return fire_time


def build_cron_expression(recurrence: str, hour: int, minute: int, day_of_week: int = 0) -> str:
    """Crontab expression for a daily or weekly recurrence at ``hour:minute``.

    *day_of_week* uses crontab numbering (0 = Sunday).
    """
    if recurrence == "daily":
        return f"{minute} {hour} * * *"
    if recurrence == "weekly":
        if not 0 <= day_of_week <= 6:
            msg = f"day_of_week must be 0-6, got {day_of_week}"
            raise ValueError(msg)
        return f"{minute} {hour} * * {day_of_week}"
    msg = f"Unsupported recurrence type: {recurrence}"
    raise ValueError(msg)
