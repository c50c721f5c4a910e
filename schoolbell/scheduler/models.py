"""Scheduler data models — tasks, reminders and retry state."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from zoneinfo import ZoneInfo


class TaskType(StrEnum):
    """Kinds of scheduled task."""

    HARDCODED = "hardcoded"
    REMINDER = "reminder"


class BuiltinTask(StrEnum):
    """Names of the built-in ``hardcoded`` tasks."""

    WEEKLY_LETTER_CHECK = "WeeklyLetterCheck"
    REMINDER_CHECK = "ReminderCheck"


class ReminderKind(StrEnum):
    """A reminder either fires once (concrete) or seeds recurring copies (template)."""

    CONCRETE = "concrete"
    TEMPLATE = "template"


def make_id() -> str:
    """Generate a new entity ID."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(UTC)


def _dump_ts(value: datetime | None) -> str | None:
    return value.astimezone(UTC).isoformat() if value else None


def _load_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class ScheduledTask:
    """A recurring unit of work driven by a 5-field cron expression.

    Attributes:
        id: Unique identifier (UUID hex).
        name: Unique, stable name. For ``hardcoded`` tasks this selects the
            built-in handler.
        cron_expression: Standard crontab expression (day-of-week 0 = Sunday).
        task_type: ``hardcoded`` or ``reminder``.
        reminder_id: Template reminder materialised by ``reminder`` tasks.
        enabled: Disabled tasks are never evaluated.
        last_run: When the task last fired.
        next_run: Cached next occurrence.
    """

    id: str
    name: str
    cron_expression: str
    task_type: TaskType = TaskType.HARDCODED
    description: str = ""
    reminder_id: str | None = None
    enabled: bool = True
    last_run: datetime | None = None
    next_run: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.task_type = TaskType(self.task_type)
        if self.task_type is TaskType.REMINDER and not self.reminder_id:
            msg = f"Reminder task '{self.name}' requires a reminder_id"
            raise ValueError(msg)

    @property
    def is_reminder(self) -> bool:
        return self.task_type is TaskType.REMINDER

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``scheduled_tasks`` column order."""
        return (
            self.id,
            self.name,
            self.description,
            self.cron_expression,
            self.task_type.value,
            self.reminder_id,
            int(self.enabled),
            _dump_ts(self.last_run),
            _dump_ts(self.next_run),
            _dump_ts(self.created_at),
            _dump_ts(self.updated_at),
        )

    @classmethod
    def from_row(cls, row: tuple) -> ScheduledTask:
        return cls(
            id=row[0],
            name=row[1],
            description=row[2] or "",
            cron_expression=row[3],
            task_type=TaskType(row[4]),
            reminder_id=row[5],
            enabled=bool(row[6]),
            last_run=_load_ts(row[7]),
            next_run=_load_ts(row[8]),
            created_at=_load_ts(row[9]) or utcnow(),
            updated_at=_load_ts(row[10]) or utcnow(),
        )


@dataclass
class Reminder:
    """A point-in-time notification for one child.

    Concrete reminders carry a real local date and fire once.  Templates have
    no date; they are only read by recurring-reminder tasks, which copy their
    text, time and child into a concrete reminder for the day.
    """

    id: str
    text: str
    remind_time: time
    remind_date: date | None = None
    child_name: str | None = None
    kind: ReminderKind = ReminderKind.CONCRETE
    is_sent: bool = False
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.kind = ReminderKind(self.kind)
        if self.kind is ReminderKind.CONCRETE and self.remind_date is None:
            msg = f"Concrete reminder {self.id} requires a remind_date"
            raise ValueError(msg)

    @property
    def is_template(self) -> bool:
        return self.kind is ReminderKind.TEMPLATE

    def due_at(self, tz: ZoneInfo) -> datetime:
        """Local wall-clock moment this reminder is due."""
        if self.remind_date is None:
            msg = f"Template reminder {self.id} has no due time"
            raise ValueError(msg)
        return datetime.combine(self.remind_date, self.remind_time, tzinfo=tz)

    def to_row(self) -> tuple:
        return (
            self.id,
            self.text,
            self.child_name,
            self.kind.value,
            self.remind_date.isoformat() if self.remind_date else None,
            self.remind_time.strftime("%H:%M:%S"),
            int(self.is_sent),
            _dump_ts(self.created_at),
        )

    @classmethod
    def from_row(cls, row: tuple) -> Reminder:
        return cls(
            id=row[0],
            text=row[1],
            child_name=row[2],
            kind=ReminderKind(row[3]),
            remind_date=date.fromisoformat(row[4]) if row[4] else None,
            remind_time=time.fromisoformat(row[5]),
            is_sent=bool(row[6]),
            created_at=_load_ts(row[7]) or utcnow(),
        )


@dataclass
class RetryAttempt:
    """Bounded retry state for one child's week letter."""

    child_name: str
    week_number: int
    year: int
    attempt_count: int = 1
    first_attempt_at: datetime = field(default_factory=utcnow)
    last_attempt_at: datetime = field(default_factory=utcnow)
    next_attempt_at: datetime = field(default_factory=utcnow)
    succeeded: bool = False
    given_up: bool = False

    @property
    def subject_key(self) -> str:
        return f"{self.child_name}:{self.year}-W{self.week_number:02d}"

    @property
    def is_terminal(self) -> bool:
        return self.succeeded or self.given_up

    def age(self, now: datetime) -> timedelta:
        return now - self.first_attempt_at

    def to_row(self) -> tuple:
        return (
            self.child_name,
            self.week_number,
            self.year,
            self.attempt_count,
            _dump_ts(self.first_attempt_at),
            _dump_ts(self.last_attempt_at),
            _dump_ts(self.next_attempt_at),
            int(self.succeeded),
            int(self.given_up),
        )

    @classmethod
    def from_row(cls, row: tuple) -> RetryAttempt:
        return cls(
            child_name=row[0],
            week_number=int(row[1]),
            year=int(row[2]),
            attempt_count=int(row[3]),
            first_attempt_at=_load_ts(row[4]) or utcnow(),
            last_attempt_at=_load_ts(row[5]) or utcnow(),
            next_attempt_at=_load_ts(row[6]) or utcnow(),
            succeeded=bool(row[7]),
            given_up=bool(row[8]),
        )
