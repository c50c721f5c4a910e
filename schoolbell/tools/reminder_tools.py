"""Reminder tools — create, list, delete and stop reminders for the children."""

from __future__ import annotations

import logging
from datetime import datetime, time
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from pydantic import Field

from schoolbell.errors import CronExpressionError
from schoolbell.scheduler.cron import build_cron_expression, parse_cron
from schoolbell.scheduler.models import (
    Reminder,
    ReminderKind,
    ScheduledTask,
    TaskType,
    make_id,
)
from schoolbell.tools.base import ToolParams, ToolResult
from schoolbell.tools.registry import registry

if TYPE_CHECKING:
    from collections.abc import Callable

    from schoolbell.config import Child
    from schoolbell.scheduler.reminder_store import ReminderStore
    from schoolbell.scheduler.store import TaskStore

logger = logging.getLogger(__name__)

RECURRING_TASK_PREFIX = "recurring_reminder_"

# Set by init_reminder_tools() during startup.
_reminder_store: ReminderStore | None = None
_task_store: TaskStore | None = None
_timezone: str = "UTC"
_default_time: time = time(6, 45)
_find_child: Callable[[str], Child | None] | None = None


def init_reminder_tools(
    reminder_store: ReminderStore,
    task_store: TaskStore,
    *,
    timezone: str,
    default_time: time,
    find_child: Callable[[str], Child | None] | None = None,
) -> None:
    """Wire the stores into the tool functions.

    Called once during startup, after the stores are constructed.
    """
    global _reminder_store, _task_store, _timezone, _default_time, _find_child  # noqa: PLW0603
    _reminder_store = reminder_store
    _task_store = task_store
    _timezone = timezone
    _default_time = default_time
    _find_child = find_child


def _get_stores() -> tuple[ReminderStore, TaskStore]:
    if _reminder_store is None or _task_store is None:
        msg = "Reminder tools not initialised, call init_reminder_tools() first"
        raise RuntimeError(msg)
    return _reminder_store, _task_store


def _resolve_child(child_name: str) -> tuple[str | None, str | None]:
    """Return ``(canonical name, error)`` for *child_name*."""
    name = child_name.strip()
    if not name:
        return None, "child_name is required"
    if _find_child is None:
        return name, None
    child = _find_child(name)
    if child is None:
        return None, f"Unknown child: {child_name}"
    return child.name, None


def _parse_time(value: str | None) -> time:
    """Parse ``HH:MM``; missing, malformed or midnight falls back to the default."""
    if not value:
        return _default_time
    try:
        parsed = time.fromisoformat(value.strip())
    except ValueError:
        logger.warning("Could not parse reminder time %r, using default", value)
        return _default_time
    if parsed == time(0, 0):
        return _default_time
    return parsed


# -- create_reminder -------------------------------------------------------------


class CreateReminderParams(ToolParams):
    description: str = Field(description="What to remind about (e.g. 'Pack gym bag')")
    date_time: str = Field(
        description="When to remind, ISO 8601 local date-time (e.g. '2025-06-04T07:30')"
    )
    child_name: str = Field(description="Name of the child this reminder is for")


@registry.tool(CreateReminderParams)
async def create_reminder(description: str, date_time: str, child_name: str) -> ToolResult:
    """Create a one-off reminder for a child at a specific date and time."""
    reminder_store, _ = _get_stores()

    if not description.strip():
        return ToolResult(error="description is required")
    name, error = _resolve_child(child_name)
    if error:
        return ToolResult(error=error)

    try:
        when = datetime.fromisoformat(date_time.strip())
    except ValueError:
        return ToolResult(
            error=f"Invalid date_time format: {date_time}. Use ISO 8601 (YYYY-MM-DDTHH:MM)."
        )
    if when.tzinfo is not None:
        when = when.astimezone(ZoneInfo(_timezone))

    reminder = Reminder(
        id=make_id(),
        text=description.strip(),
        remind_date=when.date(),
        remind_time=when.time().replace(microsecond=0, tzinfo=None),
        child_name=name,
    )
    await reminder_store.add_reminder(reminder)
    logger.info("Created reminder %s for %s at %s", reminder.id, name, when.isoformat())

    return ToolResult(
        data={
            "reminder_id": reminder.id,
            "child_name": name,
            "date": reminder.remind_date.isoformat(),
            "time": reminder.remind_time.strftime("%H:%M"),
            "message": f"Reminder created for {name} on {when.strftime('%d/%m %H:%M')}",
        }
    )


# -- create_recurring_reminder ---------------------------------------------------


class CreateRecurringReminderParams(ToolParams):
    description: str = Field(description="What to remind about")
    recurrence: str = Field(description='Either "daily" or "weekly"')
    day_of_week: int | None = Field(
        default=None,
        description="Day for weekly reminders, 0=Sunday … 6=Saturday. Required for weekly.",
    )
    time: str | None = Field(
        default=None,
        description="Time of day as HH:MM. Uses the default reminder time if omitted.",
    )
    child_name: str = Field(description="Name of the child this reminder is for")


@registry.tool(CreateRecurringReminderParams)
async def create_recurring_reminder(
    description: str,
    recurrence: str,
    child_name: str,
    day_of_week: int | None = None,
    time: str | None = None,  # noqa: A002
) -> ToolResult:
    """Create a reminder that repeats every day or every week.

    For example "pack gym bag every Wednesday at 07:30".  The reminder is
    stored as a template and a scheduled task materialises it on each
    matching day.
    """
    reminder_store, task_store = _get_stores()

    if not description.strip():
        return ToolResult(error="description is required")
    name, error = _resolve_child(child_name)
    if error:
        return ToolResult(error=error)
    if recurrence == "weekly" and day_of_week is None:
        return ToolResult(error="day_of_week is required for weekly reminders")

    at = _parse_time(time)
    try:
        cron_expression = build_cron_expression(
            recurrence, at.hour, at.minute, day_of_week if day_of_week is not None else 0
        )
        parse_cron(cron_expression, _timezone)
    except (ValueError, CronExpressionError) as exc:
        return ToolResult(error=str(exc))

    template = Reminder(
        id=make_id(),
        text=description.strip(),
        remind_time=at,
        child_name=name,
        kind=ReminderKind.TEMPLATE,
    )
    await reminder_store.add_reminder(template)

    task = ScheduledTask(
        id=make_id(),
        name=f"{RECURRING_TASK_PREFIX}{template.id}",
        description=f"Recurring reminder: {template.text}",
        cron_expression=cron_expression,
        task_type=TaskType.REMINDER,
        reminder_id=template.id,
    )
    try:
        await task_store.add_task(task)
    except Exception:
        logger.exception("Failed to schedule recurring reminder %s", template.id)
        await reminder_store.delete_reminder(template.id)
        raise

    logger.info("Created recurring reminder %s (%s) for %s", template.id, cron_expression, name)
    return ToolResult(
        data={
            "reminder_id": template.id,
            "task_id": task.id,
            "cron": cron_expression,
            "child_name": name,
            "time": at.strftime("%H:%M"),
            "message": f"Recurring {recurrence} reminder created for {name}",
        }
    )


# -- list_reminders --------------------------------------------------------------


class ListRemindersParams(ToolParams):
    child_name: str | None = Field(
        default=None, description="Only list reminders for this child (optional)"
    )


@registry.tool(ListRemindersParams)
async def list_reminders(child_name: str | None = None) -> ToolResult:
    """List upcoming reminders, numbered. Use the number with delete_reminder."""
    reminder_store, _ = _get_stores()
    reminders = await reminder_store.list_upcoming(child_name or None)
    return ToolResult(
        data={
            "reminders": [
                {
                    "number": number,
                    "id": r.id,
                    "text": r.text,
                    "child_name": r.child_name,
                    "date": r.remind_date.isoformat() if r.remind_date else None,
                    "time": r.remind_time.strftime("%H:%M"),
                }
                for number, r in enumerate(reminders, start=1)
            ],
            "count": len(reminders),
        }
    )


# -- delete_reminder -------------------------------------------------------------


class DeleteReminderParams(ToolParams):
    reminder_number: int = Field(description="Number of the reminder as shown by list_reminders")
    child_name: str | None = Field(
        default=None,
        description="Same child filter that was passed to list_reminders, if any",
    )


@registry.tool(DeleteReminderParams)
async def delete_reminder(reminder_number: int, child_name: str | None = None) -> ToolResult:
    """Delete an upcoming reminder by its number from list_reminders."""
    reminder_store, _ = _get_stores()
    reminders = await reminder_store.list_upcoming(child_name or None)

    if not 1 <= reminder_number <= len(reminders):
        return ToolResult(
            error=f"Invalid reminder number {reminder_number}. "
            f"There are {len(reminders)} upcoming reminder(s)."
        )

    target = reminders[reminder_number - 1]
    if not await reminder_store.delete_reminder(target.id):
        return ToolResult(error=f"Reminder {reminder_number} was already removed")

    return ToolResult(
        data={
            "deleted": True,
            "reminder_id": target.id,
            "text": target.text,
            "message": f"Deleted reminder {reminder_number}: {target.text}",
        }
    )


# -- stop_recurring_reminder -----------------------------------------------------


class StopRecurringReminderParams(ToolParams):
    search: str = Field(description="Part of the recurring reminder's text (e.g. 'gym bag')")
    child_name: str | None = Field(
        default=None, description="Only match recurring reminders for this child (optional)"
    )


@registry.tool(StopRecurringReminderParams)
async def stop_recurring_reminder(search: str, child_name: str | None = None) -> ToolResult:
    """Stop a recurring reminder so it no longer repeats.

    The scheduled task is disabled, not deleted; reminders already created
    for today are left alone.
    """
    reminder_store, task_store = _get_stores()
    if not search.strip():
        return ToolResult(error="search is required")

    matches = []
    for task in await task_store.search_tasks(search.strip()):
        if not task.is_reminder:
            continue
        template = await reminder_store.get_reminder(task.reminder_id or "")
        if template is None:
            continue
        if child_name and (template.child_name or "").lower() != child_name.strip().lower():
            continue
        matches.append((task, template))

    if not matches:
        return ToolResult(error=f"No recurring reminder matches '{search}'")
    if len(matches) > 1:
        texts = ", ".join(f"'{t.text}' ({t.child_name})" for _, t in matches)
        return ToolResult(error=f"'{search}' matches several recurring reminders: {texts}")

    task, template = matches[0]
    if not await task_store.set_enabled(task.id, False):
        return ToolResult(error=f"Recurring reminder '{template.text}' was already removed")

    logger.info("Stopped recurring reminder %s (%s)", template.id, task.cron_expression)
    return ToolResult(
        data={
            "stopped": True,
            "task_id": task.id,
            "text": template.text,
            "child_name": template.child_name,
            "message": f"Stopped recurring reminder: {template.text}",
        }
    )
