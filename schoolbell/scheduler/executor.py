"""TaskExecutor — dispatches fired scheduled tasks to their handlers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from schoolbell.errors import TemplateError, require
from schoolbell.scheduler.models import BuiltinTask, Reminder, make_id

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping
    from datetime import datetime

    from schoolbell.scheduler.models import ScheduledTask
    from schoolbell.scheduler.reminder_store import ReminderStore

    BuiltinHandler = Callable[[datetime], Awaitable[object]]

logger = logging.getLogger(__name__)


class TaskExecutor:
    """Executes scheduled tasks by kind.

    ``reminder`` tasks materialise today's reminder from their template.
    ``hardcoded`` tasks run the built-in handler named by the task.

    Args:
        reminder_store: ReminderStore for templates and materialised reminders.
        handlers: One async handler per ``BuiltinTask``; each receives ``now``.
        timezone: IANA timezone that decides what "today" is.

    Raises:
        ValueError: If a dependency is missing or a built-in task has no handler.
    """

    def __init__(
        self,
        reminder_store: ReminderStore,
        handlers: Mapping[BuiltinTask, BuiltinHandler],
        timezone: str,
    ) -> None:
        require(reminder_store=reminder_store, handlers=handlers, timezone=timezone)
        missing = [task.value for task in BuiltinTask if task not in handlers]
        if missing:
            msg = f"No handler registered for built-in task(s): {', '.join(missing)}"
            raise ValueError(msg)
        self._store = reminder_store
        self._handlers = dict(handlers)
        self._tz = ZoneInfo(timezone)

    async def execute(self, task: ScheduledTask, now: datetime) -> None:
        """Run *task*. Handler exceptions propagate to the caller."""
        logger.info("Executing task '%s' (%s) type=%s", task.name, task.id, task.task_type)
        if task.is_reminder:
            await self.materialize_reminder(task, now)
            return

        try:
            builtin = BuiltinTask(task.name)
        except ValueError:
            logger.warning(
                "Unknown scheduled task: %s with type %s, ignoring", task.name, task.task_type
            )
            return
        await self._handlers[builtin](now)

    async def materialize_reminder(self, task: ScheduledTask, now: datetime) -> Reminder | None:
        """Create today's concrete reminder from the task's template.

        Returns None when an identical reminder already exists for today.

        Raises:
            TemplateError: If the template is missing or not a template.
        """
        template = await self._store.get_reminder(task.reminder_id or "")
        if template is None:
            msg = f"Template reminder {task.reminder_id} not found for task {task.name}"
            raise TemplateError(msg)
        if not template.is_template:
            msg = f"Reminder {template.id} used by task {task.name} is not a template"
            raise TemplateError(msg)

        today = now.astimezone(self._tz).date()
        if await self._store.exists_for_date(
            template.text, today, template.remind_time, template.child_name
        ):
            logger.info(
                "Recurring reminder already exists for today, skipping: '%s' for %s",
                template.text,
                template.child_name,
            )
            return None

        reminder = Reminder(
            id=make_id(),
            text=template.text,
            remind_date=today,
            remind_time=template.remind_time,
            child_name=template.child_name,
        )
        await self._store.add_reminder(reminder)
        logger.info(
            "Created recurring reminder %s from template %s: '%s' for %s at %s",
            reminder.id,
            template.id,
            template.text,
            template.child_name,
            template.remind_time.strftime("%H:%M"),
        )
        return reminder
