"""Startup recovery — deliver reminders and run tasks missed during downtime."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from telegram.helpers import escape_markdown

from schoolbell.errors import require

if TYPE_CHECKING:
    from schoolbell.scheduler.dispatcher import ReminderDispatcher
    from schoolbell.scheduler.evaluator import CronEvaluator
    from schoolbell.scheduler.models import Reminder, ScheduledTask
    from schoolbell.scheduler.store import TaskStore

logger = logging.getLogger(__name__)


def format_missed_reminder(reminder: Reminder, now: datetime, tz: ZoneInfo) -> str:
    """Reminder text tagged as missed, with how late it is."""
    due = reminder.due_at(tz)
    minutes_late = max(0, int((now - due).total_seconds() // 60))
    child_info = f" ({escape_markdown(reminder.child_name)})" if reminder.child_name else ""
    return (
        f"⚠️ *Missed reminder*{child_info}: {escape_markdown(reminder.text)}\n"
        f"_Was scheduled for {due.strftime('%H:%M')} ({minutes_late} minutes ago)_"
    )


class StartupRecovery:
    """One-shot pass run at process start.

    Delivers overdue unsent reminders (tagged as missed) and fires enabled
    tasks whose last occurrence passed without them running.  Both halves are
    idempotent: delivered reminders are marked sent and fired tasks get a
    fresh ``last_run``/``next_run``.
    """

    def __init__(
        self,
        dispatcher: ReminderDispatcher,
        evaluator: CronEvaluator,
        task_store: TaskStore,
        timezone: str,
    ) -> None:
        require(dispatcher=dispatcher, evaluator=evaluator, task_store=task_store)
        self._dispatcher = dispatcher
        self._evaluator = evaluator
        self._task_store = task_store
        self._tz = ZoneInfo(timezone)

    async def run(self, now: datetime | None = None) -> tuple[int, int]:
        """Recover reminders, then tasks. Returns ``(reminders, tasks)`` recovered."""
        now = now or datetime.now(UTC)
        reminders = await self.recover_reminders(now)
        tasks = await self.recover_tasks(now)
        return reminders, tasks

    async def recover_reminders(self, now: datetime) -> int:
        logger.info("Checking for missed reminders on startup")
        try:
            overdue = await self._dispatcher.list_due(now)
        except Exception:
            logger.exception("Error checking for missed reminders")
            return 0

        if not overdue:
            logger.info("No missed reminders found on startup")
            return 0

        logger.warning("Found %d missed reminder(s) on startup", len(overdue))
        delivered = 0
        for reminder in overdue:
            text = format_missed_reminder(reminder, now, self._tz)
            if await self._dispatcher.deliver(reminder, text=text):
                delivered += 1
                logger.info("Notified about missed reminder: %s", reminder.text)
        return delivered

    async def recover_tasks(self, now: datetime) -> int:
        logger.info("Checking for missed scheduled tasks on startup")
        try:
            tasks = await self._task_store.list_enabled_tasks()
        except Exception:
            logger.exception("Error checking for missed scheduled tasks")
            return 0

        missed = [task for task in tasks if self._was_missed(task, now)]
        if not missed:
            logger.info("No missed scheduled tasks found on startup")
            return 0

        logger.info("Executing %d missed scheduled task(s)", len(missed))
        executed = 0
        for task in missed:
            try:
                if await self._evaluator.fire(task, now):
                    executed += 1
                    logger.info("Successfully executed missed task: %s", task.name)
            except Exception:
                logger.exception("Error executing missed scheduled task: %s", task.name)
        return executed

    def _was_missed(self, task: ScheduledTask, now: datetime) -> bool:
        try:
            next_run = self._evaluator.resolve_next_run(task, now)
        except Exception:
            logger.exception("Error checking if task %s was missed", task.name)
            return False

        if now > next_run and (task.last_run is None or task.last_run < next_run):
            logger.warning(
                "Found missed scheduled task: %s, was scheduled for %s (%d minutes ago)",
                task.name,
                next_run.isoformat(),
                (now - next_run).total_seconds() // 60,
            )
            return True
        return False
