"""CronEvaluator — decides which recurring tasks are due and fires them."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from schoolbell.errors import CronExpressionError, require
from schoolbell.scheduler.cron import next_occurrence

if TYPE_CHECKING:
    from datetime import datetime

    from schoolbell.scheduler.executor import TaskExecutor
    from schoolbell.scheduler.models import ScheduledTask
    from schoolbell.scheduler.store import TaskStore

logger = logging.getLogger(__name__)


class CronEvaluator:
    """Evaluates enabled tasks once per wall-clock minute.

    Cron granularity is one minute, so the first tick of each minute
    evaluates every enabled task and later ticks in the same minute do
    nothing.  Ticks normally land inside the first
    *evaluation_window_seconds* of the minute; a tick that lands later still
    evaluates a minute no earlier tick covered.  A task is due when
    ``next_run <= now <= next_run + execution_window``.  A task whose window
    passed without it firing skips that occurrence and moves on to the next.

    Args:
        store: TaskStore holding the tasks.
        executor: TaskExecutor that runs fired tasks.
        timezone: IANA timezone cron expressions are evaluated in.
        execution_window: How late a task may still fire.
        initial_offset: Look-back for tasks that have never run.
        evaluation_window_seconds: Seconds at the start of each minute
            during which ticks are expected to evaluate.
        lookahead: ``next_run`` is computed from ``now + lookahead`` after
            firing, so a task cannot re-match the occurrence it just ran.
    """

    def __init__(
        self,
        store: TaskStore,
        executor: TaskExecutor,
        timezone: str,
        *,
        execution_window: timedelta = timedelta(minutes=5),
        initial_offset: timedelta = timedelta(minutes=1),
        evaluation_window_seconds: int = 10,
        lookahead: timedelta = timedelta(minutes=2),
    ) -> None:
        require(store=store, executor=executor, timezone=timezone)
        self._store = store
        self._executor = executor
        self._timezone = timezone
        self._execution_window = execution_window
        self._initial_offset = initial_offset
        self._evaluation_window_seconds = evaluation_window_seconds
        self._lookahead = lookahead
        self._in_flight: set[str] = set()
        self._last_minute: datetime | None = None

    def in_evaluation_window(self, now: datetime) -> bool:
        return now.second < self._evaluation_window_seconds

    def should_evaluate(self, now: datetime) -> bool:
        """True for the first tick seen in *now*'s wall-clock minute."""
        minute = now.replace(second=0, microsecond=0)
        return self._last_minute is None or minute > self._last_minute

    def resolve_next_run(self, task: ScheduledTask, now: datetime) -> datetime:
        """Cached ``next_run``, else the next occurrence after the last run.

        Raises:
            CronExpressionError: If the task's expression cannot be parsed.
        """
        if task.next_run is not None:
            return task.next_run
        base = task.last_run if task.last_run is not None else now - self._initial_offset
        return next_occurrence(task.cron_expression, base, self._timezone)

    def is_due(self, task: ScheduledTask, now: datetime) -> bool:
        if not task.enabled:
            return False
        next_run = self.resolve_next_run(task, now)
        return next_run <= now <= next_run + self._execution_window

    def is_overdue(self, task: ScheduledTask, now: datetime) -> bool:
        """True when the task's execution window passed without it firing."""
        return now > self.resolve_next_run(task, now) + self._execution_window

    async def evaluate(self, now: datetime) -> int:
        """Fire every due task. Returns how many fired."""
        if not self.should_evaluate(now):
            return 0
        self._last_minute = now.replace(second=0, microsecond=0)
        if not self.in_evaluation_window(now):
            logger.debug("Evaluating scheduled tasks late in the minute (second %d)", now.second)

        tasks = await self._store.list_enabled_tasks()
        fired = 0
        for task in tasks:
            try:
                if self.is_overdue(task, now):
                    await self.skip_occurrence(task, now)
                elif self.is_due(task, now) and await self.fire(task, now):
                    fired += 1
            except CronExpressionError:
                logger.error(
                    "Invalid cron expression for task %s: %s", task.name, task.cron_expression
                )
            except Exception:
                logger.exception("Error processing scheduled task: %s", task.name)
        return fired

    async def skip_occurrence(self, task: ScheduledTask, now: datetime) -> None:
        """Move an overdue task's ``next_run`` to its next occurrence after *now*."""
        missed = self.resolve_next_run(task, now)
        task.next_run = next_occurrence(task.cron_expression, now, self._timezone)
        logger.warning(
            "Task %s missed its run at %s, next run %s",
            task.name,
            missed.isoformat(),
            task.next_run.isoformat(),
        )
        await self._store.update_run_times(task)

    async def fire(self, task: ScheduledTask, now: datetime) -> bool:
        """Advance the task's run times, persist them, then execute it.

        Returns False when another pass fired the same occurrence first.
        """
        if task.id in self._in_flight:
            logger.info("Task %s is already being fired, skipping", task.name)
            return False
        self._in_flight.add(task.id)
        try:
            stored = await self._store.get_task(task.id)
            if stored is not None and _fired_since(stored, task):
                logger.info("Task %s was fired by another pass, skipping", task.name)
                return False

            logger.info("Executing scheduled task: %s", task.name)
            task.last_run = now
            task.next_run = next_occurrence(
                task.cron_expression, now + self._lookahead, self._timezone
            )
            await self._store.update_run_times(task)
        finally:
            self._in_flight.discard(task.id)

        await self._executor.execute(task, now)
        return True


def _fired_since(stored: ScheduledTask, seen: ScheduledTask) -> bool:
    if stored.last_run is None:
        return False
    return seen.last_run is None or stored.last_run > seen.last_run
