"""SchedulerEngine — the single recurring tick that drives all scheduled work."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from schoolbell.errors import require

if TYPE_CHECKING:
    from schoolbell.content.retry import RetryEngine
    from schoolbell.scheduler.dispatcher import ReminderDispatcher
    from schoolbell.scheduler.evaluator import CronEvaluator
    from schoolbell.scheduler.missed import StartupRecovery

logger = logging.getLogger(__name__)

TICK_JOB_ID = "schoolbell-tick"


def _next_minute(now: datetime) -> datetime:
    return now.replace(second=0, microsecond=0) + timedelta(minutes=1)


class SchedulerEngine:
    """Owns the APScheduler lifecycle and the tick reentrancy guard.

    Every tick runs the reminder dispatcher, the retry engine and the cron
    evaluator in that order.  The evaluator is held back until startup
    recovery finishes, so recovery sees tasks before any missed occurrence
    is skipped.  A tick that starts while the previous one is
    still running is dropped, not queued.

    Args:
        dispatcher: ReminderDispatcher run every tick.
        retry_engine: RetryEngine run every tick.
        evaluator: CronEvaluator run every tick (it evaluates once per
            minute).
        recovery: StartupRecovery launched alongside the first tick.
        interval_seconds: Seconds between ticks, at most 60 so no minute is
            skipped.  After the immediate first tick, ticks are aligned to
            whole minutes.
        timezone: IANA timezone for the APScheduler instance.
    """

    def __init__(
        self,
        dispatcher: ReminderDispatcher,
        retry_engine: RetryEngine,
        evaluator: CronEvaluator,
        recovery: StartupRecovery,
        *,
        interval_seconds: int = 30,
        timezone: str = "UTC",
    ) -> None:
        require(
            dispatcher=dispatcher,
            retry_engine=retry_engine,
            evaluator=evaluator,
            recovery=recovery,
        )
        if not 1 <= interval_seconds <= 60:
            msg = f"interval_seconds must be between 1 and 60, got {interval_seconds}"
            raise ValueError(msg)
        self._dispatcher = dispatcher
        self._retry_engine = retry_engine
        self._evaluator = evaluator
        self._recovery = recovery
        self._interval_seconds = interval_seconds
        self._timezone = timezone
        self._scheduler = AsyncIOScheduler(
            timezone=timezone, job_defaults={"coalesce": True, "max_instances": 1}
        )
        self._lifecycle_lock = asyncio.Lock()
        self._running = False
        self._tick_in_progress = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._recovery_task: asyncio.Task | None = None
        self._tick_tasks: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def tick_in_progress(self) -> bool:
        return self._tick_in_progress

    @property
    def recovery_task(self) -> asyncio.Task | None:
        return self._recovery_task

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Launch startup recovery and begin ticking immediately."""
        async with self._lifecycle_lock:
            if self._running:
                logger.warning("Scheduler is already running")
                return
            self._running = True

            self._recovery_task = asyncio.create_task(self._run_recovery())
            self._scheduler.add_job(
                self._on_timer,
                trigger=IntervalTrigger(
                    seconds=self._interval_seconds,
                    start_date=_next_minute(datetime.now(UTC)),
                    timezone=self._timezone,
                ),
                id=TICK_JOB_ID,
                name="scheduler tick",
                misfire_grace_time=None,
                replace_existing=True,
            )
            if not self._scheduler.running:
                self._scheduler.start()
            await self._on_timer()
            logger.info(
                "Scheduler started - checking every %d seconds (tz=%s)",
                self._interval_seconds,
                self._timezone,
            )

    async def stop(self) -> None:
        """Stop future ticks. An in-flight tick is left to finish on its own."""
        async with self._lifecycle_lock:
            self._running = False
            if self._scheduler.running:
                self._scheduler.shutdown(wait=False)
                # AsyncIOScheduler applies the shutdown on the next loop iteration
                await asyncio.sleep(0)
                logger.info("Scheduler stopped")

    async def wait_until_idle(self) -> None:
        """Wait for an in-flight tick, if any, to finish."""
        await self._idle.wait()

    # -- Ticking ---------------------------------------------------------------

    async def tick(self, now: datetime | None = None) -> bool:
        """Run one evaluation pass. Returns False if the tick was dropped."""
        if self._tick_in_progress:
            logger.debug("Previous tick still running, dropping this one")
            return False
        self._tick_in_progress = True
        self._idle.clear()
        try:
            now = now or datetime.now(UTC)
            stages = (
                ("reminders", self._dispatcher.dispatch_due),
                ("retries", self._retry_engine.run_pending),
                ("scheduled tasks", self._evaluate_tasks),
            )
            for label, stage in stages:
                try:
                    await stage(now)
                except Exception:
                    logger.exception("Error checking %s during tick", label)
        finally:
            self._tick_in_progress = False
            self._idle.set()
        return True

    async def _on_timer(self) -> None:
        """Callback invoked by APScheduler.

        The tick runs in a task owned by the engine: APScheduler cancels its
        own pending jobs on shutdown, and an in-flight tick must finish.
        """
        if not self._running:
            return
        task = asyncio.create_task(self._run_tick())
        self._tick_tasks.add(task)
        task.add_done_callback(self._tick_tasks.discard)

    async def _run_tick(self) -> None:
        try:
            await self.tick()
        except Exception:
            logger.exception("Unhandled error in scheduled tick")

    async def _evaluate_tasks(self, now: datetime) -> int:
        if self._recovery_task is not None and not self._recovery_task.done():
            logger.debug("Startup recovery still running, deferring scheduled tasks")
            return 0
        return await self._evaluator.evaluate(now)

    async def _run_recovery(self) -> None:
        try:
            await self._recovery.run()
        except Exception:
            logger.exception("Error checking for missed reminders/tasks on startup")
