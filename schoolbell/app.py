"""Application factory — wires stores, scheduler, content and Telegram together."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from telegram.ext import Application

from schoolbell.config import Settings, settings
from schoolbell.content.checker import WeekLetterCheck
from schoolbell.content.dedup import ContentPipeline
from schoolbell.content.retry import RetryEngine
from schoolbell.content.retry_store import RetryStore
from schoolbell.content.source import HttpContentSource
from schoolbell.content.store import ContentStore
from schoolbell.events import EventBus
from schoolbell.notifications.delivery import DeliveryService
from schoolbell.notifications.telegram_channel import TelegramChannel
from schoolbell.scheduler.cron import parse_cron
from schoolbell.scheduler.dispatcher import ReminderDispatcher
from schoolbell.scheduler.engine import SchedulerEngine
from schoolbell.scheduler.evaluator import CronEvaluator
from schoolbell.scheduler.executor import TaskExecutor
from schoolbell.scheduler.missed import StartupRecovery
from schoolbell.scheduler.models import BuiltinTask, ScheduledTask, make_id
from schoolbell.scheduler.reminder_store import ReminderStore
from schoolbell.scheduler.store import TaskStore
from schoolbell.tools.reminder_tools import init_reminder_tools

if TYPE_CHECKING:
    from pathlib import Path

    from schoolbell.content.extraction import ReminderExtractor
    from schoolbell.content.source import ContentSource

logger = logging.getLogger(__name__)

# Module-level reference so post_shutdown can access the engine.
_services: Services | None = None


@dataclass
class Services:
    """Everything the running assistant needs, built from settings."""

    bus: EventBus
    task_store: TaskStore
    reminder_store: ReminderStore
    content_store: ContentStore
    retry_store: RetryStore
    dispatcher: ReminderDispatcher
    pipeline: ContentPipeline
    retry_engine: RetryEngine
    week_letter_check: WeekLetterCheck
    executor: TaskExecutor
    evaluator: CronEvaluator
    recovery: StartupRecovery
    engine: SchedulerEngine


def build_services(
    config: Settings | None = None,
    *,
    source: ContentSource | None = None,
    extractor: ReminderExtractor | None = None,
    db_path: Path | None = None,
) -> Services:
    """Construct the scheduling and content components.

    Raises:
        ValueError: If no content source is given and CONTENT_SOURCE_URL is unset.
    """
    config = config or settings
    tz = config.scheduler_timezone

    if source is None:
        if not config.content_source_url:
            msg = "CONTENT_SOURCE_URL is required to fetch week letters"
            raise ValueError(msg)
        source = HttpContentSource(config.content_source_url)

    bus = EventBus()
    task_store = TaskStore(db_path)
    reminder_store = ReminderStore(db_path)
    content_store = ContentStore(db_path)
    retry_store = RetryStore(db_path)

    dispatcher = ReminderDispatcher(reminder_store, bus, tz)
    pipeline = ContentPipeline(content_store, retry_store, bus, extractor=extractor, timezone=tz)
    retry_engine = RetryEngine(
        retry_store,
        source,
        pipeline,
        bus,
        config.get_child,
        retry_interval=timedelta(hours=config.retry_interval_hours),
        max_duration=timedelta(hours=config.max_retry_duration_hours),
    )
    week_letter_check = WeekLetterCheck(
        config.get_children, source, content_store, pipeline, retry_engine, timezone=tz
    )
    executor = TaskExecutor(
        reminder_store,
        {
            BuiltinTask.WEEKLY_LETTER_CHECK: week_letter_check.run,
            BuiltinTask.REMINDER_CHECK: dispatcher.dispatch_due,
        },
        tz,
    )
    evaluator = CronEvaluator(
        task_store,
        executor,
        tz,
        execution_window=timedelta(minutes=config.cron_execution_window_minutes),
        initial_offset=timedelta(minutes=config.initial_occurrence_offset_minutes),
        evaluation_window_seconds=config.cron_evaluation_window_seconds,
        lookahead=timedelta(minutes=config.cron_lookahead_minutes),
    )
    recovery = StartupRecovery(dispatcher, evaluator, task_store, tz)
    engine = SchedulerEngine(
        dispatcher,
        retry_engine,
        evaluator,
        recovery,
        interval_seconds=config.tick_interval_seconds,
        timezone=tz,
    )

    init_reminder_tools(
        reminder_store,
        task_store,
        timezone=tz,
        default_time=config.get_default_reminder_time(),
        find_child=config.get_child,
    )

    return Services(
        bus=bus,
        task_store=task_store,
        reminder_store=reminder_store,
        content_store=content_store,
        retry_store=retry_store,
        dispatcher=dispatcher,
        pipeline=pipeline,
        retry_engine=retry_engine,
        week_letter_check=week_letter_check,
        executor=executor,
        evaluator=evaluator,
        recovery=recovery,
        engine=engine,
    )


async def seed_builtin_tasks(task_store: TaskStore, config: Settings | None = None) -> bool:
    """Insert the WeeklyLetterCheck task on first run. Returns True if inserted."""
    config = config or settings
    parse_cron(config.week_letter_check_cron, config.scheduler_timezone)
    inserted = await task_store.ensure_task(
        ScheduledTask(
            id=make_id(),
            name=BuiltinTask.WEEKLY_LETTER_CHECK.value,
            description="Fetch and post the week letter for every child",
            cron_expression=config.week_letter_check_cron,
        )
    )
    if inserted:
        logger.info(
            "Seeded %s task (%s)", BuiltinTask.WEEKLY_LETTER_CHECK, config.week_letter_check_cron
        )
    return inserted


def _init_notifications(app: Application, bus: EventBus) -> DeliveryService:
    """Pick the configured notification channel and subscribe delivery to the bus.

    Raises:
        ValueError: If DEFAULT_NOTIFICATION_CHANNEL names an unknown channel.
    """
    channels = {channel.name: channel for channel in [TelegramChannel(app.bot)]}
    name = settings.default_notification_channel
    if name not in channels:
        msg = f"Unknown notification channel '{name}', available: {sorted(channels)}"
        raise ValueError(msg)
    delivery = DeliveryService(channels[name], settings.get_child)
    delivery.subscribe(bus)
    logger.info(
        "Notifications initialized: channels=%s, using=%s", sorted(channels), delivery.channel_name
    )
    return delivery


async def _post_init(app: Application) -> None:
    """Called after the Application is fully initialized (event loop running)."""
    if _services is None:
        return
    await seed_builtin_tasks(_services.task_store)
    await _services.engine.start()


async def _post_shutdown(app: Application) -> None:
    """Called during graceful shutdown."""
    if _services is not None:
        await _services.engine.stop()
        await _services.engine.wait_until_idle()


def create_app() -> Application:
    """Build and configure the Telegram application."""
    global _services  # noqa: PLW0603
    app = Application.builder().token(settings.telegram_bot_token).build()

    _services = build_services()
    _init_notifications(app, _services.bus)

    # Scheduler lifecycle hooks
    app.post_init = _post_init
    app.post_shutdown = _post_shutdown

    return app
