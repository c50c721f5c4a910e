"""Tests for CronEvaluator — due detection, firing and duplicate guards."""

import asyncio
from datetime import date, datetime, time, timedelta
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import pytest

from schoolbell.events import EventBus, ReminderReady
from schoolbell.scheduler.dispatcher import ReminderDispatcher
from schoolbell.scheduler.evaluator import CronEvaluator
from schoolbell.scheduler.executor import TaskExecutor
from schoolbell.scheduler.models import (
    BuiltinTask,
    Reminder,
    ReminderKind,
    ScheduledTask,
    TaskType,
)
from schoolbell.scheduler.reminder_store import ReminderStore
from schoolbell.scheduler.store import TaskStore

pytestmark = pytest.mark.usefixtures("_no_turso")

TZ = "Europe/Copenhagen"
CPH = ZoneInfo(TZ)
# Monday 2 June 2025; Wednesday is the 4th
MONDAY = datetime(2025, 6, 2, 12, 0, tzinfo=CPH)
WEDNESDAY_0731 = datetime(2025, 6, 4, 7, 31, 5, tzinfo=CPH)


@pytest.fixture
def executor() -> MagicMock:
    mock = MagicMock(spec=TaskExecutor)
    mock.execute = AsyncMock()
    return mock


@pytest.fixture
def evaluator(task_store: TaskStore, executor: MagicMock) -> CronEvaluator:
    return CronEvaluator(task_store, executor, TZ)


def _task(task_id: str = "t1", cron: str = "30 7 * * 3", **kwargs) -> ScheduledTask:
    defaults = {"name": f"task-{task_id}", "last_run": MONDAY}
    defaults.update(kwargs)
    return ScheduledTask(id=task_id, cron_expression=cron, **defaults)


# -- Window and due checks -----------------------------------------------------


@pytest.mark.parametrize(("second", "expected"), [(0, True), (9, True), (10, False), (45, False)])
def test_evaluation_window(evaluator: CronEvaluator, second: int, expected: bool) -> None:
    now = WEDNESDAY_0731.replace(second=second)
    assert evaluator.in_evaluation_window(now) is expected


def test_resolve_next_run_from_last_run(evaluator: CronEvaluator) -> None:
    assert evaluator.resolve_next_run(_task(), WEDNESDAY_0731) == datetime(
        2025, 6, 4, 7, 30, tzinfo=CPH
    )


def test_resolve_next_run_prefers_cached(evaluator: CronEvaluator) -> None:
    cached = datetime(2025, 6, 11, 7, 30, tzinfo=CPH)
    assert evaluator.resolve_next_run(_task(next_run=cached), WEDNESDAY_0731) == cached


def test_resolve_next_run_never_run_uses_offset(evaluator: CronEvaluator) -> None:
    # Created 07:30:30; the 07:30 occurrence is inside the initial offset
    now = datetime(2025, 6, 4, 7, 30, 30, tzinfo=CPH)
    task = _task(last_run=None)
    assert evaluator.resolve_next_run(task, now) == datetime(2025, 6, 4, 7, 30, tzinfo=CPH)


@pytest.mark.parametrize(
    ("now", "expected"),
    [
        (datetime(2025, 6, 4, 7, 29, 59, tzinfo=CPH), False),
        (datetime(2025, 6, 4, 7, 30, 0, tzinfo=CPH), True),
        (datetime(2025, 6, 4, 7, 35, 0, tzinfo=CPH), True),
        (datetime(2025, 6, 4, 7, 35, 1, tzinfo=CPH), False),
    ],
)
def test_is_due_window(evaluator: CronEvaluator, now: datetime, expected: bool) -> None:
    assert evaluator.is_due(_task(), now) is expected


def test_disabled_task_never_due(evaluator: CronEvaluator) -> None:
    assert evaluator.is_due(_task(enabled=False), WEDNESDAY_0731) is False


# -- evaluate ------------------------------------------------------------------


async def test_fires_due_task_and_advances(
    evaluator: CronEvaluator, task_store: TaskStore, executor: MagicMock
) -> None:
    await task_store.add_task(_task())

    assert await evaluator.evaluate(WEDNESDAY_0731) == 1
    executor.execute.assert_awaited_once()

    stored = await task_store.get_task("t1")
    assert stored.last_run == WEDNESDAY_0731
    assert stored.next_run == datetime(2025, 6, 11, 7, 30, tzinfo=CPH)


async def test_evaluates_once_per_minute(
    evaluator: CronEvaluator, task_store: TaskStore, executor: MagicMock
) -> None:
    await task_store.add_task(_task())
    early = WEDNESDAY_0731.replace(minute=29)

    assert await evaluator.evaluate(early) == 0
    assert evaluator.should_evaluate(early.replace(second=40)) is False
    assert evaluator.should_evaluate(early + timedelta(minutes=1)) is True


async def test_late_tick_still_evaluates_its_minute(
    evaluator: CronEvaluator, task_store: TaskStore, executor: MagicMock
) -> None:
    await task_store.add_task(_task())
    assert await evaluator.evaluate(WEDNESDAY_0731.replace(second=30)) == 1
    executor.execute.assert_awaited_once()


async def test_ticks_offset_from_minute_boundary_fire_daily_task(
    evaluator: CronEvaluator, task_store: TaskStore, executor: MagicMock
) -> None:
    # 30-second ticks starting at :15 never land in the first 10 seconds
    await task_store.add_task(_task(cron="30 7 * * *", last_run=MONDAY))
    now = datetime(2025, 6, 4, 7, 0, 15, tzinfo=CPH)
    fired = 0
    for _ in range(240):
        fired += await evaluator.evaluate(now)
        now += timedelta(seconds=30)

    assert fired == 1
    stored = await task_store.get_task("t1")
    assert stored.last_run == datetime(2025, 6, 4, 7, 30, 15, tzinfo=CPH)


async def test_missed_window_skips_to_next_occurrence(
    evaluator: CronEvaluator, task_store: TaskStore, executor: MagicMock
) -> None:
    await task_store.add_task(
        _task(cron="30 7 * * *", next_run=datetime(2025, 6, 4, 7, 30, tzinfo=CPH))
    )

    # Window closed at 07:35 without a tick; the 07:30 run stays skipped
    assert await evaluator.evaluate(datetime(2025, 6, 4, 9, 0, 5, tzinfo=CPH)) == 0
    stored = await task_store.get_task("t1")
    assert stored.next_run == datetime(2025, 6, 5, 7, 30, tzinfo=CPH)
    assert stored.last_run == MONDAY
    executor.execute.assert_not_awaited()

    for day in (5, 6, 7):
        await evaluator.evaluate(datetime(2025, 6, day, 7, 30, 5, tzinfo=CPH))
    assert executor.execute.await_count == 3


def test_is_overdue(evaluator: CronEvaluator) -> None:
    task = _task(next_run=datetime(2025, 6, 4, 7, 30, tzinfo=CPH))
    assert evaluator.is_overdue(task, datetime(2025, 6, 4, 7, 35, 0, tzinfo=CPH)) is False
    assert evaluator.is_overdue(task, datetime(2025, 6, 4, 7, 35, 1, tzinfo=CPH)) is True


async def test_does_not_fire_twice_in_window(
    evaluator: CronEvaluator, task_store: TaskStore, executor: MagicMock
) -> None:
    await task_store.add_task(_task())

    await evaluator.evaluate(WEDNESDAY_0731)
    await evaluator.evaluate(WEDNESDAY_0731 + timedelta(minutes=1))
    await evaluator.evaluate(WEDNESDAY_0731 + timedelta(minutes=3))

    assert executor.execute.await_count == 1


async def test_invalid_cron_does_not_block_other_tasks(
    evaluator: CronEvaluator, task_store: TaskStore, executor: MagicMock
) -> None:
    await task_store.add_task(_task("bad", cron="99 99 * * *"))
    await task_store.add_task(_task("good"))

    assert await evaluator.evaluate(WEDNESDAY_0731) == 1
    fired = executor.execute.await_args.args[0]
    assert fired.id == "good"


async def test_handler_failure_does_not_block_other_tasks(
    evaluator: CronEvaluator, task_store: TaskStore, executor: MagicMock
) -> None:
    await task_store.add_task(_task("t1"))
    await task_store.add_task(_task("t2"))
    executor.execute.side_effect = [RuntimeError("boom"), None]

    assert await evaluator.evaluate(WEDNESDAY_0731) == 1
    assert executor.execute.await_count == 2


async def test_fire_skips_occurrence_fired_elsewhere(
    evaluator: CronEvaluator, task_store: TaskStore, executor: MagicMock
) -> None:
    await task_store.add_task(_task())
    stale = await task_store.get_task("t1")

    assert await evaluator.fire(await task_store.get_task("t1"), WEDNESDAY_0731) is True
    assert await evaluator.fire(stale, WEDNESDAY_0731) is False
    assert executor.execute.await_count == 1


async def test_concurrent_fire_runs_once(task_store: TaskStore) -> None:
    started = asyncio.Event()
    release = asyncio.Event()

    async def _slow(task: ScheduledTask, now: datetime) -> None:
        started.set()
        await release.wait()

    executor = MagicMock(spec=TaskExecutor)
    executor.execute = AsyncMock(side_effect=_slow)
    evaluator = CronEvaluator(task_store, executor, TZ)
    await task_store.add_task(_task())
    task = await task_store.get_task("t1")
    snapshot = await task_store.get_task("t1")

    first = asyncio.create_task(evaluator.fire(task, WEDNESDAY_0731))
    await started.wait()
    second = await evaluator.fire(snapshot, WEDNESDAY_0731)
    release.set()

    assert await first is True
    assert second is False


# -- End to end: weekly recurring reminder --------------------------------------


async def test_weekly_gym_bag_reminder(
    task_store: TaskStore, reminder_store: ReminderStore
) -> None:
    bus = EventBus()
    delivered: list[ReminderReady] = []

    async def _collect(event: ReminderReady) -> None:
        delivered.append(event)

    bus.subscribe(ReminderReady, _collect)
    dispatcher = ReminderDispatcher(reminder_store, bus, TZ)
    executor = TaskExecutor(
        reminder_store,
        {
            BuiltinTask.WEEKLY_LETTER_CHECK: AsyncMock(),
            BuiltinTask.REMINDER_CHECK: dispatcher.dispatch_due,
        },
        TZ,
    )
    evaluator = CronEvaluator(task_store, executor, TZ)

    await reminder_store.add_reminder(
        Reminder(
            id="tpl",
            text="Pack gym bag",
            remind_time=time(7, 30),
            child_name="Anna",
            kind=ReminderKind.TEMPLATE,
        )
    )
    await task_store.add_task(
        _task(
            "gym",
            name="recurring_reminder_tpl",
            task_type=TaskType.REMINDER,
            reminder_id="tpl",
        )
    )

    assert await evaluator.evaluate(WEDNESDAY_0731) == 1
    [concrete] = await reminder_store.list_upcoming()
    assert concrete.remind_date == date(2025, 6, 4)
    assert concrete.remind_time == time(7, 30)
    assert concrete.child_name == "Anna"
    assert concrete.is_sent is False

    assert await dispatcher.dispatch_due(WEDNESDAY_0731) == 1
    assert (await reminder_store.get_reminder(concrete.id)).is_sent is True

    # Later the same Wednesday: no second concrete reminder
    assert await evaluator.evaluate(datetime(2025, 6, 4, 7, 33, 2, tzinfo=CPH)) == 0
    assert await evaluator.evaluate(datetime(2025, 6, 4, 18, 0, 0, tzinfo=CPH)) == 0
    await executor.execute(await task_store.get_task("gym"), datetime(2025, 6, 4, 20, 0, tzinfo=CPH))
    assert await reminder_store.list_upcoming() == []
    assert len(delivered) == 1
