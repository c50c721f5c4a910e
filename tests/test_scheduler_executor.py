"""Tests for TaskExecutor — built-in dispatch and recurring reminders."""

from datetime import date, datetime, time
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest

from schoolbell.errors import TemplateError
from schoolbell.scheduler.executor import TaskExecutor
from schoolbell.scheduler.models import (
    BuiltinTask,
    Reminder,
    ReminderKind,
    ScheduledTask,
    TaskType,
)
from schoolbell.scheduler.reminder_store import ReminderStore

pytestmark = pytest.mark.usefixtures("_no_turso")

TZ = "Europe/Copenhagen"
CPH = ZoneInfo(TZ)
WEDNESDAY = datetime(2025, 6, 4, 7, 31, 5, tzinfo=CPH)


@pytest.fixture
def handlers() -> dict:
    return {
        BuiltinTask.WEEKLY_LETTER_CHECK: AsyncMock(),
        BuiltinTask.REMINDER_CHECK: AsyncMock(),
    }


@pytest.fixture
def executor(reminder_store: ReminderStore, handlers: dict) -> TaskExecutor:
    return TaskExecutor(reminder_store, handlers, TZ)


def _template(reminder_id: str = "tpl1") -> Reminder:
    return Reminder(
        id=reminder_id,
        text="Pack gym bag",
        remind_time=time(7, 30),
        child_name="Anna",
        kind=ReminderKind.TEMPLATE,
    )


def _reminder_task(reminder_id: str = "tpl1") -> ScheduledTask:
    return ScheduledTask(
        id="task1",
        name=f"recurring_reminder_{reminder_id}",
        cron_expression="30 7 * * 3",
        task_type=TaskType.REMINDER,
        reminder_id=reminder_id,
    )


# -- Construction --------------------------------------------------------------


def test_missing_handler_rejected(reminder_store: ReminderStore) -> None:
    with pytest.raises(ValueError, match="ReminderCheck"):
        TaskExecutor(reminder_store, {BuiltinTask.WEEKLY_LETTER_CHECK: AsyncMock()}, TZ)


def test_missing_store_rejected(handlers: dict) -> None:
    with pytest.raises(ValueError, match="reminder_store is required"):
        TaskExecutor(None, handlers, TZ)


# -- Built-in tasks ------------------------------------------------------------


async def test_builtin_dispatched_by_name(executor: TaskExecutor, handlers: dict) -> None:
    task = ScheduledTask(id="t1", name="WeeklyLetterCheck", cron_expression="0 16 * * 0")
    await executor.execute(task, WEDNESDAY)

    handlers[BuiltinTask.WEEKLY_LETTER_CHECK].assert_awaited_once_with(WEDNESDAY)
    handlers[BuiltinTask.REMINDER_CHECK].assert_not_awaited()


async def test_unknown_builtin_ignored(executor: TaskExecutor, handlers: dict) -> None:
    task = ScheduledTask(id="t1", name="SomethingElse", cron_expression="* * * * *")
    await executor.execute(task, WEDNESDAY)

    for handler in handlers.values():
        handler.assert_not_awaited()


async def test_handler_exception_propagates(executor: TaskExecutor, handlers: dict) -> None:
    handlers[BuiltinTask.REMINDER_CHECK].side_effect = RuntimeError("boom")
    task = ScheduledTask(id="t1", name="ReminderCheck", cron_expression="* * * * *")
    with pytest.raises(RuntimeError):
        await executor.execute(task, WEDNESDAY)


# -- Recurring reminders -------------------------------------------------------


async def test_materializes_todays_reminder(
    executor: TaskExecutor, reminder_store: ReminderStore
) -> None:
    await reminder_store.add_reminder(_template())

    created = await executor.materialize_reminder(_reminder_task(), WEDNESDAY)

    assert created is not None
    assert created.remind_date == date(2025, 6, 4)
    assert created.remind_time == time(7, 30)
    assert created.child_name == "Anna"
    assert created.is_sent is False
    assert created.kind is ReminderKind.CONCRETE


async def test_materialization_is_idempotent(
    executor: TaskExecutor, reminder_store: ReminderStore
) -> None:
    await reminder_store.add_reminder(_template())

    await executor.execute(_reminder_task(), WEDNESDAY)
    await executor.execute(_reminder_task(), WEDNESDAY.replace(hour=18))

    upcoming = await reminder_store.list_upcoming()
    assert len(upcoming) == 1


async def test_uses_local_date(executor: TaskExecutor, reminder_store: ReminderStore) -> None:
    await reminder_store.add_reminder(_template())
    # 23:30 UTC on the 3rd is already the 4th in Copenhagen
    late_utc = datetime(2025, 6, 3, 23, 30, tzinfo=ZoneInfo("UTC"))

    created = await executor.materialize_reminder(_reminder_task(), late_utc)
    assert created.remind_date == date(2025, 6, 4)


async def test_missing_template(executor: TaskExecutor) -> None:
    with pytest.raises(TemplateError, match="not found"):
        await executor.materialize_reminder(_reminder_task("gone"), WEDNESDAY)


async def test_concrete_reminder_is_not_a_template(
    executor: TaskExecutor, reminder_store: ReminderStore
) -> None:
    await reminder_store.add_reminder(
        Reminder(id="c1", text="x", remind_date=date(2025, 6, 4), remind_time=time(7, 0))
    )
    with pytest.raises(TemplateError, match="not a template"):
        await executor.materialize_reminder(_reminder_task("c1"), WEDNESDAY)
