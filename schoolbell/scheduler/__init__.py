"""Scheduling core — models, persistence, dispatch, evaluation, and the tick driver."""

from schoolbell.scheduler.dispatcher import ReminderDispatcher
from schoolbell.scheduler.engine import SchedulerEngine
from schoolbell.scheduler.evaluator import CronEvaluator
from schoolbell.scheduler.executor import TaskExecutor
from schoolbell.scheduler.missed import StartupRecovery
from schoolbell.scheduler.models import BuiltinTask, Reminder, ScheduledTask, TaskType
from schoolbell.scheduler.reminder_store import ReminderStore
from schoolbell.scheduler.store import TaskStore

__all__ = [
    "BuiltinTask",
    "CronEvaluator",
    "Reminder",
    "ReminderDispatcher",
    "ReminderStore",
    "ScheduledTask",
    "SchedulerEngine",
    "StartupRecovery",
    "TaskExecutor",
    "TaskStore",
    "TaskType",
]
