"""Task reminder scheduling and delivery."""

from taskflow.reminders.agent import (
    AgentChannel,
    AgentServer,
    DeliveryAgent,
    NullAgentChannel,
    QueueAgentChannel,
    SocketAgentChannel,
)
from taskflow.reminders.presentation import PresentationController, PresentationState
from taskflow.reminders.reconciler import MissedReminderReconciler
from taskflow.reminders.runtime import ReminderRuntime
from taskflow.reminders.schedule_store import JsonScheduleStore, MemoryScheduleStore, ScheduleStore
from taskflow.reminders.schema import (
    InvalidReminderError,
    ScheduleEntry,
    Task,
    TaskReminder,
    build_reminder,
)
from taskflow.reminders.scheduler import ReminderScheduler
from taskflow.reminders.storage import JsonTaskStore, TaskStore
from taskflow.reminders.watcher import TaskWatcher

__all__ = [
    "AgentChannel",
    "AgentServer",
    "DeliveryAgent",
    "NullAgentChannel",
    "QueueAgentChannel",
    "SocketAgentChannel",
    "PresentationController",
    "PresentationState",
    "MissedReminderReconciler",
    "ReminderRuntime",
    "ScheduleStore",
    "JsonScheduleStore",
    "MemoryScheduleStore",
    "InvalidReminderError",
    "ScheduleEntry",
    "Task",
    "TaskReminder",
    "build_reminder",
    "ReminderScheduler",
    "TaskStore",
    "JsonTaskStore",
    "TaskWatcher",
]
