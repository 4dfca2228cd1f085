"""Pydantic schemas for tasks, reminders and schedule entries."""

import math
from datetime import datetime, timezone
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from taskflow.reminders.utils import compute_fire_at, schedule_id


class _CamelModel(BaseModel):
    """Stored and wire JSON use camelCase keys; Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ============================================================================
# Task Schemas
# ============================================================================

Repeat = Literal["none", "hourly", "daily"]
RemindInUnit = Literal["minutes", "hours", "days"]

_LEGACY_REPEAT = {"hour": "hourly", "day": "daily"}

_UNIT_MINUTES: dict[str, int] = {
    "minutes": 1,
    "hours": 60,
    "days": 24 * 60,
}


class InvalidReminderError(ValueError):
    """Raised when a reminder is configured with a non-positive duration."""


class TaskReminder(_CamelModel):
    """Reminder attached to a task. fire time = set_at + remind_in_minutes."""

    remind_in_minutes: int = Field(ge=0)
    repeat: Repeat = "none"
    sound: bool = True
    set_at: str  # ISO datetime

    @field_validator("repeat", mode="before")
    @classmethod
    def normalize_repeat(cls, v: str) -> str:
        """Accept the legacy 'hour'/'day' values."""
        if isinstance(v, str):
            return _LEGACY_REPEAT.get(v, v)
        return v

    @property
    def is_armable(self) -> bool:
        return self.remind_in_minutes > 0


class Task(_CamelModel):
    """Task schema (fields the reminder pipeline reads, plus the basics)."""

    id: str
    title: str
    description: str = ""
    category: str = "other"
    status: Literal["pending", "in-progress", "completed", "urgent"] = "pending"
    company_id: str = ""
    company_name: str = ""
    priority: Literal["low", "medium", "high"] = "medium"
    reminder: Optional[TaskReminder] = None
    created_at: Optional[str] = None  # ISO datetime
    updated_at: Optional[str] = None  # ISO datetime


class TasksFile(BaseModel):
    """tasks.json schema."""

    version: str = "1.0"
    tasks: list[Task] = Field(default_factory=list)


# ============================================================================
# Schedule Schemas
# ============================================================================


class ScheduleEntry(_CamelModel):
    """Resolved, absolute-time record of one pending first fire.

    title/body are snapshotted at schedule time so delivery never has to
    re-read the task.
    """

    id: str
    fire_at: int  # epoch ms
    title: str
    body: str
    task: Task
    reminder: TaskReminder

    @classmethod
    def from_task(cls, task: Task, reminder: TaskReminder | None = None) -> "ScheduleEntry":
        reminder = reminder or task.reminder
        if reminder is None:
            raise ValueError(f"Task {task.id} has no reminder")
        return cls(
            id=schedule_id(task.id, reminder.set_at),
            fire_at=compute_fire_at(reminder.set_at, reminder.remind_in_minutes),
            title=notification_title(task),
            body=notification_body(task),
            task=task,
            reminder=reminder,
        )


class SchedulesFile(BaseModel):
    """reminders/schedules.json schema."""

    version: str = "1.0"
    schedules: list[ScheduleEntry] = Field(default_factory=list)


# ============================================================================
# Delivery Agent Wire Messages
# ============================================================================


class SchedulePayload(_CamelModel):
    id: str
    fire_at: int
    title: str
    body: str


class ScheduleReminderMessage(_CamelModel):
    """SCHEDULE_REMINDER { id, fireAt, title, body }"""

    type: Literal["SCHEDULE_REMINDER"] = "SCHEDULE_REMINDER"
    payload: SchedulePayload

    @classmethod
    def for_entry(cls, entry: ScheduleEntry) -> "ScheduleReminderMessage":
        return cls(
            payload=SchedulePayload(
                id=entry.id, fire_at=entry.fire_at, title=entry.title, body=entry.body
            )
        )


class CancelReminderMessage(_CamelModel):
    """CANCEL_REMINDER { id }"""

    type: Literal["CANCEL_REMINDER"] = "CANCEL_REMINDER"
    id: str


AgentMessage = Union[ScheduleReminderMessage, CancelReminderMessage]


def parse_agent_message(data: dict) -> AgentMessage:
    """Parse a wire dict into a typed message.

    Raises ValueError on unknown type or bad payload.
    """
    if not isinstance(data, dict):
        raise ValueError(f"Agent message must be a dict, got {type(data).__name__}")
    msg_type = data.get("type")
    if msg_type == "SCHEDULE_REMINDER":
        return ScheduleReminderMessage.model_validate(data)
    if msg_type == "CANCEL_REMINDER":
        return CancelReminderMessage.model_validate(data)
    raise ValueError(f"Unknown agent message type: {msg_type!r}")


# ============================================================================
# Display + Form Helpers
# ============================================================================


def notification_title(task: Task) -> str:
    return f"Reminder: {task.title}"


def notification_body(task: Task) -> str:
    return task.company_name or "Task reminder"


def remind_in_minutes(value: float | str, unit: RemindInUnit) -> int:
    """Convert a 'remind me in N <unit>' form value to whole minutes.

    Garbage or negative input becomes 0.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = 0.0
    if math.isnan(number) or math.isinf(number):
        number = 0.0
    whole = max(0, math.floor(number))
    return whole * _UNIT_MINUTES[unit]


def build_reminder(
    value: float | str,
    unit: RemindInUnit = "minutes",
    repeat: Repeat = "none",
    sound: bool = True,
    now: datetime | None = None,
) -> TaskReminder:
    """Build a new reminder from form input, stamping set_at.

    Raises InvalidReminderError when the duration is not positive, so an
    invalid reminder never reaches the scheduler.
    """
    minutes = remind_in_minutes(value, unit)
    if minutes <= 0:
        raise InvalidReminderError(f"Reminder duration must be positive, got {value!r} {unit}")
    stamp = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    set_at = stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return TaskReminder(remind_in_minutes=minutes, repeat=repeat, sound=sound, set_at=set_at)


def describe_remind_in(minutes: int) -> str:
    """Render minutes in the largest whole unit, e.g. 120 -> '2 hours'."""
    if minutes < 60:
        value, unit = minutes, "minute"
    elif minutes < 24 * 60:
        value, unit = round(minutes / 60), "hour"
    else:
        value, unit = round(minutes / (24 * 60)), "day"
    return f"{value} {unit}" if value == 1 else f"{value} {unit}s"


# ============================================================================
# Validation Functions
# ============================================================================


def validate_tasks_file(data: dict) -> TasksFile:
    """Validate tasks.json."""
    return TasksFile(**data)


def validate_schedules_file(data: dict) -> SchedulesFile:
    """Validate reminders/schedules.json."""
    return SchedulesFile(**data)
