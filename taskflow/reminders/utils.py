"""Shared utilities for reminder modules."""

import time
from datetime import datetime

MINUTE_MS = 60 * 1000


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def _parse_iso(dt_str: str) -> datetime:
    if not isinstance(dt_str, str) or not dt_str:
        raise ValueError(f"Invalid datetime string: {dt_str!r}")
    return datetime.fromisoformat(dt_str.replace("Z", "+00:00"))


def parse_datetime(dt_str: str) -> datetime:
    """Parse ISO datetime string to naive local-time datetime.

    If the input is timezone-aware, converts to local time first, then
    strips tzinfo so the result is comparable with datetime.now().
    If naive, returns as-is (assumed local time).

    Raises ValueError if dt_str is empty or not a valid ISO datetime.
    """
    dt = _parse_iso(dt_str)
    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


def to_epoch_ms(dt_str: str) -> int:
    """Convert an ISO datetime string to epoch milliseconds.

    Aware strings are converted with their own offset, never via local
    time. Naive strings are interpreted as local time, like parse_datetime.
    """
    return round(_parse_iso(dt_str).timestamp() * 1000)


def from_epoch_ms(ms: int) -> datetime:
    """Convert epoch milliseconds to a naive local datetime."""
    return datetime.fromtimestamp(ms / 1000)


def schedule_id(task_id: str, set_at: str) -> str:
    """Stable schedule id for one (task, reminder) configuration.

    Redefining the reminder on the same task changes set_at and therefore
    produces a distinct id, so a stale entry is never overwritten in place.
    """
    return f"{task_id}:{set_at}"


def compute_fire_at(set_at: str, remind_in_minutes: int) -> int:
    """Absolute first-fire time (epoch ms) of a reminder."""
    return to_epoch_ms(set_at) + remind_in_minutes * MINUTE_MS
