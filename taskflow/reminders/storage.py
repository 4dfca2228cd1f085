"""Task storage abstraction.

The reminder pipeline treats task storage as an external collaborator:
- TaskStore: Abstract base class (task source + mutation sink).
- JsonTaskStore: File-based JSON storage (workspace/tasks.json).
- load_json_file / save_json_file: Shared utilities for safe JSON file I/O.
"""

from __future__ import annotations

import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import NamedTuple

from loguru import logger

from taskflow.reminders.schema import Task, TaskReminder, validate_tasks_file


class SaveResult(NamedTuple):
    """Result of a storage save operation.

    NamedTuple so ``ok, msg = store.update_task(task)`` unpacking works.
    """

    success: bool
    message: str


def load_json_file(path: Path, default: dict | None = None) -> dict:
    """Load a JSON file safely, returning default on any error.

    A corrupt or temporarily locked file reads as empty data; the next
    validated write restores a valid structure.
    """
    if not path.exists():
        return default or {}
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return default or {}


def save_json_file(path: Path, data: dict) -> SaveResult:
    """Write JSON atomically (temp file + os.replace)."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, path)
        return SaveResult(True, "Saved successfully")
    except Exception as e:
        return SaveResult(False, f"Error: {e}")


# ============================================================================
# Task Store ABC
# ============================================================================


class TaskStore(ABC):
    """Source of the task list and sink for the one mutation the pipeline makes.

    - load_tasks returns the full current list (a snapshot, not a delta).
    - update_task validates, then delegates to _persist_task (Template Method).
    """

    @abstractmethod
    def load_tasks(self) -> list[Task]: ...

    def update_task(self, task: Task) -> SaveResult:
        """Replace the stored task with the same id."""
        try:
            Task.model_validate(task.model_dump())
        except Exception as e:
            return SaveResult(False, f"Validation error: {e}")
        return self._persist_task(task)

    @abstractmethod
    def _persist_task(self, task: Task) -> SaveResult: ...

    def clear_reminder(self, task_id: str, set_at: str | None = None) -> SaveResult:
        """Remove the reminder from a task (dismiss-forever path).

        With set_at, only that exact reminder is cleared; a reminder set
        again since then is left alone.
        """
        task = self.get_task(task_id)
        if task is None:
            return SaveResult(False, f"Task '{task_id}' not found")
        if task.reminder is None:
            return SaveResult(True, "No reminder to clear")
        if set_at is not None and task.reminder.set_at != set_at:
            return SaveResult(True, "Reminder was replaced; left as is")
        return self.update_task(task.model_copy(update={"reminder": None}))

    def set_reminder(self, task_id: str, reminder: TaskReminder) -> SaveResult:
        """Attach a reminder, fully replacing any existing one."""
        task = self.get_task(task_id)
        if task is None:
            return SaveResult(False, f"Task '{task_id}' not found")
        return self.update_task(task.model_copy(update={"reminder": reminder}))

    def get_task(self, task_id: str) -> Task | None:
        return next((t for t in self.load_tasks() if t.id == task_id), None)

    def fingerprint(self) -> object | None:
        """Cheap change marker for the watcher. None means 'unknown, reload'."""
        return None

    # --- Lifecycle ---
    def close(self) -> None:
        """Release resources. No-op for stateless backends."""


# ============================================================================
# JSON Task Store (default)
# ============================================================================


class JsonTaskStore(TaskStore):
    """File-based JSON task storage at workspace/tasks.json."""

    def __init__(self, path: Path):
        self.path = path

    def _load_raw(self) -> dict:
        return load_json_file(self.path, default={"version": "1.0", "tasks": []})

    def load_tasks(self) -> list[Task]:
        data = self._load_raw()
        tasks: list[Task] = []
        for raw in data.get("tasks", []):
            try:
                tasks.append(Task.model_validate(raw))
            except Exception as e:
                rid = raw.get("id", "?") if isinstance(raw, dict) else "?"
                logger.warning(f"[Tasks] Skip invalid task {rid}: {e}")
        return tasks

    def _persist_task(self, task: Task) -> SaveResult:
        data = self._load_raw()
        raw_tasks = data.get("tasks", [])
        updated = task.to_json_dict()

        for i, raw in enumerate(raw_tasks):
            if isinstance(raw, dict) and raw.get("id") == task.id:
                raw_tasks[i] = updated
                break
        else:
            raw_tasks.append(updated)

        data["tasks"] = raw_tasks
        data.setdefault("version", "1.0")
        try:
            validate_tasks_file(data)
        except Exception as e:
            return SaveResult(False, f"Validation error: {e}")
        return save_json_file(self.path, data)

    def fingerprint(self) -> tuple[int, int] | None:
        """(mtime_ns, size) of tasks.json, None if missing."""
        try:
            st = self.path.stat()
        except OSError:
            return None
        return (st.st_mtime_ns, st.st_size)
