"""Persistent schedule store.

Durable record of pending first fires, keyed by schedule id. Survives
process restarts so missed reminders can be recovered on the next
foreground session.

Every operation degrades to a no-op on storage failure: the live
in-session timer is the primary delivery path, this store is the backstop.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from pathlib import Path

from loguru import logger

from taskflow.reminders.schema import ScheduleEntry
from taskflow.reminders.storage import load_json_file, save_json_file


class ScheduleStore(ABC):
    """Abstract schedule store: put / delete / consume_next_due."""

    @abstractmethod
    def put(self, entry: ScheduleEntry) -> None:
        """Upsert by id. Idempotent."""

    @abstractmethod
    def delete(self, schedule_id: str) -> None:
        """Remove by id. Deleting an unknown id is not an error."""

    @abstractmethod
    def consume_next_due(self, now: int) -> ScheduleEntry | None:
        """Atomically remove and return the earliest entry with fire_at <= now."""

    @abstractmethod
    def list_entries(self) -> list[ScheduleEntry]:
        """All pending entries ordered by fire_at."""

    def get(self, schedule_id: str) -> ScheduleEntry | None:
        return next((e for e in self.list_entries() if e.id == schedule_id), None)


def _pick_due(entries: list[ScheduleEntry], now: int) -> ScheduleEntry | None:
    due = [e for e in entries if e.fire_at <= now]
    if not due:
        return None
    return min(due, key=lambda e: (e.fire_at, e.id))


# ============================================================================
# In-memory store (persistence disabled / tests)
# ============================================================================


class MemoryScheduleStore(ScheduleStore):
    """Dict-backed store. Same contract, no durability."""

    def __init__(self) -> None:
        self._entries: dict[str, ScheduleEntry] = {}
        self._lock = threading.Lock()

    def put(self, entry: ScheduleEntry) -> None:
        with self._lock:
            self._entries[entry.id] = entry

    def delete(self, schedule_id: str) -> None:
        with self._lock:
            self._entries.pop(schedule_id, None)

    def consume_next_due(self, now: int) -> ScheduleEntry | None:
        with self._lock:
            entry = _pick_due(list(self._entries.values()), now)
            if entry is not None:
                del self._entries[entry.id]
            return entry

    def list_entries(self) -> list[ScheduleEntry]:
        with self._lock:
            return sorted(self._entries.values(), key=lambda e: (e.fire_at, e.id))


# ============================================================================
# JSON file store (default)
# ============================================================================


class JsonScheduleStore(ScheduleStore):
    """File-backed store at workspace/reminders/schedules.json.

    Each operation is a locked read-modify-write of the whole file; the
    file is small (one entry per armed reminder).
    """

    def __init__(self, path: Path):
        self.path = path
        self._lock = threading.Lock()

    def _load(self) -> dict[str, ScheduleEntry]:
        data = load_json_file(self.path, default={"version": "1.0", "schedules": []})
        entries: dict[str, ScheduleEntry] = {}
        for raw in data.get("schedules", []):
            try:
                entry = ScheduleEntry.model_validate(raw)
            except Exception as e:
                rid = raw.get("id", "?") if isinstance(raw, dict) else "?"
                logger.warning(f"[Store] Skip unreadable schedule {rid}: {e}")
                continue
            entries[entry.id] = entry
        return entries

    def _save(self, entries: dict[str, ScheduleEntry]) -> bool:
        data = {
            "version": "1.0",
            "schedules": [
                e.to_json_dict() for e in sorted(entries.values(), key=lambda e: (e.fire_at, e.id))
            ],
        }
        ok, msg = save_json_file(self.path, data)
        if not ok:
            logger.warning(f"[Store] Save failed ({self.path}): {msg}")
        return ok

    def put(self, entry: ScheduleEntry) -> None:
        with self._lock:
            try:
                entries = self._load()
                entries[entry.id] = entry
                self._save(entries)
            except Exception as e:
                logger.warning(f"[Store] put {entry.id} failed: {e}")

    def delete(self, schedule_id: str) -> None:
        with self._lock:
            try:
                entries = self._load()
                if entries.pop(schedule_id, None) is not None:
                    self._save(entries)
            except Exception as e:
                logger.warning(f"[Store] delete {schedule_id} failed: {e}")

    def consume_next_due(self, now: int) -> ScheduleEntry | None:
        with self._lock:
            try:
                entries = self._load()
                entry = _pick_due(list(entries.values()), now)
                if entry is None:
                    return None
                del entries[entry.id]
                if not self._save(entries):
                    # Not removed on disk: report nothing rather than risk a
                    # re-delivery loop on every drain.
                    return None
                logger.debug(f"[Store] Consumed {entry.id}")
                return entry
            except Exception as e:
                logger.warning(f"[Store] consume_next_due failed: {e}")
                return None

    def list_entries(self) -> list[ScheduleEntry]:
        with self._lock:
            try:
                return sorted(self._load().values(), key=lambda e: (e.fire_at, e.id))
            except Exception as e:
                logger.warning(f"[Store] list failed: {e}")
                return []
