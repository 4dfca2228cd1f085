"""Task watcher - polls the task store and feeds snapshots to the runtime."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from taskflow.reminders.runtime import ReminderRuntime

DEFAULT_POLL_INTERVAL_S = 2.0
DEFAULT_VISIBILITY_INTERVAL_S = 60.0


class TaskWatcher:
    """
    Periodic poll of the task store.

    Pushes a fresh snapshot to the runtime whenever the store's fingerprint
    changes (or on every tick if the store cannot fingerprint itself), and
    every visibility_interval_s runs a missed-reminder drain as if the
    session had just come back to the foreground.
    """

    def __init__(
        self,
        runtime: "ReminderRuntime",
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        visibility_interval_s: float = DEFAULT_VISIBILITY_INTERVAL_S,
    ):
        self.runtime = runtime
        self.poll_interval_s = poll_interval_s
        self.visibility_interval_s = visibility_interval_s
        self._running = False
        self._task: asyncio.Task | None = None
        self._fingerprint: object | None = None
        self._last_visible = 0.0

    async def start(self) -> None:
        """Load the current task list once, then start polling."""
        self._running = True
        self._fingerprint = None
        self.check()
        self._last_visible = time.monotonic()
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"[Watcher] Started (every {self.poll_interval_s}s)")

    def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None

    def check(self) -> bool:
        """Reload tasks if the store changed. Returns True when a snapshot was pushed."""
        store = self.runtime.task_store
        fp = store.fingerprint()
        if fp is not None and fp == self._fingerprint:
            return False
        self._fingerprint = fp
        tasks = store.load_tasks()
        self.runtime.set_tasks(tasks)
        logger.debug(f"[Watcher] Pushed {len(tasks)} task(s)")
        return True

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.poll_interval_s)
                if self._running:
                    self._tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[Watcher] Error: {e}")

    def _tick(self) -> None:
        self.check()
        if self.visibility_interval_s <= 0:
            return
        now = time.monotonic()
        if now - self._last_visible >= self.visibility_interval_s:
            self._last_visible = now
            self.runtime.on_visible()
