"""Foreground reminder scheduler.

Turns the current task list into armed in-session timers and mirrors each
first fire to the persistent schedule store and the delivery agent, so it
can still be delivered if the session ends before fire time.

Every update() is a full teardown + rebuild rather than an incremental
diff: exactly one timer per qualifying (task, set_at) pair exists after
each pass, however often the same tasks are seen.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Callable

from loguru import logger

from taskflow.reminders.schema import ScheduleEntry, Task, TaskReminder
from taskflow.reminders.utils import MINUTE_MS, now_ms

if TYPE_CHECKING:
    from taskflow.reminders.agent import AgentChannel
    from taskflow.reminders.schedule_store import ScheduleStore


REPEAT_INTERVAL_MS: dict[str, int] = {
    "hourly": 60 * MINUTE_MS,
    "daily": 24 * 60 * MINUTE_MS,
}

# on_fire(task, reminder) -> accepted. False means the presentation layer
# was busy; the persisted entry is then kept for later reconciliation.
FireCallback = Callable[[Task, TaskReminder], bool]


def qualifies(task: Task) -> bool:
    """Task has an armable reminder and is not completed."""
    return (
        task.status != "completed"
        and task.reminder is not None
        and task.reminder.is_armable
    )


def _live_entries(tasks: list[Task], log: bool = True) -> list[tuple[Task, ScheduleEntry]]:
    live: list[tuple[Task, ScheduleEntry]] = []
    for task in tasks:
        if not qualifies(task):
            if log and task.reminder is not None and not task.reminder.is_armable:
                logger.debug(f"[Scheduler] Skip {task.id}: non-positive reminder")
            continue
        try:
            live.append((task, ScheduleEntry.from_task(task)))
        except ValueError as e:
            if log:
                logger.warning(f"[Scheduler] Skip {task.id}: {e}")
    return live


class ReminderScheduler:
    """In-session timers for the current task list.

    Timers are asyncio tasks and die with the session (shutdown()); the
    store and agent hold everything that must outlive it.
    """

    def __init__(
        self,
        on_fire: FireCallback,
        store: "ScheduleStore",
        agent: "AgentChannel",
        clock: Callable[[], int] = now_ms,
        repeat_interval_ms: dict[str, int] | None = None,
    ):
        self.on_fire = on_fire
        self.store = store
        self.agent = agent
        self.clock = clock
        self.repeat_interval_ms = repeat_interval_ms or dict(REPEAT_INTERVAL_MS)
        self._timers: dict[str, asyncio.Task] = {}  # schedule id -> one-shot or recurring
        self._mirrored: set[str] = set()  # ids put to store/agent by the last pass
        self._fired: set[str] = set()  # ids whose first fire happened this session
        self._handed_off: set[str] = set()  # fired while busy; left in the store for reconciliation
        self._pruned = False  # stale store entries swept this session

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def armed_count(self) -> int:
        return sum(1 for t in self._timers.values() if not t.done())

    @property
    def armed_ids(self) -> set[str]:
        return {sid for sid, t in self._timers.items() if not t.done()}

    def update(self, tasks: list[Task]) -> None:
        """Tear down the previous pass, then arm the given task list."""
        self._teardown()

        live = _live_entries(tasks)
        if not self._pruned:
            self.prune(tasks)

        # A handed-off entry whose reminder is gone (cleared, completed,
        # superseded) must not be recovered later.
        live_ids = {entry.id for _, entry in live}
        for sid in self._handed_off - live_ids:
            self.store.delete(sid)
            self.agent.cancel(sid)
        self._handed_off &= live_ids

        for task, entry in live:
            self._schedule(task, task.reminder, entry)

        logger.debug(f"[Scheduler] {self.armed_count} timer(s) armed")

    def prune(self, tasks: list[Task]) -> int:
        """Drop persisted entries whose reminder is gone from the task list.

        Covers reminders cleared, replaced or completed while no session
        was open: the entry is deleted and the agent told to cancel it, so
        neither the agent nor the reconciler delivers it later.
        Runs once per session, before the first update or drain.
        """
        self._pruned = True
        live_ids = {entry.id for _, entry in _live_entries(tasks, log=False)}
        removed = 0
        for entry in self.store.list_entries():
            if entry.id in live_ids:
                continue
            self.store.delete(entry.id)
            self.agent.cancel(entry.id)
            removed += 1
        if removed:
            logger.info(f"[Scheduler] Dropped {removed} stale schedule(s)")
        return removed

    def cancel(self, schedule_id: str) -> None:
        """Cancel one schedule everywhere: in-session timer, store, agent."""
        self._cancel_timer(schedule_id)
        self._mirrored.discard(schedule_id)
        self._handed_off.discard(schedule_id)
        self.store.delete(schedule_id)
        self.agent.cancel(schedule_id)

    def shutdown(self) -> None:
        """Session end: drop in-session timers only; store and agent keep theirs."""
        for sid in list(self._timers):
            self._cancel_timer(sid)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _teardown(self) -> None:
        for sid in list(self._timers):
            self._cancel_timer(sid)
        for sid in self._mirrored:
            self.store.delete(sid)
            self.agent.cancel(sid)
        self._mirrored.clear()

    def _schedule(self, task: Task, reminder: TaskReminder, entry: ScheduleEntry) -> None:
        now = self.clock()

        if entry.id in self._fired:
            # Already shown this session: keep recurrence, never re-fire the first shot.
            self._arm_recurring(task, reminder, entry)
            return

        if entry.fire_at <= now:
            # Already due. Persist only if the live path could not show it;
            # the reconciler picks it up after the current presentation.
            if not self._first_fire(task, reminder, entry):
                self.store.put(entry)
            return

        self.store.put(entry)
        self.agent.schedule(entry)
        self._mirrored.add(entry.id)

        delay = (entry.fire_at - now) / 1000
        self._timers[entry.id] = asyncio.ensure_future(
            self._timer_fire(delay, task, reminder, entry)
        )
        logger.debug(f"[Scheduler] Armed {entry.id}: {delay:.0f}s")

    def _first_fire(self, task: Task, reminder: TaskReminder, entry: ScheduleEntry) -> bool:
        """Fire once, settle ownership of the persisted entry, arm recurrence."""
        self._fired.add(entry.id)
        self._mirrored.discard(entry.id)
        accepted = self._safe_fire(task, reminder)
        # Either way this session owns the delivery now.
        self.agent.cancel(entry.id)
        if accepted:
            # Shown live. Also clears an entry left by an earlier session.
            self.store.delete(entry.id)
        else:
            # Presentation busy: the store entry becomes the reconciler's.
            self._handed_off.add(entry.id)
            logger.debug(f"[Scheduler] {entry.id} not shown (busy); kept for reconciliation")
        self._arm_recurring(task, reminder, entry)
        return accepted

    def _arm_recurring(self, task: Task, reminder: TaskReminder, entry: ScheduleEntry) -> None:
        interval = self.repeat_interval_ms.get(reminder.repeat, 0)
        if interval <= 0:
            return
        # Align ticks to fire_at + k * interval
        elapsed = max(0, self.clock() - entry.fire_at)
        first_delay = interval - (elapsed % interval)
        self._cancel_timer(entry.id)
        self._timers[entry.id] = asyncio.ensure_future(
            self._recurring_fire(first_delay / 1000, interval / 1000, task, reminder, entry.id)
        )
        logger.debug(f"[Scheduler] Recurring {entry.id} every {interval / 1000:.0f}s")

    def _safe_fire(self, task: Task, reminder: TaskReminder) -> bool:
        try:
            return bool(self.on_fire(task, reminder))
        except Exception:
            logger.exception(f"[Scheduler] on_fire error for {task.id}")
            return False

    def _cancel_timer(self, schedule_id: str) -> None:
        task = self._timers.pop(schedule_id, None)
        if task is not None and not task.done():
            task.cancel()

    def _release_slot(self, schedule_id: str) -> None:
        if self._timers.get(schedule_id) is asyncio.current_task():
            del self._timers[schedule_id]

    async def _timer_fire(
        self, delay: float, task: Task, reminder: TaskReminder, entry: ScheduleEntry
    ) -> None:
        """Sleep, then first-fire (which may arm the recurring slot)."""
        try:
            await asyncio.sleep(delay)
            self._release_slot(entry.id)
            self._first_fire(task, reminder, entry)
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception(f"[Scheduler] Timer fire error for {entry.id}")

    async def _recurring_fire(
        self,
        first_delay: float,
        interval: float,
        task: Task,
        reminder: TaskReminder,
        schedule_id: str,
    ) -> None:
        delay = first_delay
        try:
            while True:
                await asyncio.sleep(delay)
                delay = interval
                if not self._safe_fire(task, reminder):
                    logger.debug(f"[Scheduler] Recurring tick for {schedule_id} dropped (busy)")
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception(f"[Scheduler] Recurring timer error for {schedule_id}")
