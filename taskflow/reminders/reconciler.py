"""Missed-reminder reconciliation.

Recovers reminders whose fire time passed while no foreground session was
showing them (session closed, presentation busy). Runs on session start,
on every return to the foreground, and after each resolved presentation.

Entries are drained one per call so presentation stays serialized: the
next one surfaces on the next trigger, never in a burst.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

from loguru import logger

from taskflow.reminders.schema import ScheduleEntry
from taskflow.reminders.utils import now_ms

if TYPE_CHECKING:
    from taskflow.reminders.agent import AgentChannel
    from taskflow.reminders.presentation import PresentationController
    from taskflow.reminders.schedule_store import ScheduleStore


class MissedReminderReconciler:
    """Drain one due entry from the store into the presentation controller."""

    def __init__(
        self,
        store: "ScheduleStore",
        controller: "PresentationController",
        agent: "AgentChannel",
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.controller = controller
        self.agent = agent
        self.clock = clock

    def drain(self) -> ScheduleEntry | None:
        """Present the next missed reminder, if any and if nothing is showing.

        Returns the entry that was handed to the controller.
        """
        if self.controller.is_showing:
            # Leave everything in the store; resolution re-triggers drain().
            return None

        entry = self.store.consume_next_due(self.clock())
        if entry is None:
            return None

        # Recovered here, so the agent must not also raise it.
        self.agent.cancel(entry.id)

        if not self.controller.present(entry.task, entry.reminder):
            # Lost a race with a live fire: put it back for the next drain.
            logger.debug(f"[Reconciler] {entry.id} deferred (presentation busy)")
            self.store.put(entry)
            return None

        logger.info(f"[Reconciler] Recovered missed reminder {entry.id}")
        return entry

    def pending_due(self) -> list[ScheduleEntry]:
        """Entries that are due but not yet recovered (read-only)."""
        now = self.clock()
        return [e for e in self.store.list_entries() if e.fire_at <= now]
