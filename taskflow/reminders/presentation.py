"""Reminder presentation controller.

Owns the single "currently shown reminder". Every producer (live fire,
recurring tick, reconciled missed fire, snooze) goes through present(),
so at most one reminder is visible at a time.

States: IDLE -> SHOWING -> IDLE
- present():         IDLE -> SHOWING (raises OS notification + optional chime)
- notify_later():    SHOWING -> IDLE, same reminder re-presented after snooze delay
- dont_show_again(): SHOWING -> IDLE, reminder cleared on the task for good

Both resolutions then call the on_resolved hook (missed-reminder drain).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable

from loguru import logger

from taskflow.reminders.schema import Task, TaskReminder, notification_body, notification_title
from taskflow.reminders.utils import MINUTE_MS, schedule_id

if TYPE_CHECKING:
    from taskflow.notify.desktop import Notifier
    from taskflow.notify.sound import ChimePlayer
    from taskflow.reminders.storage import TaskStore


DEFAULT_SNOOZE_MS = 5 * MINUTE_MS


class PresentationState(str, Enum):
    IDLE = "idle"
    SHOWING = "showing"


@dataclass(frozen=True)
class Presentation:
    task: Task
    reminder: TaskReminder

    @property
    def schedule_id(self) -> str:
        return schedule_id(self.task.id, self.reminder.set_at)


class PresentationController:
    """Single arbitration point for what the user sees."""

    def __init__(
        self,
        notifier: "Notifier",
        task_store: "TaskStore | None" = None,
        chime: "ChimePlayer | None" = None,
        snooze_ms: int = DEFAULT_SNOOZE_MS,
        on_show: Callable[[Task, TaskReminder], None] | None = None,
        on_hide: Callable[[], None] | None = None,
    ):
        self.notifier = notifier
        self.task_store = task_store
        self.chime = chime
        self.snooze_ms = snooze_ms
        self.on_show = on_show
        self.on_hide = on_hide
        # Wired by the runtime: drain missed reminders / cancel a schedule everywhere
        self.on_resolved: Callable[[], None] | None = None
        self.on_dismiss: Callable[[str], None] | None = None
        self._current: Presentation | None = None
        self._snoozes: dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> PresentationState:
        return PresentationState.SHOWING if self._current else PresentationState.IDLE

    @property
    def is_showing(self) -> bool:
        return self._current is not None

    @property
    def current(self) -> Presentation | None:
        return self._current

    @property
    def snoozed_ids(self) -> set[str]:
        return {sid for sid, t in self._snoozes.items() if not t.done()}

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def present(self, task: Task, reminder: TaskReminder) -> bool:
        """Show a reminder if nothing else is showing.

        Returns True if the reminder is (now) the one on screen, False if
        another reminder holds the screen and this one was not shown.
        """
        incoming = Presentation(task, reminder)

        if self._current is not None:
            if self._current.schedule_id == incoming.schedule_id:
                return True
            logger.debug(
                f"[Presenter] Busy with {self._current.schedule_id}; "
                f"not showing {incoming.schedule_id}"
            )
            return False

        self._cancel_snooze(incoming.schedule_id)
        self._current = incoming
        logger.info(f"[Presenter] Showing {incoming.schedule_id}")

        self._raise_notification(task, reminder)
        if self.on_show:
            try:
                self.on_show(task, reminder)
            except Exception:
                logger.exception("[Presenter] on_show callback failed")
        return True

    def notify_later(self) -> bool:
        """Hide the current reminder and show it again after the snooze delay."""
        shown = self._current
        if shown is None:
            return False

        self._clear()
        self._arm_snooze(shown, self.snooze_ms)
        logger.info(f"[Presenter] Snoozed {shown.schedule_id} for {self.snooze_ms / 1000:.0f}s")
        self._resolved()
        return True

    def dont_show_again(self) -> bool:
        """Clear the reminder on its task and stop every future fire of it."""
        shown = self._current
        if shown is None:
            return False

        if self.task_store is not None:
            try:
                ok, msg = self.task_store.clear_reminder(shown.task.id, shown.reminder.set_at)
                if not ok:
                    logger.warning(f"[Presenter] Could not clear reminder on {shown.task.id}: {msg}")
            except Exception as e:
                logger.warning(f"[Presenter] Could not clear reminder on {shown.task.id}: {e}")

        self._cancel_snooze(shown.schedule_id)
        if self.on_dismiss:
            try:
                self.on_dismiss(shown.schedule_id)
            except Exception:
                logger.exception("[Presenter] on_dismiss callback failed")

        self._clear()
        logger.info(f"[Presenter] Dismissed {shown.schedule_id} for good")
        self._resolved()
        return True

    def stop(self) -> None:
        """Session end: drop pending snoozes."""
        for sid in list(self._snoozes):
            self._cancel_snooze(sid)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _clear(self) -> None:
        self._current = None
        if self.on_hide:
            try:
                self.on_hide()
            except Exception:
                logger.exception("[Presenter] on_hide callback failed")

    def _resolved(self) -> None:
        if self.on_resolved:
            try:
                self.on_resolved()
            except Exception:
                logger.exception("[Presenter] on_resolved callback failed")

    def _raise_notification(self, task: Task, reminder: TaskReminder) -> None:
        try:
            self.notifier.show(notification_title(task), notification_body(task))
        except Exception as e:
            logger.debug(f"[Presenter] System notification failed: {e}")
        if reminder.sound and self.chime is not None:
            try:
                self.chime.play()
            except Exception as e:
                logger.debug(f"[Presenter] Chime failed: {e}")

    def _arm_snooze(self, presentation: Presentation, delay_ms: int) -> None:
        self._cancel_snooze(presentation.schedule_id)
        self._snoozes[presentation.schedule_id] = asyncio.ensure_future(
            self._snooze_fire(delay_ms / 1000, presentation)
        )

    def _cancel_snooze(self, sid: str) -> None:
        task = self._snoozes.pop(sid, None)
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _snooze_fire(self, delay: float, presentation: Presentation) -> None:
        try:
            await asyncio.sleep(delay)
            sid = presentation.schedule_id
            if self._snoozes.get(sid) is asyncio.current_task():
                del self._snoozes[sid]
            if not self.present(presentation.task, presentation.reminder):
                # Someone else holds the screen; try again one snooze later.
                self._arm_snooze(presentation, self.snooze_ms)
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("[Presenter] Snooze fire error")
