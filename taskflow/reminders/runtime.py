"""Reminder runtime: wires the pipeline for one foreground session.

    task list ──> ReminderScheduler ──on_fire──> PresentationController
                     │    │                          ▲      │
                     │    └─> AgentChannel ─> agent  │      │ on_resolved
                     └─> ScheduleStore ──> MissedReminderReconciler
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Callable

from loguru import logger

from taskflow.notify.desktop import DesktopNotifier, Notifier, NullNotifier
from taskflow.notify.sound import ChimePlayer
from taskflow.reminders.agent import (
    AgentChannel,
    NullAgentChannel,
    SocketAgentChannel,
    spawn_agent_process,
)
from taskflow.reminders.presentation import PresentationController
from taskflow.reminders.reconciler import MissedReminderReconciler
from taskflow.reminders.schedule_store import (
    JsonScheduleStore,
    MemoryScheduleStore,
    ScheduleStore,
)
from taskflow.reminders.schema import ScheduleEntry, Task, TaskReminder
from taskflow.reminders.scheduler import ReminderScheduler
from taskflow.reminders.storage import JsonTaskStore, TaskStore
from taskflow.reminders.utils import MINUTE_MS, now_ms

if TYPE_CHECKING:
    from taskflow.config.schema import Config


AGENT_CONNECT_ATTEMPTS = 10
AGENT_CONNECT_DELAY_S = 0.2


class ReminderRuntime:
    """One foreground session of the reminder pipeline."""

    def __init__(
        self,
        task_store: TaskStore,
        store: ScheduleStore,
        notifier: Notifier,
        agent: AgentChannel | None = None,
        chime: ChimePlayer | None = None,
        snooze_ms: int = 5 * MINUTE_MS,
        clock: Callable[[], int] = now_ms,
        on_show: Callable[[Task, TaskReminder], None] | None = None,
        on_hide: Callable[[], None] | None = None,
    ):
        self.task_store = task_store
        self.store = store
        self.notifier = notifier
        self.agent = agent or NullAgentChannel()
        self.clock = clock

        self.controller = PresentationController(
            notifier,
            task_store=task_store,
            chime=chime,
            snooze_ms=snooze_ms,
            on_show=on_show,
            on_hide=on_hide,
        )
        self.scheduler = ReminderScheduler(
            on_fire=self.controller.present,
            store=store,
            agent=self.agent,
            clock=clock,
        )
        self.reconciler = MissedReminderReconciler(store, self.controller, self.agent, clock)

        self.controller.on_resolved = self.reconciler.drain
        self.controller.on_dismiss = self.scheduler.cancel

        self._started = False
        self._permission: bool | None = None

    @classmethod
    def from_config(
        cls,
        config: "Config",
        on_show: Callable[[Task, TaskReminder], None] | None = None,
        on_hide: Callable[[], None] | None = None,
    ) -> "ReminderRuntime":
        rc = config.reminders
        notifier: Notifier
        if rc.notifications.enabled:
            notifier = DesktopNotifier(
                app_name=rc.notifications.app_name,
                timeout_s=rc.notifications.timeout_s,
            )
        else:
            notifier = NullNotifier()

        store: ScheduleStore
        if rc.persist:
            store = JsonScheduleStore(config.schedules_path)
        else:
            store = MemoryScheduleStore()

        agent: AgentChannel = NullAgentChannel()
        if rc.agent_enabled and not rc.agent_authkey:
            logger.warning("[Runtime] No delivery agent key configured; agent disabled")
        elif rc.agent_enabled:
            agent = SocketAgentChannel(
                (rc.agent_host, rc.agent_port), rc.agent_authkey.encode("utf-8")
            )

        chime = ChimePlayer(
            enabled=rc.sound.enabled,
            first_hz=rc.sound.first_tone_hz,
            second_hz=rc.sound.second_tone_hz,
            tone_s=rc.sound.tone_duration_s,
            volume=rc.sound.volume,
        )

        return cls(
            task_store=JsonTaskStore(config.tasks_path),
            store=store,
            notifier=notifier,
            agent=agent,
            chime=chime,
            snooze_ms=rc.snooze_minutes * MINUTE_MS,
            on_show=on_show,
            on_hide=on_hide,
        )

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    @property
    def permission_granted(self) -> bool | None:
        return self._permission

    async def start(self) -> None:
        """Request notification permission, reach the agent, drop stale schedules, drain missed reminders."""
        if self._started:
            return
        self._started = True

        try:
            self._permission = self.notifier.request_permission()
        except Exception as e:
            logger.warning(f"[Runtime] Notification permission request failed: {e}")
            self._permission = False
        if not self._permission:
            logger.info("[Runtime] System notifications unavailable; in-app only")

        if isinstance(self.agent, SocketAgentChannel):
            await self._ensure_agent(self.agent)

        try:
            self.scheduler.prune(self.task_store.load_tasks())
        except Exception as e:
            logger.warning(f"[Runtime] Could not check schedules against tasks: {e}")
        self.reconciler.drain()
        logger.info("[Runtime] Started")

    async def _ensure_agent(self, channel: SocketAgentChannel) -> bool:
        if channel.is_reachable():
            return True
        host, port = channel.address
        if spawn_agent_process(host, port) is None:
            return False
        for _ in range(AGENT_CONNECT_ATTEMPTS):
            await asyncio.sleep(AGENT_CONNECT_DELAY_S)
            if channel.is_reachable():
                logger.info(f"[Runtime] Delivery agent started on {host}:{port}")
                return True
        logger.warning("[Runtime] Delivery agent did not come up; relying on reconciliation")
        return False

    def stop(self) -> None:
        """End the session. Store entries and agent timers survive."""
        self.scheduler.shutdown()
        self.controller.stop()
        self.agent.close()
        self._started = False
        logger.info("[Runtime] Stopped")

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def set_tasks(self, tasks: list[Task]) -> None:
        """A new task-list snapshot arrived."""
        self.scheduler.update(tasks)

    def reload_tasks(self) -> list[Task]:
        tasks = self.task_store.load_tasks()
        self.set_tasks(tasks)
        return tasks

    def on_visible(self) -> ScheduleEntry | None:
        """Session returned to the foreground."""
        return self.reconciler.drain()

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def notify_later(self) -> bool:
        return self.controller.notify_later()

    def dont_show_again(self) -> bool:
        """Dismiss for good, then rebuild from the updated task list."""
        if not self.controller.dont_show_again():
            return False
        try:
            self.reload_tasks()
        except Exception as e:
            logger.warning(f"[Runtime] Reload after dismiss failed: {e}")
        return True
