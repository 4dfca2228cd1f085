"""Unit tests for PresentationController (single visible reminder)."""

import asyncio
import json
import pytest
from unittest.mock import Mock

from taskflow.reminders.presentation import PresentationController, PresentationState
from taskflow.reminders.schema import Task
from taskflow.reminders.storage import JsonTaskStore
from taskflow.reminders.utils import schedule_id

SET_AT = "2026-01-01T10:00:00.000Z"


# ============================================================================
# Fixtures
# ============================================================================


def _make_task(task_id="T1", sound=True, set_at=SET_AT, company="Acme"):
    return Task.model_validate(
        {
            "id": task_id,
            "title": f"Task {task_id}",
            "companyName": company,
            "reminder": {"remindInMinutes": 30, "setAt": set_at, "sound": sound},
        }
    )


@pytest.fixture
def notifier():
    return Mock()


@pytest.fixture
def chime():
    return Mock()


@pytest.fixture
def task_store():
    store = Mock()
    store.clear_reminder = Mock(return_value=(True, "ok"))
    return store


@pytest.fixture
def controller(notifier, chime, task_store):
    c = PresentationController(notifier, task_store=task_store, chime=chime, snooze_ms=50)
    c.on_resolved = Mock()
    c.on_dismiss = Mock()
    return c


# ============================================================================
# present()
# ============================================================================


class TestPresent:
    def test_idle_to_showing(self, controller, notifier, chime):
        task = _make_task()

        assert controller.state == PresentationState.IDLE
        assert controller.present(task, task.reminder) is True

        assert controller.state == PresentationState.SHOWING
        assert controller.current.task == task
        assert controller.current.schedule_id == schedule_id("T1", SET_AT)
        notifier.show.assert_called_once_with("Reminder: Task T1", "Acme")
        chime.play.assert_called_once()

    def test_silent_reminder_no_chime(self, controller, chime):
        task = _make_task(sound=False)
        controller.present(task, task.reminder)
        chime.play.assert_not_called()

    def test_second_reminder_rejected_while_showing(self, controller, notifier):
        t1, t2 = _make_task("T1"), _make_task("T2")
        controller.present(t1, t1.reminder)

        assert controller.present(t2, t2.reminder) is False

        assert controller.current.task.id == "T1"
        assert notifier.show.call_count == 1

    def test_same_reminder_absorbed(self, controller, notifier):
        """Re-presenting what's on screen is accepted without a second notification."""
        task = _make_task()
        controller.present(task, task.reminder)

        assert controller.present(task, task.reminder) is True
        assert notifier.show.call_count == 1

    def test_notifier_failure_still_shows(self, controller, notifier):
        notifier.show.side_effect = RuntimeError("no backend")
        task = _make_task()

        assert controller.present(task, task.reminder) is True
        assert controller.is_showing

    def test_surface_callbacks(self, notifier):
        on_show, on_hide = Mock(), Mock()
        c = PresentationController(notifier, on_show=on_show, on_hide=on_hide)
        task = _make_task()

        c.present(task, task.reminder)
        on_show.assert_called_once_with(task, task.reminder)

        c.dont_show_again()
        on_hide.assert_called_once()


# ============================================================================
# notify_later()
# ============================================================================


class TestNotifyLater:
    @pytest.mark.asyncio
    async def test_hides_then_represents_after_delay(self, controller, notifier):
        task = _make_task()
        controller.present(task, task.reminder)

        assert controller.notify_later() is True
        assert controller.state == PresentationState.IDLE
        controller.on_resolved.assert_called_once()

        await asyncio.sleep(0.02)
        assert not controller.is_showing  # not before the delay

        await asyncio.sleep(0.08)
        assert controller.is_showing
        assert controller.current.task == task
        assert notifier.show.call_count == 2

    @pytest.mark.asyncio
    async def test_snooze_fires_once(self, controller, notifier):
        task = _make_task()
        controller.present(task, task.reminder)
        controller.notify_later()

        await asyncio.sleep(0.2)

        assert notifier.show.call_count == 2
        assert controller.snoozed_ids == set()

    @pytest.mark.asyncio
    async def test_snooze_waits_while_other_showing(self, controller):
        t1, t2 = _make_task("T1"), _make_task("T2")
        controller.present(t1, t1.reminder)
        controller.notify_later()
        controller.present(t2, t2.reminder)

        await asyncio.sleep(0.08)
        assert controller.current.task.id == "T2"
        assert controller.snoozed_ids == {schedule_id("T1", SET_AT)}

        controller.dont_show_again()
        await asyncio.sleep(0.08)
        assert controller.current.task.id == "T1"
        controller.stop()

    def test_noop_when_idle(self, controller):
        assert controller.notify_later() is False
        controller.on_resolved.assert_not_called()


# ============================================================================
# dont_show_again()
# ============================================================================


class TestDontShowAgain:
    def test_clears_and_cancels(self, controller, task_store):
        task = _make_task()
        controller.present(task, task.reminder)

        assert controller.dont_show_again() is True

        task_store.clear_reminder.assert_called_once_with("T1", SET_AT)
        controller.on_dismiss.assert_called_once_with(schedule_id("T1", SET_AT))
        controller.on_resolved.assert_called_once()
        assert controller.state == PresentationState.IDLE

    def test_noop_when_idle(self, controller, task_store):
        assert controller.dont_show_again() is False
        task_store.clear_reminder.assert_not_called()

    def test_store_failure_still_resolves(self, controller, task_store):
        task_store.clear_reminder.side_effect = OSError("read-only")
        task = _make_task()
        controller.present(task, task.reminder)

        assert controller.dont_show_again() is True
        controller.on_dismiss.assert_called_once()
        assert not controller.is_showing

    @pytest.mark.asyncio
    async def test_drops_pending_snooze(self, controller, notifier):
        """Snoozed, re-shown, then dismissed → never shown again."""
        task = _make_task()
        controller.present(task, task.reminder)
        controller.notify_later()
        await asyncio.sleep(0.1)
        assert controller.is_showing

        controller.dont_show_again()
        await asyncio.sleep(0.1)

        assert not controller.is_showing
        assert notifier.show.call_count == 2

    def test_reminder_absent_on_reread(self, tmp_path, notifier):
        """Dismiss-forever persists: the task reads back without a reminder."""
        path = tmp_path / "tasks.json"
        task = _make_task()
        path.write_text(
            json.dumps({"version": "1.0", "tasks": [task.to_json_dict()]}), encoding="utf-8"
        )
        store = JsonTaskStore(path)
        c = PresentationController(notifier, task_store=store)

        c.present(task, task.reminder)
        c.dont_show_again()

        assert JsonTaskStore(path).get_task("T1").reminder is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
