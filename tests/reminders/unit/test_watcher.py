"""Unit tests for TaskWatcher."""

import asyncio
import json
import pytest
from unittest.mock import Mock

from taskflow.reminders.storage import JsonTaskStore
from taskflow.reminders.watcher import TaskWatcher


@pytest.fixture
def tasks_path(tmp_path):
    path = tmp_path / "tasks.json"
    _write_tasks(path, [{"id": "T1", "title": "A"}])
    return path


@pytest.fixture
def runtime(tasks_path):
    rt = Mock()
    rt.task_store = JsonTaskStore(tasks_path)
    return rt


def _write_tasks(path, tasks):
    path.write_text(json.dumps({"version": "1.0", "tasks": tasks}), encoding="utf-8")


class TestTaskWatcherCheck:
    def test_first_check_pushes_snapshot(self, runtime):
        watcher = TaskWatcher(runtime)

        assert watcher.check() is True

        tasks = runtime.set_tasks.call_args.args[0]
        assert [t.id for t in tasks] == ["T1"]

    def test_unchanged_file_not_pushed_again(self, runtime):
        watcher = TaskWatcher(runtime)
        watcher.check()

        assert watcher.check() is False
        assert runtime.set_tasks.call_count == 1

    def test_changed_file_pushed(self, runtime, tasks_path):
        watcher = TaskWatcher(runtime)
        watcher.check()

        _write_tasks(tasks_path, [{"id": "T1", "title": "A"}, {"id": "T2", "title": "B"}])

        assert watcher.check() is True
        assert [t.id for t in runtime.set_tasks.call_args.args[0]] == ["T1", "T2"]

    def test_store_without_fingerprint_always_pushes(self):
        rt = Mock()
        rt.task_store.fingerprint = Mock(return_value=None)
        rt.task_store.load_tasks = Mock(return_value=[])
        watcher = TaskWatcher(rt)

        watcher.check()
        watcher.check()

        assert rt.set_tasks.call_count == 2


class TestTaskWatcherLoop:
    @pytest.mark.asyncio
    async def test_start_loads_then_polls(self, runtime, tasks_path):
        watcher = TaskWatcher(runtime, poll_interval_s=0.02, visibility_interval_s=0)
        await watcher.start()
        assert runtime.set_tasks.call_count == 1

        _write_tasks(tasks_path, [{"id": "T9", "title": "New task title"}])
        await asyncio.sleep(0.08)
        watcher.stop()

        assert [t.id for t in runtime.set_tasks.call_args.args[0]] == ["T9"]
        runtime.on_visible.assert_not_called()

    @pytest.mark.asyncio
    async def test_periodic_visibility_drain(self, runtime):
        watcher = TaskWatcher(runtime, poll_interval_s=0.02, visibility_interval_s=0.03)
        await watcher.start()
        await asyncio.sleep(0.12)
        watcher.stop()

        assert runtime.on_visible.call_count >= 1

    @pytest.mark.asyncio
    async def test_errors_do_not_stop_loop(self, runtime):
        runtime.set_tasks.side_effect = [None, RuntimeError("boom"), None, None, None, None, None]
        runtime.task_store.fingerprint = Mock(return_value=None)
        watcher = TaskWatcher(runtime, poll_interval_s=0.02, visibility_interval_s=0)

        await watcher.start()
        await asyncio.sleep(0.1)
        watcher.stop()

        assert runtime.set_tasks.call_count >= 3


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
