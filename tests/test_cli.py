"""Tests for the taskflow CLI (typer CliRunner)."""

import json
import pytest
from unittest.mock import patch

from typer.testing import CliRunner

from taskflow.cli.commands import app
from taskflow.reminders.schedule_store import JsonScheduleStore
from taskflow.reminders.schema import ScheduleEntry, Task
from taskflow.reminders.utils import schedule_id

SET_AT = "2026-01-01T10:00:00.000Z"

runner = CliRunner()


@pytest.fixture
def env(tmp_path, monkeypatch):
    """Isolated data dir + workspace, no agent."""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    monkeypatch.setenv("TASKFLOW_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("TASKFLOW_WORKSPACE", str(workspace))
    monkeypatch.setenv("TASKFLOW_REMINDERS__AGENT_ENABLED", "false")
    return workspace


def _write_tasks(workspace, tasks):
    (workspace / "tasks.json").write_text(
        json.dumps({"version": "1.0", "tasks": tasks}), encoding="utf-8"
    )


def _read_task(workspace, task_id):
    data = json.loads((workspace / "tasks.json").read_text(encoding="utf-8"))
    return next(t for t in data["tasks"] if t["id"] == task_id)


def _task_with_reminder(task_id="T1"):
    return {"id": task_id, "title": "Call back", "reminder": {"remindInMinutes": 30, "setAt": SET_AT}}


def _schedule_store(workspace):
    return JsonScheduleStore(workspace / "reminders" / "schedules.json")


def _mirror(workspace, raw_task):
    """Leave a pending delivery behind, as a closed session would."""
    _schedule_store(workspace).put(ScheduleEntry.from_task(Task.model_validate(raw_task)))


class TestSetReminder:
    def test_sets_reminder(self, env):
        _write_tasks(env, [{"id": "T1", "title": "Call back"}])

        result = runner.invoke(app, ["set-reminder", "T1", "--in", "30"])

        assert result.exit_code == 0, result.output
        assert "30 minutes" in result.output
        reminder = _read_task(env, "T1")["reminder"]
        assert reminder["remindInMinutes"] == 30
        assert reminder["repeat"] == "none"
        assert reminder["sound"] is True
        assert reminder["setAt"].endswith("Z")

    def test_units_repeat_and_sound(self, env):
        _write_tasks(env, [{"id": "T1", "title": "Call back"}])

        result = runner.invoke(
            app, ["set-reminder", "T1", "--in", "2", "--unit", "hours", "--repeat", "hourly", "--no-sound"]
        )

        assert result.exit_code == 0, result.output
        assert "then hourly" in result.output
        reminder = _read_task(env, "T1")["reminder"]
        assert reminder["remindInMinutes"] == 120
        assert reminder["repeat"] == "hourly"
        assert reminder["sound"] is False

    def test_zero_duration_rejected(self, env):
        _write_tasks(env, [{"id": "T1", "title": "Call back"}])

        result = runner.invoke(app, ["set-reminder", "T1", "--in", "0"])

        assert result.exit_code == 1
        assert "reminder" not in _read_task(env, "T1")

    def test_unknown_unit_rejected(self, env):
        _write_tasks(env, [{"id": "T1", "title": "Call back"}])
        result = runner.invoke(app, ["set-reminder", "T1", "--in", "1", "--unit", "weeks"])
        assert result.exit_code == 1

    def test_unknown_task(self, env):
        _write_tasks(env, [{"id": "T1", "title": "Call back"}])
        result = runner.invoke(app, ["set-reminder", "T9", "--in", "5"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_replacing_withdraws_old_delivery(self, env):
        task = _task_with_reminder()
        _write_tasks(env, [task])
        _mirror(env, task)

        result = runner.invoke(app, ["set-reminder", "T1", "--in", "10"])

        assert result.exit_code == 0, result.output
        assert _schedule_store(env).get(schedule_id("T1", SET_AT)) is None


class TestClearReminder:
    def test_clears(self, env):
        _write_tasks(
            env,
            [
                {
                    "id": "T1",
                    "title": "Call back",
                    "reminder": {"remindInMinutes": 30, "setAt": "2026-01-01T10:00:00.000Z"},
                }
            ],
        )

        result = runner.invoke(app, ["clear-reminder", "T1"])

        assert result.exit_code == 0, result.output
        assert _read_task(env, "T1")["reminder"] is None

    def test_withdraws_pending_delivery(self, env):
        task = _task_with_reminder()
        _write_tasks(env, [task, _task_with_reminder("T2")])
        _mirror(env, task)
        _mirror(env, _task_with_reminder("T2"))

        result = runner.invoke(app, ["clear-reminder", "T1"])

        assert result.exit_code == 0, result.output
        assert [e.id for e in _schedule_store(env).list_entries()] == [schedule_id("T2", SET_AT)]

    def test_cancels_agent_timer(self, env, monkeypatch):
        monkeypatch.setenv("TASKFLOW_REMINDERS__AGENT_ENABLED", "true")
        monkeypatch.setenv("TASKFLOW_REMINDERS__AGENT_AUTHKEY", "k")
        _write_tasks(env, [_task_with_reminder()])

        with patch("taskflow.reminders.agent.SocketAgentChannel") as channel_cls:
            result = runner.invoke(app, ["clear-reminder", "T1"])

        assert result.exit_code == 0, result.output
        channel_cls.return_value.cancel.assert_called_once_with(schedule_id("T1", SET_AT))
        channel_cls.return_value.close.assert_called_once()

    def test_unknown_task(self, env):
        _write_tasks(env, [])
        result = runner.invoke(app, ["clear-reminder", "T1"])
        assert result.exit_code == 1


class TestStatus:
    def test_lists_reminders(self, env):
        _write_tasks(
            env,
            [
                {
                    "id": "T1",
                    "title": "Call back",
                    "reminder": {"remindInMinutes": 90, "setAt": "2026-01-01T10:00:00.000Z"},
                },
                {"id": "T2", "title": "No reminder here"},
            ],
        )

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0, result.output
        assert "Call back" in result.output
        assert "No reminder here" not in result.output
        assert "disabled" in result.output


class TestOnboard:
    def test_creates_config_and_tasks(self, env, tmp_path):
        result = runner.invoke(app, ["onboard"])

        assert result.exit_code == 0, result.output
        assert (tmp_path / "data" / "config.json").exists()
        assert json.loads((env / "tasks.json").read_text()) == {"version": "1.0", "tasks": []}

    def test_generates_agent_key(self, env, tmp_path):
        runner.invoke(app, ["onboard"])
        key = json.loads((tmp_path / "data" / "config.json").read_text())["reminders"]["agentAuthkey"]
        assert len(key) == 32

        runner.invoke(app, ["onboard"], input="y\n")
        again = json.loads((tmp_path / "data" / "config.json").read_text())["reminders"]["agentAuthkey"]
        assert again == key

    def test_existing_config_kept_on_no(self, env, tmp_path):
        runner.invoke(app, ["onboard"])
        config_path = tmp_path / "data" / "config.json"
        before = config_path.read_text()

        result = runner.invoke(app, ["onboard"], input="n\n")

        assert result.exit_code == 0
        assert config_path.read_text() == before


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "taskflow v" in result.output


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
