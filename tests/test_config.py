"""Tests for configuration schema and loader."""

import json
import pytest

from taskflow.config.loader import (
    camel_to_snake,
    convert_keys,
    convert_to_camel,
    ensure_agent_authkey,
    get_config_path,
    load_config,
    save_config,
    snake_to_camel,
)
from taskflow.config.schema import Config


class TestConfigDefaults:
    def test_defaults(self):
        config = Config()
        assert config.reminders.snooze_minutes == 5
        assert config.reminders.persist is True
        assert config.reminders.agent_enabled is True
        assert config.reminders.agent_host == "127.0.0.1"
        assert config.reminders.agent_authkey == ""
        assert config.reminders.sound.enabled is True
        assert config.watcher.poll_interval_s == 2.0

    def test_paths(self, tmp_path):
        config = Config(workspace=str(tmp_path))
        assert config.workspace_path == tmp_path
        assert config.tasks_path == tmp_path / "tasks.json"
        assert config.schedules_path == tmp_path / "reminders" / "schedules.json"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("TASKFLOW_REMINDERS__SNOOZE_MINUTES", "9")
        monkeypatch.setenv("TASKFLOW_REMINDERS__AGENT_ENABLED", "false")
        config = Config()
        assert config.reminders.snooze_minutes == 9
        assert config.reminders.agent_enabled is False

    def test_snooze_must_be_positive(self):
        with pytest.raises(ValueError):
            Config(reminders={"snooze_minutes": 0})


class TestLoader:
    def test_key_conversion(self):
        assert camel_to_snake("snoozeMinutes") == "snooze_minutes"
        assert snake_to_camel("agent_authkey") == "agentAuthkey"
        assert convert_keys({"reminders": {"snoozeMinutes": 3}}) == {"reminders": {"snooze_minutes": 3}}
        assert convert_to_camel({"poll_interval_s": [{"a_b": 1}]}) == {"pollIntervalS": [{"aB": 1}]}

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "config.json")
        assert config.reminders.snooze_minutes == 5

    def test_save_then_load(self, tmp_path):
        path = tmp_path / "config.json"
        config = Config(workspace=str(tmp_path / "ws"))
        config.reminders.snooze_minutes = 12
        config.reminders.sound.enabled = False

        save_config(config, path)

        on_disk = json.loads(path.read_text())
        assert on_disk["reminders"]["snoozeMinutes"] == 12
        loaded = load_config(path)
        assert loaded.reminders.snooze_minutes == 12
        assert loaded.reminders.sound.enabled is False
        assert loaded.workspace_path == tmp_path / "ws"

    def test_broken_file_falls_back(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{oops", encoding="utf-8")
        assert load_config(path).reminders.snooze_minutes == 5

    def test_invalid_values_fall_back(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"reminders": {"snoozeMinutes": -3}}), encoding="utf-8")
        assert load_config(path).reminders.snooze_minutes == 5

    def test_unknown_reminder_keys_ignored(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"reminders": {"oldSetting": True, "snoozeMinutes": 2}}), encoding="utf-8")
        assert load_config(path).reminders.snooze_minutes == 2

    def test_agent_authkey_generated_once(self, tmp_path):
        path = tmp_path / "config.json"
        config = Config()

        key = ensure_agent_authkey(config, path)

        assert len(key) == 32
        assert load_config(path).reminders.agent_authkey == key
        assert ensure_agent_authkey(load_config(path), path) == key

    def test_agent_authkeys_differ_per_install(self, tmp_path):
        a = ensure_agent_authkey(Config(), tmp_path / "a.json")
        b = ensure_agent_authkey(Config(), tmp_path / "b.json")
        assert a != b

    def test_config_path_under_data_dir(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TASKFLOW_DATA_DIR", str(tmp_path / "data"))
        assert get_config_path() == tmp_path / "data" / "config.json"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
