"""Configuration schema using Pydantic."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SoundConfig(BaseModel):
    """Audible cue played when a reminder with sound=True is shown."""

    enabled: bool = True
    first_tone_hz: float = 880.0
    second_tone_hz: float = 660.0
    tone_duration_s: float = Field(default=0.25, gt=0)
    volume: float = Field(default=0.3, ge=0, le=1)


class NotificationsConfig(BaseModel):
    """OS-level notification configuration."""

    enabled: bool = True
    app_name: str = "taskflow"
    timeout_s: int = 10  # How long the toast stays on screen (platform permitting)


class RemindersConfig(BaseModel):
    """Reminder scheduling configuration.

    COMPAT: extra='ignore' so older config.json files with removed fields
    still load.
    """

    model_config = ConfigDict(extra="ignore")

    snooze_minutes: int = Field(default=5, ge=1)
    persist: bool = True  # Mirror schedules to reminders/schedules.json
    agent_enabled: bool = True  # Spawn the background delivery agent process
    agent_host: str = "127.0.0.1"
    agent_port: int = Field(default=18791, ge=0, le=65535)
    agent_authkey: str = ""  # Per-install secret; generated on first use (see ensure_agent_authkey)
    sound: SoundConfig = Field(default_factory=SoundConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)


class WatcherConfig(BaseModel):
    """Task list watcher configuration."""

    poll_interval_s: float = Field(default=2.0, gt=0)
    visibility_interval_s: float = 60.0  # Periodic missed-reminder drain; 0 disables


class Config(BaseSettings):
    """Root configuration for taskflow."""

    model_config = SettingsConfigDict(env_prefix="TASKFLOW_", env_nested_delimiter="__")

    workspace: str = "~/.taskflow/workspace"
    reminders: RemindersConfig = Field(default_factory=RemindersConfig)
    watcher: WatcherConfig = Field(default_factory=WatcherConfig)

    @property
    def workspace_path(self) -> Path:
        """Get expanded workspace path."""
        return Path(self.workspace).expanduser()

    @property
    def tasks_path(self) -> Path:
        """Task list consumed by the scheduler."""
        return self.workspace_path / "tasks.json"

    @property
    def schedules_path(self) -> Path:
        """Persisted schedule entries."""
        return self.workspace_path / "reminders" / "schedules.json"
