"""Utility functions for taskflow."""

import os
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """Get the taskflow data directory (~/.taskflow or TASKFLOW_DATA_DIR)."""
    override = (os.environ.get("TASKFLOW_DATA_DIR") or "").strip() or None
    return ensure_dir(Path(override) if override else Path.home() / ".taskflow")


def get_workspace_path(workspace: str | None = None) -> Path:
    """
    Get the workspace path.

    Args:
        workspace: Optional workspace path. Defaults to ~/.taskflow/workspace.

    Returns:
        Expanded and ensured workspace path.
    """
    if workspace:
        path = Path(workspace).expanduser()
    else:
        path = get_data_path() / "workspace"
    return ensure_dir(path)


def get_reminders_path(workspace: Path) -> Path:
    """Get the directory holding persisted reminder schedules."""
    return ensure_dir(workspace / "reminders")
