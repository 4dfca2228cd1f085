"""OS-level notification and audible cue primitives."""

from taskflow.notify.desktop import DesktopNotifier, Notifier, NullNotifier
from taskflow.notify.sound import ChimePlayer, synthesize_chime

__all__ = ["Notifier", "DesktopNotifier", "NullNotifier", "ChimePlayer", "synthesize_chime"]
