"""Desktop notification primitive.

Wraps plyer's cross-platform notification facade. Every failure is
swallowed: the in-session reminder popup stays the primary channel and
only the OS-level layer is lost.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from loguru import logger


class Notifier(ABC):
    """request_permission (once per session) + show(title, body)."""

    @abstractmethod
    def request_permission(self) -> bool: ...

    @abstractmethod
    def show(self, title: str, body: str) -> None: ...


class NullNotifier(Notifier):
    """Notifications disabled or unsupported."""

    def request_permission(self) -> bool:
        return False

    def show(self, title: str, body: str) -> None:
        logger.debug(f"[Notify] (disabled) {title}: {body}")


class DesktopNotifier(Notifier):
    """OS notification via plyer."""

    def __init__(self, app_name: str = "taskflow", timeout_s: int = 10, enabled: bool = True):
        self.app_name = app_name
        self.timeout_s = timeout_s
        self.enabled = enabled
        self._granted: bool | None = None

    def request_permission(self) -> bool:
        """Resolve whether OS notifications can be shown this session.

        Desktop platforms have no explicit grant; the answer is the config
        switch, revoked later if the platform backend turns out missing.
        """
        if self._granted is None:
            self._granted = self.enabled
            logger.debug(f"[Notify] Permission {'granted' if self._granted else 'denied'}")
        return self._granted

    def show(self, title: str, body: str) -> None:
        if not self.enabled or self._granted is False:
            return
        try:
            from plyer import notification

            notification.notify(
                title=title,
                message=body,
                app_name=self.app_name,
                timeout=self.timeout_s,
            )
        except NotImplementedError:
            logger.info("[Notify] No notification backend on this platform; disabling")
            self._granted = False
        except Exception as e:
            logger.warning(f"[Notify] show failed: {e}")
