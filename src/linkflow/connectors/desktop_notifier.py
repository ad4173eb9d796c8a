# src/linkflow/connectors/desktop_notifier.py

from __future__ import annotations

import logging

from plyer import notification

from ..core.errors import DispatchError

logger = logging.getLogger(__name__)


class DesktopNotifier:
    """
    NotificationDispatcher backed by plyer (libnotify/dbus, Windows toast, macOS).

    Backend failures (no notification daemon, missing platform support) are
    raised as DispatchError; the scheduler logs them and moves on.
    """

    def __init__(self, *, app_name: str = "linkflow", timeout: int = 10) -> None:
        self._app_name = app_name
        self._timeout = max(1, int(timeout))

    def show(self, title: str, body: str) -> None:
        try:
            notification.notify(
                title=title,
                message=body,
                app_name=self._app_name,
                timeout=self._timeout,
            )
        except Exception as err:
            raise DispatchError(f"Failed to show notification: {err}") from err
        logger.debug("Desktop notification shown title=%r", title)


class LogNotifier:
    """Headless NotificationDispatcher: reminders go to the log (and so to the console)."""

    def show(self, title: str, body: str) -> None:
        logger.info("[REMINDER] %s | %s", title, body)
