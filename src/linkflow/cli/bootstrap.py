# src/linkflow/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (store/ledger/wakeup/notifier).
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..connectors.desktop_notifier import DesktopNotifier, LogNotifier
from ..core.ports import NotificationDispatcher
from ..core.state import AppState
from ..core.wakeup import WakeupChannel
from ..tasks.fired_ledger import FiredReminderLedger
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    notifier: NotificationDispatcher
    if settings.notifications_enabled:
        notifier = DesktopNotifier(app_name=settings.app_name, timeout=settings.notification_timeout)
    else:
        logger.info("Desktop notifications disabled; reminders go to the log.")
        notifier = LogNotifier()

    return AppState(
        settings=settings,
        task_store=TaskStore(settings.db_path),
        ledger=FiredReminderLedger(settings.db_path),
        wakeup=WakeupChannel(),
        notifier=notifier,
    )
