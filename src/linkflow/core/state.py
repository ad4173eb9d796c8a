# src/linkflow/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from ..tasks.fired_ledger import FiredReminderLedger
from ..tasks.task_store import TaskStore
from .ports import NotificationDispatcher
from .wakeup import WakeupChannel


@dataclass
class AppState:
    """
    Explicit dependencies shared by command handlers and the scheduler.

    Nothing here is a module-level global: bootstrap builds one AppState,
    tests build their own with tmp paths and fakes.
    """

    # Settings object (config.Settings in the app, SimpleNamespace in tests).
    settings: Any

    task_store: TaskStore
    ledger: FiredReminderLedger
    wakeup: WakeupChannel
    notifier: NotificationDispatcher

    # Serializes console commands against each other (the scheduler never takes it).
    lock: threading.RLock = field(default_factory=threading.RLock)
