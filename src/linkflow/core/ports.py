# src/linkflow/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the reminder engine.

The scheduler depends on Protocols instead of concrete implementations.
This keeps the notification backend and storage swappable and makes testing easier.
"""

from typing import Any, Protocol


class NotificationDispatcher(Protocol):
    """
    Connector-side port: how the scheduler shows a reminder.

    Implementations raise DispatchError (or any exception) on failure;
    the scheduler logs it and never retries a claimed firing.
    """

    def show(self, title: str, body: str) -> None: ...


class ReminderRepo(Protocol):
    # Scheduler API
    def list_active_reminder_candidates(self) -> list[Any]: ...


class FiredLedger(Protocol):
    def is_fired(self, task_id: str, remind_at_ms: int) -> bool: ...
    def try_mark_fired(self, task_id: str, remind_at_ms: int, fired_at_ms: int) -> bool: ...
    def purge_older_than(self, threshold_ms: int) -> int: ...
