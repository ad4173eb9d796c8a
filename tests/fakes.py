# tests/fakes.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone

from linkflow.core.errors import DispatchError, StoreError
from linkflow.tasks.task_models import ReminderRow


def utc_ms(*args: int) -> int:
    """Epoch ms of a UTC wall time: utc_ms(2024, 5, 1, 12, 0)."""
    return int(datetime(*args, tzinfo=timezone.utc).timestamp() * 1000)


def make_row(
    task_id: str,
    due_date: str,
    due_time: str,
    *,
    offset_minutes: int = 10,
    created_at: float = 0.0,
    title: str | None = None,
    detail: str | None = None,
    list_name: str | None = "Work",
) -> ReminderRow:
    return ReminderRow(
        task_id=task_id,
        title=title or f"Task {task_id}",
        detail=detail,
        list_name=list_name,
        due_date=due_date,
        due_time=due_time,
        reminder_enabled=True,
        offset_minutes=offset_minutes,
        created_at=created_at,
    )


@dataclass
class FakeNotifier:
    """
    NotificationDispatcher that records calls.

    Called from a worker thread (asyncio.to_thread), so the event lets tests wait without polling.
    """

    fail: bool = False
    shown: list[tuple[str, str]] = field(default_factory=list)
    called: threading.Event = field(default_factory=threading.Event)

    def show(self, title: str, body: str) -> None:
        self.shown.append((title, body))
        self.called.set()
        if self.fail:
            raise DispatchError("no notification daemon")


class FakeReminderRepo:
    """
    In-memory ReminderRepo used for resolver/scheduler unit tests.

    `failures` makes the next N reads raise StoreError.
    """

    def __init__(self, rows: list[ReminderRow] | None = None, *, failures: int = 0) -> None:
        self.rows = list(rows or [])
        self.failures = failures
        self.reads = 0

    def list_active_reminder_candidates(self) -> list[ReminderRow]:
        self.reads += 1
        if self.failures > 0:
            self.failures -= 1
            raise StoreError("Failed to query reminder candidates: database is locked")
        return list(self.rows)


class FixedClock:
    """Manually advanced epoch-ms clock."""

    def __init__(self, now_ms: int) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms
