# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from linkflow.core.state import AppState
from linkflow.core.wakeup import WakeupChannel
from linkflow.tasks.fired_ledger import FiredReminderLedger
from linkflow.tasks.task_store import TaskStore

from .fakes import FakeNotifier


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the developer's environment and .env.
    """
    return SimpleNamespace(
        app_name="linkflow-test",
        data_dir=tmp_path,
        db_path=tmp_path / "linkflow.db",
        reminder_grace_minutes=10,
        fired_retention_days=30,
        error_backoff_seconds=5,
        max_sleep_seconds=60,
        title_prefix="",
        notifications_enabled=False,
        notification_timeout=10,
    )


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def state(settings: SimpleNamespace, notifier: FakeNotifier) -> AppState:
    """
    AppState wired with a fake notifier.

    NOTE: TaskStore and the ledger are real SQLite (tmp file): their
    correctness is part of what we want to test.
    """
    return AppState(
        settings=settings,
        task_store=TaskStore(settings.db_path),
        ledger=FiredReminderLedger(settings.db_path),
        wakeup=WakeupChannel(),
        notifier=notifier,
    )
