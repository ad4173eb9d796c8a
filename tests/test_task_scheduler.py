# tests/test_task_scheduler.py

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from linkflow.core.wakeup import WakeupChannel
from linkflow.tasks import task_api
from linkflow.tasks.fired_ledger import FiredReminderLedger
from linkflow.tasks.task_models import ReminderCandidate
from linkflow.tasks.task_scheduler import (
    build_notification,
    fire_reminder,
    run_reminder_scheduler,
    start_scheduler_in_background,
)

from .fakes import FakeNotifier, FakeReminderRepo, FixedClock, make_row, utc_ms

UTC = timezone.utc
NOW = utc_ms(2024, 5, 1, 12, 0)


async def _wait_for(pred: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not pred():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


async def _stop(task: asyncio.Task) -> None:
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


def _candidate(**overrides) -> ReminderCandidate:
    values = dict(
        task_id="t1",
        title="Pay rent",
        detail=None,
        list_name="Life",
        due_date="2024-05-01",
        due_time="12:10",
        remind_at_ms=NOW,
        created_at=0.0,
    )
    values.update(overrides)
    return ReminderCandidate(**values)


def test_build_notification_body() -> None:
    assert build_notification(_candidate()) == ("Pay rent", "Life · 2024-05-01 12:10")
    assert build_notification(_candidate(list_name=None)) == ("Pay rent", "2024-05-01 12:10")
    assert build_notification(_candidate(detail="  transfer to landlord "), title_prefix="Task reminder: ") == (
        "Task reminder: Pay rent",
        "transfer to landlord",
    )


@pytest.mark.asyncio
async def test_fire_reminder_claims_before_dispatch(tmp_path: Path) -> None:
    ledger = FiredReminderLedger(tmp_path / "db.sqlite3")
    notifier = FakeNotifier()

    assert await fire_reminder(_candidate(), ledger, notifier, clock=lambda: NOW) is True
    assert await fire_reminder(_candidate(), ledger, notifier, clock=lambda: NOW) is False
    assert len(notifier.shown) == 1


@pytest.mark.asyncio
async def test_scheduler_fires_due_reminder_once(tmp_path: Path) -> None:
    ledger = FiredReminderLedger(tmp_path / "db.sqlite3")
    notifier = FakeNotifier()
    wakeup = WakeupChannel()
    repo = FakeReminderRepo([make_row("t1", "2024-05-01", "12:10", title="Standup")])

    runner = asyncio.create_task(
        run_reminder_scheduler(
            repo,
            ledger,
            notifier,
            wakeup,
            clock=FixedClock(NOW),
            zone=UTC,
            title_prefix="Task reminder: ",
        )
    )

    await _wait_for(lambda: bool(notifier.shown))

    # Re-resolving after a wakeup must not fire the same (task, instant) again.
    wakeup.notify()
    await asyncio.sleep(0.05)
    await _stop(runner)

    assert notifier.shown == [("Task reminder: Standup", "Work · 2024-05-01 12:10")]
    assert ledger.is_fired("t1", NOW)


@pytest.mark.asyncio
async def test_wakeup_rearms_for_a_sooner_reminder(tmp_path: Path) -> None:
    ledger = FiredReminderLedger(tmp_path / "db.sqlite3")
    notifier = FakeNotifier()
    wakeup = WakeupChannel()
    clock = FixedClock(NOW)
    repo = FakeReminderRepo([make_row("later", "2024-05-01", "13:10")])

    runner = asyncio.create_task(
        run_reminder_scheduler(repo, ledger, notifier, wakeup, clock=clock, zone=UTC)
    )

    await asyncio.sleep(0.05)
    assert notifier.shown == []

    repo.rows.append(make_row("soon", "2024-05-01", "12:10"))
    wakeup.notify()
    await _wait_for(lambda: len(notifier.shown) == 1)
    assert notifier.shown[0][0] == "Task soon"

    clock.advance(60 * 60 * 1000)
    wakeup.notify()
    await _wait_for(lambda: len(notifier.shown) == 2)
    await _stop(runner)

    assert notifier.shown[1][0] == "Task later"


@pytest.mark.asyncio
async def test_armed_wait_is_capped_and_rechecks_clock(tmp_path: Path) -> None:
    ledger = FiredReminderLedger(tmp_path / "db.sqlite3")
    notifier = FakeNotifier()
    clock = FixedClock(NOW)
    repo = FakeReminderRepo([make_row("t1", "2024-05-01", "13:10")])

    runner = asyncio.create_task(
        run_reminder_scheduler(
            repo,
            ledger,
            notifier,
            WakeupChannel(),
            clock=clock,
            zone=UTC,
            max_sleep_seconds=0.02,
        )
    )

    await asyncio.sleep(0.05)
    assert notifier.shown == []

    # Wall clock jumps forward with no wakeup: the capped wait notices.
    clock.advance(60 * 60 * 1000)
    await _wait_for(lambda: bool(notifier.shown))
    await _stop(runner)


@pytest.mark.asyncio
async def test_store_failure_backs_off_and_recovers(tmp_path: Path) -> None:
    ledger = FiredReminderLedger(tmp_path / "db.sqlite3")
    notifier = FakeNotifier()
    repo = FakeReminderRepo([make_row("t1", "2024-05-01", "12:10")], failures=2)

    runner = asyncio.create_task(
        run_reminder_scheduler(
            repo,
            ledger,
            notifier,
            WakeupChannel(),
            clock=FixedClock(NOW),
            zone=UTC,
            error_backoff_seconds=0.01,
        )
    )

    await _wait_for(lambda: bool(notifier.shown))
    await _stop(runner)

    assert repo.reads >= 3
    assert len(notifier.shown) == 1


@pytest.mark.asyncio
async def test_dispatch_failure_still_consumes_the_firing(tmp_path: Path) -> None:
    ledger = FiredReminderLedger(tmp_path / "db.sqlite3")
    notifier = FakeNotifier(fail=True)
    wakeup = WakeupChannel()
    repo = FakeReminderRepo([make_row("t1", "2024-05-01", "12:10")])

    runner = asyncio.create_task(
        run_reminder_scheduler(repo, ledger, notifier, wakeup, clock=FixedClock(NOW), zone=UTC)
    )

    await _wait_for(lambda: bool(notifier.shown))
    wakeup.notify()
    await asyncio.sleep(0.05)

    assert not runner.done()
    await _stop(runner)

    assert len(notifier.shown) == 1
    assert ledger.is_fired("t1", NOW)


def test_background_runner_fires_and_stops(state, notifier) -> None:
    due = datetime.now() + timedelta(minutes=10)
    task_api.create_task(
        state,
        title="Stretch",
        list_id="list_today",
        due_date=due.strftime("%Y-%m-%d"),
        due_time=due.strftime("%H:%M"),
        reminder={"type": "relative", "offsetMinutes": 10},
    )

    runner = start_scheduler_in_background(state)
    assert runner is not None
    try:
        assert notifier.called.wait(timeout=5.0)
    finally:
        runner.stop()
        runner.join(timeout=5.0)

    assert not runner.thread.is_alive()
    assert notifier.shown[0][0] == "Stretch"
    assert notifier.shown[0][1].startswith("All tasks · ")
