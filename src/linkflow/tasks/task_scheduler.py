# src/linkflow/tasks/task_scheduler.py

from __future__ import annotations

"""
Reminder scheduler.

A single long-lived loop that:
- resolves the next reminder across all tasks,
- sleeps until it is due, or until the wakeup channel is raised,
- claims the firing in the ledger (insert-if-absent),
- dispatches a notification via an injected port.

Idle (nothing to fire) waits on the wakeup channel with no timeout.
Armed waits on the wakeup channel with a timeout of the remaining delay.
A wakeup abandons the candidate and re-resolves from scratch.

To stop the scheduler, cancel the coroutine/task.
"""

import asyncio
import contextlib
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import tzinfo

from ..core.ports import FiredLedger, NotificationDispatcher, ReminderRepo
from ..core.state import AppState
from ..core.wakeup import WakeupChannel
from .reminders import (
    FIRED_REMINDER_RETENTION_MS,
    REMINDER_GRACE_MS,
    now_epoch_ms,
    resolve_next_reminder,
)
from .task_models import ReminderCandidate

logger = logging.getLogger(__name__)


def build_notification(candidate: ReminderCandidate, *, title_prefix: str = "") -> tuple[str, str]:
    """
    Title is the task title. Body is the task detail when it is not blank,
    otherwise "<list> · <date> <time>" (no list prefix when the task has no list).
    """
    title = f"{title_prefix}{candidate.title}"

    detail = (candidate.detail or "").strip()
    if detail:
        return title, detail

    list_prefix = f"{candidate.list_name} · " if candidate.list_name else ""
    return title, f"{list_prefix}{candidate.due_date} {candidate.due_time}"


async def fire_reminder(
    candidate: ReminderCandidate,
    ledger: FiredLedger,
    notifier: NotificationDispatcher,
    *,
    clock: Callable[[], int] = now_epoch_ms,
    title_prefix: str = "",
) -> bool:
    """
    Claim the (task, instant) pair, then dispatch.

    Returns False when another path already claimed it (nothing is shown).
    A dispatch failure after a successful claim is logged and the firing stays consumed.
    """
    fired_at_ms = clock()
    if not ledger.try_mark_fired(candidate.task_id, candidate.remind_at_ms, fired_at_ms):
        return False

    title, body = build_notification(candidate, title_prefix=title_prefix)
    try:
        await asyncio.to_thread(notifier.show, title, body)
    except Exception:
        logger.exception("Notification dispatch failed task_id=%s remind_at=%s", candidate.task_id, candidate.remind_at_ms)
        return True

    logger.info(
        "Reminder fired task_id=%s remind_at=%s lateness_ms=%s",
        candidate.task_id,
        candidate.remind_at_ms,
        fired_at_ms - candidate.remind_at_ms,
    )
    return True


async def run_reminder_scheduler(
        repo: ReminderRepo,
        ledger: FiredLedger,
        notifier: NotificationDispatcher,
        wakeup: WakeupChannel,
        *,
        grace_ms: int = REMINDER_GRACE_MS,
        retention_ms: int = FIRED_REMINDER_RETENTION_MS,
        error_backoff_seconds: float = 5.0,
        max_sleep_seconds: float = 60.0,
        title_prefix: str = "",
        clock: Callable[[], int] = now_epoch_ms,
        zone: tzinfo | None = None,
) -> None:
    """
    Run forever (until cancelled).

    max_sleep_seconds caps a single armed wait: the timer runs on the monotonic
    clock, so re-checking the wall clock at least this often picks up system
    clock changes. Reaching the cap before the remind instant just re-resolves.

    Store or dispatch failures never end the loop; after a failure the loop waits
    error_backoff_seconds (or a wakeup, whichever comes first) and resolves again.
    """
    backoff_s = max(0.01, float(error_backoff_seconds))
    cap_s = max(0.01, float(max_sleep_seconds))

    logger.info("Reminder scheduler started (grace_ms=%s retention_ms=%s)", grace_ms, retention_ms)

    while True:
        try:
            candidate = resolve_next_reminder(
                repo,
                ledger,
                clock(),
                grace_ms=grace_ms,
                retention_ms=retention_ms,
                zone=zone,
            )
        except Exception:
            logger.exception("resolve_next_reminder failed; retrying in %.1fs", backoff_s)
            await wakeup.wait(timeout=backoff_s)
            continue

        if candidate is None:
            logger.debug("Idle: no pending reminders")
            await wakeup.wait()
            continue

        delay_ms = max(0, candidate.remind_at_ms - clock())
        if delay_ms > 0:
            logger.debug("Armed task_id=%s remind_at=%s delay_ms=%s", candidate.task_id, candidate.remind_at_ms, delay_ms)
            if await wakeup.wait(timeout=min(delay_ms / 1000.0, cap_s)):
                logger.debug("Wakeup while armed; re-resolving")
                continue
            if clock() < candidate.remind_at_ms:
                continue

        try:
            await fire_reminder(candidate, ledger, notifier, clock=clock, title_prefix=title_prefix)
        except Exception:
            logger.exception("Firing failed task_id=%s; retrying in %.1fs", candidate.task_id, backoff_s)
            await wakeup.wait(timeout=backoff_s)


@dataclass
class SchedulerRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    task: asyncio.Task

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.task.cancel)
        except RuntimeError:
            logger.debug("Failed to signal scheduler stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_scheduler_in_background(state: AppState) -> SchedulerRunner | None:
    """
    Start the reminder scheduler in a background thread with its own event loop.

    The console REPL blocks the main thread on input(); the scheduler is async.
    """
    settings = state.settings
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        task = loop.create_task(
            run_reminder_scheduler(
                state.task_store,
                state.ledger,
                state.notifier,
                state.wakeup,
                grace_ms=int(settings.reminder_grace_minutes) * 60 * 1000,
                retention_ms=int(settings.fired_retention_days) * 24 * 60 * 60 * 1000,
                error_backoff_seconds=float(settings.error_backoff_seconds),
                max_sleep_seconds=float(settings.max_sleep_seconds),
                title_prefix=str(getattr(settings, "title_prefix", "")),
            )
        )

        holder["loop"] = loop
        holder["task"] = task
        ready.set()

        try:
            loop.run_until_complete(task)
        except asyncio.CancelledError:
            logger.info("Reminder scheduler stopped.")
        except Exception:
            logger.exception("Reminder scheduler crashed.")
        finally:
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="reminder-scheduler", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    task = holder.get("task")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(task, asyncio.Task):
        logger.error("Scheduler thread did not initialize properly.")
        return None

    logger.info("Scheduler background thread started.")
    return SchedulerRunner(thread=t, loop=loop, task=task)
