# src/linkflow/tasks/reminders.py

"""
Remind-instant computation and the reminder resolver.

A remind instant is due_date + due_time read in the local timezone, minus the
reminder offset, as epoch milliseconds:
- ambiguous local times (DST fall-back fold) use the earlier instant,
- non-existent local times (DST spring-forward gap) have no remind instant.
"""

from __future__ import annotations

import logging
import time
from datetime import date, datetime, time as dtime, timezone, tzinfo

from dateutil import tz

from ..core.ports import FiredLedger, ReminderRepo
from .task_models import ReminderCandidate, ReminderRow

logger = logging.getLogger(__name__)

REMINDER_GRACE_MS = 10 * 60 * 1000
FIRED_REMINDER_RETENTION_MS = 30 * 24 * 60 * 60 * 1000

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MS = 1000


def now_epoch_ms() -> int:
    return int(time.time() * _MS)


def local_zone() -> tzinfo:
    # tzlocal follows the system zone including DST transitions (unlike astimezone()'s fixed offset).
    return tz.tzlocal()


def _parse_date(value: str) -> date | None:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return None


def _parse_time(value: str) -> dtime | None:
    try:
        return datetime.strptime(value, "%H:%M").time()
    except ValueError:
        return None


def local_to_epoch_ms(naive: datetime, zone: tzinfo | None = None) -> int | None:
    """Epoch ms of a naive local wall time; None inside a DST gap, earlier instant inside a fold."""
    zone = zone or local_zone()
    if not tz.datetime_exists(naive, tz=zone):
        return None
    aware = naive.replace(tzinfo=zone, fold=0)
    return (aware - _EPOCH) // (datetime.resolution * _MS)


def compute_remind_at(
    due_date: str | None,
    due_time: str | None,
    offset_minutes: int | None,
    *,
    zone: tzinfo | None = None,
) -> int | None:
    if not due_date or not due_time or offset_minutes is None:
        return None

    d = _parse_date(due_date)
    t = _parse_time(due_time)
    if d is None or t is None:
        return None

    due_ms = local_to_epoch_ms(datetime.combine(d, t), zone)
    if due_ms is None:
        return None
    return due_ms - max(0, int(offset_minutes)) * 60 * _MS


def _to_candidate(row: ReminderRow, remind_at_ms: int) -> ReminderCandidate:
    return ReminderCandidate(
        task_id=row.task_id,
        title=row.title,
        detail=row.detail,
        list_name=row.list_name,
        due_date=row.due_date,
        due_time=row.due_time,
        remind_at_ms=remind_at_ms,
        created_at=row.created_at,
    )


def resolve_next_reminder(
    repo: ReminderRepo,
    ledger: FiredLedger,
    now_ms: int,
    *,
    grace_ms: int = REMINDER_GRACE_MS,
    retention_ms: int = FIRED_REMINDER_RETENTION_MS,
    zone: tzinfo | None = None,
) -> ReminderCandidate | None:
    """
    The single soonest reminder that may still fire at `now_ms`.

    Skips rows without a computable instant, instants older than now - grace_ms
    (missed, never fired retroactively) and (task, instant) pairs already in the ledger.
    Ties on the instant go to the earliest-created task.

    The ledger retention purge runs first, so cleanup piggybacks on every pass.
    """
    ledger.purge_older_than(now_ms - retention_ms)

    floor_ms = now_ms - grace_ms
    pending: list[tuple[int, float, int, ReminderRow]] = []

    for index, row in enumerate(repo.list_active_reminder_candidates()):
        if not row.reminder_enabled:
            continue
        remind_at = compute_remind_at(row.due_date, row.due_time, row.offset_minutes, zone=zone)
        if remind_at is None:
            logger.debug("Task %s: no remind instant for %s %s", row.task_id, row.due_date, row.due_time)
            continue
        if remind_at < floor_ms:
            continue
        pending.append((remind_at, row.created_at, index, row))

    # index keeps store order as the last tie-breaker.
    pending.sort(key=lambda item: item[:3])

    for remind_at, _, _, row in pending:
        if ledger.is_fired(row.task_id, remind_at):
            continue
        return _to_candidate(row, remind_at)

    return None
