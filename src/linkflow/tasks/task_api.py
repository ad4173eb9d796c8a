# src/linkflow/tasks/task_api.py

"""
Task commands used by connectors (console REPL, tests).

Every command that can move the next reminder writes through the store first
and raises the wakeup channel only after the transaction has committed.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any

from ..core.errors import ValidationError
from ..core.state import AppState
from .backup import payload_to_snapshot, snapshot_to_payload
from .reminders import now_epoch_ms, resolve_next_reminder
from .task_models import AppSnapshot, DebugNextReminder, Task

logger = logging.getLogger(__name__)


def create_task(
    state: AppState,
    *,
    title: str,
    list_id: str | None = None,
    detail: str | None = None,
    due_date: str | None = None,
    due_time: str | None = None,
    reminder: Any = None,
    repeat_rule: Any = None,
    actions: Any = None,
) -> Task:
    task = state.task_store.create_task(
        title=title,
        list_id=list_id,
        detail=detail,
        due_date=due_date,
        due_time=due_time,
        reminder=reminder,
        repeat_rule=repeat_rule,
        actions=actions,
    )
    state.wakeup.notify()
    return task


def save_task(state: AppState, task: Task) -> Task:
    """Persist a full Task value (as returned by the store, possibly edited with dataclasses.replace)."""
    saved = state.task_store.save_task(
        task.id,
        title=task.title,
        list_id=task.list_id,
        detail=task.detail,
        completed=task.completed,
        due_date=task.due_date,
        due_time=task.due_time,
        reminder=task.reminder,
        repeat_rule=task.repeat_rule,
        actions=task.actions,
    )
    state.wakeup.notify()
    return saved


def edit_task(state: AppState, task_id: str, **changes: Any) -> Task:
    """
    Partial edit: read the task, apply `changes` (Task field names), save.

    Raw reminder/repeat values (bool, dict) are accepted and validated by the store.
    """
    current = state.task_store.get_task(task_id)
    try:
        edited = replace(current, **changes)
    except TypeError as err:
        raise ValidationError(f"Unknown task field in {sorted(changes)}") from err
    return save_task(state, edited)


def toggle_task_completed(state: AppState, task_id: str) -> Task:
    task = state.task_store.toggle_task_completed(task_id)
    state.wakeup.notify()
    return task


def delete_task(state: AppState, task_id: str) -> None:
    state.task_store.delete_task(task_id)
    state.wakeup.notify()


def get_app_snapshot(state: AppState) -> AppSnapshot:
    return state.task_store.get_snapshot()


def export_backup(state: AppState, path: str | Path) -> Path:
    raw = str(path).strip()
    if not raw:
        raise ValidationError("Backup path is required")

    output = Path(raw).expanduser()
    payload = snapshot_to_payload(get_app_snapshot(state))
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(payload, ensure_ascii=False, indent=2), "utf-8")
    logger.info("Backup exported to %s", output)
    return output


def import_backup(state: AppState, path: str | Path) -> AppSnapshot:
    raw = str(path).strip()
    if not raw:
        raise ValidationError("Backup path is required")

    source = Path(raw).expanduser()
    try:
        payload = json.loads(source.read_text("utf-8"))
    except OSError as err:
        raise ValidationError(f"Failed to read backup file: {err}") from err
    except ValueError as err:
        raise ValidationError(f"Failed to parse backup file: {err}") from err

    snapshot = payload_to_snapshot(payload)
    state.task_store.replace_snapshot(snapshot)
    state.wakeup.notify()
    logger.info("Backup imported from %s", source)
    return state.task_store.get_snapshot()


def debug_next_reminder(state: AppState, *, now_ms: int | None = None) -> DebugNextReminder | None:
    """Diagnostic view of what the scheduler would arm next (same resolver pass)."""
    now = now_epoch_ms() if now_ms is None else int(now_ms)
    settings = state.settings
    candidate = resolve_next_reminder(
        state.task_store,
        state.ledger,
        now,
        grace_ms=int(settings.reminder_grace_minutes) * 60 * 1000,
        retention_ms=int(settings.fired_retention_days) * 24 * 60 * 60 * 1000,
    )
    if candidate is None:
        return None

    return DebugNextReminder(
        task_id=candidate.task_id,
        task_title=candidate.title,
        remind_at=candidate.remind_at_ms,
        due_date=candidate.due_date,
        time=candidate.due_time,
        now=now,
        delay_ms=max(0, candidate.remind_at_ms - now),
    )
