# src/linkflow/tasks/backup.py

"""
JSON backup format (version 1).

    {"version": 1, "exportedAt": "<RFC3339>", "snapshot": {"lists": [...], "tasks": [...], "schemes": [...]}}

Keys are camelCase. Tasks carry "reminder" as {"type": "relative", "offsetMinutes": n}
or null (a legacy boolean is accepted on import), and "repeat" as
{"type", "dayOfWeek"?, "dayOfMonth"?} or null.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any

from ..core.errors import ValidationError
from .task_models import AppSnapshot, Task, TaskList, UrlScheme
from .validation import parse_actions, parse_reminder, parse_repeat_rule

BACKUP_VERSION = 1


def _task_to_dict(task: Task) -> dict[str, Any]:
    reminder = None
    if task.reminder is not None:
        reminder = {"type": str(task.reminder.kind), "offsetMinutes": task.reminder.offset_minutes}

    repeat = None
    if task.repeat_rule is not None:
        repeat = {"type": task.repeat_rule.rule_type}
        if task.repeat_rule.days_of_week is not None:
            repeat["dayOfWeek"] = list(task.repeat_rule.days_of_week)
        if task.repeat_rule.days_of_month is not None:
            repeat["dayOfMonth"] = list(task.repeat_rule.days_of_month)

    return {
        "id": task.id,
        "listId": task.list_id,
        "title": task.title,
        "detail": task.detail,
        "completed": task.completed,
        "dueDate": task.due_date,
        "time": task.due_time,
        "reminder": reminder,
        "repeat": repeat,
        "actions": [{"schemeId": a.scheme_id, "params": list(a.params)} for a in task.actions] or None,
        "createdAt": task.created_at,
    }


def snapshot_to_payload(snapshot: AppSnapshot, *, exported_at: datetime | None = None) -> dict[str, Any]:
    exported_at = exported_at or datetime.now(timezone.utc)
    return {
        "version": BACKUP_VERSION,
        "exportedAt": exported_at.isoformat(),
        "snapshot": {
            "lists": [{"id": x.id, "name": x.name, "icon": x.icon} for x in snapshot.lists],
            "tasks": [_task_to_dict(t) for t in snapshot.tasks],
            "schemes": [
                {
                    "id": s.id,
                    "name": s.name,
                    "icon": s.icon,
                    "template": s.template,
                    "kind": s.kind,
                    "paramType": s.param_type,
                }
                for s in snapshot.schemes
            ],
        },
    }


def _require(item: Any, key: str, what: str) -> Any:
    if not isinstance(item, dict):
        raise ValidationError(f"Backup data is invalid: {what} must be an object")
    if key not in item or item[key] is None:
        raise ValidationError(f"Backup data is invalid: {what} is missing '{key}'")
    return item[key]


def _optional_str(item: dict[str, Any], key: str, what: str) -> str | None:
    value = item.get(key)
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"Backup data is invalid: {what} '{key}' must be a string or null")
    return value


def _optional_list(item: dict[str, Any], key: str, what: str) -> list[Any] | None:
    value = item.get(key)
    if value is not None and not isinstance(value, list):
        raise ValidationError(f"Backup data is invalid: {what} '{key}' must be a list or null")
    return value


def _created_at(item: dict[str, Any], default: float) -> float:
    value = item.get("createdAt")
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("Backup data is invalid: task 'createdAt' must be a number")
    return float(value)


def payload_to_snapshot(payload: Any) -> AppSnapshot:
    """Parse and validate a decoded backup payload (raises ValidationError)."""
    if not isinstance(payload, dict):
        raise ValidationError("Backup data is invalid: expected a JSON object")
    if payload.get("version") != BACKUP_VERSION:
        raise ValidationError("Unsupported backup version")

    raw = payload.get("snapshot")
    if not isinstance(raw, dict):
        raise ValidationError("Backup data is invalid: snapshot is missing")

    raw_lists = raw.get("lists") or []
    if not raw_lists:
        raise ValidationError("Backup data is invalid: lists cannot be empty")

    lists = [
        TaskList(id=str(_require(x, "id", "list")), name=str(_require(x, "name", "list")), icon=str(x.get("icon") or ""))
        for x in raw_lists
    ]

    schemes = [
        UrlScheme(
            id=str(_require(s, "id", "scheme")),
            name=str(_require(s, "name", "scheme")),
            icon=str(s.get("icon") or ""),
            template=str(_require(s, "template", "scheme")),
            kind="url",
            param_type=str(s.get("paramType") or "string"),
        )
        for s in (raw.get("schemes") or [])
    ]

    now = time.time()
    tasks = [
        Task(
            id=str(_require(t, "id", "task")),
            list_id=_optional_str(t, "listId", "task"),
            title=str(_require(t, "title", "task")),
            detail=_optional_str(t, "detail", "task"),
            completed=bool(t.get("completed", False)),
            due_date=_optional_str(t, "dueDate", "task"),
            due_time=_optional_str(t, "time", "task"),
            reminder=parse_reminder(t.get("reminder")),
            repeat_rule=parse_repeat_rule(t.get("repeat")),
            actions=parse_actions(_optional_list(t, "actions", "task")),
            created_at=_created_at(t, now),
        )
        for t in (raw.get("tasks") or [])
    ]

    return AppSnapshot(lists=lists, tasks=tasks, schemes=schemes)
