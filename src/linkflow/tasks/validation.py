# src/linkflow/tasks/validation.py

"""
Boundary validation for task input.

Everything here runs before a row is written; the scheduler and the
recurrence engine only ever see data that passed these checks.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from ..core.errors import ValidationError
from .task_models import (
    DEFAULT_REMINDER_OFFSET_MINUTES,
    Reminder,
    ReminderKind,
    RepeatRule,
    RepeatType,
    TaskActionBinding,
)

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"


def require_text(value: str | None, what: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{what} is required")
    return text


def normalize_detail(detail: str | None) -> str | None:
    if detail is None:
        return None
    if not isinstance(detail, str):
        raise ValidationError(f"Invalid detail {detail!r} (expected text)")
    trimmed = detail.strip()
    return trimmed or None


def normalize_due_date(value: str | None) -> str | None:
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"Invalid due date {value!r} (expected YYYY-MM-DD)")
    if value is None or not value.strip():
        return None
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).date().isoformat()
    except ValueError as err:
        raise ValidationError(f"Invalid due date {value!r} (expected YYYY-MM-DD)") from err


def normalize_due_time(value: str | None) -> str | None:
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"Invalid due time {value!r} (expected HH:MM)")
    if value is None or not value.strip():
        return None
    try:
        return datetime.strptime(value.strip(), TIME_FORMAT).strftime(TIME_FORMAT)
    except ValueError as err:
        raise ValidationError(f"Invalid due time {value!r} (expected HH:MM)") from err


def parse_reminder(raw: Any) -> Reminder | None:
    """
    Accepts:
    - None / False           -> no reminder
    - True                   -> relative reminder, default offset (legacy boolean form)
    - Reminder               -> re-normalized
    - {"type", "offsetMinutes"} mapping

    Negative offsets clamp to 0. Non-relative kinds are rejected.
    """
    if raw is None or raw is False:
        return None
    if raw is True:
        return Reminder(offset_minutes=DEFAULT_REMINDER_OFFSET_MINUTES)

    if isinstance(raw, Reminder):
        kind, offset = raw.kind, raw.offset_minutes
    elif isinstance(raw, Mapping):
        kind = raw.get("type", ReminderKind.RELATIVE)
        offset = raw.get("offsetMinutes", raw.get("offset_minutes", DEFAULT_REMINDER_OFFSET_MINUTES))
    else:
        raise ValidationError(f"Unsupported reminder value: {raw!r}")

    if kind != ReminderKind.RELATIVE:
        raise ValidationError("Only relative reminders are supported")

    try:
        minutes = int(offset)
    except (TypeError, ValueError) as err:
        raise ValidationError(f"Invalid reminder offset: {offset!r}") from err

    return Reminder(offset_minutes=max(0, minutes))


def _days(raw: Any) -> list[int] | None:
    if raw is None:
        return None
    try:
        return [int(d) for d in raw]
    except (TypeError, ValueError) as err:
        raise ValidationError(f"Invalid repeat days: {raw!r}") from err


def parse_repeat_rule(raw: Any) -> RepeatRule | None:
    """Build a RepeatRule from a RepeatRule or a camelCase/snake_case mapping, then validate it."""
    if raw is None:
        return None

    if isinstance(raw, RepeatRule):
        rule = raw
    elif isinstance(raw, Mapping):
        rule = RepeatRule(
            rule_type=str(raw.get("type", raw.get("rule_type", "")) or ""),
            days_of_week=_days(raw.get("dayOfWeek", raw.get("days_of_week"))),
            days_of_month=_days(raw.get("dayOfMonth", raw.get("days_of_month"))),
        )
    else:
        raise ValidationError(f"Unsupported repeat value: {raw!r}")

    validate_repeat_rule(rule)
    return rule


def validate_repeat_rule(rule: RepeatRule | None) -> None:
    if rule is None:
        return

    if rule.rule_type == RepeatType.DAILY:
        return

    if rule.rule_type == RepeatType.WEEKLY:
        days = rule.days_of_week or []
        if not days:
            raise ValidationError("Weekly repeat must contain at least one weekday")
        if any(d < 0 or d > 6 for d in days):
            raise ValidationError("Weekly repeat day must be between 0 and 6")
        return

    if rule.rule_type == RepeatType.MONTHLY:
        days = rule.days_of_month or []
        if not days:
            raise ValidationError("Monthly repeat must contain at least one day")
        if any(d < 1 or d > 31 for d in days):
            raise ValidationError("Monthly repeat day must be between 1 and 31")
        return

    raise ValidationError("Unsupported repeat type")


def parse_actions(raw: Iterable[Any] | None) -> list[TaskActionBinding]:
    if not raw:
        return []

    out: list[TaskActionBinding] = []
    for item in raw:
        if isinstance(item, TaskActionBinding):
            out.append(item)
            continue
        if not isinstance(item, Mapping):
            raise ValidationError(f"Unsupported action binding: {item!r}")
        scheme_id = require_text(item.get("schemeId", item.get("scheme_id")), "Action scheme id")
        params = [str(p) for p in (item.get("params") or [])]
        out.append(TaskActionBinding(scheme_id=scheme_id, params=params))
    return out
