# src/linkflow/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class RepeatType(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class ReminderKind(StrEnum):
    # Only relative reminders exist; anything else is rejected at the boundary.
    RELATIVE = "relative"


DEFAULT_REMINDER_OFFSET_MINUTES = 10


@dataclass(frozen=True, slots=True)
class Reminder:
    offset_minutes: int = DEFAULT_REMINDER_OFFSET_MINUTES
    kind: str = ReminderKind.RELATIVE


@dataclass(frozen=True, slots=True)
class RepeatRule:
    """
    Repeat rule as stored.

    rule_type is kept as a plain string: rows written by older builds or
    hand-edited backups may carry a type the recurrence engine does not know.
    days_of_week: 0=Sunday .. 6=Saturday. days_of_month: 1..31.
    """

    rule_type: str
    days_of_week: list[int] | None = None
    days_of_month: list[int] | None = None


@dataclass(frozen=True, slots=True)
class TaskActionBinding:
    scheme_id: str
    params: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class TaskList:
    id: str
    name: str
    icon: str


@dataclass(frozen=True, slots=True)
class UrlScheme:
    id: str
    name: str
    icon: str
    template: str
    kind: str
    param_type: str


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    list_id: str | None
    title: str
    detail: str | None
    completed: bool
    due_date: str | None  # YYYY-MM-DD
    due_time: str | None  # HH:MM (local)
    reminder: Reminder | None
    repeat_rule: RepeatRule | None
    actions: list[TaskActionBinding]
    created_at: float


@dataclass(frozen=True, slots=True)
class AppSnapshot:
    lists: list[TaskList]
    tasks: list[Task]
    schemes: list[UrlScheme]


@dataclass(frozen=True, slots=True)
class ReminderRow:
    """One incomplete task with date, time and an enabled reminder, as read by the scheduler."""

    task_id: str
    title: str
    detail: str | None
    list_name: str | None
    due_date: str
    due_time: str
    reminder_enabled: bool
    offset_minutes: int
    created_at: float


@dataclass(frozen=True, slots=True)
class ReminderCandidate:
    task_id: str
    title: str
    detail: str | None
    list_name: str | None
    due_date: str
    due_time: str
    remind_at_ms: int
    created_at: float


@dataclass(frozen=True, slots=True)
class DebugNextReminder:
    task_id: str
    task_title: str
    remind_at: int
    due_date: str
    time: str
    now: int
    delay_ms: int
