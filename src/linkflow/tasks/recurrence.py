# src/linkflow/tasks/recurrence.py

"""
Recurrence engine: next occurrence of a repeating task.

Pure date arithmetic on naive calendar dates (local calendar, no timezone).
Weekdays use 0=Sunday .. 6=Saturday.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from dateutil.relativedelta import relativedelta

from .task_models import RepeatRule, RepeatType

# Upper bound for the month-by-month scan; guarantees termination for rules like {30, 31}.
MONTHLY_SCAN_LIMIT = 24


def _sunday_based_weekday(d: date) -> int:
    return d.isoweekday() % 7


def _next_weekly(current: date, days_of_week: list[int] | None) -> date | None:
    days = sorted(set(days_of_week or []))
    if not days:
        return None

    today = _sunday_based_weekday(current)
    for day in days:
        if day > today:
            return current + timedelta(days=day - today)

    # Wrap into next week: rest of this week plus the first rule day.
    return current + timedelta(days=(7 - today) + days[0])


def _valid_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _next_monthly(current: date, days_of_month: list[int] | None) -> date | None:
    days = sorted(set(days_of_month or []))
    if not days:
        return None

    for day in days:
        if day > current.day:
            candidate = _valid_date(current.year, current.month, day)
            if candidate is not None:
                return candidate

    first_of_month = current.replace(day=1)
    for i in range(1, MONTHLY_SCAN_LIMIT + 1):
        month = first_of_month + relativedelta(months=i)
        for day in days:
            candidate = _valid_date(month.year, month.month, day)
            if candidate is not None:
                return candidate

    return None


def next_due_date(current: date, rule: RepeatRule | None) -> date | None:
    """
    Next due date after `current` under `rule`.

    - daily:   current + 1 day
    - weekly:  next rule weekday strictly after current's weekday, else first rule weekday next week
    - monthly: next valid rule day this month, else first valid rule day in following months
               (invalid dates such as Feb 31 are skipped, never clamped)

    Returns None for unknown rule types or when no valid date exists within the scan bound.
    """
    if rule is None:
        return None

    if rule.rule_type == RepeatType.DAILY:
        return current + timedelta(days=1)
    if rule.rule_type == RepeatType.WEEKLY:
        return _next_weekly(current, rule.days_of_week)
    if rule.rule_type == RepeatType.MONTHLY:
        return _next_monthly(current, rule.days_of_month)
    return None


def next_due_date_str(current: str | None, rule: RepeatRule | None) -> str | None:
    """String form used by the store: 'YYYY-MM-DD' in, 'YYYY-MM-DD' or None out."""
    if not current:
        return None
    try:
        parsed = datetime.strptime(current, "%Y-%m-%d").date()
    except ValueError:
        return None
    nxt = next_due_date(parsed, rule)
    return nxt.isoformat() if nxt is not None else None
