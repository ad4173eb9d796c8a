# tests/test_task_store.py

from __future__ import annotations

from pathlib import Path

import pytest

from linkflow.core.errors import NotFoundError, ValidationError
from linkflow.tasks.task_models import Reminder, RepeatRule, TaskActionBinding
from linkflow.tasks.task_store import TaskStore


def test_defaults_are_seeded_once(tmp_path: Path) -> None:
    db = tmp_path / "tasks.sqlite3"
    store = TaskStore(db)
    TaskStore(db)

    assert [x.id for x in store.list_lists()] == ["list_today", "list_work", "list_life"]
    assert {s.id for s in store.list_schemes()} >= {"scheme_mail", "scheme_tel"}


def test_create_task_normalizes_input(tmp_path: Path) -> None:
    store = TaskStore(tmp_path / "tasks.sqlite3")

    task = store.create_task(
        title="  Buy milk  ",
        list_id="list_life",
        detail="   ",
        due_date="2024-05-01",
        due_time="9:05",
        reminder=True,
    )

    assert task.id.startswith("task_")
    assert task.title == "Buy milk"
    assert task.detail is None
    assert task.due_time == "09:05"
    assert task.reminder == Reminder(offset_minutes=10)
    assert store.get_task(task.id) == task


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"title": "   "}, "Task title is required"),
        ({"title": "x", "due_date": "2024-02-30"}, "Invalid due date"),
        ({"title": "x", "due_time": "24:00"}, "Invalid due time"),
        ({"title": "x", "due_date": 20240101}, "Invalid due date"),
        ({"title": "x", "detail": 5}, "Invalid detail"),
        ({"title": "x", "repeat_rule": {"type": "weekly", "dayOfWeek": []}}, "at least one weekday"),
        ({"title": "x", "repeat_rule": {"type": "weekly", "dayOfWeek": [7]}}, "between 0 and 6"),
        ({"title": "x", "repeat_rule": {"type": "monthly", "dayOfMonth": [0]}}, "between 1 and 31"),
        ({"title": "x", "repeat_rule": {"type": "yearly"}}, "Unsupported repeat type"),
        ({"title": "x", "reminder": {"type": "absolute", "offsetMinutes": 5}}, "Only relative reminders"),
    ],
)
def test_create_task_rejects_invalid_input(tmp_path: Path, kwargs: dict, message: str) -> None:
    store = TaskStore(tmp_path / "tasks.sqlite3")
    with pytest.raises(ValidationError, match=message):
        store.create_task(**kwargs)
    assert store.count_tasks() == 0


def test_negative_reminder_offset_clamps_to_zero(tmp_path: Path) -> None:
    store = TaskStore(tmp_path / "tasks.sqlite3")
    task = store.create_task(title="x", reminder={"type": "relative", "offsetMinutes": -15})
    assert task.reminder == Reminder(offset_minutes=0)


def test_toggle_recurring_task_creates_next_occurrence(tmp_path: Path) -> None:
    store = TaskStore(tmp_path / "tasks.sqlite3")
    task = store.create_task(
        title="Gym",
        list_id="list_life",
        detail="leg day",
        due_date="2024-01-03",
        due_time="18:00",
        reminder={"type": "relative", "offsetMinutes": 30},
        repeat_rule={"type": "weekly", "dayOfWeek": [1, 3]},
        actions=[{"schemeId": "scheme_maps", "params": ["City gym"]}],
    )

    toggled = store.toggle_task_completed(task.id)
    assert toggled.completed is True

    tasks = store.list_tasks()
    assert len(tasks) == 2
    sibling = next(t for t in tasks if t.id != task.id)

    assert sibling.completed is False
    assert sibling.due_date == "2024-01-08"
    assert sibling.due_time == "18:00"
    assert sibling.title == "Gym"
    assert sibling.detail == "leg day"
    assert sibling.list_id == "list_life"
    assert sibling.reminder == Reminder(offset_minutes=30)
    assert sibling.repeat_rule == RepeatRule("weekly", days_of_week=[1, 3])
    assert sibling.actions == [TaskActionBinding("scheme_maps", ["City gym"])]

    # The completed occurrence stays as history.
    assert store.get_task(task.id).completed is True


def test_toggle_without_next_occurrence_creates_nothing(tmp_path: Path) -> None:
    store = TaskStore(tmp_path / "tasks.sqlite3")
    plain = store.create_task(title="One-off", due_date="2024-01-03")
    undated = store.create_task(title="Someday", repeat_rule={"type": "daily"})

    store.toggle_task_completed(plain.id)
    store.toggle_task_completed(undated.id)
    assert store.count_tasks() == 2

    # Re-opening never spawns a sibling.
    reopened = store.toggle_task_completed(plain.id)
    assert reopened.completed is False
    assert store.count_tasks() == 2


def test_reminder_candidates_only_include_active_reminders(tmp_path: Path) -> None:
    store = TaskStore(tmp_path / "tasks.sqlite3")
    keep = store.create_task(title="keep", list_id="list_work", due_date="2024-05-01", due_time="12:00", reminder=True)
    store.create_task(title="no reminder", due_date="2024-05-01", due_time="12:00")
    store.create_task(title="no time", due_date="2024-05-01", reminder=True)
    done = store.create_task(title="done", due_date="2024-05-01", due_time="12:00", reminder=True)
    store.toggle_task_completed(done.id)

    rows = store.list_active_reminder_candidates()
    assert [r.task_id for r in rows] == [keep.id]
    assert rows[0].list_name == "Work"
    assert rows[0].offset_minutes == 10


def test_save_task_replaces_fields(tmp_path: Path) -> None:
    store = TaskStore(tmp_path / "tasks.sqlite3")
    task = store.create_task(title="Draft", reminder=True, actions=[{"schemeId": "scheme_tel", "params": ["123"]}])

    saved = store.save_task(task.id, title="Final", due_date="2024-06-01", due_time="08:00")

    assert saved.title == "Final"
    assert saved.reminder is None
    assert saved.actions == []
    assert saved.created_at == task.created_at


def test_missing_task_and_protected_list(tmp_path: Path) -> None:
    store = TaskStore(tmp_path / "tasks.sqlite3")

    with pytest.raises(NotFoundError):
        store.get_task("task_missing")
    with pytest.raises(NotFoundError):
        store.delete_task("task_missing")
    with pytest.raises(NotFoundError):
        store.toggle_task_completed("task_missing")
    with pytest.raises(ValidationError):
        store.delete_list("list_today")


def test_deleting_a_list_keeps_its_tasks(tmp_path: Path) -> None:
    store = TaskStore(tmp_path / "tasks.sqlite3")
    lst = store.create_list("Errands")
    task = store.create_task(title="Post office", list_id=lst.id)

    store.delete_list(lst.id)

    assert store.get_task(task.id).list_id is None


def test_schemes_crud(tmp_path: Path) -> None:
    store = TaskStore(tmp_path / "tasks.sqlite3")
    s = store.create_scheme(name="Music", template="music://search?q={param}", param_type="weird")
    assert s.kind == "url"
    assert s.param_type == "string"

    updated = store.update_scheme(s.id, name="Music app", template="music://q={param}", param_type="number")
    assert updated.param_type == "number"

    with pytest.raises(ValidationError):
        store.create_scheme(name=" ", template="x")

    store.delete_scheme(s.id)
    assert s.id not in {x.id for x in store.list_schemes()}
