# tests/test_backup.py

from __future__ import annotations

import json
from pathlib import Path

import pytest

from linkflow.core.errors import ValidationError
from linkflow.tasks import task_api
from linkflow.tasks.backup import BACKUP_VERSION, payload_to_snapshot, snapshot_to_payload
from linkflow.tasks.task_models import Reminder


def test_export_then_import_restores_everything(state, tmp_path: Path) -> None:
    lst = state.task_store.create_list("Errands", "🛒")
    task = task_api.create_task(
        state,
        title="Groceries",
        list_id=lst.id,
        detail="eggs",
        due_date="2024-05-01",
        due_time="17:00",
        reminder={"type": "relative", "offsetMinutes": 5},
        repeat_rule={"type": "monthly", "dayOfMonth": [1, 15]},
        actions=[{"schemeId": "scheme_web_search", "params": ["recipes"]}],
    )
    out = task_api.export_backup(state, tmp_path / "backup" / "linkflow.json")

    payload = json.loads(out.read_text("utf-8"))
    assert payload["version"] == BACKUP_VERSION
    assert payload["snapshot"]["tasks"][0]["reminder"] == {"type": "relative", "offsetMinutes": 5}

    before = state.task_store.get_snapshot()
    task_api.delete_task(state, task.id)
    state.task_store.delete_list(lst.id)
    state.ledger.try_mark_fired("task_other", 1, 1)
    state.wakeup._consume()

    restored = task_api.import_backup(state, out)

    assert restored == before
    assert state.ledger.count() == 0
    assert state.wakeup.is_pending()


def test_import_accepts_boolean_reminder() -> None:
    payload = {
        "version": 1,
        "snapshot": {
            "lists": [{"id": "list_today", "name": "All", "icon": ""}],
            "tasks": [{"id": "task_1", "title": "Legacy", "reminder": True, "createdAt": 5.0}],
        },
    }
    snap = payload_to_snapshot(payload)
    assert snap.tasks[0].reminder == Reminder(offset_minutes=10)
    assert snap.tasks[0].created_at == 5.0
    assert snap.schemes == []


def _with_task(**fields) -> dict:
    task = {"id": "task_1", "title": "Imported", **fields}
    return {"version": 1, "snapshot": {"lists": [{"id": "list_today", "name": "All"}], "tasks": [task]}}


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({"version": 2, "snapshot": {"lists": [{"id": "a", "name": "A"}]}}, "Unsupported backup version"),
        ({"version": 1, "snapshot": {"lists": []}}, "lists cannot be empty"),
        ({"version": 1}, "snapshot is missing"),
        ([], "expected a JSON object"),
        ({"version": 1, "snapshot": {"lists": [{"name": "A"}]}}, "missing 'id'"),
        (_with_task(detail=5), "'detail' must be a string or null"),
        (_with_task(dueDate=20240101), "'dueDate' must be a string or null"),
        (_with_task(time=930), "'time' must be a string or null"),
        (_with_task(listId=7), "'listId' must be a string or null"),
        (_with_task(actions=5), "'actions' must be a list or null"),
        (_with_task(createdAt="yesterday"), "'createdAt' must be a number"),
    ],
)
def test_invalid_payloads_are_rejected(payload, message: str) -> None:
    with pytest.raises(ValidationError, match=message):
        payload_to_snapshot(payload)


def test_failed_import_leaves_data_untouched(state, tmp_path: Path) -> None:
    task_api.create_task(state, title="Keep me")
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"version": 99}), "utf-8")

    with pytest.raises(ValidationError):
        task_api.import_backup(state, bad)
    with pytest.raises(ValidationError, match="Failed to read"):
        task_api.import_backup(state, tmp_path / "missing.json")

    assert state.task_store.count_tasks() == 1


def test_payload_shape_is_camel_case(state) -> None:
    task_api.create_task(state, title="x", due_date="2024-01-01", due_time="10:00")
    payload = snapshot_to_payload(state.task_store.get_snapshot())

    task = payload["snapshot"]["tasks"][0]
    assert set(task) >= {"id", "listId", "title", "dueDate", "time", "reminder", "repeat", "createdAt"}
    assert payload["snapshot"]["schemes"][0]["paramType"] in ("string", "number")


def test_import_command_reports_wrongly_typed_fields(state, tmp_path: Path) -> None:
    from linkflow.cli.commands import registry

    task_api.create_task(state, title="Keep me")
    bad = tmp_path / "typed.json"
    bad.write_text(json.dumps(_with_task(detail=5)), "utf-8")

    reply = registry.handle(state, f"/import {bad}")

    assert reply == "Error: Backup data is invalid: task 'detail' must be a string or null"
    assert state.task_store.count_tasks() == 1
