# src/linkflow/tasks/task_store.py

from __future__ import annotations

import json
import logging
import sqlite3
import time
import uuid
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from ..core.errors import NotFoundError, StoreError, ValidationError
from .db import DEFAULT_LIST_ID, init_database, transaction
from .recurrence import next_due_date_str
from .task_models import (
    DEFAULT_REMINDER_OFFSET_MINUTES,
    AppSnapshot,
    Reminder,
    ReminderRow,
    RepeatRule,
    Task,
    TaskActionBinding,
    TaskList,
    UrlScheme,
)
from .validation import (
    normalize_detail,
    normalize_due_date,
    normalize_due_time,
    parse_actions,
    parse_reminder,
    parse_repeat_rule,
    require_text,
)

logger = logging.getLogger(__name__)

_TASK_COLUMNS = (
    "id, list_id, title, detail, completed, date, time, reminder, reminder_offset_minutes, "
    "repeat_type, repeat_day_of_week, repeat_day_of_month, created_at"
)


class TaskStore:
    """
    SQLite task store: lists, URL schemes, tasks and their action bindings.

    Validation happens here, before anything is written:
    - empty titles/names, bad repeat rules and non-relative reminders raise ValidationError,
    - unknown ids on update/delete raise NotFoundError,
    - sqlite failures surface as StoreError.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "linkflow.db") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        init_database(self._db_path)
        try:
            total = self.count_tasks()
        except StoreError:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    @property
    def db_path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    @staticmethod
    def _days_to_str(days: list[int] | None) -> str | None:
        if days is None:
            return None
        return json.dumps([int(d) for d in days])

    @staticmethod
    def _str_to_days(s: str | None) -> list[int] | None:
        if not s:
            return None
        try:
            val = json.loads(s)
        except ValueError:
            return None
        return [int(d) for d in val] if isinstance(val, list) else None

    @staticmethod
    def _reminder_from_db(enabled: int | None, offset: int | None) -> Reminder | None:
        if not enabled:
            return None
        minutes = DEFAULT_REMINDER_OFFSET_MINUTES if offset is None else int(offset)
        return Reminder(offset_minutes=max(0, minutes))

    def _row_to_task(self, row: sqlite3.Row, actions: list[TaskActionBinding]) -> Task:
        repeat_rule = None
        if row["repeat_type"] is not None:
            repeat_rule = RepeatRule(
                rule_type=str(row["repeat_type"]),
                days_of_week=self._str_to_days(row["repeat_day_of_week"]),
                days_of_month=self._str_to_days(row["repeat_day_of_month"]),
            )

        return Task(
            id=str(row["id"]),
            list_id=row["list_id"],
            title=str(row["title"]),
            detail=row["detail"],
            completed=bool(row["completed"]),
            due_date=row["date"],
            due_time=row["time"],
            reminder=self._reminder_from_db(row["reminder"], row["reminder_offset_minutes"]),
            repeat_rule=repeat_rule,
            actions=actions,
            created_at=float(row["created_at"] or 0.0),
        )

    @staticmethod
    def _load_actions(conn: sqlite3.Connection, task_id: str | None = None) -> dict[str, list[TaskActionBinding]]:
        if task_id is None:
            rows = conn.execute(
                "SELECT task_id, scheme_id, params FROM task_actions ORDER BY task_id ASC, position ASC"
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT task_id, scheme_id, params FROM task_actions WHERE task_id = ? ORDER BY position ASC",
                (task_id,),
            ).fetchall()

        grouped: dict[str, list[TaskActionBinding]] = {}
        for r in rows:
            try:
                params = json.loads(r["params"] or "[]")
            except ValueError:
                params = []
            if not isinstance(params, list):
                params = []
            grouped.setdefault(str(r["task_id"]), []).append(
                TaskActionBinding(scheme_id=str(r["scheme_id"]), params=[str(p) for p in params])
            )
        return grouped

    @staticmethod
    def _persist_actions(conn: sqlite3.Connection, task_id: str, actions: Iterable[TaskActionBinding]) -> None:
        conn.execute("DELETE FROM task_actions WHERE task_id = ?", (task_id,))
        conn.executemany(
            "INSERT INTO task_actions (task_id, position, scheme_id, params) VALUES (?, ?, ?, ?)",
            [
                (task_id, position, a.scheme_id, json.dumps(list(a.params), ensure_ascii=False))
                for position, a in enumerate(actions)
            ],
        )

    @staticmethod
    def _copy_action_bindings(conn: sqlite3.Connection, from_task_id: str, to_task_id: str) -> None:
        conn.execute(
            """
            INSERT INTO task_actions (task_id, position, scheme_id, params)
            SELECT ?, position, scheme_id, params
            FROM task_actions
            WHERE task_id = ?
            """,
            (to_task_id, from_task_id),
        )

    def _insert_task(self, conn: sqlite3.Connection, task: Task) -> None:
        rule = task.repeat_rule
        reminder = task.reminder
        conn.execute(
            """
            INSERT INTO tasks(
                id, list_id, title, detail, completed, date, time,
                reminder, reminder_offset_minutes,
                repeat_type, repeat_day_of_week, repeat_day_of_month,
                created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task.id,
                task.list_id,
                task.title,
                task.detail,
                1 if task.completed else 0,
                task.due_date,
                task.due_time,
                1 if reminder is not None else None,
                reminder.offset_minutes if reminder is not None else None,
                rule.rule_type if rule is not None else None,
                self._days_to_str(rule.days_of_week) if rule is not None else None,
                self._days_to_str(rule.days_of_month) if rule is not None else None,
                task.created_at,
                time.time(),
            ),
        )

    def _fetch_task(self, conn: sqlite3.Connection, task_id: str) -> Task:
        row = conn.execute(f"SELECT {_TASK_COLUMNS} FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if row is None:
            raise NotFoundError("Task not found")
        actions = self._load_actions(conn, task_id).get(task_id, [])
        return self._row_to_task(row, actions)

    @staticmethod
    def _build_task(
        *,
        task_id: str,
        title: str,
        list_id: str | None,
        detail: str | None,
        completed: bool,
        due_date: str | None,
        due_time: str | None,
        reminder: Any,
        repeat_rule: Any,
        actions: Any,
        created_at: float,
    ) -> Task:
        """Validate + normalize raw input into a Task (raises ValidationError)."""
        return Task(
            id=task_id,
            list_id=list_id or None,
            title=require_text(title, "Task title"),
            detail=normalize_detail(detail),
            completed=bool(completed),
            due_date=normalize_due_date(due_date),
            due_time=normalize_due_time(due_time),
            reminder=parse_reminder(reminder),
            repeat_rule=parse_repeat_rule(repeat_rule),
            actions=parse_actions(actions),
            created_at=created_at,
        )

    @staticmethod
    def _new_id(prefix: str) -> str:
        return f"{prefix}_{uuid.uuid4()}"

    # ---- lists ----

    def list_lists(self) -> list[TaskList]:
        with transaction(self._db_path, "query lists") as conn:
            rows = conn.execute("SELECT id, name, icon FROM lists ORDER BY rowid ASC").fetchall()
            return [TaskList(id=r["id"], name=r["name"], icon=r["icon"]) for r in rows]

    def create_list(self, name: str, icon: str = "") -> TaskList:
        item = TaskList(
            id=self._new_id("list"),
            name=require_text(name, "List name"),
            icon=icon.strip() or "🗂️",
        )
        with transaction(self._db_path, "create list") as conn:
            conn.execute("INSERT INTO lists (id, name, icon) VALUES (?, ?, ?)", (item.id, item.name, item.icon))
        logger.debug("List created id=%s name=%s", item.id, item.name)
        return item

    def update_list(self, list_id: str, name: str, icon: str = "") -> TaskList:
        item = TaskList(id=list_id, name=require_text(name, "List name"), icon=icon.strip() or "🗂️")
        with transaction(self._db_path, "update list") as conn:
            cur = conn.execute("UPDATE lists SET name = ?, icon = ? WHERE id = ?", (item.name, item.icon, item.id))
            if cur.rowcount == 0:
                raise NotFoundError("List not found")
        return item

    def delete_list(self, list_id: str) -> None:
        if list_id == DEFAULT_LIST_ID:
            raise ValidationError("Default list cannot be deleted")
        with transaction(self._db_path, "delete list") as conn:
            cur = conn.execute("DELETE FROM lists WHERE id = ?", (list_id,))
            if cur.rowcount == 0:
                raise NotFoundError("List not found")

    # ---- schemes ----

    @staticmethod
    def _normalize_param_type(raw: str | None) -> str:
        return "number" if (raw or "").strip() == "number" else "string"

    def list_schemes(self) -> list[UrlScheme]:
        with transaction(self._db_path, "query schemes") as conn:
            rows = conn.execute(
                "SELECT id, name, icon, template, kind, param_type FROM schemes ORDER BY rowid ASC"
            ).fetchall()
            return [
                UrlScheme(
                    id=r["id"],
                    name=r["name"],
                    icon=r["icon"],
                    template=r["template"],
                    kind=r["kind"],
                    param_type=r["param_type"],
                )
                for r in rows
            ]

    def _build_scheme(self, scheme_id: str, name: str, template: str, icon: str, param_type: str | None) -> UrlScheme:
        if not (name or "").strip() or not (template or "").strip():
            raise ValidationError("Scheme name and template are required")
        return UrlScheme(
            id=scheme_id,
            name=name.strip(),
            icon=(icon or "").strip() or "🔗",
            template=template.strip(),
            # Only URL schemes are supported; any other kind is normalized.
            kind="url",
            param_type=self._normalize_param_type(param_type),
        )

    def create_scheme(self, *, name: str, template: str, icon: str = "", param_type: str | None = None) -> UrlScheme:
        s = self._build_scheme(self._new_id("scheme"), name, template, icon, param_type)
        with transaction(self._db_path, "create scheme") as conn:
            conn.execute(
                "INSERT INTO schemes (id, name, icon, template, kind, param_type) VALUES (?, ?, ?, ?, ?, ?)",
                (s.id, s.name, s.icon, s.template, s.kind, s.param_type),
            )
        return s

    def update_scheme(
        self, scheme_id: str, *, name: str, template: str, icon: str = "", param_type: str | None = None
    ) -> UrlScheme:
        s = self._build_scheme(scheme_id, name, template, icon, param_type)
        with transaction(self._db_path, "update scheme") as conn:
            cur = conn.execute(
                "UPDATE schemes SET name = ?, icon = ?, template = ?, kind = ?, param_type = ? WHERE id = ?",
                (s.name, s.icon, s.template, s.kind, s.param_type, s.id),
            )
            if cur.rowcount == 0:
                raise NotFoundError("Scheme not found")
        return s

    def delete_scheme(self, scheme_id: str) -> None:
        with transaction(self._db_path, "delete scheme") as conn:
            conn.execute("DELETE FROM schemes WHERE id = ?", (scheme_id,))

    # ---- tasks ----

    def count_tasks(self) -> int:
        with transaction(self._db_path, "count tasks") as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)

    def list_tasks(self) -> list[Task]:
        """Incomplete first, then by date and time (undated last), newest first within a slot."""
        with transaction(self._db_path, "query tasks") as conn:
            actions = self._load_actions(conn)
            rows = conn.execute(
                f"""
                SELECT {_TASK_COLUMNS}
                FROM tasks
                ORDER BY completed ASC, date IS NULL ASC, date ASC, time IS NULL ASC, time ASC, rowid DESC
                """
            ).fetchall()
            return [self._row_to_task(r, actions.get(str(r["id"]), [])) for r in rows]

    def get_task(self, task_id: str) -> Task:
        with transaction(self._db_path, "query task") as conn:
            return self._fetch_task(conn, task_id)

    def create_task(
        self,
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
        task = self._build_task(
            task_id=self._new_id("task"),
            title=title,
            list_id=list_id,
            detail=detail,
            completed=False,
            due_date=due_date,
            due_time=due_time,
            reminder=reminder,
            repeat_rule=repeat_rule,
            actions=actions,
            created_at=time.time(),
        )

        with transaction(self._db_path, "create task") as conn:
            self._insert_task(conn, task)
            self._persist_actions(conn, task.id, task.actions)

        logger.debug(
            "Task created id=%s date=%s time=%s reminder=%s repeat=%s",
            task.id,
            task.due_date,
            task.due_time,
            task.reminder,
            task.repeat_rule,
        )
        return task

    def save_task(
        self,
        task_id: str,
        *,
        title: str,
        list_id: str | None = None,
        detail: str | None = None,
        completed: bool = False,
        due_date: str | None = None,
        due_time: str | None = None,
        reminder: Any = None,
        repeat_rule: Any = None,
        actions: Any = None,
    ) -> Task:
        """Replace every editable field of an existing task (actions included)."""
        draft = self._build_task(
            task_id=task_id,
            title=title,
            list_id=list_id,
            detail=detail,
            completed=completed,
            due_date=due_date,
            due_time=due_time,
            reminder=reminder,
            repeat_rule=repeat_rule,
            actions=actions,
            created_at=0.0,
        )
        rule = draft.repeat_rule
        rem = draft.reminder

        with transaction(self._db_path, "update task") as conn:
            cur = conn.execute(
                """
                UPDATE tasks
                SET list_id = ?,
                    title = ?,
                    detail = ?,
                    completed = ?,
                    date = ?,
                    time = ?,
                    reminder = ?,
                    reminder_offset_minutes = ?,
                    repeat_type = ?,
                    repeat_day_of_week = ?,
                    repeat_day_of_month = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    draft.list_id,
                    draft.title,
                    draft.detail,
                    1 if draft.completed else 0,
                    draft.due_date,
                    draft.due_time,
                    1 if rem is not None else None,
                    rem.offset_minutes if rem is not None else None,
                    rule.rule_type if rule is not None else None,
                    self._days_to_str(rule.days_of_week) if rule is not None else None,
                    self._days_to_str(rule.days_of_month) if rule is not None else None,
                    time.time(),
                    task_id,
                ),
            )
            if cur.rowcount == 0:
                raise NotFoundError("Task not found")

            self._persist_actions(conn, task_id, draft.actions)
            saved = self._fetch_task(conn, task_id)

        logger.debug("Task saved id=%s date=%s time=%s", task_id, saved.due_date, saved.due_time)
        return saved

    def toggle_task_completed(self, task_id: str) -> Task:
        """
        Flip completion. On incomplete -> completed with a repeat rule, insert a new
        incomplete sibling due on the rule's next date (same transaction). The completed
        task itself is left as history.
        """
        with transaction(self._db_path, "toggle task completion") as conn:
            task = self._fetch_task(conn, task_id)
            completing = not task.completed

            conn.execute(
                "UPDATE tasks SET completed = ?, updated_at = ? WHERE id = ?",
                (1 if completing else 0, time.time(), task_id),
            )

            if completing:
                next_date = next_due_date_str(task.due_date, task.repeat_rule)
                if next_date is not None:
                    sibling = Task(
                        id=self._new_id("task"),
                        list_id=task.list_id,
                        title=task.title,
                        detail=task.detail,
                        completed=False,
                        due_date=next_date,
                        due_time=task.due_time,
                        reminder=task.reminder,
                        repeat_rule=task.repeat_rule,
                        actions=task.actions,
                        created_at=time.time(),
                    )
                    self._insert_task(conn, sibling)
                    self._copy_action_bindings(conn, task.id, sibling.id)
                    logger.info("Recurring task %s -> next occurrence %s on %s", task.id, sibling.id, next_date)
                elif task.repeat_rule is not None:
                    logger.debug("Task %s: no next occurrence for rule %s", task.id, task.repeat_rule)

            toggled = self._fetch_task(conn, task_id)

        return toggled

    def delete_task(self, task_id: str) -> None:
        with transaction(self._db_path, "delete task") as conn:
            cur = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            if cur.rowcount == 0:
                raise NotFoundError("Task not found")
        logger.debug("Task deleted id=%s", task_id)

    # ---- snapshot (backup) ----

    def get_snapshot(self) -> AppSnapshot:
        return AppSnapshot(lists=self.list_lists(), tasks=self.list_tasks(), schemes=self.list_schemes())

    def replace_snapshot(self, snapshot: AppSnapshot) -> None:
        """
        Replace all lists, schemes and tasks in one transaction.

        The fired-reminder ledger is cleared as well: imported tasks are new rows.
        """
        tasks = [
            self._build_task(
                task_id=t.id,
                title=t.title,
                list_id=t.list_id,
                detail=t.detail,
                completed=t.completed,
                due_date=t.due_date,
                due_time=t.due_time,
                reminder=t.reminder,
                repeat_rule=t.repeat_rule,
                actions=t.actions,
                created_at=t.created_at,
            )
            for t in snapshot.tasks
        ]

        with transaction(self._db_path, "import snapshot") as conn:
            conn.execute("DELETE FROM task_actions")
            conn.execute("DELETE FROM fired_reminders")
            conn.execute("DELETE FROM tasks")
            conn.execute("DELETE FROM schemes")
            conn.execute("DELETE FROM lists")

            conn.executemany(
                "INSERT INTO lists (id, name, icon) VALUES (?, ?, ?)",
                [(x.id, x.name, x.icon) for x in snapshot.lists],
            )
            conn.executemany(
                "INSERT INTO schemes (id, name, icon, template, kind, param_type) VALUES (?, ?, ?, ?, ?, ?)",
                [(s.id, s.name, s.icon, s.template, "url", self._normalize_param_type(s.param_type)) for s in snapshot.schemes],
            )
            for task in tasks:
                self._insert_task(conn, task)
                self._persist_actions(conn, task.id, task.actions)

        logger.info(
            "Snapshot imported lists=%d schemes=%d tasks=%d",
            len(snapshot.lists),
            len(snapshot.schemes),
            len(tasks),
        )

    # ---- scheduler API ----

    def list_active_reminder_candidates(self) -> list[ReminderRow]:
        """
        Incomplete tasks that have a date, a time and an enabled reminder.

        Ordered by creation (created_at, then rowid) so callers can rely on a stable order.
        """
        with transaction(self._db_path, "query reminder candidates") as conn:
            rows = conn.execute(
                """
                SELECT t.id, t.title, t.detail, t.date, t.time, t.reminder, t.reminder_offset_minutes,
                       t.created_at, l.name AS list_name
                FROM tasks t
                LEFT JOIN lists l ON l.id = t.list_id
                WHERE t.completed = 0
                  AND t.date IS NOT NULL
                  AND t.time IS NOT NULL
                  AND t.reminder = 1
                ORDER BY t.created_at ASC, t.rowid ASC
                """
            ).fetchall()

        out: list[ReminderRow] = []
        for r in rows:
            offset = r["reminder_offset_minutes"]
            out.append(
                ReminderRow(
                    task_id=str(r["id"]),
                    title=str(r["title"]),
                    detail=r["detail"],
                    list_name=r["list_name"],
                    due_date=str(r["date"]),
                    due_time=str(r["time"]),
                    reminder_enabled=bool(r["reminder"]),
                    offset_minutes=max(0, DEFAULT_REMINDER_OFFSET_MINUTES if offset is None else int(offset)),
                    created_at=float(r["created_at"] or 0.0),
                )
            )
        return out
