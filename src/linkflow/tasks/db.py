# src/linkflow/tasks/db.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
from collections.abc import Iterator
from pathlib import Path

from ..core.errors import StoreError
from .task_models import TaskList, UrlScheme

logger = logging.getLogger(__name__)

DEFAULT_LIST_ID = "list_today"

SCHEMA = """
CREATE TABLE IF NOT EXISTS lists (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    icon TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS schemes (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    icon TEXT NOT NULL,
    template TEXT NOT NULL,
    kind TEXT NOT NULL,
    param_type TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    list_id TEXT NULL,
    title TEXT NOT NULL,
    detail TEXT NULL,
    completed INTEGER NOT NULL DEFAULT 0,
    date TEXT NULL,
    time TEXT NULL,
    reminder INTEGER NULL,
    reminder_offset_minutes INTEGER NULL,
    repeat_type TEXT NULL,
    repeat_day_of_week TEXT NULL,
    repeat_day_of_month TEXT NULL,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL,
    FOREIGN KEY(list_id) REFERENCES lists(id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS task_actions (
    task_id TEXT NOT NULL,
    position INTEGER NOT NULL,
    scheme_id TEXT NOT NULL,
    params TEXT NOT NULL DEFAULT '[]',
    PRIMARY KEY(task_id, position),
    FOREIGN KEY(task_id) REFERENCES tasks(id) ON DELETE CASCADE,
    FOREIGN KEY(scheme_id) REFERENCES schemes(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS fired_reminders (
    task_id TEXT NOT NULL,
    remind_at INTEGER NOT NULL,
    fired_at INTEGER NOT NULL,
    PRIMARY KEY(task_id, remind_at)
);

CREATE INDEX IF NOT EXISTS idx_tasks_reminder ON tasks(completed, reminder);
CREATE INDEX IF NOT EXISTS idx_fired_reminders_fired_at ON fired_reminders(fired_at);
"""


def default_lists() -> list[TaskList]:
    return [
        TaskList(id=DEFAULT_LIST_ID, name="All tasks", icon="📋"),
        TaskList(id="list_work", name="Work", icon="💼"),
        TaskList(id="list_life", name="Life", icon="🏡"),
    ]


def default_schemes() -> list[UrlScheme]:
    return [
        UrlScheme(
            id="scheme_mail",
            name="Mail",
            icon="✉️",
            template="mailto:{param}?subject={param}",
            kind="url",
            param_type="string",
        ),
        UrlScheme(
            id="scheme_tel",
            name="Phone",
            icon="📞",
            template="tel://{param}",
            kind="url",
            param_type="number",
        ),
        UrlScheme(
            id="scheme_maps",
            name="Maps",
            icon="🗺️",
            template="geo:0,0?q={param}",
            kind="url",
            param_type="string",
        ),
        UrlScheme(
            id="scheme_web_search",
            name="Web search",
            icon="🔎",
            template="https://duckduckgo.com/?q={param}",
            kind="url",
            param_type="string",
        ),
    ]


def open_connection(db_path: str | Path) -> sqlite3.Connection:
    """Short-lived connection: every store operation opens and closes its own."""
    conn = sqlite3.connect(str(db_path), timeout=30.0)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    with contextlib.suppress(sqlite3.Error):
        conn.execute("PRAGMA journal_mode=WAL")
    return conn


@contextlib.contextmanager
def transaction(db_path: str | Path, what: str) -> Iterator[sqlite3.Connection]:
    """
    Open a connection, yield it, commit on success.

    sqlite3 errors become StoreError("Failed to <what>: ...");
    any other exception propagates and the uncommitted work is discarded on close.
    """
    try:
        conn = open_connection(db_path)
    except sqlite3.Error as err:
        raise StoreError(f"Failed to open database: {err}") from err

    try:
        yield conn
        conn.commit()
    except sqlite3.Error as err:
        raise StoreError(f"Failed to {what}: {err}") from err
    finally:
        conn.close()


def init_database(db_path: str | Path) -> None:
    """Create tables if missing and seed default lists/schemes into an empty store."""
    with transaction(db_path, "initialize schema") as conn:
        conn.executescript(SCHEMA)

        conn.execute("UPDATE schemes SET kind = 'url' WHERE kind IS NULL OR kind != 'url'")

        (n_lists,) = conn.execute("SELECT COUNT(*) FROM lists").fetchone()
        if int(n_lists) == 0:
            conn.executemany(
                "INSERT OR IGNORE INTO lists (id, name, icon) VALUES (?, ?, ?)",
                [(x.id, x.name, x.icon) for x in default_lists()],
            )
            logger.info("Seeded %d default lists", len(default_lists()))

        (n_schemes,) = conn.execute("SELECT COUNT(*) FROM schemes").fetchone()
        if int(n_schemes) == 0:
            conn.executemany(
                "INSERT OR IGNORE INTO schemes (id, name, icon, template, kind, param_type) VALUES (?, ?, ?, ?, ?, ?)",
                [(s.id, s.name, s.icon, s.template, s.kind, s.param_type) for s in default_schemes()],
            )
            logger.info("Seeded %d default schemes", len(default_schemes()))
