# src/linkflow/tasks/fired_ledger.py

from __future__ import annotations

import logging
from pathlib import Path

from .db import init_database, transaction

logger = logging.getLogger(__name__)


class FiredReminderLedger:
    """
    Append-only record of reminders that already produced a notification.

    Key: (task_id, remind_at_ms). A task fires again only when its remind instant
    changes (edited date/time/offset). Rows are never updated; they disappear only
    through purge_older_than().

    try_mark_fired() is INSERT OR IGNORE, so the storage layer decides the winner
    when several evaluation paths race on the same key.
    """

    def __init__(self, db_path: str | Path = "linkflow.db") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        init_database(self._db_path)

    def is_fired(self, task_id: str, remind_at_ms: int) -> bool:
        with transaction(self._db_path, "check fired reminder") as conn:
            (exists,) = conn.execute(
                "SELECT EXISTS(SELECT 1 FROM fired_reminders WHERE task_id = ? AND remind_at = ?)",
                (task_id, int(remind_at_ms)),
            ).fetchone()
            return bool(exists)

    def try_mark_fired(self, task_id: str, remind_at_ms: int, fired_at_ms: int) -> bool:
        """
        Claim a firing.

        Returns True iff this call inserted the row (the caller owns the notification).
        """
        with transaction(self._db_path, "record fired reminder") as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO fired_reminders (task_id, remind_at, fired_at) VALUES (?, ?, ?)",
                (task_id, int(remind_at_ms), int(fired_at_ms)),
            )
            claimed = cur.rowcount == 1

        if not claimed:
            logger.debug("Reminder already claimed task_id=%s remind_at=%s", task_id, remind_at_ms)
        return claimed

    def purge_older_than(self, threshold_ms: int) -> int:
        """Delete records fired before `threshold_ms`. Returns the number of rows removed."""
        with transaction(self._db_path, "cleanup fired reminders") as conn:
            cur = conn.execute("DELETE FROM fired_reminders WHERE fired_at < ?", (int(threshold_ms),))
            removed = max(0, cur.rowcount)

        if removed:
            logger.debug("Purged %d fired reminder records older than %s", removed, threshold_ms)
        return removed

    def count(self) -> int:
        with transaction(self._db_path, "count fired reminders") as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM fired_reminders").fetchone()
            return int(n)
