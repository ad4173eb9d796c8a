# src/linkflow/core/errors.py

from __future__ import annotations


class ValidationError(ValueError):
    """Rejected input at the command boundary (bad repeat rule, empty title, ...)."""


class NotFoundError(LookupError):
    """Unknown task/list/scheme id."""


class StoreError(RuntimeError):
    """A SQLite operation failed; the original sqlite3 error is chained."""


class DispatchError(RuntimeError):
    """The notification subsystem could not show a notification."""
