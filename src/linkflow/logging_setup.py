# src/linkflow/logging_setup.py

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILE_NAME = "linkflow.log"
LOG_MAX_BYTES = 2 * 1024 * 1024
LOG_BACKUP_COUNT = 3

# Notification backends that plyer drives; they log at DEBUG on every toast.
NOTIFIER_BACKEND_LOGGERS = ("plyer", "dbus", "comtypes")

_SCHEDULER_LOGGER = "linkflow.tasks.task_scheduler"


class _ConsoleNoiseFilter(logging.Filter):
    """
    Console shows what a person at the REPL cares about:
    linkflow logs, the scheduler only from INFO (firings, failures),
    everything else (backends, py.warnings) only from ERROR.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith("linkflow."):
            if record.name.startswith(_SCHEDULER_LOGGER):
                return record.levelno >= logging.INFO
            return True
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/linkflow",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Route all logging to a filtered stderr handler and a size-rotated file.

    The scheduler runs for days in the background, so the file rotates
    (LOG_MAX_BYTES x LOG_BACKUP_COUNT) instead of growing without bound.
    Replaces any handlers already on the root logger; returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(threadName)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = RotatingFileHandler(
        str(log_file),
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    for name in NOTIFIER_BACKEND_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.captureWarnings(True)
    return log_file
