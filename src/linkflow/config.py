# src/linkflow/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- Nothing required at import time; every value has a sane default.
- Consumers receive the Settings object via AppState rather than reading env vars.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "LINKFLOW"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Connector flags ----
    console_enabled: bool
    notifications_enabled: bool

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path

    # ---- Reminder engine tuning ----
    reminder_grace_minutes: int
    fired_retention_days: int
    error_backoff_seconds: int
    max_sleep_seconds: int

    # ---- Notifications ----
    notification_timeout: int
    title_prefix: str

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "linkflow").strip() or "linkflow"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        notifications_enabled = _env_bool(_k("NOTIFICATIONS_ENABLED"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/linkflow"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "linkflow.db")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            notifications_enabled=notifications_enabled,
            data_dir=data_dir,
            db_path=db_path,
            reminder_grace_minutes=max(0, _env_int(_k("REMINDER_GRACE_MINUTES"), 10)),
            fired_retention_days=max(1, _env_int(_k("FIRED_RETENTION_DAYS"), 30)),
            error_backoff_seconds=max(1, _env_int(_k("ERROR_BACKOFF_SECONDS"), 5)),
            max_sleep_seconds=max(1, _env_int(_k("MAX_SLEEP_SECONDS"), 60)),
            notification_timeout=max(1, _env_int(_k("NOTIFICATION_TIMEOUT"), 10)),
            title_prefix=_env(_k("TITLE_PREFIX"), "Task reminder: "),
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
