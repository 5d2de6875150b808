# src/taskdash/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time (the hosted backend is only contacted
  when TASKDASH_BACKEND=rest).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKDASH"

BACKENDS = ("sqlite", "rest")

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
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
    console_enabled: bool

    # ---- Backend selection ----
    backend: str
    tasks_table: str

    # ---- Hosted backend ----
    supabase_url: str
    supabase_anon_key: str | None
    http_timeout_seconds: float
    poll_interval_seconds: float

    # ---- Local backend ----
    data_dir: Path
    tasks_db_path: Path
    local_user_id: str
    local_user_email: str

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskdash")
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        backend = _env(_k("BACKEND"), "sqlite").strip().lower()
        if backend not in BACKENDS:
            backend = "sqlite"
        tasks_table = _env(_k("TASKS_TABLE"), "tasks").strip() or "tasks"

        supabase_url = (_first_env(_k("SUPABASE_URL"), "SUPABASE_URL", default="") or "").strip()
        supabase_anon_key = _first_env(_k("SUPABASE_ANON_KEY"), "SUPABASE_ANON_KEY", default=None)

        # Keep polling sane: faster than 0.5s only hammers the backend.
        http_timeout_seconds = max(1.0, _env_float(_k("HTTP_TIMEOUT_SECONDS"), 10.0))
        poll_interval_seconds = max(0.5, _env_float(_k("POLL_INTERVAL_SECONDS"), 3.0))

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskdash"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")
        local_user_id = _env(_k("LOCAL_USER_ID"), "local-user").strip() or "local-user"
        local_user_email = _env(_k("LOCAL_USER_EMAIL"), "local@localhost").strip()

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            backend=backend,
            tasks_table=tasks_table,
            supabase_url=supabase_url,
            supabase_anon_key=supabase_anon_key,
            http_timeout_seconds=http_timeout_seconds,
            poll_interval_seconds=poll_interval_seconds,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            local_user_id=local_user_id,
            local_user_email=local_user_email,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
