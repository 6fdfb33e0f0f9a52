# src/tasktree/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
- No remote URL means the in-memory offline store is used.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKTREE"

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

    # ---- Connector flags ----
    console_enabled: bool

    # ---- Session ----
    user_id: str
    strict: bool
    theme: str

    # ---- Remote store ----
    remote_url: str | None
    remote_token: str | None
    remote_timeout_seconds: float

    # ---- Sync timing ----
    sync_debounce_seconds: float
    transition_delay_seconds: float

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    cache_db_path: Path

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "tasktree").strip() or "tasktree"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        user_id = _env(_k("USER_ID"), "local").strip() or "local"
        strict = _env_bool(_k("STRICT"), False)
        theme = _env(_k("THEME"), "light").strip().lower()
        if theme not in {"light", "dark"}:
            theme = "light"

        remote_url = _env(_k("REMOTE_URL")).strip() or None
        remote_token = _env(_k("REMOTE_TOKEN")).strip() or None
        remote_timeout_seconds = _env_float(_k("REMOTE_TIMEOUT_SECONDS"), 10.0)

        # Negative delays make no sense; clamp to zero.
        sync_debounce_seconds = max(0.0, _env_float(_k("SYNC_DEBOUNCE_SECONDS"), 2.0))
        transition_delay_seconds = max(0.0, _env_float(_k("TRANSITION_DELAY_SECONDS"), 0.5))

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/tasktree"))
        cache_db_path = _env_path(_k("CACHE_DB_PATH"), data_dir / "cache.sqlite3")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            user_id=user_id,
            strict=strict,
            theme=theme,
            remote_url=remote_url,
            remote_token=remote_token,
            remote_timeout_seconds=remote_timeout_seconds,
            sync_debounce_seconds=sync_debounce_seconds,
            transition_delay_seconds=transition_delay_seconds,
            data_dir=data_dir,
            cache_db_path=cache_db_path,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
