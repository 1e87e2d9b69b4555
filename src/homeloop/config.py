# src/homeloop/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
- Every knob has a sane default so the engine runs with an empty environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "HOMELOOP"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


# Real environment variables always win over .env values.
load_dotenv(override=False)


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


def _env_mapping(name: str) -> dict[str, str]:
    """
    Parse "key=value" pairs separated by commas or whitespace.

    Used for the member -> Matrix room routing table:
      HOMELOOP_MATRIX_MEMBER_ROOMS="alice=!abc:example.org bob=!def:example.org"
    """
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return {}
    out: dict[str, str] = {}
    for part in raw.replace(",", " ").split():
        key, sep, value = part.partition("=")
        if sep and key.strip() and value.strip():
            out[key.strip()] = value.strip()
    return out


def _clamp(value: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, value))


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Connector flags ----
    console_enabled: bool
    matrix_enabled: bool

    # ---- Matrix (notification transport) ----
    matrix_homeserver: str
    matrix_user_id: str
    matrix_password: str
    matrix_member_rooms: dict[str, str]
    matrix_default_room: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path
    matrix_store_path: Path

    # ---- Recurrence engine ----
    default_due_time: str
    startup_lookback_days: int

    # ---- Scheduler (external trigger) ----
    scheduler_interval_seconds: float
    daily_generation_hour: int
    settlement_day_of_week: int
    settlement_hour: int

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "homeloop").strip() or "homeloop"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        matrix_enabled = _env_bool(_k("MATRIX_ENABLED"), False)

        matrix_homeserver = _env(_k("MATRIX_HOMESERVER")).strip()
        matrix_user_id = _env(_k("MATRIX_USER_ID")).strip()
        matrix_password = _env(_k("MATRIX_PASSWORD")).strip()
        matrix_member_rooms = _env_mapping(_k("MATRIX_MEMBER_ROOMS"))
        matrix_default_room = _env(_k("MATRIX_DEFAULT_ROOM")).strip()

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/homeloop"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "homeloop.sqlite3")
        matrix_store_path = _env_path(_k("MATRIX_STORE_PATH"), data_dir / "matrix_store")

        default_due_time = _env(_k("DEFAULT_DUE_TIME"), "21:00").strip() or "21:00"
        startup_lookback_days = max(0, _env_int(_k("STARTUP_LOOKBACK_DAYS"), 0))

        scheduler_interval_seconds = max(1.0, _env_float(_k("SCHEDULER_INTERVAL_SECONDS"), 60.0))
        # Hours are UTC; day of week uses 0=Sunday like recurrence rules.
        daily_generation_hour = _clamp(_env_int(_k("DAILY_GENERATION_HOUR"), 0), 0, 23)
        settlement_day_of_week = _clamp(_env_int(_k("SETTLEMENT_DAY_OF_WEEK"), 0), 0, 6)
        settlement_hour = _clamp(_env_int(_k("SETTLEMENT_HOUR"), 18), 0, 23)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            matrix_enabled=matrix_enabled,
            matrix_homeserver=matrix_homeserver,
            matrix_user_id=matrix_user_id,
            matrix_password=matrix_password,
            matrix_member_rooms=matrix_member_rooms,
            matrix_default_room=matrix_default_room,
            data_dir=data_dir,
            db_path=db_path,
            matrix_store_path=matrix_store_path,
            default_due_time=default_due_time,
            startup_lookback_days=startup_lookback_days,
            scheduler_interval_seconds=scheduler_interval_seconds,
            daily_generation_hour=daily_generation_hour,
            settlement_day_of_week=settlement_day_of_week,
            settlement_hour=settlement_hour,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
