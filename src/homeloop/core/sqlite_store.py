# src/homeloop/core/sqlite_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class SQLiteStore:
    """
    Base for the SQLite-backed stores.

    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection
    """

    table: str = ""
    # column name -> declaration used when an older DB is missing it
    columns: dict[str, str] = {}

    def __init__(self, db_path: str | Path = "homeloop.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("%s ready db=%s", type(self).__name__, self._db_path)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")

    def _create_schema(self, cur: sqlite3.Cursor) -> None:
        raise NotImplementedError

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            self._create_schema(cur)

            cur.execute(f"PRAGMA table_info({self.table})")
            existing = {row["name"] for row in cur.fetchall()}
            for name, decl in self.columns.items():
                if name in existing:
                    continue
                cur.execute(f"ALTER TABLE {self.table} ADD COLUMN {name} {decl}")
                logger.info("%s migration: added column %s", type(self).__name__, name)

            conn.commit()
        finally:
            conn.close()

    def count_rows(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()
            return int(n)
        finally:
            conn.close()


# ---- value codecs shared by the stores ----

def now_utc() -> datetime:
    return datetime.now(UTC)


def dt_to_str(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def str_to_dt(raw: str | None) -> datetime | None:
    if not raw:
        return None
    value = datetime.fromisoformat(raw)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


def date_to_str(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


def str_to_date(raw: str | None) -> date | None:
    return date.fromisoformat(raw) if raw else None


def json_to_str(value: Any, default: str = "{}") -> str:
    if not value:
        return default
    try:
        return json.dumps(value, ensure_ascii=False)
    except Exception:
        logger.exception("Failed to JSON-encode value; storing %s.", default)
        return default


def str_to_json(raw: str | None, default: Any) -> Any:
    if not raw:
        return default
    try:
        val = json.loads(raw)
    except Exception:
        return default
    return val if isinstance(val, type(default)) else default
