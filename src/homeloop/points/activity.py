# src/homeloop/points/activity.py

from __future__ import annotations

import logging
import sqlite3
from typing import Any

from ..core.sqlite_store import SQLiteStore, dt_to_str, json_to_str, now_utc, str_to_json
from .points_models import ActivityEntry, ActivityType

logger = logging.getLogger(__name__)


class ActivityLogService(SQLiteStore):
    """Per-member activity feed ("Weekly goal completed", ...)."""

    table = "activity_events"
    columns = {
        "member_id": "TEXT NOT NULL DEFAULT ''",
        "type": "TEXT NOT NULL DEFAULT ''",
        "detail": "TEXT",
        "title": "TEXT NOT NULL DEFAULT ''",
        "description": "TEXT",
        "template_key": "TEXT",
        "template_params": "TEXT NOT NULL DEFAULT '{}'",
        "metadata": "TEXT NOT NULL DEFAULT '{}'",
        "created_at": "TEXT NOT NULL DEFAULT ''",
    }

    def _create_schema(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS activity_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                member_id TEXT NOT NULL,
                type TEXT NOT NULL,
                detail TEXT,
                title TEXT NOT NULL,
                description TEXT,
                template_key TEXT,
                template_params TEXT NOT NULL DEFAULT '{}',
                metadata TEXT NOT NULL DEFAULT '{}',
                created_at TEXT NOT NULL
            )
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_activity_member ON activity_events(member_id, created_at)")

    async def record_event(self, entry: ActivityEntry) -> int:
        if not entry.member_id:
            raise ValueError("member_id is required")
        if not entry.title:
            raise ValueError("title is required")

        logger.debug(
            "Recording activity event member=%s type=%s detail=%s", entry.member_id, entry.type, entry.detail
        )

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO activity_events(
                    member_id, type, detail, title, description,
                    template_key, template_params, metadata, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.member_id,
                    str(entry.type),
                    entry.detail,
                    entry.title,
                    entry.description,
                    entry.template_key,
                    json_to_str(entry.template_params),
                    json_to_str(entry.metadata),
                    dt_to_str(now_utc()),
                ),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for activity insert")
            return int(rowid)
        finally:
            conn.close()

    def list_events(self, member_id: str, limit: int = 50) -> list[dict[str, Any]]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT *
                FROM activity_events
                WHERE member_id = ?
                ORDER BY id DESC
                    LIMIT ?
                """,
                (member_id, int(limit)),
            ).fetchall()
            out: list[dict[str, Any]] = []
            for r in rows:
                try:
                    kind = ActivityType(r["type"])
                except ValueError:
                    kind = r["type"]
                out.append(
                    {
                        "id": int(r["id"]),
                        "type": kind,
                        "detail": r["detail"],
                        "title": r["title"],
                        "description": r["description"],
                        "template_key": r["template_key"],
                        "template_params": str_to_json(r["template_params"], {}),
                        "metadata": str_to_json(r["metadata"], {}),
                        "created_at": r["created_at"],
                    }
                )
            return out
        finally:
            conn.close()
