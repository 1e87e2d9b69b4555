# src/homeloop/points/ledger.py

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from ..core.ports import NotificationDispatcher
from ..core.sqlite_store import SQLiteStore, dt_to_str, json_to_str, now_utc, str_to_dt, str_to_json
from ..notifications.templates import build_points_awarded_notification
from .points_models import AwardRequest, PointsEvent

logger = logging.getLogger(__name__)


class PointsLedgerService(SQLiteStore):
    """
    Points ledger: an append-only event log plus a running balance per member.

    award_points(notify=True) sends a generic "+N points" notification through
    the optional notifier; callers that send their own notification pass notify=False.
    """

    table = "points_events"
    columns = {
        "household_id": "TEXT NOT NULL DEFAULT ''",
        "member_id": "TEXT NOT NULL DEFAULT ''",
        "amount": "INTEGER NOT NULL DEFAULT 0",
        "source": "TEXT NOT NULL DEFAULT ''",
        "description": "TEXT NOT NULL DEFAULT ''",
        "metadata": "TEXT NOT NULL DEFAULT '{}'",
        "created_at": "TEXT NOT NULL DEFAULT ''",
    }

    def __init__(self, db_path: str | Path, notifier: NotificationDispatcher | None = None) -> None:
        self._notifier = notifier
        super().__init__(db_path)

    def _create_schema(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS points_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                household_id TEXT NOT NULL,
                member_id TEXT NOT NULL,
                amount INTEGER NOT NULL,
                source TEXT NOT NULL,
                description TEXT NOT NULL,
                metadata TEXT NOT NULL DEFAULT '{}',
                created_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS member_points (
                household_id TEXT NOT NULL,
                member_id TEXT NOT NULL,
                balance INTEGER NOT NULL DEFAULT 0,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (household_id, member_id)
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_points_member ON points_events(household_id, member_id, created_at)"
        )

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> PointsEvent:
        return PointsEvent(
            id=int(row["id"]),
            household_id=str(row["household_id"]),
            member_id=str(row["member_id"]),
            amount=int(row["amount"]),
            source=str(row["source"]),
            description=str(row["description"] or ""),
            created_at=str_to_dt(row["created_at"]) or now_utc(),
            metadata=str_to_json(row["metadata"], {}),
        )

    async def award_points(self, request: AwardRequest, *, notify: bool = True) -> PointsEvent:
        if int(request.amount) <= 0:
            raise ValueError(f"award amount must be positive, got {request.amount}")

        logger.info(
            "Awarding points household=%s member=%s amount=%s source=%s",
            request.household_id,
            request.member_id,
            request.amount,
            request.source,
        )

        now = dt_to_str(now_utc())
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO points_events(household_id, member_id, amount, source, description, metadata, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    request.household_id,
                    request.member_id,
                    int(request.amount),
                    str(request.source),
                    request.description,
                    json_to_str(request.metadata),
                    now,
                ),
            )
            event_id = cur.lastrowid
            cur.execute(
                """
                INSERT INTO member_points(household_id, member_id, balance, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(household_id, member_id)
                DO UPDATE SET balance = balance + excluded.balance, updated_at = excluded.updated_at
                """,
                (request.household_id, request.member_id, int(request.amount), now),
            )
            conn.commit()
            if event_id is None:
                raise RuntimeError("SQLite did not return lastrowid for points event insert")
            row = conn.execute("SELECT * FROM points_events WHERE id = ?", (int(event_id),)).fetchone()
        finally:
            conn.close()

        event = self._row_to_event(row)

        if notify and self._notifier is not None:
            try:
                await self._notifier.send_to_user(
                    request.member_id,
                    build_points_awarded_notification(int(request.amount), request.description),
                )
            except Exception:
                logger.exception("Points notification failed member=%s", request.member_id)

        return event

    def get_balance(self, household_id: str, member_id: str) -> int:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT balance FROM member_points WHERE household_id = ? AND member_id = ?",
                (household_id, member_id),
            ).fetchone()
            return int(row["balance"]) if row else 0
        finally:
            conn.close()

    def list_events(self, household_id: str, member_id: str, limit: int = 50) -> list[PointsEvent]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT *
                FROM points_events
                WHERE household_id = ? AND member_id = ?
                ORDER BY id DESC
                    LIMIT ?
                """,
                (household_id, member_id, int(limit)),
            ).fetchall()
            return [self._row_to_event(r) for r in rows]
        finally:
            conn.close()
