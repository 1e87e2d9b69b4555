# src/homeloop/households/member_store.py

from __future__ import annotations

import logging
import sqlite3

from ..core.sqlite_store import SQLiteStore, dt_to_str, now_utc

logger = logging.getLogger(__name__)

ROLE_PARENT = "parent"
ROLE_CHILD = "child"
ROLES = (ROLE_PARENT, ROLE_CHILD)


class MemberStore(SQLiteStore):
    """Household memberships: who receives realtime events for a household."""

    table = "household_members"
    columns = {
        "household_id": "TEXT NOT NULL DEFAULT ''",
        "user_id": "TEXT NOT NULL DEFAULT ''",
        "role": "TEXT NOT NULL DEFAULT 'child'",
        "created_at": "TEXT NOT NULL DEFAULT ''",
    }

    def _create_schema(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS household_members (
                household_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                role TEXT NOT NULL DEFAULT 'child',
                created_at TEXT NOT NULL,
                PRIMARY KEY (household_id, user_id)
            )
            """
        )

    def add_member(self, household_id: str, user_id: str, role: str = ROLE_CHILD) -> None:
        role = (role or "").strip().lower()
        if role not in ROLES:
            raise ValueError(f"role must be one of {ROLES}, got {role!r}")
        if not household_id or not user_id:
            raise ValueError("household_id and user_id are required")

        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO household_members(household_id, user_id, role, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(household_id, user_id) DO UPDATE SET role = excluded.role
                """,
                (household_id, user_id, role, dt_to_str(now_utc())),
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug("Member upserted household=%s user=%s role=%s", household_id, user_id, role)

    def remove_member(self, household_id: str, user_id: str) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "DELETE FROM household_members WHERE household_id = ? AND user_id = ?",
                (household_id, user_id),
            )
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    def member_ids(self, household_id: str) -> list[str]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT user_id FROM household_members WHERE household_id = ? ORDER BY created_at ASC",
                (household_id,),
            ).fetchall()
            return [str(r["user_id"]) for r in rows]
        finally:
            conn.close()

    def member_ids_with_role(self, household_id: str, role: str) -> list[str]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT user_id
                FROM household_members
                WHERE household_id = ? AND role = ?
                ORDER BY created_at ASC
                """,
                (household_id, (role or "").strip().lower()),
            ).fetchall()
            return [str(r["user_id"]) for r in rows]
        finally:
            conn.close()
