# src/homeloop/goals/goal_store.py

from __future__ import annotations

import logging
import sqlite3
from datetime import date

from ..core.sqlite_store import (
    SQLiteStore,
    date_to_str,
    dt_to_str,
    json_to_str,
    now_utc,
    str_to_date,
    str_to_dt,
    str_to_json,
)
from ..tasks.recurrence import as_utc_date
from .goal_models import ContributionGoal, Deduction

logger = logging.getLogger(__name__)


class GoalStore(SQLiteStore):
    """
    SQLite store for weekly contribution goals.

    One goal per (household, member, week) is enforced with a unique index.
    Deductions live in a JSON column and are appended in recording order.
    """

    table = "contribution_goals"
    columns = {
        "household_id": "TEXT NOT NULL DEFAULT ''",
        "member_id": "TEXT NOT NULL DEFAULT ''",
        "week_start_date": "TEXT NOT NULL DEFAULT ''",
        "title": "TEXT NOT NULL DEFAULT ''",
        "description": "TEXT",
        "max_points": "INTEGER NOT NULL DEFAULT 1",
        "recurring": "INTEGER NOT NULL DEFAULT 0",
        "deductions": "TEXT NOT NULL DEFAULT '[]'",
        "created_at": "TEXT NOT NULL DEFAULT ''",
        "updated_at": "TEXT NOT NULL DEFAULT ''",
    }

    def _create_schema(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS contribution_goals (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                household_id TEXT NOT NULL,
                member_id TEXT NOT NULL,
                week_start_date TEXT NOT NULL,
                title TEXT NOT NULL,
                description TEXT,
                max_points INTEGER NOT NULL,
                recurring INTEGER NOT NULL DEFAULT 0,
                deductions TEXT NOT NULL DEFAULT '[]',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_goals_member_week "
            "ON contribution_goals(household_id, member_id, week_start_date)"
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_goals_week ON contribution_goals(week_start_date)")

    @staticmethod
    def _row_to_goal(row: sqlite3.Row) -> ContributionGoal:
        deductions = tuple(
            Deduction.from_dict(d) for d in str_to_json(row["deductions"], []) if isinstance(d, dict)
        )
        return ContributionGoal(
            id=int(row["id"]),
            household_id=str(row["household_id"]),
            member_id=str(row["member_id"]),
            week_start_date=str_to_date(row["week_start_date"]) or date.min,
            title=str(row["title"] or ""),
            max_points=int(row["max_points"]),
            deductions=deductions,
            recurring=bool(row["recurring"]),
            description=row["description"],
            created_at=str_to_dt(row["created_at"]),
        )

    # ---- public API ----

    def count_goals(self) -> int:
        return self.count_rows()

    def create_for_week(
        self,
        *,
        household_id: str,
        member_id: str,
        title: str,
        max_points: int,
        week_start: date,
        recurring: bool = False,
        description: str | None = None,
    ) -> ContributionGoal:
        if not household_id or not member_id:
            raise ValueError("household_id and member_id are required")
        if not title or not title.strip():
            raise ValueError("title is required")
        if int(max_points) < 1:
            raise ValueError(f"max_points must be >= 1, got {max_points}")

        now = dt_to_str(now_utc())
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO contribution_goals(
                    household_id, member_id, week_start_date, title, description,
                    max_points, recurring, deductions, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, '[]', ?, ?)
                """,
                (
                    household_id,
                    member_id,
                    date_to_str(as_utc_date(week_start)),
                    title.strip(),
                    description,
                    int(max_points),
                    1 if recurring else 0,
                    now,
                    now,
                ),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for goal insert")
            goal_id = int(rowid)
        finally:
            conn.close()

        logger.debug(
            "Goal added id=%s member=%s week=%s max_points=%s", goal_id, member_id, week_start, max_points
        )
        goal = self.get_goal(goal_id)
        if goal is None:
            raise RuntimeError(f"goal {goal_id} vanished right after insert")
        return goal

    def get_goal(self, goal_id: int) -> ContributionGoal | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM contribution_goals WHERE id = ?", (int(goal_id),)
            ).fetchone()
            return self._row_to_goal(row) if row else None
        finally:
            conn.close()

    def find_goal_for_member(
        self, household_id: str, member_id: str, week_start: date
    ) -> ContributionGoal | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                """
                SELECT *
                FROM contribution_goals
                WHERE household_id = ? AND member_id = ? AND week_start_date = ?
                """,
                (household_id, member_id, date_to_str(as_utc_date(week_start))),
            ).fetchone()
            return self._row_to_goal(row) if row else None
        finally:
            conn.close()

    def find_active_goals_for_week(self, week_start: date) -> list[ContributionGoal]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM contribution_goals WHERE week_start_date = ? ORDER BY id ASC",
                (date_to_str(as_utc_date(week_start)),),
            ).fetchall()
            return [self._row_to_goal(r) for r in rows]
        finally:
            conn.close()

    def add_deduction(self, goal_id: int, deduction: Deduction) -> ContributionGoal | None:
        """Append a deduction. Returns the updated goal, or None if it no longer exists."""
        conn = self._get_conn()
        try:
            # BEGIN IMMEDIATE: read-modify-write of the JSON column must not interleave.
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT deductions FROM contribution_goals WHERE id = ?", (int(goal_id),)
            ).fetchone()
            if row is None:
                conn.rollback()
                return None

            items = str_to_json(row["deductions"], [])
            items.append(deduction.to_dict())
            conn.execute(
                "UPDATE contribution_goals SET deductions = ?, updated_at = ? WHERE id = ?",
                (json_to_str(items, default="[]"), dt_to_str(now_utc()), int(goal_id)),
            )
            conn.commit()
        finally:
            conn.close()

        return self.get_goal(goal_id)

    def delete_by_id(self, goal_id: int) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM contribution_goals WHERE id = ?", (int(goal_id),))
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()
