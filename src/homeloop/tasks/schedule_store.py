# src/homeloop/tasks/schedule_store.py

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
from .recurrence import as_utc_date
from .task_models import Assignment, RecurrenceRule, ScheduleRecord

logger = logging.getLogger(__name__)


class ScheduleStore(SQLiteStore):
    """SQLite store for recurring task schedules."""

    table = "task_schedules"
    columns = {
        "household_id": "TEXT NOT NULL DEFAULT ''",
        "name": "TEXT NOT NULL DEFAULT ''",
        "description": "TEXT",
        "days_of_week": "TEXT NOT NULL DEFAULT '[]'",
        "weekly_interval": "INTEGER NOT NULL DEFAULT 1",
        "start_date": "TEXT NOT NULL DEFAULT '1970-01-01'",
        "end_date": "TEXT",
        "time_of_day": "TEXT",
        "assignment": "TEXT NOT NULL DEFAULT '{}'",
        "last_generated_date": "TEXT",
        "created_by": "TEXT",
        "archived": "INTEGER NOT NULL DEFAULT 0",
        "created_at": "TEXT NOT NULL DEFAULT ''",
        "updated_at": "TEXT NOT NULL DEFAULT ''",
    }

    def _create_schema(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS task_schedules (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                household_id TEXT NOT NULL,
                name TEXT NOT NULL,
                description TEXT,
                days_of_week TEXT NOT NULL,
                weekly_interval INTEGER NOT NULL DEFAULT 1,
                start_date TEXT NOT NULL,
                end_date TEXT,
                time_of_day TEXT,
                assignment TEXT NOT NULL DEFAULT '{}',
                last_generated_date TEXT,
                created_by TEXT,
                archived INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_schedules_household ON task_schedules(household_id)"
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_schedules_range ON task_schedules(archived, start_date, end_date)"
        )

    @staticmethod
    def _row_to_schedule(row: sqlite3.Row) -> ScheduleRecord:
        rule = RecurrenceRule(
            days_of_week=frozenset(str_to_json(row["days_of_week"], [])),
            weekly_interval=int(row["weekly_interval"] or 1),
            start_date=str_to_date(row["start_date"]) or date.min,
            end_date=str_to_date(row["end_date"]),
            time_of_day=row["time_of_day"],
        )
        return ScheduleRecord(
            id=int(row["id"]),
            household_id=str(row["household_id"]),
            name=str(row["name"] or ""),
            rule=rule,
            assignment=Assignment.from_dict(str_to_json(row["assignment"], {})),
            last_generated_date=str_to_date(row["last_generated_date"]),
            description=row["description"],
            created_by=row["created_by"],
            archived=bool(row["archived"]),
            created_at=str_to_dt(row["created_at"]),
            updated_at=str_to_dt(row["updated_at"]),
        )

    # ---- public API ----

    def create_schedule(
        self,
        *,
        household_id: str,
        name: str,
        rule: RecurrenceRule,
        assignment: Assignment | None = None,
        description: str | None = None,
        created_by: str | None = None,
    ) -> ScheduleRecord:
        if not household_id:
            raise ValueError("household_id is required")
        if not name or not name.strip():
            raise ValueError("name is required")

        assignment = assignment or Assignment.unassigned()
        now = dt_to_str(now_utc())

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO task_schedules(
                    household_id, name, description,
                    days_of_week, weekly_interval, start_date, end_date, time_of_day,
                    assignment, created_by, archived, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?)
                """,
                (
                    household_id,
                    name.strip(),
                    description,
                    json_to_str(sorted(rule.days_of_week), default="[]"),
                    int(rule.weekly_interval),
                    date_to_str(rule.start_date),
                    date_to_str(rule.end_date),
                    rule.time_of_day,
                    json_to_str(assignment.to_dict()),
                    created_by,
                    now,
                    now,
                ),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for schedule insert")
            schedule_id = int(rowid)
        finally:
            conn.close()

        logger.debug("Schedule added id=%s household=%s name=%s", schedule_id, household_id, name)
        schedule = self.get_schedule(schedule_id)
        if schedule is None:
            raise RuntimeError(f"schedule {schedule_id} vanished right after insert")
        return schedule

    def get_schedule(self, schedule_id: int) -> ScheduleRecord | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM task_schedules WHERE id = ?", (int(schedule_id),)
            ).fetchone()
            return self._row_to_schedule(row) if row else None
        finally:
            conn.close()

    def list_schedules(self, household_id: str) -> list[ScheduleRecord]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM task_schedules WHERE household_id = ? ORDER BY created_at DESC",
                (household_id,),
            ).fetchall()
            return [self._row_to_schedule(r) for r in rows]
        finally:
            conn.close()

    def find_active_schedules(self, on_date: date | None = None) -> list[ScheduleRecord]:
        """
        Schedules eligible for generation on `on_date`:
        not archived, start_date <= on_date, end_date missing or >= on_date.

        Without a date, every non-archived schedule is returned.
        """
        conn = self._get_conn()
        try:
            if on_date is None:
                rows = conn.execute(
                    "SELECT * FROM task_schedules WHERE archived = 0 ORDER BY id ASC"
                ).fetchall()
            else:
                day = date_to_str(as_utc_date(on_date))
                rows = conn.execute(
                    """
                    SELECT *
                    FROM task_schedules
                    WHERE archived = 0
                      AND start_date <= ?
                      AND (end_date IS NULL OR end_date >= ?)
                    ORDER BY id ASC
                    """,
                    (day, day),
                ).fetchall()
            return [self._row_to_schedule(r) for r in rows]
        finally:
            conn.close()

    def update_last_generated_date(self, schedule_id: int, value: date) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                "UPDATE task_schedules SET last_generated_date = ?, updated_at = ? WHERE id = ?",
                (date_to_str(as_utc_date(value)), dt_to_str(now_utc()), int(schedule_id)),
            )
            conn.commit()
        finally:
            conn.close()

    def archive_schedule(self, schedule_id: int) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "UPDATE task_schedules SET archived = 1, updated_at = ? WHERE id = ?",
                (dt_to_str(now_utc()), int(schedule_id)),
            )
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()
