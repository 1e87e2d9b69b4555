# src/homeloop/tasks/task_store.py

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Sequence
from datetime import date, datetime

from ..core.sqlite_store import (
    SQLiteStore,
    date_to_str,
    dt_to_str,
    json_to_str,
    now_utc,
    str_to_dt,
    str_to_json,
)
from .recurrence import as_utc_date
from .task_models import Assignment, NewTask, TaskInstance

logger = logging.getLogger(__name__)


class TaskStore(SQLiteStore):
    """
    SQLite store for concrete task occurrences.

    There is no uniqueness constraint on (schedule_id, due_date): the recurrence
    runner's existence check is what keeps one task per schedule and day.
    """

    table = "tasks"
    columns = {
        "household_id": "TEXT NOT NULL DEFAULT ''",
        "name": "TEXT NOT NULL DEFAULT ''",
        "description": "TEXT",
        "due_at": "TEXT NOT NULL DEFAULT ''",
        "due_date": "TEXT NOT NULL DEFAULT ''",
        "assignment": "TEXT NOT NULL DEFAULT '{}'",
        "schedule_id": "INTEGER",
        "completed_at": "TEXT",
        "created_by": "TEXT",
        "created_at": "TEXT NOT NULL DEFAULT ''",
    }

    def _create_schema(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS tasks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                household_id TEXT NOT NULL,
                name TEXT NOT NULL,
                description TEXT,
                due_at TEXT NOT NULL,
                due_date TEXT NOT NULL,
                assignment TEXT NOT NULL DEFAULT '{}',
                schedule_id INTEGER,
                completed_at TEXT,
                created_by TEXT,
                created_at TEXT NOT NULL
            )
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_schedule_day ON tasks(schedule_id, due_date)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_household_due ON tasks(household_id, due_at)")

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> TaskInstance:
        return TaskInstance(
            id=int(row["id"]),
            household_id=str(row["household_id"]),
            name=str(row["name"] or ""),
            due_at=str_to_dt(row["due_at"]) or now_utc(),
            assignment=Assignment.from_dict(str_to_json(row["assignment"], {})),
            schedule_id=int(row["schedule_id"]) if row["schedule_id"] is not None else None,
            completed_at=str_to_dt(row["completed_at"]),
            description=row["description"],
            created_by=row["created_by"],
            created_at=str_to_dt(row["created_at"]),
        )

    # ---- public API ----

    def count_tasks(self) -> int:
        return self.count_rows()

    def create_task(self, data: NewTask) -> TaskInstance:
        if not data.household_id:
            raise ValueError("household_id is required")
        if not data.name or not data.name.strip():
            raise ValueError("name is required")

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO tasks(
                    household_id, name, description, due_at, due_date,
                    assignment, schedule_id, created_by, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    data.household_id,
                    data.name.strip(),
                    data.description,
                    dt_to_str(data.due_at),
                    date_to_str(as_utc_date(data.due_at)),
                    json_to_str(data.assignment.to_dict()),
                    data.schedule_id,
                    data.created_by,
                    dt_to_str(now_utc()),
                ),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for task insert")
            task_id = int(rowid)
        finally:
            conn.close()

        logger.debug(
            "Task added id=%s schedule=%s due_at=%s", task_id, data.schedule_id, data.due_at
        )
        task = self.get_task(task_id)
        if task is None:
            raise RuntimeError(f"task {task_id} vanished right after insert")
        return task

    def get_task(self, task_id: int) -> TaskInstance | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (int(task_id),)).fetchone()
            return self._row_to_task(row) if row else None
        finally:
            conn.close()

    def find_task_by_schedule_and_date(self, schedule_id: int, value: date) -> TaskInstance | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                """
                SELECT *
                FROM tasks
                WHERE schedule_id = ?
                  AND due_date = ?
                ORDER BY id ASC
                    LIMIT 1
                """,
                (int(schedule_id), date_to_str(as_utc_date(value))),
            ).fetchone()
            return self._row_to_task(row) if row else None
        finally:
            conn.close()

    def find_incomplete_tasks_by_schedule(self, schedule_id: int) -> list[TaskInstance]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT *
                FROM tasks
                WHERE schedule_id = ?
                  AND completed_at IS NULL
                ORDER BY due_at ASC
                """,
                (int(schedule_id),),
            ).fetchall()
            return [self._row_to_task(r) for r in rows]
        finally:
            conn.close()

    def list_tasks_for_schedule(self, schedule_id: int) -> list[TaskInstance]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM tasks WHERE schedule_id = ? ORDER BY due_at ASC",
                (int(schedule_id),),
            ).fetchall()
            return [self._row_to_task(r) for r in rows]
        finally:
            conn.close()

    def delete_tasks_by_ids(self, task_ids: Sequence[int]) -> int:
        ids = [int(t) for t in task_ids]
        if not ids:
            return 0

        placeholders = ",".join("?" for _ in ids)
        conn = self._get_conn()
        try:
            cur = conn.execute(f"DELETE FROM tasks WHERE id IN ({placeholders})", ids)
            conn.commit()
            return int(cur.rowcount)
        finally:
            conn.close()

    def complete_task(self, task_id: int, completed_at: datetime | None = None) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "UPDATE tasks SET completed_at = ? WHERE id = ? AND completed_at IS NULL",
                (dt_to_str(completed_at or now_utc()), int(task_id)),
            )
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()
