"""SQLite job and schedule stores.

┌──────────────────────────────────────────────────────────────────────────────┐
│  SQLITE STORAGE                                                               │
│                                                                               │
│   SqliteDatabase  (one sqlite3 connection, schema on connect)                 │
│        │                                                                      │
│        ├── SqliteJobStore           table: jobspine_jobs                      │
│        └── SqliteRecurringJobStore  table: jobspine_recurring_jobs            │
│                                                                               │
│  Timestamps are stored as ISO 8601 UTC text with microsecond precision, so    │
│  lexical order in SQL matches chronological order.                            │
│  Payloads are stored as JSON text; non-JSON data raises JobValidationError.   │
└──────────────────────────────────────────────────────────────────────────────┘

Usage::

    db = SqliteDatabase("jobspine.db")
    jobs = SqliteJobStore(db)
    schedules = SqliteRecurringJobStore(db)
    scheduler = Scheduler(jobs, schedules, settings=settings)
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import Any

from jobspine.core.errors import JobValidationError, StorageError, StorageNotConnectedError
from jobspine.core.logging import get_logger
from jobspine.core.models import Job, JobPriority, JobStatus, RecurringJob
from jobspine.core.timestamps import from_iso8601, generate_ulid, to_iso8601, utc_now
from jobspine.storage.protocols import JobCreate, RecurringJobCreate, RecurringJobUpdate

logger = get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS jobspine_jobs (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    data TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    priority TEXT NOT NULL DEFAULT 'normal',
    scheduled_at TEXT NOT NULL,
    executed_at TEXT,
    completed_at TEXT,
    error_message TEXT,
    attempts INTEGER NOT NULL DEFAULT 0,
    max_retries INTEGER NOT NULL DEFAULT 3,
    retry_delay REAL NOT NULL DEFAULT 60.0,
    timeout REAL NOT NULL DEFAULT 30.0,
    user_id TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_jobspine_jobs_due
    ON jobspine_jobs (status, scheduled_at);
CREATE INDEX IF NOT EXISTS idx_jobspine_jobs_user
    ON jobspine_jobs (user_id, status);

CREATE TABLE IF NOT EXISTS jobspine_recurring_jobs (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    data TEXT,
    cron_expression TEXT NOT NULL,
    priority TEXT NOT NULL DEFAULT 'normal',
    max_retries INTEGER NOT NULL DEFAULT 3,
    retry_delay REAL NOT NULL DEFAULT 60.0,
    timeout REAL NOT NULL DEFAULT 30.0,
    user_id TEXT,
    last_executed_at TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_jobspine_recurring_active
    ON jobspine_recurring_jobs (is_active);
CREATE INDEX IF NOT EXISTS idx_jobspine_recurring_user
    ON jobspine_recurring_jobs (user_id);
"""

_PRIORITY_ORDER = (
    "CASE priority WHEN 'high' THEN 3 WHEN 'normal' THEN 2 ELSE 1 END"
)


def _dump_data(data: Any) -> str:
    try:
        return json.dumps(data)
    except (TypeError, ValueError) as e:
        raise JobValidationError(
            f"Job data must be JSON-serializable: {e}",
            field="data",
            value=type(data).__name__,
        ) from e


class SqliteDatabase:
    """Owns the sqlite3 connection shared by both stores.

    ``connect()`` and ``close()`` are idempotent. Driver errors are
    re-raised as :class:`StorageError` with the original as ``cause``.
    """

    def __init__(self, path: str = ":memory:") -> None:
        self.path = path
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        if self._conn is not None:
            return
        try:
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(SCHEMA)
            self._conn.commit()
        except sqlite3.Error as e:
            self._conn = None
            raise StorageError(f"Cannot open SQLite database {self.path!r}: {e}", cause=e) from e
        logger.info("sqlite_connected", path=self.path)

    def close(self) -> None:
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None
        logger.info("sqlite_closed", path=self.path)

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    def execute(self, sql: str, params: tuple | list = ()) -> sqlite3.Cursor:
        if self._conn is None:
            raise StorageNotConnectedError(f"SqliteDatabase({self.path!r})")
        try:
            cursor = self._conn.execute(sql, params)
            self._conn.commit()
            return cursor
        except sqlite3.Error as e:
            self._conn.rollback()
            raise StorageError(f"SQLite error: {e}", cause=e) from e

    def fetchone(self, sql: str, params: tuple | list = ()) -> sqlite3.Row | None:
        return self.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: tuple | list = ()) -> list[sqlite3.Row]:
        return self.execute(sql, params).fetchall()

    def __repr__(self) -> str:
        return f"SqliteDatabase({self.path!r}, connected={self.is_connected})"


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


class SqliteJobStore:
    """:class:`~jobspine.storage.protocols.JobStore` over ``jobspine_jobs``."""

    def __init__(self, db: SqliteDatabase) -> None:
        self.db = db

    def connect(self) -> None:
        self.db.connect()

    def close(self) -> None:
        self.db.close()

    def create(self, payload: JobCreate) -> Job:
        job_id = generate_ulid()
        now = to_iso8601(utc_now())
        self.db.execute(
            """
            INSERT INTO jobspine_jobs (
                id, name, data, status, priority, scheduled_at, attempts,
                max_retries, retry_delay, timeout, user_id, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?, ?, ?, ?, ?)
            """,
            (
                job_id,
                payload.name,
                _dump_data(payload.data),
                JobStatus.PENDING.value,
                payload.priority.value,
                to_iso8601(payload.scheduled_at),
                payload.max_retries,
                payload.retry_delay,
                payload.timeout,
                payload.user_id,
                now,
                now,
            ),
        )
        return self.get(job_id)  # type: ignore[return-value]

    def get(self, job_id: str) -> Job | None:
        row = self.db.fetchone("SELECT * FROM jobspine_jobs WHERE id = ?", (job_id,))
        return self._row_to_job(row) if row else None

    def update_status(
        self,
        job_id: str,
        status: JobStatus,
        error_message: str | None = None,
    ) -> Job | None:
        now = to_iso8601(utc_now())
        set_parts = ["status = ?", "updated_at = ?"]
        params: list[Any] = [status.value, now]

        if status == JobStatus.RUNNING:
            set_parts.append("executed_at = COALESCE(executed_at, ?)")
            params.append(now)
        elif status == JobStatus.COMPLETED:
            set_parts.append("completed_at = ?")
            params.append(now)
        elif status == JobStatus.FAILED and error_message:
            set_parts.append("error_message = ?")
            params.append(error_message)

        params.append(job_id)
        cursor = self.db.execute(
            f"UPDATE jobspine_jobs SET {', '.join(set_parts)} WHERE id = ?",
            params,
        )
        if cursor.rowcount == 0:
            return None
        return self.get(job_id)

    def increment_attempts(self, job_id: str) -> Job | None:
        cursor = self.db.execute(
            "UPDATE jobspine_jobs SET attempts = attempts + 1, updated_at = ? WHERE id = ?",
            (to_iso8601(utc_now()), job_id),
        )
        if cursor.rowcount == 0:
            return None
        return self.get(job_id)

    def reschedule(self, job_id: str, scheduled_at: datetime) -> Job | None:
        cursor = self.db.execute(
            "UPDATE jobspine_jobs SET scheduled_at = ?, updated_at = ? WHERE id = ?",
            (to_iso8601(scheduled_at), to_iso8601(utc_now()), job_id),
        )
        if cursor.rowcount == 0:
            return None
        return self.get(job_id)

    def delete(self, job_id: str) -> bool:
        cursor = self.db.execute("DELETE FROM jobspine_jobs WHERE id = ?", (job_id,))
        return cursor.rowcount > 0

    def list_pending_due(self, now: datetime, limit: int) -> list[Job]:
        if limit <= 0:
            return []
        rows = self.db.fetchall(
            f"""
            SELECT * FROM jobspine_jobs
            WHERE status = ? AND scheduled_at <= ?
            ORDER BY {_PRIORITY_ORDER} DESC, scheduled_at ASC
            LIMIT ?
            """,
            (JobStatus.PENDING.value, to_iso8601(now), limit),
        )
        return [self._row_to_job(row) for row in rows]

    def list_by_user(
        self,
        user_id: str,
        status: JobStatus | None = None,
        limit: int = 50,
    ) -> list[Job]:
        if status is not None:
            rows = self.db.fetchall(
                """
                SELECT * FROM jobspine_jobs
                WHERE user_id = ? AND status = ?
                ORDER BY scheduled_at DESC
                LIMIT ?
                """,
                (user_id, status.value, limit),
            )
        else:
            rows = self.db.fetchall(
                """
                SELECT * FROM jobspine_jobs
                WHERE user_id = ?
                ORDER BY scheduled_at DESC
                LIMIT ?
                """,
                (user_id, limit),
            )
        return [self._row_to_job(row) for row in rows]

    def list_failed(self, user_id: str | None = None, limit: int = 50) -> list[Job]:
        if user_id is not None:
            rows = self.db.fetchall(
                """
                SELECT * FROM jobspine_jobs
                WHERE status = ? AND user_id = ?
                ORDER BY updated_at DESC
                LIMIT ?
                """,
                (JobStatus.FAILED.value, user_id, limit),
            )
        else:
            rows = self.db.fetchall(
                """
                SELECT * FROM jobspine_jobs
                WHERE status = ?
                ORDER BY updated_at DESC
                LIMIT ?
                """,
                (JobStatus.FAILED.value, limit),
            )
        return [self._row_to_job(row) for row in rows]

    @staticmethod
    def _row_to_job(row: sqlite3.Row) -> Job:
        return Job(
            id=row["id"],
            name=row["name"],
            data=json.loads(row["data"]) if row["data"] is not None else None,
            status=JobStatus(row["status"]),
            priority=JobPriority(row["priority"]),
            scheduled_at=from_iso8601(row["scheduled_at"]),
            executed_at=from_iso8601(row["executed_at"]),
            completed_at=from_iso8601(row["completed_at"]),
            error_message=row["error_message"],
            attempts=row["attempts"],
            max_retries=row["max_retries"],
            retry_delay=row["retry_delay"],
            timeout=row["timeout"],
            user_id=row["user_id"],
            created_at=from_iso8601(row["created_at"]),
            updated_at=from_iso8601(row["updated_at"]),
        )


# ---------------------------------------------------------------------------
# Recurring schedules
# ---------------------------------------------------------------------------


class SqliteRecurringJobStore:
    """:class:`~jobspine.storage.protocols.RecurringJobStore` over
    ``jobspine_recurring_jobs``."""

    def __init__(self, db: SqliteDatabase) -> None:
        self.db = db

    def connect(self) -> None:
        self.db.connect()

    def close(self) -> None:
        self.db.close()

    def create(self, payload: RecurringJobCreate) -> RecurringJob:
        schedule_id = generate_ulid()
        now = to_iso8601(utc_now())
        self.db.execute(
            """
            INSERT INTO jobspine_recurring_jobs (
                id, name, data, cron_expression, priority, max_retries,
                retry_delay, timeout, user_id, last_executed_at, is_active,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                schedule_id,
                payload.name,
                _dump_data(payload.data),
                payload.cron_expression,
                payload.priority.value,
                payload.max_retries,
                payload.retry_delay,
                payload.timeout,
                payload.user_id,
                to_iso8601(payload.last_executed_at),
                1 if payload.is_active else 0,
                now,
                now,
            ),
        )
        return self.get(schedule_id)  # type: ignore[return-value]

    def get(self, schedule_id: str) -> RecurringJob | None:
        row = self.db.fetchone(
            "SELECT * FROM jobspine_recurring_jobs WHERE id = ?", (schedule_id,)
        )
        return self._row_to_schedule(row) if row else None

    def update(self, schedule_id: str, update: RecurringJobUpdate) -> RecurringJob | None:
        set_parts = []
        params: list[Any] = []

        for key, value in update.changes().items():
            if key == "data":
                value = _dump_data(value)
            elif key == "priority":
                value = JobPriority(value).value
            elif key == "is_active":
                value = 1 if value else 0
            set_parts.append(f"{key} = ?")
            params.append(value)

        if not set_parts:
            return self.get(schedule_id)

        set_parts.append("updated_at = ?")
        params.append(to_iso8601(utc_now()))
        params.append(schedule_id)

        cursor = self.db.execute(
            f"UPDATE jobspine_recurring_jobs SET {', '.join(set_parts)} WHERE id = ?",
            params,
        )
        if cursor.rowcount == 0:
            return None
        return self.get(schedule_id)

    def delete(self, schedule_id: str) -> bool:
        cursor = self.db.execute(
            "DELETE FROM jobspine_recurring_jobs WHERE id = ?", (schedule_id,)
        )
        return cursor.rowcount > 0

    def list_active(self) -> list[RecurringJob]:
        rows = self.db.fetchall(
            "SELECT * FROM jobspine_recurring_jobs WHERE is_active = 1 ORDER BY created_at"
        )
        return [self._row_to_schedule(row) for row in rows]

    def list_by_user(
        self,
        user_id: str,
        is_active: bool | None = None,
    ) -> list[RecurringJob]:
        if is_active is not None:
            rows = self.db.fetchall(
                """
                SELECT * FROM jobspine_recurring_jobs
                WHERE user_id = ? AND is_active = ?
                ORDER BY updated_at DESC
                """,
                (user_id, 1 if is_active else 0),
            )
        else:
            rows = self.db.fetchall(
                """
                SELECT * FROM jobspine_recurring_jobs
                WHERE user_id = ?
                ORDER BY updated_at DESC
                """,
                (user_id,),
            )
        return [self._row_to_schedule(row) for row in rows]

    def set_last_executed(self, schedule_id: str, at: datetime) -> RecurringJob | None:
        at_iso = to_iso8601(at)
        self.db.execute(
            """
            UPDATE jobspine_recurring_jobs
            SET last_executed_at = ?, updated_at = ?
            WHERE id = ? AND (last_executed_at IS NULL OR last_executed_at <= ?)
            """,
            (at_iso, to_iso8601(utc_now()), schedule_id, at_iso),
        )
        return self.get(schedule_id)

    @staticmethod
    def _row_to_schedule(row: sqlite3.Row) -> RecurringJob:
        return RecurringJob(
            id=row["id"],
            name=row["name"],
            data=json.loads(row["data"]) if row["data"] is not None else None,
            cron_expression=row["cron_expression"],
            priority=JobPriority(row["priority"]),
            max_retries=row["max_retries"],
            retry_delay=row["retry_delay"],
            timeout=row["timeout"],
            user_id=row["user_id"],
            last_executed_at=from_iso8601(row["last_executed_at"]),
            is_active=bool(row["is_active"]),
            created_at=from_iso8601(row["created_at"]),
            updated_at=from_iso8601(row["updated_at"]),
        )
