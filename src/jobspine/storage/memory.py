"""In-memory job and schedule stores.

Dict-backed implementations of :class:`JobStore` and
:class:`RecurringJobStore` for tests and for embedding the scheduler in a
process that doesn't need durability. Records are copied on the way in
and out so callers never hold a live reference to stored state.
"""

from __future__ import annotations

import copy
from dataclasses import replace
from datetime import datetime
from typing import TypeVar

from jobspine.core.errors import StorageNotConnectedError
from jobspine.core.logging import get_logger
from jobspine.core.models import Job, JobPriority, JobStatus, RecurringJob
from jobspine.core.timestamps import ensure_utc, generate_ulid, utc_now
from jobspine.storage.protocols import JobCreate, RecurringJobCreate, RecurringJobUpdate

logger = get_logger(__name__)

_Record = TypeVar("_Record", Job, RecurringJob)


def _snapshot(record: _Record) -> _Record:
    """Detached copy of a stored record, payload included."""
    return replace(record, data=copy.deepcopy(record.data))


class _MemoryStore:
    _label = "memory store"

    def __init__(self) -> None:
        self._connected = False

    def connect(self) -> None:
        self._connected = True

    def close(self) -> None:
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _require_connection(self) -> None:
        if not self._connected:
            raise StorageNotConnectedError(self._label)


class InMemoryJobStore(_MemoryStore):
    """Dict-backed :class:`~jobspine.storage.protocols.JobStore`."""

    _label = "InMemoryJobStore"

    def __init__(self) -> None:
        super().__init__()
        self._jobs: dict[str, Job] = {}

    def create(self, payload: JobCreate) -> Job:
        self._require_connection()
        now = utc_now()
        job = Job(
            id=generate_ulid(),
            name=payload.name,
            data=copy.deepcopy(payload.data),
            scheduled_at=ensure_utc(payload.scheduled_at),
            status=JobStatus.PENDING,
            priority=payload.priority,
            attempts=0,
            max_retries=payload.max_retries,
            retry_delay=payload.retry_delay,
            timeout=payload.timeout,
            user_id=payload.user_id,
            created_at=now,
            updated_at=now,
        )
        self._jobs[job.id] = job
        return _snapshot(job)

    def get(self, job_id: str) -> Job | None:
        self._require_connection()
        job = self._jobs.get(job_id)
        return _snapshot(job) if job else None

    def update_status(
        self,
        job_id: str,
        status: JobStatus,
        error_message: str | None = None,
    ) -> Job | None:
        self._require_connection()
        job = self._jobs.get(job_id)
        if job is None:
            return None

        now = utc_now()
        job.status = status
        job.updated_at = now
        if status == JobStatus.RUNNING and job.executed_at is None:
            job.executed_at = now
        elif status == JobStatus.COMPLETED:
            job.completed_at = now
        elif status == JobStatus.FAILED and error_message:
            job.error_message = error_message
        return _snapshot(job)

    def increment_attempts(self, job_id: str) -> Job | None:
        self._require_connection()
        job = self._jobs.get(job_id)
        if job is None:
            return None
        job.attempts += 1
        job.updated_at = utc_now()
        return _snapshot(job)

    def reschedule(self, job_id: str, scheduled_at: datetime) -> Job | None:
        self._require_connection()
        job = self._jobs.get(job_id)
        if job is None:
            return None
        job.scheduled_at = ensure_utc(scheduled_at)
        job.updated_at = utc_now()
        return _snapshot(job)

    def delete(self, job_id: str) -> bool:
        self._require_connection()
        return self._jobs.pop(job_id, None) is not None

    def list_pending_due(self, now: datetime, limit: int) -> list[Job]:
        self._require_connection()
        if limit <= 0:
            return []
        now = ensure_utc(now)
        due = [
            j for j in self._jobs.values()
            if j.status == JobStatus.PENDING and j.scheduled_at <= now
        ]
        due.sort(key=lambda j: (-j.priority.rank, j.scheduled_at))
        return [_snapshot(j) for j in due[:limit]]

    def list_by_user(
        self,
        user_id: str,
        status: JobStatus | None = None,
        limit: int = 50,
    ) -> list[Job]:
        self._require_connection()
        jobs = [
            j for j in self._jobs.values()
            if j.user_id == user_id and (status is None or j.status == status)
        ]
        jobs.sort(key=lambda j: j.scheduled_at, reverse=True)
        return [_snapshot(j) for j in jobs[:limit]]

    def list_failed(self, user_id: str | None = None, limit: int = 50) -> list[Job]:
        self._require_connection()
        jobs = [
            j for j in self._jobs.values()
            if j.status == JobStatus.FAILED and (user_id is None or j.user_id == user_id)
        ]
        jobs.sort(key=lambda j: j.updated_at, reverse=True)
        return [_snapshot(j) for j in jobs[:limit]]

    def __len__(self) -> int:
        return len(self._jobs)


class InMemoryRecurringJobStore(_MemoryStore):
    """Dict-backed :class:`~jobspine.storage.protocols.RecurringJobStore`."""

    _label = "InMemoryRecurringJobStore"

    def __init__(self) -> None:
        super().__init__()
        self._schedules: dict[str, RecurringJob] = {}

    def create(self, payload: RecurringJobCreate) -> RecurringJob:
        self._require_connection()
        now = utc_now()
        schedule = RecurringJob(
            id=generate_ulid(),
            name=payload.name,
            cron_expression=payload.cron_expression,
            data=copy.deepcopy(payload.data),
            priority=payload.priority,
            max_retries=payload.max_retries,
            retry_delay=payload.retry_delay,
            timeout=payload.timeout,
            user_id=payload.user_id,
            last_executed_at=ensure_utc(payload.last_executed_at) if payload.last_executed_at else None,
            is_active=payload.is_active,
            created_at=now,
            updated_at=now,
        )
        self._schedules[schedule.id] = schedule
        return _snapshot(schedule)

    def get(self, schedule_id: str) -> RecurringJob | None:
        self._require_connection()
        schedule = self._schedules.get(schedule_id)
        return _snapshot(schedule) if schedule else None

    def update(self, schedule_id: str, update: RecurringJobUpdate) -> RecurringJob | None:
        self._require_connection()
        schedule = self._schedules.get(schedule_id)
        if schedule is None:
            return None
        changes = update.changes()
        if changes:
            for key, value in changes.items():
                if key == "data":
                    value = copy.deepcopy(value)
                elif key == "priority":
                    value = JobPriority(value)
                setattr(schedule, key, value)
            schedule.updated_at = utc_now()
        return _snapshot(schedule)

    def delete(self, schedule_id: str) -> bool:
        self._require_connection()
        return self._schedules.pop(schedule_id, None) is not None

    def list_active(self) -> list[RecurringJob]:
        self._require_connection()
        return [_snapshot(s) for s in self._schedules.values() if s.is_active]

    def list_by_user(
        self,
        user_id: str,
        is_active: bool | None = None,
    ) -> list[RecurringJob]:
        self._require_connection()
        schedules = [
            s for s in self._schedules.values()
            if s.user_id == user_id and (is_active is None or s.is_active == is_active)
        ]
        schedules.sort(key=lambda s: s.updated_at, reverse=True)
        return [_snapshot(s) for s in schedules]

    def set_last_executed(self, schedule_id: str, at: datetime) -> RecurringJob | None:
        self._require_connection()
        schedule = self._schedules.get(schedule_id)
        if schedule is None:
            return None
        at = ensure_utc(at)
        if schedule.last_executed_at is not None and at < schedule.last_executed_at:
            logger.debug(
                "last_executed_not_advanced",
                schedule_id=schedule_id,
                current=schedule.last_executed_at.isoformat(),
                requested=at.isoformat(),
            )
            return _snapshot(schedule)
        schedule.last_executed_at = at
        schedule.updated_at = utc_now()
        return _snapshot(schedule)
