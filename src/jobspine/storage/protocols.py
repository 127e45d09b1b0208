"""Store protocols for jobs and recurring schedules.

The dispatch engine owns no persistent state. Everything it reads or
writes goes through these two protocols, passed in at construction, so a
test can hand it in-memory stores and a deployment can hand it SQLite
stores without the engine knowing the difference.

┌──────────────────────────────────────────────────────────────────────────────┐
│  STORE CONTRACTS                                                              │
│                                                                               │
│   JobStore                              RecurringJobStore                     │
│   ├── connect() / close()               ├── connect() / close()               │
│   ├── create(JobCreate) → Job           ├── create(RecurringJobCreate)        │
│   ├── get(id) → Job | None              ├── get(id)                           │
│   ├── update_status(id, status, err)    ├── update(id, RecurringJobUpdate)    │
│   ├── increment_attempts(id)            ├── delete(id) → bool                 │
│   ├── reschedule(id, at)                ├── list_active()                     │
│   ├── delete(id) → bool                 ├── list_by_user(user, is_active)     │
│   ├── list_pending_due(now, limit)      └── set_last_executed(id, at)         │
│   ├── list_by_user(user, status)                                              │
│   └── list_failed(user)                                                       │
│                                                                               │
│  update_status side-stamps:                                                   │
│   RUNNING   → executed_at (first time only)                                   │
│   COMPLETED → completed_at                                                    │
│   FAILED    → error_message (when given)                                      │
│                                                                               │
│  list_pending_due ordering: priority rank DESC, scheduled_at ASC              │
└──────────────────────────────────────────────────────────────────────────────┘

Store calls are synchronous and expected to be fast; failures raise
:class:`~jobspine.core.errors.StorageError` (or the driver's own error)
and are never retried by the engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from jobspine.core.models import Job, JobPriority, JobStatus, RecurringJob

# ---------------------------------------------------------------------------
# Create/Update DTOs
# ---------------------------------------------------------------------------


@dataclass
class JobCreate:
    """DTO for creating a job. Policy fields are already resolved."""

    name: str
    scheduled_at: datetime
    data: Any = field(default_factory=dict)
    priority: JobPriority = JobPriority.NORMAL
    max_retries: int = 3
    retry_delay: float = 60.0
    timeout: float = 30.0
    user_id: str | None = None


@dataclass
class RecurringJobCreate:
    """DTO for creating a recurring schedule."""

    name: str
    cron_expression: str
    data: Any = field(default_factory=dict)
    priority: JobPriority = JobPriority.NORMAL
    max_retries: int = 3
    retry_delay: float = 60.0
    timeout: float = 30.0
    user_id: str | None = None
    last_executed_at: datetime | None = None
    is_active: bool = True


@dataclass
class RecurringJobUpdate:
    """DTO for a partial schedule update. ``None`` fields are left alone."""

    name: str | None = None
    data: Any = None
    cron_expression: str | None = None
    priority: JobPriority | None = None
    max_retries: int | None = None
    retry_delay: float | None = None
    timeout: float | None = None
    is_active: bool | None = None

    def changes(self) -> dict[str, Any]:
        """Fields that were actually set."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class JobStore(Protocol):
    """Durable CRUD for :class:`~jobspine.core.models.Job` records."""

    def connect(self) -> None:
        """Open the underlying storage. Idempotent."""
        ...

    def close(self) -> None:
        """Release the underlying storage. Idempotent."""
        ...

    def create(self, payload: JobCreate) -> Job:
        """Insert a new pending job with ``attempts = 0``."""
        ...

    def get(self, job_id: str) -> Job | None:
        ...

    def update_status(
        self,
        job_id: str,
        status: JobStatus,
        error_message: str | None = None,
    ) -> Job | None:
        """Set status and side-stamp timestamps. Returns None if not found."""
        ...

    def increment_attempts(self, job_id: str) -> Job | None:
        ...

    def reschedule(self, job_id: str, scheduled_at: datetime) -> Job | None:
        """Move a job's due time."""
        ...

    def delete(self, job_id: str) -> bool:
        ...

    def list_pending_due(self, now: datetime, limit: int) -> list[Job]:
        """Pending jobs with ``scheduled_at <= now``, best first, at most *limit*."""
        ...

    def list_by_user(
        self,
        user_id: str,
        status: JobStatus | None = None,
        limit: int = 50,
    ) -> list[Job]:
        """A user's jobs, latest ``scheduled_at`` first."""
        ...

    def list_failed(self, user_id: str | None = None, limit: int = 50) -> list[Job]:
        """Failed jobs, most recently updated first."""
        ...


@runtime_checkable
class RecurringJobStore(Protocol):
    """Durable CRUD for :class:`~jobspine.core.models.RecurringJob` records."""

    def connect(self) -> None:
        ...

    def close(self) -> None:
        ...

    def create(self, payload: RecurringJobCreate) -> RecurringJob:
        ...

    def get(self, schedule_id: str) -> RecurringJob | None:
        ...

    def update(self, schedule_id: str, update: RecurringJobUpdate) -> RecurringJob | None:
        ...

    def delete(self, schedule_id: str) -> bool:
        ...

    def list_active(self) -> list[RecurringJob]:
        ...

    def list_by_user(
        self,
        user_id: str,
        is_active: bool | None = None,
    ) -> list[RecurringJob]:
        """A user's schedules, most recently updated first."""
        ...

    def set_last_executed(self, schedule_id: str, at: datetime) -> RecurringJob | None:
        """Advance ``last_executed_at``. Never moves it backwards."""
        ...
