"""Job domain models.

Defines the core data structures for the scheduler:
- Job: one schedulable unit of work with its own status and retry state
- RecurringJob: a cron-driven template that materializes Jobs
- JobResult: what a handler reports back
- JobOptions: per-job policy overrides

These models are produced by the stores and consumed by the dispatch
engine, the event bus and the CLI.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from jobspine.core.errors import InvalidTransitionError, JobValidationError


class JobStatus(str, Enum):
    """Status of a job.

    Valid transition graph::

        PENDING   → RUNNING
        RUNNING   → COMPLETED | FAILED
        FAILED    → PENDING (retry)
        COMPLETED → (terminal)
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


JOB_VALID_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING}),
    JobStatus.RUNNING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.FAILED: frozenset({JobStatus.PENDING}),  # retry
    JobStatus.COMPLETED: frozenset(),  # terminal
}


def validate_job_transition(current: JobStatus, target: JobStatus) -> None:
    """Raise :class:`InvalidTransitionError` if *current → target* is illegal.

    Example:
        >>> validate_job_transition(JobStatus.RUNNING, JobStatus.COMPLETED)
        >>> validate_job_transition(JobStatus.COMPLETED, JobStatus.RUNNING)
        Traceback (most recent call last):
        ...
        InvalidTransitionError: Invalid JobStatus transition: completed → running
    """
    if target not in JOB_VALID_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(current.value, target.value)


class JobPriority(str, Enum):
    """Job priority. Only used as a tie-break when selecting due jobs."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"

    @property
    def rank(self) -> int:
        """Integer order used for selection (higher runs first)."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    JobPriority.LOW: 1,
    JobPriority.NORMAL: 2,
    JobPriority.HIGH: 3,
}


@dataclass
class JobOptions:
    """Per-job policy overrides. ``None`` means "use the scheduler default".

    Durations are in seconds.
    """

    priority: JobPriority | None = None
    max_retries: int | None = None
    retry_delay: float | None = None
    timeout: float | None = None

    def __post_init__(self) -> None:
        if self.priority is not None and not isinstance(self.priority, JobPriority):
            try:
                self.priority = JobPriority(self.priority)
            except ValueError:
                raise JobValidationError(
                    f"Unknown priority: {self.priority}",
                    field="priority",
                    value=self.priority,
                ) from None
        if self.max_retries is not None and self.max_retries < 0:
            raise JobValidationError(
                "max_retries must be >= 0", field="max_retries", value=self.max_retries
            )
        if self.retry_delay is not None and self.retry_delay < 0:
            raise JobValidationError(
                "retry_delay must be >= 0", field="retry_delay", value=self.retry_delay
            )
        if self.timeout is not None and self.timeout <= 0:
            raise JobValidationError(
                "timeout must be > 0", field="timeout", value=self.timeout
            )


@dataclass
class JobResult:
    """Outcome reported by a job handler."""

    success: bool
    data: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> JobResult:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str | BaseException | None = None, data: Any = None) -> JobResult:
        return cls(success=False, data=data, error=str(error) if error is not None else None)

    @classmethod
    def coerce(cls, value: Any) -> JobResult:
        """Normalize a handler's return value.

        ``None`` counts as success, a mapping is read for ``success`` /
        ``data`` / ``error`` keys, anything else is treated as success data.
        """
        if isinstance(value, JobResult):
            return value
        if value is None:
            return cls(success=True)
        if isinstance(value, Mapping) and "success" in value:
            error = value.get("error")
            return cls(
                success=bool(value["success"]),
                data=value.get("data"),
                error=str(error) if error is not None else None,
            )
        return cls(success=True, data=value)

    @property
    def error_message(self) -> str:
        return self.error or "Job failed without error details"


@dataclass
class Job:
    """A unit of work.

    ``attempts`` counts handler invocations so far. ``executed_at`` is
    stamped once, on the first run; ``completed_at`` on success;
    ``error_message`` holds the most recent failure reason.
    """

    id: str
    name: str
    scheduled_at: datetime
    data: Any = field(default_factory=dict)
    status: JobStatus = JobStatus.PENDING
    priority: JobPriority = JobPriority.NORMAL
    attempts: int = 0
    max_retries: int = 3
    retry_delay: float = 60.0
    timeout: float = 30.0
    user_id: str | None = None
    executed_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def retries_exhausted(self) -> bool:
        """True once ``attempts`` has used up the ``max_retries + 1`` runs."""
        return self.attempts > self.max_retries

    def to_dict(self) -> dict[str, Any]:
        """Plain dict for JSON output (CLI, event payloads)."""
        return {
            "id": self.id,
            "name": self.name,
            "data": self.data,
            "status": self.status.value,
            "priority": self.priority.value,
            "scheduled_at": _iso(self.scheduled_at),
            "executed_at": _iso(self.executed_at),
            "completed_at": _iso(self.completed_at),
            "error_message": self.error_message,
            "attempts": self.attempts,
            "max_retries": self.max_retries,
            "retry_delay": self.retry_delay,
            "timeout": self.timeout,
            "user_id": self.user_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class RecurringJob:
    """A cron-driven template that spawns Jobs.

    Priority / retry / timeout policy is copied onto every spawned job.
    """

    id: str
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
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def job_options(self) -> JobOptions:
        return JobOptions(
            priority=self.priority,
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            timeout=self.timeout,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "cron_expression": self.cron_expression,
            "data": self.data,
            "priority": self.priority.value,
            "max_retries": self.max_retries,
            "retry_delay": self.retry_delay,
            "timeout": self.timeout,
            "user_id": self.user_id,
            "last_executed_at": _iso(self.last_executed_at),
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None
