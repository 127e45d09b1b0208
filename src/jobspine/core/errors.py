"""
Structured error types for jobspine.

Every error the scheduler raises at its API boundary is a
:class:`JobSpineError` carrying a category, a retryable flag and a small
context record, so callers (and the structured logger) can tell a bad
cron expression apart from a lost database connection without parsing
messages.

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       JobSpineError                             │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                 │
        │  JobValidationError        SchedulerError        StorageError   │
        │  (VALIDATION)              (ORCHESTRATION)       (STORAGE)      │
        │       │                         │                     │         │
        │  InvalidCronExpression     NotInitialized        NotConnected   │
        │                            InvalidJobState                      │
        │                            HandlerNotFound                      │
        │                                                                 │
        │  JobTimeoutError (TIMEOUT, also builtin TimeoutError)           │
        │  InvalidTransitionError (INTERNAL, also ValueError)             │
        └─────────────────────────────────────────────────────────────────┘

How the scheduler surfaces each family:
    - Validation errors are raised synchronously from ``schedule_job`` /
      ``schedule_recurring_job``; nothing is persisted.
    - ``HandlerNotFoundError`` and ``JobTimeoutError`` never reach callers;
      the dispatch engine turns them into a failed job with their message.
    - ``InvalidJobStateError`` is raised by ``retry_job`` on a job that is
      not failed.
    - ``StorageError`` propagates from any store call.

Tags:
    error-handling, exception-hierarchy, jobspine, scheduler
"""

from __future__ import annotations

import builtins
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    VALIDATION = "VALIDATION"     # Bad input to a scheduling call
    ORCHESTRATION = "ORCHESTRATION"  # Scheduler state, job state, handlers
    TIMEOUT = "TIMEOUT"           # Handler exceeded its time budget
    STORAGE = "STORAGE"           # Job / schedule store failures
    CONFIG = "CONFIG"             # Invalid settings
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Attributes:
        job_id: Job the error relates to
        job_name: Handler key of that job
        schedule_id: Recurring schedule the error relates to
        metadata: Anything else worth logging
    """

    job_id: str | None = None
    job_name: str | None = None
    schedule_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize non-empty fields for logging."""
        result: dict[str, Any] = {}
        if self.job_id:
            result["job_id"] = self.job_id
        if self.job_name:
            result["job_name"] = self.job_name
        if self.schedule_id:
            result["schedule_id"] = self.schedule_id
        result.update(self.metadata)
        return result


class JobSpineError(Exception):
    """Base class for every error raised by jobspine.

    Subclasses set ``default_category`` and ``default_retryable``; both can
    be overridden per instance.

    Example:
        >>> error = StorageError("database is locked").with_context(job_id="01H...")
        >>> error.to_dict()["category"]
        'STORAGE'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> JobSpineError:
        """Add context to this error (fluent API)."""
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# VALIDATION ERRORS (never retryable)
# =============================================================================


class JobValidationError(JobSpineError):
    """Invalid arguments to a scheduling call."""

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class InvalidCronExpressionError(JobValidationError):
    """Cron expression is not a valid five-field expression."""

    def __init__(self, expression: str, reason: str | None = None):
        message = f"Invalid cron expression: {expression}"
        if reason:
            message += f" ({reason})"
        super().__init__(message, field="cron_expression", value=expression)
        self.expression = expression


# =============================================================================
# SCHEDULER ERRORS
# =============================================================================


class SchedulerError(JobSpineError):
    """Scheduler lifecycle or job state error."""

    default_category = ErrorCategory.ORCHESTRATION
    default_retryable = False


class SchedulerNotInitializedError(SchedulerError):
    """A scheduling or management call was made before ``initialize()``."""

    def __init__(self) -> None:
        super().__init__("Scheduler not initialized. Call initialize() first.")


class InvalidJobStateError(SchedulerError):
    """Operation not permitted for the job's current status."""

    def __init__(self, message: str, *, job_id: str | None = None, status: str | None = None):
        super().__init__(message, context=ErrorContext(job_id=job_id))
        self.status = status


class HandlerNotFoundError(SchedulerError):
    """No handler registered under a job's name."""

    def __init__(self, job_name: str):
        super().__init__(
            f"No handler registered for job type: {job_name}",
            context=ErrorContext(job_name=job_name),
        )
        self.job_name = job_name


class InvalidTransitionError(JobSpineError, ValueError):
    """Raised when an illegal job status transition is attempted."""

    default_category = ErrorCategory.INTERNAL

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid JobStatus transition: {current} → {target}")


# =============================================================================
# EXECUTION ERRORS
# =============================================================================


class JobTimeoutError(JobSpineError, builtins.TimeoutError):
    """A handler did not finish within the job's timeout."""

    default_category = ErrorCategory.TIMEOUT
    default_retryable = True

    def __init__(self, timeout: float, *, job_id: str | None = None):
        super().__init__(
            f"Job timed out after {timeout:g}s",
            context=ErrorContext(job_id=job_id),
        )
        self.timeout = timeout


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StorageError(JobSpineError):
    """Job or schedule store failure."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


class StorageNotConnectedError(StorageError):
    """Store used before ``connect()`` or after ``close()``."""

    def __init__(self, store: str):
        super().__init__(f"{store} is not connected")
