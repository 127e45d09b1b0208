"""Core primitives: models, errors, events, settings, logging, timestamps."""

from jobspine.core.errors import (
    ErrorCategory,
    HandlerNotFoundError,
    InvalidCronExpressionError,
    InvalidJobStateError,
    InvalidTransitionError,
    JobSpineError,
    JobTimeoutError,
    JobValidationError,
    SchedulerError,
    SchedulerNotInitializedError,
    StorageError,
    StorageNotConnectedError,
)
from jobspine.core.models import (
    Job,
    JobOptions,
    JobPriority,
    JobResult,
    JobStatus,
    RecurringJob,
    validate_job_transition,
)

__all__ = [
    # Models
    "Job",
    "JobOptions",
    "JobPriority",
    "JobResult",
    "JobStatus",
    "RecurringJob",
    "validate_job_transition",
    # Errors
    "ErrorCategory",
    "JobSpineError",
    "JobValidationError",
    "InvalidCronExpressionError",
    "SchedulerError",
    "SchedulerNotInitializedError",
    "InvalidJobStateError",
    "HandlerNotFoundError",
    "InvalidTransitionError",
    "JobTimeoutError",
    "StorageError",
    "StorageNotConnectedError",
]
