"""jobspine - an asyncio job scheduler.

Jobs are persisted through a store, picked up by a periodic tick once
due, and dispatched to registered handlers under a global concurrency
cap, per-job timeouts and bounded retries. Recurring jobs are driven by
five-field cron expressions.

Quick start::

    from jobspine import Scheduler, SchedulerSettings
    from jobspine.storage import InMemoryJobStore, InMemoryRecurringJobStore

    scheduler = Scheduler(InMemoryJobStore(), InMemoryRecurringJobStore())
    scheduler.register_job_handler("greet", lambda job: print(job.data["name"]))
    await scheduler.initialize()
    await scheduler.schedule_job("greet", {"name": "world"}, utc_now())
"""

from jobspine.core.errors import (
    InvalidCronExpressionError,
    InvalidJobStateError,
    JobSpineError,
    JobValidationError,
    SchedulerNotInitializedError,
)
from jobspine.core.events import JobEvent, SchedulerEvent, Subscription
from jobspine.core.models import (
    Job,
    JobOptions,
    JobPriority,
    JobResult,
    JobStatus,
    RecurringJob,
)
from jobspine.core.settings import SchedulerSettings
from jobspine.scheduling.engine import Scheduler
from jobspine.scheduling.registry import HandlerRegistry

__version__ = "0.1.0"

__all__ = [
    "Scheduler",
    "SchedulerSettings",
    "HandlerRegistry",
    "Job",
    "JobOptions",
    "JobPriority",
    "JobResult",
    "JobStatus",
    "RecurringJob",
    "JobEvent",
    "SchedulerEvent",
    "Subscription",
    "JobSpineError",
    "JobValidationError",
    "InvalidCronExpressionError",
    "InvalidJobStateError",
    "SchedulerNotInitializedError",
]
