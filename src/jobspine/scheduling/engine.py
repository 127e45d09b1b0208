"""Scheduler - dispatch engine and management API.

The Scheduler is the central coordinator. It combines a tick backend
(timing), a job store and a recurring job store (data), a handler
registry (execution targets) and an event bus (observers).

Tags:
    jobspine, scheduling, dispatch, beat-as-poller, engine


┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULER ARCHITECTURE                                                       │
│                                                                               │
│  ┌────────────────────────────────────────────────────────────────────┐      │
│  │                         Scheduler                                  │      │
│  │                                                                    │      │
│  │   Dependencies:                                                    │      │
│  │   ┌───────────────┐ ┌───────────────┐ ┌─────────────┐ ┌─────────┐ │      │
│  │   │ TickBackend   │ │ JobStore /    │ │ Handler     │ │ Event   │ │      │
│  │   │ (timing)      │ │ RecurringStore│ │ Registry    │ │ Bus     │ │      │
│  │   └───────┬───────┘ └───────┬───────┘ └──────┬──────┘ └────┬────┘ │      │
│  │           ▼                 ▼                ▼             ▼      │      │
│  │   ┌────────────────────────────────────────────────────────────┐ │      │
│  │   │                        tick()                              │ │      │
│  │   │                                                            │ │      │
│  │   │   1. _advance_recurring_jobs()                             │ │      │
│  │   │      └── at most one new job per active schedule           │ │      │
│  │   │   2. process_next_jobs()                                   │ │      │
│  │   │      ├── slots = max_concurrent_jobs - len(active)         │ │      │
│  │   │      ├── list_pending_due(now, slots)                      │ │      │
│  │   │      └── spawn _execute_job(job) task per job              │ │      │
│  │   └────────────────────────────────────────────────────────────┘ │      │
│  │                                                                    │      │
│  │   _execute_job(job):                                               │      │
│  │      attempts += 1 → RUNNING → handler raced against timeout      │      │
│  │      ├── success  → COMPLETED            (job_completed)          │      │
│  │      └── failure  → FAILED               (job_failed)             │      │
│  │                     └── budget left → PENDING  (job_retried)      │      │
│  │      finally: job id leaves the active set                        │      │
│  └────────────────────────────────────────────────────────────────────┘      │
│                                                                               │
│  tick() returns once jobs are dispatched, not once they finish, so           │
│  in-flight jobs from several ticks may overlap. The active set is the        │
│  only admission control.                                                      │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from jobspine.core.errors import (
    HandlerNotFoundError,
    InvalidJobStateError,
    JobTimeoutError,
    JobValidationError,
    SchedulerNotInitializedError,
)
from jobspine.core.events import EventBus, EventHandler, JobEvent, SchedulerEvent, Subscription
from jobspine.core.events.memory import InMemoryEventBus
from jobspine.core.logging import LogContext, get_logger
from jobspine.core.models import (
    Job,
    JobOptions,
    JobResult,
    JobStatus,
    RecurringJob,
    validate_job_transition,
)
from jobspine.core.settings import SchedulerSettings
from jobspine.core.timestamps import ensure_utc, utc_now
from jobspine.execution.retry import RetryPolicy
from jobspine.execution.timeout import run_with_timeout
from jobspine.scheduling.backends import create_tick_backend
from jobspine.scheduling.cron import next_run_time, validate_cron_expression
from jobspine.scheduling.protocol import TickBackend
from jobspine.scheduling.registry import HandlerRegistry, JobHandler
from jobspine.storage.protocols import (
    JobCreate,
    JobStore,
    RecurringJobCreate,
    RecurringJobStore,
    RecurringJobUpdate,
)

logger = get_logger(__name__)


@dataclass
class SchedulerStats:
    """Counters for the scheduler since construction."""

    ticks: int = 0
    dispatched: int = 0
    completed: int = 0
    failed: int = 0
    retried: int = 0
    last_tick: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ticks": self.ticks,
            "dispatched": self.dispatched,
            "completed": self.completed,
            "failed": self.failed,
            "retried": self.retried,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "last_error": self.last_error,
        }


@dataclass
class SchedulerHealth:
    """Health status for the scheduler."""

    healthy: bool
    initialized: bool
    backend: dict[str, Any]
    active_jobs: int = 0
    max_concurrent_jobs: int = 0
    handlers: int = 0
    stats: SchedulerStats = field(default_factory=SchedulerStats)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "healthy": self.healthy,
            "initialized": self.initialized,
            "backend": self.backend,
            "active_jobs": self.active_jobs,
            "max_concurrent_jobs": self.max_concurrent_jobs,
            "handlers": self.handlers,
            "stats": self.stats.to_dict(),
        }


class Scheduler:
    """Job scheduler using the beat-as-poller pattern.

    Example:
        >>> from jobspine import Scheduler, SchedulerSettings
        >>> from jobspine.storage import SqliteDatabase, SqliteJobStore, SqliteRecurringJobStore
        >>>
        >>> db = SqliteDatabase("jobs.db")
        >>> scheduler = Scheduler(
        ...     SqliteJobStore(db),
        ...     SqliteRecurringJobStore(db),
        ...     settings=SchedulerSettings(max_concurrent_jobs=5),
        ... )
        >>> scheduler.register_job_handler("send_email", send_email)
        >>> await scheduler.initialize()
        >>> await scheduler.schedule_job("send_email", {"to": "a@b.c"}, utc_now())
        >>>
        >>> # Later...
        >>> await scheduler.shutdown()
    """

    def __init__(
        self,
        job_store: JobStore,
        schedule_store: RecurringJobStore,
        settings: SchedulerSettings | None = None,
        *,
        registry: HandlerRegistry | None = None,
        event_bus: EventBus | None = None,
        backend: TickBackend | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            job_store: Persistence for concrete jobs
            schedule_store: Persistence for recurring schedules
            settings: Configuration (default: read from environment)
            registry: Handler registry (default: a fresh one)
            event_bus: Lifecycle event bus (default: in-memory)
            backend: Tick driver (default: built from settings)
            retry_policy: Automatic retry policy (default: from settings)
        """
        self.settings = settings or SchedulerSettings()
        self.job_store = job_store
        self.schedule_store = schedule_store
        self.registry = registry or HandlerRegistry()
        self.events = event_bus or InMemoryEventBus()
        self.backend = backend or create_tick_backend(self.settings)
        self.retry_policy = retry_policy or RetryPolicy(
            honor_retry_delay=self.settings.honor_retry_delay
        )

        self._active_jobs: set[str] = set()
        self._tasks: set[asyncio.Task] = set()
        self._stats = SchedulerStats()
        self._initialized = False

    # === Lifecycle ===

    async def initialize(self) -> None:
        """Connect storage and start the tick backend. Idempotent."""
        if self._initialized:
            return

        self.job_store.connect()
        self.schedule_store.connect()
        self._active_jobs.clear()
        self.backend.start(self.tick)
        self._initialized = True
        logger.info(
            "scheduler_initialized",
            backend=self.backend.name,
            max_concurrent_jobs=self.settings.max_concurrent_jobs,
        )

    async def shutdown(self, wait: bool = False) -> None:
        """Stop the tick backend and disconnect storage. Idempotent.

        Args:
            wait: Also wait for in-flight jobs before disconnecting. By
                default they are left running; their later store calls
                fail and are logged.
        """
        if not self._initialized:
            return

        self._initialized = False
        await self.backend.stop()
        if wait:
            await self.drain()
        elif self._tasks:
            logger.warning("scheduler_shutdown_with_jobs_in_flight", in_flight=len(self._active_jobs))
        self.job_store.close()
        self.schedule_store.close()
        logger.info("scheduler_shutdown", stats=self._stats.to_dict())

    async def drain(self) -> None:
        """Wait until every in-flight job task has finished."""
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    @property
    def is_running(self) -> bool:
        return self._initialized

    @property
    def active_job_count(self) -> int:
        return len(self._active_jobs)

    @property
    def stats(self) -> SchedulerStats:
        return self._stats

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise SchedulerNotInitializedError()

    # === Handlers & Events ===

    def register_job_handler(
        self,
        name: str,
        handler: JobHandler,
        description: str | None = None,
    ) -> None:
        """Register the handler for jobs named *name*. Overwrites silently."""
        self.registry.register(name, handler, description=description)

    def on(self, kind: SchedulerEvent | str | None, callback: EventHandler) -> Subscription:
        """Subscribe *callback* to one event kind (``None`` for all)."""
        return self.events.subscribe(kind, callback)

    async def _publish(
        self,
        kind: SchedulerEvent,
        job: Job,
        result: JobResult | None = None,
    ) -> None:
        await self.events.publish(JobEvent(kind=kind, job=job, result=result))

    # === Tick Processing ===

    async def tick(self) -> int:
        """One scheduler tick: advance recurring jobs, then dispatch due jobs.

        Called by the backend. Returns the number of jobs dispatched.
        """
        self._ensure_initialized()
        self._stats.ticks += 1
        self._stats.last_tick = utc_now()

        try:
            await self._advance_recurring_jobs()
            return await self.process_next_jobs()
        except Exception as e:
            self._stats.last_error = str(e)
            raise

    async def process_next_jobs(self) -> int:
        """Dispatch due jobs into the free concurrency slots.

        Returns without waiting for the dispatched jobs to finish.
        """
        self._ensure_initialized()
        available = self.settings.max_concurrent_jobs - len(self._active_jobs)
        if available <= 0:
            logger.debug("dispatch_skipped", reason="no_free_slots", active=len(self._active_jobs))
            return 0

        due = self.job_store.list_pending_due(utc_now(), available)
        dispatched = 0
        for job in due:
            if job.id in self._active_jobs:
                continue
            self._active_jobs.add(job.id)
            task = asyncio.create_task(self._execute_job(job), name=f"jobspine-job-{job.id}")
            self._tasks.add(task)
            task.add_done_callback(self._on_task_done)
            dispatched += 1

        if dispatched:
            self._stats.dispatched += dispatched
            logger.info("jobs_dispatched", count=dispatched, active=len(self._active_jobs))
        return dispatched

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._stats.last_error = str(error)
            logger.error(
                "job_task_crashed",
                task=task.get_name(),
                error=str(error),
                error_type=type(error).__name__,
            )

    async def _advance_recurring_jobs(self) -> None:
        now = utc_now()
        for schedule in self.schedule_store.list_active():
            try:
                await self._advance_schedule(schedule, now)
            except Exception as e:
                logger.exception(
                    "recurring_job_advance_failed",
                    schedule_id=schedule.id,
                    job_name=schedule.name,
                    error=str(e),
                )

    async def _advance_schedule(self, schedule: RecurringJob, now: datetime) -> Job | None:
        """Spawn at most one job for *schedule*; no backfill of missed runs."""
        if schedule.last_executed_at is None:
            run_at = next_run_time(schedule.cron_expression, now)
        else:
            run_at = next_run_time(schedule.cron_expression, schedule.last_executed_at)
            if run_at > now:
                return None

        job = self._spawn_occurrence(schedule, run_at)
        self.schedule_store.set_last_executed(schedule.id, now)
        logger.info(
            "recurring_job_spawned",
            schedule_id=schedule.id,
            job_id=job.id,
            scheduled_at=job.scheduled_at.isoformat(),
        )
        await self._publish(SchedulerEvent.JOB_SCHEDULED, job)
        return job

    def _spawn_occurrence(self, schedule: RecurringJob, run_at: datetime) -> Job:
        options = schedule.job_options()
        return self.job_store.create(
            JobCreate(
                name=schedule.name,
                scheduled_at=run_at,
                data=schedule.data,
                priority=options.priority,
                max_retries=options.max_retries,
                retry_delay=options.retry_delay,
                timeout=options.timeout,
                user_id=schedule.user_id,
            )
        )

    # === Per-job Execution ===

    async def _execute_job(self, job: Job) -> None:
        try:
            async with LogContext(job_id=job.id, job_name=job.name):
                await self._run_job(job)
        finally:
            self._active_jobs.discard(job.id)

    async def _run_job(self, job: Job) -> None:
        current = self.job_store.increment_attempts(job.id)
        if current is None:
            logger.warning("job_vanished_before_run")
            return

        validate_job_transition(current.status, JobStatus.RUNNING)
        running = self.job_store.update_status(job.id, JobStatus.RUNNING) or current
        logger.info("job_started", attempt=running.attempts, max_retries=running.max_retries)
        await self._publish(SchedulerEvent.JOB_STARTED, running)

        result = await self._invoke_handler(running)

        if result.success:
            completed = self.job_store.update_status(job.id, JobStatus.COMPLETED) or running
            self._stats.completed += 1
            logger.info("job_completed", attempts=completed.attempts)
            await self._publish(SchedulerEvent.JOB_COMPLETED, completed, result)
        else:
            await self._handle_failure(running, result)

    async def _invoke_handler(self, job: Job) -> JobResult:
        """Run the job's handler and normalize every outcome to a JobResult."""
        handler = self.registry.get(job.name)
        if handler is None:
            error = HandlerNotFoundError(job.name)
            logger.warning("handler_not_found")
            return JobResult.fail(error.message)

        try:
            value = await run_with_timeout(handler(job), job.timeout, job_id=job.id)
        except JobTimeoutError as e:
            return JobResult.fail(e.message)
        except Exception as e:
            logger.warning("job_handler_raised", error=str(e), error_type=type(e).__name__)
            return JobResult.fail(str(e) or type(e).__name__)
        return JobResult.coerce(value)

    async def _handle_failure(self, job: Job, result: JobResult) -> None:
        message = result.error_message
        failed = self.job_store.update_status(job.id, JobStatus.FAILED, error_message=message) or job
        self._stats.failed += 1
        logger.warning(
            "job_failed",
            attempts=failed.attempts,
            max_retries=failed.max_retries,
            error=message,
        )
        await self._publish(SchedulerEvent.JOB_FAILED, failed, result)

        if not self.retry_policy.should_retry(failed):
            logger.info("job_retries_exhausted", attempts=failed.attempts)
            return

        due = self.retry_policy.next_due(failed, utc_now())
        if due is not None:
            self.job_store.reschedule(failed.id, due)
        retried = self.job_store.update_status(failed.id, JobStatus.PENDING) or failed
        self._stats.retried += 1
        logger.info("job_retry_scheduled", scheduled_at=retried.scheduled_at.isoformat())
        await self._publish(SchedulerEvent.JOB_RETRIED, retried, result)

    # === Job Management ===

    def _resolve_options(self, options: JobOptions | Mapping[str, Any] | None) -> JobOptions:
        if options is None:
            options = JobOptions()
        elif isinstance(options, Mapping):
            try:
                options = JobOptions(**options)
            except TypeError as e:
                raise JobValidationError(f"Unknown job option: {e}", field="options") from e

        s = self.settings
        return JobOptions(
            priority=options.priority if options.priority is not None else s.default_priority,
            max_retries=(
                options.max_retries if options.max_retries is not None else s.default_retry_attempts
            ),
            retry_delay=(
                options.retry_delay if options.retry_delay is not None else s.default_retry_delay
            ),
            timeout=options.timeout if options.timeout is not None else s.default_timeout,
        )

    @staticmethod
    def _require_name(name: Any) -> str:
        if not isinstance(name, str) or not name.strip():
            raise JobValidationError("Job name is required", field="name", value=name)
        return name

    async def schedule_job(
        self,
        name: str,
        data: Any,
        scheduled_at: datetime,
        options: JobOptions | Mapping[str, Any] | None = None,
        user_id: str | None = None,
    ) -> Job:
        """Create a pending job.

        The handler for *name* is not looked up here; an unregistered
        name fails when the job comes due.

        Raises:
            SchedulerNotInitializedError: Before ``initialize()``
            JobValidationError: Missing name or due time, or bad options
        """
        self._ensure_initialized()
        self._require_name(name)
        if not isinstance(scheduled_at, datetime):
            raise JobValidationError(
                "scheduled_at must be a datetime", field="scheduled_at", value=scheduled_at
            )
        resolved = self._resolve_options(options)

        job = self.job_store.create(
            JobCreate(
                name=name,
                scheduled_at=ensure_utc(scheduled_at),
                data=data if data is not None else {},
                priority=resolved.priority,
                max_retries=resolved.max_retries,
                retry_delay=resolved.retry_delay,
                timeout=resolved.timeout,
                user_id=user_id,
            )
        )
        logger.info(
            "job_scheduled",
            job_id=job.id,
            job_name=name,
            scheduled_at=job.scheduled_at.isoformat(),
            priority=job.priority.value,
        )
        await self._publish(SchedulerEvent.JOB_SCHEDULED, job)
        return job

    async def schedule_recurring_job(
        self,
        name: str,
        data: Any,
        cron_expression: str,
        options: JobOptions | Mapping[str, Any] | None = None,
        user_id: str | None = None,
    ) -> RecurringJob:
        """Create a recurring schedule and its first occurrence.

        Raises:
            SchedulerNotInitializedError: Before ``initialize()``
            InvalidCronExpressionError: Before anything is stored
        """
        self._ensure_initialized()
        self._require_name(name)
        expression = validate_cron_expression(cron_expression)
        resolved = self._resolve_options(options)

        now = utc_now()
        schedule = self.schedule_store.create(
            RecurringJobCreate(
                name=name,
                cron_expression=expression,
                data=data if data is not None else {},
                priority=resolved.priority,
                max_retries=resolved.max_retries,
                retry_delay=resolved.retry_delay,
                timeout=resolved.timeout,
                user_id=user_id,
                last_executed_at=now,
            )
        )
        job = self._spawn_occurrence(schedule, next_run_time(expression, now))
        logger.info(
            "recurring_job_scheduled",
            schedule_id=schedule.id,
            job_name=name,
            cron_expression=expression,
            first_run=job.scheduled_at.isoformat(),
        )
        await self._publish(SchedulerEvent.JOB_SCHEDULED, job)
        return schedule

    async def get_job(self, job_id: str) -> Job | None:
        self._ensure_initialized()
        return self.job_store.get(job_id)

    async def cancel_job(self, job_id: str) -> bool:
        """Delete a job that is still pending. False for any other state."""
        self._ensure_initialized()
        job = self.job_store.get(job_id)
        if job is None or job.status != JobStatus.PENDING:
            return False
        # Dispatched this tick but not yet marked running
        if job_id in self._active_jobs:
            return False

        if not self.job_store.delete(job_id):
            return False
        logger.info("job_cancelled", job_id=job_id, job_name=job.name)
        await self._publish(SchedulerEvent.JOB_CANCELLED, job)
        return True

    async def retry_job(self, job_id: str) -> Job | None:
        """Move a failed job back to pending. ``attempts`` and ``scheduled_at`` are kept.

        Returns:
            The updated job, or None if no such job exists

        Raises:
            InvalidJobStateError: If the job is not failed
        """
        self._ensure_initialized()
        job = self.job_store.get(job_id)
        if job is None:
            return None
        if job.status != JobStatus.FAILED:
            raise InvalidJobStateError(
                f"Cannot retry job {job_id}: status is {job.status.value}, expected failed",
                job_id=job_id,
                status=job.status.value,
            )

        validate_job_transition(job.status, JobStatus.PENDING)
        updated = self.job_store.update_status(job_id, JobStatus.PENDING)
        if updated is None:
            return None
        logger.info("job_retry_requested", job_id=job_id, attempts=updated.attempts)
        await self._publish(SchedulerEvent.JOB_RETRIED, updated)
        return updated

    async def get_jobs_by_user(
        self,
        user_id: str,
        status: JobStatus | str | None = None,
        limit: int = 50,
    ) -> list[Job]:
        self._ensure_initialized()
        if status is not None:
            status = JobStatus(status)
        return self.job_store.list_by_user(user_id, status=status, limit=limit)

    async def get_failed_jobs(self, user_id: str | None = None, limit: int = 50) -> list[Job]:
        self._ensure_initialized()
        return self.job_store.list_failed(user_id=user_id, limit=limit)

    # === Recurring Job Management ===

    async def get_recurring_job(self, schedule_id: str) -> RecurringJob | None:
        self._ensure_initialized()
        return self.schedule_store.get(schedule_id)

    async def get_recurring_jobs_by_user(
        self,
        user_id: str,
        is_active: bool | None = None,
    ) -> list[RecurringJob]:
        self._ensure_initialized()
        return self.schedule_store.list_by_user(user_id, is_active=is_active)

    async def update_recurring_job(
        self,
        schedule_id: str,
        update: RecurringJobUpdate,
    ) -> RecurringJob | None:
        """Apply a partial update.

        New cron and policy values are validated before anything is stored.

        Raises:
            InvalidCronExpressionError: For a bad ``cron_expression``
            JobValidationError: For a blank name or an out-of-range policy
        """
        self._ensure_initialized()
        if update.cron_expression is not None:
            update.cron_expression = validate_cron_expression(update.cron_expression)
        if update.name is not None:
            self._require_name(update.name)

        policy = JobOptions(
            priority=update.priority,
            max_retries=update.max_retries,
            retry_delay=update.retry_delay,
            timeout=update.timeout,
        )
        update.priority = policy.priority
        update.max_retries = policy.max_retries
        update.retry_delay = policy.retry_delay
        update.timeout = policy.timeout

        schedule = self.schedule_store.update(schedule_id, update)
        if schedule is not None:
            logger.info("recurring_job_updated", schedule_id=schedule_id, changes=sorted(update.changes()))
        return schedule

    async def pause_recurring_job(self, schedule_id: str) -> bool:
        """Stop spawning jobs for a schedule. False if not found."""
        schedule = await self.update_recurring_job(schedule_id, RecurringJobUpdate(is_active=False))
        return schedule is not None

    async def resume_recurring_job(self, schedule_id: str) -> bool:
        """Resume a paused schedule. False if not found."""
        schedule = await self.update_recurring_job(schedule_id, RecurringJobUpdate(is_active=True))
        return schedule is not None

    async def delete_recurring_job(self, schedule_id: str) -> bool:
        """Delete a schedule. Jobs it already spawned are left alone."""
        self._ensure_initialized()
        deleted = self.schedule_store.delete(schedule_id)
        if deleted:
            logger.info("recurring_job_deleted", schedule_id=schedule_id)
        return deleted

    # === Health & Stats ===

    def health(self) -> SchedulerHealth:
        """Get scheduler health status."""
        backend = self.backend.health()
        return SchedulerHealth(
            healthy=self._initialized and bool(backend.get("healthy", False)),
            initialized=self._initialized,
            backend=backend,
            active_jobs=len(self._active_jobs),
            max_concurrent_jobs=self.settings.max_concurrent_jobs,
            handlers=len(self.registry),
            stats=self._stats,
        )
