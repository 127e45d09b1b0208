"""Scheduler lifecycle events.

Why This Package Exists
-----------------------
Observers (metrics exporters, notifiers, tests) need to know when a job
is scheduled, starts, completes, fails, is retried or is cancelled,
without the dispatch engine importing any of them. The engine publishes
a :class:`JobEvent` to an :class:`EventBus`; observers subscribe by
:class:`SchedulerEvent` kind and get back a :class:`Subscription` handle
they dispose of when done.

Usage::

    from jobspine.core.events import SchedulerEvent
    from jobspine.core.events.memory import InMemoryEventBus

    bus = InMemoryEventBus()

    async def on_failed(event: JobEvent) -> None:
        print(f"{event.job.id} failed: {event.result.error}")

    with bus.subscribe(SchedulerEvent.JOB_FAILED, on_failed):
        await bus.publish(JobEvent(SchedulerEvent.JOB_FAILED, job, result))

Modules
-------
memory      InMemoryEventBus -- single process, delivery on publish
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from jobspine.core.timestamps import utc_now

if TYPE_CHECKING:
    from jobspine.core.models import Job, JobResult

__all__ = [
    "SchedulerEvent",
    "JobEvent",
    "EventHandler",
    "EventBus",
    "Subscription",
]


# ── Event Model ──────────────────────────────────────────────────────────


class SchedulerEvent(str, Enum):
    """Kinds of job lifecycle events."""

    JOB_SCHEDULED = "job_scheduled"
    JOB_STARTED = "job_started"
    JOB_COMPLETED = "job_completed"
    JOB_FAILED = "job_failed"
    JOB_RETRIED = "job_retried"
    JOB_CANCELLED = "job_cancelled"


@dataclass(frozen=True)
class JobEvent:
    """Payload delivered to subscribers.

    Attributes:
        kind: Which lifecycle transition happened
        job: Snapshot of the job at publish time
        result: Handler outcome (completed / failed events only)
        timestamp: When the event was published (UTC)
        event_id: Unique event identifier
    """

    kind: SchedulerEvent
    job: Job
    result: JobResult | None = None
    timestamp: datetime = field(default_factory=utc_now)
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def matches(self, kind: SchedulerEvent | None) -> bool:
        """``None`` matches every kind."""
        return kind is None or self.kind == kind


# ── Type Aliases ─────────────────────────────────────────────────────────

EventHandler = Callable[[JobEvent], Awaitable[None] | None]


# ── Subscription handle ──────────────────────────────────────────────────


class Subscription:
    """Disposable handle returned by :meth:`EventBus.subscribe`.

    Usable directly (``sub.dispose()``) or as a context manager.
    Disposing twice is harmless.
    """

    def __init__(
        self,
        sub_id: str,
        kind: SchedulerEvent | None,
        handler: EventHandler,
        bus: EventBus,
    ) -> None:
        self.id = sub_id
        self.kind = kind
        self.handler = handler
        self._bus = bus
        self._disposed = False

    @property
    def active(self) -> bool:
        return not self._disposed

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._bus.unsubscribe(self.id)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *args) -> None:
        self.dispose()

    def __repr__(self) -> str:
        kind = self.kind.value if self.kind else "*"
        return f"Subscription({self.id!r}, kind={kind!r}, active={self.active})"


# ── EventBus Protocol ────────────────────────────────────────────────────


@runtime_checkable
class EventBus(Protocol):
    """Protocol for event bus implementations."""

    async def publish(self, event: JobEvent) -> None:
        """Deliver an event to every matching subscriber.

        Subscriber errors must not propagate to the publisher.
        """
        ...

    def subscribe(
        self,
        kind: SchedulerEvent | None,
        handler: EventHandler,
    ) -> Subscription:
        """Subscribe to one event kind, or to all kinds with ``None``."""
        ...

    def unsubscribe(self, subscription_id: str) -> None:
        """Remove a subscription by id. Unknown ids are ignored."""
        ...

    def close(self) -> None:
        """Drop all subscriptions; later publishes are no-ops."""
        ...
