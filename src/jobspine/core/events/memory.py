"""
In-memory event bus implementation.

Single-process delivery: ``publish`` calls every matching handler
concurrently and returns when all of them have finished. Events are not
persisted.

Tags:
    jobspine, events, in-memory, asyncio, testing
"""

from __future__ import annotations

import asyncio
import inspect
import uuid

from jobspine.core.events import (
    EventHandler,
    JobEvent,
    SchedulerEvent,
    Subscription,
)
from jobspine.core.logging import get_logger

__all__ = ["InMemoryEventBus"]

logger = get_logger(__name__)


class InMemoryEventBus:
    """In-process event bus.

    Handlers may be coroutine functions or plain callables. Exceptions
    raised by a handler are logged and do not stop delivery to the others.

    Example::

        bus = InMemoryEventBus()

        def log_event(event: JobEvent) -> None:
            print(f"Event: {event.kind.value} {event.job.id}")

        sub = bus.subscribe(None, log_event)
        await bus.publish(JobEvent(SchedulerEvent.JOB_STARTED, job))
        sub.dispose()
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, Subscription] = {}
        self._closed = False

    async def publish(self, event: JobEvent) -> None:
        """Publish an event to all matching subscribers."""
        if self._closed:
            return

        targets = [s for s in self._subscriptions.values() if event.matches(s.kind)]
        if not targets:
            return

        async def safe_call(sub: Subscription) -> None:
            try:
                outcome = sub.handler(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.warning(
                    "event_handler_error",
                    subscription_id=sub.id,
                    event_kind=event.kind.value,
                    job_id=event.job.id,
                    error=str(e),
                )

        await asyncio.gather(*(safe_call(sub) for sub in targets))

    def subscribe(
        self,
        kind: SchedulerEvent | None,
        handler: EventHandler,
    ) -> Subscription:
        """Subscribe to one event kind, or all kinds with ``None``.

        Returns:
            Subscription handle; call ``dispose()`` to unsubscribe
        """
        if kind is not None and not isinstance(kind, SchedulerEvent):
            kind = SchedulerEvent(kind)

        sub = Subscription(
            sub_id=f"sub_{uuid.uuid4().hex[:12]}",
            kind=kind,
            handler=handler,
            bus=self,
        )
        self._subscriptions[sub.id] = sub
        return sub

    def unsubscribe(self, subscription_id: str) -> None:
        """Remove a subscription."""
        self._subscriptions.pop(subscription_id, None)

    def close(self) -> None:
        """Mark bus as closed and clear subscriptions."""
        self._closed = True
        self._subscriptions.clear()

    @property
    def subscription_count(self) -> int:
        """Number of active subscriptions."""
        return len(self._subscriptions)
