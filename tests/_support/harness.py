"""
Helpers for driving a Scheduler by hand in tests.

Tests never wait for a real tick. The scheduler gets a backend whose
interval is an hour, and the test calls ``tick()`` then ``drain()``::

    async with running(scheduler):
        await scheduler.schedule_job("noop", {}, utc_now())
        await tick_and_drain(scheduler)
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta

from jobspine.core.events import JobEvent, SchedulerEvent
from jobspine.core.timestamps import utc_now
from jobspine.scheduling.backends import IntervalTickBackend
from jobspine.scheduling.engine import Scheduler


def idle_backend() -> IntervalTickBackend:
    """A backend that will not tick during a test."""
    return IntervalTickBackend(interval_seconds=3600)


@asynccontextmanager
async def running(scheduler: Scheduler) -> AsyncIterator[Scheduler]:
    await scheduler.initialize()
    try:
        yield scheduler
    finally:
        await scheduler.shutdown(wait=True)


async def tick_and_drain(scheduler: Scheduler, ticks: int = 1) -> int:
    """Run *ticks* ticks, waiting for dispatched jobs after each. Returns total dispatched."""
    dispatched = 0
    for _ in range(ticks):
        dispatched += await scheduler.tick()
        await scheduler.drain()
    return dispatched


def past(seconds: float = 1.0) -> datetime:
    return utc_now() - timedelta(seconds=seconds)


def future(seconds: float = 3600.0) -> datetime:
    return utc_now() + timedelta(seconds=seconds)


class EventRecorder:
    """Collects every event published by a scheduler."""

    def __init__(self, scheduler: Scheduler) -> None:
        self.events: list[JobEvent] = []
        self.subscription = scheduler.on(None, self.events.append)

    @property
    def kinds(self) -> list[SchedulerEvent]:
        return [e.kind for e in self.events]

    def of(self, kind: SchedulerEvent) -> list[JobEvent]:
        return [e for e in self.events if e.kind == kind]
