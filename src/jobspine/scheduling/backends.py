"""Asyncio tick backends.

┌──────────────────────────────────────────────────────────────────────────────┐
│  ASYNCIO TICK BACKEND                                                         │
│                                                                               │
│   start(tick_callback)                                                        │
│      │                                                                        │
│      ▼                                                                        │
│   ┌─────────────────────────────────────────────────────────┐                │
│   │              asyncio task (loop)                        │                │
│   │                                                         │                │
│   │   while not await stop_event.wait(next_delay()):        │                │
│   │       tick_count += 1                                   │                │
│   │       last_tick = now()                                 │                │
│   │       await tick_callback()      ◄─────── Invoke        │                │
│   │                                                         │                │
│   └─────────────────────────────────────────────────────────┘                │
│                                                                               │
│   stop()  →  stop_event.set(); await task                                     │
│                                                                               │
│  The loop lives on the caller's event loop, not in a thread with its own     │
│  asyncio.run(), so job tasks spawned during a tick keep running after the    │
│  tick returns.                                                                │
└──────────────────────────────────────────────────────────────────────────────┘

Backends:
    IntervalTickBackend  fixed period in seconds
    CronTickBackend      fires on each boundary of a cron expression
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import TYPE_CHECKING, Any

from jobspine.core.logging import get_logger
from jobspine.core.timestamps import utc_now
from jobspine.scheduling.cron import next_cron_fire, validate_cron_expression
from jobspine.scheduling.protocol import BackendHealth, TickCallback

if TYPE_CHECKING:
    from jobspine.core.settings import SchedulerSettings

logger = get_logger(__name__)


class _AsyncioTickBackend:
    """Shared loop for the asyncio backends. Subclasses supply ``_next_delay``."""

    name = "asyncio"

    def __init__(self, run_immediately: bool = False) -> None:
        self._run_immediately = run_immediately
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task | None = None
        self._tick_count = 0
        self._last_tick: datetime | None = None
        self._started = False

    def _next_delay(self) -> float:
        raise NotImplementedError

    def start(self, tick_callback: TickCallback) -> None:
        """Start the tick loop on the running event loop."""
        if self._started:
            logger.warning("tick_backend_already_started", backend=self.name)
            return

        loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        self._task = loop.create_task(self._loop(tick_callback), name=f"jobspine-{self.name}-ticker")
        self._started = True

    async def _loop(self, tick_callback: TickCallback) -> None:
        logger.info("tick_backend_started", backend=self.name, **self._describe())
        first = True
        while True:
            delay = 0.0 if (first and self._run_immediately) else self._next_delay()
            first = False
            if await self._wait_for_stop(delay):
                break

            self._tick_count += 1
            self._last_tick = utc_now()
            try:
                await tick_callback()
            except Exception as e:
                logger.exception("tick_failed", backend=self.name, error=str(e))

        logger.info("tick_backend_stopped", backend=self.name, tick_count=self._tick_count)

    async def _wait_for_stop(self, delay: float) -> bool:
        """Sleep *delay* seconds. True if stop was requested meanwhile."""
        assert self._stop_event is not None
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=max(delay, 0.0))
        except TimeoutError:
            return self._stop_event.is_set()
        return True

    async def stop(self) -> None:
        """Stop the tick loop, letting a tick in progress finish."""
        if not self._started:
            return

        assert self._stop_event is not None
        self._stop_event.set()
        if self._task is not None:
            await self._task
        self._task = None
        self._started = False

    def _describe(self) -> dict[str, Any]:
        return {}

    @property
    def is_running(self) -> bool:
        return self._started and self._task is not None and not self._task.done()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def last_tick(self) -> datetime | None:
        return self._last_tick

    def health(self) -> dict[str, Any]:
        """Return backend health status."""
        return self.get_health().to_dict()

    def get_health(self) -> BackendHealth:
        """Return structured health status."""
        return BackendHealth(
            healthy=self.is_running,
            backend=self.name,
            tick_count=self._tick_count,
            last_tick=self._last_tick,
            extra=self._describe(),
        )


class IntervalTickBackend(_AsyncioTickBackend):
    """Ticks every ``interval_seconds``.

    Example:
        >>> backend = IntervalTickBackend(interval_seconds=5.0)
        >>> backend.start(scheduler.tick)
        >>> # ... later ...
        >>> await backend.stop()
    """

    name = "interval"

    def __init__(self, interval_seconds: float = 60.0, run_immediately: bool = False) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        super().__init__(run_immediately=run_immediately)
        self.interval_seconds = interval_seconds

    def _next_delay(self) -> float:
        return self.interval_seconds

    def _describe(self) -> dict[str, Any]:
        return {"interval_seconds": self.interval_seconds}


class CronTickBackend(_AsyncioTickBackend):
    """Ticks on every boundary of a cron expression (default: each minute)."""

    name = "cron"

    def __init__(self, expression: str = "* * * * *", run_immediately: bool = False) -> None:
        super().__init__(run_immediately=run_immediately)
        self.expression = validate_cron_expression(expression)

    def _next_delay(self) -> float:
        now = utc_now()
        return (next_cron_fire(self.expression, now) - now).total_seconds()

    def _describe(self) -> dict[str, Any]:
        return {"check_interval": self.expression}


def create_tick_backend(settings: SchedulerSettings) -> IntervalTickBackend | CronTickBackend:
    """Build the backend the settings ask for.

    ``tick_seconds`` wins when set; otherwise ticks follow ``check_interval``.
    """
    if settings.tick_seconds is not None:
        return IntervalTickBackend(interval_seconds=settings.tick_seconds)
    return CronTickBackend(expression=settings.check_interval)
