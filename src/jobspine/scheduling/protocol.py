"""Tick driver protocol.

┌──────────────────────────────────────────────────────────────────────────────┐
│  TICK DRIVER PROTOCOL                                                         │
│                                                                               │
│  The scheduler operates as "beat-as-poller": a backend decides WHEN a tick   │
│  happens, the Scheduler decides WHAT a tick does (advance recurring jobs,    │
│  dispatch due jobs).                                                          │
│                                                                               │
│   ┌─────────────────────┐      tick()      ┌─────────────────────────┐       │
│   │  IntervalTickBackend│ ───────────────► │  Scheduler.tick()       │       │
│   │  (fixed seconds)    │                  │   - advance recurring   │       │
│   └─────────────────────┘                  │   - process_next_jobs   │       │
│   ┌─────────────────────┐      tick()      │                         │       │
│   │  CronTickBackend    │ ───────────────► │                         │       │
│   │  (check_interval)   │                  └─────────────────────────┘       │
│   └─────────────────────┘                                                    │
│                                                                               │
│  Backends run as an asyncio task on the caller's loop, so tasks spawned by   │
│  a tick outlive the tick.                                                     │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

TickCallback = Callable[[], Awaitable[Any]]


@runtime_checkable
class TickBackend(Protocol):
    """Protocol for pluggable tick drivers.

    A backend is responsible ONLY for timing. It must call
    ``tick_callback`` repeatedly until stopped, must not run two ticks
    at once, and must survive a tick that raises.
    """

    name: str

    def start(self, tick_callback: TickCallback) -> None:
        """Start ticking. Must be called from within a running event loop."""
        ...

    async def stop(self) -> None:
        """Stop ticking. Waits for a tick in progress to return."""
        ...

    def health(self) -> dict[str, Any]:
        """Return at least ``healthy``, ``backend``, ``tick_count``, ``last_tick``."""
        ...


@dataclass
class BackendHealth:
    """Structured backend health response."""

    healthy: bool
    backend: str
    tick_count: int = 0
    last_tick: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "tick_count": self.tick_count,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            **self.extra,
        }
