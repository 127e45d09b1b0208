"""Scheduling: tick backends, next-run calculator, handler registry, engine.

Architecture:
    TickBackend (timing) ──► Scheduler.tick() (logic)
                               ├── recurring jobs → next_run_time()
                               └── due jobs → HandlerRegistry → handler
"""

from jobspine.scheduling.backends import CronTickBackend, IntervalTickBackend, create_tick_backend
from jobspine.scheduling.cron import (
    CANONICAL_PATTERNS,
    FALLBACK_DELAY,
    CronPattern,
    match_pattern,
    next_cron_fire,
    next_run_time,
    validate_cron_expression,
)
from jobspine.scheduling.engine import Scheduler, SchedulerHealth, SchedulerStats
from jobspine.scheduling.protocol import BackendHealth, TickBackend
from jobspine.scheduling.registry import HandlerRegistry, JobHandler

__all__ = [
    # Engine
    "Scheduler",
    "SchedulerHealth",
    "SchedulerStats",
    # Backends
    "TickBackend",
    "BackendHealth",
    "IntervalTickBackend",
    "CronTickBackend",
    "create_tick_backend",
    # Cron
    "CronPattern",
    "CANONICAL_PATTERNS",
    "FALLBACK_DELAY",
    "match_pattern",
    "next_run_time",
    "next_cron_fire",
    "validate_cron_expression",
    # Registry
    "HandlerRegistry",
    "JobHandler",
]
