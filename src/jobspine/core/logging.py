"""
Structured logging for jobspine.

All modules log through structlog with event-style messages and keyword
fields::

    logger = get_logger(__name__)
    logger.info("job_completed", job_id=job.id, attempts=job.attempts)

``configure_logging()`` is called once by the process that embeds the
scheduler (the CLI does it for ``jobspine run``). Without it structlog's
defaults still print readable lines, so library use and tests need no
setup.

Configuration Flow:
    ::

        configure_logging(level="INFO", json_format=None, service="jobspine")
            │
            ▼
        processor chain:
          1. TimeStamper(fmt="iso")
          2. merge_contextvars      (job_id / job_name bound per task)
          3. add_log_level
          4. add_service_metadata
          5. JSONRenderer (non-tty) or ConsoleRenderer (tty)
          6. stdlib root logger on stderr

Context:
    Each dispatched job runs in its own asyncio task, and asyncio copies
    contextvars per task, so ``LogContext(job_id=...)`` inside the task
    tags every line that job produces without leaking into siblings.

Tags:
    logging, structlog, observability, json-logging, jobspine
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_SERVICE_NAME = "jobspine"


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service.name", _SERVICE_NAME)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "jobspine",
) -> None:
    """Configure structured logging for the application.

    Output goes through the stdlib root logger to stderr, so command
    output on stdout stays clean. Safe to call more than once; the last
    call wins.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in logs
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    if json_format is None:
        json_format = not sys.stderr.isatty()

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
    ]

    if json_format:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper()),
        force=True,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs of this task."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


class LogContext:
    """Context manager for scoped logging context.

    Example:
        async with LogContext(job_id=job.id, job_name=job.name):
            logger.info("job_started")
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args) -> None:
        unbind_context(*self._context.keys())

    async def __aenter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    async def __aexit__(self, *args) -> None:
        unbind_context(*self._context.keys())


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "LogContext",
]
