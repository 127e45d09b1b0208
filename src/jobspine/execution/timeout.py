"""Handler timeout race.

Wraps a single handler invocation in ``asyncio.wait_for``. When the
deadline passes first, the handler task is cancelled and
:class:`~jobspine.core.errors.JobTimeoutError` is raised.

Architecture:
    ::

        ┌────────────────────────────────────────────────────────────────┐
        │ result = await run_with_timeout(handler(job), job.timeout)     │
        │ # Raises JobTimeoutError if > job.timeout seconds              │
        └────────────────────────────────────────────────────────────────┘
                              │
                              │ uses
                              ▼
        ┌────────────────────────────────────────────────────────────────┐
        │               asyncio.wait_for                                 │
        │  - Cancels the awaitable on timeout                            │
        │  - Plain (non-awaitable) results pass straight through         │
        └────────────────────────────────────────────────────────────────┘

Sync handlers run on the loop thread and cannot be interrupted; their
return value is accepted as-is.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from typing import Any

from jobspine.core.errors import JobTimeoutError
from jobspine.core.logging import get_logger

logger = get_logger(__name__)


async def run_with_timeout(
    value: Any,
    timeout_seconds: float,
    job_id: str | None = None,
) -> Any:
    """Await *value* for at most *timeout_seconds*.

    Args:
        value: Awaitable returned by a handler, or an already-computed result
        timeout_seconds: Maximum execution time
        job_id: Included in the error context

    Returns:
        The handler's result

    Raises:
        JobTimeoutError: If execution exceeds timeout
        Exception: Any exception raised by the awaitable

    Example:
        >>> result = await run_with_timeout(handler(job), 30.0, job_id=job.id)
    """
    if timeout_seconds <= 0:
        raise ValueError(f"Timeout must be positive, got {timeout_seconds}")

    if not inspect.isawaitable(value):
        return value

    start = time.monotonic()
    try:
        return await asyncio.wait_for(value, timeout=timeout_seconds)
    except TimeoutError:
        logger.warning(
            "job_timeout",
            job_id=job_id,
            timeout=timeout_seconds,
            elapsed=round(time.monotonic() - start, 3),
        )
        raise JobTimeoutError(timeout_seconds, job_id=job_id) from None
