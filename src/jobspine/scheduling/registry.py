"""Handler Registry: injectable job name → handler lookup.

The dispatch engine resolves a job's ``name`` to the callable that runs
it. Registration happens at startup; resolution happens at dispatch time,
so a job may be scheduled before its handler exists and will only fail
if the handler is still missing when the job comes due.

ARCHITECTURE
────────────
::

    HandlerRegistry
      ├── .register(name, handler)   ─ store (re-registration overwrites)
      ├── .get(name)                 ─ handler or None
      ├── .has(name)                 ─ existence check
      ├── .unregister(name)          ─ remove
      └── .list_handlers()           ─ registered names + descriptions

Handlers take the :class:`~jobspine.core.models.Job` and return a
:class:`~jobspine.core.models.JobResult` (or anything
``JobResult.coerce`` accepts). ``async def`` handlers are awaited; plain
callables run on the event loop thread.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from jobspine.core.logging import get_logger
from jobspine.core.models import Job, JobResult

logger = get_logger(__name__)

JobHandler = Callable[[Job], Awaitable[JobResult | dict | None] | JobResult | dict | None]


class HandlerRegistry:
    """Injectable handler registry.

    Each scheduler owns one, so tests get isolated registries.

    Example:
        >>> registry = HandlerRegistry()
        >>>
        >>> @registry.handler("send_email")
        ... async def send_email(job):
        ...     return JobResult.ok({"sent": job.data["to"]})
        >>>
        >>> registry.get("send_email") is send_email
        True
    """

    def __init__(self) -> None:
        self._handlers: dict[str, JobHandler] = {}
        self._metadata: dict[str, dict[str, Any]] = {}

    def register(
        self,
        name: str,
        handler: JobHandler,
        description: str | None = None,
    ) -> None:
        """Register *handler* for jobs named *name*.

        Registering the same name again replaces the previous handler.
        """
        if not callable(handler):
            raise TypeError(f"Handler for {name!r} is not callable: {handler!r}")
        if name in self._handlers:
            logger.debug("handler_replaced", job_name=name)
        self._handlers[name] = handler
        self._metadata[name] = {
            "name": name,
            "description": description or (handler.__doc__ or "").strip().split("\n")[0] or None,
        }
        logger.info("handler_registered", job_name=name)

    def handler(
        self,
        name: str,
        description: str | None = None,
    ) -> Callable[[JobHandler], JobHandler]:
        """Decorator form of :meth:`register`."""

        def decorator(func: JobHandler) -> JobHandler:
            self.register(name, func, description=description)
            return func

        return decorator

    def get(self, name: str) -> JobHandler | None:
        """Resolve a handler; ``None`` when nothing is registered."""
        return self._handlers.get(name)

    def has(self, name: str) -> bool:
        """Check if handler exists."""
        return name in self._handlers

    def unregister(self, name: str) -> bool:
        """Remove a handler. Returns False if it wasn't registered."""
        self._metadata.pop(name, None)
        return self._handlers.pop(name, None) is not None

    def list_handlers(self) -> list[dict[str, Any]]:
        """Registered handlers with their metadata, sorted by name."""
        return [self._metadata[name] for name in sorted(self._handlers)]

    def clear(self) -> None:
        self._handlers.clear()
        self._metadata.clear()

    def __len__(self) -> int:
        return len(self._handlers)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers
