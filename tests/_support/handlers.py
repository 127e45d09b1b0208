"""A HandlerRegistry importable as ``tests._support.handlers:registry``.

Used by the CLI tests for ``jobspine run --handlers``.
"""

from jobspine.core.models import JobResult
from jobspine.scheduling.registry import HandlerRegistry

registry = HandlerRegistry()


@registry.handler("echo")
async def echo(job):
    """Return the payload unchanged."""
    return JobResult.ok(job.data)


@registry.handler("explode")
def explode(job):
    raise RuntimeError("exploded on purpose")
