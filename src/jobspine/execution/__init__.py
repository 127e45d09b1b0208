"""Per-job execution helpers: timeout race and retry policy."""

from jobspine.execution.retry import RetryPolicy
from jobspine.execution.timeout import run_with_timeout

__all__ = [
    "RetryPolicy",
    "run_with_timeout",
]
