"""Retry policy for failed jobs.

Each job carries its own budget (``max_retries``) and a constant delay
(``retry_delay``). A job may run at most ``max_retries + 1`` times.

Example:
    >>> from jobspine.execution.retry import RetryPolicy
    >>>
    >>> policy = RetryPolicy(honor_retry_delay=True)
    >>> if policy.should_retry(job):
    ...     due = policy.next_due(job, utc_now())
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from jobspine.core.models import Job


@dataclass
class RetryPolicy:
    """Constant-delay retry with a per-job budget.

    Attributes:
        honor_retry_delay: When True, an automatic retry is pushed to
            ``now + job.retry_delay``. When False the job keeps its
            previous ``scheduled_at`` and is eligible on the next tick.
    """

    honor_retry_delay: bool = True

    def should_retry(self, job: Job) -> bool:
        """Check if another attempt fits in the job's budget.

        ``attempts`` has already been incremented for the run that just
        failed, so ``attempts <= max_retries`` leaves room for one more.
        """
        return not job.retries_exhausted

    def next_due(self, job: Job, now: datetime) -> datetime | None:
        """New ``scheduled_at`` for an automatic retry, or None to keep it."""
        if not self.honor_retry_delay:
            return None
        return now + timedelta(seconds=job.retry_delay)
