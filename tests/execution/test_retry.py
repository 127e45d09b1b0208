"""Tests for the retry policy."""

from datetime import UTC, datetime, timedelta

import pytest

from jobspine.core.models import Job
from jobspine.execution.retry import RetryPolicy

NOW = datetime(2024, 3, 5, 12, 0, tzinfo=UTC)


def job(attempts: int, max_retries: int = 1, retry_delay: float = 30.0) -> Job:
    return Job(
        id="01J",
        name="send",
        scheduled_at=NOW - timedelta(minutes=1),
        attempts=attempts,
        max_retries=max_retries,
        retry_delay=retry_delay,
    )


class TestShouldRetry:
    """attempts has already been incremented for the failed run."""

    @pytest.mark.parametrize(
        ("attempts", "max_retries", "expected"),
        [
            (1, 0, False),
            (1, 1, True),
            (2, 1, False),
            (3, 3, True),
            (4, 3, False),
        ],
    )
    def test_budget(self, attempts, max_retries, expected):
        assert RetryPolicy().should_retry(job(attempts, max_retries)) is expected


class TestNextDue:
    def test_honors_delay(self):
        policy = RetryPolicy(honor_retry_delay=True)

        assert policy.next_due(job(1), NOW) == NOW + timedelta(seconds=30)

    def test_zero_delay_is_now(self):
        assert RetryPolicy().next_due(job(1, retry_delay=0), NOW) == NOW

    def test_ignoring_delay_keeps_scheduled_at(self):
        policy = RetryPolicy(honor_retry_delay=False)

        assert policy.next_due(job(1), NOW) is None
