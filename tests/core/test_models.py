"""Tests for jobspine.core.models."""

from datetime import timedelta

import pytest

from jobspine.core.errors import InvalidTransitionError, JobValidationError
from jobspine.core.models import (
    Job,
    JobOptions,
    JobPriority,
    JobResult,
    JobStatus,
    RecurringJob,
    validate_job_transition,
)
from jobspine.core.timestamps import utc_now


class TestJobStatusTransitions:
    """The job state machine."""

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (JobStatus.PENDING, JobStatus.RUNNING),
            (JobStatus.RUNNING, JobStatus.COMPLETED),
            (JobStatus.RUNNING, JobStatus.FAILED),
            (JobStatus.FAILED, JobStatus.PENDING),
        ],
    )
    def test_allowed(self, current, target):
        validate_job_transition(current, target)

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (JobStatus.PENDING, JobStatus.COMPLETED),
            (JobStatus.PENDING, JobStatus.FAILED),
            (JobStatus.COMPLETED, JobStatus.RUNNING),
            (JobStatus.COMPLETED, JobStatus.PENDING),
            (JobStatus.FAILED, JobStatus.RUNNING),
            (JobStatus.RUNNING, JobStatus.PENDING),
        ],
    )
    def test_rejected(self, current, target):
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_job_transition(current, target)
        assert exc_info.value.current == current.value
        assert exc_info.value.target == target.value

    def test_transition_error_is_value_error(self):
        with pytest.raises(ValueError, match="completed → running"):
            validate_job_transition(JobStatus.COMPLETED, JobStatus.RUNNING)


class TestJobPriority:
    def test_rank_order(self):
        assert JobPriority.HIGH.rank > JobPriority.NORMAL.rank > JobPriority.LOW.rank

    def test_string_values(self):
        assert JobPriority("high") is JobPriority.HIGH
        assert JobStatus("failed") is JobStatus.FAILED


class TestJobOptions:
    """Per-job overrides and their validation."""

    def test_all_none_by_default(self):
        options = JobOptions()
        assert (options.priority, options.max_retries, options.retry_delay, options.timeout) == (
            None,
            None,
            None,
            None,
        )

    def test_priority_string_is_coerced(self):
        assert JobOptions(priority="low").priority is JobPriority.LOW

    def test_zero_retries_and_delay_are_allowed(self):
        options = JobOptions(max_retries=0, retry_delay=0)
        assert options.max_retries == 0
        assert options.retry_delay == 0

    @pytest.mark.parametrize(
        ("kwargs", "field"),
        [
            ({"priority": "urgent"}, "priority"),
            ({"max_retries": -1}, "max_retries"),
            ({"retry_delay": -0.5}, "retry_delay"),
            ({"timeout": 0}, "timeout"),
            ({"timeout": -3}, "timeout"),
        ],
    )
    def test_invalid_values(self, kwargs, field):
        with pytest.raises(JobValidationError) as exc_info:
            JobOptions(**kwargs)
        assert exc_info.value.field == field


class TestJobResult:
    """JobResult constructors and coercion of handler return values."""

    def test_ok_and_fail(self):
        assert JobResult.ok({"n": 1}) == JobResult(success=True, data={"n": 1})
        assert JobResult.fail("nope").error == "nope"
        assert JobResult.fail(RuntimeError("boom")).error == "boom"

    def test_coerce_none_is_success(self):
        assert JobResult.coerce(None) == JobResult(success=True)

    def test_coerce_passes_job_result_through(self):
        result = JobResult.fail("x")
        assert JobResult.coerce(result) is result

    def test_coerce_mapping_with_success_key(self):
        result = JobResult.coerce({"success": False, "error": 42, "data": [1]})

        assert result.success is False
        assert result.error == "42"
        assert result.data == [1]

    def test_coerce_other_values_are_success_data(self):
        assert JobResult.coerce({"rows": 3}) == JobResult(success=True, data={"rows": 3})
        assert JobResult.coerce("done") == JobResult(success=True, data="done")

    def test_error_message_default(self):
        assert JobResult(success=False).error_message == "Job failed without error details"
        assert JobResult.fail("x").error_message == "x"


class TestJob:
    def make_job(self, **overrides) -> Job:
        fields = {"id": "01J", "name": "send", "scheduled_at": utc_now() - timedelta(seconds=1)}
        fields.update(overrides)
        return Job(**fields)

    def test_defaults(self):
        job = self.make_job()

        assert job.status == JobStatus.PENDING
        assert job.priority == JobPriority.NORMAL
        assert job.attempts == 0
        assert job.data == {}

    def test_retries_exhausted(self):
        assert self.make_job(attempts=2, max_retries=1).retries_exhausted is True
        assert self.make_job(attempts=1, max_retries=1).retries_exhausted is False

    def test_to_dict(self):
        job = self.make_job(data={"to": "a@b.c"}, user_id="u1")
        data = job.to_dict()

        assert data["status"] == "pending"
        assert data["priority"] == "normal"
        assert data["scheduled_at"] == job.scheduled_at.isoformat()
        assert data["executed_at"] is None
        assert data["data"] == {"to": "a@b.c"}
        assert data["user_id"] == "u1"


class TestRecurringJob:
    def test_job_options_copies_policy(self):
        schedule = RecurringJob(
            id="01S",
            name="report",
            cron_expression="0 0 * * *",
            priority=JobPriority.HIGH,
            max_retries=0,
            retry_delay=5.0,
            timeout=10.0,
        )

        assert schedule.job_options() == JobOptions(
            priority=JobPriority.HIGH, max_retries=0, retry_delay=5.0, timeout=10.0
        )

    def test_to_dict(self):
        schedule = RecurringJob(id="01S", name="report", cron_expression="0 0 * * *")
        data = schedule.to_dict()

        assert data["cron_expression"] == "0 0 * * *"
        assert data["is_active"] is True
        assert data["last_executed_at"] is None
