"""Tests for jobspine.core.errors module."""

import pytest

from jobspine.core.errors import (
    ErrorCategory,
    ErrorContext,
    HandlerNotFoundError,
    InvalidCronExpressionError,
    InvalidJobStateError,
    InvalidTransitionError,
    JobSpineError,
    JobTimeoutError,
    JobValidationError,
    SchedulerError,
    SchedulerNotInitializedError,
    StorageError,
    StorageNotConnectedError,
)


class TestErrorContext:
    """Test ErrorContext dataclass."""

    def test_create_empty_context(self):
        """Create context with no fields set."""
        ctx = ErrorContext()
        assert ctx.job_id is None
        assert ctx.metadata == {}
        assert ctx.to_dict() == {}

    def test_to_dict_skips_empty_fields(self):
        ctx = ErrorContext(job_id="01J", metadata={"attempt": 2})
        assert ctx.to_dict() == {"job_id": "01J", "attempt": 2}


class TestJobSpineError:
    """Test the base error."""

    def test_defaults(self):
        error = JobSpineError("something broke")

        assert str(error) == "something broke"
        assert error.message == "something broke"
        assert error.category == ErrorCategory.INTERNAL
        assert error.retryable is False

    def test_overrides(self):
        error = JobSpineError("x", category=ErrorCategory.CONFIG, retryable=True)

        assert error.category == ErrorCategory.CONFIG
        assert error.retryable is True

    def test_cause_is_chained(self):
        cause = OSError("disk")
        error = StorageError("write failed", cause=cause)

        assert error.__cause__ is cause
        assert error.to_dict()["cause"] == "disk"

    def test_with_context(self):
        error = StorageError("locked").with_context(job_id="01J", table="jobs")

        assert error.context.job_id == "01J"
        assert error.context.metadata == {"table": "jobs"}
        assert error.to_dict()["context"] == {"job_id": "01J", "table": "jobs"}

    def test_to_dict(self):
        data = StorageError("locked").to_dict()

        assert data == {
            "error_type": "StorageError",
            "message": "locked",
            "category": "STORAGE",
            "retryable": False,
        }

    def test_repr(self):
        assert repr(StorageError("locked")) == "StorageError('locked', category=STORAGE)"


class TestValidationErrors:
    def test_field_and_value(self):
        error = JobValidationError("bad", field="timeout", value=0)
        data = error.to_dict()

        assert error.category == ErrorCategory.VALIDATION
        assert data["field"] == "timeout"
        assert data["value"] == "0"

    def test_invalid_cron(self):
        error = InvalidCronExpressionError("* *", "expected 5 fields, got 2")

        assert isinstance(error, JobValidationError)
        assert error.expression == "* *"
        assert error.message == "Invalid cron expression: * * (expected 5 fields, got 2)"

    def test_invalid_cron_without_reason(self):
        assert InvalidCronExpressionError("x").message == "Invalid cron expression: x"


class TestSchedulerErrors:
    def test_not_initialized(self):
        error = SchedulerNotInitializedError()

        assert isinstance(error, SchedulerError)
        assert error.category == ErrorCategory.ORCHESTRATION
        assert "initialize()" in error.message

    def test_invalid_job_state(self):
        error = InvalidJobStateError("not failed", job_id="01J", status="pending")

        assert error.status == "pending"
        assert error.context.job_id == "01J"

    def test_handler_not_found_message(self):
        error = HandlerNotFoundError("send_email")

        assert error.message == "No handler registered for job type: send_email"
        assert error.job_name == "send_email"
        assert error.context.job_name == "send_email"


class TestExecutionErrors:
    def test_timeout_message(self):
        error = JobTimeoutError(30.0, job_id="01J")

        assert error.message == "Job timed out after 30s"
        assert error.timeout == 30.0
        assert error.retryable is True
        assert error.category == ErrorCategory.TIMEOUT

    def test_timeout_is_builtin_timeout(self):
        with pytest.raises(TimeoutError):
            raise JobTimeoutError(0.5)

    def test_fractional_timeout_message(self):
        assert JobTimeoutError(0.25).message == "Job timed out after 0.25s"

    def test_invalid_transition_is_value_error(self):
        error = InvalidTransitionError("completed", "running")

        assert isinstance(error, ValueError)
        assert isinstance(error, JobSpineError)


class TestStorageErrors:
    def test_not_connected(self):
        error = StorageNotConnectedError("InMemoryJobStore")

        assert isinstance(error, StorageError)
        assert error.message == "InMemoryJobStore is not connected"
        assert error.category == ErrorCategory.STORAGE
