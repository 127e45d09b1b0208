"""Tests for SchedulerSettings."""

import pytest
from pydantic import ValidationError

from jobspine.core.models import JobPriority
from jobspine.core.settings import SchedulerSettings


class TestDefaults:
    def test_defaults(self):
        settings = SchedulerSettings(_env_file=None)

        assert settings.check_interval == "* * * * *"
        assert settings.tick_seconds is None
        assert settings.max_concurrent_jobs == 10
        assert settings.default_retry_attempts == 3
        assert settings.default_retry_delay == 60.0
        assert settings.default_timeout == 30.0
        assert settings.default_priority == JobPriority.NORMAL
        assert settings.honor_retry_delay is True
        assert settings.database_url == "jobspine.db"


class TestEnvironment:
    """JOBSPINE_* variables."""

    def test_reads_prefixed_env(self, monkeypatch):
        monkeypatch.setenv("JOBSPINE_MAX_CONCURRENT_JOBS", "2")
        monkeypatch.setenv("JOBSPINE_DEFAULT_PRIORITY", "high")
        monkeypatch.setenv("JOBSPINE_HONOR_RETRY_DELAY", "false")

        settings = SchedulerSettings(_env_file=None)

        assert settings.max_concurrent_jobs == 2
        assert settings.default_priority == JobPriority.HIGH
        assert settings.honor_retry_delay is False

    def test_kwargs_beat_env(self, monkeypatch):
        monkeypatch.setenv("JOBSPINE_MAX_CONCURRENT_JOBS", "2")

        assert SchedulerSettings(_env_file=None, max_concurrent_jobs=7).max_concurrent_jobs == 7

    def test_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("JOBSPINE_DEFAULT_TIMEOUT=12.5\n")

        assert SchedulerSettings(_env_file=str(env_file)).default_timeout == 12.5

    def test_zero_retry_attempts_is_kept(self, monkeypatch):
        monkeypatch.setenv("JOBSPINE_DEFAULT_RETRY_ATTEMPTS", "0")

        assert SchedulerSettings(_env_file=None).default_retry_attempts == 0


class TestValidation:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_concurrent_jobs": 0},
            {"default_retry_attempts": -1},
            {"default_retry_delay": -1},
            {"default_timeout": 0},
            {"tick_seconds": 0},
            {"default_priority": "urgent"},
        ],
    )
    def test_out_of_range(self, kwargs):
        with pytest.raises(ValidationError):
            SchedulerSettings(_env_file=None, **kwargs)

    def test_invalid_check_interval(self):
        with pytest.raises(ValidationError, match="Invalid cron expression"):
            SchedulerSettings(_env_file=None, check_interval="every minute")

    def test_check_interval_is_normalized(self):
        settings = SchedulerSettings(_env_file=None, check_interval=" */5  * * * * ")
        assert settings.check_interval == "*/5 * * * *"
