"""Scheduler settings.

``SchedulerSettings`` is the one place the scheduler reads configuration
from. Values come from keyword arguments, ``JOBSPINE_*`` environment
variables, or a ``.env`` file, in that order of precedence.

Fields
──────
check_interval          : Cron expression driving the tick (default every minute)
tick_seconds            : Fixed tick period in seconds; overrides check_interval
max_concurrent_jobs     : Global cap on jobs executing at once (>= 1)
default_retry_attempts  : max_retries for jobs that don't set one
default_retry_delay     : retry_delay (seconds) for jobs that don't set one
default_timeout         : timeout (seconds) for jobs that don't set one
default_priority        : priority for jobs that don't set one
honor_retry_delay       : Push an automatic retry's due time out by retry_delay
database_url            : SQLite path (or ``:memory:``) for the default stores
log_level / json_logs   : structlog configuration

Examples:
    >>> settings = SchedulerSettings(max_concurrent_jobs=4, tick_seconds=1.0)
    >>> settings.max_concurrent_jobs
    4

    $ JOBSPINE_MAX_CONCURRENT_JOBS=2 jobspine run
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from jobspine.core.models import JobPriority


class SchedulerSettings(BaseSettings):
    """Configuration for :class:`~jobspine.scheduling.engine.Scheduler`."""

    model_config = SettingsConfigDict(
        env_prefix="JOBSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Tick driver ──────────────────────────────────────────────
    check_interval: str = "* * * * *"
    tick_seconds: float | None = Field(default=None, gt=0)

    # ── Dispatch ─────────────────────────────────────────────────
    max_concurrent_jobs: int = Field(default=10, ge=1)

    # ── Per-job defaults ─────────────────────────────────────────
    default_retry_attempts: int = Field(default=3, ge=0)
    default_retry_delay: float = Field(default=60.0, ge=0)
    default_timeout: float = Field(default=30.0, gt=0)
    default_priority: JobPriority = JobPriority.NORMAL
    honor_retry_delay: bool = True

    # ── Storage ──────────────────────────────────────────────────
    database_url: str = "jobspine.db"

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    @field_validator("check_interval")
    @classmethod
    def _check_interval_is_cron(cls, value: str) -> str:
        from jobspine.core.errors import InvalidCronExpressionError
        from jobspine.scheduling.cron import validate_cron_expression

        # pydantic only reports ValueError / AssertionError as field errors
        try:
            return validate_cron_expression(value)
        except InvalidCronExpressionError as e:
            raise ValueError(e.message) from e
