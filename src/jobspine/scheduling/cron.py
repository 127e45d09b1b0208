"""Next-run calculator for recurring jobs.

Recurring jobs are advanced with a deliberately narrow calculator: a
closed set of canonical five-field patterns, each with an exact "next
boundary" rule, and a fixed fallback for everything else. It is not a
cron evaluator, and jobs scheduled under it keep the same timing after
an upgrade.

┌──────────────────────────────────────────────────────────────────────────────┐
│  next_run_time(expression, from_time)                                        │
│                                                                               │
│   base = from_time + 1 minute, seconds and microseconds zeroed               │
│                                                                               │
│   "* * * * *"   every-minute     → base                                      │
│   "0 * * * *"   hourly           → first top of hour >= base                 │
│   "0 0 * * *"   daily            → midnight of base's day + 1 day            │
│   "0 0 * * 0"   weekly-sunday    → midnight of first Sunday after base's day │
│   "0 0 1 * *"   monthly-first    → 00:00 on the 1st of the following month   │
│   anything else fallback         → base + 5 minutes                          │
└──────────────────────────────────────────────────────────────────────────────┘

All arithmetic is in UTC.

Exact cron evaluation (croniter) is available separately through
:func:`next_cron_fire`; the cron tick backend uses it to time ticks.
It is never used to advance recurring jobs.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from croniter import croniter

from jobspine.core.errors import InvalidCronExpressionError
from jobspine.core.timestamps import ensure_utc, utc_now

FALLBACK_DELAY = timedelta(minutes=5)


def normalize_cron_expression(expression: str) -> str:
    """Collapse runs of whitespace so field inspection is reliable."""
    return " ".join(expression.split())


def validate_cron_expression(expression: str) -> str:
    """Check that *expression* is a valid five-field cron expression.

    Returns:
        The normalized expression

    Raises:
        InvalidCronExpressionError: On anything croniter rejects, or on
            a field count other than five (no seconds / year fields)
    """
    if not isinstance(expression, str) or not expression.strip():
        raise InvalidCronExpressionError(str(expression), "empty expression")

    normalized = normalize_cron_expression(expression)
    fields = normalized.split(" ")
    if len(fields) != 5:
        raise InvalidCronExpressionError(expression, f"expected 5 fields, got {len(fields)}")
    if not croniter.is_valid(normalized):
        raise InvalidCronExpressionError(expression)
    return normalized


# ---------------------------------------------------------------------------
# Canonical patterns
# ---------------------------------------------------------------------------


def _every_minute(base: datetime) -> datetime:
    return base


def _top_of_hour(base: datetime) -> datetime:
    if base.minute == 0:
        return base
    return base.replace(minute=0) + timedelta(hours=1)


def _daily_midnight(base: datetime) -> datetime:
    return base.replace(hour=0, minute=0) + timedelta(days=1)


def _weekly_sunday_midnight(base: datetime) -> datetime:
    midnight = base.replace(hour=0, minute=0)
    days_since_sunday = midnight.isoweekday() % 7
    return midnight + timedelta(days=7 - days_since_sunday)


def _monthly_first_midnight(base: datetime) -> datetime:
    first = base.replace(day=1, hour=0, minute=0)
    if first.month == 12:
        return first.replace(year=first.year + 1, month=1)
    return first.replace(month=first.month + 1)


def _fallback(base: datetime) -> datetime:
    return base + FALLBACK_DELAY


@dataclass(frozen=True)
class CronPattern:
    """One recognized expression and the rule that advances it."""

    name: str
    expression: str
    advance: Callable[[datetime], datetime]


CANONICAL_PATTERNS: tuple[CronPattern, ...] = (
    CronPattern("every-minute", "* * * * *", _every_minute),
    CronPattern("hourly", "0 * * * *", _top_of_hour),
    CronPattern("daily", "0 0 * * *", _daily_midnight),
    CronPattern("weekly-sunday", "0 0 * * 0", _weekly_sunday_midnight),
    CronPattern("monthly-first", "0 0 1 * *", _monthly_first_midnight),
)

FALLBACK_PATTERN = CronPattern("fallback", "", _fallback)

_BY_EXPRESSION = {p.expression: p for p in CANONICAL_PATTERNS}


def match_pattern(expression: str) -> CronPattern:
    """Return the canonical pattern for *expression*, or the fallback."""
    return _BY_EXPRESSION.get(normalize_cron_expression(expression), FALLBACK_PATTERN)


def next_run_time(expression: str, from_time: datetime | None = None) -> datetime:
    """Compute the next execution instant for a recurring job.

    Pure: the same ``(expression, from_time)`` always yields the same
    result. *from_time* defaults to now.

    Example:
        >>> next_run_time("0 0 * * *", datetime(2024, 3, 5, 14, 30, tzinfo=UTC))
        datetime.datetime(2024, 3, 6, 0, 0, tzinfo=datetime.timezone.utc)
        >>> next_run_time("*/15 * * * *", datetime(2024, 3, 5, 14, 30, tzinfo=UTC))
        datetime.datetime(2024, 3, 5, 14, 36, tzinfo=datetime.timezone.utc)
    """
    start = ensure_utc(from_time) if from_time is not None else utc_now()
    base = (start + timedelta(minutes=1)).replace(second=0, microsecond=0)
    return match_pattern(expression).advance(base)


def next_cron_fire(expression: str, after: datetime | None = None) -> datetime:
    """Exact next fire time of a cron expression (croniter), in UTC."""
    start = ensure_utc(after) if after is not None else utc_now()
    return ensure_utc(croniter(normalize_cron_expression(expression), start).get_next(datetime))
