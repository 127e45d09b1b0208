"""Tests for the asyncio tick backends."""

import asyncio

import pytest

from jobspine.core.errors import InvalidCronExpressionError
from jobspine.core.settings import SchedulerSettings
from jobspine.scheduling.backends import CronTickBackend, IntervalTickBackend, create_tick_backend
from jobspine.scheduling.protocol import BackendHealth, TickBackend


class TestIntervalTickBackend:
    """Test IntervalTickBackend implementation."""

    def test_implements_protocol(self):
        """Backend implements TickBackend protocol."""
        backend = IntervalTickBackend()
        assert isinstance(backend, TickBackend)
        assert backend.name == "interval"

    @pytest.mark.parametrize("interval", [0, -1.0])
    def test_rejects_non_positive_interval(self, interval):
        with pytest.raises(ValueError, match="positive"):
            IntervalTickBackend(interval_seconds=interval)

    def test_start_needs_running_loop(self):
        async def tick():
            pass

        with pytest.raises(RuntimeError):
            IntervalTickBackend().start(tick)

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        """Backend ticks until stopped."""
        backend = IntervalTickBackend(interval_seconds=0.05)
        tick_count = 0

        async def tick():
            nonlocal tick_count
            tick_count += 1

        backend.start(tick)
        assert backend.is_running

        await asyncio.sleep(0.18)
        await backend.stop()

        assert not backend.is_running
        assert tick_count >= 2
        assert backend.tick_count == tick_count

    @pytest.mark.asyncio
    async def test_run_immediately(self):
        """First tick fires without waiting a full interval."""
        backend = IntervalTickBackend(interval_seconds=3600, run_immediately=True)
        ticked = asyncio.Event()

        async def tick():
            ticked.set()

        backend.start(tick)
        await asyncio.wait_for(ticked.wait(), timeout=1.0)
        await backend.stop()

        assert backend.tick_count == 1
        assert backend.last_tick is not None

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_tick_callback_exception_handled(self):
        """Exceptions in the tick callback don't stop the loop."""
        backend = IntervalTickBackend(interval_seconds=0.05)
        error_count = 0

        async def failing_tick():
            nonlocal error_count
            error_count += 1
            raise ValueError("Test error")

        backend.start(failing_tick)
        await asyncio.sleep(0.18)
        await backend.stop()

        assert error_count >= 2

    @pytest.mark.asyncio
    async def test_ticks_never_overlap(self):
        """A slow tick delays the next one instead of running beside it."""
        backend = IntervalTickBackend(interval_seconds=0.01, run_immediately=True)
        in_tick = 0
        overlap = False

        async def slow_tick():
            nonlocal in_tick, overlap
            in_tick += 1
            overlap = overlap or in_tick > 1
            await asyncio.sleep(0.03)
            in_tick -= 1

        backend.start(slow_tick)
        await asyncio.sleep(0.12)
        await backend.stop()

        assert overlap is False
        assert backend.tick_count >= 2

    @pytest.mark.asyncio
    async def test_stop_waits_for_tick_in_progress(self):
        backend = IntervalTickBackend(interval_seconds=3600, run_immediately=True)
        started = asyncio.Event()
        finished = False

        async def tick():
            nonlocal finished
            started.set()
            await asyncio.sleep(0.05)
            finished = True

        backend.start(tick)
        await started.wait()
        await backend.stop()

        assert finished is True

    @pytest.mark.asyncio
    async def test_double_start_ignored(self):
        """Double start is ignored with a warning."""
        backend = IntervalTickBackend(interval_seconds=3600)

        async def tick():
            pass

        backend.start(tick)
        first_task = backend._task
        backend.start(tick)

        assert backend._task is first_task
        await backend.stop()

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        backend = IntervalTickBackend(interval_seconds=3600)
        await backend.stop()

        async def tick():
            pass

        backend.start(tick)
        await backend.stop()
        await backend.stop()
        assert not backend.is_running

    @pytest.mark.asyncio
    async def test_can_restart_after_stop(self):
        backend = IntervalTickBackend(interval_seconds=3600, run_immediately=True)
        ticked = asyncio.Event()

        async def tick():
            ticked.set()

        backend.start(tick)
        await asyncio.wait_for(ticked.wait(), timeout=1.0)
        await backend.stop()

        ticked.clear()
        backend.start(tick)
        await asyncio.wait_for(ticked.wait(), timeout=1.0)
        await backend.stop()

        assert backend.tick_count == 2


class TestBackendHealth:
    """Health reporting."""

    def test_health_before_start(self):
        """Health returns unhealthy before start."""
        health = IntervalTickBackend(interval_seconds=5).health()

        assert health["healthy"] is False
        assert health["backend"] == "interval"
        assert health["tick_count"] == 0
        assert health["last_tick"] is None
        assert health["interval_seconds"] == 5

    @pytest.mark.asyncio
    async def test_health_while_running(self):
        backend = IntervalTickBackend(interval_seconds=3600, run_immediately=True)
        ticked = asyncio.Event()

        async def tick():
            ticked.set()

        backend.start(tick)
        await asyncio.wait_for(ticked.wait(), timeout=1.0)

        health = backend.get_health()
        assert isinstance(health, BackendHealth)
        assert health.healthy is True
        assert health.tick_count == 1
        assert backend.health()["last_tick"] is not None

        await backend.stop()

    def test_cron_backend_reports_expression(self):
        health = CronTickBackend("*/5 * * * *").health()

        assert health["backend"] == "cron"
        assert health["check_interval"] == "*/5 * * * *"


class TestCronTickBackend:
    """Test CronTickBackend timing."""

    def test_rejects_invalid_expression(self):
        with pytest.raises(InvalidCronExpressionError):
            CronTickBackend("every minute")

    def test_next_delay_is_within_one_period(self):
        backend = CronTickBackend("* * * * *")
        delay = backend._next_delay()

        assert 0 <= delay <= 60


class TestCreateTickBackend:
    """Factory selection from settings."""

    def test_defaults_to_cron(self):
        backend = create_tick_backend(SchedulerSettings(_env_file=None))

        assert isinstance(backend, CronTickBackend)
        assert backend.expression == "* * * * *"

    def test_check_interval_is_used(self):
        backend = create_tick_backend(SchedulerSettings(_env_file=None, check_interval="*/10 * * * *"))

        assert backend.expression == "*/10 * * * *"

    def test_tick_seconds_wins(self):
        backend = create_tick_backend(SchedulerSettings(_env_file=None, tick_seconds=2.5))

        assert isinstance(backend, IntervalTickBackend)
        assert backend.interval_seconds == 2.5
