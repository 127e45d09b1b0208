"""Tests for handler timeout enforcement."""

import asyncio

import pytest

from jobspine.core.errors import JobTimeoutError
from jobspine.execution.timeout import run_with_timeout


class TestRunWithTimeout:
    """Tests for run_with_timeout."""

    @pytest.mark.asyncio
    async def test_completes_within_timeout(self):
        """Result is returned when the awaitable finishes in time."""

        async def fast():
            await asyncio.sleep(0.01)
            return "done"

        assert await run_with_timeout(fast(), 1.0) == "done"

    @pytest.mark.asyncio
    async def test_exceeds_timeout(self):
        """JobTimeoutError is raised and the awaitable is cancelled."""
        cancelled = False

        async def slow():
            nonlocal cancelled
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled = True
                raise

        with pytest.raises(JobTimeoutError) as exc_info:
            await run_with_timeout(slow(), 0.05, job_id="01J")

        assert exc_info.value.timeout == 0.05
        assert exc_info.value.context.job_id == "01J"
        assert str(exc_info.value) == "Job timed out after 0.05s"
        assert cancelled is True

    @pytest.mark.asyncio
    async def test_exception_propagates(self):
        """Exceptions from the awaitable are not wrapped."""

        async def failing():
            raise ValueError("Test error")

        with pytest.raises(ValueError, match="Test error"):
            await run_with_timeout(failing(), 1.0)

    @pytest.mark.asyncio
    async def test_plain_value_passes_through(self):
        """Sync handler results are returned as-is."""
        assert await run_with_timeout({"success": True}, 1.0) == {"success": True}
        assert await run_with_timeout(None, 1.0) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("timeout", [0, -1])
    async def test_rejects_non_positive_timeout(self, timeout):
        with pytest.raises(ValueError, match="positive"):
            await run_with_timeout(None, timeout)
