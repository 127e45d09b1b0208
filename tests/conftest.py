"""
Shared pytest fixtures for jobspine tests.

This module provides:
- Settings isolated from the environment and any ``.env`` file
- In-memory and SQLite store pairs
- A Scheduler wired with an idle backend, ready for manual ticks

Usage:
    @pytest.mark.asyncio
    async def test_something(scheduler):
        async with running(scheduler):
            ...
"""

from pathlib import Path

import pytest

from jobspine.core.settings import SchedulerSettings
from jobspine.scheduling.engine import Scheduler
from jobspine.storage import (
    InMemoryJobStore,
    InMemoryRecurringJobStore,
    SqliteDatabase,
    SqliteJobStore,
    SqliteRecurringJobStore,
)
from tests._support.harness import idle_backend


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark tests without an explicit marker as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep JOBSPINE_* variables from the developer's shell out of tests."""
    import os

    for key in list(os.environ):
        if key.startswith("JOBSPINE_"):
            monkeypatch.delenv(key)


@pytest.fixture
def settings() -> SchedulerSettings:
    return SchedulerSettings(
        _env_file=None,
        max_concurrent_jobs=10,
        default_retry_attempts=3,
        default_retry_delay=60.0,
        default_timeout=5.0,
        honor_retry_delay=True,
    )


@pytest.fixture
def job_store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def schedule_store() -> InMemoryRecurringJobStore:
    return InMemoryRecurringJobStore()


@pytest.fixture
def scheduler(job_store, schedule_store, settings) -> Scheduler:
    """Scheduler over in-memory stores. Not yet initialized."""
    return Scheduler(job_store, schedule_store, settings=settings, backend=idle_backend())


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "jobspine.db")


@pytest.fixture
def sqlite_db(db_path: str) -> SqliteDatabase:
    db = SqliteDatabase(db_path)
    yield db
    db.close()


@pytest.fixture
def sqlite_scheduler(sqlite_db, settings) -> Scheduler:
    """Scheduler over SQLite stores sharing one database. Not yet initialized."""
    return Scheduler(
        SqliteJobStore(sqlite_db),
        SqliteRecurringJobStore(sqlite_db),
        settings=settings,
        backend=idle_backend(),
    )
