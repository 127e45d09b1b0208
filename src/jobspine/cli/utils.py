"""
CLI utility helpers: scheduler construction and output formatting.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from jobspine.core.errors import JobSpineError
from jobspine.core.settings import SchedulerSettings
from jobspine.scheduling.engine import Scheduler
from jobspine.scheduling.registry import HandlerRegistry
from jobspine.storage.sqlite import SqliteDatabase, SqliteJobStore, SqliteRecurringJobStore

T = TypeVar("T")

console = Console()
err_console = Console(stderr=True)

JOB_COLUMNS = ("id", "name", "status", "priority", "scheduled_at", "attempts", "max_retries", "error_message")
SCHEDULE_COLUMNS = ("id", "name", "cron_expression", "is_active", "last_executed_at", "user_id")


# ── Scheduler helpers ────────────────────────────────────────────────────


def load_settings(database: str | None = None, **overrides: Any) -> SchedulerSettings:
    """Settings from the environment, with ``--database`` and friends applied on top."""
    if database:
        overrides["database_url"] = database
    return SchedulerSettings(**{k: v for k, v in overrides.items() if v is not None})


def build_scheduler(
    settings: SchedulerSettings,
    registry: HandlerRegistry | None = None,
) -> Scheduler:
    """A scheduler over the SQLite database named in *settings*."""
    db = SqliteDatabase(settings.database_url)
    return Scheduler(
        SqliteJobStore(db),
        SqliteRecurringJobStore(db),
        settings=settings,
        registry=registry,
    )


def run_operation(
    database: str | None,
    operation: Callable[[Scheduler], Awaitable[T]],
) -> T:
    """Initialize a scheduler, run one management *operation*, shut down.

    Library errors are printed and turned into exit code 1.
    """

    async def _run() -> T:
        scheduler = build_scheduler(load_settings(database))
        await scheduler.initialize()
        try:
            return await operation(scheduler)
        finally:
            await scheduler.shutdown()

    try:
        return asyncio.run(_run())
    except JobSpineError as e:
        fail(e.message)


def fail(message: str) -> None:
    err_console.print(f"[bold red]Error[/bold red]: {message}")
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def output_items(
    items: list[Any],
    *,
    as_json: bool = False,
    title: str = "",
    columns: tuple[str, ...] = (),
) -> None:
    """Render a list of models as a Rich table, or as JSON."""
    rows = [item.to_dict() for item in items]

    if as_json:
        console.print_json(json.dumps(rows, default=str))
        return

    if not rows:
        console.print("[dim]No items.[/dim]")
        return

    cols = columns or tuple(rows[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in cols:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*("" if row.get(c) is None else str(row.get(c)) for c in cols))
    console.print(table)


def output_record(record: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a single model as key-value pairs, or as JSON."""
    data = record.to_dict()

    if as_json:
        console.print_json(json.dumps(data, default=str))
        return

    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
