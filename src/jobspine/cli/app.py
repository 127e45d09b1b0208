"""
Root Typer application for the jobspine CLI.
"""

from __future__ import annotations

import asyncio
import importlib

import typer
from typer import Typer

from jobspine.cli.jobs import app as jobs_app
from jobspine.cli.schedules import app as schedules_app
from jobspine.cli.utils import build_scheduler, console, fail, load_settings
from jobspine.core.errors import JobSpineError
from jobspine.core.logging import configure_logging, get_logger
from jobspine.scheduling.registry import HandlerRegistry

logger = get_logger(__name__)

app = Typer(
    name="jobspine",
    help="jobspine - asyncio job scheduler.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from jobspine import __version__

        typer.echo(f"jobspine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at INFO instead of WARNING."),
) -> None:
    """jobspine CLI - manage jobs and recurring schedules, run the scheduler."""
    configure_logging(level="INFO" if verbose else "WARNING")


app.add_typer(jobs_app, name="jobs", help="Job management.")
app.add_typer(schedules_app, name="schedules", help="Recurring job management.")


# ── run ──────────────────────────────────────────────────────────────────


def load_registry(target: str) -> HandlerRegistry:
    """Import a ``module:attribute`` that names a HandlerRegistry."""
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise typer.BadParameter("expected 'module:attribute'", param_hint="--handlers")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise typer.BadParameter(f"cannot import {module_name}: {e}", param_hint="--handlers") from e
    registry = getattr(module, attr, None)
    if not isinstance(registry, HandlerRegistry):
        raise typer.BadParameter(f"{target} is not a HandlerRegistry", param_hint="--handlers")
    return registry


@app.command("run")
def run(
    handlers: str | None = typer.Option(
        None, "--handlers", help="HandlerRegistry to use, as 'module:attribute'"
    ),
    tick_seconds: float | None = typer.Option(None, "--tick-seconds", min=0.001),
    max_concurrent: int | None = typer.Option(None, "--max-concurrent", min=1),
    duration: float | None = typer.Option(
        None, "--duration", help="Stop after this many seconds (default: run until interrupted)"
    ),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Run the scheduler in the foreground."""
    settings = load_settings(
        database,
        tick_seconds=tick_seconds,
        max_concurrent_jobs=max_concurrent,
    )
    configure_logging(level=settings.log_level, json_format=settings.json_logs)
    registry = load_registry(handlers) if handlers else None
    scheduler = build_scheduler(settings, registry=registry)

    async def _serve() -> None:
        await scheduler.initialize()
        try:
            if duration is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(duration)
        finally:
            await scheduler.shutdown(wait=True)

    console.print(
        f"[bold]jobspine[/bold] running on {settings.database_url} "
        f"({len(scheduler.registry)} handlers, max {settings.max_concurrent_jobs} concurrent)"
    )
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        logger.info("scheduler_interrupted")
    except JobSpineError as e:
        fail(e.message)
