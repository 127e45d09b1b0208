"""
CLI: ``jobspine jobs`` - inspect and manage individual jobs.
"""

from __future__ import annotations

import json
from datetime import datetime

import typer

from jobspine.cli.utils import JOB_COLUMNS, fail, output_items, output_record, run_operation
from jobspine.core.errors import JobSpineError
from jobspine.core.models import JobOptions, JobStatus
from jobspine.core.timestamps import from_iso8601, utc_now

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_jobs(
    user_id: str = typer.Option(..., "--user", "-u", help="Owner user id"),
    status: JobStatus | None = typer.Option(None, "--status", "-s"),
    limit: int = typer.Option(50, "--limit", "-n", min=1),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List a user's jobs, latest first."""
    jobs = run_operation(database, lambda s: s.get_jobs_by_user(user_id, status=status, limit=limit))
    output_items(jobs, as_json=json_out, title=f"Jobs: {user_id}", columns=JOB_COLUMNS)


@app.command("failed")
def failed_jobs(
    user_id: str | None = typer.Option(None, "--user", "-u"),
    limit: int = typer.Option(50, "--limit", "-n", min=1),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List failed jobs, most recently updated first."""
    jobs = run_operation(database, lambda s: s.get_failed_jobs(user_id=user_id, limit=limit))
    output_items(jobs, as_json=json_out, title="Failed jobs", columns=JOB_COLUMNS)


@app.command("show")
def show_job(
    job_id: str = typer.Argument(..., help="Job ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show job details."""
    job = run_operation(database, lambda s: s.get_job(job_id))
    if job is None:
        fail(f"Job not found: {job_id}")
    output_record(job, as_json=json_out, title=f"Job: {job_id}")


@app.command("add")
def add_job(
    name: str = typer.Argument(..., help="Handler name"),
    data: str = typer.Option("{}", "--data", help="JSON payload"),
    at: str | None = typer.Option(None, "--at", help="ISO 8601 due time (default: now)"),
    priority: str | None = typer.Option(None, "--priority", "-p"),
    max_retries: int | None = typer.Option(None, "--max-retries"),
    retry_delay: float | None = typer.Option(None, "--retry-delay"),
    timeout: float | None = typer.Option(None, "--timeout"),
    user_id: str | None = typer.Option(None, "--user", "-u"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Schedule a one-off job."""
    payload = _parse_json(data)
    scheduled_at = _parse_time(at) if at else utc_now()
    try:
        options = JobOptions(
            priority=priority,
            max_retries=max_retries,
            retry_delay=retry_delay,
            timeout=timeout,
        )
    except JobSpineError as e:
        fail(e.message)
    job = run_operation(
        database,
        lambda s: s.schedule_job(name, payload, scheduled_at, options, user_id=user_id),
    )
    output_record(job, as_json=json_out, title="Job Scheduled")


@app.command("retry")
def retry_job(
    job_id: str = typer.Argument(..., help="Job ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Move a failed job back to pending."""
    job = run_operation(database, lambda s: s.retry_job(job_id))
    if job is None:
        fail(f"Job not found: {job_id}")
    output_record(job, as_json=json_out, title="Job Retried")


@app.command("cancel")
def cancel_job(
    job_id: str = typer.Argument(..., help="Job ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Cancel (delete) a pending job."""
    if not run_operation(database, lambda s: s.cancel_job(job_id)):
        fail(f"Job {job_id} not found or not pending")
    typer.echo(f"Cancelled {job_id}")


def _parse_json(raw: str):
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"invalid JSON: {e}", param_hint="--data") from e


def _parse_time(raw: str) -> datetime:
    try:
        return from_iso8601(raw)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--at") from e
