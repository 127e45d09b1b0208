"""
CLI: ``jobspine schedules`` - recurring job commands.
"""

from __future__ import annotations

import typer

from jobspine.cli.jobs import _parse_json
from jobspine.cli.utils import SCHEDULE_COLUMNS, fail, output_items, output_record, run_operation

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_schedules(
    user_id: str = typer.Option(..., "--user", "-u", help="Owner user id"),
    active: bool | None = typer.Option(None, "--active/--paused"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List a user's recurring jobs."""
    schedules = run_operation(
        database, lambda s: s.get_recurring_jobs_by_user(user_id, is_active=active)
    )
    output_items(schedules, as_json=json_out, title=f"Schedules: {user_id}", columns=SCHEDULE_COLUMNS)


@app.command("show")
def show_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show recurring job details."""
    schedule = run_operation(database, lambda s: s.get_recurring_job(schedule_id))
    if schedule is None:
        fail(f"Schedule not found: {schedule_id}")
    output_record(schedule, as_json=json_out, title=f"Schedule: {schedule_id}")


@app.command("add")
def add_schedule(
    name: str = typer.Argument(..., help="Handler name"),
    cron: str = typer.Option(..., "--cron", help="Five-field cron expression"),
    data: str = typer.Option("{}", "--data", help="JSON payload"),
    user_id: str | None = typer.Option(None, "--user", "-u"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Create a recurring job and its first occurrence."""
    payload = _parse_json(data)
    schedule = run_operation(
        database,
        lambda s: s.schedule_recurring_job(name, payload, cron, user_id=user_id),
    )
    output_record(schedule, as_json=json_out, title="Schedule Created")


@app.command("pause")
def pause_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Stop a recurring job from spawning new jobs."""
    if not run_operation(database, lambda s: s.pause_recurring_job(schedule_id)):
        fail(f"Schedule not found: {schedule_id}")
    typer.echo(f"Paused {schedule_id}")


@app.command("resume")
def resume_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Resume a paused recurring job."""
    if not run_operation(database, lambda s: s.resume_recurring_job(schedule_id)):
        fail(f"Schedule not found: {schedule_id}")
    typer.echo(f"Resumed {schedule_id}")


@app.command("delete")
def delete_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Delete a recurring job. Jobs it already spawned are kept."""
    if not run_operation(database, lambda s: s.delete_recurring_job(schedule_id)):
        fail(f"Schedule not found: {schedule_id}")
    typer.echo(f"Deleted {schedule_id}")
