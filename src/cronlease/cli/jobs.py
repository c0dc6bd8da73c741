"""
CLI: ``cronlease jobs`` - inspect and pause registered cron jobs.
"""

from __future__ import annotations

from datetime import datetime

import typer

from cronlease.cli.utils import fail, open_store, output_items
from cronlease.scheduling.jobs import JobCatalog
from cronlease.scheduling.ledger import ExecutionLedger

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_jobs(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List jobs with their last and next scheduled instants."""
    conn, dialect = open_store(database)
    jobs = JobCatalog(conn, dialect).list_all()
    rows = [
        {
            "job_name": j.job_name,
            "schedule": j.schedule,
            "timezone": j.timezone,
            "enabled": j.enabled,
            "catch_up": j.catch_up,
            "last_scheduled_time": j.last_scheduled_time,
            "next_scheduled_time": j.next_scheduled_time,
        }
        for j in jobs
    ]
    output_items(rows, as_json=json_out, title="Cron Jobs")


@app.command("history")
def history(
    job_name: str = typer.Argument(..., help="Job name"),
    limit: int = typer.Option(20, "--limit", "-n", min=1),
    since: datetime | None = typer.Option(None, "--since", help="Only instants at or after (UTC)"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show recorded executions, newest first."""
    conn, dialect = open_store(database)
    if JobCatalog(conn, dialect).get(job_name) is None:
        fail(f"Cron job not found: {job_name}", "NOT_FOUND")
    executions = ExecutionLedger(conn, dialect).history(job_name, since=since, limit=limit)
    rows = [
        {
            "execution_id": e.execution_id,
            "scheduled_time": e.scheduled_time,
            "status": e.status,
            "duration_ms": e.duration_ms,
            "error": e.error,
        }
        for e in executions
    ]
    output_items(rows, as_json=json_out, title=f"History: {job_name}")


@app.command("pause")
def pause(
    job_name: str = typer.Argument(..., help="Job name"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Disable a job on every instance."""
    conn, dialect = open_store(database)
    if not JobCatalog(conn, dialect).set_enabled(job_name, False):
        fail(f"Cron job not found: {job_name}", "NOT_FOUND")
    typer.echo(f"Paused {job_name}")


@app.command("resume")
def resume(
    job_name: str = typer.Argument(..., help="Job name"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Re-enable a paused job."""
    conn, dialect = open_store(database)
    if not JobCatalog(conn, dialect).set_enabled(job_name, True):
        fail(f"Cron job not found: {job_name}", "NOT_FOUND")
    typer.echo(f"Resumed {job_name}")
