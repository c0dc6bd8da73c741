"""
Root Typer application for the cronlease CLI.

Operates directly on the store: the CLI never runs handlers, it inspects
the job catalogue, the execution ledger and the lease table that running
instances share.
"""

from __future__ import annotations

import sys

import typer
from typer import Typer

from cronlease.cli.utils import fail, open_store, output_dict, output_items
from cronlease.core.errors import CronLeaseError
from cronlease.core.logging import configure_logging
from cronlease.core.settings import CronSettings

app = Typer(
    name="cronlease",
    help="cronlease - distributed persistent cron scheduling.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from cronlease import __version__

        typer.echo(f"cronlease {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """cronlease CLI: inspect jobs, executions and leases."""
    settings = CronSettings()
    # Logs go to stderr; stdout carries tables and --json documents
    configure_logging(level=settings.log_level, json_format=settings.json_logs, stream=sys.stderr)


# ── Top-level commands ───────────────────────────────────────────────────


@app.command()
def locks(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List unexpired leases and their holders."""
    from cronlease.scheduling.lease import LeaseCoordinator

    conn, dialect = open_store(database)
    leases = LeaseCoordinator(conn, dialect).list_active()
    output_items(leases, as_json=json_out, title="Active Leases")


@app.command()
def parse(
    expression: str = typer.Argument(..., help='Cron expression, e.g. "*/15 9-17 * * 1-5"'),
    count: int = typer.Option(5, "--count", "-n", min=0, help="Upcoming instants to show"),
    timezone: str = typer.Option("UTC", "--tz", help="IANA timezone of the schedule"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show the parsed fields of an expression and its next instants."""
    from cronlease.core.timestamps import utc_now
    from cronlease.scheduling.calculator import upcoming
    from cronlease.scheduling.expression import parse_expression

    try:
        fields = parse_expression(expression)
        instants = upcoming(fields, utc_now(), count, timezone)
    except CronLeaseError as e:
        fail(e.message, e.category.value)

    if json_out:
        output_dict(
            {
                "expression": expression,
                "timezone": timezone,
                "fields": fields.as_dict(),
                "upcoming": [i.isoformat() for i in instants],
            },
            as_json=True,
        )
        return

    summary = {"expression": expression, "timezone": timezone}
    for name, values in fields.as_dict().items():
        summary[name] = ",".join(str(v) for v in values)
    output_dict(summary, title="Expression")
    output_items([{"#": n + 1, "instant_utc": i} for n, i in enumerate(instants)], title="Upcoming")


# ── Sub-command registration ─────────────────────────────────────────────

from cronlease.cli.db import app as db_app  # noqa: E402
from cronlease.cli.jobs import app as jobs_app  # noqa: E402

app.add_typer(db_app, name="db", help="Store operations.")
app.add_typer(jobs_app, name="jobs", help="Cron job inspection.")
