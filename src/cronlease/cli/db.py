"""
CLI: ``cronlease db`` - store management commands.
"""

from __future__ import annotations

import typer

from cronlease.cli.utils import fail, get_connection, output_dict
from cronlease.core.errors import CronLeaseError
from cronlease.core.schema import CRON_TABLES, create_cron_tables

app = typer.Typer(no_args_is_help=True)


@app.command()
def init(
    database: str | None = typer.Option(None, "--database", "-d", help="SQLite path or postgresql:// URL"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Create the cron tables (idempotent)."""
    try:
        conn, dialect = get_connection(database)
        create_cron_tables(conn)
    except CronLeaseError as e:
        fail(e.message, e.category.value)
    output_dict(
        {"dialect": dialect.name, "tables": ", ".join(CRON_TABLES.values())},
        as_json=json_out,
        title="Database Init",
    )


@app.command()
def tables(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show row counts for the cron tables."""
    try:
        conn, dialect = get_connection(database)
    except CronLeaseError as e:
        fail(e.message, e.category.value)

    counts: dict[str, int | str] = {}
    for table in CRON_TABLES.values():
        exists = conn.execute(dialect.table_exists_query(), (table,)).fetchone()
        if not exists:
            counts[table] = "missing"
            continue
        counts[table] = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
    output_dict(counts, as_json=json_out, title="Table Counts")
