"""
CLI utility helpers: output formatting and connection management.
"""

from __future__ import annotations

import json
from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.table import Table

from cronlease.core.db import connect
from cronlease.core.dialect import Dialect, detect_dialect
from cronlease.core.errors import CronLeaseError
from cronlease.core.protocols import Connection
from cronlease.core.schema import CRON_TABLES
from cronlease.core.settings import CronSettings

console = Console()
err_console = Console(stderr=True)


# ── Connection helper ────────────────────────────────────────────────────


def get_connection(database: str | None = None) -> tuple[Connection, Dialect]:
    """Open the store.  Defaults to ``CRONLEASE_DATABASE`` / ``~/.cronlease/cronlease.db``."""
    conn = connect(database or CronSettings().database)
    return conn, detect_dialect(conn)


def open_store(database: str | None = None) -> tuple[Connection, Dialect]:
    """Open the store and check the cron tables exist; exit 1 otherwise."""
    try:
        conn, dialect = get_connection(database)
    except CronLeaseError as e:
        fail(e.message, e.category.value)
    for table in CRON_TABLES.values():
        if not conn.execute(dialect.table_exists_query(), (table,)).fetchone():
            fail(f"Table {table} does not exist. Run: cronlease db init", "SCHEMA")
    return conn, dialect


# ── Output helpers ───────────────────────────────────────────────────────


def _plain(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / dict to a plain dict."""
    if hasattr(obj, "to_dict"):
        data = obj.to_dict()
    elif is_dataclass(obj) and not isinstance(obj, type):
        data = asdict(obj)
    elif isinstance(obj, dict):
        data = obj
    else:
        return {"value": str(obj)}
    return {k: _plain(v) for k, v in data.items()}


def fail(message: str, code: str = "ERROR") -> NoReturn:
    """Print an error and exit with status 1."""
    err_console.print(f"[bold red]Error[/bold red] ({code}): {message}")
    raise typer.Exit(code=1)


def output_items(items: list, *, as_json: bool = False, title: str = "") -> None:
    """Render a list of records as a table or a JSON array."""
    if as_json:
        console.print_json(json.dumps([_to_dict(i) for i in items], default=str))
        return
    if not items:
        console.print("[dim]No items.[/dim]")
        return
    _print_table(items, title=title)


def output_dict(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a single record as key/value pairs or a JSON object."""
    payload = _to_dict(data)
    if as_json:
        console.print_json(json.dumps(payload, default=str))
        return
    _print_dict(payload, title=title)


# ── Private helpers ──────────────────────────────────────────────────────


def _print_table(items: list, *, title: str = "") -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(col, overflow="fold")
    for item in items:
        d = _to_dict(item)
        table.add_row(*("" if v is None else str(v) for v in d.values()))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
