"""Store connection helpers.

Opens the relational store named by ``CronSettings.database`` and checks
that a supplied object really is a usable connection before any job is
built on top of it.

    - ``connect("jobs.db")``                       → sqlite3
    - ``connect("postgresql://user@host/db")``     → psycopg (``postgres`` extra)

PostgreSQL connections are opened in autocommit mode: every statement the
scheduler issues is a single atomic statement, so no transaction is ever
left idle between ticks.

Tags:
    database, connection, sqlite, postgresql, cronlease
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from cronlease.core.errors import ConfigError, StoreUnavailableError
from cronlease.core.logging import get_logger
from cronlease.core.protocols import Connection

logger = get_logger(__name__)

_POSTGRES_SCHEMES = ("postgresql://", "postgres://")


def is_postgres_url(database: str) -> bool:
    """True if ``database`` is a PostgreSQL connection URL."""
    return database.startswith(_POSTGRES_SCHEMES)


def connect(database: str) -> Connection:
    """Open a connection to a SQLite file or a PostgreSQL URL.

    Raises:
        ConfigError: psycopg is not installed for a PostgreSQL URL.
        StoreUnavailableError: The store cannot be reached.
    """
    if is_postgres_url(database):
        try:
            import psycopg
        except ImportError:
            raise ConfigError(
                "psycopg is required for PostgreSQL. Install with: pip install 'cronlease[postgres]'"
            ) from None

        try:
            conn = psycopg.connect(database, autocommit=True)
        except psycopg.Error as e:
            raise StoreUnavailableError(
                f"Failed to connect to PostgreSQL: {e}",
                cause=e,
            ) from e
        logger.debug("store_connected", backend="postgresql")
        return conn

    if database != ":memory:":
        Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)
        database = str(Path(database).expanduser())
    try:
        conn = sqlite3.connect(database, check_same_thread=False)
    except sqlite3.Error as e:
        raise StoreUnavailableError(
            f"Failed to open SQLite database {database!r}: {e}",
            cause=e,
        ) from e
    logger.debug("store_connected", backend="sqlite", path=database)
    return conn


def ping(conn: Any) -> None:
    """Verify ``conn`` is a relational connection that answers ``SELECT 1``.

    Raises:
        ConfigError: ``conn`` does not look like a DB-API connection.
        StoreUnavailableError: The round-trip failed.
    """
    if not isinstance(conn, Connection):
        raise ConfigError(
            f"Cron jobs require a relational connection, got {type(conn).__name__}"
        )
    try:
        row = conn.execute("SELECT 1").fetchone()
    except Exception as e:
        raise StoreUnavailableError(f"Store check failed: {e}", cause=e) from e
    if row is None:
        raise StoreUnavailableError("Store check returned no row")


@contextmanager
def transaction(conn: Connection) -> Iterator[Connection]:
    """Commit on success, roll back and re-raise on error."""
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise


__all__ = ["connect", "ping", "transaction", "is_postgres_url"]
