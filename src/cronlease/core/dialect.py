"""SQL dialect abstraction for the cron store.

Provides a ``Dialect`` protocol and concrete implementations for the two
supported backends.  The job catalogue, execution ledger and lease table
build their SQL from ``Dialect`` methods (placeholders, insert-if-absent,
conditional upsert) without importing or referencing a database driver.

Manifesto:
    The scheduler must behave identically on SQLite (tests, single host)
    and PostgreSQL (fleet).  The two places where the syntax diverges are
    exactly the two atomic primitives the scheduler is built on:

    - **insert_or_ignore():** ledger claim, ``UNIQUE(job_name, scheduled_time)``
    - **upsert(where=...):** lease acquisition, conditional on expiry/holder

    Both return a single statement whose ``rowcount`` tells the caller
    whether it won.

Architecture::

    LeaseCoordinator / ExecutionLedger / JobCatalog
                         │
                         ▼
            ┌──────────────────────┐ ┌──────────────────────────┐
            │ SQLiteDialect        │ │ PostgreSQLDialect        │
            │ ?, ?, ?              │ │ %s, %s, %s               │
            │ INSERT OR IGNORE     │ │ ON CONFLICT DO NOTHING   │
            │ excluded.col         │ │ EXCLUDED.col             │
            └──────────────────────┘ └──────────────────────────┘

Examples:
    >>> from cronlease.core.dialect import SQLiteDialect
    >>> d = SQLiteDialect()
    >>> d.placeholders(3)
    '?, ?, ?'
    >>> d.insert_or_ignore("t", ["a", "b"])
    'INSERT OR IGNORE INTO t (a, b) VALUES (?, ?)'

Guardrails:
    ❌ DON'T: Write backend-specific SQL in the scheduling package
    ✅ DO: Use Dialect methods for placeholders, claims and upserts

Tags:
    dialect, sql, abstraction, portability, sqlite, postgresql, cronlease
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Dialect(Protocol):
    """SQL dialect contract.

    Every method returns a SQL fragment or full statement valid for the
    target database.
    """

    @property
    def name(self) -> str:
        """Human-readable dialect name (e.g. ``'sqlite'``)."""
        ...

    def placeholder(self, index: int) -> str:
        """Single positional placeholder (0-based index)."""
        ...

    def placeholders(self, count: int) -> str:
        """Comma-separated placeholder list."""
        ...

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        """``INSERT … ON CONFLICT DO NOTHING`` (or equivalent).

        ``rowcount`` of the executed statement is 1 when the row was
        inserted and 0 when a conflicting row already existed.
        """
        ...

    def upsert(
        self,
        table: str,
        columns: list[str],
        key_columns: list[str],
        where: str | None = None,
        values: list[str] | None = None,
    ) -> str:
        """``INSERT … ON CONFLICT (keys) DO UPDATE SET … [WHERE …]``

        ``values`` are SQL expressions for the ``VALUES`` list, one
        placeholder per column by default.  ``where`` is appended verbatim
        to the update branch; its placeholders follow those of ``values``.
        When the condition is false the statement affects no row.
        """
        ...

    def current_timestamp(self, offset: bool = False) -> str:
        """SQL expression for the store's current UTC time as canonical text.

        The text matches ``to_db_timestamp`` so it compares correctly with
        stored values.  With ``offset`` the expression takes one placeholder,
        a number of seconds added to now.
        """
        ...

    def table_exists_query(self) -> str:
        """Query with one placeholder returning a row if the table exists."""
        ...


# =========================================================================
# Concrete Dialect Implementations
# =========================================================================


class SQLiteDialect:
    """SQLite dialect: ``?`` placeholders, ``INSERT OR IGNORE``."""

    @property
    def name(self) -> str:
        return "sqlite"

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "?"

    def placeholders(self, count: int) -> str:
        return ", ".join("?" for _ in range(count))

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        cols = ", ".join(columns)
        ph = self.placeholders(len(columns))
        return f"INSERT OR IGNORE INTO {table} ({cols}) VALUES ({ph})"

    def upsert(
        self,
        table: str,
        columns: list[str],
        key_columns: list[str],
        where: str | None = None,
        values: list[str] | None = None,
    ) -> str:
        cols = ", ".join(columns)
        ph = ", ".join(values) if values else self.placeholders(len(columns))
        keys = ", ".join(key_columns)
        update_cols = [c for c in columns if c not in key_columns]
        updates = ", ".join(f"{c} = excluded.{c}" for c in update_cols)
        sql = (
            f"INSERT INTO {table} ({cols}) VALUES ({ph}) "
            f"ON CONFLICT ({keys}) DO UPDATE SET {updates}"
        )
        if where:
            sql += f" WHERE {where}"
        return sql

    def current_timestamp(self, offset: bool = False) -> str:
        # %f is seconds with milliseconds; pad to microseconds
        modifier = ", '+' || ? || ' seconds'" if offset else ""
        return f"strftime('%Y-%m-%dT%H:%M:%f000+00:00', 'now'{modifier})"

    def table_exists_query(self) -> str:
        return "SELECT name FROM sqlite_master WHERE type='table' AND name = ?"


class PostgreSQLDialect:
    """PostgreSQL dialect: ``%s`` placeholders (psycopg), ``ON CONFLICT``."""

    @property
    def name(self) -> str:
        return "postgresql"

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "%s"

    def placeholders(self, count: int) -> str:
        return ", ".join("%s" for _ in range(count))

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        cols = ", ".join(columns)
        ph = self.placeholders(len(columns))
        return f"INSERT INTO {table} ({cols}) VALUES ({ph}) ON CONFLICT DO NOTHING"

    def upsert(
        self,
        table: str,
        columns: list[str],
        key_columns: list[str],
        where: str | None = None,
        values: list[str] | None = None,
    ) -> str:
        cols = ", ".join(columns)
        ph = ", ".join(values) if values else self.placeholders(len(columns))
        keys = ", ".join(key_columns)
        update_cols = [c for c in columns if c not in key_columns]
        updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in update_cols)
        sql = (
            f"INSERT INTO {table} ({cols}) VALUES ({ph}) "
            f"ON CONFLICT ({keys}) DO UPDATE SET {updates}"
        )
        if where:
            sql += f" WHERE {where}"
        return sql

    def current_timestamp(self, offset: bool = False) -> str:
        now = "now() + make_interval(secs => CAST(%s AS double precision))" if offset else "now()"
        return f"to_char(({now}) AT TIME ZONE 'UTC', 'YYYY-MM-DD\"T\"HH24:MI:SS.US\"+00:00\"')"

    def table_exists_query(self) -> str:
        return (
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = current_schema() AND table_name = %s"
        )


# =========================================================================
# Dialect Registry
# =========================================================================


_DIALECTS: dict[str, Dialect] = {
    "sqlite": SQLiteDialect(),
    "postgresql": PostgreSQLDialect(),
    "postgres": PostgreSQLDialect(),  # alias
}

# Driver module prefix → dialect key
_DRIVER_MODULES: dict[str, str] = {
    "sqlite3": "sqlite",
    "psycopg": "postgresql",
}


def get_dialect(db_type: str) -> Dialect:
    """Get a dialect by database type name.

    Raises:
        ValueError: If ``db_type`` is not recognised.

    Example:
        >>> get_dialect("postgresql").placeholders(2)
        '%s, %s'
    """
    key = db_type.lower()
    if key not in _DIALECTS:
        raise ValueError(
            f"Unknown dialect '{db_type}'. "
            f"Supported: {sorted(set(_DIALECTS) - {'postgres'})}"
        )
    return _DIALECTS[key]


def register_dialect(name: str, dialect: Dialect) -> None:
    """Register a custom dialect implementation (lower-cased key)."""
    _DIALECTS[name.lower()] = dialect


def detect_dialect(conn: Any) -> Dialect:
    """Pick the dialect from the connection's driver module.

    Raises:
        ValueError: If the driver is not one of the supported backends.
    """
    module = type(conn).__module__
    for prefix, key in _DRIVER_MODULES.items():
        if module == prefix or module.startswith(prefix + "."):
            return _DIALECTS[key]
    raise ValueError(f"Cannot detect SQL dialect for connection type {type(conn)!r}")


__all__ = [
    "Dialect",
    "SQLiteDialect",
    "PostgreSQLDialect",
    "get_dialect",
    "register_dialect",
    "detect_dialect",
]
