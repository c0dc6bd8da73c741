"""
Canonical protocol definitions for cronlease.

Manifesto:
    The scheduler never imports a database driver or an event-log client.
    It depends on the *shape* of its collaborators only, so the same code
    runs on ``sqlite3`` in tests and on psycopg against PostgreSQL in
    production, and any append-only log can receive emitted events.

Architecture:
    ::

        protocols.py
        ├── Connection: sync DB-API connection (sqlite3, psycopg)
        ├── Cursor: result of Connection.execute
        └── EventSink: append-only event log consumed by handlers

Guardrails:
    ❌ DON'T: Import sqlite3 or psycopg in scheduling code
    ✅ DO: Type against Connection and let the dialect handle SQL syntax

Tags:
    protocol, connection, event-log, cronlease, contracts
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Cursor(Protocol):
    """Minimal cursor returned by :meth:`Connection.execute`."""

    rowcount: int

    def fetchone(self) -> Any:
        """Fetch one row from the last query."""
        ...

    def fetchall(self) -> list:
        """Fetch all rows from the last query."""
        ...


@runtime_checkable
class Connection(Protocol):
    """
    Minimal SYNCHRONOUS relational connection.

    ``sqlite3.Connection`` and ``psycopg.Connection`` both satisfy it
    natively: ``execute`` returns a cursor exposing ``rowcount``,
    ``fetchone`` and ``fetchall``.

    Examples:
        >>> cursor = conn.execute("SELECT 1", ())
        >>> cursor.fetchone()
        (1,)
    """

    def execute(self, sql: str, params: Any = ()) -> Any:
        """Execute SQL statement with optional parameters."""
        ...

    def commit(self) -> None:
        """Commit current transaction."""
        ...

    def rollback(self) -> None:
        """Rollback current transaction."""
        ...


@runtime_checkable
class EventSink(Protocol):
    """Append-only event log.

    ``append`` may be sync or return an awaitable; the caller treats the
    write as fire-and-forget.
    """

    def append(self, log_name: str, data: Any) -> Any:
        """Append ``data`` to the log called ``log_name``."""
        ...


__all__ = ["Connection", "Cursor", "EventSink"]
