"""
Cron store tables.

Defines table names and DDL statements for the three tables the scheduler
coordinates through: the job catalogue, the execution ledger and the lease
table.

Manifesto:
    The store is the only coordination medium between instances, so the
    schema itself carries the guarantees:

    - **cron_executions:** ``UNIQUE(job_name, scheduled_time)`` is the
      idempotency barrier; a second claim on the same instant is a no-op
    - **cron_locks:** one row per job; the primary key makes the lease
      upsert atomic
    - **cron_jobs:** the persistent cursor (last/next scheduled instant)

Architecture:
    ::

        Table Registry (CRON_TABLES):
        ┌────────────────────────────────────────────────────────────┐
        │ jobs        → cron_jobs        (job_name PK)               │
        │ executions  → cron_executions  (execution_id PK,           │
        │                                 UNIQUE job+instant)        │
        │ locks       → cron_locks       (job_name PK)               │
        └────────────────────────────────────────────────────────────┘

    All timestamp columns are TEXT holding fixed-width UTC ISO-8601, so
    the same DDL is valid on SQLite and PostgreSQL.

Examples:
    >>> import sqlite3
    >>> from cronlease.core.schema import create_cron_tables
    >>> conn = sqlite3.connect(":memory:")
    >>> create_cron_tables(conn)

Tags:
    schema, ddl, cron, ledger, lease, cronlease
"""

from __future__ import annotations

from cronlease.core.db import transaction
from cronlease.core.logging import get_logger
from cronlease.core.protocols import Connection

logger = get_logger(__name__)

# =============================================================================
# TABLE NAMES
# =============================================================================

CRON_TABLES = {
    "jobs": "cron_jobs",
    "executions": "cron_executions",
    "locks": "cron_locks",
}


# =============================================================================
# DDL STATEMENTS
# =============================================================================

CRON_DDL = {
    # =========================================================================
    # CRON_JOBS: one row per registered job, upserted on every start.
    # last/next_scheduled_time form the persistent cursor.
    # =========================================================================
    "jobs": """
        CREATE TABLE IF NOT EXISTS cron_jobs (
            job_name TEXT PRIMARY KEY,
            schedule TEXT NOT NULL,
            timezone TEXT NOT NULL DEFAULT 'UTC',
            catch_up INTEGER NOT NULL DEFAULT 0,
            max_catch_up INTEGER NOT NULL DEFAULT 10,
            enabled INTEGER NOT NULL DEFAULT 1,
            last_scheduled_time TEXT,
            next_scheduled_time TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """,
    # =========================================================================
    # CRON_EXECUTIONS: append-only ledger. Inserted as 'running' before the
    # handler runs, updated exactly once to 'completed' or 'failed'.
    # =========================================================================
    "executions": """
        CREATE TABLE IF NOT EXISTS cron_executions (
            execution_id TEXT PRIMARY KEY,
            job_name TEXT NOT NULL REFERENCES cron_jobs(job_name),
            scheduled_time TEXT NOT NULL,
            actual_time TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            output TEXT,
            error TEXT,
            duration_ms INTEGER,
            completed_at TEXT,
            created_at TEXT NOT NULL,
            UNIQUE (job_name, scheduled_time)
        )
    """,
    "executions_idx_job_time": """
        CREATE INDEX IF NOT EXISTS idx_cron_executions_job_time
        ON cron_executions(job_name, scheduled_time DESC)
    """,
    "executions_idx_active": """
        CREATE INDEX IF NOT EXISTS idx_cron_executions_active
        ON cron_executions(status)
        WHERE status IN ('pending', 'running')
    """,
    # =========================================================================
    # CRON_LOCKS: per-job lease. Exclusive until expires_at has passed.
    # =========================================================================
    "locks": """
        CREATE TABLE IF NOT EXISTS cron_locks (
            job_name TEXT PRIMARY KEY,
            locked_by TEXT NOT NULL,
            locked_at TEXT NOT NULL,
            expires_at TEXT NOT NULL
        )
    """,
    "locks_idx_expires": """
        CREATE INDEX IF NOT EXISTS idx_cron_locks_expires
        ON cron_locks(expires_at)
    """,
}


def create_cron_tables(conn: Connection) -> None:
    """
    Create the cron tables and indexes.

    Safe to call multiple times (CREATE IF NOT EXISTS).
    """
    with transaction(conn):
        for _name, ddl in CRON_DDL.items():
            conn.execute(ddl)
    logger.debug("cron_tables_ensured", tables=list(CRON_TABLES.values()))


__all__ = ["CRON_TABLES", "CRON_DDL", "create_cron_tables"]
