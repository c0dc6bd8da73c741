"""cronlease core - store, errors, logging and settings primitives.

Architecture::

    errors.py       Structured error hierarchy (CronLeaseError)
    logging.py      structlog configuration + LogContext
    settings.py     CronSettings (pydantic-settings, CRONLEASE_*)
    timestamps.py   UTC helpers and the canonical stored timestamp form
    protocols.py    Connection, Cursor, EventSink
    dialect.py      SQLite / PostgreSQL SQL generation
    db.py           connect(), ping(), transaction()
    schema.py       cron_jobs, cron_executions, cron_locks DDL
    models.py       Row dataclasses and ExecutionStatus

Everything here is synchronous; the scheduling package awaits handlers
but talks to the store through these blocking primitives.
"""

from cronlease.core.db import connect, ping, transaction
from cronlease.core.dialect import Dialect, PostgreSQLDialect, SQLiteDialect, detect_dialect, get_dialect
from cronlease.core.errors import (
    ConfigError,
    CronExpressionError,
    CronLeaseError,
    DatabaseError,
    DuplicateJobError,
    ErrorCategory,
    JobNotFoundError,
    NoMatchingTimeError,
    ScheduleError,
    StoreUnavailableError,
    ValidationError,
)
from cronlease.core.logging import LogContext, configure_logging, get_logger
from cronlease.core.models import CronJobRecord, Execution, ExecutionStatus, LeaseRecord
from cronlease.core.protocols import Connection, EventSink
from cronlease.core.schema import CRON_DDL, CRON_TABLES, create_cron_tables
from cronlease.core.settings import CronSettings, get_settings

__all__ = [
    "connect",
    "ping",
    "transaction",
    "Dialect",
    "SQLiteDialect",
    "PostgreSQLDialect",
    "detect_dialect",
    "get_dialect",
    "ErrorCategory",
    "CronLeaseError",
    "ValidationError",
    "CronExpressionError",
    "ConfigError",
    "DatabaseError",
    "StoreUnavailableError",
    "ScheduleError",
    "NoMatchingTimeError",
    "JobNotFoundError",
    "DuplicateJobError",
    "configure_logging",
    "get_logger",
    "LogContext",
    "CronJobRecord",
    "Execution",
    "ExecutionStatus",
    "LeaseRecord",
    "Connection",
    "EventSink",
    "CRON_TABLES",
    "CRON_DDL",
    "create_cron_tables",
    "CronSettings",
    "get_settings",
]
