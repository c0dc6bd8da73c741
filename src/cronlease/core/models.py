"""Dataclass models for the cron tables.

Manifesto:
    Field names match SQL column names exactly, so a row selected with the
    ``*_COLUMNS`` tuples maps straight onto a model.  Timestamps are parsed
    into aware UTC datetimes at the boundary; nothing above the repositories
    ever sees the stored text form.

Tags:
    models, dataclasses, cron, ledger, lease, cronlease
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from cronlease.core.timestamps import from_db_timestamp


class ExecutionStatus(str, Enum):
    """Execution lifecycle: pending → running → completed | failed."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED)


# ---------------------------------------------------------------------------
# cron_jobs
# ---------------------------------------------------------------------------

JOB_COLUMNS = (
    "job_name",
    "schedule",
    "timezone",
    "catch_up",
    "max_catch_up",
    "enabled",
    "last_scheduled_time",
    "next_scheduled_time",
    "created_at",
    "updated_at",
)


@dataclass
class CronJobRecord:
    """Job catalogue row (``cron_jobs``)."""

    job_name: str
    schedule: str
    timezone: str = "UTC"
    catch_up: bool = False
    max_catch_up: int = 10
    enabled: bool = True
    last_scheduled_time: datetime | None = None
    next_scheduled_time: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> CronJobRecord:
        values = dict(zip(JOB_COLUMNS, row, strict=True))
        return cls(
            job_name=values["job_name"],
            schedule=values["schedule"],
            timezone=values["timezone"],
            catch_up=bool(values["catch_up"]),
            max_catch_up=int(values["max_catch_up"]),
            enabled=bool(values["enabled"]),
            last_scheduled_time=from_db_timestamp(values["last_scheduled_time"]),
            next_scheduled_time=from_db_timestamp(values["next_scheduled_time"]),
            created_at=from_db_timestamp(values["created_at"]),
            updated_at=from_db_timestamp(values["updated_at"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# cron_executions
# ---------------------------------------------------------------------------

EXECUTION_COLUMNS = (
    "execution_id",
    "job_name",
    "scheduled_time",
    "actual_time",
    "status",
    "output",
    "error",
    "duration_ms",
    "completed_at",
    "created_at",
)


@dataclass
class Execution:
    """Execution ledger row (``cron_executions``).

    ``output`` is the decoded JSON value the handler returned.
    """

    execution_id: str
    job_name: str
    scheduled_time: datetime
    actual_time: datetime
    status: ExecutionStatus = ExecutionStatus.PENDING
    output: Any = None
    error: str | None = None
    duration_ms: int | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> Execution:
        values = dict(zip(EXECUTION_COLUMNS, row, strict=True))
        raw_output = values["output"]
        return cls(
            execution_id=values["execution_id"],
            job_name=values["job_name"],
            scheduled_time=from_db_timestamp(values["scheduled_time"]),
            actual_time=from_db_timestamp(values["actual_time"]),
            status=ExecutionStatus(values["status"]),
            output=json.loads(raw_output) if raw_output is not None else None,
            error=values["error"],
            duration_ms=values["duration_ms"],
            completed_at=from_db_timestamp(values["completed_at"]),
            created_at=from_db_timestamp(values["created_at"]),
        )

    def to_dict(self) -> dict[str, Any]:
        result = asdict(self)
        result["status"] = self.status.value
        return result


# ---------------------------------------------------------------------------
# cron_locks
# ---------------------------------------------------------------------------

LEASE_COLUMNS = ("job_name", "locked_by", "locked_at", "expires_at")


@dataclass
class LeaseRecord:
    """Lease row (``cron_locks``)."""

    job_name: str
    locked_by: str
    locked_at: datetime
    expires_at: datetime

    @classmethod
    def from_row(cls, row: Any) -> LeaseRecord:
        values = dict(zip(LEASE_COLUMNS, row, strict=True))
        return cls(
            job_name=values["job_name"],
            locked_by=values["locked_by"],
            locked_at=from_db_timestamp(values["locked_at"]),
            expires_at=from_db_timestamp(values["expires_at"]),
        )

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


__all__ = [
    "ExecutionStatus",
    "CronJobRecord",
    "Execution",
    "LeaseRecord",
    "JOB_COLUMNS",
    "EXECUTION_COLUMNS",
    "LEASE_COLUMNS",
]
