"""
Execution ledger (``cron_executions``).

Manifesto:
    The ledger is the correctness guarantee of the scheduler.  Before any
    handler runs, the instance claims the (job, scheduled instant) pair by
    inserting a ``running`` row; the ``UNIQUE(job_name, scheduled_time)``
    constraint lets exactly one claim succeed fleet-wide.  Whoever loses
    the claim abandons the instant.

    - **Idempotent claim:** ``record_start`` returns False on a duplicate
    - **Single outcome:** ``record_outcome`` moves running → completed|failed once
    - **Durable audit:** rows are never deleted

Architecture:
    ::

        record_start ──INSERT OR IGNORE──► status=running
                             │ rowcount 0 → already recorded, abandon
                             ▼
                     handler / workflow
                             │
        record_outcome ──UPDATE … WHERE status='running'──► completed | failed

Tags:
    cron, ledger, idempotency, audit, cronlease
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from cronlease.core.dialect import Dialect, SQLiteDialect
from cronlease.core.logging import get_logger
from cronlease.core.models import EXECUTION_COLUMNS, Execution, ExecutionStatus
from cronlease.core.protocols import Connection
from cronlease.core.timestamps import Clock, to_db_timestamp, utc_now

logger = get_logger(__name__)

_SELECT = f"SELECT {', '.join(EXECUTION_COLUMNS)} FROM cron_executions"


def encode_output(output: Any) -> str | None:
    """JSON text for the ``output`` column (non-JSON values via ``str``)."""
    if output is None:
        return None
    return json.dumps(output, default=str)


class ExecutionLedger:
    """Repository for ``cron_executions``."""

    def __init__(
        self,
        conn: Connection,
        dialect: Dialect | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.conn = conn
        self.dialect: Dialect = dialect or SQLiteDialect()
        self._clock = clock

    def _ph(self, count: int = 1) -> str:
        return self.dialect.placeholders(count)

    # === Writes ===

    def record_start(
        self,
        execution_id: str,
        job_name: str,
        scheduled_time: datetime,
        actual_time: datetime,
    ) -> bool:
        """Claim the instant with a ``running`` row.

        Returns:
            True if this call created the row. False means the instant (or
            the execution id) was already recorded and the caller must not
            run the handler.
        """
        sql = self.dialect.insert_or_ignore(
            "cron_executions",
            ["execution_id", "job_name", "scheduled_time", "actual_time", "status", "created_at"],
        )
        cursor = self.conn.execute(
            sql,
            (
                execution_id,
                job_name,
                to_db_timestamp(scheduled_time),
                to_db_timestamp(actual_time),
                ExecutionStatus.RUNNING.value,
                to_db_timestamp(self._clock()),
            ),
        )
        self.conn.commit()
        started = cursor.rowcount > 0
        if not started:
            logger.debug(
                "execution_already_recorded",
                job_name=job_name,
                scheduled_time=to_db_timestamp(scheduled_time),
            )
        return started

    def record_outcome(
        self,
        execution_id: str,
        status: ExecutionStatus,
        output: Any = None,
        error: str | None = None,
        duration_ms: int = 0,
    ) -> bool:
        """Store the terminal status of a running execution.

        Returns:
            True if the row moved out of ``running``; False if it was not
            running (unknown id or outcome already recorded).
        """
        status = ExecutionStatus(status)
        if not status.is_terminal:
            raise ValueError(f"Outcome status must be completed or failed, got {status.value}")

        cursor = self.conn.execute(
            f"""
            UPDATE cron_executions
            SET status = {self._ph()}, output = {self._ph()}, error = {self._ph()},
                duration_ms = {self._ph()}, completed_at = {self._ph()}
            WHERE execution_id = {self._ph()} AND status = {self._ph()}
            """,
            (
                status.value,
                encode_output(output),
                error,
                duration_ms,
                to_db_timestamp(self._clock()),
                execution_id,
                ExecutionStatus.RUNNING.value,
            ),
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            logger.warning("execution_outcome_ignored", execution_id=execution_id, status=status.value)
            return False
        return True

    # === Reads ===

    def exists(self, job_name: str, scheduled_time: datetime) -> bool:
        row = self.conn.execute(
            f"""
            SELECT 1 FROM cron_executions
            WHERE job_name = {self._ph()} AND scheduled_time = {self._ph()}
            """,
            (job_name, to_db_timestamp(scheduled_time)),
        ).fetchone()
        return row is not None

    def get(self, execution_id: str) -> Execution | None:
        row = self.conn.execute(
            f"{_SELECT} WHERE execution_id = {self._ph()}",
            (execution_id,),
        ).fetchone()
        return Execution.from_row(row) if row else None

    def get_for_instant(self, job_name: str, scheduled_time: datetime) -> Execution | None:
        row = self.conn.execute(
            f"{_SELECT} WHERE job_name = {self._ph()} AND scheduled_time = {self._ph()}",
            (job_name, to_db_timestamp(scheduled_time)),
        ).fetchone()
        return Execution.from_row(row) if row else None

    def history(
        self,
        job_name: str,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[Execution]:
        """Executions of ``job_name``, most recent scheduled instant first.

        Args:
            job_name: Job to list
            since: Only instants at or after this time
            limit: Maximum number of rows
        """
        sql = f"{_SELECT} WHERE job_name = {self._ph()}"
        params: list[Any] = [job_name]
        if since is not None:
            sql += f" AND scheduled_time >= {self._ph()}"
            params.append(to_db_timestamp(since))
        sql += " ORDER BY scheduled_time DESC"
        if limit is not None:
            sql += f" LIMIT {self._ph()}"
            params.append(int(limit))

        cursor = self.conn.execute(sql, tuple(params))
        return [Execution.from_row(row) for row in cursor.fetchall()]

    def list_running(self) -> list[Execution]:
        """Executions still marked running (in flight, or orphaned by a crash)."""
        cursor = self.conn.execute(
            f"{_SELECT} WHERE status = {self._ph()} ORDER BY scheduled_time",
            (ExecutionStatus.RUNNING.value,),
        )
        return [Execution.from_row(row) for row in cursor.fetchall()]


__all__ = ["ExecutionLedger", "encode_output"]
