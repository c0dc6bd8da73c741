"""Catch-up engine: replay instants missed while no instance was running.

Runs once when a job starts, if the job has catch-up enabled and has
executed before.  Walks forward from ``last_scheduled_time`` and executes
every instant strictly before "now" that the ledger has no row for, up to
``max_catch_up`` executions.  Later misses are skipped and logged.

No lease is taken: two instances catching up concurrently are kept apart
by the ledger's uniqueness constraint, and each instant still runs once.

Tags:
    cron, catch-up, backfill, recovery, cronlease
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from cronlease.core.errors import NoMatchingTimeError
from cronlease.core.logging import get_logger
from cronlease.core.models import Execution
from cronlease.core.timestamps import to_db_timestamp
from cronlease.scheduling.calculator import MAX_SEARCH_MINUTES, next_instant
from cronlease.scheduling.expression import CronFields
from cronlease.scheduling.jobs import JobCatalog
from cronlease.scheduling.ledger import ExecutionLedger

logger = get_logger(__name__)

# (scheduled_time) -> recorded execution, or None if another instance claimed it
ExecuteInstant = Callable[[datetime], Awaitable[Execution | None]]


@dataclass
class CatchUpResult:
    """Outcome of one catch-up pass."""

    job_name: str
    executed: list[str] = field(default_factory=list)
    already_recorded: int = 0
    limit_reached: bool = False
    stuck: bool = False
    cursor: datetime | None = None

    @property
    def executed_count(self) -> int:
        return len(self.executed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_name": self.job_name,
            "executed": list(self.executed),
            "already_recorded": self.already_recorded,
            "limit_reached": self.limit_reached,
            "stuck": self.stuck,
            "cursor": to_db_timestamp(self.cursor),
        }


class CatchUpEngine:
    """Replays missed instants of one job through its execution path."""

    def __init__(
        self,
        job_name: str,
        fields: CronFields,
        execute: ExecuteInstant,
        ledger: ExecutionLedger,
        catalog: JobCatalog,
        *,
        timezone: str = "UTC",
        max_catch_up: int = 10,
        max_search_minutes: int = MAX_SEARCH_MINUTES,
    ) -> None:
        self.job_name = job_name
        self.fields = fields
        self.execute = execute
        self.ledger = ledger
        self.catalog = catalog
        self.timezone = timezone
        self.max_catch_up = max_catch_up
        self.max_search_minutes = max_search_minutes

    async def run(self, last_scheduled_time: datetime, now: datetime) -> CatchUpResult:
        """Execute missed instants in ``(last_scheduled_time, now)``.

        The persisted ``last_scheduled_time`` is moved to the last instant
        examined, which is always before ``now``.
        """
        result = CatchUpResult(job_name=self.job_name, cursor=last_scheduled_time)
        cursor = last_scheduled_time

        while True:
            try:
                candidate = next_instant(self.fields, cursor, self.timezone, self.max_search_minutes)
            except NoMatchingTimeError:
                result.stuck = True
                logger.warning("catch_up_no_matching_time", job_name=self.job_name, cursor=to_db_timestamp(cursor))
                break

            if candidate >= now:
                break

            if result.executed_count >= self.max_catch_up:
                result.limit_reached = True
                logger.warning(
                    "catch_up_limit_reached",
                    job_name=self.job_name,
                    max_catch_up=self.max_catch_up,
                    skipped_from=to_db_timestamp(candidate),
                )
                break

            if self.ledger.exists(self.job_name, candidate):
                result.already_recorded += 1
            else:
                execution = await self.execute(candidate)
                if execution is not None:
                    result.executed.append(execution.execution_id)
                else:
                    result.already_recorded += 1
            cursor = candidate

        result.cursor = cursor
        if cursor != last_scheduled_time:
            self.catalog.record_catch_up(self.job_name, cursor)

        logger.info(
            "catch_up_finished",
            job_name=self.job_name,
            executed=result.executed_count,
            already_recorded=result.already_recorded,
            limit_reached=result.limit_reached,
        )
        return result


__all__ = ["CatchUpEngine", "CatchUpResult", "ExecuteInstant"]
