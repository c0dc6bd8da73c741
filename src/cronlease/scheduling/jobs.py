"""
Persistent job registry (``cron_jobs``).

One row per job: its definition plus the persistent cursor
(``last_scheduled_time`` / ``next_scheduled_time``) that every instance
reads on each tick.

Lifecycle of a row
──────────────────
    start()    → upsert: definition refreshed, next = next(now)
    trigger()  → ensure: inserted only if missing, cursor untouched
    tick       → advance: last = handled, next = next(handled),
                 only while next still equals the handled instant
    catch-up   → record_catch_up: last moves forward, never back

Rows are never deleted by the scheduler.

Tags:
    cron, repository, jobs, cursor, cronlease
"""

from __future__ import annotations

from datetime import datetime

from cronlease.core.dialect import Dialect, SQLiteDialect
from cronlease.core.logging import get_logger
from cronlease.core.models import JOB_COLUMNS, CronJobRecord
from cronlease.core.protocols import Connection
from cronlease.core.timestamps import Clock, to_db_timestamp, utc_now

logger = get_logger(__name__)

_SELECT = f"SELECT {', '.join(JOB_COLUMNS)} FROM cron_jobs"


class JobCatalog:
    """Repository for ``cron_jobs``.

    Example:
        >>> catalog = JobCatalog(conn)
        >>> catalog.upsert("nightly", "0 2 * * *", next_scheduled_time=when)
        >>> catalog.get("nightly").next_scheduled_time == when
        True
    """

    def __init__(
        self,
        conn: Connection,
        dialect: Dialect | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.conn = conn
        self.dialect: Dialect = dialect or SQLiteDialect()
        self._clock = clock

    def _ph(self, count: int) -> str:
        return self.dialect.placeholders(count)

    # === Writes ===

    def ensure(
        self,
        job_name: str,
        schedule: str,
        *,
        timezone: str = "UTC",
        catch_up: bool = False,
        max_catch_up: int = 10,
        next_scheduled_time: datetime | None = None,
    ) -> bool:
        """Insert the job row if it does not exist.

        Returns:
            True if a row was inserted.
        """
        now = to_db_timestamp(self._clock())
        sql = self.dialect.insert_or_ignore(
            "cron_jobs",
            [
                "job_name",
                "schedule",
                "timezone",
                "catch_up",
                "max_catch_up",
                "enabled",
                "next_scheduled_time",
                "created_at",
                "updated_at",
            ],
        )
        cursor = self.conn.execute(
            sql,
            (
                job_name,
                schedule,
                timezone,
                1 if catch_up else 0,
                max_catch_up,
                1,
                to_db_timestamp(next_scheduled_time),
                now,
                now,
            ),
        )
        self.conn.commit()
        return cursor.rowcount > 0

    def upsert(
        self,
        job_name: str,
        schedule: str,
        *,
        timezone: str = "UTC",
        catch_up: bool = False,
        max_catch_up: int = 10,
        next_scheduled_time: datetime | None = None,
    ) -> CronJobRecord:
        """Create or refresh the job definition and reset its next instant.

        ``created_at``, ``last_scheduled_time`` and ``enabled`` of an
        existing row are preserved.
        """
        self.ensure(
            job_name,
            schedule,
            timezone=timezone,
            catch_up=catch_up,
            max_catch_up=max_catch_up,
            next_scheduled_time=next_scheduled_time,
        )
        self.conn.execute(
            f"""
            UPDATE cron_jobs
            SET schedule = {self._ph(1)}, timezone = {self._ph(1)},
                catch_up = {self._ph(1)}, max_catch_up = {self._ph(1)},
                next_scheduled_time = {self._ph(1)}, updated_at = {self._ph(1)}
            WHERE job_name = {self._ph(1)}
            """,
            (
                schedule,
                timezone,
                1 if catch_up else 0,
                max_catch_up,
                to_db_timestamp(next_scheduled_time),
                to_db_timestamp(self._clock()),
                job_name,
            ),
        )
        self.conn.commit()
        logger.debug(
            "job_upserted",
            job_name=job_name,
            schedule=schedule,
            next_scheduled_time=to_db_timestamp(next_scheduled_time),
        )
        return self.get(job_name)  # type: ignore[return-value]

    def advance(
        self,
        job_name: str,
        last_scheduled_time: datetime,
        next_scheduled_time: datetime | None,
        *,
        expected_next: datetime | None = None,
    ) -> bool:
        """Move the cursor past a handled instant.

        With ``expected_next`` the update applies only while the stored
        ``next_scheduled_time`` still equals it, so a cursor already moved
        by another instance is left alone.

        Returns:
            True if the row was updated.
        """
        sql = f"""
            UPDATE cron_jobs
            SET last_scheduled_time = {self._ph(1)},
                next_scheduled_time = {self._ph(1)},
                updated_at = {self._ph(1)}
            WHERE job_name = {self._ph(1)}
        """
        params: list = [
            to_db_timestamp(last_scheduled_time),
            to_db_timestamp(next_scheduled_time),
            to_db_timestamp(self._clock()),
            job_name,
        ]
        if expected_next is not None:
            sql += f" AND next_scheduled_time = {self._ph(1)}"
            params.append(to_db_timestamp(expected_next))

        cursor = self.conn.execute(sql, tuple(params))
        self.conn.commit()
        return cursor.rowcount > 0

    def record_catch_up(self, job_name: str, last_scheduled_time: datetime) -> bool:
        """Move ``last_scheduled_time`` forward (never backward)."""
        stamp = to_db_timestamp(last_scheduled_time)
        cursor = self.conn.execute(
            f"""
            UPDATE cron_jobs
            SET last_scheduled_time = {self._ph(1)}, updated_at = {self._ph(1)}
            WHERE job_name = {self._ph(1)}
              AND (last_scheduled_time IS NULL OR last_scheduled_time < {self._ph(1)})
            """,
            (stamp, to_db_timestamp(self._clock()), job_name, stamp),
        )
        self.conn.commit()
        return cursor.rowcount > 0

    def set_enabled(self, job_name: str, enabled: bool) -> bool:
        """Pause or resume a job. Disabled jobs are never due."""
        cursor = self.conn.execute(
            f"""
            UPDATE cron_jobs SET enabled = {self._ph(1)}, updated_at = {self._ph(1)}
            WHERE job_name = {self._ph(1)}
            """,
            (1 if enabled else 0, to_db_timestamp(self._clock()), job_name),
        )
        self.conn.commit()
        if cursor.rowcount > 0:
            logger.info("job_enabled" if enabled else "job_paused", job_name=job_name)
        return cursor.rowcount > 0

    # === Reads ===

    def get(self, job_name: str) -> CronJobRecord | None:
        row = self.conn.execute(
            f"{_SELECT} WHERE job_name = {self._ph(1)}",
            (job_name,),
        ).fetchone()
        if not row:
            return None
        return CronJobRecord.from_row(row)

    def list_all(self) -> list[CronJobRecord]:
        cursor = self.conn.execute(f"{_SELECT} ORDER BY job_name")
        return [CronJobRecord.from_row(row) for row in cursor.fetchall()]


__all__ = ["JobCatalog"]
