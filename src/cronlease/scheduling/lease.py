"""Lease coordinator for cron jobs.

Manifesto:
    Every instance ticks every job; only the lease holder proceeds past
    the first step.  The lease is a single ``cron_locks`` row per job with
    an expiry, so a crashed holder is replaced as soon as its lease runs
    out and no instance ever waits on a dead one.

    The lease is an optimisation, not the safety net: two instances that
    both believe they hold it still cannot execute the same instant twice,
    because the execution ledger rejects the second claim.

This module provides atomic acquire / renew / release and a heartbeat that
keeps the lease alive while a handler runs.

Tags:
    cron, lease, distributed-locks, ttl, heartbeat, cronlease

    Lease Acquisition::

        INSERT INTO cron_locks (job_name, locked_by, locked_at, expires_at)
        VALUES (...)
        ON CONFLICT (job_name) DO UPDATE SET ...
        WHERE cron_locks.expires_at < <store now>   -- expired
           OR cron_locks.locked_by = excluded.locked_by  -- re-entrant

        rowcount 1 → acquired     rowcount 0 → held by someone else

    Lease times come from the store's clock, never the instance's, so a
    host whose clock runs fast cannot take over a live lease.

    Heartbeat::

        async with leases.heartbeat("nightly", lease_seconds=30):
            await handler(ctx)          # lease renewed every 10 s
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator
from datetime import timedelta
from uuid import uuid4

from cronlease.core.dialect import Dialect, SQLiteDialect
from cronlease.core.logging import get_logger
from cronlease.core.models import LEASE_COLUMNS, LeaseRecord
from cronlease.core.protocols import Connection
from cronlease.core.timestamps import Clock, to_db_timestamp

logger = get_logger(__name__)

DEFAULT_LEASE_SECONDS = 30


class LeaseCoordinator:
    """Per-job time-bounded leases stored in ``cron_locks``.

    Example:
        >>> leases = LeaseCoordinator(conn, instance_id="host-1")
        >>> if leases.try_acquire("nightly"):
        ...     try:
        ...         ...  # run the tick
        ...     finally:
        ...         leases.release("nightly")
    """

    def __init__(
        self,
        conn: Connection,
        dialect: Dialect | None = None,
        instance_id: str | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize lease coordinator.

        Args:
            conn: Database connection
            dialect: SQL dialect for portable queries
            instance_id: Default holder identity. Auto-generated if not provided.
            clock: Overrides the store's clock (tests only). By default
                lease times are computed by the database.
        """
        self.conn = conn
        self.dialect: Dialect = dialect or SQLiteDialect()
        self.instance_id = instance_id or str(uuid4())
        self._clock = clock

    def _ph(self, count: int = 1) -> str:
        return self.dialect.placeholders(count)

    def _now(self) -> tuple[str, tuple]:
        """SQL for the current time and its parameters."""
        if self._clock is None:
            return self.dialect.current_timestamp(), ()
        return self._ph(), (to_db_timestamp(self._clock()),)

    def _expiry(self, lease_seconds: float) -> tuple[str, tuple]:
        """SQL for now plus ``lease_seconds`` and its parameters."""
        if self._clock is None:
            return self.dialect.current_timestamp(offset=True), (lease_seconds,)
        return self._ph(), (to_db_timestamp(self._clock() + timedelta(seconds=lease_seconds)),)

    # === Acquire / Renew / Release ===

    def try_acquire(
        self,
        job_name: str,
        holder_id: str | None = None,
        lease_seconds: int = DEFAULT_LEASE_SECONDS,
    ) -> bool:
        """Take the lease if it is free, expired, or already ours.

        A single conditional upsert, so two instances racing for the same
        row cannot both succeed.

        Returns:
            True if the lease is now held by ``holder_id``. Contention and
            store failures both return False.
        """
        holder = holder_id or self.instance_id
        now_sql, now_params = self._now()
        expires_sql, expires_params = self._expiry(lease_seconds)

        sql = self.dialect.upsert(
            "cron_locks",
            ["job_name", "locked_by", "locked_at", "expires_at"],
            ["job_name"],
            where=(
                f"cron_locks.expires_at < {now_sql} "
                "OR cron_locks.locked_by = excluded.locked_by"
            ),
            values=[self._ph(), self._ph(), now_sql, expires_sql],
        )
        try:
            cursor = self.conn.execute(
                sql,
                (job_name, holder, *now_params, *expires_params, *now_params),
            )
            self.conn.commit()
        except Exception as e:
            self.conn.rollback()
            logger.error("lease_acquire_failed", job_name=job_name, holder=holder, error=str(e))
            return False

        if cursor.rowcount > 0:
            logger.debug("lease_acquired", job_name=job_name, holder=holder, lease_seconds=lease_seconds)
            return True

        logger.debug("lease_contended", job_name=job_name, holder=holder)
        return False

    def renew(
        self,
        job_name: str,
        holder_id: str | None = None,
        lease_seconds: int = DEFAULT_LEASE_SECONDS,
    ) -> bool:
        """Extend the lease, only if ``holder_id`` still holds it.

        Returns:
            True if extended, False if the lease was lost.
        """
        holder = holder_id or self.instance_id
        now_sql, now_params = self._now()
        expires_sql, expires_params = self._expiry(lease_seconds)
        cursor = self.conn.execute(
            f"""
            UPDATE cron_locks
            SET locked_at = {now_sql}, expires_at = {expires_sql}
            WHERE job_name = {self._ph()} AND locked_by = {self._ph()}
            """,
            (*now_params, *expires_params, job_name, holder),
        )
        self.conn.commit()
        return cursor.rowcount > 0

    def release(self, job_name: str, holder_id: str | None = None) -> bool:
        """Delete the lease row, only if held by ``holder_id``.

        Returns:
            True if released, False if not held
        """
        holder = holder_id or self.instance_id
        try:
            cursor = self.conn.execute(
                f"DELETE FROM cron_locks WHERE job_name = {self._ph()} AND locked_by = {self._ph()}",
                (job_name, holder),
            )
            self.conn.commit()
        except Exception as e:
            self.conn.rollback()
            logger.error("lease_release_failed", job_name=job_name, holder=holder, error=str(e))
            return False

        if cursor.rowcount > 0:
            logger.debug("lease_released", job_name=job_name, holder=holder)
            return True
        return False

    # === Reads ===

    def get(self, job_name: str) -> LeaseRecord | None:
        """The lease row for ``job_name``, expired or not."""
        row = self.conn.execute(
            f"SELECT {', '.join(LEASE_COLUMNS)} FROM cron_locks WHERE job_name = {self._ph()}",
            (job_name,),
        ).fetchone()
        return LeaseRecord.from_row(row) if row else None

    def holder(self, job_name: str) -> str | None:
        """Current holder of an unexpired lease, or None."""
        now_sql, now_params = self._now()
        row = self.conn.execute(
            f"SELECT locked_by FROM cron_locks WHERE job_name = {self._ph()} AND expires_at >= {now_sql}",
            (job_name, *now_params),
        ).fetchone()
        return row[0] if row else None

    def is_held(self, job_name: str) -> bool:
        return self.holder(job_name) is not None

    def list_active(self) -> list[LeaseRecord]:
        """All unexpired leases, oldest first."""
        now_sql, now_params = self._now()
        cursor = self.conn.execute(
            f"""
            SELECT {', '.join(LEASE_COLUMNS)} FROM cron_locks
            WHERE expires_at >= {now_sql}
            ORDER BY locked_at
            """,
            now_params,
        )
        return [LeaseRecord.from_row(row) for row in cursor.fetchall()]

    # === Maintenance ===

    def cleanup_expired(self) -> int:
        """Remove leases left behind by crashed holders.

        Returns:
            Number of rows removed
        """
        now_sql, now_params = self._now()
        cursor = self.conn.execute(f"DELETE FROM cron_locks WHERE expires_at < {now_sql}", now_params)
        self.conn.commit()
        count = cursor.rowcount
        if count > 0:
            logger.info("expired_leases_removed", count=count)
        return count

    # === Heartbeat ===

    async def _renew_forever(
        self,
        job_name: str,
        holder: str,
        lease_seconds: int,
        interval: float,
    ) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                renewed = self.renew(job_name, holder, lease_seconds)
            except Exception as e:
                logger.warning("lease_renew_failed", job_name=job_name, holder=holder, error=str(e))
                continue
            if not renewed:
                logger.warning("lease_lost", job_name=job_name, holder=holder)

    @contextlib.asynccontextmanager
    async def heartbeat(
        self,
        job_name: str,
        holder_id: str | None = None,
        lease_seconds: int = DEFAULT_LEASE_SECONDS,
        interval: float | None = None,
    ) -> AsyncIterator[asyncio.Task]:
        """Renew the lease in the background for the duration of the block.

        Renewal runs every ``interval`` seconds (a third of the lease by
        default).  Failures are logged and never interrupt the block.  The
        renewal task is cancelled when the block exits, however it exits.
        """
        holder = holder_id or self.instance_id
        period = interval if interval is not None else lease_seconds / 3
        task = asyncio.create_task(
            self._renew_forever(job_name, holder, lease_seconds, period),
            name=f"lease-heartbeat:{job_name}",
        )
        try:
            yield task
        finally:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task


__all__ = ["LeaseCoordinator", "DEFAULT_LEASE_SECONDS"]
