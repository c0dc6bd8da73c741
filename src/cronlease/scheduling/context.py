"""Execution context handed to cron handlers.

A handler receives one :class:`CronContext` per execution::

    async def nightly(ctx: CronContext) -> dict:
        rows = ctx.db.execute("SELECT count(*) FROM orders").fetchone()
        ctx.emit("order-stats", {"count": rows[0], "at": ctx.scheduled_time.isoformat()})
        return {"count": rows[0]}

``emit`` is fire-and-forget.  The write is started immediately; a failing
or slow event log never fails the execution.  Pending async writes are
drained before the outcome is recorded, so they are not lost when the
tick's event loop closes.

Tags:
    cron, context, handler, events, cronlease
"""

from __future__ import annotations

import asyncio
import inspect
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from cronlease.core.logging import get_logger
from cronlease.core.protocols import Connection, EventSink

logger = get_logger(__name__)


@dataclass
class CronContext:
    """What a handler knows about the execution it is running."""

    job_name: str
    scheduled_time: datetime
    actual_time: datetime
    execution_id: str
    db: Connection
    event_sink: EventSink | None = None
    _loop: asyncio.AbstractEventLoop | None = field(default=None, repr=False)
    _loop_thread: int | None = field(default=None, repr=False)
    _pending: list[Any] = field(default_factory=list, repr=False)

    def bind_loop(self) -> None:
        """Remember the running loop so emits from worker threads land on it."""
        self._loop = asyncio.get_running_loop()
        self._loop_thread = threading.get_ident()

    def emit(self, target: Any, data: Any) -> None:
        """Append ``data`` to an event log.

        Args:
            target: Log name (written through the job's ``EventSink``) or
                any object with an ``append(data)`` method
            data: Event payload
        """
        try:
            if isinstance(target, str):
                if self.event_sink is None:
                    logger.warning("emit_without_sink", job_name=self.job_name, log_name=target)
                    return
                result = self.event_sink.append(target, data)
            else:
                result = target.append(data)
        except Exception as e:
            logger.warning("emit_failed", job_name=self.job_name, execution_id=self.execution_id, error=str(e))
            return

        if inspect.isawaitable(result):
            self._schedule(result)

    def _schedule(self, awaitable: Any) -> None:
        if self._loop is None:
            logger.warning("emit_dropped_no_loop", job_name=self.job_name)
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        if threading.get_ident() == self._loop_thread:
            future = asyncio.ensure_future(awaitable)
        else:
            future = asyncio.run_coroutine_threadsafe(_await(awaitable), self._loop)
        future.add_done_callback(self._log_failure)
        self._pending.append(future)

    def _log_failure(self, future: Any) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.warning("emit_failed", job_name=self.job_name, execution_id=self.execution_id, error=str(error))

    async def drain(self) -> None:
        """Wait for pending emits. Their failures were already logged."""
        if not self._pending:
            return
        pending, self._pending = self._pending, []
        awaitables = [f if asyncio.isfuture(f) else asyncio.wrap_future(f) for f in pending]
        await asyncio.gather(*awaitables, return_exceptions=True)


async def _await(awaitable: Any) -> Any:
    return await awaitable


__all__ = ["CronContext"]
