"""Cron job runner - one scheduled job and its tick protocol.

Manifesto:
    Every instance in a fleet runs the same CronJob and ticks it every
    second.  The tick is built so that any number of instances, crashing
    and restarting at any point, execute each scheduled instant at most
    once and record every execution durably.  The lease keeps instances
    from doing redundant work; the ledger is what makes it correct.

Tags:
    cron, runner, tick, lease, ledger, catch-up, cronlease


┌──────────────────────────────────────────────────────────────────────────────┐
│  CRON JOB                                                                     │
│                                                                               │
│   Dependencies:                                                               │
│   ┌──────────────┐ ┌──────────────┐ ┌──────────────┐ ┌──────────────┐        │
│   │ JobCatalog   │ │ Lease        │ │ Execution    │ │ Tick backend │        │
│   │ (cursor)     │ │ Coordinator  │ │ Ledger       │ │ (timing)     │        │
│   └──────┬───────┘ └──────┬───────┘ └──────┬───────┘ └──────┬───────┘        │
│          ▼                ▼                ▼                ▼                │
│   ┌──────────────────────────────────────────────────────────────────┐       │
│   │ tick()                                                           │       │
│   │   1. try_acquire(lease)              not acquired → return       │       │
│   │   2. read next_scheduled_time        absent / future → return    │       │
│   │   3. ledger.record_start             already recorded → advance, │       │
│   │                                      return                      │       │
│   │   4. heartbeat ─┐                                                │       │
│   │   5. handler / workflow (CronContext)                            │       │
│   │   6. ledger.record_outcome  completed | failed                   │       │
│   │   7. advance cursor: last = handled, next = next(handled)        │       │
│   │   8. stop heartbeat, release lease (always)                      │       │
│   └──────────────────────────────────────────────────────────────────┘       │
│                                                                               │
│   Public API:                                                                 │
│   ├── start()        upsert job, catch up, begin ticking                     │
│   ├── stop()         stop ticking; a running handler finishes               │
│   ├── trigger()      run now, bypassing lease and due-ness                  │
│   ├── history()      recorded executions, newest first                      │
│   ├── next_run()     next future instant while running                      │
│   └── is_running                                                             │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol
from uuid import uuid4

from cronlease.core.dialect import Dialect, detect_dialect
from cronlease.core.errors import ConfigError, DatabaseError, NoMatchingTimeError, ValidationError
from cronlease.core.logging import LogContext, get_logger
from cronlease.core.models import Execution, ExecutionStatus
from cronlease.core.protocols import Connection, EventSink
from cronlease.core.schema import create_cron_tables
from cronlease.core.settings import CronSettings
from cronlease.core.timestamps import Clock, to_db_timestamp, utc_now

from .calculator import MAX_SEARCH_MINUTES, next_instant, resolve_timezone
from .catchup import CatchUpEngine, CatchUpResult
from .context import CronContext
from .expression import CronFields, parse_expression
from .jobs import JobCatalog
from .lease import DEFAULT_LEASE_SECONDS, LeaseCoordinator
from .ledger import ExecutionLedger
from .protocol import TickBackend
from .thread_backend import ThreadSchedulerBackend

logger = get_logger(__name__)

Handler = Callable[[CronContext], Any]
WorkflowInput = Callable[[CronContext], Any]


class Workflow(Protocol):
    """A durable workflow a job can start instead of calling a handler.

    ``start`` returns a handle (or an awaitable of one) whose ``result()``
    returns the workflow output (or an awaitable of it).
    """

    def start(self, input: Any, workflow_id: str) -> Any: ...


class TickResult(str, Enum):
    """What a single tick did."""

    LEASE_CONTENDED = "lease_contended"
    NOT_DUE = "not_due"
    ALREADY_RECORDED = "already_recorded"
    EXECUTED = "executed"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass
class CronJobConfig:
    """Validated definition of one cron job.

    The schedule is parsed and the timezone resolved on construction, so
    a bad definition fails at registration, before anything is persisted.
    """

    name: str
    schedule: str
    timezone: str = "UTC"
    catch_up: bool = False
    max_catch_up: int = 10
    lease_seconds: int = DEFAULT_LEASE_SECONDS
    heartbeat_seconds: float | None = None
    tick_interval_seconds: float = 1.0
    max_search_minutes: int = MAX_SEARCH_MINUTES
    fields: CronFields = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValidationError("Cron job name must not be empty", field="name", value=self.name)
        self.fields = parse_expression(self.schedule)
        resolve_timezone(self.timezone)
        if self.max_catch_up < 0:
            raise ValidationError("max_catch_up must be >= 0", field="max_catch_up", value=self.max_catch_up)
        if self.lease_seconds < 1:
            raise ValidationError("lease_seconds must be >= 1", field="lease_seconds", value=self.lease_seconds)
        if self.tick_interval_seconds <= 0:
            raise ValidationError(
                "tick_interval_seconds must be > 0",
                field="tick_interval_seconds",
                value=self.tick_interval_seconds,
            )
        if self.max_search_minutes < 1:
            raise ValidationError(
                "max_search_minutes must be >= 1",
                field="max_search_minutes",
                value=self.max_search_minutes,
            )
        if self.heartbeat_seconds is not None and not 0 < self.heartbeat_seconds < self.lease_seconds:
            raise ValidationError(
                "heartbeat_seconds must be between 0 and lease_seconds",
                field="heartbeat_seconds",
                value=self.heartbeat_seconds,
            )

    @property
    def effective_heartbeat_seconds(self) -> float:
        if self.heartbeat_seconds is not None:
            return self.heartbeat_seconds
        return self.lease_seconds / 3

    @classmethod
    def from_settings(
        cls,
        name: str,
        schedule: str,
        settings: CronSettings,
        **overrides: Any,
    ) -> CronJobConfig:
        """Build a config whose timing defaults come from ``settings``."""
        values: dict[str, Any] = {
            "max_catch_up": settings.max_catch_up,
            "lease_seconds": settings.lease_seconds,
            "heartbeat_seconds": settings.heartbeat_seconds,
            "tick_interval_seconds": settings.tick_interval_seconds,
            "max_search_minutes": settings.max_search_minutes,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(name=name, schedule=schedule, **values)


@dataclass
class JobStats:
    """Per-process counters for one job."""

    ticks: int = 0
    executions: int = 0
    completed: int = 0
    failed: int = 0
    lease_contended: int = 0
    not_due: int = 0
    already_recorded: int = 0
    last_tick: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ticks": self.ticks,
            "executions": self.executions,
            "completed": self.completed,
            "failed": self.failed,
            "lease_contended": self.lease_contended,
            "not_due": self.not_due,
            "already_recorded": self.already_recorded,
            "last_tick": to_db_timestamp(self.last_tick),
            "last_error": self.last_error,
        }


def _error_text(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def _epoch_millis(instant: datetime) -> int:
    return int(instant.timestamp() * 1000)


# ---------------------------------------------------------------------------
# CronJob
# ---------------------------------------------------------------------------


class CronJob:
    """One registered cron job bound to a store.

    Example:
        >>> async def report(ctx):
        ...     return {"at": ctx.scheduled_time.isoformat()}
        >>>
        >>> job = CronJob(CronJobConfig("report", "0 6 * * *"), conn, handler=report)
        >>> job.start()
        >>> job.next_run()  # next 06:00 UTC
        >>> job.stop()
    """

    def __init__(
        self,
        config: CronJobConfig,
        conn: Connection,
        *,
        handler: Handler | None = None,
        workflow: Workflow | None = None,
        workflow_input: WorkflowInput | None = None,
        dialect: Dialect | None = None,
        instance_id: str | None = None,
        event_sink: EventSink | None = None,
        backend: TickBackend | None = None,
        clock: Clock | None = None,
        auto_create_schema: bool = True,
    ) -> None:
        if (handler is None) == (workflow is None):
            raise ConfigError(f"Cron job {config.name!r} requires exactly one of handler or workflow")

        self.config = config
        self.conn = conn
        self.handler = handler
        self.workflow = workflow
        self.workflow_input = workflow_input
        self.dialect: Dialect = dialect or detect_dialect(conn)
        self.event_sink = event_sink
        self.backend: TickBackend = backend or ThreadSchedulerBackend(name=config.name)
        self.auto_create_schema = auto_create_schema
        self._clock: Clock = clock or utc_now

        # Leases use the store's clock unless a clock is injected
        self.leases = LeaseCoordinator(conn, self.dialect, instance_id=instance_id, clock=clock)
        self.catalog = JobCatalog(conn, self.dialect, clock=self._clock)
        self.ledger = ExecutionLedger(conn, self.dialect, clock=self._clock)

        self._stats = JobStats()
        self._running = False
        self._schema_ready = False
        self._last_catch_up: CatchUpResult | None = None

    # === Identity ===

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def schedule(self) -> str:
        return self.config.schedule

    @property
    def instance_id(self) -> str:
        return self.leases.instance_id

    def manifest_entry(self) -> dict[str, Any]:
        """Description of this job for registries and deploy tooling."""
        return {
            "primitive": "cron",
            "name": self.name,
            "infrastructure": self.dialect.name,
            "config": {
                "schedule": self.config.schedule,
                "timezone": self.config.timezone,
                "catch_up": self.config.catch_up,
                "max_catch_up": self.config.max_catch_up,
                "target": "workflow" if self.workflow is not None else "handler",
            },
        }

    # === Lifecycle ===

    def start(self) -> None:
        """Begin ticking.

        The backend runs :meth:`initialize` once (schema, job upsert,
        catch-up) and then :meth:`tick` every ``tick_interval_seconds``.
        """
        if self._running:
            logger.warning("job_already_running", job_name=self.name)
            return

        logger.info(
            "job_starting",
            job_name=self.name,
            schedule=self.config.schedule,
            backend=self.backend.name,
            instance_id=self.instance_id,
        )
        self._running = True
        self.backend.start(
            self.tick,
            self.config.tick_interval_seconds,
            startup_callback=self.initialize,
        )

    def stop(self) -> None:
        """Stop ticking. A handler already running finishes and records."""
        if not self._running:
            return
        self._running = False
        self.backend.stop()
        logger.info("job_stopped", job_name=self.name)

    @property
    def is_running(self) -> bool:
        """True between start() and stop(), unless initialisation failed."""
        return self._running and "startup_error" not in self.backend.health()

    def _ensure_schema(self) -> None:
        if self.auto_create_schema and not self._schema_ready:
            create_cron_tables(self.conn)
        self._schema_ready = True

    async def initialize(self) -> CatchUpResult | None:
        """Register the job in the store and replay missed instants.

        Raises:
            NoMatchingTimeError: The schedule never fires within the bound.
        """
        self._ensure_schema()
        now = self._clock()
        next_time = next_instant(
            self.config.fields,
            now,
            self.config.timezone,
            self.config.max_search_minutes,
        )
        previous = self.catalog.get(self.name)
        self.catalog.upsert(
            self.name,
            self.config.schedule,
            timezone=self.config.timezone,
            catch_up=self.config.catch_up,
            max_catch_up=self.config.max_catch_up,
            next_scheduled_time=next_time,
        )
        logger.info("job_registered", job_name=self.name, next_scheduled_time=to_db_timestamp(next_time))

        if not self.config.catch_up or previous is None or previous.last_scheduled_time is None:
            return None

        engine = CatchUpEngine(
            self.name,
            self.config.fields,
            self._execute_catch_up,
            self.ledger,
            self.catalog,
            timezone=self.config.timezone,
            max_catch_up=self.config.max_catch_up,
            max_search_minutes=self.config.max_search_minutes,
        )
        self._last_catch_up = await engine.run(previous.last_scheduled_time, now)
        return self._last_catch_up

    # === Tick ===

    async def tick(self) -> TickResult:
        """One iteration of the polling loop."""
        self._stats.ticks += 1
        self._stats.last_tick = self._clock()

        if not self.leases.try_acquire(self.name, lease_seconds=self.config.lease_seconds):
            self._stats.lease_contended += 1
            return TickResult.LEASE_CONTENDED

        try:
            record = self.catalog.get(self.name)
            now = self._clock()
            if (
                record is None
                or not record.enabled
                or record.next_scheduled_time is None
                or record.next_scheduled_time > now
            ):
                self._stats.not_due += 1
                return TickResult.NOT_DUE

            scheduled = record.next_scheduled_time
            execution = await self._execute(
                scheduled,
                f"{self.name}_{_epoch_millis(scheduled)}",
                heartbeat=True,
            )
            # Advance in both cases; a no-op if another instance already moved the cursor
            self._advance(scheduled)
            if execution is None:
                self._stats.already_recorded += 1
                return TickResult.ALREADY_RECORDED
            return TickResult.EXECUTED
        finally:
            self.leases.release(self.name)

    def _advance(self, handled: datetime) -> bool:
        try:
            following = next_instant(
                self.config.fields,
                handled,
                self.config.timezone,
                self.config.max_search_minutes,
            )
        except NoMatchingTimeError as e:
            self._stats.last_error = e.message
            logger.error(
                "schedule_stuck",
                job_name=self.name,
                handled=to_db_timestamp(handled),
                error=e.message,
            )
            return False
        return self.catalog.advance(self.name, handled, following, expected_next=handled)

    # === Execution path ===

    async def _execute_catch_up(self, scheduled: datetime) -> Execution | None:
        return await self._execute(
            scheduled,
            f"{self.name}_catchup_{_epoch_millis(scheduled)}",
            heartbeat=False,
        )

    async def _execute(
        self,
        scheduled: datetime,
        execution_id: str,
        *,
        heartbeat: bool,
    ) -> Execution | None:
        """Claim ``scheduled`` in the ledger, run the target, record the outcome.

        Returns:
            The recorded execution, or None if the instant was already claimed.
        """
        actual = self._clock()
        if not self.ledger.record_start(execution_id, self.name, scheduled, actual):
            return None

        ctx = CronContext(
            job_name=self.name,
            scheduled_time=scheduled,
            actual_time=actual,
            execution_id=execution_id,
            db=self.conn,
            event_sink=self.event_sink,
        )
        ctx.bind_loop()

        async with LogContext(job_name=self.name, execution_id=execution_id):
            logger.info("execution_started", scheduled_time=to_db_timestamp(scheduled))
            started = time.perf_counter()

            keepalive = (
                self.leases.heartbeat(
                    self.name,
                    lease_seconds=self.config.lease_seconds,
                    interval=self.config.effective_heartbeat_seconds,
                )
                if heartbeat
                else contextlib.nullcontext()
            )
            async with keepalive:
                output, error = await self._invoke(ctx)
            await ctx.drain()

            duration_ms = int((time.perf_counter() - started) * 1000)
            status = ExecutionStatus.COMPLETED if error is None else ExecutionStatus.FAILED
            self.ledger.record_outcome(
                execution_id,
                status,
                output=output,
                error=error,
                duration_ms=duration_ms,
            )

            self._stats.executions += 1
            if error is None:
                self._stats.completed += 1
                logger.info("execution_completed", duration_ms=duration_ms)
            else:
                self._stats.failed += 1
                self._stats.last_error = error
                logger.warning("execution_failed", duration_ms=duration_ms, error=error)

        return self.ledger.get(execution_id)

    async def _invoke(self, ctx: CronContext) -> tuple[Any, str | None]:
        """Run the handler or workflow. Returns ``(output, error)``."""
        try:
            if self.workflow is not None:
                output = await self._run_workflow(ctx)
            elif inspect.iscoroutinefunction(self.handler):
                output = await self.handler(ctx)
            else:
                output = await asyncio.to_thread(self.handler, ctx)
                if inspect.isawaitable(output):
                    output = await output
        except Exception as e:
            logger.debug("handler_raised", error_type=type(e).__name__, exc_info=True)
            return None, _error_text(e)
        return output, None

    async def _run_workflow(self, ctx: CronContext) -> Any:
        if self.workflow_input is not None:
            workflow_input = self.workflow_input(ctx)
        else:
            workflow_input = {
                "scheduled_time": ctx.scheduled_time.isoformat(),
                "actual_time": ctx.actual_time.isoformat(),
                "execution_id": ctx.execution_id,
            }
        handle = self.workflow.start(workflow_input, workflow_id=f"cron_{ctx.execution_id}")
        if inspect.isawaitable(handle):
            handle = await handle
        result = handle.result()
        if inspect.isawaitable(result):
            result = await result
        return result

    # === Manual trigger ===

    async def trigger(self) -> Execution:
        """Run the job now, regardless of schedule, lease or enabled flag.

        The job row is created if missing (its cursor is left alone).  Not
        guarded against concurrent manual triggers: each call gets its own
        execution id.  A failing handler yields a ``failed`` execution
        rather than an exception.
        """
        self._ensure_schema()
        now = self._clock()
        try:
            next_time: datetime | None = next_instant(
                self.config.fields, now, self.config.timezone, self.config.max_search_minutes
            )
        except NoMatchingTimeError:
            next_time = None
        self.catalog.ensure(
            self.name,
            self.config.schedule,
            timezone=self.config.timezone,
            catch_up=self.config.catch_up,
            max_catch_up=self.config.max_catch_up,
            next_scheduled_time=next_time,
        )

        execution_id = f"{self.name}_manual_{uuid4().hex}"
        logger.info("manual_trigger", job_name=self.name, execution_id=execution_id)
        execution = await self._execute(now, execution_id, heartbeat=False)
        if execution is None:
            # The instant was already claimed, by a tick or another trigger
            existing = self.ledger.get_for_instant(self.name, now)
            if existing is None:
                raise DatabaseError(f"Execution {execution_id} could not be recorded")
            return existing
        return execution

    # === Queries ===

    def history(self, limit: int | None = None, since: datetime | None = None) -> list[Execution]:
        """Recorded executions, most recent scheduled instant first."""
        return self.ledger.history(self.name, since=since, limit=limit)

    def next_run(self) -> datetime | None:
        """Next future instant, or None if the job is not running."""
        if not self.is_running:
            return None
        try:
            return next_instant(
                self.config.fields,
                self._clock(),
                self.config.timezone,
                self.config.max_search_minutes,
            )
        except NoMatchingTimeError:
            return None

    def pause(self) -> bool:
        """Disable the job fleet-wide (ticks treat it as not due)."""
        return self.catalog.set_enabled(self.name, False)

    def resume(self) -> bool:
        """Re-enable a paused job."""
        return self.catalog.set_enabled(self.name, True)

    @property
    def stats(self) -> JobStats:
        return self._stats

    @property
    def last_catch_up(self) -> CatchUpResult | None:
        return self._last_catch_up

    def health(self) -> dict[str, Any]:
        backend_health = self.backend.health()
        return {
            "healthy": self.is_running and backend_health.get("healthy", False),
            "job_name": self.name,
            "instance_id": self.instance_id,
            "backend": backend_health,
            "stats": self._stats.to_dict(),
        }


__all__ = [
    "CronJob",
    "CronJobConfig",
    "JobStats",
    "TickResult",
    "Handler",
    "Workflow",
    "WorkflowInput",
]
