"""Distributed cron scheduling for cronlease.

Manifesto:
    Cron in a horizontally scaled deployment needs more than a timer in
    every process.  Each scheduled instant must run once across the fleet,
    instants missed while everything was down must be replayed (within a
    bound), and every run must leave a durable record.  The relational
    store the application already has is the only coordination medium.

┌──────────────────────────────────────────────────────────────────────────────┐
│  CRONLEASE SCHEDULING                                                         │
│                                                                               │
│  Quick Start:                                                                 │
│  ┌──────────────────────────────────────────────────────────────────────┐   │
│  │   from cronlease.scheduling import CronRegistry, create_cron_job     │   │
│  │                                                                      │   │
│  │   async def report(ctx):                                             │   │
│  │       ...                                                            │   │
│  │       return {"rows": 42}                                            │   │
│  │                                                                      │   │
│  │   registry = CronRegistry()                                          │   │
│  │   create_cron_job("daily-report", "0 8 * * 1-5", conn,               │   │
│  │                   handler=report, catch_up=True,                     │   │
│  │                   registry=registry)                                 │   │
│  │   registry.start_all()                                               │   │
│  └──────────────────────────────────────────────────────────────────────┘   │
│                                                                               │
│  Components (leaves first):                                                   │
│  - expression   5-field cron string → sorted field tuples                    │
│  - calculator   next / previous matching instant (bounded, tz-aware)         │
│  - jobs         cron_jobs rows: definition + cursor                          │
│  - lease        cron_locks: per-job lease, renew, release, heartbeat         │
│  - ledger       cron_executions: one row per (job, instant)                  │
│  - catchup      replay of missed instants at start                           │
│  - runner       CronJob: tick protocol, execution path, manual trigger       │
│  - registry     CronRegistry: explicit per-process job registry              │
│                                                                               │
│  Tables:                                                                      │
│  - cron_jobs, cron_executions, cron_locks (see cronlease.core.schema)        │
└──────────────────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ Running a handler before claiming the instant in the ledger
    ✅ ``ExecutionLedger.record_start()`` before the handler, always
    ❌ A module-level job list
    ✅ ``CronRegistry`` constructed and passed explicitly
    ❌ Constructing CronJob collaborators individually
    ✅ ``create_cron_job(name, schedule, conn, handler=...)`` factory

Tags:
    cron, scheduling, distributed, lease, idempotency, catch-up, cronlease
"""

from __future__ import annotations

from typing import Any

from cronlease.core.db import ping
from cronlease.core.dialect import Dialect, detect_dialect
from cronlease.core.errors import ConfigError
from cronlease.core.protocols import Connection, EventSink
from cronlease.core.settings import CronSettings
from cronlease.core.timestamps import Clock

from .calculator import MAX_SEARCH_MINUTES, next_instant, previous_instant, upcoming
from .catchup import CatchUpEngine, CatchUpResult
from .context import CronContext
from .expression import CronFields, is_valid_expression, parse_expression
from .jobs import JobCatalog
from .lease import LeaseCoordinator
from .ledger import ExecutionLedger
from .protocol import BackendHealth, TickBackend
from .registry import CronRegistry
from .runner import CronJob, CronJobConfig, Handler, JobStats, TickResult, Workflow, WorkflowInput
from .thread_backend import ThreadSchedulerBackend

__all__ = [
    # Expression / calculator
    "CronFields",
    "parse_expression",
    "is_valid_expression",
    "MAX_SEARCH_MINUTES",
    "next_instant",
    "previous_instant",
    "upcoming",
    # Store repositories
    "JobCatalog",
    "LeaseCoordinator",
    "ExecutionLedger",
    # Runner
    "CronJob",
    "CronJobConfig",
    "CronContext",
    "JobStats",
    "TickResult",
    "Handler",
    "Workflow",
    "WorkflowInput",
    "CatchUpEngine",
    "CatchUpResult",
    # Backends
    "TickBackend",
    "BackendHealth",
    "ThreadSchedulerBackend",
    # Registry / factory
    "CronRegistry",
    "create_cron_job",
]


def create_cron_job(
    name: str,
    schedule: str,
    conn: Connection,
    *,
    handler: Handler | None = None,
    workflow: Workflow | None = None,
    workflow_input: WorkflowInput | None = None,
    timezone: str = "UTC",
    catch_up: bool = False,
    max_catch_up: int | None = None,
    settings: CronSettings | None = None,
    dialect: Dialect | None = None,
    instance_id: str | None = None,
    event_sink: EventSink | None = None,
    backend: TickBackend | None = None,
    registry: CronRegistry | None = None,
    clock: Clock | None = None,
    **overrides: Any,
) -> CronJob:
    """Factory function to create a fully wired cron job.

    Validates everything that can be validated before the job touches the
    store: the expression, the timezone, the handler/workflow choice, and
    the store itself (a relational connection answering ``SELECT 1``).

    Args:
        name: Unique job name
        schedule: 5-field cron expression
        conn: Store connection (sqlite3 or psycopg)
        handler: ``handler(ctx)``, sync or async
        workflow: Workflow to start instead of a handler
        workflow_input: Builds the workflow input from the context
        timezone: IANA zone the schedule is written in
        catch_up: Replay missed instants at start
        max_catch_up: Catch-up bound (settings default when omitted)
        settings: Timing defaults and instance identity
        registry: Registry to add the job to
        **overrides: lease_seconds, heartbeat_seconds, tick_interval_seconds,
            max_search_minutes

    Returns:
        Configured CronJob (not started)

    Raises:
        CronExpressionError: Malformed schedule
        ValidationError: Unknown timezone or invalid timing values
        ConfigError: Not a relational store, or not exactly one of handler/workflow
        StoreUnavailableError: The store did not answer
        DuplicateJobError: ``name`` already in ``registry``

    Example:
        >>> job = create_cron_job("cleanup", "*/15 * * * *", conn, handler=cleanup)
        >>> job.start()
    """
    settings = settings or CronSettings()
    config = CronJobConfig.from_settings(
        name,
        schedule,
        settings,
        timezone=timezone,
        catch_up=catch_up,
        max_catch_up=max_catch_up,
        **overrides,
    )
    if (handler is None) == (workflow is None):
        raise ConfigError(f"Cron job {name!r} requires exactly one of handler or workflow")

    ping(conn)
    if dialect is None:
        try:
            dialect = detect_dialect(conn)
        except ValueError as e:
            raise ConfigError(str(e)) from e

    job = CronJob(
        config,
        conn,
        handler=handler,
        workflow=workflow,
        workflow_input=workflow_input,
        dialect=dialect,
        instance_id=instance_id or settings.instance_id,
        event_sink=event_sink,
        backend=backend,
        clock=clock,
        auto_create_schema=settings.auto_create_schema,
    )
    if registry is not None:
        registry.register(job)
    return job
