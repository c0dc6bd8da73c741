"""
cronlease - distributed persistent cron scheduling over a relational store.

Named jobs with 5-field cron schedules run on every instance of an
application; a shared SQLite or PostgreSQL database is the only
coordination medium.  Each scheduled instant executes at most once across
the fleet, missed instants can be caught up on restart, and every
execution is recorded.

    from cronlease import CronRegistry, connect, create_cron_job

    conn = connect("postgresql://app@db/app")
    registry = CronRegistry()
    create_cron_job("nightly", "0 2 * * *", conn, handler=nightly, registry=registry)
    registry.start_all()
"""

__version__ = "0.1.0"

from cronlease.core import *  # noqa: F401,F403
from cronlease.core import __all__ as _core_all
from cronlease.scheduling import (
    CronContext,
    CronJob,
    CronJobConfig,
    CronRegistry,
    TickResult,
    create_cron_job,
    next_instant,
    parse_expression,
    previous_instant,
)

__all__ = [
    "__version__",
    *_core_all,
    "CronContext",
    "CronJob",
    "CronJobConfig",
    "CronRegistry",
    "TickResult",
    "create_cron_job",
    "next_instant",
    "parse_expression",
    "previous_instant",
]
