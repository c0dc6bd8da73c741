"""
Timestamp utilities (stdlib-only).

Manifesto:
    Leases, ledger rows and the job cursor are compared across processes
    and across dialects.  All instants are therefore kept as aware UTC
    datetimes in Python and stored as ONE fixed-width ISO-8601 spelling,
    so that text comparison in SQL equals chronological comparison and
    ``UNIQUE(job_name, scheduled_time)`` sees a single value per instant.

    - **utc_now():** Timezone-aware UTC datetime
    - **to_db_timestamp():** ``YYYY-MM-DDTHH:MM:SS.ffffff+00:00``
    - **from_db_timestamp():** Accepts driver datetimes or stored text

Tags:
    timestamps, utc, datetime, cronlease, stdlib-only
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]

MINUTES_PER_YEAR = 365 * 24 * 60


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Return ``dt`` as an aware UTC datetime (naive input is taken as UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_db_timestamp(dt: datetime | None) -> str | None:
    """Serialize to the canonical fixed-width UTC form used in every table."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat(timespec="microseconds")


def from_db_timestamp(value: datetime | str | None) -> datetime | None:
    """Parse a stored timestamp (text from SQLite, datetime from psycopg)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(value))


def truncate_to_minute(dt: datetime) -> datetime:
    """Drop seconds and microseconds."""
    return dt.replace(second=0, microsecond=0)
