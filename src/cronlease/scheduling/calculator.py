"""
Cron time calculator.

Finds the next (or previous) instant at which all five cron fields match,
evaluated on the wall clock of the job's timezone and returned in UTC.

Manifesto:
    A scheduler that runs across a fleet must agree on *which* instant is
    due.  The calculator is therefore a pure function of (fields, reference,
    timezone): no clock, no store.  The search is bounded so that an
    expression that can never fire (``0 0 30 2 *``) fails loudly instead of
    spinning.

Architecture:
    ::

        after (UTC) ──► wall clock in tz ──► truncate, +1 min
                                              │
               ┌──────────────────────────────┘
               ▼
        month ∉ months?  ──► jump to 1st of next month 00:00
        dom ∉ / dow ∉?   ──► jump to next day 00:00
        hour ∉ hours?    ──► jump to next hour :00
        minute ∉?        ──► jump to next listed minute
               │
               ▼ all five match
        wall time exists in tz?  (DST gap → keep scanning)
               │
               ▼
        result (UTC) > after ──► return

    Elapsed wall-clock minutes from the start are checked on every step;
    past ``max_minutes`` the search raises :class:`NoMatchingTimeError`.

    Day-of-month and day-of-week are conjunctive: both must match.

Examples:
    >>> from datetime import datetime, UTC
    >>> next_instant("0 9 * * 1-5", datetime(2024, 1, 5, 10, 0, tzinfo=UTC))
    datetime.datetime(2024, 1, 8, 9, 0, tzinfo=datetime.timezone.utc)

Tags:
    cron, calculator, timezone, dst, zoneinfo, cronlease
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from cronlease.core.errors import NoMatchingTimeError, ValidationError
from cronlease.core.timestamps import MINUTES_PER_YEAR, ensure_utc, truncate_to_minute
from cronlease.scheduling.expression import CronFields, parse_expression

MAX_SEARCH_MINUTES = MINUTES_PER_YEAR

_MINUTE = timedelta(minutes=1)


@lru_cache(maxsize=64)
def resolve_timezone(name: str) -> tzinfo:
    """Look up an IANA timezone.

    Raises:
        ValidationError: Unknown timezone name.
    """
    if name.upper() == "UTC":
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(f"Unknown timezone: {name}", field="timezone", value=name) from e


def _as_fields(fields: CronFields | str) -> CronFields:
    if isinstance(fields, str):
        return parse_expression(fields)
    return fields


def _day_of_week(wall: datetime) -> int:
    # Python: Monday=0 ... Sunday=6; cron: Sunday=0 ... Saturday=6
    return (wall.weekday() + 1) % 7


def _to_utc(wall: datetime, tz: tzinfo) -> datetime | None:
    """Resolve a naive wall-clock time, or ``None`` if it falls in a DST gap."""
    aware = wall.replace(tzinfo=tz, fold=0)
    result = aware.astimezone(UTC)
    if result.astimezone(tz).replace(tzinfo=None) != wall:
        return None
    return result


def _first_of_next_month(wall: datetime) -> datetime:
    if wall.month == 12:
        return datetime(wall.year + 1, 1, 1)
    return datetime(wall.year, wall.month + 1, 1)


def _no_match(fields: CronFields, direction: str, max_minutes: int) -> NoMatchingTimeError:
    err = NoMatchingTimeError(
        f"Could not find {direction} cron time for {fields.expression!r} "
        f"within {max_minutes} minutes",
        max_minutes=max_minutes,
    )
    err.context.expression = fields.expression
    return err


def next_instant(
    fields: CronFields | str,
    after: datetime,
    timezone: str = "UTC",
    max_minutes: int = MAX_SEARCH_MINUTES,
) -> datetime:
    """Smallest instant strictly after ``after`` matching every field.

    Args:
        fields: Parsed fields or a cron expression string
        after: Reference instant (naive values are taken as UTC)
        timezone: IANA zone whose wall clock the fields describe
        max_minutes: Search bound in elapsed wall-clock minutes

    Returns:
        Aware UTC datetime with zero seconds.

    Raises:
        NoMatchingTimeError: Nothing matches within ``max_minutes``.
    """
    fields = _as_fields(fields)
    tz = resolve_timezone(timezone)
    after_utc = ensure_utc(after)
    limit = timedelta(minutes=max_minutes)

    start = truncate_to_minute(after_utc.astimezone(tz).replace(tzinfo=None)) + _MINUTE
    wall = start

    while wall - start <= limit:
        if wall.month not in fields.months:
            wall = _first_of_next_month(wall)
            continue

        if wall.day not in fields.days_of_month or _day_of_week(wall) not in fields.days_of_week:
            wall = wall.replace(hour=0, minute=0) + timedelta(days=1)
            continue

        if wall.hour not in fields.hours:
            wall = wall.replace(minute=0) + timedelta(hours=1)
            continue

        if wall.minute not in fields.minutes:
            later = [m for m in fields.minutes if m > wall.minute]
            if later:
                wall = wall.replace(minute=later[0])
            else:
                wall = wall.replace(minute=0) + timedelta(hours=1)
            continue

        result = _to_utc(wall, tz)
        if result is not None and result > after_utc:
            return result
        wall += _MINUTE

    raise _no_match(fields, "next", max_minutes)


def previous_instant(
    fields: CronFields | str,
    before: datetime,
    timezone: str = "UTC",
    max_minutes: int = MAX_SEARCH_MINUTES,
) -> datetime:
    """Largest instant strictly before ``before`` matching every field.

    Raises:
        NoMatchingTimeError: Nothing matches within ``max_minutes``.
    """
    fields = _as_fields(fields)
    tz = resolve_timezone(timezone)
    before_utc = ensure_utc(before)
    limit = timedelta(minutes=max_minutes)

    start = truncate_to_minute(before_utc.astimezone(tz).replace(tzinfo=None))
    wall = start

    while start - wall <= limit:
        if wall.month not in fields.months:
            wall = wall.replace(day=1, hour=0, minute=0) - _MINUTE
            continue

        if wall.day not in fields.days_of_month or _day_of_week(wall) not in fields.days_of_week:
            wall = wall.replace(hour=0, minute=0) - _MINUTE
            continue

        if wall.hour not in fields.hours:
            wall = wall.replace(minute=0) - _MINUTE
            continue

        if wall.minute not in fields.minutes:
            earlier = [m for m in fields.minutes if m < wall.minute]
            if earlier:
                wall = wall.replace(minute=earlier[-1])
            else:
                wall = wall.replace(minute=0) - _MINUTE
            continue

        result = _to_utc(wall, tz)
        if result is not None and result < before_utc:
            return result
        wall -= _MINUTE

    raise _no_match(fields, "previous", max_minutes)


def iter_instants(
    fields: CronFields | str,
    after: datetime,
    timezone: str = "UTC",
    max_minutes: int = MAX_SEARCH_MINUTES,
) -> Iterator[datetime]:
    """Yield successive matching instants after ``after`` (unbounded)."""
    fields = _as_fields(fields)
    current = after
    while True:
        current = next_instant(fields, current, timezone, max_minutes)
        yield current


def upcoming(
    fields: CronFields | str,
    after: datetime,
    count: int,
    timezone: str = "UTC",
    max_minutes: int = MAX_SEARCH_MINUTES,
) -> list[datetime]:
    """The next ``count`` matching instants after ``after``."""
    instants = iter_instants(fields, after, timezone, max_minutes)
    return [next(instants) for _ in range(count)]


__all__ = [
    "MAX_SEARCH_MINUTES",
    "resolve_timezone",
    "next_instant",
    "previous_instant",
    "iter_instants",
    "upcoming",
]
