"""
Cron expression parser.

Turns a 5-field cron string into five sorted, de-duplicated integer tuples.
Pure: no I/O, no clock.

Fields
──────
    ┌───────────── minute        0-59
    │ ┌─────────── hour          0-23
    │ │ ┌───────── day of month  1-31
    │ │ │ ┌─────── month         1-12
    │ │ │ │ ┌───── day of week   0-6 (0 = Sunday)
    │ │ │ │ │
    * * * * *

Each field is a comma-separated list of sub-tokens:

    ``*``        every value in range
    ``N``        a single value
    ``a-b``      inclusive range
    ``a-b/c``    range with step
    ``*/c``      whole range with step
    ``a/c``      from ``a`` through the field maximum with step

Values outside a field's range are dropped rather than rejected, so
``0-99`` in the minute field means ``0-59``. A field left with no value
at all (``75 * * * *``) parses, and never matches: the time calculator
reports it as :class:`NoMatchingTimeError`.

Examples:
    >>> fields = parse_expression("*/15 9-17 * * 1-5")
    >>> fields.minutes
    (0, 15, 30, 45)
    >>> fields.days_of_week
    (1, 2, 3, 4, 5)

Tags:
    cron, parser, expression, cronlease
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from cronlease.core.errors import CronExpressionError

# (name, minimum, maximum) in positional order
FIELD_RANGES: tuple[tuple[str, int, int], ...] = (
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day_of_month", 1, 31),
    ("month", 1, 12),
    ("day_of_week", 0, 6),
)

_SINGLE = re.compile(r"^(\d+)$")
_RANGE = re.compile(r"^(\d+)-(\d+)$")
_RANGE_STEP = re.compile(r"^(\d+)-(\d+)/(\d+)$")
_STAR_STEP = re.compile(r"^\*/(\d+)$")
_START_STEP = re.compile(r"^(\d+)/(\d+)$")


@dataclass(frozen=True)
class CronFields:
    """Parsed cron expression: one sorted tuple per field."""

    minutes: tuple[int, ...]
    hours: tuple[int, ...]
    days_of_month: tuple[int, ...]
    months: tuple[int, ...]
    days_of_week: tuple[int, ...]
    expression: str = ""

    def matches(self, minute: int, hour: int, day: int, month: int, dow: int) -> bool:
        """True if every field contains the corresponding value."""
        return (
            minute in self.minutes
            and hour in self.hours
            and day in self.days_of_month
            and month in self.months
            and dow in self.days_of_week
        )

    def as_dict(self) -> dict[str, list[int]]:
        return {
            "minute": list(self.minutes),
            "hour": list(self.hours),
            "day_of_month": list(self.days_of_month),
            "month": list(self.months),
            "day_of_week": list(self.days_of_week),
        }


def _error(expression: str, message: str, field: str | None = None) -> CronExpressionError:
    err = CronExpressionError(message, field=field, value=expression)
    err.context.expression = expression
    return err


def _parse_token(token: str, name: str, lo: int, hi: int, expression: str) -> range:
    if token == "*":
        return range(lo, hi + 1)

    match = _SINGLE.match(token)
    if match:
        value = int(match.group(1))
        return range(value, value + 1)

    match = _RANGE.match(token)
    if match:
        start, end = int(match.group(1)), int(match.group(2))
        step = 1
    else:
        match = _RANGE_STEP.match(token)
        if match:
            start, end, step = (int(g) for g in match.groups())
        else:
            match = _STAR_STEP.match(token)
            if match:
                start, end, step = lo, hi, int(match.group(1))
            else:
                match = _START_STEP.match(token)
                if not match:
                    raise _error(
                        expression,
                        f"Invalid cron expression: {expression} (bad {name} token {token!r})",
                        field=name,
                    )
                start, end, step = int(match.group(1)), hi, int(match.group(2))

    if step == 0:
        raise _error(
            expression,
            f"Invalid cron expression: {expression} (zero step in {name} token {token!r})",
            field=name,
        )
    if start > end:
        raise _error(
            expression,
            f"Invalid cron expression: {expression} (reversed range in {name} token {token!r})",
            field=name,
        )
    # Values above the field maximum are dropped, never enumerated
    return range(start, min(end, hi) + 1, step)


def parse_field(text: str, name: str, lo: int, hi: int, expression: str = "") -> tuple[int, ...]:
    """Parse one field into a sorted tuple of in-range values."""
    values: set[int] = set()
    for token in text.split(","):
        values.update(_parse_token(token, name, lo, hi, expression or text))
    return tuple(sorted(v for v in values if lo <= v <= hi))


def parse_expression(expression: str) -> CronFields:
    """Parse a 5-field cron expression.

    Raises:
        CronExpressionError: Wrong field count, an unrecognised sub-token,
            a zero step or a reversed range.
    """
    parts = expression.split()
    if len(parts) != 5:
        raise _error(
            expression,
            f"Invalid cron expression: {expression} (expected 5 parts)",
        )

    parsed = [
        parse_field(text, name, lo, hi, expression)
        for text, (name, lo, hi) in zip(parts, FIELD_RANGES, strict=True)
    ]
    return CronFields(*parsed, expression=expression)


def is_valid_expression(expression: str) -> bool:
    """True if ``expression`` parses."""
    try:
        parse_expression(expression)
    except CronExpressionError:
        return False
    return True


__all__ = [
    "CronFields",
    "FIELD_RANGES",
    "parse_expression",
    "parse_field",
    "is_valid_expression",
]
