"""
Shared pytest fixtures and configuration for cronlease tests.

This module provides:
- Location-based markers (integration vs unit)
- A fresh in-memory store with the cron tables
- A controllable clock for lease, ledger and tick tests

Usage:
    Fixtures are auto-discovered by pytest.

    def test_something(conn, clock):
        clock.advance(minutes=5)
"""

import sqlite3
from collections.abc import Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import structlog

from cronlease.core.schema import create_cron_tables


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = item.path.relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def clean_log_context() -> Generator[None, None, None]:
    """No bound log context or logging configuration leaks between tests."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


# =============================================================================
# Store Fixtures
# =============================================================================


@pytest.fixture
def conn() -> Generator[sqlite3.Connection, None, None]:
    """In-memory SQLite store with the cron tables.

    ``check_same_thread=False`` because sync handlers and tick backends
    use the connection from worker threads.
    """
    connection = sqlite3.connect(":memory:", check_same_thread=False)
    create_cron_tables(connection)
    yield connection
    connection.close()


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Path of a file-backed SQLite store (not yet created)."""
    return str(tmp_path / "cron.db")


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, value: datetime) -> datetime:
        self.now = value
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """Clock pinned to 2024-01-15 10:00:30 UTC (a Monday)."""
    return FakeClock(datetime(2024, 1, 15, 10, 0, 30, tzinfo=UTC))
