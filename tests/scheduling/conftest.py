"""Pytest fixtures for scheduling tests."""

import pytest

from cronlease.scheduling.jobs import JobCatalog
from cronlease.scheduling.lease import LeaseCoordinator
from cronlease.scheduling.ledger import ExecutionLedger


@pytest.fixture
def catalog(conn, clock):
    """JobCatalog on the shared test store."""
    return JobCatalog(conn, clock=clock)


@pytest.fixture
def ledger(conn, clock):
    """ExecutionLedger on the shared test store."""
    return ExecutionLedger(conn, clock=clock)


@pytest.fixture
def leases(conn, clock):
    """LeaseCoordinator for instance ``host-a``."""
    return LeaseCoordinator(conn, instance_id="host-a", clock=clock)


class ManualBackend:
    """Tick backend that never ticks on its own.

    Tests drive ``startup`` and ``tick`` directly, so a CronJob can be
    "running" without a thread.
    """

    name = "manual"

    def __init__(self):
        self.tick_callback = None
        self.startup_callback = None
        self.interval_seconds = None
        self.started = False
        self.stopped = False

    def start(self, tick_callback, interval_seconds=1.0, startup_callback=None):
        self.tick_callback = tick_callback
        self.startup_callback = startup_callback
        self.interval_seconds = interval_seconds
        self.started = True

    def stop(self):
        self.stopped = True
        self.started = False

    def health(self):
        return {"healthy": self.started, "backend": self.name, "tick_count": 0, "last_tick": None}


@pytest.fixture
def backend():
    return ManualBackend()


@pytest.fixture
def make_backend():
    """Factory for tests that need one backend per job."""
    return ManualBackend
