"""Tests for LeaseCoordinator."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from cronlease.core.timestamps import utc_now
from cronlease.scheduling.lease import DEFAULT_LEASE_SECONDS, LeaseCoordinator


class TestLeaseAcquire:
    """Acquisition semantics."""

    def test_acquire_free_lease(self, leases):
        assert leases.try_acquire("nightly") is True
        assert leases.holder("nightly") == "host-a"

    def test_same_holder_reacquires(self, leases):
        """Same instance can re-acquire its own lease (refresh)."""
        leases.try_acquire("nightly")
        assert leases.try_acquire("nightly") is True

    def test_reacquire_extends_expiry(self, leases, clock):
        leases.try_acquire("nightly", lease_seconds=30)
        first = leases.get("nightly").expires_at
        clock.advance(seconds=10)
        leases.try_acquire("nightly", lease_seconds=30)
        assert leases.get("nightly").expires_at > first

    def test_other_holder_blocked(self, conn, clock):
        host_a = LeaseCoordinator(conn, instance_id="host-a", clock=clock)
        host_b = LeaseCoordinator(conn, instance_id="host-b", clock=clock)

        assert host_a.try_acquire("nightly") is True
        assert host_b.try_acquire("nightly") is False
        assert host_a.holder("nightly") == "host-a"

    def test_other_holder_takes_over_after_expiry(self, conn, clock):
        host_a = LeaseCoordinator(conn, instance_id="host-a", clock=clock)
        host_b = LeaseCoordinator(conn, instance_id="host-b", clock=clock)

        host_a.try_acquire("nightly", lease_seconds=30)
        clock.advance(seconds=31)

        assert host_b.try_acquire("nightly", lease_seconds=30) is True
        assert host_b.holder("nightly") == "host-b"
        assert host_a.try_acquire("nightly") is False

    def test_still_blocked_just_before_expiry(self, conn, clock):
        host_a = LeaseCoordinator(conn, instance_id="host-a", clock=clock)
        host_b = LeaseCoordinator(conn, instance_id="host-b", clock=clock)

        host_a.try_acquire("nightly", lease_seconds=30)
        clock.advance(seconds=29)

        assert host_b.try_acquire("nightly") is False

    def test_explicit_holder_id(self, leases):
        assert leases.try_acquire("nightly", holder_id="worker-7") is True
        assert leases.holder("nightly") == "worker-7"

    def test_leases_are_per_job(self, conn, clock):
        host_a = LeaseCoordinator(conn, instance_id="host-a", clock=clock)
        host_b = LeaseCoordinator(conn, instance_id="host-b", clock=clock)

        assert host_a.try_acquire("job-1") is True
        assert host_b.try_acquire("job-2") is True

    def test_store_failure_returns_false(self, conn, clock):
        leases = LeaseCoordinator(conn, instance_id="host-a", clock=clock)
        conn.execute("DROP TABLE cron_locks")
        assert leases.try_acquire("nightly") is False

    def test_default_instance_id_generated(self, conn):
        assert LeaseCoordinator(conn).instance_id
        assert LeaseCoordinator(conn).instance_id != LeaseCoordinator(conn).instance_id

    def test_default_lease_duration(self, leases, clock):
        leases.try_acquire("nightly")
        lease = leases.get("nightly")
        assert (lease.expires_at - lease.locked_at).total_seconds() == DEFAULT_LEASE_SECONDS


class TestLeaseRenewRelease:
    """Renewal and release."""

    def test_renew_held_lease(self, leases, clock):
        leases.try_acquire("nightly", lease_seconds=30)
        clock.advance(seconds=20)
        assert leases.renew("nightly", lease_seconds=30) is True
        assert leases.get("nightly").expires_at == clock() + timedelta(seconds=30)
        clock.advance(seconds=20)
        assert leases.is_held("nightly") is True

    def test_renew_not_held(self, conn, clock):
        host_a = LeaseCoordinator(conn, instance_id="host-a", clock=clock)
        host_b = LeaseCoordinator(conn, instance_id="host-b", clock=clock)
        host_a.try_acquire("nightly")
        assert host_b.renew("nightly") is False

    def test_release(self, leases):
        leases.try_acquire("nightly")
        assert leases.release("nightly") is True
        assert leases.get("nightly") is None

    def test_release_not_held(self, leases):
        assert leases.release("not-held") is False

    def test_release_held_by_other(self, conn, clock):
        host_a = LeaseCoordinator(conn, instance_id="host-a", clock=clock)
        host_b = LeaseCoordinator(conn, instance_id="host-b", clock=clock)
        host_a.try_acquire("nightly")

        assert host_b.release("nightly") is False
        assert host_a.holder("nightly") == "host-a"

    def test_release_then_other_acquires(self, conn, clock):
        host_a = LeaseCoordinator(conn, instance_id="host-a", clock=clock)
        host_b = LeaseCoordinator(conn, instance_id="host-b", clock=clock)
        host_a.try_acquire("nightly")
        host_a.release("nightly")
        assert host_b.try_acquire("nightly") is True


class TestLeaseQueries:
    """holder / is_held / list_active / cleanup_expired."""

    def test_holder_none_when_absent(self, leases):
        assert leases.holder("nightly") is None
        assert leases.is_held("nightly") is False

    def test_holder_none_when_expired(self, leases, clock):
        leases.try_acquire("nightly", lease_seconds=5)
        clock.advance(seconds=6)
        assert leases.holder("nightly") is None
        assert leases.get("nightly") is not None

    def test_list_active_excludes_expired(self, leases, clock):
        leases.try_acquire("short", lease_seconds=5)
        leases.try_acquire("long", lease_seconds=60)
        clock.advance(seconds=10)
        assert [lease.job_name for lease in leases.list_active()] == ["long"]

    def test_cleanup_expired(self, leases, clock):
        leases.try_acquire("short", lease_seconds=5)
        leases.try_acquire("long", lease_seconds=60)
        clock.advance(seconds=10)

        assert leases.cleanup_expired() == 1
        assert leases.get("short") is None
        assert leases.get("long") is not None


class TestLeaseHeartbeat:
    """Background renewal while a handler runs."""

    @pytest.mark.asyncio
    async def test_heartbeat_renews(self, leases, clock):
        leases.try_acquire("nightly", lease_seconds=30)
        original = leases.get("nightly").expires_at

        async with leases.heartbeat("nightly", lease_seconds=30, interval=0.01):
            clock.advance(seconds=20)
            await asyncio.sleep(0.05)

        assert leases.get("nightly").expires_at > original

    @pytest.mark.asyncio
    async def test_heartbeat_task_cancelled_on_exit(self, leases):
        leases.try_acquire("nightly")
        async with leases.heartbeat("nightly", interval=10) as task:
            assert not task.done()
        assert task.done()

    @pytest.mark.asyncio
    async def test_heartbeat_cancelled_when_block_raises(self, leases):
        leases.try_acquire("nightly")
        with pytest.raises(RuntimeError):
            async with leases.heartbeat("nightly", interval=10) as task:
                raise RuntimeError("handler blew up")
        assert task.done()

    @pytest.mark.asyncio
    async def test_heartbeat_survives_lost_lease(self, conn, clock):
        host_a = LeaseCoordinator(conn, instance_id="host-a", clock=clock)
        host_b = LeaseCoordinator(conn, instance_id="host-b", clock=clock)
        host_a.try_acquire("nightly", lease_seconds=5)
        clock.advance(seconds=6)
        host_b.try_acquire("nightly", lease_seconds=5)

        async with host_a.heartbeat("nightly", lease_seconds=5, interval=0.01):
            await asyncio.sleep(0.05)

        assert host_a.holder("nightly") == "host-b"


class TestStoreClock:
    """Without an injected clock, lease times are computed by the database."""

    @staticmethod
    def _writer(conn, when):
        return LeaseCoordinator(conn, instance_id="host-z", clock=lambda: when)

    def test_times_written_by_store(self, conn):
        host_a = LeaseCoordinator(conn, instance_id="host-a")

        assert host_a.try_acquire("nightly", lease_seconds=30) is True

        lease = host_a.get("nightly")
        assert lease.expires_at - lease.locked_at == timedelta(seconds=30)
        assert abs(lease.locked_at - utc_now()) < timedelta(seconds=5)

    def test_live_lease_blocks_other_host(self, conn):
        host_a = LeaseCoordinator(conn, instance_id="host-a")
        host_b = LeaseCoordinator(conn, instance_id="host-b")

        assert host_a.try_acquire("nightly") is True
        assert host_b.try_acquire("nightly") is False
        assert host_b.holder("nightly") == "host-a"

    def test_expiry_judged_by_store_time(self, conn):
        host_b = LeaseCoordinator(conn, instance_id="host-b")

        self._writer(conn, datetime(2100, 1, 1, tzinfo=UTC)).try_acquire("future")
        self._writer(conn, datetime(2000, 1, 1, tzinfo=UTC)).try_acquire("past")

        assert host_b.try_acquire("future") is False
        assert host_b.try_acquire("past") is True
        assert host_b.holder("past") == "host-b"

    def test_renew(self, conn):
        host_a = LeaseCoordinator(conn, instance_id="host-a")
        host_a.try_acquire("nightly", lease_seconds=30)
        first = host_a.get("nightly").expires_at

        assert host_a.renew("nightly", lease_seconds=120) is True
        assert host_a.get("nightly").expires_at > first

    def test_list_active_and_cleanup(self, conn):
        host_a = LeaseCoordinator(conn, instance_id="host-a")
        host_a.try_acquire("live")
        self._writer(conn, datetime(2000, 1, 1, tzinfo=UTC)).try_acquire("stale")

        assert [lease.job_name for lease in host_a.list_active()] == ["live"]
        assert host_a.holder("stale") is None
        assert host_a.cleanup_expired() == 1
        assert host_a.get("stale") is None
        assert host_a.get("live") is not None
