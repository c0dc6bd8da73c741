"""Tests for ExecutionLedger."""

from datetime import UTC, datetime, timedelta

import pytest

from cronlease.core.models import ExecutionStatus
from cronlease.scheduling.ledger import ExecutionLedger, encode_output

NINE = datetime(2024, 1, 15, 9, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def nightly_job(catalog):
    catalog.ensure("nightly", "0 9 * * *")


class TestRecordStart:
    """Claiming an instant."""

    def test_first_claim_wins(self, ledger, clock):
        assert ledger.record_start("nightly_1", "nightly", NINE, clock()) is True

        execution = ledger.get("nightly_1")
        assert execution.status == ExecutionStatus.RUNNING
        assert execution.scheduled_time == NINE
        assert execution.actual_time == clock()
        assert execution.completed_at is None

    def test_second_claim_on_same_instant_loses(self, ledger, clock):
        assert ledger.record_start("nightly_1", "nightly", NINE, clock()) is True
        assert ledger.record_start("nightly_other", "nightly", NINE, clock()) is False

        assert ledger.get("nightly_other") is None
        assert len(ledger.history("nightly")) == 1

    def test_duplicate_execution_id_loses(self, ledger, clock):
        ledger.record_start("nightly_1", "nightly", NINE, clock())
        later = NINE + timedelta(days=1)
        assert ledger.record_start("nightly_1", "nightly", later, clock()) is False

    def test_same_instant_different_jobs(self, ledger, catalog, clock):
        catalog.ensure("hourly", "0 * * * *")
        assert ledger.record_start("nightly_1", "nightly", NINE, clock()) is True
        assert ledger.record_start("hourly_1", "hourly", NINE, clock()) is True

    def test_claims_from_two_ledgers_on_one_store(self, conn, clock):
        host_a = ExecutionLedger(conn, clock=clock)
        host_b = ExecutionLedger(conn, clock=clock)

        results = [
            host_a.record_start("nightly_a", "nightly", NINE, clock()),
            host_b.record_start("nightly_b", "nightly", NINE, clock()),
        ]
        assert results == [True, False]

    def test_exists(self, ledger, clock):
        assert ledger.exists("nightly", NINE) is False
        ledger.record_start("nightly_1", "nightly", NINE, clock())
        assert ledger.exists("nightly", NINE) is True

    def test_non_utc_instant_is_the_same_instant(self, ledger, clock):
        from zoneinfo import ZoneInfo

        ledger.record_start("nightly_1", "nightly", NINE, clock())
        same_in_tokyo = NINE.astimezone(ZoneInfo("Asia/Tokyo"))
        assert ledger.record_start("nightly_2", "nightly", same_in_tokyo, clock()) is False


class TestRecordOutcome:
    """Terminal transitions."""

    def test_completed_with_output(self, ledger, clock):
        ledger.record_start("nightly_1", "nightly", NINE, clock())
        clock.advance(seconds=2)

        assert ledger.record_outcome(
            "nightly_1", ExecutionStatus.COMPLETED, output={"rows": 3}, duration_ms=2000
        ) is True

        execution = ledger.get("nightly_1")
        assert execution.status == ExecutionStatus.COMPLETED
        assert execution.output == {"rows": 3}
        assert execution.error is None
        assert execution.duration_ms == 2000
        assert execution.completed_at == clock()

    def test_failed_with_error(self, ledger, clock):
        ledger.record_start("nightly_1", "nightly", NINE, clock())
        ledger.record_outcome("nightly_1", ExecutionStatus.FAILED, error="boom", duration_ms=5)

        execution = ledger.get("nightly_1")
        assert execution.status == ExecutionStatus.FAILED
        assert execution.error == "boom"
        assert execution.output is None

    def test_accepts_status_string(self, ledger, clock):
        ledger.record_start("nightly_1", "nightly", NINE, clock())
        assert ledger.record_outcome("nightly_1", "completed") is True
        assert ledger.get("nightly_1").status == ExecutionStatus.COMPLETED

    def test_outcome_recorded_once(self, ledger, clock):
        ledger.record_start("nightly_1", "nightly", NINE, clock())
        ledger.record_outcome("nightly_1", ExecutionStatus.COMPLETED, output=1)

        assert ledger.record_outcome("nightly_1", ExecutionStatus.FAILED, error="late") is False
        execution = ledger.get("nightly_1")
        assert execution.status == ExecutionStatus.COMPLETED
        assert execution.error is None

    def test_unknown_execution(self, ledger):
        assert ledger.record_outcome("missing", ExecutionStatus.COMPLETED) is False

    @pytest.mark.parametrize("status", [ExecutionStatus.RUNNING, ExecutionStatus.PENDING])
    def test_non_terminal_status_rejected(self, ledger, clock, status):
        ledger.record_start("nightly_1", "nightly", NINE, clock())
        with pytest.raises(ValueError, match="completed or failed"):
            ledger.record_outcome("nightly_1", status)

    def test_non_json_output_stored_as_text(self, ledger, clock):
        ledger.record_start("nightly_1", "nightly", NINE, clock())
        ledger.record_outcome("nightly_1", ExecutionStatus.COMPLETED, output={"at": NINE})
        assert ledger.get("nightly_1").output == {"at": str(NINE)}


class TestHistory:
    """Reads."""

    def _record(self, ledger, clock, days):
        for day in days:
            instant = NINE + timedelta(days=day)
            ledger.record_start(f"nightly_{day}", "nightly", instant, clock())

    def test_newest_first(self, ledger, clock):
        self._record(ledger, clock, [0, 2, 1])
        assert [e.execution_id for e in ledger.history("nightly")] == [
            "nightly_2",
            "nightly_1",
            "nightly_0",
        ]

    def test_limit(self, ledger, clock):
        self._record(ledger, clock, range(5))
        assert [e.execution_id for e in ledger.history("nightly", limit=2)] == ["nightly_4", "nightly_3"]

    def test_since(self, ledger, clock):
        self._record(ledger, clock, range(5))
        since = NINE + timedelta(days=3)
        assert [e.execution_id for e in ledger.history("nightly", since=since)] == ["nightly_4", "nightly_3"]

    def test_other_jobs_excluded(self, ledger, catalog, clock):
        catalog.ensure("hourly", "0 * * * *")
        self._record(ledger, clock, [0])
        ledger.record_start("hourly_0", "hourly", NINE, clock())
        assert [e.job_name for e in ledger.history("nightly")] == ["nightly"]

    def test_unknown_job_is_empty(self, ledger):
        assert ledger.history("nope") == []

    def test_get_for_instant(self, ledger, clock):
        self._record(ledger, clock, [0])
        assert ledger.get_for_instant("nightly", NINE).execution_id == "nightly_0"
        assert ledger.get_for_instant("nightly", NINE + timedelta(minutes=1)) is None

    def test_list_running(self, ledger, clock):
        self._record(ledger, clock, [0, 1])
        ledger.record_outcome("nightly_0", ExecutionStatus.COMPLETED)
        assert [e.execution_id for e in ledger.list_running()] == ["nightly_1"]


class TestEncodeOutput:
    def test_none(self):
        assert encode_output(None) is None

    def test_json(self):
        assert encode_output({"a": [1, 2]}) == '{"a": [1, 2]}'
