"""Tests for ``cronlease.core.logging``."""

import json
import sys

import pytest
import structlog

from cronlease.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)


class TestConfigureLogging:
    def test_json_output(self, capsys):
        configure_logging(level="INFO", json_format=True, service="cron-test")
        get_logger("t").info("lease_acquired", job_name="nightly")

        line = capsys.readouterr().out.strip().splitlines()[-1]
        data = json.loads(line)
        assert data["event"] == "lease_acquired"
        assert data["job_name"] == "nightly"
        assert data["logger"] == "t"
        assert data["service.name"] == "cron-test"
        assert data["log.level"] == "info"
        assert "@timestamp" in data

    def test_level_filtering(self, capsys):
        configure_logging(level="WARNING", json_format=True)
        get_logger("t").info("quiet")
        assert "quiet" not in capsys.readouterr().out

    def test_stream_override(self, capsys):
        configure_logging(level="INFO", json_format=True, stream=sys.stderr)
        get_logger("t").info("lease_released")

        captured = capsys.readouterr()
        assert "lease_released" not in captured.out
        assert json.loads(captured.err.strip().splitlines()[-1])["event"] == "lease_released"

    def test_module_logger_defined_before_configure(self, capsys):
        logger = get_logger("cronlease.scheduling.runner")
        configure_logging(level="INFO", json_format=True)
        logger.warning("schedule_stuck", job_name="never")

        data = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert data["logger"] == "cronlease.scheduling.runner"
        assert data["log.level"] == "warning"

    def test_console_output(self, capsys):
        configure_logging(level="DEBUG", json_format=False)
        get_logger("t").debug("tick_skipped")
        assert "tick_skipped" in capsys.readouterr().out


class TestContext:
    def test_log_context_binds_and_unbinds(self, capsys):
        configure_logging(level="INFO", json_format=True)
        logger = get_logger("t")

        with LogContext(job_name="nightly", execution_id="e1"):
            logger.info("inside")
        logger.info("outside")

        inside, outside = (json.loads(line) for line in capsys.readouterr().out.strip().splitlines()[-2:])
        assert inside["execution_id"] == "e1"
        assert "execution_id" not in outside

    @pytest.mark.asyncio
    async def test_async_log_context(self):
        async with LogContext(job_name="nightly"):
            assert structlog.contextvars.get_contextvars()["job_name"] == "nightly"
        assert "job_name" not in structlog.contextvars.get_contextvars()

    def test_clear_context(self):
        bind_context(job_name="nightly")
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}
