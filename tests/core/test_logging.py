"""Tests for structured logging helpers."""

import json

import pytest
import structlog

from schemashift.core.logging import (
    LogContext,
    bind_context,
    configure_logging,
    get_logger,
    log_step,
    unbind_context,
)


@pytest.fixture
def json_logs(capsys):
    """Configure JSON logging and return a reader for emitted events."""
    configure_logging(level="DEBUG", json_format=True, service="schemashift-test")

    def read() -> list[dict]:
        err = capsys.readouterr().err
        return [json.loads(line) for line in err.splitlines() if line.startswith("{")]

    return read


class TestConfigureLogging:
    def test_json_events(self, json_logs):
        get_logger("schemashift.test").info("export.started", workers=4)
        (event,) = json_logs()
        assert event["event"] == "export.started"
        assert event["workers"] == 4
        assert event["level"] == "info"
        assert event["service"] == "schemashift-test"
        assert event["logger"] == "schemashift.test"
        assert "timestamp" in event

    def test_level_filters(self, capsys):
        configure_logging(level="WARNING", json_format=True)
        logger = get_logger("schemashift.test")
        logger.info("quiet")
        logger.warning("loud")
        err = capsys.readouterr().err
        assert "quiet" not in err
        assert "loud" in err

    def test_error_events_render(self, json_logs):
        get_logger("schemashift.test").error("apply.unit_failed_terminal", unit="a.sql")
        (event,) = json_logs()
        assert event["level"] == "error"
        assert event["logger"] == "schemashift.test"

    def test_unnamed_logger(self, json_logs):
        get_logger().warning("loud")
        (event,) = json_logs()
        assert "logger" not in event


class TestContext:
    def test_log_context_binds_and_unbinds(self, json_logs):
        logger = get_logger("schemashift.test")
        with LogContext(run_id="export-1", bucket="08_Tables_PrimaryKey"):
            logger.info("inside")
        logger.info("outside")
        inside, outside = json_logs()
        assert inside["run_id"] == "export-1"
        assert inside["bucket"] == "08_Tables_PrimaryKey"
        assert "run_id" not in outside

    def test_bind_unbind(self, json_logs):
        logger = get_logger("schemashift.test")
        bind_context(worker_id="worker-1")
        logger.info("bound")
        unbind_context("worker_id")
        logger.info("unbound")
        bound, unbound = json_logs()
        assert bound["worker_id"] == "worker-1"
        assert "worker_id" not in unbound

    def teardown_method(self):
        structlog.contextvars.clear_contextvars()


class TestLogStep:
    def test_success_reports_duration_and_extra(self, json_logs):
        with log_step("catalog.enumerate", provider="fake") as extra:
            extra["objects"] = 12
        start, end = json_logs()
        assert start["event"] == "catalog.enumerate.start"
        assert end["event"] == "catalog.enumerate.end"
        assert end["objects"] == 12
        assert end["provider"] == "fake"
        assert end["duration_ms"] >= 0

    def test_failure_is_logged_and_reraised(self, json_logs):
        with pytest.raises(ValueError):
            with log_step("catalog.enumerate"):
                raise ValueError("boom")
        start, failed = json_logs()
        assert failed["event"] == "catalog.enumerate.failed"
        assert failed["level"] == "error"
