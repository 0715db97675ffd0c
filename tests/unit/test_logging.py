"""Unit tests for configure_logging and run_context."""

from __future__ import annotations

import io
import json
import logging

import structlog

from correlation_engine.utils.logging import configure_logging, run_context


class TestRunContext:
    def test_binds_then_clears(self) -> None:
        with run_context("pattern_analysis", run_id=4) as run_ref:
            bound = structlog.contextvars.get_contextvars()
            assert bound["run_kind"] == "pattern_analysis"
            assert bound["run_ref"] == run_ref
            assert bound["run_id"] == 4

        after = structlog.contextvars.get_contextvars()
        assert "run_kind" not in after
        assert "run_ref" not in after

    def test_each_run_gets_its_own_ref(self) -> None:
        with run_context("connection_batch") as first:
            pass
        with run_context("connection_batch") as second:
            pass
        assert first != second


class TestConfigureLogging:
    def test_events_inside_a_run_carry_its_fields(self) -> None:
        stream = io.StringIO()
        configure_logging(log_level="INFO", json_output=True, stream=stream)
        logger = structlog.get_logger(logger_name="tests.logging")

        with run_context("connection_batch", batch_size=5) as run_ref:
            logger.info("report_analyzed", report_id="r1")
        logger.info("connection_batch_complete")

        inside, outside = (json.loads(line) for line in stream.getvalue().splitlines())
        assert inside["event"] == "report_analyzed"
        assert inside["run_kind"] == "connection_batch"
        assert inside["run_ref"] == run_ref
        assert inside["batch_size"] == 5
        assert inside["level"] == "info"
        assert "run_ref" not in outside

    def test_debug_level_keeps_aiosqlite_quiet(self) -> None:
        configure_logging(log_level="DEBUG", stream=io.StringIO())
        assert logging.getLogger("aiosqlite").level == logging.INFO
        assert logging.getLogger().level == logging.DEBUG
