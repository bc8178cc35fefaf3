"""
Unit tests for structured logging and run events.
"""

import io
import json
import logging

import pytest

from agenda_ingest.monitoring.events import emit_event
from agenda_ingest.monitoring.logging import (
    JsonFormatter,
    LoggingOptions,
    TextFormatter,
    setup_logging,
    with_context,
)

# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def stream():
    return io.StringIO()


@pytest.fixture
def configure(stream):
    """Return a function configuring an isolated test logger."""
    names = []

    def _configure(json_logs=False, level="DEBUG"):
        name = f"agenda_ingest_test.{len(names)}"
        names.append(name)
        return setup_logging(
            LoggingOptions(level=level, json_logs=json_logs, logger_name=name), stream=stream
        )

    yield _configure

    for name in names:
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)


def lines(stream):
    return [line for line in stream.getvalue().splitlines() if line]


# ============================================================================
# TEST CLASSES
# ============================================================================


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_single_handler_after_reconfigure(self, stream):
        options = LoggingOptions(logger_name="agenda_ingest_test.reconfigure")
        setup_logging(options, stream=stream)
        logger = setup_logging(options, stream=stream)
        try:
            assert len(logger.handlers) == 1
            assert logger.propagate is False
        finally:
            logger.removeHandler(logger.handlers[0])

    def test_level_applied(self, configure, stream):
        logger = configure(level="WARNING")
        logger.info("hidden")
        logger.warning("shown")
        assert len(lines(stream)) == 1
        assert "shown" in lines(stream)[0]

    def test_unknown_level_defaults_to_info(self, configure):
        logger = configure(level="chatty")
        assert logger.level == logging.INFO

    def test_log_file_mirrors_console(self, tmp_path, stream):
        log_file = tmp_path / "logs" / "run.log"
        options = LoggingOptions(logger_name="agenda_ingest_test.file", log_file=log_file)
        logger = setup_logging(options, stream=stream)
        try:
            logger.info("scraped 12 candidates")
        finally:
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()
        assert "scraped 12 candidates" in stream.getvalue()
        assert "scraped 12 candidates" in log_file.read_text(encoding="utf-8")


class TestJsonFormatter:
    """Tests for JSON log output."""

    def test_payload_and_context(self, configure, stream):
        logger = configure(json_logs=True)
        log = with_context(logger, run_id="scraping_multi_20260301_120000", source_id="sympla")
        emit_event(log, "progress", {"phase": "scraping", "total": 2}, stage="scraping")

        record = json.loads(lines(stream)[0])
        assert record["msg"] == "Event: progress"
        assert record["level"] == "INFO"
        assert record["run_id"] == "scraping_multi_20260301_120000"
        assert record["source_id"] == "sympla"
        assert record["stage"] == "scraping"
        assert record["event"] == "progress"
        assert record["payload"] == {"phase": "scraping", "total": 2}

    def test_exception_included(self, configure, stream):
        logger = configure(json_logs=True)
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            logger.exception("failed")
        record = json.loads(stream.getvalue())
        assert "RuntimeError: boom" in record["exc_info"]

    def test_plain_record_has_no_context(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        data = json.loads(JsonFormatter().format(record))
        assert data["msg"] == "hello world"
        assert "run_id" not in data
        assert "payload" not in data


class TestTextFormatter:
    """Tests for human-readable log output."""

    def test_context_rendered(self, configure, stream):
        logger = configure()
        with_context(logger, run_id="r1", stage="persisting").info("saved 2 events")
        line = lines(stream)[0]
        assert "[run=r1 stage=persisting]" in line
        assert line.endswith("saved 2 events")

    def test_without_context(self):
        record = logging.LogRecord("agenda", logging.WARNING, __file__, 1, "plain", (), None)
        out = TextFormatter().format(record)
        assert "WARNING agenda plain" in out
        assert "[" not in out


class TestEmitEvent:
    """Tests for emit_event."""

    def test_level_and_default_payload(self, configure, stream):
        logger = configure(json_logs=True)
        emit_event(logger, "source_failed", level="error")
        record = json.loads(lines(stream)[0])
        assert record["level"] == "ERROR"
        assert record["payload"] == {}
        assert "stage" not in record
