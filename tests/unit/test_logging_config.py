"""Tests for logging configuration helpers."""

import json
import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

from dirserve.bootstrap.logging_setup import CorrelationIdFilter, configure_logging


def _make_record(name="dirserve.handlers.file", msg="format test"):
    return logging.LogRecord(
        name=name,
        level=logging.DEBUG,
        pathname=__file__,
        lineno=0,
        msg=msg,
        args=(),
        exc_info=None,
    )


def test_configure_logging_stream_handler():
    """A stdout JSON handler is installed on the project logger."""
    logger = configure_logging("DEBUG", "stdout")

    assert logger.logger.name == "dirserve"
    assert logger.logger.level == logging.DEBUG
    assert logger.logger.propagate is False
    assert len(logger.logger.handlers) == 1

    handler = logger.logger.handlers[0]
    assert isinstance(handler, logging.StreamHandler)
    record = _make_record()
    record.correlation_id = "test-id-123"
    record.component = "handlers.file"
    log_data = json.loads(handler.formatter.format(record))
    assert log_data["component"] == "handlers.file"
    assert log_data["correlation_id"] == "test-id-123"


def test_configure_logging_plain_text():
    """``use_json=False`` selects the human-readable format."""
    logger = configure_logging("INFO", "stdout", use_json=False)
    handler = logger.logger.handlers[0]

    record = _make_record(msg="plain text")
    record.correlation_id = "cid"
    formatted = handler.formatter.format(record)
    assert "[cid] dirserve.handlers.file :: plain text" in formatted


def test_configure_logging_replaces_handlers():
    """Calling twice leaves exactly one handler."""
    configure_logging("INFO", "stdout")
    logger = configure_logging("INFO", "stdout")
    assert len(logger.logger.handlers) == 1


def test_configure_logging_file_destination(tmp_path: Path):
    """A file destination uses a rotating handler and persists records."""
    destination = tmp_path / "logs" / "dirserve.log"
    logger = configure_logging("WARNING", destination.as_posix())

    assert logger.logger.level == logging.WARNING
    handler = logger.logger.handlers[0]
    assert handler.baseFilename == destination.as_posix()
    assert handler.maxBytes == 10 * 1024 * 1024
    assert handler.backupCount == 5

    logging.getLogger("dirserve.lifecycle").warning("file log test")
    handler.flush()
    assert "file log test" in destination.read_text()


def test_unknown_level_falls_back_to_info():
    """Unrecognized level names resolve to INFO."""
    logger = configure_logging("CHATTY", "stdout")
    assert logger.logger.level == logging.INFO


def test_correlation_id_filter_inserts_placeholder_when_missing():
    """Filter should default correlation_id to '-' for bare records."""
    record = _make_record()

    assert not hasattr(record, "correlation_id")
    assert CorrelationIdFilter().filter(record)
    assert record.correlation_id == "-"


def test_configure_logging_emits_event():
    """configure_logging announces itself with a structured event."""
    with patch("dirserve.bootstrap.logging_setup._build_handler") as mock_build:
        mock_handler = MagicMock()
        mock_handler.level = logging.INFO
        mock_build.return_value = mock_handler

        configure_logging("INFO", "stdout")

        record = mock_handler.handle.call_args[0][0]
        assert record.msg == "Logging configured"
        assert getattr(record, "event", None) == "logging_configured"
        assert getattr(record, "log_destination", None) == "stdout"
        assert getattr(record, "log_level", None) == "INFO"
