from __future__ import annotations

import logging
import sys
from io import StringIO

import org_import.logging.init as log_init
from org_import.logging.init import (
    APP_LOGGER_NAME,
    SUMMARY_LEVEL,
    LabeledFormatter,
    get_logger,
    log_summary,
    reset_logging,
    setup_logging,
)


def _capture(logger: logging.Logger) -> StringIO:
    stream = StringIO()
    logger.handlers[0].setStream(stream)
    return stream


def test_setup_logging_creates_logger_with_labeled_formatter():
    """setup_logging installs one stdout handler with the labeled format."""
    logger = setup_logging()

    assert logger.name == APP_LOGGER_NAME
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, LabeledFormatter)
    assert logger.propagate is False


def test_logging_labeled_prefixes():
    """Test that logging outputs have correct labeled prefixes (INFO|WARN|ERROR|SUMMARY)."""
    logger = setup_logging()
    stream = _capture(logger)

    logger.info("Test info message")
    logger.warning("Test warning message")
    logger.error("Test error message")
    log_summary("Test summary message")
    logger.debug("hidden")

    lines = stream.getvalue().strip().split("\n")
    assert lines == [
        "INFO Test info message",
        "WARN Test warning message",
        "ERROR Test error message",
        "SUMMARY Test summary message",
    ]


def test_module_loggers_propagate_to_app_handler():
    logger = setup_logging()
    stream = _capture(logger)
    logging.getLogger("org_import.services.batch_controller").warning("retrying")
    assert stream.getvalue() == "WARN retrying\n"


def test_setup_logging_is_idempotent_and_debug_lowers_level():
    first = setup_logging()
    second = setup_logging()
    assert first is second
    assert len(first.handlers) == 1

    setup_logging(debug=True)
    assert first.level == logging.DEBUG
    assert first.handlers[0].level == logging.DEBUG


def test_exception_info_is_appended():
    formatter = LabeledFormatter()
    try:
        raise ValueError("bad cell")
    except ValueError:
        record = logging.LogRecord(
            APP_LOGGER_NAME, logging.ERROR, __file__, 1, "import failed", None, sys.exc_info()
        )
    text = formatter.format(record)
    assert text.startswith("ERROR import failed\n")
    assert "ValueError: bad cell" in text


def test_unknown_level_uses_level_name():
    record = logging.LogRecord(APP_LOGGER_NAME, 35, __file__, 1, "custom", None, None)
    record.levelname = "NOTICE"
    assert LabeledFormatter().format(record) == "NOTICE custom"


def test_get_logger_and_reset():
    logger = get_logger()
    assert log_init._logger is logger
    assert logging.getLevelName(SUMMARY_LEVEL) == "SUMMARY"

    reset_logging()
    assert log_init._logger is None
    assert logger.handlers == []
    assert logger.propagate is True
