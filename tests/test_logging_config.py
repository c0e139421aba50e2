"""
Tests for logging setup and the app factory's logging options.
"""

import logging

import pytest

from app import _log_level
from logging_config import (
    ORDER_LOGGER_NAME,
    get_logger,
    get_order_logger,
    setup_logging,
)


class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


# Fixtures

@pytest.fixture
def order_records():
    """Records reaching the shared order logger."""
    handler = _ListHandler()
    logger = logging.getLogger(ORDER_LOGGER_NAME)
    previous = logger.level
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    yield handler.records
    logger.removeHandler(handler)
    logger.setLevel(previous)


# Tests for loggers

class TestLoggers:
    """Logger naming and order tagging."""

    def test_module_logger_namespace(self):
        assert get_logger("services.order_service").name == "stamp_order_web.services.order_service"
        assert get_logger("stamp_order_web.app").name == "stamp_order_web.app"

    def test_order_logger_tags_records(self, order_records):
        get_order_logger("5f2c9a1e-1111-2222").info("Order created with 2 stamps")

        record = order_records[0]
        assert record.order_id == "5f2c9a1e-1111-2222"
        assert record.order_ref == "5f2c9a1e"
        assert record.getMessage() == "Order created with 2 stamps"

    def test_file_logging(self, tmp_path):
        logger = setup_logging(log_level=logging.INFO, log_dir=tmp_path, enable_file_logging=True)
        try:
            get_order_logger("abc").error("Patch set rejected")
            for handler in logger.handlers:
                handler.flush()

            error_log = (tmp_path / "stamp_order_web_error.log").read_text(encoding="utf-8")
            assert "[abc     ]" in error_log
            assert "Patch set rejected" in error_log
        finally:
            for handler in logger.handlers:
                handler.close()
            setup_logging(enable_file_logging=False)


# Tests for level selection

class TestLogLevel:
    """LOG_LEVEL overrides the DEBUG flag."""

    @pytest.mark.parametrize("config, expected", [
        ({"DEBUG": True}, logging.DEBUG),
        ({"DEBUG": False}, logging.INFO),
        ({"DEBUG": True, "LOG_LEVEL": "warning"}, logging.WARNING),
        ({"DEBUG": False, "LOG_LEVEL": "LOUD"}, logging.INFO),
    ])
    def test_log_level(self, config, expected):
        assert _log_level(config) == expected
