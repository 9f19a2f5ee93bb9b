"""Tests for logging_config module."""

import logging

from proflasher.logging_config import ContextFormatter, setup_logging


def _record(**extra):
    record = logging.LogRecord("proflasher.test", logging.INFO, __file__, 1, "hello", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestContextFormatter:
    """Tests for appending extra fields."""

    def test_plain_message(self):
        formatter = ContextFormatter("[%(levelname)s] %(message)s", use_colors=False)
        assert formatter.format(_record()) == "[INFO] hello"

    def test_extra_fields_appended(self):
        formatter = ContextFormatter("[%(levelname)s] %(message)s", use_colors=False)
        assert formatter.format(_record(tool="search", id="t1")) == "[INFO] hello | tool=search id=t1"

    def test_colors(self):
        formatter = ContextFormatter("[%(levelname)s] %(message)s", use_colors=True)
        assert "\033[32m[INFO]" in formatter.format(_record())


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_configures_package_logger(self):
        setup_logging("debug")
        logger = logging.getLogger("proflasher")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, ContextFormatter)
        assert logger.propagate is False

    def test_unknown_level_falls_back(self):
        setup_logging("LOUD")
        assert logging.getLogger("proflasher").level == logging.WARNING
