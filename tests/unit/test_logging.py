"""
Unit Tests for Logging Helpers

Run with:
    pytest tests/unit/test_logging.py -v
"""

import logging

import pytest

from core.logging import ROOT_LOGGER_NAME, get_logger, log_feed_event, logger, set_log_level


@pytest.fixture
def restore_levels():
    app_level = logger.level
    root_level = logging.getLogger().level
    yield
    logger.setLevel(app_level)
    logging.getLogger().setLevel(root_level)


class TestGetLogger:

    def test_child_of_application_logger(self):
        assert get_logger("storage.quote_store").name == f"{ROOT_LOGGER_NAME}.storage.quote_store"
        assert logger.name == ROOT_LOGGER_NAME


class TestSetLogLevel:
    """Tests for set_log_level"""

    def test_changes_level_at_runtime(self, restore_levels):
        set_log_level("debug")

        assert logger.level == logging.DEBUG
        assert logging.getLogger().level == logging.DEBUG
        assert get_logger("services.quote_resolver").isEnabledFor(logging.DEBUG)

        set_log_level("ERROR")
        assert not get_logger("services.quote_resolver").isEnabledFor(logging.WARNING)

    def test_unknown_level_falls_back_to_info(self, restore_levels):
        set_log_level("LOUD")
        assert logger.level == logging.INFO


class TestLogFeedEvent:

    def test_error_events_use_error_level(self, caplog):
        caplog.set_level(logging.INFO, logger=ROOT_LOGGER_NAME)

        log_feed_event("exhausted", details="gave up after 10 attempts")
        log_feed_event("subscribed", ["BTCUSDT", "ETHUSDT"])

        levels = [(record.levelno, record.getMessage()) for record in caplog.records]
        assert (logging.ERROR, "Feed: exhausted | gave up after 10 attempts") in levels
        assert (logging.INFO, "Feed: subscribed | Symbols: BTCUSDT, ETHUSDT") in levels
