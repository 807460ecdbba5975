"""Tests for logging configuration."""

import os
from unittest.mock import MagicMock, patch

from gslbfed.logging_config import (
    get_logger,
    log_filter_decision,
    log_queue_event,
    log_store_operation,
    setup_logging,
)


class TestLoggingConfig:
    """Tests for logging configuration."""

    def test_setup_logging_default(self):
        """Test default logging setup."""
        with patch.dict(os.environ, {}, clear=True):
            setup_logging()

            logger = get_logger("test")
            assert hasattr(logger, 'info')
            assert hasattr(logger, 'debug')
            assert hasattr(logger, 'error')

    def test_setup_logging_verbose(self):
        """Test verbose logging setup."""
        with patch.dict(os.environ, {}, clear=True):
            setup_logging(verbose=True)

            logger = get_logger("test")
            logger.debug("Test debug message")

    def test_setup_logging_env_var(self):
        """Test logging setup with LOG_LEVEL environment variable."""
        with patch.dict(os.environ, {"LOG_LEVEL": "WARNING"}):
            setup_logging()

            logger = get_logger("test")
            logger.warning("Test warning message")

    def test_json_format_env_var(self):
        """Test JSON format with LOG_FORMAT environment variable."""
        with patch.dict(os.environ, {"LOG_FORMAT": "json"}):
            setup_logging()
            logger = get_logger("test")
            logger.info("Test message", key="value")

    def test_invalid_log_level_defaults_to_info(self):
        """Test that invalid LOG_LEVEL defaults to INFO."""
        with patch.dict(os.environ, {"LOG_LEVEL": "INVALID"}):
            setup_logging()

            logger = get_logger("test")
            logger.info("Test message with invalid log level")


class TestLogHelpers:
    """Tests for the structured log helpers."""

    def test_filter_decision_accepted(self):
        logger = MagicMock()
        log_filter_decision(logger, "Ingress", "cluster1", "default", "ing/foo.com", True, "app selected")

        logger.info.assert_called_once_with(
            "Filter decision",
            obj_type="Ingress",
            cluster="cluster1",
            namespace="default",
            name="ing/foo.com",
            decision="accepted",
            reason="app selected",
        )

    def test_filter_decision_rejected(self):
        logger = MagicMock()
        log_filter_decision(logger, "Route", "cluster1", "default", "r1", False, "cluster is not selected")

        assert logger.info.call_args.kwargs["decision"] == "rejected"

    def test_store_and_queue_events_log_at_debug(self):
        logger = MagicMock()
        log_store_operation(logger, "delete", "accepted-route", cluster="c1")
        log_queue_event(logger, "published", "GraphLayer", key="admin/foo.com")

        assert logger.debug.call_count == 2
        assert logger.debug.call_args_list[0].kwargs == {"operation": "delete", "store": "accepted-route", "cluster": "c1"}
        assert logger.debug.call_args_list[1].kwargs == {"event_type": "published", "queue": "GraphLayer", "key": "admin/foo.com"}
