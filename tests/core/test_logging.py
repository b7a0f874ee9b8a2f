"""
Tests for stagespine.core.logging module.

Tests verify:
- LogContext binds and unbinds contextvars
- configure_logging installs a structlog configuration
"""

import structlog

from stagespine.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)


class TestContextManagement:
    """Test context bind/unbind/clear operations."""

    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_bind_and_unbind(self):
        bind_context(document="file:///a.html", stage="10-lower")
        assert structlog.contextvars.get_contextvars() == {
            "document": "file:///a.html",
            "stage": "10-lower",
        }
        unbind_context("stage")
        assert structlog.contextvars.get_contextvars() == {"document": "file:///a.html"}

    def test_log_context_scoped(self):
        with LogContext(document="file:///a.html"):
            assert structlog.contextvars.get_contextvars()["document"] == "file:///a.html"
        assert "document" not in structlog.contextvars.get_contextvars()

    def test_log_context_keeps_outer_bindings(self):
        bind_context(service_run="r1")
        with LogContext(document="file:///a.html"):
            pass
        assert structlog.contextvars.get_contextvars() == {"service_run": "r1"}


class TestConfigureLogging:
    def test_configures_structlog(self):
        configure_logging(level="DEBUG", json_format=True, service="stagespine-test")
        assert structlog.is_configured()

    def test_get_logger_returns_bindable_logger(self):
        configure_logging(level="INFO", json_format=False)
        log = get_logger("stagespine.tests")
        bound = log.bind(stage="10-lower")
        assert bound is not None
