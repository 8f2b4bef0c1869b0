"""
Unit Tests - Configuration and Logging
"""
import logging

import pytest
import structlog
from pydantic import ValidationError

from merchant_analytics.config import AnalyticsSettings, Settings
from merchant_analytics.config.logging import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    drop_empty_context,
    get_logger,
)
from merchant_analytics.config.settings import DatabaseSettings


class TestSettings:
    """Tests for application settings"""

    def test_environment_validated(self):
        with pytest.raises(ValidationError):
            Settings(APP_ENV="moon")

    def test_environment_lower_cased(self, test_settings):
        assert test_settings.app_env == "testing"
        assert test_settings.is_production is False

    def test_async_url_built_from_parts(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)

        settings = DatabaseSettings(host="db", port=5433, user="reader", password="pw")

        assert settings.async_url.startswith("postgresql+asyncpg://reader:pw@db:5433/")

    def test_database_url_override(self):
        settings = DatabaseSettings(DATABASE_URL="sqlite+aiosqlite:///analytics.db")

        assert settings.async_url == "sqlite+aiosqlite:///analytics.db"

    def test_analytics_env_prefix(self, monkeypatch):
        monkeypatch.setenv("ANALYTICS_PAGE_SIZE", "250")
        monkeypatch.setenv("ANALYTICS_ALLOW_ALL_TENANTS", "true")

        settings = AnalyticsSettings()

        assert settings.page_size == 250
        assert settings.allow_all_tenants is True

    def test_analytics_bounds(self):
        with pytest.raises(ValidationError):
            AnalyticsSettings(page_size=0)


class TestLogging:
    """Tests for structlog setup"""

    def test_configure_text_logging(self):
        configure_logging(log_level="DEBUG", log_format="text")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)

    def test_configure_json_logging(self):
        configure_logging(log_level="WARNING", log_format="json")

        assert logging.getLogger().level == logging.WARNING
        assert logging.getLogger("uvicorn").handlers == logging.getLogger().handlers

    def test_driver_loggers_stay_quiet(self):
        configure_logging(log_level="DEBUG", log_format="text")

        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
        assert logging.getLogger("aiosqlite").level == logging.WARNING

    def test_request_context(self):
        bind_request_context("req-1", merchant_id="merchant-1")
        assert structlog.contextvars.get_contextvars() == {"request_id": "req-1", "merchant_id": "merchant-1"}

        clear_request_context()
        assert structlog.contextvars.get_contextvars() == {}

    def test_empty_context_dropped(self):
        event = drop_empty_context(None, "info", {"event": "Request started", "merchant_id": None, "request_id": "req-1"})

        assert event == {"event": "Request started", "request_id": "req-1"}

    def test_get_logger(self):
        assert get_logger("merchant_analytics.test") is not None
