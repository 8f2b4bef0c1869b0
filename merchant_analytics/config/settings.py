"""
Merchant Analytics Core
Centralized Configuration Management

This module provides configuration management using Pydantic settings with
environment variable support, validation, and type safety.
"""

from functools import lru_cache
from typing import List, Optional
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="merchant_analytics", alias="database", description="Database name")
    user: str = Field(default="analytics", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(default=None, alias="DATABASE_URL", description="Full database URL (overrides host/port)")

    @property
    def async_url(self) -> str:
        """Async database URL - uses DATABASE_URL if set, otherwise builds an asyncpg URL"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class AnalyticsSettings(BaseSettings):
    """Aggregation core configuration and merchant-settings defaults"""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_")

    # Row-source paging
    page_size: int = Field(default=1000, ge=1, description="Rows per raw-tier page")
    max_rows: int = Field(default=50000, ge=1, description="Hard cap on rows fetched per query")
    query_timeout_seconds: float = Field(default=10.0, gt=0, description="Per-attempt query timeout")
    query_retries: int = Field(default=2, ge=0, description="Extra attempts after the first failure")

    # Tenancy
    allow_all_tenants: bool = Field(
        default=False,
        description="Admin mode: permit queries without a merchant id",
    )

    # Settings cache
    settings_cache_ttl_seconds: int = Field(default=300, ge=0, description="Merchant settings cache TTL")

    # Ranking
    top_n: int = Field(default=10, ge=1, description="Default top-N limit")
    product_trend_limit: int = Field(default=5, ge=1, description="Products plotted in the daily product trend")

    # Merchant-settings defaults
    financial_year_start: str = Field(default="01-01", description="Fiscal year start (MM-DD)")
    financial_year_end: str = Field(default="12-31", description="Fiscal year end (MM-DD)")
    default_timeframe: str = Field(default="financial_current", description="Default timeframe")
    churn_period_days: int = Field(default=180, gt=0, description="Days without orders before churn")
    currency: str = Field(default="USD", description="Default currency code")
    timezone: str = Field(default="UTC", description="Default merchant timezone")


class SecuritySettings(BaseSettings):
    """CORS Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        alias="CORS_ORIGINS",
        description="Allowed CORS origins"
    )


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="merchant-analytics", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
