from __future__ import annotations

import os
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseAppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "Insights"
    ENV: str = "dev"
    DATABASE_URL: str | None = None
    REDIS_URL: str | None = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int = 10

    # Business calendar: every week/month/year boundary is computed in this zone
    BUSINESS_TIMEZONE: str = "Europe/Paris"

    # Aggregation tuning
    CONVERSION_WINDOW_DAYS: int = 90
    ACTIVITY_FEED_LIMIT: int = 10
    ACTIVITY_SOURCE_LIMIT: int = 20
    TOP_PROJECTS_LIMIT: int = 5
    MARGIN_TARGET: float = 0.35
    VAT_RATE: float = 0.2

    # Query cache
    CACHE_ENABLED: bool = True
    CACHE_TTL_SECONDS: int = 300
    CACHE_STALE_SECONDS: int = 60

    SPARKLINE_DAYS: int = 30
    SPARKLINE_MAX_DAYS: int = 366

    RATE_LIMIT_DASHBOARD: str = "120/minute"

    CORS_ALLOW_ORIGINS: list[str] = ["*"]
    CORS_ALLOW_METHODS: list[str] = ["GET", "POST"]
    CORS_ALLOW_HEADERS: list[str] = ["*"]
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "plain"
    SENTRY_DSN: str | None = None
    SENTRY_TRACES_SAMPLE_RATE: float = 0.1

    @field_validator(
        "CONVERSION_WINDOW_DAYS",
        "ACTIVITY_FEED_LIMIT",
        "ACTIVITY_SOURCE_LIMIT",
        "TOP_PROJECTS_LIMIT",
        "SPARKLINE_DAYS",
        "SPARKLINE_MAX_DAYS",
    )
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @model_validator(mode="after")
    def _validate_required_fields(self) -> BaseAppSettings:
        # Heroku-style URLs are not accepted by SQLAlchemy 2.x
        if self.DATABASE_URL and self.DATABASE_URL.startswith("postgres://"):
            self.DATABASE_URL = self.DATABASE_URL.replace("postgres://", "postgresql://", 1)

        if self.ENV.lower() == "prod" and not self.DATABASE_URL:
            raise ValueError("Missing required production settings: DATABASE_URL")
        if self.CACHE_STALE_SECONDS > self.CACHE_TTL_SECONDS:
            raise ValueError("CACHE_STALE_SECONDS must not exceed CACHE_TTL_SECONDS")
        return self


class DevSettings(BaseAppSettings):
    ENV: str = "dev"
    DATABASE_URL: str = "sqlite:///./storage/dev.db"


class TestSettings(BaseAppSettings):
    ENV: str = "test"
    DATABASE_URL: str = "sqlite:///./storage/test.db"
    REDIS_URL: str | None = None
    CACHE_ENABLED: bool = False


class ProdSettings(BaseAppSettings):
    ENV: str = "prod"
    LOG_FORMAT: str = "json"


_ENV_TO_SETTINGS: dict[str, type[BaseAppSettings]] = {
    "dev": DevSettings,
    "development": DevSettings,
    "test": TestSettings,
    "testing": TestSettings,
    "prod": ProdSettings,
    "production": ProdSettings,
}


@lru_cache
def get_settings() -> BaseAppSettings:
    env_name = os.getenv("APP_ENV") or os.getenv("ENV") or "dev"
    env = env_name.lower()
    settings_cls = _ENV_TO_SETTINGS.get(env, DevSettings)
    return settings_cls()


settings = get_settings()
