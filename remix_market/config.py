"""
Environment-driven settings.

Values come from the process environment (or `.env`) and are checked once at
import. A broken deployment refuses to start instead of failing on the first
purchase.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SUPPORTED_DATABASE_SCHEMES = ("postgresql", "postgres", "sqlite")


class ConfigurationError(Exception):
    """Settings are missing or out of range."""


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    # Storage. DATABASE_URL has no usable default on purpose.
    database_url: str = ""
    database_pool_size: int = 25
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    run_migrations_on_startup: bool = False

    # HTTP surface
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Remix Market API"
    api_version: str = "0.1.0"
    api_description: str = "Prompt marketplace transactions and credit ledger"

    log_level: str = "INFO"
    log_format: str = "json"  # or "console"

    metrics_enabled: bool = True
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "remix-market-api"

    # Share of the price credited to the seller, rounded down.
    seller_payout_percent: int = 80

    # Attempts per purchase/save/remove when the database reports contention.
    transaction_max_attempts: int = 5
    transaction_retry_backoff_seconds: float = 0.05

    notifications_enabled: bool = True
    feed_poll_interval_seconds: float = 2.0
    feed_page_size: int = 50

    def _problems(self) -> list[str]:
        problems = []
        if not self.database_url:
            problems.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(SUPPORTED_DATABASE_SCHEMES):
            problems.append(
                "DATABASE_URL must be a PostgreSQL or SQLite URL, "
                f"got: {self.database_url.split(':', 1)[0]}"
            )
        if not 0 <= self.seller_payout_percent <= 100:
            problems.append(
                f"SELLER_PAYOUT_PERCENT must be within 0..100, got: {self.seller_payout_percent}"
            )
        if self.transaction_max_attempts < 1:
            problems.append(
                f"TRANSACTION_MAX_ATTEMPTS must be at least 1, got: {self.transaction_max_attempts}"
            )
        return problems

    @model_validator(mode="after")
    def refuse_broken_config(self) -> "Settings":
        problems = self._problems()
        if problems:
            banner = "=" * 60
            message = "\n".join(
                ["", banner, "INVALID CONFIGURATION, remix-market will not start", banner]
                + [f"  - {problem}" for problem in problems]
                + [banner, ""]
            )
            print(message, file=sys.stderr)
            raise ConfigurationError(message)
        return self

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


settings = Settings()


def get_settings() -> Settings:
    return settings
