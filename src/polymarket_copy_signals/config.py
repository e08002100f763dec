"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
copy-signal tracker, loading and validating environment variables at
startup. Variable names follow the tracker's deployment environment
(`POLL_INTERVAL`, `WIN_RATE_THRESHOLD`, `CONF_2` ...).
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(part.strip().upper() for part in value.split(",") if part.strip())


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        validation_alias=AliasChoices("DATABASE_URL", "COCKROACHDB_URL"),
        description="PostgreSQL-compatible connection string",
    )
    pool_size: int = Field(
        default=5,
        alias="DB_POOL_SIZE",
        ge=1,
        le=100,
        description="Connection pool size shared by all workers",
    )
    max_overflow: int = Field(
        default=10,
        alias="DB_MAX_OVERFLOW",
        ge=0,
        le=100,
        description="Extra connections allowed above the pool size",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError("DATABASE_URL must be a postgresql://, postgresql+asyncpg:// or sqlite+aiosqlite:// URL")
        return v


class PolymarketSettings(BaseSettings):
    """Polymarket Data API settings."""

    model_config = SettingsConfigDict(env_prefix="POLYMARKET_", extra="ignore")

    data_api_url: str = Field(
        default="https://data-api.polymarket.com",
        alias="POLYMARKET_DATA_API_URL",
        description="Base URL for positions, leaderboard and events",
    )
    trades_api_url: str = Field(
        default="https://data-api.polymarket.com",
        alias="POLYMARKET_TRADES_API_URL",
        description="Base URL for the wallet trades feed",
    )
    request_timeout_seconds: float = Field(
        default=20.0,
        alias="POLYMARKET_REQUEST_TIMEOUT_SECONDS",
        ge=1.0,
        le=120.0,
        description="Per-request timeout",
    )
    max_retries: int = Field(
        default=3,
        alias="POLYMARKET_MAX_RETRIES",
        ge=1,
        le=10,
        description="Attempts per request before giving up",
    )
    retry_delay_seconds: float = Field(
        default=1.0,
        alias="POLYMARKET_RETRY_DELAY_SECONDS",
        ge=0.0,
        le=60.0,
        description="Linear backoff step between attempts",
    )
    requests_per_second: float = Field(
        default=10.0,
        alias="POLYMARKET_REQUESTS_PER_SECOND",
        gt=0.0,
        le=100.0,
        description="Client-side request budget shared by all workers",
    )
    positions_page_size: int = Field(
        default=100,
        alias="POLYMARKET_POSITIONS_PAGE_SIZE",
        ge=1,
        le=500,
        description="Page size when paginating wallet positions",
    )

    @field_validator("data_api_url", "trades_api_url")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("Polymarket API URL must be an HTTP(S) endpoint")
        return v.rstrip("/")


class TelegramSettings(BaseSettings):
    """Telegram notification settings."""

    model_config = SettingsConfigDict(env_prefix="TELEGRAM_", extra="ignore")

    bot_token: SecretStr | None = Field(
        default=None,
        alias="TELEGRAM_BOT_TOKEN",
        description="Telegram bot token",
    )
    chat_id: str | None = Field(
        default=None,
        alias="TELEGRAM_CHAT_ID",
        description="Telegram group chat ID for signals",
    )

    @property
    def enabled(self) -> bool:
        """Check if Telegram notifications are enabled."""
        return self.bot_token is not None and self.chat_id is not None


class TrackerSettings(BaseSettings):
    """Polling, admission control and publishing thresholds."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    poll_interval_ms: int = Field(
        default=30_000,
        alias="POLL_INTERVAL",
        ge=1000,
        description="Milliseconds between tracker ticks",
    )
    losing_streak_threshold: int = Field(
        default=88,
        alias="LOSING_STREAK_THRESHOLD",
        ge=1,
        description="Trailing losses that pause a wallet",
    )
    min_wallets_for_signal: int = Field(
        default=2,
        alias="MIN_WALLETS_FOR_SIGNAL",
        ge=1,
        description="Wallets that must agree before a signal is published",
    )
    win_rate_threshold: float = Field(
        default=70.0,
        alias="WIN_RATE_THRESHOLD",
        ge=0.0,
        le=100.0,
        description="Minimum market-level win rate (percent) to contribute votes",
    )
    conf_2: int = Field(default=5, alias="CONF_2", ge=1, description="Votes for two stars")
    conf_3: int = Field(default=10, alias="CONF_3", ge=1, description="Votes for three stars")
    conf_4: int = Field(default=20, alias="CONF_4", ge=1, description="Votes for four stars")
    conf_5: int = Field(default=50, alias="CONF_5", ge=1, description="Votes for five stars")
    force_send: bool = Field(
        default=False,
        alias="FORCE_SEND",
        description="Resend signals even when already marked as sent",
    )
    reprocess: bool = Field(
        default=False,
        alias="REPROCESS",
        description="Re-apply resolution from positions to stored signals each tick",
    )
    timezone: str = Field(
        default="America/New_York",
        alias="TIMEZONE",
        description="Zone for timestamps and the daily job",
    )
    notes_slug: str = Field(
        default="polymarket-millionaires",
        alias="NOTES_SLUG",
        description="Slug of the notes document mirrored with signals",
    )
    worker_concurrency: int = Field(
        default=8,
        alias="WORKER_CONCURRENCY",
        ge=1,
        le=64,
        description="Wallet reconciliations in flight per tick",
    )
    daily_summary_hour: int = Field(
        default=7,
        alias="DAILY_SUMMARY_HOUR",
        ge=0,
        le=23,
        description="Local hour of the daily summary and leaderboard job",
    )
    heartbeat_interval_seconds: int = Field(
        default=60,
        alias="HEARTBEAT_INTERVAL_SECONDS",
        ge=1,
        description="Seconds between heartbeat log lines",
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown TIMEZONE: {v}") from e
        return v

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000.0

    def confidence_thresholds(self) -> dict[int, int]:
        """Star count -> minimum votes. One star starts at MIN_WALLETS_FOR_SIGNAL."""
        return {
            1: self.min_wallets_for_signal,
            2: self.conf_2,
            3: self.conf_3,
            4: self.conf_4,
            5: self.conf_5,
        }


class LeaderboardSettings(BaseSettings):
    """Leaderboard ingestion settings."""

    model_config = SettingsConfigDict(env_prefix="LEADERBOARD_", extra="ignore")

    categories_csv: str = Field(
        default="OVERALL,POLITICS,SPORTS,CRYPTO",
        alias="LEADERBOARD_CATEGORIES",
        description="Leaderboard categories (comma-separated)",
    )
    time_periods_csv: str = Field(
        default="DAY,WEEK,MONTH,ALL",
        alias="LEADERBOARD_TIME_PERIODS",
        description="Leaderboard time periods (comma-separated)",
    )
    limit: int = Field(
        default=50,
        alias="LEADERBOARD_LIMIT",
        ge=1,
        le=50,
        description="Entries fetched per bucket",
    )
    pnl_min: float = Field(
        default=5000.0,
        alias="LEADERBOARD_PNL_MIN",
        description="Minimum PnL for a leaderboard wallet to be tracked",
    )
    vol_mult: float = Field(
        default=20.0,
        alias="LEADERBOARD_VOL_MULT",
        gt=0.0,
        description="Reject wallets whose volume is at least this multiple of PnL",
    )
    on_startup: bool = Field(
        default=True,
        alias="LEADERBOARD_ON_STARTUP",
        description="Run one ingestion pass when the scheduler starts",
    )

    @property
    def categories(self) -> tuple[str, ...]:
        return _split_csv(self.categories_csv)

    @property
    def time_periods(self) -> tuple[str, ...]:
        return _split_csv(self.time_periods_csv)


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from polymarket_copy_signals.config import get_settings

        settings = get_settings()
        print(settings.database.url)
        print(settings.tracker.win_rate_threshold)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # Nested groups read .env only when handed the root env_file.
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    polymarket: PolymarketSettings = Field(
        default_factory=lambda: PolymarketSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    telegram: TelegramSettings = Field(
        default_factory=lambda: TelegramSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    tracker: TrackerSettings = Field(
        default_factory=lambda: TrackerSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    leaderboard: LeaderboardSettings = Field(
        default_factory=lambda: LeaderboardSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    health_port: int = Field(
        default=3000,
        alias="PORT",
        description="HTTP port for the liveness endpoint",
        ge=1,
        le=65535,
    )
    dry_run: bool = Field(
        default=False,
        alias="DRY_RUN",
        description="Log signals instead of sending them",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "polymarket": {
                "data_api_url": self.polymarket.data_api_url,
                "trades_api_url": self.polymarket.trades_api_url,
                "max_retries": str(self.polymarket.max_retries),
            },
            "tracker": {
                "poll_interval_ms": str(self.tracker.poll_interval_ms),
                "win_rate_threshold": str(self.tracker.win_rate_threshold),
                "losing_streak_threshold": str(self.tracker.losing_streak_threshold),
                "min_wallets_for_signal": str(self.tracker.min_wallets_for_signal),
                "force_send": str(self.tracker.force_send),
                "reprocess": str(self.tracker.reprocess),
                "timezone": self.tracker.timezone,
                "worker_concurrency": str(self.tracker.worker_concurrency),
            },
            "leaderboard": {
                "categories": ",".join(self.leaderboard.categories),
                "time_periods": ",".join(self.leaderboard.time_periods),
            },
            "telegram_bot_token": "(set)" if self.telegram.bot_token else "(not set)",
            "telegram_enabled": str(self.telegram.enabled),
            "log_level": self.log_level,
            "health_port": str(self.health_port),
            "dry_run": str(self.dry_run),
        }

    def validate_requirements(
        self, *, command: Literal["run", "tick", "leaderboard", "summary", "init-db", "unpause", "picks"]
    ) -> None:
        """Validate command-specific requirements.

        Publishing commands refuse to run with a half-configured chat.
        """
        if command in ("run", "tick", "summary"):
            if (self.telegram.bot_token is None) != (self.telegram.chat_id is None):
                raise ValueError("TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID must be set together")
        if not self.leaderboard.categories or not self.leaderboard.time_periods:
            raise ValueError("LEADERBOARD_CATEGORIES and LEADERBOARD_TIME_PERIODS must not be empty")

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Raises:
        ValidationError: If required environment variables are missing
            or have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
