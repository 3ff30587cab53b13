"""
Configuration Management Module

This module handles loading, validating, and providing access to the price
synchronization engine's configuration from environment variables (.env file).

Uses Pydantic Settings for automatic validation and type conversion.

Key Features:
- Loads configuration from .env file
- Provides type-safe access to configuration values
- Converts comma-separated strings to lists (supported symbols, default subscriptions)
- Cleanup interval falls back to the cache TTL when unset

Usage:
    from core.config import settings

    print(settings.cache_ttl_ms)
    print(settings.symbols_list)  # Returns a list of strings
"""

import re
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


SYMBOL_PATTERN = re.compile(r"^[A-Z0-9]+$")

DEFAULT_SUPPORTED_SYMBOLS = (
    "BTCUSDT,ETHUSDT,BNBUSDT,ADAUSDT,XRPUSDT,"
    "SOLUSDT,DOTUSDT,DOGEUSDT,AVAXUSDT,MATICUSDT,"
    "LINKUSDT,LTCUSDT,UNIUSDT,ATOMUSDT,ETCUSDT"
)


class Settings(BaseSettings):
    """
    Application Settings

    Values are automatically loaded from environment variables or .env file.
    All durations ending in ``_ms`` are milliseconds; ``_seconds`` are seconds.

    Attributes:
        binance_rest_url: Base URL of the pull source (Binance Spot REST)
        binance_ws_url: Combined-stream WebSocket URL for the feed
        binance_api_key: API key (optional, not needed for public endpoints)
        supported_symbols: Allow-list of symbols the feed may subscribe to
        default_subscriptions: Symbols streamed as soon as the engine starts
        cache_ttl_ms: Validity duration of a cached quote
        stale_threshold_ms: Age at which a cached quote triggers a background refresh
        cleanup_interval_ms: Janitor interval (defaults to cache_ttl_ms)
        feed_base_reconnect_delay_ms: Backoff base delay
        feed_max_reconnect_delay_ms: Backoff cap
        feed_max_reconnect_attempts: Scheduled attempts before giving up
        feed_heartbeat_seconds: WebSocket ping interval
        feed_connect_timeout_seconds: Timeout for opening the transport
        pull_timeout_seconds: Bound on a single resolve() pull fetch
        request_timeout_seconds: Per-attempt HTTP timeout (lower than pull_timeout_seconds)
        request_max_attempts: HTTP retry attempts on rate limits / network errors
        event_queue_size: Capacity of each quote-updated subscriber queue
        status_log_interval_seconds: Cadence of the entry point's status line
        log_level: Logging level
        environment: Current environment (development, production)
    """

    # ============================================
    # Binance Upstream Configuration
    # ============================================

    binance_rest_url: str = Field(
        default="https://api.binance.com",
        description="Binance Spot REST base URL (pull source)"
    )

    binance_ws_url: str = Field(
        default="wss://stream.binance.com:9443/stream",
        description="Binance combined-stream WebSocket URL (push feed)"
    )

    binance_api_key: str = Field(
        default="",
        description="Binance API key (optional for public endpoints)"
    )

    # ============================================
    # Symbols
    # ============================================

    supported_symbols: str = Field(
        default=DEFAULT_SUPPORTED_SYMBOLS,
        description="Comma-separated allow-list of symbols the feed may stream"
    )

    default_subscriptions: str = Field(
        default="BTCUSDT,ETHUSDT",
        description="Comma-separated symbols subscribed at startup"
    )

    # ============================================
    # Cache Configuration
    # ============================================

    cache_ttl_ms: int = Field(
        default=30_000,
        description="Maximum age of a cached quote served as fresh"
    )

    stale_threshold_ms: int = Field(
        default=25_000,
        description="Age past which a cache hit triggers a background refresh"
    )

    cleanup_interval_ms: Optional[int] = Field(
        default=None,
        description="Janitor interval; defaults to cache_ttl_ms"
    )

    # ============================================
    # Feed Reconnection
    # ============================================

    feed_base_reconnect_delay_ms: int = Field(
        default=1_000,
        description="Base delay for exponential reconnect backoff"
    )

    feed_max_reconnect_delay_ms: int = Field(
        default=30_000,
        description="Upper bound for reconnect backoff"
    )

    feed_max_reconnect_attempts: int = Field(
        default=10,
        description="Scheduled reconnect attempts before automatic recovery halts"
    )

    feed_heartbeat_seconds: float = Field(
        default=30.0,
        description="WebSocket ping interval"
    )

    feed_connect_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for opening the WebSocket transport"
    )

    # ============================================
    # Pull Source
    # ============================================

    pull_timeout_seconds: float = Field(
        default=10.0,
        description="Bound on a single pull fetch issued by resolve()"
    )

    request_timeout_seconds: float = Field(
        default=3.0,
        description="Timeout of one HTTP attempt; kept below pull_timeout_seconds so retries fit in a pull"
    )

    request_max_attempts: int = Field(
        default=3,
        description="HTTP attempts per request on rate limits or network errors"
    )

    # ============================================
    # Application Configuration
    # ============================================

    event_queue_size: int = Field(
        default=1000,
        description="Capacity of each quote-updated subscriber queue"
    )

    status_log_interval_seconds: float = Field(
        default=60.0,
        description="How often start.py logs an engine status line"
    )

    environment: str = Field(
        default="development",
        description="Application environment (development, production)"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False
    )

    # ============================================
    # Derived Values
    # ============================================

    @property
    def symbols_list(self) -> List[str]:
        """
        Allow-list as a list.

        Example:
            >>> settings.symbols_list[:3]
            ['BTCUSDT', 'ETHUSDT', 'BNBUSDT']
        """
        return _split_symbols(self.supported_symbols)

    @property
    def default_subscriptions_list(self) -> List[str]:
        """Startup subscriptions as a list."""
        return _split_symbols(self.default_subscriptions)

    @property
    def effective_cleanup_interval_ms(self) -> int:
        """Janitor interval, falling back to the TTL."""
        if self.cleanup_interval_ms is None:
            return self.cache_ttl_ms
        return self.cleanup_interval_ms


def _split_symbols(raw: str) -> List[str]:
    return [s.strip().upper() for s in raw.split(",") if s.strip()]


# ============================================
# Global Settings Instance
# ============================================

settings = Settings()


# ============================================
# Configuration Validation
# ============================================

def validate_configuration(config: Optional[Settings] = None) -> None:
    """
    Validate settings on engine startup.

    Args:
        config: Settings to check (defaults to the global instance)

    Raises:
        ValueError: If any setting is missing or inconsistent
    """
    # core.logging imports this module, so import lazily
    from core.logging import logger

    config = config or settings

    if not config.symbols_list:
        raise ValueError("SUPPORTED_SYMBOLS must contain at least one symbol")

    for symbol in config.symbols_list:
        if not SYMBOL_PATTERN.match(symbol) or len(symbol) < 3:
            raise ValueError(
                f"Symbol '{symbol}' is not a valid uppercase alphanumeric symbol. "
                f"Please update SUPPORTED_SYMBOLS in .env"
            )

    positive_ms = {
        "CACHE_TTL_MS": config.cache_ttl_ms,
        "STALE_THRESHOLD_MS": config.stale_threshold_ms,
        "CLEANUP_INTERVAL_MS": config.effective_cleanup_interval_ms,
        "FEED_BASE_RECONNECT_DELAY_MS": config.feed_base_reconnect_delay_ms,
        "FEED_MAX_RECONNECT_DELAY_MS": config.feed_max_reconnect_delay_ms,
    }
    for name, value in positive_ms.items():
        if value <= 0:
            raise ValueError(f"{name} must be positive, got {value}")

    if config.stale_threshold_ms >= config.cache_ttl_ms:
        raise ValueError(
            f"STALE_THRESHOLD_MS ({config.stale_threshold_ms}) must be lower than "
            f"CACHE_TTL_MS ({config.cache_ttl_ms})"
        )

    if config.feed_base_reconnect_delay_ms > config.feed_max_reconnect_delay_ms:
        raise ValueError(
            "FEED_BASE_RECONNECT_DELAY_MS must not exceed FEED_MAX_RECONNECT_DELAY_MS"
        )

    if config.feed_max_reconnect_attempts < 1:
        raise ValueError("FEED_MAX_RECONNECT_ATTEMPTS must be at least 1")

    if config.pull_timeout_seconds <= 0:
        raise ValueError("PULL_TIMEOUT_SECONDS must be positive")

    if not 0 < config.request_timeout_seconds < config.pull_timeout_seconds:
        raise ValueError(
            f"REQUEST_TIMEOUT_SECONDS ({config.request_timeout_seconds}) must be positive and lower than "
            f"PULL_TIMEOUT_SECONDS ({config.pull_timeout_seconds})"
        )

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if config.log_level.upper() not in valid_log_levels:
        raise ValueError(
            f"Invalid LOG_LEVEL: '{config.log_level}'. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )

    logger.info("Configuration validated successfully")
    logger.info(f"Supported symbols: {', '.join(config.symbols_list)}")
    logger.info(f"Default subscriptions: {', '.join(config.default_subscriptions_list) or '-'}")
    logger.info(
        f"Cache: ttl={config.cache_ttl_ms}ms stale={config.stale_threshold_ms}ms "
        f"cleanup={config.effective_cleanup_interval_ms}ms"
    )
    logger.info(f"Feed: {config.binance_ws_url} (max attempts {config.feed_max_reconnect_attempts})")
    logger.info(f"Pull source: {config.binance_rest_url}")
