"""
Unified Logging Configuration

Every module in the engine logs through a child of the ``pricesync`` logger
obtained with get_logger(__name__); nothing prints.

Usage:
    from core.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Connected to feed")

Level conventions:
    DEBUG    - per-frame and per-eviction traces, HTTP request/response lines
    INFO     - connect/disconnect, subscription changes, engine lifecycle
    WARNING  - reconnect scheduled, malformed frames, dropped events
    ERROR    - connect failures, exhausted reconnects, failed refreshes

The level comes from LOG_LEVEL (see core.config), defaulting to INFO.
"""

import logging
import sys
from typing import Optional

ROOT_LOGGER_NAME = "pricesync"


def setup_logging(
    log_level: str = "INFO",
    log_format: Optional[str] = None,
    include_timestamp: bool = True,
    include_module: bool = True
) -> logging.Logger:
    """
    Configure and return the application logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Custom log format string (uses default if None)
        include_timestamp: Include timestamp in log messages
        include_module: Include logger name in log messages

    Returns:
        logging.Logger: Configured ``pricesync`` logger

    Example:
        >>> logger = setup_logging(log_level="DEBUG")
        >>> logger.info("Engine started")
        2024-01-01 12:00:00 [INFO] pricesync Engine started
    """
    if log_format is None:
        format_parts = []
        if include_timestamp:
            format_parts.append("%(asctime)s")
        format_parts.append("[%(levelname)s]")
        if include_module:
            format_parts.append("%(name)s")
        format_parts.append("%(message)s")
        log_format = " ".join(format_parts)

    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format=log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True
    )

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    return root


try:
    from core.config import settings
    _log_level = settings.log_level
except ImportError:
    _log_level = "INFO"

logger = setup_logging(log_level=_log_level)


def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger of ``pricesync``.

    Example:
        >>> get_logger("storage.quote_store").name
        'pricesync.storage.quote_store'
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def set_log_level(level: str) -> None:
    """
    Change the log level at runtime.

    Args:
        level: New log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Example:
        >>> set_log_level("DEBUG")
        >>> get_logger("exchanges.binance.ws_client").debug("Sent SUBSCRIBE id=1")
    """
    resolved = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(resolved)
    logging.getLogger().setLevel(resolved)


# ============================================
# Log Helper Functions
# ============================================

def log_api_request(endpoint: str, params: Optional[dict] = None) -> None:
    """
    Trace an outgoing pull-source request.

    Example:
        >>> log_api_request("/api/v3/ticker/price", {"symbol": "BTCUSDT"})
        [DEBUG] API Request: /api/v3/ticker/price | Params: {'symbol': 'BTCUSDT'}
    """
    if params:
        logger.debug(f"API Request: {endpoint} | Params: {params}")
    else:
        logger.debug(f"API Request: {endpoint}")


def log_api_response(endpoint: str, status: int, response_time: Optional[float] = None) -> None:
    """Trace a pull-source response with status and timing."""
    time_str = f" | Time: {response_time:.3f}s" if response_time is not None else ""
    logger.debug(f"API Response: {endpoint} | Status: {status}{time_str}")


def log_feed_event(event: str, symbols: Optional[list] = None, details: Optional[str] = None) -> None:
    """
    Log a feed lifecycle event with consistent formatting.

    ``error`` and ``exhausted`` events go out at ERROR, everything else at INFO.

    Example:
        >>> log_feed_event("subscribed", ["BTCUSDT", "ETHUSDT"])
        [INFO] Feed: subscribed | Symbols: BTCUSDT, ETHUSDT
    """
    symbols_str = f" | Symbols: {', '.join(symbols)}" if symbols else ""
    details_str = f" | {details}" if details else ""

    level = logging.ERROR if event in ("error", "exhausted") else logging.INFO
    logger.log(level, f"Feed: {event}{symbols_str}{details_str}")
