"""
Time Utilities

Quotes are stamped with integer milliseconds since the Unix epoch, which is
also the unit Binance uses on both its REST and WebSocket APIs. Every age and
expiry computation in the engine is done in that unit.

The helpers here produce the current time in that unit and convert epoch
timestamps back to timezone-aware UTC datetimes for display.
"""

import time
from datetime import datetime, timezone
from typing import Union


def current_utc_timestamp(milliseconds: bool = False) -> int:
    """
    Get current UTC timestamp.

    Args:
        milliseconds: If True, return milliseconds; if False, return seconds

    Returns:
        int: Current Unix timestamp

    Examples:
        >>> current_utc_timestamp()
        1704110400

        >>> current_utc_timestamp(milliseconds=True)
        1704110400123
    """
    now = time.time()
    if milliseconds:
        return int(now * 1000)
    return int(now)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds (the engine's default clock)."""
    return current_utc_timestamp(milliseconds=True)


def to_utc_datetime(timestamp: Union[int, float]) -> datetime:
    """
    Convert a timestamp (seconds or milliseconds) to UTC datetime.

    Values above 1e12 are treated as milliseconds, anything else as seconds.

    Args:
        timestamp: Unix timestamp in seconds or milliseconds

    Returns:
        datetime: Timezone-aware datetime object in UTC

    Raises:
        ValueError: If timestamp is negative or out of range

    Examples:
        >>> to_utc_datetime(1704110400000)
        datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)
    """
    if timestamp < 0:
        raise ValueError(f"Timestamp cannot be negative: {timestamp}")

    if timestamp > 1e12:
        timestamp = timestamp / 1000.0

    try:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)
    except (OSError, OverflowError, ValueError) as e:
        raise ValueError(f"Invalid timestamp: {timestamp}. Error: {e}")
