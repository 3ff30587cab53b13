"""
Core Utilities Package

Modules:
    - time: Epoch-millisecond clock and timestamp conversion helpers
"""

from core.utils.time import current_utc_timestamp, now_ms, to_utc_datetime

__all__ = ["current_utc_timestamp", "now_ms", "to_utc_datetime"]
