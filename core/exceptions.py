"""
Error Taxonomy

All errors raised by the price synchronization engine derive from
PriceSyncError so callers can catch the whole family in one place.

    PriceSyncError
    ├── InvalidSymbolError   - rejected input (bad format, not allow-listed,
    │                          unknown to the upstream venue)
    ├── UpstreamError        - transient pull-source failure (network, HTTP)
    ├── FeedConnectionError  - the streaming transport could not be opened
    └── QuoteResolutionError - resolve() could not produce a quote; wraps
                               the underlying cause via exception chaining
"""

from typing import Optional


class PriceSyncError(Exception):
    """Base class for every error raised by the engine."""


class InvalidSymbolError(PriceSyncError, ValueError):
    """A symbol (or a whole batch of symbols) failed validation."""

    def __init__(self, message: str, symbols: Optional[list] = None):
        super().__init__(message)
        self.symbols = list(symbols or [])


class UpstreamError(PriceSyncError):
    """The pull source failed to answer (timeout, network error, bad HTTP status)."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class FeedConnectionError(PriceSyncError):
    """The streaming transport could not be opened."""


class QuoteResolutionError(PriceSyncError):
    """
    resolve() failed on its synchronous pull path.

    The message names the symbol and a short reason only; the transport-level
    error stays available as ``__cause__`` for logging.
    """

    def __init__(self, symbol: str, reason: str = "upstream unavailable"):
        super().__init__(f"Failed to resolve quote for {symbol}: {reason}")
        self.symbol = symbol
        self.reason = reason
