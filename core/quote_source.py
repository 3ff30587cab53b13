"""
Quote Source: Abstract Contract for Pull-based Price Sources

The resolver never talks to a concrete REST client. It depends on this
interface, which any venue client (or a test double) can implement.

Design Philosophy:
    "Program to an interface, not an implementation"

Example:
    class BinanceAPIClient(QuoteSource):
        name = "binance"

        async def get_current_price(self, symbol):
            ...

    resolver = QuoteResolver(store, source=BinanceAPIClient())
"""

from abc import ABC, abstractmethod

from core.schemas import Quote, TickerStats


class QuoteSource(ABC):
    """
    Abstract Base Class for pull-based quote sources.

    Class Attributes:
        name: Unique source identifier (lowercase, e.g., "binance")

    Abstract Methods (MUST be implemented):
        - get_current_price: Fetch the latest price as a Quote
        - get_24h_stats: Fetch rolling 24h statistics

    Optional Methods (can be overridden):
        - open / close: Acquire and release network resources
        - health_check: Verify the source is reachable
    """

    name: str
    """Unique source identifier (lowercase). Example: "binance" """

    @abstractmethod
    async def get_current_price(self, symbol: str) -> Quote:
        """
        Fetch the current price for one symbol.

        Args:
            symbol: Trading pair symbol in uppercase (e.g., "BTCUSDT")

        Returns:
            Quote: Observation stamped with the time the answer arrived

        Raises:
            InvalidSymbolError: If the venue does not know the symbol
            UpstreamError: For network errors, timeouts or bad HTTP statuses
        """
        ...

    @abstractmethod
    async def get_24h_stats(self, symbol: str) -> TickerStats:
        """
        Fetch rolling 24h statistics for one symbol.

        Raises:
            InvalidSymbolError: If the venue does not know the symbol
            UpstreamError: For network errors, timeouts or bad HTTP statuses
        """
        ...

    async def health_check(self) -> bool:
        """
        Check whether the source is reachable.

        Returns:
            bool: True if healthy. The default implementation assumes so.
        """
        return True

    async def open(self) -> None:
        """Acquire long-lived resources (HTTP session, ...). No-op by default."""

    async def close(self) -> None:
        """Release whatever open() acquired. No-op by default."""
