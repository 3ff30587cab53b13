"""
Binance REST API Client

The pull source behind QuoteResolver. It fetches a symbol's current price
and its 24h statistics from the Binance Spot REST API and normalizes both into
our schemas.

It handles:
- HTTP requests with retry logic
- Rate limit handling (429, 418, 503 errors)
- Mapping Binance's "invalid symbol" answer (HTTP 400) to InvalidSymbolError
- Error handling and logging

API Documentation:
    https://binance-docs.github.io/apidocs/spot/en/#market-data-endpoints

Usage:
    async with BinanceAPIClient() as client:
        quote = await client.get_current_price("BTCUSDT")
        stats = await client.get_24h_stats("BTCUSDT")
"""

import asyncio
import time
from typing import Any, Dict, Optional

import aiohttp

from core.exceptions import InvalidSymbolError, PriceSyncError, UpstreamError
from core.logging import get_logger, log_api_request, log_api_response
from core.quote_source import QuoteSource
from core.schemas import Quote, TickerStats
from core.utils.time import to_utc_datetime

RETRYABLE_STATUSES = (429, 418, 503)


class BinanceAPIClient(QuoteSource):
    """
    Async HTTP client for the Binance Spot REST API.

    Attributes:
        base_url: REST base URL
        api_key: Optional API key sent as X-MBX-APIKEY
        max_attempts: Attempts per request before giving up
        request_timeout: Per-attempt HTTP timeout in seconds
        session: aiohttp ClientSession for HTTP requests

    Example:
        >>> async with BinanceAPIClient() as client:
        ...     quote = await client.get_current_price("BTCUSDT")
        ...     print(quote.price)

    Notes:
        - Use as async context manager, or call open()/close() when the
          client lives as long as the engine
        - Each attempt carries its own timeout; callers that need a hard bound
          over all attempts wrap the call in asyncio.wait_for
    """

    name = "binance"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        max_attempts: Optional[int] = None,
        request_timeout: Optional[float] = None
    ):
        from core.config import settings

        self.base_url = (base_url or settings.binance_rest_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.binance_api_key
        self.max_attempts = max_attempts or settings.request_max_attempts
        self.request_timeout = request_timeout or settings.request_timeout_seconds
        self.session: Optional[aiohttp.ClientSession] = None
        self.logger = get_logger(__name__)

    # ============================================
    # Session Management
    # ============================================

    async def open(self) -> None:
        """Create the HTTP session if it does not exist yet."""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()
            self.logger.debug("BinanceAPIClient session created")

    async def close(self) -> None:
        """Close the HTTP session. Safe to call multiple times."""
        if self.session and not self.session.closed:
            await self.session.close()
            self.logger.debug("BinanceAPIClient session closed")
        self.session = None

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ============================================
    # HTTP Request Handler with Retry Logic
    # ============================================

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Make GET request to Binance API with retry logic.

        Args:
            path: API endpoint path (e.g., "/api/v3/ticker/price")
            params: Optional query parameters

        Returns:
            JSON response from API

        Raises:
            RuntimeError: If the session was never opened
            InvalidSymbolError: On HTTP 400 (Binance's answer for unknown symbols)
            UpstreamError: If the request fails after all attempts

        Rate Limit Handling:
            429/418/503 and network errors are retried with a
            1.5s * (attempt + 1) pause; any other status fails immediately.
        """
        if not self.session:
            raise RuntimeError("Client session not initialized. Use 'async with' or open().")

        url = f"{self.base_url}{path}"
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-MBX-APIKEY"] = self.api_key

        log_api_request(path, params)
        last_status: Optional[int] = None

        for attempt in range(self.max_attempts):
            started = time.monotonic()
            try:
                async with self.session.get(
                    url,
                    params=params,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.request_timeout)
                ) as resp:
                    last_status = resp.status
                    log_api_response(path, resp.status, time.monotonic() - started)

                    if resp.status == 200:
                        try:
                            return await resp.json()
                        except ValueError as e:
                            self.logger.error(f"Malformed JSON body on {path}: {e}")
                            raise UpstreamError(f"Malformed JSON body on {path}", status=200) from e

                    if resp.status == 400:
                        text = await resp.text()
                        symbol = (params or {}).get("symbol")
                        raise InvalidSymbolError(
                            f"Invalid symbol: {symbol}" if symbol else f"Bad request on {path}: {text}",
                            symbols=[symbol] if symbol else None
                        )

                    if resp.status in RETRYABLE_STATUSES:
                        delay = 1.5 * (attempt + 1)
                        self.logger.warning(
                            f"Rate limited (HTTP {resp.status}) on {path}. "
                            f"Retrying in {delay:.1f}s... (attempt {attempt + 1}/{self.max_attempts})"
                        )
                        await asyncio.sleep(delay)
                        continue

                    text = await resp.text()
                    self.logger.error(f"HTTP {resp.status} on {path}: {text}")
                    raise UpstreamError(f"HTTP {resp.status} on {path}", status=resp.status)

            except asyncio.TimeoutError:
                self.logger.error(f"Timeout on {path} (attempt {attempt + 1}/{self.max_attempts})")
                last_status = None
            except aiohttp.ClientError as e:
                self.logger.error(f"Request failed on {path}: {e} (attempt {attempt + 1}/{self.max_attempts})")
                last_status = None

            if attempt + 1 < self.max_attempts:
                await asyncio.sleep(1.0 * (attempt + 1))

        raise UpstreamError(f"Failed to fetch {path} after {self.max_attempts} attempts", status=last_status)

    # ============================================
    # API Methods
    # ============================================

    async def get_current_price(self, symbol: str) -> Quote:
        """
        Fetch the latest price for a symbol.

        Binance Endpoint:
            GET /api/v3/ticker/price

        Response Format:
            {"symbol": "BTCUSDT", "price": "45000.50000000"}

        Example:
            >>> quote = await client.get_current_price("btcusdt")
            >>> quote.symbol
            'BTCUSDT'
        """
        symbol = symbol.strip().upper()
        data = await self._get("/api/v3/ticker/price", {"symbol": symbol})

        try:
            quote = Quote.observe(data["symbol"], data["price"])
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamError(f"Malformed price response for {symbol}") from e

        self.logger.debug(f"Pulled price {quote.symbol} = {quote.price}")
        return quote

    async def get_24h_stats(self, symbol: str) -> TickerStats:
        """
        Fetch rolling 24h statistics for a symbol.

        Binance Endpoint:
            GET /api/v3/ticker/24hr

        Response Format (subset):
            {
              "symbol": "BTCUSDT",
              "priceChange": "1020.10",
              "priceChangePercent": "2.319",
              "lastPrice": "45000.50",
              "highPrice": "45500.00",
              "lowPrice": "43800.00",
              "volume": "18234.551",
              "quoteVolume": "812345678.12",
              "closeTime": 1704110400000
            }
        """
        symbol = symbol.strip().upper()
        data = await self._get("/api/v3/ticker/24hr", {"symbol": symbol})

        try:
            stats = TickerStats(
                symbol=data["symbol"],
                last_price=data["lastPrice"],
                price_change=data["priceChange"],
                price_change_percent=data["priceChangePercent"],
                high_price=data["highPrice"],
                low_price=data["lowPrice"],
                volume=data["volume"],
                quote_volume=data["quoteVolume"],
                timestamp=to_utc_datetime(data["closeTime"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamError(f"Malformed 24h stats response for {symbol}") from e

        self.logger.debug(f"Pulled 24h stats for {stats.symbol}: {stats.price_change_percent}%")
        return stats

    async def health_check(self) -> bool:
        """Ping the REST API. Returns False instead of raising."""
        try:
            await self._get("/api/v3/ping")
            return True
        except PriceSyncError as e:
            self.logger.warning(f"Binance health check failed: {e}")
            return False
