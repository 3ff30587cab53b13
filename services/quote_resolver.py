"""
Quote Resolver

Cache-aside read path of the engine. Callers ask for a symbol; the resolver
answers from the QuoteStore when the cached quote is still valid and falls
back to a single bounded pull fetch otherwise.

Resolution order:
    1. Normalize the symbol (strip + uppercase)
    2. Unless force_refresh: a cached quote younger than ttl_ms is returned
       with source="cache". If it is older than stale_threshold_ms a
       background refresh is started; the caller does not wait for it and
       never sees its failure.
    3. Otherwise pull from the QuoteSource (bounded by pull_timeout), store
       the result and return it with source="pull". Failures raise
       QuoteResolutionError chained to the upstream cause.

The push path (feed -> QuoteIngestor) writes through record().
"""

import asyncio
from typing import Callable, Optional, Set

from core.exceptions import InvalidSymbolError, PriceSyncError, QuoteResolutionError
from core.logging import get_logger
from core.quote_source import QuoteSource
from core.schemas import Quote, ResolvedQuote
from core.utils.time import now_ms
from storage.quote_store import QuoteStore


class QuoteResolver:
    """
    Serves the freshest available quote with bounded latency.

    Attributes:
        store: Shared QuoteStore
        source: Pull source used on misses, forced refreshes and background refreshes
        ttl_ms: Validity duration of a cached quote
        stale_threshold_ms: Age that triggers a background refresh (< ttl_ms)
        pull_timeout: Seconds a single pull fetch may take

    Example:
        >>> resolver = QuoteResolver(store, BinanceAPIClient())
        >>> result = await resolver.resolve("btcusdt")
        >>> result.source
        'pull'
    """

    def __init__(
        self,
        store: QuoteStore,
        source: QuoteSource,
        ttl_ms: Optional[int] = None,
        stale_threshold_ms: Optional[int] = None,
        pull_timeout: Optional[float] = None,
        clock: Callable[[], int] = now_ms
    ) -> None:
        from core.config import settings

        self.store = store
        self.source = source
        self.ttl_ms = settings.cache_ttl_ms if ttl_ms is None else ttl_ms
        self.stale_threshold_ms = (
            settings.stale_threshold_ms if stale_threshold_ms is None else stale_threshold_ms
        )
        self.pull_timeout = settings.pull_timeout_seconds if pull_timeout is None else pull_timeout

        if self.ttl_ms <= 0 or self.stale_threshold_ms <= 0:
            raise ValueError("ttl_ms and stale_threshold_ms must be positive")
        if self.stale_threshold_ms >= self.ttl_ms:
            raise ValueError(
                f"stale_threshold_ms ({self.stale_threshold_ms}) must be lower than ttl_ms ({self.ttl_ms})"
            )

        self._clock = clock
        self._refreshing: Set[str] = set()
        self._refresh_tasks: Set[asyncio.Task] = set()
        self._logger = get_logger(__name__)

    # ============================================
    # Read Path
    # ============================================

    async def resolve(
        self,
        symbol: str,
        force_refresh: bool = False,
        include_stats: bool = False
    ) -> ResolvedQuote:
        """
        Resolve the current quote for a symbol.

        Args:
            symbol: Symbol in any case (e.g., "btcusdt")
            force_refresh: Skip the cache and always pull
            include_stats: Attach 24h TickerStats (best effort)

        Returns:
            ResolvedQuote: source="cache" (with age) or source="pull"

        Raises:
            InvalidSymbolError: If the symbol is blank
            QuoteResolutionError: If the pull path was taken and failed
        """
        symbol = symbol.strip().upper()
        if not symbol:
            raise InvalidSymbolError("symbol must not be empty")

        result = None if force_refresh else self._from_cache(symbol)
        if result is None:
            result = await self._pull(symbol)

        if include_stats:
            result = await self._with_stats(result)
        return result

    def _from_cache(self, symbol: str) -> Optional[ResolvedQuote]:
        quote = self.store.get(symbol)
        if quote is None:
            self._logger.debug(f"Cache miss: {symbol}")
            return None

        now = self._clock()
        if quote.is_expired(self.ttl_ms, now=now):
            self._logger.debug(f"Cache expired: {symbol} (age {quote.age(now)}ms)")
            return None

        if quote.is_stale(self.stale_threshold_ms, now=now):
            self._schedule_refresh(symbol)

        return ResolvedQuote.from_quote(quote, "cache", age=quote.age(now))

    async def _fetch(self, symbol: str) -> Quote:
        return await asyncio.wait_for(
            self.source.get_current_price(symbol), timeout=self.pull_timeout
        )

    async def _pull(self, symbol: str) -> ResolvedQuote:
        try:
            quote = await self._fetch(symbol)
        except asyncio.TimeoutError as e:
            self._logger.error(f"Pull for {symbol} timed out after {self.pull_timeout}s")
            raise QuoteResolutionError(symbol, "timed out") from e
        except InvalidSymbolError as e:
            self._logger.error(f"Pull for {symbol} rejected: {e}")
            raise QuoteResolutionError(symbol, "invalid symbol") from e
        except PriceSyncError as e:
            self._logger.error(f"Pull for {symbol} failed: {e}")
            raise QuoteResolutionError(symbol) from e
        except Exception as e:
            self._logger.error(f"Pull for {symbol} failed unexpectedly: {e!r}")
            raise QuoteResolutionError(symbol) from e

        self.store.put(quote)
        return ResolvedQuote.from_quote(quote, "pull")

    async def _with_stats(self, result: ResolvedQuote) -> ResolvedQuote:
        try:
            stats = await asyncio.wait_for(
                self.source.get_24h_stats(result.symbol), timeout=self.pull_timeout
            )
        except Exception as e:
            self._logger.warning(f"24h stats unavailable for {result.symbol}: {e!r}")
            return result
        return result.model_copy(update={"stats": stats})

    # ============================================
    # Background Refresh
    # ============================================

    @property
    def pending_refreshes(self) -> int:
        return len(self._refresh_tasks)

    def _schedule_refresh(self, symbol: str) -> None:
        if symbol in self._refreshing:
            self._logger.debug(f"Refresh already in flight: {symbol}")
            return

        self._refreshing.add(symbol)
        task = asyncio.create_task(self._refresh(symbol), name=f"quote-refresh-{symbol}")
        self._refresh_tasks.add(task)
        task.add_done_callback(lambda t: self._on_refresh_done(symbol, t))
        self._logger.debug(f"Stale hit, background refresh started: {symbol}")

    async def _refresh(self, symbol: str) -> None:
        try:
            quote = await self._fetch(symbol)
            self.store.put(quote)
            self._logger.info(f"Background refresh stored {quote.symbol} = {quote.price}")
        finally:
            self._refreshing.discard(symbol)

    def _on_refresh_done(self, symbol: str, task: asyncio.Task) -> None:
        self._refresh_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error(f"Background refresh failed for {symbol}: {exc!r}")

    async def wait_for_refreshes(self) -> None:
        """Wait until every background refresh in flight has finished."""
        while self._refresh_tasks:
            await asyncio.gather(*list(self._refresh_tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel pending background refreshes."""
        tasks = list(self._refresh_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._refresh_tasks.clear()
        self._refreshing.clear()

    # ============================================
    # Write Path
    # ============================================

    def record(self, quote: Quote) -> None:
        """Store a pushed quote. Last arrival wins."""
        self.store.put(quote)
        self._logger.debug(f"Recorded {quote.symbol} = {quote.price}")
