"""
Price Sync Service

Wires the engine together and is the only object callers need:

    BinanceFeedClient --QuoteUpdated--> EventBus --> QuoteIngestor --> QuoteStore
                                                                          ^
    caller --> PriceSyncService.resolve() --> QuoteResolver --pull--> BinanceAPIClient

Usage:
    service = get_price_sync_service()
    await service.start()
    result = await service.resolve("BTCUSDT")
    await service.stop()
"""

from typing import Any, Dict, Iterable, List, Optional, Set

from core.exceptions import FeedConnectionError, InvalidSymbolError
from core.logging import get_logger
from core.quote_source import QuoteSource
from core.schemas import ResolvedQuote
from exchanges.binance.api_client import BinanceAPIClient
from exchanges.binance.ws_client import BinanceFeedClient
from services.event_bus import EventBus
from services.quote_ingestor import QuoteIngestor
from services.quote_resolver import QuoteResolver
from storage.quote_store import QuoteStore


class PriceSyncService:
    """
    Facade over store, feed, resolver and ingestor.

    Every collaborator can be injected; omitted ones are built from settings.

    Example:
        >>> service = PriceSyncService()
        >>> await service.start()
        >>> await service.subscribe(["SOLUSDT"])
        >>> service.status()["connected"]
        True
    """

    def __init__(
        self,
        store: Optional[QuoteStore] = None,
        bus: Optional[EventBus] = None,
        source: Optional[QuoteSource] = None,
        feed: Optional[BinanceFeedClient] = None,
        resolver: Optional[QuoteResolver] = None,
        default_subscriptions: Optional[List[str]] = None
    ) -> None:
        from core.config import settings

        if store is None:
            store = QuoteStore(
                ttl_ms=settings.cache_ttl_ms,
                cleanup_interval_ms=settings.effective_cleanup_interval_ms
            )
        if bus is None:
            bus = feed.bus if feed is not None else EventBus()

        self.store = store
        self.bus = bus
        self.source = source if source is not None else BinanceAPIClient()
        self.feed = feed if feed is not None else BinanceFeedClient(self.bus)
        self.resolver = resolver if resolver is not None else QuoteResolver(self.store, self.source)
        self.ingestor = QuoteIngestor(self.bus, self.resolver)
        self.default_subscriptions = (
            settings.default_subscriptions_list if default_subscriptions is None else default_subscriptions
        )

        self._started = False
        self._logger = get_logger(__name__)

    # ============================================
    # Lifecycle
    # ============================================

    @property
    def is_running(self) -> bool:
        return self._started

    async def start(self) -> None:
        """
        Start the janitor, the ingestor and the feed.

        A feed that cannot connect at startup is not fatal: the feed keeps
        retrying in the background and resolve() serves from pulls meanwhile.
        """
        if self._started:
            return
        self._logger.info("Starting PriceSyncService...")

        await self.store.start()
        await self.source.open()
        await self.ingestor.start()

        if self.default_subscriptions:
            try:
                await self.feed.subscribe(self.default_subscriptions)
            except InvalidSymbolError as e:
                self._logger.warning(f"No default subscriptions applied: {e}")

        try:
            await self.feed.connect()
        except FeedConnectionError as e:
            self._logger.warning(f"Feed unavailable at startup, retrying in background: {e}")

        self._started = True
        self._logger.info("✓ PriceSyncService started")

    async def stop(self) -> None:
        """Stop everything start() launched. Safe to call multiple times."""
        if not self._started:
            return
        self._logger.info("Stopping PriceSyncService...")

        await self.feed.close()
        await self.ingestor.stop()
        await self.resolver.aclose()
        await self.source.close()
        await self.store.stop()

        self._started = False
        self._logger.info("✓ PriceSyncService stopped")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()

    # ============================================
    # Caller Contracts
    # ============================================

    async def resolve(
        self,
        symbol: str,
        force_refresh: bool = False,
        include_stats: bool = False
    ) -> ResolvedQuote:
        return await self.resolver.resolve(symbol, force_refresh=force_refresh, include_stats=include_stats)

    async def subscribe(self, symbols: Iterable[str]) -> List[str]:
        return await self.feed.subscribe(symbols)

    async def unsubscribe(self, symbols: Iterable[str]) -> List[str]:
        return await self.feed.unsubscribe(symbols)

    async def reconnect(self) -> None:
        await self.feed.reconnect()

    def is_connected(self) -> bool:
        return self.feed.is_connected()

    def get_subscriptions(self) -> Set[str]:
        return self.feed.get_subscriptions()

    def status(self) -> Dict[str, Any]:
        """
        Snapshot for health endpoints.

        Returns:
            {connected, state, reconnect_attempts, subscriptions,
             cached_symbols, cache_size}
        """
        cached = sorted(self.store.keys())
        return {
            "connected": self.feed.is_connected(),
            "state": self.feed.state.value,
            "reconnect_attempts": self.feed.reconnect_attempts,
            "subscriptions": sorted(self.feed.get_subscriptions()),
            "cached_symbols": cached,
            "cache_size": len(cached),
        }


# ============================================
# Global Service Instance
# ============================================

_service: Optional[PriceSyncService] = None


def get_price_sync_service() -> PriceSyncService:
    """
    Get the global PriceSyncService instance (singleton pattern).

    Returns:
        PriceSyncService: The process-wide engine
    """
    global _service

    if _service is None:
        _service = PriceSyncService()
        get_logger(__name__).debug("Created global PriceSyncService instance")

    return _service
