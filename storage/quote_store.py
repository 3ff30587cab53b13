"""
Quote Store

Thread-safe, last-write-wins cache of the latest Quote per symbol with
time-to-live expiry.

Writers: the feed's quote-updated consumer (push) and QuoteResolver (pull).
Readers: QuoteResolver, status snapshots.

Expired entries are removed by a janitor task that runs every
``cleanup_interval_ms`` independent of read/write traffic. Reads never
block on I/O; every operation holds the lock only for the dict access.

Usage:
    store = QuoteStore(ttl_ms=30_000)
    await store.start()          # launches the janitor
    store.put(Quote.observe("BTCUSDT", "45000.50"))
    store.get("btcusdt")         # -> Quote
    await store.stop()
"""

import asyncio
from threading import Lock
from typing import Callable, Dict, List, Optional

from core.logging import get_logger
from core.schemas import Quote
from core.utils.time import now_ms

DEFAULT_TTL_MS = 30_000


class QuoteStore:
    """
    Keyed TTL cache of Quotes.

    Attributes:
        ttl_ms: Validity duration used by the janitor
        cleanup_interval_ms: How often the janitor runs (defaults to ttl_ms)

    Notes:
        - Keys are always the uppercased symbol
        - Writes replace the whole entry, so readers never see a partial Quote
        - No ordering between push and pull writes: the last arrival wins
    """

    def __init__(
        self,
        ttl_ms: Optional[int] = None,
        cleanup_interval_ms: Optional[int] = None,
        clock: Callable[[], int] = now_ms
    ) -> None:
        ttl_ms = DEFAULT_TTL_MS if ttl_ms is None else ttl_ms
        cleanup_interval_ms = ttl_ms if cleanup_interval_ms is None else cleanup_interval_ms
        if ttl_ms <= 0:
            raise ValueError(f"ttl_ms must be positive, got {ttl_ms}")
        if cleanup_interval_ms <= 0:
            raise ValueError(f"cleanup_interval_ms must be positive, got {cleanup_interval_ms}")

        self.ttl_ms = ttl_ms
        self.cleanup_interval_ms = cleanup_interval_ms
        self._clock = clock
        self._quotes: Dict[str, Quote] = {}
        self._lock = Lock()
        self._janitor: Optional[asyncio.Task] = None
        self._logger = get_logger(__name__)

    # ============================================
    # Reads and Writes
    # ============================================

    def put(self, quote: Quote) -> None:
        """Upsert the quote under its uppercased symbol."""
        with self._lock:
            self._quotes[quote.symbol.upper()] = quote

    def get(self, symbol: str) -> Optional[Quote]:
        """Latest quote for the symbol (any case), or None."""
        with self._lock:
            return self._quotes.get(symbol.strip().upper())

    def delete(self, symbol: str) -> bool:
        """Evict one symbol. Returns True if it was present."""
        with self._lock:
            return self._quotes.pop(symbol.strip().upper(), None) is not None

    def delete_expired(self, ttl_ms: Optional[int] = None) -> int:
        """
        Remove every entry older than ``ttl_ms`` (defaults to the store TTL).

        Returns:
            int: Number of evicted entries
        """
        ttl_ms = self.ttl_ms if ttl_ms is None else ttl_ms
        now = self._clock()
        with self._lock:
            expired = [s for s, q in self._quotes.items() if q.is_expired(ttl_ms, now=now)]
            for symbol in expired:
                del self._quotes[symbol]

        for symbol in expired:
            self._logger.debug(f"Evicted expired quote: {symbol}")
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._quotes.clear()
        self._logger.info("Quote store cleared")

    def count(self) -> int:
        with self._lock:
            return len(self._quotes)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._quotes.keys())

    def all(self) -> Dict[str, Quote]:
        """Snapshot of every cached quote. Returns a shallow copy."""
        with self._lock:
            return dict(self._quotes)

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, symbol: str) -> bool:
        return self.get(symbol) is not None

    # ============================================
    # Janitor
    # ============================================

    @property
    def is_running(self) -> bool:
        return self._janitor is not None and not self._janitor.done()

    async def start(self) -> None:
        """Launch the periodic expiry task. No-op if already running."""
        if self.is_running:
            return
        self._janitor = asyncio.create_task(self._janitor_loop(), name="quote-store-janitor")
        self._logger.info(
            f"Quote store janitor started (ttl={self.ttl_ms}ms, interval={self.cleanup_interval_ms}ms)"
        )

    async def stop(self) -> None:
        """Cancel the janitor. Safe to call multiple times."""
        if self._janitor and not self._janitor.done():
            self._janitor.cancel()
            try:
                await self._janitor
            except asyncio.CancelledError:
                pass
        self._janitor = None
        self._logger.info("Quote store janitor stopped")

    async def _janitor_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval_ms / 1000.0)
            try:
                removed = self.delete_expired()
                if removed:
                    self._logger.debug(f"Janitor evicted {removed} quote(s)")
            except Exception:
                self._logger.exception("Quote store cleanup failed")
