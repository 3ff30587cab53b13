"""
Unit Tests for QuoteStore

These tests verify that the store:
- Upserts by uppercased symbol with last-write-wins
- Expires entries past the TTL, both on demand and from the janitor
- Validates its configuration

Run with:
    pytest tests/unit/test_quote_store.py -v
"""

import asyncio
import logging

import pytest

from core.schemas import Quote
from core.utils.time import now_ms
from storage.quote_store import QuoteStore

NOW = 1_704_110_400_000


class FakeClock:
    """Manually advanced millisecond clock"""

    def __init__(self, now: int = NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return QuoteStore(ttl_ms=30_000, clock=clock)


# ============================================
# Tests for Reads and Writes
# ============================================

class TestPutGet:
    """Tests for put/get"""

    def test_get_is_case_insensitive(self, store):
        store.put(Quote.observe("BTCUSDT", "45000", now=NOW))
        assert store.get("btcusdt").price == 45000
        assert store.get(" BtcUsdt ").symbol == "BTCUSDT"

    def test_get_missing_returns_none(self, store):
        assert store.get("ETHUSDT") is None

    def test_last_write_wins(self, store):
        store.put(Quote.observe("BTCUSDT", "45000", now=NOW))
        store.put(Quote.observe("BTCUSDT", "46000", now=NOW - 5_000))
        assert str(store.get("BTCUSDT").price) == "46000"
        assert store.count() == 1

    def test_repeated_put_is_idempotent(self, store):
        """Verify identical writes leave count unchanged"""
        quote = Quote.observe("BTCUSDT", "45000", now=NOW)
        for _ in range(5):
            store.put(quote)
        assert store.count() == 1
        assert store.get("BTCUSDT") == quote


class TestAdministrative:
    """Tests for delete/clear/count/keys/all"""

    def test_delete(self, store):
        store.put(Quote.observe("BTCUSDT", "1", now=NOW))
        assert store.delete("btcusdt") is True
        assert store.delete("btcusdt") is False
        assert "BTCUSDT" not in store

    def test_clear(self, store):
        store.put(Quote.observe("BTCUSDT", "1", now=NOW))
        store.put(Quote.observe("ETHUSDT", "1", now=NOW))
        store.clear()
        assert len(store) == 0

    def test_keys_and_all(self, store):
        store.put(Quote.observe("BTCUSDT", "1", now=NOW))
        store.put(Quote.observe("ETHUSDT", "2", now=NOW))

        assert sorted(store.keys()) == ["BTCUSDT", "ETHUSDT"]
        snapshot = store.all()
        assert set(snapshot) == {"BTCUSDT", "ETHUSDT"}

        snapshot.pop("BTCUSDT")
        assert "BTCUSDT" in store


# ============================================
# Tests for Expiry
# ============================================

class TestExpiry:
    """Tests for delete_expired and the janitor"""

    def test_fresh_entry_survives(self, store, clock):
        store.put(Quote.observe("BTCUSDT", "1", now=clock()))
        assert store.delete_expired() == 0
        assert "BTCUSDT" in store

    def test_entry_removed_after_ttl(self, store, clock):
        store.put(Quote.observe("BTCUSDT", "1", now=clock()))
        store.put(Quote.observe("ETHUSDT", "1", now=clock() + 20_000))

        clock.advance(30_001)

        assert store.delete_expired() == 1
        assert store.keys() == ["ETHUSDT"]

    def test_explicit_ttl_overrides_store_ttl(self, store, clock):
        store.put(Quote.observe("BTCUSDT", "1", now=clock()))
        clock.advance(5_000)
        assert store.delete_expired(ttl_ms=1_000) == 1

    def test_eviction_is_traced_at_debug(self, store, clock, caplog):
        caplog.set_level(logging.DEBUG, logger="pricesync")
        store.put(Quote.observe("BTCUSDT", "1", now=clock()))
        clock.advance(60_000)

        store.delete_expired()

        assert "Evicted expired quote: BTCUSDT" in caplog.text

    @pytest.mark.asyncio
    async def test_janitor_evicts_in_background(self):
        """Verify the janitor removes expired entries without any caller"""
        store = QuoteStore(ttl_ms=30_000, cleanup_interval_ms=10)
        store.put(Quote.observe("BTCUSDT", "1", now=now_ms() - 60_000))
        store.put(Quote.observe("ETHUSDT", "1"))

        await store.start()
        assert store.is_running
        try:
            for _ in range(100):
                if "BTCUSDT" not in store:
                    break
                await asyncio.sleep(0.01)
        finally:
            await store.stop()

        assert "BTCUSDT" not in store
        assert "ETHUSDT" in store
        assert store.is_running is False

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_janitor(self, store):
        await store.start()
        first = store._janitor
        await store.start()
        assert store._janitor is first
        await store.stop()
        await store.stop()


# ============================================
# Tests for Configuration
# ============================================

class TestConfiguration:
    """Tests for constructor validation"""

    def test_defaults(self):
        store = QuoteStore()
        assert store.ttl_ms == 30_000
        assert store.cleanup_interval_ms == 30_000

    def test_cleanup_interval_defaults_to_ttl(self):
        assert QuoteStore(ttl_ms=5_000).cleanup_interval_ms == 5_000

    @pytest.mark.parametrize("kwargs", [{"ttl_ms": 0}, {"ttl_ms": -1}, {"cleanup_interval_ms": 0}])
    def test_non_positive_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            QuoteStore(**kwargs)
