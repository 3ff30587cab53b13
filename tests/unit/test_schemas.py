"""
Unit Tests for Price Data Schemas

These tests verify that:
- Quote rejects invalid construction and stays immutable
- Age, expiry and staleness are computed from the observation timestamp
- ResolvedQuote only reports age for cache hits

Run with:
    pytest tests/unit/test_schemas.py -v
"""

from datetime import timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from core.schemas import Quote, QuoteUpdated, ResolvedQuote, TickerStats

NOW = 1_704_110_400_000


# ============================================
# Tests for Quote Construction
# ============================================

class TestQuoteConstruction:
    """Tests for Quote validation"""

    def test_observe_normalizes_symbol(self):
        """Verify symbols are stripped and uppercased"""
        quote = Quote.observe("  btcusdt ", "45000.50", now=NOW)
        assert quote.symbol == "BTCUSDT"
        assert quote.timestamp == NOW

    def test_price_keeps_full_precision(self):
        """Verify prices are Decimals with no float rounding"""
        quote = Quote.observe("BTCUSDT", "45000.12345678", now=NOW)
        assert quote.price == Decimal("45000.12345678")

    def test_observe_defaults_to_current_time(self):
        """Verify observe() stamps the quote with the wall clock"""
        quote = Quote.observe("BTCUSDT", "1")
        assert quote.timestamp > NOW

    @pytest.mark.parametrize("symbol", ["", "   "])
    def test_empty_symbol_rejected(self, symbol):
        """Verify blank symbols fail construction"""
        with pytest.raises(ValidationError):
            Quote.observe(symbol, "1", now=NOW)

    @pytest.mark.parametrize("price", ["0", "-1", 0, -0.5])
    def test_non_positive_price_rejected(self, price):
        """Verify price must be strictly positive"""
        with pytest.raises(ValidationError):
            Quote.observe("BTCUSDT", price, now=NOW)

    @pytest.mark.parametrize("timestamp", [0, -1])
    def test_non_positive_timestamp_rejected(self, timestamp):
        """Verify timestamp must be strictly positive"""
        with pytest.raises(ValidationError):
            Quote(symbol="BTCUSDT", price="1", timestamp=timestamp)

    def test_quote_is_immutable(self):
        """Verify fields cannot be reassigned"""
        quote = Quote.observe("BTCUSDT", "1", now=NOW)
        with pytest.raises(ValidationError):
            quote.price = Decimal("2")

    def test_auxiliary_fields_pass_through(self):
        """Verify volume and 24h change are kept as received"""
        quote = Quote.observe("ETHUSDT", "2500", volume="1234.5", change_percent_24h="-1.25", now=NOW)
        assert quote.volume == "1234.5"
        assert quote.change_percent_24h == "-1.25"


# ============================================
# Tests for Age / Expiry / Staleness
# ============================================

class TestQuoteAge:
    """Tests for derived time operations"""

    def test_age_is_difference_to_now(self):
        quote = Quote.observe("BTCUSDT", "1", now=NOW)
        assert quote.age(now=NOW + 10_000) == 10_000

    def test_not_expired_right_after_observation(self):
        quote = Quote.observe("BTCUSDT", "1", now=NOW)
        assert quote.is_expired(30_000, now=NOW) is False

    def test_expired_once_past_ttl(self):
        quote = Quote.observe("BTCUSDT", "1", now=NOW)
        assert quote.is_expired(30_000, now=NOW + 30_000) is False
        assert quote.is_expired(30_000, now=NOW + 30_001) is True

    def test_stale_before_expired(self):
        """Verify a quote aged between threshold and TTL is stale but valid"""
        quote = Quote.observe("BTCUSDT", "1", now=NOW)
        later = NOW + 26_000
        assert quote.is_stale(25_000, now=later) is True
        assert quote.is_expired(30_000, now=later) is False

    def test_observed_at_is_utc(self):
        quote = Quote.observe("BTCUSDT", "1", now=NOW)
        assert quote.observed_at.tzinfo == timezone.utc
        assert quote.observed_at.year == 2024


# ============================================
# Tests for Events and Results
# ============================================

class TestQuoteUpdated:
    """Tests for the quote-updated event"""

    def test_default_origin_is_feed(self):
        event = QuoteUpdated(quote=Quote.observe("BTCUSDT", "1", now=NOW))
        assert event.origin == "feed"

    def test_rejects_unknown_origin(self):
        with pytest.raises(ValidationError):
            QuoteUpdated(quote=Quote.observe("BTCUSDT", "1", now=NOW), origin="carrier-pigeon")


class TestResolvedQuote:
    """Tests for resolve() results"""

    def test_cache_result_carries_age(self):
        quote = Quote.observe("BTCUSDT", "45000.50", now=NOW)
        result = ResolvedQuote.from_quote(quote, "cache", age=1_500)

        assert result.source == "cache"
        assert result.age == 1_500
        assert result.price == Decimal("45000.50")

    def test_pull_result_has_no_age(self):
        quote = Quote.observe("BTCUSDT", "45000.50", now=NOW)
        result = ResolvedQuote.from_quote(quote, "pull", age=1_500)
        assert result.age is None

    def test_to_response_omits_unset_fields(self):
        """Verify the response dict has no age for pulls and serializes price as string"""
        quote = Quote.observe("BTCUSDT", "45000.50", now=NOW)
        response = ResolvedQuote.from_quote(quote, "pull").to_response()

        assert response == {
            "symbol": "BTCUSDT",
            "price": "45000.50",
            "source": "pull",
            "timestamp": NOW,
        }

    def test_stats_can_be_attached(self):
        quote = Quote.observe("BTCUSDT", "45000.50", now=NOW)
        stats = TickerStats(
            symbol="btcusdt",
            last_price="45000.50",
            price_change="1020.10",
            price_change_percent="2.319",
            high_price="45500",
            low_price="43800",
            volume="18234.551",
            quote_volume="812345678.12",
            timestamp=quote.observed_at,
        )
        result = ResolvedQuote.from_quote(quote, "pull").model_copy(update={"stats": stats})

        assert result.stats.symbol == "BTCUSDT"
        assert result.to_response()["stats"]["price_change_percent"] == "2.319"
