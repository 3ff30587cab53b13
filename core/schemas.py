"""
Price Data Schemas

This module defines the Pydantic models that flow through the price
synchronization engine.

Models:
    - Quote: Immutable, self-validating price observation for one symbol
    - QuoteUpdated: Event carried on the quote-updated channel (feed -> store)
    - TickerStats: 24h rolling statistics from the pull source
    - ResolvedQuote: What QuoteResolver.resolve() hands back to callers

Prices are kept as Decimal (serialized as strings) so nothing is lost to
floating-point rounding between the venue and the caller.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.utils.time import now_ms, to_utc_datetime


# ============================================
# Quote
# ============================================

class Quote(BaseModel):
    """
    Immutable price observation for a single symbol at a single instant.

    Attributes:
        symbol: Instrument identifier, stripped and uppercased on construction
        price: Last traded price, strictly positive
        timestamp: Observation time in epoch milliseconds, strictly positive
        volume: Optional 24h volume, passed through as received
        change_percent_24h: Optional 24h change percentage, passed through as received

    Example:
        >>> quote = Quote.observe("btcusdt", "45000.50")
        >>> quote.symbol
        'BTCUSDT'
        >>> quote.is_expired(30_000)
        False

    Notes:
        - Construction with an empty symbol, non-positive price or
          non-positive timestamp raises pydantic.ValidationError
        - The model is frozen: assigning to a field raises as well
        - age/is_expired/is_stale take an optional ``now`` so a caller
          with its own clock gets consistent answers
    """

    symbol: str = Field(
        ...,
        description="Trading pair symbol in uppercase",
        examples=["BTCUSDT", "ETHUSDT"]
    )

    price: Decimal = Field(
        ...,
        gt=0,
        description="Last traded price"
    )

    timestamp: int = Field(
        ...,
        gt=0,
        description="Observation time in milliseconds since epoch"
    )

    volume: Optional[str] = Field(
        default=None,
        description="24h traded volume in base asset"
    )

    change_percent_24h: Optional[str] = Field(
        default=None,
        description="24h price change in percent"
    )

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "symbol": "BTCUSDT",
                "price": "45000.50",
                "timestamp": 1704110400000,
                "volume": "18234.551",
                "change_percent_24h": "2.315"
            }
        }
    )

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, v: str) -> str:
        """Strip and uppercase; reject blank symbols"""
        v = v.strip().upper()
        if not v:
            raise ValueError("symbol must not be empty")
        return v

    @classmethod
    def observe(
        cls,
        symbol: str,
        price: Any,
        volume: Optional[str] = None,
        change_percent_24h: Optional[str] = None,
        now: Optional[int] = None
    ) -> "Quote":
        """Build a Quote stamped with the current time (or ``now`` if given)."""
        return cls(
            symbol=symbol,
            price=price,
            timestamp=now if now is not None else now_ms(),
            volume=volume,
            change_percent_24h=change_percent_24h,
        )

    def age(self, now: Optional[int] = None) -> int:
        """Milliseconds elapsed since the observation."""
        return (now if now is not None else now_ms()) - self.timestamp

    def is_expired(self, ttl_ms: int, now: Optional[int] = None) -> bool:
        """True once the quote is older than ``ttl_ms``."""
        return self.age(now) > ttl_ms

    def is_stale(self, threshold_ms: int, now: Optional[int] = None) -> bool:
        """True once the quote is older than the staleness threshold."""
        return self.age(now) > threshold_ms

    @property
    def observed_at(self) -> datetime:
        return to_utc_datetime(self.timestamp)


# ============================================
# Quote-updated Event
# ============================================

class QuoteUpdated(BaseModel):
    """
    Event published when a fresh Quote arrives.

    Attributes:
        quote: The new observation
        origin: "feed" for streaming pushes, "pull" for REST refreshes
    """

    quote: Quote
    origin: Literal["feed", "pull"] = "feed"

    model_config = ConfigDict(frozen=True)


# ============================================
# 24h Ticker Statistics
# ============================================

class TickerStats(BaseModel):
    """
    Rolling 24h statistics for a symbol.

    Mirrors the useful subset of Binance's ``GET /api/v3/ticker/24hr``.
    """

    symbol: str = Field(..., description="Trading pair symbol in uppercase")
    last_price: Decimal = Field(..., ge=0, description="Last traded price")
    price_change: Decimal = Field(..., description="Absolute 24h price change")
    price_change_percent: Decimal = Field(..., description="24h price change in percent")
    high_price: Decimal = Field(..., ge=0, description="24h high")
    low_price: Decimal = Field(..., ge=0, description="24h low")
    volume: Decimal = Field(..., ge=0, description="24h volume in base asset")
    quote_volume: Decimal = Field(..., ge=0, description="24h volume in quote asset")
    timestamp: datetime = Field(..., description="Close time of the 24h window in UTC")

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "symbol": "BTCUSDT",
                "last_price": "45000.50",
                "price_change": "1020.10",
                "price_change_percent": "2.319",
                "high_price": "45500.00",
                "low_price": "43800.00",
                "volume": "18234.551",
                "quote_volume": "812345678.12",
                "timestamp": "2024-01-01T12:00:00Z"
            }
        }
    )

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, v: str) -> str:
        return v.upper()


# ============================================
# Resolution Result
# ============================================

class ResolvedQuote(BaseModel):
    """
    Result of QuoteResolver.resolve().

    ``age`` is only set when the value was served from the cache; a pulled
    value is fresh by definition.
    """

    symbol: str
    price: Decimal
    source: Literal["cache", "pull"]
    timestamp: int
    age: Optional[int] = None
    volume: Optional[str] = None
    change_percent_24h: Optional[str] = None
    stats: Optional[TickerStats] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_quote(
        cls,
        quote: Quote,
        source: Literal["cache", "pull"],
        age: Optional[int] = None
    ) -> "ResolvedQuote":
        return cls(
            symbol=quote.symbol,
            price=quote.price,
            source=source,
            timestamp=quote.timestamp,
            age=age if source == "cache" else None,
            volume=quote.volume,
            change_percent_24h=quote.change_percent_24h,
        )

    def to_response(self) -> Dict[str, Any]:
        """JSON-ready dict without unset optional fields."""
        return self.model_dump(mode="json", exclude_none=True)
