"""
Core Package

Contains the venue-agnostic building blocks of the price synchronization engine:
- Schemas: Pydantic models (Quote, QuoteUpdated, TickerStats, ResolvedQuote)
- QuoteSource: Abstract base class every pull source implements
- Config, logging and the error taxonomy shared by every other package

Nothing in this layer performs network I/O.
"""
