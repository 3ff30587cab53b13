"""
Test Suite

Structure:
- tests/unit/: Tests for individual components (schemas, store, feed, resolver, service)

Uses pytest with pytest-asyncio for testing async functionality. No test touches
the network: HTTP is mocked at BinanceAPIClient._get or the session, and the
feed transport is replaced by the in-memory doubles in tests/unit/doubles.py.
"""
