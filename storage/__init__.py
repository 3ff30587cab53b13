"""
Storage Package

Volatile, in-process caching of the latest quote per symbol. Nothing here
survives a process restart.

Modules:
    - quote_store: QuoteStore, the TTL cache shared by the feed and the resolver
"""

from storage.quote_store import QuoteStore

__all__ = ["QuoteStore"]
