"""
Binance Connector

Binance Spot is the upstream venue of the engine.

API Documentation:
    https://binance-docs.github.io/apidocs/spot/en/

Endpoints Used:
    REST:
        - GET /api/v3/ticker/price - Latest price
        - GET /api/v3/ticker/24hr - Rolling 24h statistics
        - GET /api/v3/ping - Connectivity check

    WebSocket:
        - wss://stream.binance.com:9443/stream - Combined streams
        - Ticker streams: <symbol>@ticker
"""

from .api_client import BinanceAPIClient
from .ws_client import BinanceFeedClient, FeedState

__all__ = ["BinanceAPIClient", "BinanceFeedClient", "FeedState"]
