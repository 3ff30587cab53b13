"""
Exchange Connectors Package

Each venue has its own subfolder with:
- api_client.py: REST client implementing QuoteSource (the pull path)
- ws_client.py: WebSocket feed client (the push path)
"""
