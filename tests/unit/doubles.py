"""
Test doubles for the feed transport

In-memory replacements for the WebSocket, the transport factory and the
reconnect sleep, shared by the feed and service tests.
"""

import asyncio
import json

import aiohttp
from aiohttp import WSMsgType


class MockWSMessage:
    """Mock aiohttp WebSocket message"""

    def __init__(self, msg_type, data=None):
        self.type = msg_type
        self.data = data


class FakeWebSocket:
    """In-memory stand-in for aiohttp.ClientWebSocketResponse"""

    def __init__(self):
        self.sent = []
        self.closed = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send_json(self, data):
        if self.closed:
            raise ConnectionResetError("socket is closed")
        self.sent.append(data)

    def push(self, payload):
        """Deliver a text frame to the client"""
        raw = payload if isinstance(payload, str) else json.dumps(payload)
        self._inbox.put_nowait(MockWSMessage(WSMsgType.TEXT, raw))

    def drop(self):
        """Simulate the server closing the connection"""
        self._inbox.put_nowait(MockWSMessage(WSMsgType.CLOSED, None))

    async def close(self):
        self.closed = True
        self._inbox.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        msg = await self._inbox.get()
        if msg is None:
            raise StopAsyncIteration
        return msg


class FakeTransport:
    """Replacement for BinanceFeedClient._open_transport; the first `failures` calls fail"""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.calls = 0
        self.sockets = []

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise aiohttp.ClientConnectionError("connection refused")
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws


class RecordingSleep:
    """Sleep that returns immediately and records requested delays in ms"""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(round(seconds * 1000, 3))
        await asyncio.sleep(0)


class BlockingSleep:
    """Sleep that never returns, keeping the reconnect timer pending"""

    async def __call__(self, seconds):
        await asyncio.Event().wait()


async def wait_until(predicate, timeout: float = 2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


def ticker_frame(symbol="BTCUSDT", price="45000.50", volume="18234.551", change="2.315"):
    return {
        "stream": f"{symbol.lower()}@ticker",
        "data": {"e": "24hrTicker", "s": symbol, "c": price, "v": volume, "P": change},
    }


