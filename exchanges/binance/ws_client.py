"""
Binance WebSocket Feed Client

This module keeps a single combined-stream WebSocket to Binance Spot open and
turns its 24h ticker frames into Quote updates.
It handles:
- WebSocket connections with automatic reconnection
- Exponential backoff with jitter, bounded by a maximum attempt count
- Re-applying every subscription after each successful connect
- Message parsing and validation (malformed frames are dropped)
- Graceful shutdown

Connection lifecycle (FeedState):
    DISCONNECTED -> CONNECTING -> CONNECTED -> (receive loop) -> DISCONNECTED
        -> RECONNECT_SCHEDULED -> CONNECTING -> ...
    RECONNECT_EXHAUSTED is entered once max attempts are spent; only
    reconnect() leaves it.

Control frames:
    {"method": "SUBSCRIBE", "params": ["btcusdt@ticker"], "id": 1}
    {"method": "UNSUBSCRIBE", "params": ["btcusdt@ticker"], "id": 2}

Inbound frames:
    {"result": null, "id": 1}                                   (ack)
    {"stream": "btcusdt@ticker", "data": {"s": ..., "c": ..., "v": ..., "P": ...}}

WebSocket Documentation:
    https://binance-docs.github.io/apidocs/spot/en/#websocket-market-streams

Usage:
    bus = EventBus()
    async with BinanceFeedClient(bus) as feed:
        await feed.subscribe(["BTCUSDT", "ETHUSDT"])
        await feed.connect()
"""

import asyncio
import itertools
import json
import random
from enum import Enum
from threading import Lock
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Set

import aiohttp

from core.config import SYMBOL_PATTERN
from core.exceptions import FeedConnectionError, InvalidSymbolError
from core.logging import get_logger, log_feed_event
from core.schemas import Quote, QuoteUpdated
from services.event_bus import QUOTE_UPDATED, EventBus

MIN_RECONNECT_DELAY_MS = 100
JITTER_RATIO = 0.2


class FeedState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECT_SCHEDULED = "reconnect_scheduled"
    RECONNECT_EXHAUSTED = "reconnect_exhausted"


# ============================================
# Helpers
# ============================================

def compute_backoff_delay(
    attempt: int,
    base_delay_ms: int,
    max_delay_ms: int,
    random_fn: Callable[[], float] = random.random
) -> float:
    """
    Delay before reconnect attempt number ``attempt + 1``.

    delay  = min(base * 2^attempt, max)
    delay' = delay + delay * 0.2 * (random() - 0.5), never below 100ms

    Example:
        >>> compute_backoff_delay(3, 1000, 30000, random_fn=lambda: 0.5)
        8000.0
    """
    delay = min(base_delay_ms * (2 ** attempt), max_delay_ms)
    jitter = delay * JITTER_RATIO * (random_fn() - 0.5)
    return max(float(delay + jitter), float(MIN_RECONNECT_DELAY_MS))


def is_valid_symbol(symbol: str, supported: Iterable[str]) -> bool:
    """Uppercase alphanumeric, at least 3 characters, and allow-listed."""
    return (
        len(symbol) >= 3
        and SYMBOL_PATTERN.match(symbol) is not None
        and symbol in supported
    )


class SubscriptionSet:
    """
    Symbols the feed should be streaming, independent of the socket.

    Owned by one BinanceFeedClient; mutated only by subscribe/unsubscribe and
    read by the connect path.
    """

    def __init__(self, symbols: Iterable[str] = ()) -> None:
        self._symbols: Set[str] = set(symbols)
        self._lock = Lock()

    def add(self, symbols: Iterable[str]) -> None:
        with self._lock:
            self._symbols.update(symbols)

    def discard(self, symbols: Iterable[str]) -> None:
        with self._lock:
            self._symbols.difference_update(symbols)

    def snapshot(self) -> List[str]:
        """Sorted copy of the current set."""
        with self._lock:
            return sorted(self._symbols)

    def __len__(self) -> int:
        with self._lock:
            return len(self._symbols)

    def __contains__(self, symbol: str) -> bool:
        with self._lock:
            return symbol in self._symbols


# ============================================
# Feed Client
# ============================================

class BinanceFeedClient:
    """
    Self-healing WebSocket client that publishes QuoteUpdated events.

    Attributes:
        url: Combined-stream WebSocket URL
        supported_symbols: Allow-list checked by subscribe()
        base_delay_ms / max_delay_ms: Reconnect backoff bounds
        max_attempts: Scheduled reconnects before giving up
        heartbeat: WebSocket ping interval in seconds
        connect_timeout: Timeout for opening the transport in seconds
        last_reconnect_delay_ms: Most recently scheduled backoff delay
        session: aiohttp ClientSession for the WebSocket

    Example:
        >>> feed = BinanceFeedClient(bus)
        >>> await feed.subscribe(["btcusdt"])
        ['BTCUSDT']
        >>> await feed.connect()
        >>> feed.is_connected()
        True

    Notes:
        - A failed connect() raises FeedConnectionError once and hands
          further retries to the reconnect timer
        - Only one reconnect timer is pending at any time
        - disconnect() keeps the subscription set
    """

    def __init__(
        self,
        bus: Optional[EventBus] = None,
        url: Optional[str] = None,
        supported_symbols: Optional[Iterable[str]] = None,
        base_delay_ms: Optional[int] = None,
        max_delay_ms: Optional[int] = None,
        max_attempts: Optional[int] = None,
        heartbeat: Optional[float] = None,
        connect_timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        random_fn: Callable[[], float] = random.random
    ):
        from core.config import settings

        self.bus = bus if bus is not None else EventBus()
        self.url = url or settings.binance_ws_url
        self.supported_symbols = frozenset(
            s.strip().upper() for s in (supported_symbols if supported_symbols is not None else settings.symbols_list)
        )
        self.base_delay_ms = base_delay_ms or settings.feed_base_reconnect_delay_ms
        self.max_delay_ms = max_delay_ms or settings.feed_max_reconnect_delay_ms
        self.max_attempts = max_attempts or settings.feed_max_reconnect_attempts
        self.heartbeat = heartbeat or settings.feed_heartbeat_seconds
        self.connect_timeout = connect_timeout or settings.feed_connect_timeout_seconds

        self._sleep = sleep
        self._random = random_fn

        # Connection state
        self.session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._state = FeedState.DISCONNECTED
        self._closing = False
        self._reconnect_attempts = 0
        self._reconnect_task: Optional[asyncio.Task] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._subscriptions = SubscriptionSet()
        self._request_ids = itertools.count(1)
        self.last_reconnect_delay_ms: Optional[float] = None

        self.logger = get_logger(__name__)

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ============================================
    # State Readers
    # ============================================

    @property
    def state(self) -> FeedState:
        return self._state

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    def is_connected(self) -> bool:
        return (
            self._state == FeedState.CONNECTED
            and self._ws is not None
            and not self._ws.closed
        )

    def get_subscriptions(self) -> Set[str]:
        return set(self._subscriptions.snapshot())

    # ============================================
    # Connection Management
    # ============================================

    async def _open_transport(self) -> aiohttp.ClientWebSocketResponse:
        """Open the raw WebSocket. Tests replace this with an in-memory fake."""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()
            self.logger.debug("BinanceFeedClient session created")

        return await asyncio.wait_for(
            self.session.ws_connect(self.url, heartbeat=self.heartbeat),
            timeout=self.connect_timeout
        )

    async def connect(self) -> None:
        """
        Open the feed and re-apply the subscription set.

        Raises:
            FeedConnectionError: If the transport could not be opened. A
                reconnect is already scheduled when this is raised.
        """
        self._closing = False

        timer = self._reconnect_task
        self._cancel_reconnect_timer()
        if timer and timer is not asyncio.current_task():
            try:
                await timer
            except asyncio.CancelledError:
                pass

        await self._open()

    async def _open(self) -> None:
        if self.is_connected() or self._state == FeedState.CONNECTING:
            return

        self._state = FeedState.CONNECTING
        self.logger.info(f"Connecting to {self.url}")

        try:
            ws = await self._open_transport()
        except asyncio.CancelledError:
            self._state = FeedState.DISCONNECTED
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            self._state = FeedState.DISCONNECTED
            log_feed_event("error", details=f"connect to {self.url} failed: {e}")
            self._schedule_reconnect()
            raise FeedConnectionError(f"Failed to connect to {self.url}: {e}") from e

        if self._closing:
            await ws.close()
            self._state = FeedState.DISCONNECTED
            return

        self._ws = ws
        self._state = FeedState.CONNECTED
        self._reconnect_attempts = 0
        log_feed_event("connected", details=self.url)

        symbols = self._subscriptions.snapshot()
        if symbols:
            await self._send("SUBSCRIBE", symbols)
            log_feed_event("resubscribed", symbols)

        self._receive_task = asyncio.create_task(self._receive_loop(ws), name="feed-receive")

    async def disconnect(self) -> None:
        """
        Cancel any pending reconnect and close the transport.

        Notes:
            - Safe to call multiple times
            - The subscription set is kept for the next connect()
        """
        self._closing = True
        self._cancel_reconnect_timer()

        task = self._receive_task
        self._receive_task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        ws = self._ws
        self._ws = None
        if ws is not None and not ws.closed:
            await ws.close()

        if self._state != FeedState.DISCONNECTED:
            log_feed_event("disconnected")
        self._state = FeedState.DISCONNECTED

    async def reconnect(self) -> None:
        """Reset the attempt counter, then disconnect and connect again."""
        log_feed_event("manual reconnect")
        self._reconnect_attempts = 0
        await self.disconnect()
        await self.connect()

    async def close(self) -> None:
        """Disconnect and close the HTTP session."""
        await self.disconnect()
        if self.session and not self.session.closed:
            await self.session.close()
            self.logger.debug("BinanceFeedClient session closed")
        self.session = None

    # ============================================
    # Reconnect Scheduling
    # ============================================

    def _cancel_reconnect_timer(self) -> None:
        timer = self._reconnect_task
        self._reconnect_task = None
        if timer and not timer.done() and timer is not asyncio.current_task():
            timer.cancel()

    def _schedule_reconnect(self) -> None:
        """
        Arm the single reconnect timer, replacing any pending one.

        Reconnection Strategy:
            - Attempt 1: ~1s, Attempt 2: ~2s, Attempt 3: ~4s, ...
            - Capped at max_delay_ms, with +/-10% jitter
            - After max_attempts scheduled attempts the feed stays
              RECONNECT_EXHAUSTED until reconnect() is called
        """
        if self._closing:
            return

        self._cancel_reconnect_timer()

        if self._reconnect_attempts >= self.max_attempts:
            self._state = FeedState.RECONNECT_EXHAUSTED
            log_feed_event(
                "exhausted",
                details=f"gave up after {self._reconnect_attempts} attempts, call reconnect() to retry"
            )
            return

        delay = compute_backoff_delay(
            self._reconnect_attempts, self.base_delay_ms, self.max_delay_ms, self._random
        )
        self.last_reconnect_delay_ms = delay
        self._state = FeedState.RECONNECT_SCHEDULED
        self.logger.warning(
            f"Reconnecting in {delay:.0f}ms... "
            f"(attempt {self._reconnect_attempts + 1}/{self.max_attempts})"
        )
        self._reconnect_task = asyncio.create_task(
            self._reconnect_after(delay), name="feed-reconnect"
        )

    async def _reconnect_after(self, delay_ms: float) -> None:
        await self._sleep(delay_ms / 1000.0)
        self._reconnect_attempts += 1
        try:
            await self._open()
        except FeedConnectionError:
            # logged and rescheduled by _open
            return

    # ============================================
    # Subscriptions
    # ============================================

    async def subscribe(self, symbols: Iterable[str]) -> List[str]:
        """
        Add symbols to the feed.

        Symbols are uppercased, then checked against the symbol pattern and the
        allow-list. Invalid ones are dropped from the batch.

        Returns:
            List[str]: The accepted symbols

        Raises:
            InvalidSymbolError: If no symbol in the batch is valid
        """
        requested = [s.strip().upper() for s in symbols]
        accepted = list(dict.fromkeys(s for s in requested if is_valid_symbol(s, self.supported_symbols)))
        rejected = [s for s in requested if s not in accepted]

        if rejected:
            self.logger.debug(f"Dropping invalid symbols: {', '.join(rejected) or '<blank>'}")
        if not accepted:
            raise InvalidSymbolError(
                f"No valid symbols to subscribe: {', '.join(rejected) or '<empty batch>'}",
                symbols=rejected
            )

        self._subscriptions.add(accepted)
        if self.is_connected():
            await self._send("SUBSCRIBE", accepted)
        log_feed_event("subscribed", accepted)
        return accepted

    async def unsubscribe(self, symbols: Iterable[str]) -> List[str]:
        """Remove symbols from the feed. No allow-list check."""
        removed = list(dict.fromkeys(s.strip().upper() for s in symbols if s.strip()))
        if not removed:
            return []

        self._subscriptions.discard(removed)
        if self.is_connected():
            await self._send("UNSUBSCRIBE", removed)
        log_feed_event("unsubscribed", removed)
        return removed

    async def _send(self, method: str, symbols: List[str]) -> None:
        frame = {
            "method": method,
            "params": [f"{s.lower()}@ticker" for s in symbols],
            "id": next(self._request_ids),
        }
        try:
            await self._ws.send_json(frame)
            self.logger.debug(f"Sent {method} id={frame['id']} params={frame['params']}")
        except (ConnectionError, aiohttp.ClientError) as e:
            # the receive loop notices the dead socket and schedules a reconnect
            self.logger.warning(f"Failed to send {method}: {e}")

    # ============================================
    # Message Handling
    # ============================================

    async def _receive_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        """
        Read frames until the socket ends.

        Message Types:
            - WSMsgType.TEXT: JSON data (handled)
            - WSMsgType.PING/PONG: Heartbeat (handled automatically)
            - WSMsgType.CLOSED / ERROR: ends the loop and triggers a reconnect
        """
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._handle_message(msg.data)
                elif msg.type == aiohttp.WSMsgType.CLOSED:
                    self.logger.warning(f"WebSocket closed: {msg.data}")
                    break
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    self.logger.error(f"WebSocket error: {msg.data}")
                    break
                else:
                    self.logger.debug(f"Received message type: {msg.type}")
        except (ConnectionError, aiohttp.ClientError) as e:
            self.logger.error(f"WebSocket receive failed: {e}")
        except Exception as e:
            self.logger.exception(f"Receive loop crashed: {e}")
        finally:
            if self._ws is ws:
                self._ws = None
            if not ws.closed:
                await ws.close()

            if not self._closing:
                self._state = FeedState.DISCONNECTED
                log_feed_event("disconnected", details="connection lost")
                self._schedule_reconnect()

    def _handle_message(self, raw: Any) -> None:
        """Turn one text frame into a QuoteUpdated event. Never raises."""
        try:
            self._dispatch_frame(raw)
        except Exception as e:
            self.logger.warning(f"Frame dropped: {str(raw)[:100]} ({e!r})")

    def _dispatch_frame(self, raw: Any) -> None:
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as e:
            self.logger.warning(f"Failed to parse JSON: {str(raw)[:100]}... Error: {e}")
            return

        if not isinstance(payload, dict):
            self.logger.warning(f"Unexpected frame: {str(raw)[:100]}")
            return

        if "result" in payload:
            self.logger.debug(f"Subscription ack id={payload.get('id')}")
            return

        if "error" in payload:
            self.logger.warning(f"Feed error frame id={payload.get('id')}: {payload['error']}")
            return

        stream = payload.get("stream")
        if stream is not None:
            if not isinstance(stream, str) or "@ticker" not in stream:
                self.logger.debug(f"Ignoring stream {stream}")
                return
            data = payload.get("data")
        elif payload.get("e") == "24hrTicker":
            data = payload
        else:
            self.logger.debug(f"Ignoring frame: {str(raw)[:100]}")
            return

        try:
            volume = data.get("v")
            change = data.get("P")
            quote = Quote.observe(
                data["s"],
                data["c"],
                volume=str(volume) if volume is not None else None,
                change_percent_24h=str(change) if change is not None else None
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            self.logger.warning(f"Malformed ticker frame dropped: {str(raw)[:100]} ({e})")
            return

        self.logger.debug(f"Ticker {quote.symbol} = {quote.price}")
        self.bus.publish(QUOTE_UPDATED, QuoteUpdated(quote=quote, origin="feed"))
