"""
Async Pub/Sub Event Bus

The channel between the feed's receive loop and the quote store. The feed
publishes QuoteUpdated events under QUOTE_UPDATED; the ingestor subscribes
and applies them to the store.

Each subscriber owns a bounded asyncio.Queue. Publishing uses put_nowait, so
the receive loop never waits on a slow consumer; when a queue is full the
event is dropped with a warning. Queues are FIFO, which keeps delivery
ordered per symbol.

Buses are plain instances handed to their producers and consumers, so two
engines in one process (e.g. in tests) never share events.
"""

import asyncio
from collections import defaultdict
from typing import Any, DefaultDict, Optional, Set

from core.logging import get_logger

QUOTE_UPDATED = "quote.updated"


class EventBus:
    """
    Async event bus with topic-based pub/sub.

    - Each subscriber gets its own asyncio.Queue and will not block publishers.
    - Unsubscribing is important to avoid queue leaks when consumers stop.
    """

    def __init__(self, max_queue_size: Optional[int] = None) -> None:
        if max_queue_size is None:
            from core.config import settings
            max_queue_size = settings.event_queue_size
        self._topics: DefaultDict[str, Set[asyncio.Queue]] = defaultdict(set)
        self._max_queue_size = max_queue_size
        self._dropped = 0
        self._logger = get_logger(__name__)

    @property
    def dropped(self) -> int:
        """Number of events dropped because a subscriber queue was full."""
        return self._dropped

    def subscriber_count(self, topic: str) -> int:
        return len(self._topics.get(topic, ()))

    def subscribe(self, topic: str) -> asyncio.Queue:
        """Subscribe to a topic. Returns the queue events will arrive on."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._topics[topic].add(queue)
        self._logger.debug(f"Subscriber added to topic '{topic}'. total={len(self._topics[topic])}")
        return queue

    def unsubscribe(self, topic: str, queue: asyncio.Queue) -> None:
        """Detach a queue from a topic and discard anything still queued on it."""
        subscribers = self._topics.get(topic)
        if subscribers and queue in subscribers:
            subscribers.remove(queue)
            while not queue.empty():
                queue.get_nowait()
        self._logger.debug(f"Subscriber removed from topic '{topic}'. total={self.subscriber_count(topic)}")

    def publish(self, topic: str, event: Any) -> int:
        """
        Deliver an event to every subscriber of a topic without waiting.

        Returns:
            int: Number of subscribers that accepted the event
        """
        delivered = 0
        for queue in list(self._topics.get(topic, ())):
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                self._dropped += 1
                self._logger.warning(f"Dropping event for topic '{topic}' due to full queue")
        return delivered
