"""
Quote Ingestor

Background consumer of the quote-updated channel. The feed's receive loop
publishes QuoteUpdated events on the EventBus; this service is the single
task that drains them, in order, into QuoteResolver.record().
"""

import asyncio
from typing import Optional

from core.logging import get_logger
from core.schemas import QuoteUpdated
from services.event_bus import QUOTE_UPDATED, EventBus
from services.quote_resolver import QuoteResolver


class QuoteIngestor:
    """
    Background service that applies pushed quotes to the store.
    """

    def __init__(self, bus: EventBus, resolver: QuoteResolver) -> None:
        self._bus = bus
        self._resolver = resolver
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self._processed = 0
        self._logger = get_logger(__name__)

    @property
    def processed(self) -> int:
        return self._processed

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_running:
            return
        self._queue = self._bus.subscribe(QUOTE_UPDATED)
        self._task = asyncio.create_task(self._consume(self._queue), name="quote-ingestor")
        self._logger.info("QuoteIngestor started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._logger.info("Stopping QuoteIngestor...")
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        if self._queue is not None:
            self._bus.unsubscribe(QUOTE_UPDATED, self._queue)
            self._queue = None

    async def _consume(self, queue: asyncio.Queue) -> None:
        while True:
            event = await queue.get()
            try:
                if not isinstance(event, QuoteUpdated):
                    self._logger.warning(f"Ignoring unexpected event on {QUOTE_UPDATED}: {event!r}")
                    continue
                self._resolver.record(event.quote)
                self._processed += 1
            except Exception:
                self._logger.exception("Failed to apply quote update")
