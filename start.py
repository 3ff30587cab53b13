#!/usr/bin/env python3
"""
Engine start script - runs the price synchronization engine until interrupted
"""
import asyncio
from typing import Optional

from core.config import settings, validate_configuration
from core.logging import logger
from services.price_sync import PriceSyncService, get_price_sync_service


async def main(
    service: Optional[PriceSyncService] = None,
    status_interval: Optional[float] = None,
    stop_event: Optional[asyncio.Event] = None
) -> None:
    """Start the engine, log a status line every interval, stop on cancel or stop_event."""
    logger.info("=== Price Sync Engine Starting ===")
    validate_configuration()

    service = service or get_price_sync_service()
    interval = status_interval or settings.status_log_interval_seconds
    stop_event = stop_event or asyncio.Event()

    await service.start()
    logger.info("=== Started Successfully ===")

    try:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                status = service.status()
                logger.info(
                    f"Status: state={status['state']} "
                    f"subscriptions={','.join(status['subscriptions']) or '-'} "
                    f"cache_size={status['cache_size']} "
                    f"reconnect_attempts={status['reconnect_attempts']}"
                )
    finally:
        logger.info("=== Shutting Down ===")
        await service.stop()
        logger.info("=== Shutdown Complete ===")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
