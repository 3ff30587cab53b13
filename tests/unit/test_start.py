"""
Unit Tests for the engine start script

Run with:
    pytest tests/unit/test_start.py -v
"""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from start import main


def fake_service():
    service = MagicMock()
    service.start = AsyncMock()
    service.stop = AsyncMock()
    service.status.return_value = {
        "connected": True,
        "state": "connected",
        "reconnect_attempts": 0,
        "subscriptions": ["BTCUSDT"],
        "cached_symbols": [],
        "cache_size": 0,
    }
    return service


class TestMain:
    """Tests for main()"""

    @pytest.mark.asyncio
    async def test_logs_status_until_stopped(self, caplog):
        caplog.set_level(logging.INFO, logger="pricesync")
        service = fake_service()
        stop_event = asyncio.Event()

        runner = asyncio.create_task(main(service, status_interval=0.01, stop_event=stop_event))
        await asyncio.sleep(0.05)
        stop_event.set()
        await asyncio.wait_for(runner, timeout=1.0)

        service.start.assert_awaited_once()
        service.stop.assert_awaited_once()
        assert service.status.called
        assert "Status: state=connected subscriptions=BTCUSDT" in caplog.text

    @pytest.mark.asyncio
    async def test_stops_service_on_cancel(self):
        service = fake_service()

        runner = asyncio.create_task(main(service, status_interval=10.0))
        await asyncio.sleep(0.01)
        runner.cancel()
        with pytest.raises(asyncio.CancelledError):
            await runner

        service.stop.assert_awaited_once()
