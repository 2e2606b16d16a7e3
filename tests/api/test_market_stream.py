"""Tests for CCXTMarketStream"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from martingrid.api.market_stream import CCXTMarketStream


@pytest.fixture
def stream():
    return CCXTMarketStream("binanceusdm", testnet=True)


class TestConversion:
    def test_trade_to_tick(self):
        tick = CCXTMarketStream.trade_to_tick(
            "BTCUSDT",
            {
                "id": 987,
                "timestamp": 1704067200000,
                "price": 42000.5,
                "amount": 0.25,
                "side": "sell",
            },
        )

        assert tick.symbol == "BTCUSDT"
        assert tick.timestamp == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert tick.price == Decimal("42000.5")
        assert tick.quantity == Decimal("0.25")
        assert tick.is_buyer_maker is True
        assert tick.trade_id == "987"

    def test_buy_print(self):
        tick = CCXTMarketStream.trade_to_tick(
            "BTCUSDT", {"timestamp": 1704067200000, "price": 1, "amount": 1, "side": "buy"}
        )
        assert tick.is_buyer_maker is False
        assert tick.trade_id is None

    def test_candle_to_bar(self):
        bar = CCXTMarketStream.candle_to_bar(
            "ETHUSDT", "1m", [1704067260000, 2300, 2310.5, 2295, 2305, 1200.75]
        )

        assert bar.timeframe == "1m"
        assert bar.timestamp == datetime(2024, 1, 1, 0, 1, tzinfo=timezone.utc)
        assert bar.high == Decimal("2310.5")
        assert bar.close == Decimal("2305")
        assert bar.volume == Decimal("1200.75")


class TestWatchLoops:
    @pytest.mark.asyncio
    async def test_klines_emitted_once_per_open_time(self, stream):
        shutdown = asyncio.Event()
        batches = [
            [[1000, 1, 2, 0.5, 1.5, 10], [2000, 1.5, 2, 1, 1.8, 5]],
            [[2000, 1.5, 2.2, 1, 2.1, 8], [3000, 2.1, 2.3, 2, 2.2, 3]],
        ]

        async def watch_ohlcv(symbol, interval):
            batch = batches.pop(0)
            if not batches:
                shutdown.set()
            return batch

        exchange = MagicMock()
        exchange.watch_ohlcv = watch_ohlcv
        stream._exchange = exchange

        bars = []
        stream.on_kline(bars.append)
        await stream._watch_klines("BTCUSDT", "1m", shutdown)

        assert [b.timestamp.timestamp() for b in bars] == [1.0, 2.0, 3.0]

    @pytest.mark.asyncio
    async def test_trades_reach_async_callbacks(self, stream):
        shutdown = asyncio.Event()

        async def watch_trades(symbol):
            shutdown.set()
            return [
                {"id": 1, "timestamp": 1000, "price": 10, "amount": 1, "side": "buy"},
                {"id": 2, "timestamp": 2000, "price": 11, "amount": 2, "side": "sell"},
            ]

        exchange = MagicMock()
        exchange.watch_trades = watch_trades
        stream._exchange = exchange

        received = []

        async def on_tick(tick):
            received.append(tick.price)

        stream.on_tick(on_tick)
        await stream._watch_trades("BTCUSDT", shutdown)

        assert received == [Decimal("10"), Decimal("11")]

    @pytest.mark.asyncio
    async def test_run_without_subscriptions_returns(self, stream):
        await asyncio.wait_for(stream.run(asyncio.Event()), timeout=1)

    @pytest.mark.asyncio
    async def test_close_releases_exchange(self, stream):
        exchange = MagicMock()
        exchange.close = AsyncMock()
        stream._exchange = exchange

        await stream.close()

        exchange.close.assert_awaited_once()
        assert stream._exchange is None
