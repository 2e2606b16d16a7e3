"""
Streaming market feed over ccxt.pro websockets.

Each subscription runs its own watch loop and pushes TickEvent / BarEvent
values straight into the registered callbacks. There is no buffering or
backpressure between the feed and its consumers: a slow callback delays
the next watch call of that subscription only.
"""

import asyncio
import inspect
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import ccxt.pro as ccxtpro

from martingrid.api.exceptions import ExchangeAPIError
from martingrid.api.exchange_protocol import KlineCallback, TickCallback
from martingrid.core.events import BarEvent, TickEvent
from martingrid.utils.logger import get_logger

logger = get_logger(__name__)

RECONNECT_DELAY = 5.0


def _dec(value: Any) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


def _ts(ms: int | float | None) -> datetime:
    if ms is None:
        return datetime.now(timezone.utc)
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


class CCXTMarketStream:
    """IMarketStream implementation backed by ``watch_trades`` / ``watch_ohlcv``."""

    def __init__(
        self, exchange_id: str, testnet: bool = True, default_type: str = "future"
    ) -> None:
        self.exchange_id = exchange_id
        self._testnet = testnet
        self._default_type = default_type
        self._exchange: ccxtpro.Exchange | None = None
        self._tick_subscriptions: set[str] = set()
        self._kline_subscriptions: set[tuple[str, str]] = set()
        self._tick_callbacks: list[TickCallback] = []
        self._kline_callbacks: list[KlineCallback] = []
        self._last_bar: dict[tuple[str, str], int] = {}

    def _ensure_exchange(self) -> ccxtpro.Exchange:
        if self._exchange is None:
            try:
                exchange_class = getattr(ccxtpro, self.exchange_id)
            except AttributeError as e:
                raise ExchangeAPIError(f"ccxt.pro has no exchange {self.exchange_id}") from e
            self._exchange = exchange_class(
                {"enableRateLimit": True, "options": {"defaultType": self._default_type}}
            )
            if self._testnet:
                self._exchange.set_sandbox_mode(True)
        return self._exchange

    async def subscribe_ticks(self, symbol: str) -> None:
        self._tick_subscriptions.add(symbol)
        logger.info("stream_subscribed", symbol=symbol, channel="trades")

    async def subscribe_klines(self, symbol: str, interval: str) -> None:
        self._kline_subscriptions.add((symbol, interval))
        logger.info("stream_subscribed", symbol=symbol, channel="ohlcv", interval=interval)

    def on_tick(self, callback: TickCallback) -> None:
        self._tick_callbacks.append(callback)

    def on_kline(self, callback: KlineCallback) -> None:
        self._kline_callbacks.append(callback)

    async def _emit(self, callbacks: list, event: TickEvent | BarEvent) -> None:
        for callback in callbacks:
            result = callback(event)
            if inspect.isawaitable(result):
                await result

    # =========================================================================
    # Conversion
    # =========================================================================

    @staticmethod
    def trade_to_tick(symbol: str, trade: dict[str, Any]) -> TickEvent:
        return TickEvent(
            timestamp=_ts(trade.get("timestamp")),
            symbol=symbol,
            price=_dec(trade.get("price")),
            quantity=_dec(trade.get("amount")),
            # Seller-initiated print means the buyer was the maker
            is_buyer_maker=trade.get("side") == "sell",
            trade_id=str(trade["id"]) if trade.get("id") is not None else None,
        )

    @staticmethod
    def candle_to_bar(symbol: str, interval: str, candle: list) -> BarEvent:
        return BarEvent(
            timestamp=_ts(candle[0]),
            symbol=symbol,
            timeframe=interval,
            open=_dec(candle[1]),
            high=_dec(candle[2]),
            low=_dec(candle[3]),
            close=_dec(candle[4]),
            volume=_dec(candle[5]),
        )

    # =========================================================================
    # Watch loops
    # =========================================================================

    async def _watch_trades(self, symbol: str, shutdown: asyncio.Event) -> None:
        exchange = self._ensure_exchange()
        while not shutdown.is_set():
            try:
                trades = await exchange.watch_trades(symbol)
                for trade in trades:
                    await self._emit(self._tick_callbacks, self.trade_to_tick(symbol, trade))
            except asyncio.CancelledError:
                raise
            except ccxtpro.BaseError as e:
                logger.warning("stream_error", symbol=symbol, channel="trades", error=str(e))
                await asyncio.sleep(RECONNECT_DELAY)

    async def _watch_klines(self, symbol: str, interval: str, shutdown: asyncio.Event) -> None:
        exchange = self._ensure_exchange()
        key = (symbol, interval)
        while not shutdown.is_set():
            try:
                candles = await exchange.watch_ohlcv(symbol, interval)
                for candle in candles:
                    # One BarEvent per candle open time
                    previous = self._last_bar.get(key)
                    if previous is not None and candle[0] <= previous:
                        continue
                    self._last_bar[key] = candle[0]
                    await self._emit(
                        self._kline_callbacks, self.candle_to_bar(symbol, interval, candle)
                    )
            except asyncio.CancelledError:
                raise
            except ccxtpro.BaseError as e:
                logger.warning("stream_error", symbol=symbol, channel="ohlcv", error=str(e))
                await asyncio.sleep(RECONNECT_DELAY)

    async def run(self, shutdown: asyncio.Event) -> None:
        """Run every subscription until ``shutdown`` is set."""
        tasks = [
            asyncio.create_task(self._watch_trades(symbol, shutdown))
            for symbol in sorted(self._tick_subscriptions)
        ]
        tasks += [
            asyncio.create_task(self._watch_klines(symbol, interval, shutdown))
            for symbol, interval in sorted(self._kline_subscriptions)
        ]
        if not tasks:
            return
        try:
            await shutdown.wait()
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await self.close()

    async def close(self) -> None:
        if self._exchange is not None:
            await self._exchange.close()
            self._exchange = None
            logger.info("stream_closed", exchange=self.exchange_id)
