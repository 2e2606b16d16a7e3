"""IExchange / IMarketStream: capability interfaces the engine trades through.

The ccxt-backed clients in this package implement them for live venues;
tests provide in-memory fakes. Value types are plain dataclasses in
engine units (Decimal prices and quantities, UTC datetimes).
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Protocol, runtime_checkable

from martingrid.core.events import BarEvent, TickEvent
from martingrid.core.types import ZERO, OrderSide, OrderState, OrderType


@dataclass(frozen=True)
class Kline:
    open_time: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal


@dataclass(frozen=True)
class Ticker24h:
    symbol: str
    last_price: Decimal
    price_change_pct: Decimal
    high: Decimal
    low: Decimal
    quote_volume: Decimal


@dataclass(frozen=True)
class AccountBalance:
    asset: str
    balance: Decimal
    available_balance: Decimal
    unrealized_pnl: Decimal = ZERO


@dataclass(frozen=True)
class AccountInfo:
    total_wallet_balance: Decimal
    total_unrealized_pnl: Decimal
    total_margin_balance: Decimal
    available_balance: Decimal
    can_trade: bool = True


@dataclass(frozen=True)
class ExchangePosition:
    symbol: str
    size: Decimal
    entry_price: Decimal
    mark_price: Decimal
    unrealized_pnl: Decimal
    liquidation_price: Decimal
    leverage: int
    side: str = "BOTH"


@dataclass(frozen=True)
class OrderStatusReport:
    order_id: str
    symbol: str
    status: OrderState
    avg_price: Decimal = ZERO
    executed_qty: Decimal = ZERO
    commission: Decimal = ZERO


@dataclass(frozen=True)
class OpenOrder:
    order_id: str
    symbol: str
    side: OrderSide
    order_type: OrderType
    price: Decimal | None
    quantity: Decimal
    reduce_only: bool = False
    extra: dict = field(default_factory=dict)


@runtime_checkable
class IExchange(Protocol):
    """Futures venue operations used by the engine."""

    async def get_server_time(self) -> datetime:
        ...

    async def get_klines(self, symbol: str, interval: str, limit: int = 500) -> list[Kline]:
        ...

    async def get_ticker_price(self, symbol: str) -> Decimal:
        ...

    async def get_ticker_24hr(self, symbol: str) -> Ticker24h:
        ...

    async def get_account_balance(self) -> AccountBalance:
        ...

    async def get_account_info(self) -> AccountInfo:
        ...

    async def get_position(self, symbol: str) -> ExchangePosition | None:
        ...

    async def get_all_positions(self) -> list[ExchangePosition]:
        ...

    async def set_leverage(self, symbol: str, leverage: int) -> None:
        ...

    async def set_margin_type(self, symbol: str, margin_type: str) -> None:
        ...

    async def place_order(
        self,
        symbol: str,
        side: OrderSide,
        order_type: OrderType,
        quantity: Decimal,
        price: Decimal | None = None,
        reduce_only: bool = False,
    ) -> str:
        """Submit an order and return the exchange order id."""
        ...

    async def cancel_order(self, symbol: str, order_id: str) -> None:
        ...

    async def cancel_all_orders(self, symbol: str) -> None:
        ...

    async def get_open_orders(self, symbol: str) -> list[OpenOrder]:
        ...

    async def get_order_status(self, symbol: str, order_id: str) -> OrderStatusReport:
        ...


TickCallback = Callable[[TickEvent], Awaitable[None] | None]
KlineCallback = Callable[[BarEvent], Awaitable[None] | None]


@runtime_checkable
class IMarketStream(Protocol):
    """Push feed of trades and candles."""

    async def subscribe_ticks(self, symbol: str) -> None:
        ...

    async def subscribe_klines(self, symbol: str, interval: str) -> None:
        ...

    def on_tick(self, callback: TickCallback) -> None:
        ...

    def on_kline(self, callback: KlineCallback) -> None:
        ...

    async def run(self, shutdown: asyncio.Event) -> None:
        ...

    async def close(self) -> None:
        ...
