"""
Event model.

Every market, order and risk occurrence is one of a closed set of frozen
records. Consumers dispatch over them with ``match``; the EventQueue hands
them out in timestamp order, FIFO among equal timestamps.
"""

from __future__ import annotations

import heapq
import itertools
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Union

from martingrid.core.types import OrderSide, OrderType, Side, ZERO


@dataclass(frozen=True)
class TickEvent:
    """Single trade print"""

    timestamp: datetime
    symbol: str
    price: Decimal
    quantity: Decimal
    is_buyer_maker: bool = False
    trade_id: str | None = None


@dataclass(frozen=True)
class BarEvent:
    """Closed OHLCV candle"""

    timestamp: datetime
    symbol: str
    timeframe: str
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal


@dataclass(frozen=True)
class SignalIndicators:
    cci: float = 0.0
    adx: float = 0.0
    atr_pct: Decimal = ZERO
    ema_fast: Decimal = ZERO
    ema_slow: Decimal = ZERO


@dataclass(frozen=True)
class SignalEvent:
    timestamp: datetime
    symbol: str
    side: Side
    strength: float
    grid_spacing: Decimal
    max_levels: int
    ddown_factor: Decimal
    indicators: SignalIndicators = field(default_factory=SignalIndicators)


@dataclass(frozen=True)
class OrderEvent:
    timestamp: datetime
    symbol: str
    side: OrderSide
    order_type: OrderType
    quantity: Decimal
    price: Decimal | None = None
    reduce_only: bool = False
    post_only: bool = False
    grid_level: int | None = None
    is_hedge: bool = False
    client_order_id: str | None = None


@dataclass(frozen=True)
class FillEvent:
    timestamp: datetime
    symbol: str
    side: OrderSide
    quantity: Decimal
    fill_price: Decimal
    commission: Decimal = ZERO
    order_id: str | None = None
    client_order_id: str | None = None
    grid_level: int | None = None
    is_hedge: bool = False

    @property
    def notional(self) -> Decimal:
        return self.quantity * self.fill_price


@dataclass(frozen=True)
class GridTriggerEvent:
    timestamp: datetime
    symbol: str
    level: int
    trigger_price: Decimal
    quantity: Decimal
    is_hedge: bool = False


@dataclass(frozen=True)
class HedgeTriggerEvent:
    timestamp: datetime
    symbol: str
    reason: str
    main_position_size: Decimal
    main_avg_price: Decimal
    current_price: Decimal
    unrealized_pnl: Decimal
    unrealized_pnl_pct: Decimal
    hedge_ratio: Decimal
    grid_spacing: Decimal


@dataclass(frozen=True)
class StopLossEvent:
    timestamp: datetime
    symbol: str
    reason: str
    position_size: Decimal
    avg_price: Decimal
    current_price: Decimal
    loss_amount: Decimal
    loss_pct: Decimal


@dataclass(frozen=True)
class TakeProfitEvent:
    timestamp: datetime
    symbol: str
    tp_level: int
    quantity: Decimal
    price: Decimal
    profit_amount: Decimal
    profit_pct: Decimal


Event = Union[
    TickEvent,
    BarEvent,
    SignalEvent,
    OrderEvent,
    FillEvent,
    GridTriggerEvent,
    HedgeTriggerEvent,
    StopLossEvent,
    TakeProfitEvent,
]

EVENT_TYPES: tuple[type, ...] = (
    TickEvent,
    BarEvent,
    SignalEvent,
    OrderEvent,
    FillEvent,
    GridTriggerEvent,
    HedgeTriggerEvent,
    StopLossEvent,
    TakeProfitEvent,
)


def event_kind(event: Event) -> str:
    """Short lowercase name for logs, e.g. ``fill`` or ``grid_trigger``."""
    match event:
        case TickEvent():
            return "tick"
        case BarEvent():
            return "bar"
        case SignalEvent():
            return "signal"
        case OrderEvent():
            return "order"
        case FillEvent():
            return "fill"
        case GridTriggerEvent():
            return "grid_trigger"
        case HedgeTriggerEvent():
            return "hedge_trigger"
        case StopLossEvent():
            return "stop_loss"
        case TakeProfitEvent():
            return "take_profit"
        case _:
            raise TypeError(f"not an event: {type(event).__name__}")


class EventQueue:
    """
    Min-heap of events keyed on ``(timestamp, insertion order)``.

    Events with equal timestamps come out in the order they were put.
    """

    def __init__(self) -> None:
        self._heap: list[tuple[datetime, int, Event]] = []
        self._counter = itertools.count()

    def put(self, event: Event) -> None:
        if not isinstance(event, EVENT_TYPES):
            raise TypeError(f"not an event: {type(event).__name__}")
        heapq.heappush(self._heap, (event.timestamp, next(self._counter), event))

    def get(self) -> Event | None:
        if not self._heap:
            return None
        return heapq.heappop(self._heap)[2]

    def peek(self) -> Event | None:
        return self._heap[0][2] if self._heap else None

    def drain(self) -> Iterator[Event]:
        """Pop events in order until the queue is empty."""
        while self._heap:
            yield heapq.heappop(self._heap)[2]

    def clear(self) -> None:
        self._heap.clear()

    def __len__(self) -> int:
        return len(self._heap)

    def __bool__(self) -> bool:
        return bool(self._heap)
