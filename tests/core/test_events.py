"""Tests for the event model and EventQueue"""

from dataclasses import FrozenInstanceError
from datetime import timedelta
from decimal import Decimal

import pytest

from martingrid.core.events import (
    BarEvent,
    EventQueue,
    FillEvent,
    GridTriggerEvent,
    SignalEvent,
    SignalIndicators,
    StopLossEvent,
    TakeProfitEvent,
    TickEvent,
    event_kind,
)
from martingrid.core.types import OrderSide, Side
from tests.conftest import START


def tick(seconds: int, price: str = "100") -> TickEvent:
    return TickEvent(
        timestamp=START + timedelta(seconds=seconds),
        symbol="BTCUSDT",
        price=Decimal(price),
        quantity=Decimal("0.1"),
    )


class TestEventTypes:
    def test_events_are_frozen(self):
        event = tick(0)
        with pytest.raises(FrozenInstanceError):
            event.price = Decimal("1")  # type: ignore[misc]

    def test_fill_notional(self):
        fill = FillEvent(
            timestamp=START,
            symbol="BTCUSDT",
            side=OrderSide.BUY,
            quantity=Decimal("2"),
            fill_price=Decimal("50"),
        )
        assert fill.notional == Decimal("100")

    def test_signal_indicators_default(self):
        event = SignalEvent(
            timestamp=START,
            symbol="BTCUSDT",
            side=Side.LONG,
            strength=0.7,
            grid_spacing=Decimal("0.01"),
            max_levels=10,
            ddown_factor=Decimal("1.5"),
        )
        assert event.indicators == SignalIndicators()

    @pytest.mark.parametrize(
        "event,kind",
        [
            (tick(0), "tick"),
            (
                BarEvent(START, "BTCUSDT", "1m", *(Decimal("1"),) * 5),
                "bar",
            ),
            (GridTriggerEvent(START, "BTCUSDT", 2, Decimal("98"), Decimal("1.5")), "grid_trigger"),
            (
                StopLossEvent(
                    START, "BTCUSDT", "MAX_LOSS", *(Decimal("1"),) * 5
                ),
                "stop_loss",
            ),
            (
                TakeProfitEvent(START, "BTCUSDT", 1, *(Decimal("1"),) * 4),
                "take_profit",
            ),
        ],
    )
    def test_event_kind(self, event, kind):
        assert event_kind(event) == kind

    def test_event_kind_rejects_other_objects(self):
        with pytest.raises(TypeError):
            event_kind("not an event")  # type: ignore[arg-type]


class TestEventQueue:
    def test_orders_by_timestamp(self):
        queue = EventQueue()
        queue.put(tick(30))
        queue.put(tick(10))
        queue.put(tick(20))

        assert [e.timestamp.second for e in queue.drain()] == [10, 20, 30]

    def test_equal_timestamps_are_fifo(self):
        queue = EventQueue()
        first, second, third = tick(5, "1"), tick(5, "2"), tick(5, "3")
        for event in (first, second, third):
            queue.put(event)

        assert queue.get() is first
        assert queue.get() is second
        assert queue.get() is third

    def test_get_and_peek_on_empty_queue(self):
        queue = EventQueue()
        assert queue.get() is None
        assert queue.peek() is None
        assert not queue

    def test_peek_does_not_remove(self):
        queue = EventQueue()
        queue.put(tick(1))
        assert queue.peek() is not None
        assert len(queue) == 1

    def test_drain_empties_queue(self):
        queue = EventQueue()
        queue.put(tick(1))
        queue.put(tick(2))
        assert len(list(queue.drain())) == 2
        assert len(queue) == 0

    def test_clear(self):
        queue = EventQueue()
        queue.put(tick(1))
        queue.clear()
        assert len(queue) == 0

    def test_rejects_non_events(self):
        queue = EventQueue()
        with pytest.raises(TypeError):
            queue.put({"symbol": "BTCUSDT"})  # type: ignore[arg-type]
