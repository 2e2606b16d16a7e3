"""Shared fixtures: manual clock, strategy configs, indicator snapshots, in-memory exchange."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from martingrid.api.exceptions import ExchangeAPIError, InsufficientDataError
from martingrid.api.exchange_protocol import (
    AccountBalance,
    AccountInfo,
    ExchangePosition,
    Kline,
    OpenOrder,
    OrderStatusReport,
    Ticker24h,
)
from martingrid.config.schemas import (
    DirectionalConfig,
    ExchangeConfig,
    ExecutionConfig,
    GridConfig,
    PortfolioConfig,
    StrategyConfig,
)
from martingrid.core.grid_engine import GridEngine
from martingrid.core.types import (
    CCISignal,
    OrderSide,
    OrderState,
    OrderType,
    Side,
    TrendDirection,
    TrendState,
    TrendStrength,
    VolatilityMetrics,
    VolatilityState,
)
from martingrid.orchestrator.market_analysis import MarketAnalysis
from martingrid.utils.time_provider import ManualTimeProvider

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


# =========================================================================
# In-memory exchange
# =========================================================================


class FakeExchange:
    """
    IExchange kept in memory.

    Limit orders rest until ``fill_order`` is called; market orders fill at
    the current ticker price and are charged ``commission``. ``place_failures``
    makes the next N placements raise ExchangeAPIError.
    """

    def __init__(self, balance: Decimal = Decimal("7000")) -> None:
        self.prices: dict[str, Decimal] = {}
        self.balance = balance
        self.available = balance
        self.positions: dict[str, ExchangePosition] = {}
        self.orders: dict[str, OpenOrder] = {}
        self.reports: dict[str, OrderStatusReport] = {}
        self.placed: list[OpenOrder] = []
        self.leverage: dict[str, int] = {}
        self.margin_types: dict[str, str] = {}
        self.cancel_all_calls: list[str] = []
        self.place_failures = 0
        self.commission = Decimal("0")
        self.margin_type_error = False
        self._next_id = 0

    async def get_server_time(self) -> datetime:
        return START

    async def get_klines(self, symbol: str, interval: str, limit: int = 500) -> list[Kline]:
        return []

    async def get_ticker_price(self, symbol: str) -> Decimal:
        return self.prices[symbol]

    async def get_ticker_24hr(self, symbol: str) -> Ticker24h:
        price = self.prices[symbol]
        return Ticker24h(symbol, price, Decimal("0"), price, price, Decimal("0"))

    async def get_account_balance(self) -> AccountBalance:
        return AccountBalance("USDT", self.balance, self.available)

    async def get_account_info(self) -> AccountInfo:
        return AccountInfo(self.balance, Decimal("0"), self.balance, self.available)

    async def get_position(self, symbol: str) -> ExchangePosition | None:
        return self.positions.get(symbol)

    async def get_all_positions(self) -> list[ExchangePosition]:
        return list(self.positions.values())

    async def set_leverage(self, symbol: str, leverage: int) -> None:
        self.leverage[symbol] = leverage

    async def set_margin_type(self, symbol: str, margin_type: str) -> None:
        if self.margin_type_error:
            raise ExchangeAPIError("No need to change margin type")
        self.margin_types[symbol] = margin_type

    async def place_order(
        self,
        symbol: str,
        side: OrderSide,
        order_type: OrderType,
        quantity: Decimal,
        price: Decimal | None = None,
        reduce_only: bool = False,
    ) -> str:
        if self.place_failures > 0:
            self.place_failures -= 1
            raise ExchangeAPIError("exchange unavailable")

        self._next_id += 1
        order_id = str(self._next_id)
        order = OpenOrder(order_id, symbol, side, order_type, price, quantity, reduce_only)
        self.placed.append(order)

        if order_type is OrderType.MARKET:
            self.reports[order_id] = OrderStatusReport(
                order_id,
                symbol,
                OrderState.FILLED,
                self.prices[symbol],
                quantity,
                self.commission,
            )
        else:
            self.orders[order_id] = order
            self.reports[order_id] = OrderStatusReport(order_id, symbol, OrderState.NEW)
        return order_id

    async def cancel_order(self, symbol: str, order_id: str) -> None:
        self.orders.pop(order_id, None)
        self.reports[order_id] = OrderStatusReport(order_id, symbol, OrderState.CANCELED)

    async def cancel_all_orders(self, symbol: str) -> None:
        self.cancel_all_calls.append(symbol)
        for order_id in [oid for oid, o in self.orders.items() if o.symbol == symbol]:
            await self.cancel_order(symbol, order_id)

    async def get_open_orders(self, symbol: str) -> list[OpenOrder]:
        return [o for o in self.orders.values() if o.symbol == symbol]

    async def get_order_status(self, symbol: str, order_id: str) -> OrderStatusReport:
        return self.reports[order_id]

    def fill_order(self, order_id: str, price: Decimal | None = None) -> None:
        order = self.orders.pop(order_id)
        self.reports[order_id] = OrderStatusReport(
            order_id,
            order.symbol,
            OrderState.FILLED,
            price if price is not None else order.price,
            order.quantity,
        )

    def partial_fill(self, order_id: str, quantity: Decimal) -> None:
        """Execute part of a resting order; the rest stays on the book."""
        order = self.orders[order_id]
        self.reports[order_id] = OrderStatusReport(
            order_id, order.symbol, OrderState.PARTIALLY_FILLED, order.price, quantity
        )


class StubAnalyzer:
    """Returns preset analyses; symbols without one have insufficient data."""

    def __init__(self, analyses: dict[str, MarketAnalysis] | None = None) -> None:
        self.analyses = analyses or {}
        self.calls: list[str] = []

    async def analyze(self, symbol: str) -> MarketAnalysis:
        self.calls.append(symbol)
        if symbol not in self.analyses:
            raise InsufficientDataError(symbol, "no candles")
        return self.analyses[symbol]


# =========================================================================
# Fixtures
# =========================================================================


@pytest.fixture
def clock():
    return ManualTimeProvider(START)


@pytest.fixture
def exchange_config():
    return ExchangeConfig(api_key="test_key", api_secret="test_secret")


@pytest.fixture
def strategy_config(exchange_config):
    """Default strategy config with credentials filled in."""
    return StrategyConfig(exchange=exchange_config)


@pytest.fixture
def engine_config():
    """
    Small, fast config for orchestrator tests.

    One symbol slot, no reserve, leverage 1, factor 2 over 3 levels: a
    7000 balance at price 100 gives a base quantity of exactly 10.
    """
    return StrategyConfig(
        exchange=ExchangeConfig(
            api_key="test_key",
            api_secret="test_secret",
            retry_delay_seconds=0,
        ),
        long=DirectionalConfig(
            leverage=1,
            wallet_exposure_limit=Decimal("1"),
            grid=GridConfig(max_levels=3, ddown_factor=Decimal("2")),
        ),
        portfolio=PortfolioConfig(
            max_symbols=1,
            reserved_capital_pct=Decimal("0"),
            symbol_universe=["BTCUSDT", "ETHUSDT"],
        ),
        execution=ExecutionConfig(
            loop_interval_seconds=0.01,
            settle_delay_seconds=0,
            batch_delay_seconds=0,
            poll_delay_seconds=0,
        ),
    )


@pytest.fixture
def grid_engine(clock):
    return GridEngine(time_provider=clock)


@pytest.fixture
def trend():
    return TrendState(
        primary_trend=TrendDirection.UPTREND,
        secondary_trend=TrendDirection.UPTREND,
        strength=TrendStrength.MODERATE,
        confirmed=True,
        ema_fast=Decimal("101"),
        ema_slow=Decimal("95"),
        separation_pct=6.3,
        adx=28.0,
        timestamp=START,
    )


@pytest.fixture
def cci_signal():
    return CCISignal(
        direction=Side.LONG,
        strength=0.8,
        level=2,
        cci_value=-160.0,
        suggested_position_pct=Decimal("0.5"),
        timestamp=START,
    )


@pytest.fixture
def volatility():
    """1% ATR: spacing 1.8% on majors with default multipliers."""
    return VolatilityMetrics(
        atr=Decimal("1"),
        atr_pct=Decimal("0.01"),
        hl_volatility=Decimal("0.012"),
        return_volatility=Decimal("0.009"),
        composite=Decimal("0.01"),
        state=VolatilityState.MEDIUM,
        timestamp=START,
    )


@pytest.fixture
def make_analysis(trend, cci_signal, volatility):
    def _make(
        symbol: str = "BTCUSDT",
        price: Decimal = Decimal("100"),
        strength: float = 0.8,
        side: Side | None = Side.LONG,
        should_trade: bool = True,
        position_size: Decimal = Decimal("1"),
    ) -> MarketAnalysis:
        signal = CCISignal(
            direction=side,
            strength=strength,
            level=cci_signal.level,
            cci_value=cci_signal.cci_value,
            suggested_position_pct=cci_signal.suggested_position_pct,
            timestamp=START,
        )
        return MarketAnalysis(
            symbol=symbol,
            timestamp=START,
            trend=trend,
            cci_signal=signal,
            volatility=volatility,
            current_price=price,
            should_trade=should_trade,
            recommended_side=side,
            recommended_position_size=position_size,
        )

    return _make


@pytest.fixture
def fake_exchange():
    exchange = FakeExchange()
    exchange.prices = {"BTCUSDT": Decimal("100"), "ETHUSDT": Decimal("50")}
    return exchange
