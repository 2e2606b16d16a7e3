"""
Core domain types: enums, indicator snapshots, grid levels and the martingale grid.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

ZERO = Decimal("0")

# Quantities at or below this are treated as flat
POSITION_EPSILON = Decimal("0.0001")


# =========================================================================
# Enums
# =========================================================================


class OrderSide(str, Enum):
    """Exchange order side"""

    BUY = "BUY"
    SELL = "SELL"

    @property
    def opposite(self) -> OrderSide:
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY


class Side(str, Enum):
    """Grid / position direction"""

    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def opposite(self) -> Side:
        return Side.SHORT if self is Side.LONG else Side.LONG

    @property
    def entry_order_side(self) -> OrderSide:
        """Order side that grows a position in this direction."""
        return OrderSide.BUY if self is Side.LONG else OrderSide.SELL

    @property
    def exit_order_side(self) -> OrderSide:
        return self.entry_order_side.opposite


class OrderType(str, Enum):
    LIMIT = "LIMIT"
    MARKET = "MARKET"


class OrderState(str, Enum):
    """Order lifecycle status as reported by the exchange"""

    NEW = "NEW"
    PENDING = "PENDING"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED = "FILLED"
    CANCELED = "CANCELED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"

    @property
    def has_fill(self) -> bool:
        return self in (OrderState.FILLED, OrderState.PARTIALLY_FILLED)


class TrendDirection(str, Enum):
    UPTREND = "UPTREND"
    DOWNTREND = "DOWNTREND"
    RANGING = "RANGING"


class TrendStrength(str, Enum):
    WEAK = "WEAK"
    MODERATE = "MODERATE"
    STRONG = "STRONG"


class VolatilityState(str, Enum):
    VERY_LOW = "VERY_LOW"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    VERY_HIGH = "VERY_HIGH"


# =========================================================================
# Indicator snapshots (produced by an external analyzer)
# =========================================================================


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TrendState:
    primary_trend: TrendDirection
    secondary_trend: TrendDirection
    strength: TrendStrength
    confirmed: bool
    ema_fast: Decimal
    ema_slow: Decimal
    separation_pct: float
    adx: float
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class CCISignal:
    """
    Entry signal from the CCI collaborator.

    ``direction`` is None when there is no entry. ``strength`` is in [0, 1].
    """

    direction: Side | None
    strength: float
    level: int
    cci_value: float
    suggested_position_pct: Decimal
    timestamp: datetime = field(default_factory=_utcnow)

    @property
    def has_entry(self) -> bool:
        return self.direction is not None and self.strength > 0


@dataclass(frozen=True)
class VolatilityMetrics:
    atr: Decimal
    atr_pct: Decimal
    hl_volatility: Decimal
    return_volatility: Decimal
    composite: Decimal
    state: VolatilityState
    timestamp: datetime = field(default_factory=_utcnow)


# =========================================================================
# Grid levels
# =========================================================================


@dataclass(frozen=True)
class GridLevel:
    """
    One rung of a martingale ladder.

    Values are immutable: a fill produces a new GridLevel that the owning
    grid stores at the same index.
    """

    level: int
    price: Decimal
    quantity: Decimal
    filled: bool = False
    order_ref: str | None = None
    fill_time: datetime | None = None

    @property
    def notional(self) -> Decimal:
        return self.price * self.quantity

    def with_order(self, order_id: str) -> GridLevel:
        return replace(self, order_ref=order_id)

    def as_filled(
        self,
        order_id: str | None,
        fill_price: Decimal,
        at: datetime,
        quantity: Decimal | None = None,
    ) -> GridLevel:
        """Filled copy; ``quantity`` replaces the planned size when only part executed."""
        return replace(
            self,
            price=fill_price,
            quantity=quantity if quantity is not None and quantity > 0 else self.quantity,
            filled=True,
            order_ref=order_id or self.order_ref,
            fill_time=at,
        )


@dataclass(frozen=True)
class TakeProfitLevel:
    price: Decimal
    quantity: Decimal
    profit_pct: Decimal


@dataclass
class GridHealth:
    """Result of a grid health evaluation"""

    healthy: bool
    warnings: list[str] = field(default_factory=list)
    should_close: bool = False

    def __bool__(self) -> bool:
        return self.healthy

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "warnings": list(self.warnings),
            "should_close": self.should_close,
        }


# =========================================================================
# Martingale grid
# =========================================================================


@dataclass
class MartingaleGrid:
    """
    Directional martingale grid for one symbol.

    Invariants kept by GridEngine:
    - total_quantity is the sum of filled level quantities
    - average_entry is the value-weighted mean over filled levels only
    - len(levels) <= max_levels
    - new entries, once closed, stay closed
    """

    symbol: str
    side: Side
    entry_signal: CCISignal
    trend_snapshot: TrendState
    base_spacing: Decimal
    current_spacing: Decimal
    martingale_factor: Decimal
    max_levels: int
    base_quantity: Decimal = ZERO
    levels: list[GridLevel] = field(default_factory=list)
    total_quantity: Decimal = ZERO
    average_entry: Decimal = ZERO
    unrealized_pnl: Decimal = ZERO
    realized_pnl: Decimal = ZERO
    wallet_exposure: Decimal = ZERO
    liquidation_price: Decimal = ZERO
    active: bool = True
    creation_time: datetime = field(default_factory=_utcnow)
    last_fill_time: datetime | None = None
    take_profit_orders: list[GridLevel] = field(default_factory=list)
    take_profit_reference: Decimal | None = None
    _allow_new_entries: bool = field(default=True, init=False, repr=False)

    # -------------------------------------------------------------------------
    # Entry gate
    # -------------------------------------------------------------------------

    @property
    def allow_new_entries(self) -> bool:
        return self._allow_new_entries

    def close_entries(self) -> None:
        """Stop accepting new levels for the rest of this grid's life."""
        self._allow_new_entries = False

    # -------------------------------------------------------------------------
    # Level access
    # -------------------------------------------------------------------------

    @property
    def filled_levels(self) -> list[GridLevel]:
        return [lvl for lvl in self.levels if lvl.filled]

    @property
    def filled_count(self) -> int:
        return sum(1 for lvl in self.levels if lvl.filled)

    @property
    def last_filled_level(self) -> GridLevel | None:
        filled = self.filled_levels
        if not filled:
            return None
        return max(filled, key=lambda lvl: (lvl.fill_time or self.creation_time, lvl.level))

    @property
    def working_entry_levels(self) -> list[GridLevel]:
        """Unfilled levels with an order resting on the exchange."""
        return [lvl for lvl in self.levels if not lvl.filled and lvl.order_ref is not None]

    def index_of(self, level_number: int) -> int | None:
        for i, lvl in enumerate(self.levels):
            if lvl.level == level_number:
                return i
        return None

    def append_level(self, level: GridLevel) -> None:
        if len(self.levels) >= self.max_levels:
            raise ValueError(f"grid {self.symbol} already holds {self.max_levels} levels")
        self.levels.append(level)

    def replace_level(self, index: int, level: GridLevel) -> None:
        """Store ``level`` at ``index``; the level number must not change."""
        current = self.levels[index]
        if current.level != level.level:
            raise ValueError(
                f"level number mismatch at index {index}: {current.level} != {level.level}"
            )
        self.levels[index] = level

    def remove_level(self, level_number: int) -> GridLevel:
        """Drop an unfilled level whose order never reached or left the book."""
        index = self.index_of(level_number)
        if index is None:
            raise ValueError(f"grid {self.symbol} has no level {level_number}")
        if self.levels[index].filled:
            raise ValueError(f"level {level_number} of {self.symbol} is filled")
        return self.levels.pop(index)

    # -------------------------------------------------------------------------
    # Derived metrics
    # -------------------------------------------------------------------------

    @property
    def notional(self) -> Decimal:
        return self.total_quantity * self.average_entry

    @property
    def pnl_pct(self) -> Decimal:
        """Unrealized PnL as a percentage of the filled notional."""
        if self.notional <= 0:
            return ZERO
        return self.unrealized_pnl / self.notional * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "side": self.side.value,
            "levels": len(self.levels),
            "filled_levels": self.filled_count,
            "max_levels": self.max_levels,
            "current_spacing": str(self.current_spacing),
            "total_quantity": str(self.total_quantity),
            "average_entry": str(self.average_entry),
            "unrealized_pnl": str(self.unrealized_pnl),
            "realized_pnl": str(self.realized_pnl),
            "wallet_exposure": str(self.wallet_exposure),
            "active": self.active,
            "allow_new_entries": self.allow_new_entries,
            "take_profit_orders": len(self.take_profit_orders),
            "creation_time": self.creation_time.isoformat(),
            "last_fill_time": self.last_fill_time.isoformat() if self.last_fill_time else None,
        }
