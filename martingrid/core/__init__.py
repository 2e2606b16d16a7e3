"""Core trading logic: domain types, events, grid engine, ledger and risk"""

from martingrid.core.types import (
    POSITION_EPSILON,
    CCISignal,
    GridHealth,
    GridLevel,
    MartingaleGrid,
    OrderSide,
    OrderState,
    OrderType,
    Side,
    TakeProfitLevel,
    TrendDirection,
    TrendState,
    TrendStrength,
    VolatilityMetrics,
    VolatilityState,
)

__all__ = [
    "POSITION_EPSILON",
    "CCISignal",
    "GridHealth",
    "GridLevel",
    "MartingaleGrid",
    "OrderSide",
    "OrderState",
    "OrderType",
    "Side",
    "TakeProfitLevel",
    "TrendDirection",
    "TrendState",
    "TrendStrength",
    "VolatilityMetrics",
    "VolatilityState",
]
