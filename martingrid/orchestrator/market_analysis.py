"""
Market analysis contract between the indicator collaborator and the engine.

The analyzer itself (EMA/ADX trend, CCI entries, ATR volatility) lives
outside this package; the engine only ranks what it returns.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Protocol, runtime_checkable

from martingrid.core.types import CCISignal, Side, TrendState, VolatilityMetrics


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass(frozen=True)
class MarketAnalysis:
    symbol: str
    timestamp: datetime
    trend: TrendState
    cci_signal: CCISignal
    volatility: VolatilityMetrics
    current_price: Decimal
    should_trade: bool
    recommended_side: Side | None
    recommended_position_size: Decimal
    risk_level: RiskLevel = RiskLevel.MEDIUM

    @property
    def signal_strength(self) -> float:
        return self.cci_signal.strength


@runtime_checkable
class IMarketAnalyzer(Protocol):
    async def analyze(self, symbol: str) -> MarketAnalysis:
        """
        Raises:
            InsufficientDataError: not enough market data for this symbol
        """
        ...


def find_trading_opportunities(
    analyses: Iterable[MarketAnalysis], min_strength: float = 0.6
) -> list[MarketAnalysis]:
    """Tradeable analyses at or above ``min_strength``, strongest first."""
    candidates = [
        a
        for a in analyses
        if a.should_trade
        and a.recommended_side is not None
        and a.signal_strength >= min_strength
    ]
    return sorted(candidates, key=lambda a: a.signal_strength, reverse=True)
