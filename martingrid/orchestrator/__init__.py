"""Control loop and the market analysis contract it consumes"""

from martingrid.orchestrator.market_analysis import (
    IMarketAnalyzer,
    MarketAnalysis,
    RiskLevel,
    find_trading_opportunities,
)
from martingrid.orchestrator.trading_engine import TradingEngine

__all__ = [
    "TradingEngine",
    "MarketAnalysis",
    "IMarketAnalyzer",
    "RiskLevel",
    "find_trading_opportunities",
]
