"""Strategy configuration"""

from martingrid.config.manager import ConfigManager
from martingrid.config.schemas import (
    CCIConfig,
    DirectionalConfig,
    ExchangeConfig,
    ExecutionConfig,
    GridConfig,
    HedgeConfig,
    LoggingConfig,
    PartialExit,
    PortfolioConfig,
    RiskConfig,
    StrategyConfig,
    TakeProfitConfig,
    TrendConfig,
)

__all__ = [
    "ConfigManager",
    "StrategyConfig",
    "TrendConfig",
    "CCIConfig",
    "GridConfig",
    "PartialExit",
    "TakeProfitConfig",
    "RiskConfig",
    "DirectionalConfig",
    "HedgeConfig",
    "PortfolioConfig",
    "ExchangeConfig",
    "ExecutionConfig",
    "LoggingConfig",
]
