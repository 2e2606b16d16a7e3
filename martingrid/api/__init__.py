"""Exchange boundary: capability protocols, ccxt adapters and the error taxonomy"""

from martingrid.api.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ExchangeAPIError,
    ExchangeNotAvailableError,
    ExchangeRequestError,
    InsufficientDataError,
    InsufficientFundsError,
    InterruptSignal,
    InvalidOrderError,
    MartingridError,
    NetworkError,
    OrderError,
    RateLimitError,
    RiskLimitExceeded,
)
from martingrid.api.exchange_protocol import (
    AccountBalance,
    AccountInfo,
    ExchangePosition,
    IExchange,
    IMarketStream,
    Kline,
    OpenOrder,
    OrderStatusReport,
    Ticker24h,
)

__all__ = [
    "MartingridError",
    "ConfigurationError",
    "InsufficientDataError",
    "RiskLimitExceeded",
    "InterruptSignal",
    "ExchangeAPIError",
    "ExchangeRequestError",
    "RateLimitError",
    "AuthenticationError",
    "InsufficientFundsError",
    "OrderError",
    "NetworkError",
    "ExchangeNotAvailableError",
    "InvalidOrderError",
    "IExchange",
    "IMarketStream",
    "AccountBalance",
    "AccountInfo",
    "ExchangePosition",
    "Kline",
    "OpenOrder",
    "OrderStatusReport",
    "Ticker24h",
]
