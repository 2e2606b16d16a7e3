"""Error taxonomy for the grid engine and its exchange boundary"""


class MartingridError(Exception):
    """Base exception for all engine errors"""

    pass


class ConfigurationError(MartingridError):
    """Raised before startup when the strategy configuration is unusable"""

    pass


class InsufficientDataError(MartingridError):
    """Raised by a market analyzer that cannot build a snapshot for a symbol"""

    def __init__(self, symbol: str, reason: str = "") -> None:
        self.symbol = symbol
        self.reason = reason
        super().__init__(f"Insufficient data for {symbol}: {reason}" if reason else symbol)


class RiskLimitExceeded(MartingridError):
    """Raised when a grid breaches a hard risk limit and must be closed"""

    def __init__(self, symbol: str, warnings: list[str]) -> None:
        self.symbol = symbol
        self.warnings = list(warnings)
        super().__init__(f"Risk limit exceeded for {symbol}: {'; '.join(self.warnings)}")


class InterruptSignal(MartingridError):
    """Raised when the process receives SIGINT/SIGTERM"""

    def __init__(self, signal_name: str = "SIGINT") -> None:
        self.signal_name = signal_name
        super().__init__(f"Interrupted by {signal_name}")


# =========================================================================
# Exchange errors
# =========================================================================


class ExchangeAPIError(MartingridError):
    """Base exception for all exchange request errors"""

    pass


# Older name for a retryable request failure
ExchangeRequestError = ExchangeAPIError


class RateLimitError(ExchangeAPIError):
    """Raised when exchange rate limit is exceeded"""

    pass


class AuthenticationError(ExchangeAPIError):
    """Raised when API key authentication fails"""

    pass


class InsufficientFundsError(ExchangeAPIError):
    """Raised when margin balance is too low for the order"""

    pass


class OrderError(ExchangeAPIError):
    """Raised when order placement or management fails"""

    pass


class NetworkError(ExchangeAPIError):
    """Raised when network communication with exchange fails"""

    pass


class ExchangeNotAvailableError(ExchangeAPIError):
    """Raised when exchange is not available (maintenance, etc.)"""

    pass


class InvalidOrderError(ExchangeAPIError):
    """Raised when order parameters are rejected"""

    pass
