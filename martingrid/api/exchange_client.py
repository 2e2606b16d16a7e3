"""
Futures exchange client over ccxt.

Implements IExchange for any ccxt venue with USDⓈ-M style perpetuals
(binanceusdm by default). Read-only calls retry transient failures with
exponential backoff; order placement is attempted once and leaves the retry
budget to the OrderExecutionGateway.
"""

import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import ccxt.async_support as ccxt_async
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from martingrid.api.exceptions import (
    AuthenticationError,
    ExchangeAPIError,
    ExchangeNotAvailableError,
    InsufficientFundsError,
    InvalidOrderError,
    NetworkError,
    OrderError,
    RateLimitError,
)
from martingrid.api.exchange_protocol import (
    AccountBalance,
    AccountInfo,
    ExchangePosition,
    Kline,
    OpenOrder,
    OrderStatusReport,
    Ticker24h,
)
from martingrid.core.types import ZERO, OrderSide, OrderState, OrderType
from martingrid.utils.logger import get_logger

logger = get_logger(__name__)

_transient = retry(
    retry=retry_if_exception_type((NetworkError, RateLimitError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    reraise=True,
)

_STATUS_MAP = {
    "closed": OrderState.FILLED,
    "canceled": OrderState.CANCELED,
    "cancelled": OrderState.CANCELED,
    "rejected": OrderState.REJECTED,
    "expired": OrderState.EXPIRED,
}


def _dec(value: Any) -> Decimal:
    if value is None or value == "":
        return ZERO
    return Decimal(str(value))


def _ms_to_datetime(ms: int | float) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


class CCXTExchangeClient:
    """
    ccxt-backed IExchange implementation.

    Features:
    - Engine symbols (``BTCUSDT``) resolved to ccxt market symbols
    - ccxt exceptions mapped onto the engine's ExchangeAPIError family
    - Request / error counters for the status report
    """

    def __init__(
        self,
        exchange_id: str,
        api_key: str,
        api_secret: str,
        testnet: bool = True,
        quote_asset: str = "USDT",
        default_type: str = "future",
        rate_limit_per_minute: int = 1200,
        timeout_seconds: float = 30.0,
    ) -> None:
        self.exchange_id = exchange_id
        self.quote_asset = quote_asset
        self._testnet = testnet
        self._config = {
            "apiKey": api_key,
            "secret": api_secret,
            "enableRateLimit": True,
            # ccxt throttles on milliseconds between requests
            "rateLimit": max(1, int(60_000 / rate_limit_per_minute)),
            "timeout": int(timeout_seconds * 1000),
            "options": {"defaultType": default_type},
        }
        self._exchange: ccxt_async.Exchange | None = None

        self._request_count = 0
        self._error_count = 0
        self._last_error: str | None = None

        logger.info("exchange_client_created", exchange=exchange_id, testnet=testnet)

    async def initialize(self) -> None:
        """Create the ccxt instance and load markets."""
        try:
            exchange_class = getattr(ccxt_async, self.exchange_id)
        except AttributeError as e:
            raise ExchangeAPIError(f"Unknown ccxt exchange: {self.exchange_id}") from e

        self._exchange = exchange_class(self._config)
        if self._testnet:
            self._exchange.set_sandbox_mode(True)

        await self._call(self._exchange.load_markets())
        logger.info(
            "exchange_initialized",
            exchange=self.exchange_id,
            markets=len(self._exchange.markets),
        )

    async def close(self) -> None:
        if self._exchange is not None:
            await self._exchange.close()
            logger.info(
                "exchange_closed",
                exchange=self.exchange_id,
                requests=self._request_count,
                errors=self._error_count,
            )

    # =========================================================================
    # Plumbing
    # =========================================================================

    def _map_ccxt_exception(self, e: Exception) -> ExchangeAPIError:
        self._last_error = str(e)
        # More specific ccxt classes first
        if isinstance(e, ccxt_async.RateLimitExceeded):
            return RateLimitError(f"Rate limit exceeded: {e}")
        elif isinstance(e, ccxt_async.AuthenticationError):
            return AuthenticationError(f"Authentication failed: {e}")
        elif isinstance(e, ccxt_async.InsufficientFunds):
            return InsufficientFundsError(f"Insufficient funds: {e}")
        elif isinstance(e, ccxt_async.OrderNotFound):
            return OrderError(f"Order not found: {e}")
        elif isinstance(e, ccxt_async.InvalidOrder):
            return InvalidOrderError(f"Invalid order: {e}")
        elif isinstance(e, ccxt_async.ExchangeNotAvailable):
            return ExchangeNotAvailableError(f"Exchange not available: {e}")
        elif isinstance(e, ccxt_async.NetworkError):
            return NetworkError(f"Network error: {e}")
        return ExchangeAPIError(f"Exchange API error: {e}")

    def _ensure_initialized(self) -> ccxt_async.Exchange:
        if self._exchange is None:
            raise ExchangeAPIError("Exchange not initialized")
        return self._exchange

    async def _call(self, coro):
        self._request_count += 1
        try:
            return await coro
        except ExchangeAPIError:
            self._error_count += 1
            raise
        except ccxt_async.BaseError as e:
            self._error_count += 1
            raise self._map_ccxt_exception(e) from e

    def _market_symbol(self, symbol: str) -> str:
        exchange = self._ensure_initialized()
        if "/" in symbol:
            return symbol
        try:
            return exchange.market(symbol)["symbol"]
        except ccxt_async.BadSymbol as e:
            raise InvalidOrderError(f"Unknown symbol {symbol}") from e

    # =========================================================================
    # Market data
    # =========================================================================

    @_transient
    async def get_server_time(self) -> datetime:
        exchange = self._ensure_initialized()
        return _ms_to_datetime(await self._call(exchange.fetch_time()))

    @_transient
    async def get_klines(self, symbol: str, interval: str, limit: int = 500) -> list[Kline]:
        exchange = self._ensure_initialized()
        rows = await self._call(
            exchange.fetch_ohlcv(self._market_symbol(symbol), interval, limit=limit)
        )
        return [
            Kline(
                open_time=_ms_to_datetime(row[0]),
                open=_dec(row[1]),
                high=_dec(row[2]),
                low=_dec(row[3]),
                close=_dec(row[4]),
                volume=_dec(row[5]),
            )
            for row in rows
        ]

    @_transient
    async def get_ticker_price(self, symbol: str) -> Decimal:
        exchange = self._ensure_initialized()
        ticker = await self._call(exchange.fetch_ticker(self._market_symbol(symbol)))
        return _dec(ticker.get("last") or ticker.get("close"))

    @_transient
    async def get_ticker_24hr(self, symbol: str) -> Ticker24h:
        exchange = self._ensure_initialized()
        ticker = await self._call(exchange.fetch_ticker(self._market_symbol(symbol)))
        return Ticker24h(
            symbol=symbol,
            last_price=_dec(ticker.get("last")),
            price_change_pct=_dec(ticker.get("percentage")),
            high=_dec(ticker.get("high")),
            low=_dec(ticker.get("low")),
            quote_volume=_dec(ticker.get("quoteVolume")),
        )

    # =========================================================================
    # Account
    # =========================================================================

    @_transient
    async def get_account_balance(self) -> AccountBalance:
        exchange = self._ensure_initialized()
        balance = await self._call(exchange.fetch_balance())
        asset = balance.get(self.quote_asset, {})
        return AccountBalance(
            asset=self.quote_asset,
            balance=_dec(asset.get("total")),
            available_balance=_dec(asset.get("free")),
        )

    @_transient
    async def get_account_info(self) -> AccountInfo:
        exchange = self._ensure_initialized()
        balance = await self._call(exchange.fetch_balance())
        info = balance.get("info") or {}
        asset = balance.get(self.quote_asset, {})
        return AccountInfo(
            total_wallet_balance=_dec(info.get("totalWalletBalance", asset.get("total"))),
            total_unrealized_pnl=_dec(info.get("totalUnrealizedProfit")),
            total_margin_balance=_dec(info.get("totalMarginBalance", asset.get("total"))),
            available_balance=_dec(info.get("availableBalance", asset.get("free"))),
            can_trade=bool(info.get("canTrade", True)),
        )

    def _to_position(self, raw: dict[str, Any]) -> ExchangePosition:
        return ExchangePosition(
            symbol=raw.get("info", {}).get("symbol") or raw.get("symbol", ""),
            size=_dec(raw.get("contracts")),
            entry_price=_dec(raw.get("entryPrice")),
            mark_price=_dec(raw.get("markPrice")),
            unrealized_pnl=_dec(raw.get("unrealizedPnl")),
            liquidation_price=_dec(raw.get("liquidationPrice")),
            leverage=int(raw.get("leverage") or 1),
            side=(raw.get("side") or "both").upper(),
        )

    @_transient
    async def get_position(self, symbol: str) -> ExchangePosition | None:
        exchange = self._ensure_initialized()
        rows = await self._call(exchange.fetch_positions([self._market_symbol(symbol)]))
        for raw in rows:
            position = self._to_position(raw)
            if position.size != 0:
                return position
        return None

    @_transient
    async def get_all_positions(self) -> list[ExchangePosition]:
        exchange = self._ensure_initialized()
        rows = await self._call(exchange.fetch_positions())
        return [p for p in map(self._to_position, rows) if p.size != 0]

    @_transient
    async def set_leverage(self, symbol: str, leverage: int) -> None:
        exchange = self._ensure_initialized()
        await self._call(exchange.set_leverage(leverage, self._market_symbol(symbol)))
        logger.info("leverage_set", symbol=symbol, leverage=leverage)

    @_transient
    async def set_margin_type(self, symbol: str, margin_type: str) -> None:
        exchange = self._ensure_initialized()
        mode = "cross" if margin_type.upper().startswith("CROSS") else "isolated"
        await self._call(exchange.set_margin_mode(mode, self._market_symbol(symbol)))
        logger.info("margin_type_set", symbol=symbol, margin_type=mode)

    # =========================================================================
    # Orders
    # =========================================================================

    async def place_order(
        self,
        symbol: str,
        side: OrderSide,
        order_type: OrderType,
        quantity: Decimal,
        price: Decimal | None = None,
        reduce_only: bool = False,
    ) -> str:
        exchange = self._ensure_initialized()
        params: dict[str, Any] = {"reduceOnly": True} if reduce_only else {}
        started = time.monotonic()
        result = await self._call(
            exchange.create_order(
                self._market_symbol(symbol),
                order_type.value.lower(),
                side.value.lower(),
                float(quantity),
                float(price) if price is not None else None,
                params,
            )
        )
        order_id = str(result["id"])
        logger.info(
            "order_placed",
            symbol=symbol,
            side=side.value,
            type=order_type.value,
            quantity=str(quantity),
            price=str(price) if price is not None else None,
            reduce_only=reduce_only,
            order_id=order_id,
            latency_ms=round((time.monotonic() - started) * 1000, 1),
        )
        return order_id

    @_transient
    async def cancel_order(self, symbol: str, order_id: str) -> None:
        exchange = self._ensure_initialized()
        await self._call(exchange.cancel_order(order_id, self._market_symbol(symbol)))

    @_transient
    async def cancel_all_orders(self, symbol: str) -> None:
        exchange = self._ensure_initialized()
        await self._call(exchange.cancel_all_orders(self._market_symbol(symbol)))

    @_transient
    async def get_open_orders(self, symbol: str) -> list[OpenOrder]:
        exchange = self._ensure_initialized()
        rows = await self._call(exchange.fetch_open_orders(self._market_symbol(symbol)))
        return [
            OpenOrder(
                order_id=str(row["id"]),
                symbol=symbol,
                side=OrderSide(row["side"].upper()),
                order_type=OrderType(row["type"].upper()),
                price=_dec(row["price"]) if row.get("price") is not None else None,
                quantity=_dec(row.get("amount")),
                reduce_only=bool(row.get("reduceOnly")),
            )
            for row in rows
        ]

    @_transient
    async def get_order_status(self, symbol: str, order_id: str) -> OrderStatusReport:
        exchange = self._ensure_initialized()
        row = await self._call(exchange.fetch_order(order_id, self._market_symbol(symbol)))
        return self.parse_order_status(symbol, row)

    @staticmethod
    def parse_order_status(symbol: str, row: dict[str, Any]) -> OrderStatusReport:
        raw_status = (row.get("status") or "open").lower()
        filled = _dec(row.get("filled"))
        if raw_status == "open":
            status = OrderState.PARTIALLY_FILLED if filled > 0 else OrderState.NEW
        else:
            status = _STATUS_MAP.get(raw_status, OrderState.NEW)
        fee = row.get("fee") or {}
        return OrderStatusReport(
            order_id=str(row.get("id")),
            symbol=symbol,
            status=status,
            avg_price=_dec(row.get("average") or row.get("price")),
            executed_qty=filled,
            commission=_dec(fee.get("cost")),
        )

    def get_statistics(self) -> dict[str, Any]:
        return {
            "exchange": self.exchange_id,
            "initialized": self._exchange is not None,
            "total_requests": self._request_count,
            "total_errors": self._error_count,
            "last_error": self._last_error,
        }
