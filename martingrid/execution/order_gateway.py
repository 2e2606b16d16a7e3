"""
Order Execution Gateway - submission, retries, pending-order tracking and emergency exits.

Each submission is retried a fixed number of times with a fixed delay.
Resubmissions carry no idempotency key, so an order that the exchange
accepted before a network failure can be placed twice.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from martingrid.api.exceptions import ExchangeAPIError
from martingrid.api.exchange_protocol import IExchange, OrderStatusReport
from martingrid.core.types import (
    ZERO,
    GridLevel,
    MartingaleGrid,
    OrderSide,
    OrderState,
    OrderType,
    Side,
)
from martingrid.utils.logger import get_logger
from martingrid.utils.time_provider import LiveTimeProvider, TimeProvider

logger = get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class OrderResult:
    success: bool
    timestamp: datetime
    order_id: str | None = None
    filled_price: Decimal | None = None
    filled_quantity: Decimal | None = None
    commission: Decimal = ZERO
    error_message: str | None = None

    def __bool__(self) -> bool:
        return self.success


@dataclass
class PendingOrder:
    """Local view of an order the gateway placed"""

    order_id: str
    symbol: str
    side: OrderSide
    order_type: OrderType
    quantity: Decimal
    price: Decimal | None
    created_at: datetime
    reduce_only: bool = False
    grid_level: int | None = None
    is_hedge: bool = False
    status: OrderState = OrderState.PENDING
    filled_price: Decimal | None = None
    filled_quantity: Decimal | None = None
    commission: Decimal = ZERO
    updated_at: datetime | None = None

    @property
    def is_take_profit(self) -> bool:
        return self.reduce_only and self.order_type is OrderType.LIMIT

    def apply_report(self, report: OrderStatusReport, at: datetime) -> None:
        self.status = report.status
        self.filled_price = report.avg_price or self.price
        self.filled_quantity = report.executed_qty
        self.commission = report.commission
        self.updated_at = at

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "symbol": self.symbol,
            "side": self.side.value,
            "type": self.order_type.value,
            "quantity": str(self.quantity),
            "price": str(self.price) if self.price is not None else None,
            "status": self.status.value,
            "grid_level": self.grid_level,
            "reduce_only": self.reduce_only,
            "is_hedge": self.is_hedge,
        }


@dataclass(frozen=True)
class FailedOrder:
    symbol: str
    side: OrderSide
    order_type: OrderType
    quantity: Decimal
    price: Decimal | None
    error: str
    attempts: int
    timestamp: datetime


@dataclass
class ExecutionStats:
    orders_submitted: int = 0
    submit_attempts: int = 0
    retries: int = 0
    orders_cancelled: int = 0
    emergency_closes: int = 0
    emergency_close_failures: int = 0


class OrderExecutionGateway:
    """
    Places and tracks orders on an IExchange.

    Features:
    - Limit orders registered as pending until a status poll reports a fill
    - Market orders resolved with one status query after a settle delay
    - Sequential batch submission for grid entries and take-profit ladders
    - Remote-then-local cancellation
    - Emergency reduce-only close of a symbol's position
    """

    def __init__(
        self,
        exchange: IExchange,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        settle_delay: float = 0.5,
        batch_delay: float = 0.1,
        poll_delay: float = 0.05,
        time_provider: TimeProvider | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self.exchange = exchange
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.settle_delay = settle_delay
        self.batch_delay = batch_delay
        self.poll_delay = poll_delay
        self._clock = time_provider or LiveTimeProvider()
        self._sleep = sleep

        self.pending_orders: dict[str, PendingOrder] = {}
        self.filled_orders: list[PendingOrder] = []
        self.failed_orders: list[FailedOrder] = []
        self.unfilled_orders: list[PendingOrder] = []
        self.stats = ExecutionStats()

    # =========================================================================
    # Retry core
    # =========================================================================

    def _log_retry(self, state: RetryCallState) -> None:
        self.stats.retries += 1
        error = state.outcome.exception() if state.outcome else None
        logger.warning(
            "order_submit_retry",
            attempt=state.attempt_number,
            max_retries=self.max_retries,
            error=str(error),
        )

    async def _submit(
        self,
        symbol: str,
        side: OrderSide,
        order_type: OrderType,
        quantity: Decimal,
        price: Decimal | None,
        reduce_only: bool,
    ) -> tuple[str | None, str | None, int]:
        """
        Place an order with the fixed retry budget.

        Returns:
            ``(order_id, last_error, attempts)``; order_id is None on exhaustion
        """
        attempts = 0
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_fixed(self.retry_delay),
            retry=retry_if_exception_type(ExchangeAPIError),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    attempts += 1
                    self.stats.submit_attempts += 1
                    order_id = await self.exchange.place_order(
                        symbol, side, order_type, quantity, price, reduce_only
                    )
                    self.stats.orders_submitted += 1
                    return order_id, None, attempts
        except ExchangeAPIError as e:
            return None, str(e), attempts
        return None, "no attempt made", attempts

    def _record_failure(
        self,
        symbol: str,
        side: OrderSide,
        order_type: OrderType,
        quantity: Decimal,
        price: Decimal | None,
        error: str,
        attempts: int,
    ) -> OrderResult:
        now = self._clock.now()
        self.failed_orders.append(
            FailedOrder(
                symbol=symbol,
                side=side,
                order_type=order_type,
                quantity=quantity,
                price=price,
                error=error,
                attempts=attempts,
                timestamp=now,
            )
        )
        logger.error(
            "order_failed",
            symbol=symbol,
            side=side.value,
            type=order_type.value,
            quantity=str(quantity),
            price=str(price) if price is not None else None,
            attempts=attempts,
            error=error,
        )
        return OrderResult(success=False, timestamp=now, error_message=error)

    # =========================================================================
    # Single orders
    # =========================================================================

    async def execute_limit_order(
        self,
        symbol: str,
        side: OrderSide,
        price: Decimal,
        quantity: Decimal,
        reduce_only: bool = False,
        grid_level: int | None = None,
        is_hedge: bool = False,
    ) -> OrderResult:
        """
        Submit a limit order and register it as pending.

        Returns:
            OrderResult without fill data on success; the last error after
            ``max_retries`` failed attempts otherwise
        """
        order_id, error, attempts = await self._submit(
            symbol, side, OrderType.LIMIT, quantity, price, reduce_only
        )
        if order_id is None:
            return self._record_failure(
                symbol, side, OrderType.LIMIT, quantity, price, error or "", attempts
            )

        now = self._clock.now()
        self.pending_orders[order_id] = PendingOrder(
            order_id=order_id,
            symbol=symbol,
            side=side,
            order_type=OrderType.LIMIT,
            quantity=quantity,
            price=price,
            created_at=now,
            reduce_only=reduce_only,
            grid_level=grid_level,
            is_hedge=is_hedge,
        )
        logger.info(
            "limit_order_pending",
            symbol=symbol,
            side=side.value,
            price=str(price),
            quantity=str(quantity),
            order_id=order_id,
            grid_level=grid_level,
            reduce_only=reduce_only,
        )
        return OrderResult(success=True, timestamp=now, order_id=order_id)

    async def execute_market_order(
        self,
        symbol: str,
        side: OrderSide,
        quantity: Decimal,
        reduce_only: bool = False,
        is_hedge: bool = False,
    ) -> OrderResult:
        order_id, error, attempts = await self._submit(
            symbol, side, OrderType.MARKET, quantity, None, reduce_only
        )
        if order_id is None:
            return self._record_failure(
                symbol, side, OrderType.MARKET, quantity, None, error or "", attempts
            )

        await self._sleep(self.settle_delay)

        order = PendingOrder(
            order_id=order_id,
            symbol=symbol,
            side=side,
            order_type=OrderType.MARKET,
            quantity=quantity,
            price=None,
            created_at=self._clock.now(),
            reduce_only=reduce_only,
            is_hedge=is_hedge,
        )
        try:
            report = await self.exchange.get_order_status(symbol, order_id)
        except ExchangeAPIError as e:
            # Submitted but unconfirmed; report success without fill data
            logger.warning(
                "market_order_status_unknown", symbol=symbol, order_id=order_id, error=str(e)
            )
            return OrderResult(success=True, timestamp=self._clock.now(), order_id=order_id)

        order.apply_report(report, self._clock.now())
        order.status = OrderState.FILLED if report.executed_qty > 0 else report.status
        self.filled_orders.append(order)

        logger.info(
            "market_order_filled",
            symbol=symbol,
            side=side.value,
            order_id=order_id,
            avg_price=str(report.avg_price),
            executed_qty=str(report.executed_qty),
            reduce_only=reduce_only,
        )
        return OrderResult(
            success=True,
            timestamp=order.updated_at or self._clock.now(),
            order_id=order_id,
            filled_price=report.avg_price,
            filled_quantity=report.executed_qty,
            commission=report.commission,
        )

    # =========================================================================
    # Batches
    # =========================================================================

    async def execute_grid_entry_orders(
        self,
        grid: MartingaleGrid,
        levels: Iterable[GridLevel],
        should_continue: Callable[[], bool] | None = None,
    ) -> list[OrderResult]:
        results = []
        for level in levels:
            if should_continue is not None and not should_continue():
                logger.info("batch_interrupted", symbol=grid.symbol, kind="entry")
                break
            results.append(
                await self.execute_limit_order(
                    grid.symbol,
                    grid.side.entry_order_side,
                    level.price,
                    level.quantity,
                    grid_level=level.level,
                )
            )
            await self._sleep(self.batch_delay)
        return results

    async def execute_take_profit_orders(
        self,
        grid: MartingaleGrid,
        should_continue: Callable[[], bool] | None = None,
    ) -> list[OrderResult]:
        """Place the grid's take-profit ladder as reduce-only exits."""
        results = []
        for tp in grid.take_profit_orders:
            if should_continue is not None and not should_continue():
                logger.info("batch_interrupted", symbol=grid.symbol, kind="take_profit")
                break
            results.append(
                await self.execute_limit_order(
                    grid.symbol,
                    grid.side.exit_order_side,
                    tp.price,
                    tp.quantity,
                    reduce_only=True,
                    grid_level=tp.level,
                )
            )
            await self._sleep(self.batch_delay)
        return results

    # =========================================================================
    # Tracking
    # =========================================================================

    async def check_order_status(self, order_id: str, symbol: str) -> OrderStatusReport | None:
        try:
            report = await self.exchange.get_order_status(symbol, order_id)
        except ExchangeAPIError as e:
            logger.warning("order_status_failed", symbol=symbol, order_id=order_id, error=str(e))
            return None

        order = self.pending_orders.get(order_id)
        if order is not None and report.status.has_fill:
            order.apply_report(report, self._clock.now())
            del self.pending_orders[order_id]
            self.filled_orders.append(order)
            logger.info(
                "order_filled",
                symbol=symbol,
                order_id=order_id,
                status=report.status.value,
                avg_price=str(report.avg_price),
                executed_qty=str(report.executed_qty),
                grid_level=order.grid_level,
            )
        elif order is not None and report.status in (
            OrderState.CANCELED,
            OrderState.REJECTED,
            OrderState.EXPIRED,
        ):
            order.status = report.status
            order.updated_at = self._clock.now()
            del self.pending_orders[order_id]
            self.unfilled_orders.append(order)
            logger.warning(
                "order_closed_without_fill",
                symbol=symbol,
                order_id=order_id,
                status=report.status.value,
            )
        return report

    async def update_pending_orders(self) -> list[PendingOrder]:
        """
        Poll every pending order once.

        Returns:
            Orders that moved to the filled collection during this pass
        """
        newly_filled = []
        for order_id, order in list(self.pending_orders.items()):
            report = await self.check_order_status(order_id, order.symbol)
            if report is not None and report.status.has_fill:
                newly_filled.append(order)
            await self._sleep(self.poll_delay)
        return newly_filled

    def drain_unfilled_orders(self) -> list[PendingOrder]:
        """
        Return and forget orders the exchange closed without any fill.

        Cancellations requested through this gateway are not included.
        """
        closed, self.unfilled_orders = self.unfilled_orders, []
        return closed

    def get_pending_orders(self, symbol: str | None = None) -> list[PendingOrder]:
        return [o for o in self.pending_orders.values() if symbol is None or o.symbol == symbol]

    # =========================================================================
    # Cancellation
    # =========================================================================

    async def cancel_pending_order(self, order_id: str, symbol: str) -> bool:
        try:
            await self.exchange.cancel_order(symbol, order_id)
        except ExchangeAPIError as e:
            logger.error("order_cancel_failed", symbol=symbol, order_id=order_id, error=str(e))
            return False

        order = self.pending_orders.pop(order_id, None)
        if order is not None:
            order.status = OrderState.CANCELED
        self.stats.orders_cancelled += 1
        logger.info("order_cancelled", symbol=symbol, order_id=order_id)
        return True

    async def cancel_all_pending_orders(self, symbol: str) -> int:
        try:
            await self.exchange.cancel_all_orders(symbol)
        except ExchangeAPIError as e:
            logger.error("cancel_all_failed", symbol=symbol, error=str(e))
            return 0

        removed = [oid for oid, o in self.pending_orders.items() if o.symbol == symbol]
        for order_id in removed:
            self.pending_orders.pop(order_id).status = OrderState.CANCELED
        self.stats.orders_cancelled += len(removed)
        logger.info("orders_cancelled", symbol=symbol, count=len(removed))
        return len(removed)

    async def emergency_close_position(
        self, symbol: str, quantity: Decimal, side: Side
    ) -> OrderResult:
        """
        Cancel the symbol's orders and flatten ``quantity`` with a reduce-only market order.

        Args:
            symbol: Symbol to flatten
            quantity: Position size to close
            side: Direction of the position being closed
        """
        logger.warning(
            "emergency_close_started", symbol=symbol, quantity=str(quantity), side=side.value
        )
        await self.cancel_all_pending_orders(symbol)

        self.stats.emergency_closes += 1
        result = await self.execute_market_order(
            symbol, side.exit_order_side, quantity, reduce_only=True
        )
        if not result.success:
            self.stats.emergency_close_failures += 1
            logger.critical(
                "emergency_close_failed",
                symbol=symbol,
                quantity=str(quantity),
                side=side.value,
                error=result.error_message,
            )
        else:
            logger.warning(
                "emergency_close_done",
                symbol=symbol,
                order_id=result.order_id,
                filled_price=str(result.filled_price),
            )
        return result

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_execution_stats(self) -> dict[str, Any]:
        filled = len(self.filled_orders)
        failed = len(self.failed_orders)
        finished = filled + failed
        return {
            "pending_orders": len(self.pending_orders),
            "filled_orders": filled,
            "failed_orders": failed,
            "success_rate": filled / finished * 100 if finished else 0.0,
            "orders_submitted": self.stats.orders_submitted,
            "submit_attempts": self.stats.submit_attempts,
            "retries": self.stats.retries,
            "orders_cancelled": self.stats.orders_cancelled,
            "emergency_closes": self.stats.emergency_closes,
            "emergency_close_failures": self.stats.emergency_close_failures,
        }
