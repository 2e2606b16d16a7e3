"""
TradingEngine - the single control loop.

Each iteration, in order: poll pending orders and book fills, manage every
active grid (risk, new levels, take-profit refresh), scan for new grids while
capacity remains, run portfolio checks, drain the event queue and log a
status report. One iteration finishes before the loop sleeps; the shutdown
event is checked between iterations and between batch steps.
"""

import asyncio
from datetime import datetime
from decimal import ROUND_DOWN, Decimal
from typing import Any

from martingrid.api.exceptions import (
    ExchangeAPIError,
    InsufficientDataError,
    RiskLimitExceeded,
)
from martingrid.api.exchange_protocol import IExchange
from martingrid.config.schemas import DirectionalConfig, StrategyConfig
from martingrid.core import grid_spacing
from martingrid.core.events import (
    BarEvent,
    Event,
    EventQueue,
    FillEvent,
    GridTriggerEvent,
    HedgeTriggerEvent,
    OrderEvent,
    SignalEvent,
    SignalIndicators,
    StopLossEvent,
    TakeProfitEvent,
    TickEvent,
    event_kind,
)
from martingrid.core.grid_engine import GridEngine
from martingrid.core.position_ledger import PositionLedger
from martingrid.core.risk_monitor import PortfolioRiskReport, RiskMonitor
from martingrid.core.types import ZERO, MartingaleGrid, OrderState, Side
from martingrid.execution.order_gateway import OrderExecutionGateway, OrderResult, PendingOrder
from martingrid.orchestrator.market_analysis import (
    IMarketAnalyzer,
    MarketAnalysis,
    find_trading_opportunities,
)
from martingrid.utils.logger import get_logger, log_context
from martingrid.utils.time_provider import LiveTimeProvider, TimeProvider

logger = get_logger(__name__)


class TradingEngine:
    """
    Sequences grid engine, ledger, risk monitor and gateway.

    Owns the active grid set; nothing else mutates it.
    """

    def __init__(
        self,
        config: StrategyConfig,
        exchange: IExchange,
        analyzer: IMarketAnalyzer,
        gateway: OrderExecutionGateway | None = None,
        grid_engine: GridEngine | None = None,
        ledger: PositionLedger | None = None,
        risk_monitor: RiskMonitor | None = None,
        time_provider: TimeProvider | None = None,
    ) -> None:
        self.config = config
        self.exchange = exchange
        self.analyzer = analyzer
        self._clock = time_provider or LiveTimeProvider()

        execution = config.execution
        self.grid_engine = grid_engine or GridEngine(
            time_provider=self._clock, assumed_leverage=execution.assumed_leverage
        )
        self.gateway = gateway or OrderExecutionGateway(
            exchange,
            max_retries=config.exchange.max_retries,
            retry_delay=config.exchange.retry_delay_seconds,
            settle_delay=execution.settle_delay_seconds,
            batch_delay=execution.batch_delay_seconds,
            poll_delay=execution.poll_delay_seconds,
            time_provider=self._clock,
        )
        self.ledger = ledger or PositionLedger()
        self.risk_monitor = risk_monitor or RiskMonitor(self.grid_engine)
        self.events = EventQueue()

        self.active_grids: dict[str, MartingaleGrid] = {}
        self.closed_grids: list[MartingaleGrid] = []
        self.last_prices: dict[str, Decimal] = {}
        self.last_risk_report: PortfolioRiskReport | None = None
        self.event_counts: dict[str, int] = {}

        self.iteration = 0
        self.total_pnl = ZERO
        self.total_trades = 0
        self.started_at: datetime | None = None
        self._shutdown: asyncio.Event | None = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._shutdown is not None and not self._shutdown.is_set()

    def _should_continue(self) -> bool:
        return self._shutdown is None or not self._shutdown.is_set()

    async def run(self, shutdown: asyncio.Event, max_iterations: int | None = None) -> None:
        """
        Run until ``shutdown`` is set or ``max_iterations`` complete, then close every grid.

        Args:
            shutdown: Cancellation token owned by the caller
            max_iterations: Optional iteration cap
        """
        self._shutdown = shutdown
        self.started_at = self._clock.now()
        interval = self.config.execution.loop_interval_seconds

        logger.info(
            "engine_started",
            symbols=self.config.portfolio.symbol_universe,
            max_symbols=self.config.portfolio.max_symbols,
            interval_seconds=interval,
            max_iterations=max_iterations,
        )

        try:
            while not shutdown.is_set():
                try:
                    await self.run_iteration()
                except Exception as e:
                    logger.error(
                        "iteration_error", iteration=self.iteration, error=str(e), exc_info=True
                    )

                if max_iterations is not None and self.iteration >= max_iterations:
                    break

                try:
                    await asyncio.wait_for(shutdown.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            await self.shutdown_all()

    async def run_iteration(self) -> None:
        self.iteration += 1
        logger.debug("iteration_started", iteration=self.iteration)

        await self.process_order_updates()
        await self.manage_existing_grids()

        if len(self.active_grids) < self.config.portfolio.max_symbols and self._should_continue():
            await self.scan_for_opportunities()

        await self.perform_risk_checks()
        self.process_events()
        self.status_report()

    async def shutdown_all(self) -> None:
        """Close every active grid and log final statistics."""
        logger.info("engine_shutting_down", active_grids=len(self.active_grids))
        for symbol in list(self.active_grids):
            try:
                await self.close_grid(symbol, "shutdown")
            except Exception as e:
                logger.critical("shutdown_close_failed", symbol=symbol, error=str(e), exc_info=True)
        self.process_events()
        logger.info("engine_stopped", **self.get_status(include_grids=False))

    # =========================================================================
    # Fills
    # =========================================================================

    async def process_order_updates(self) -> list[PendingOrder]:
        filled = await self.gateway.update_pending_orders()
        for order in filled:
            self._book_order_fill(order)
            if order.status is OrderState.PARTIALLY_FILLED:
                # The booked quantity is final; the rest must not fill unseen
                await self.gateway.cancel_pending_order(order.order_id, order.symbol)
        for order in self.gateway.drain_unfilled_orders():
            await self._release_unfilled_order(order)
        self.process_events()
        return filled

    async def _release_unfilled_order(self, order: PendingOrder) -> None:
        """Forget an order the exchange closed without a fill."""
        grid = self.active_grids.get(order.symbol)
        if grid is None or order.grid_level is None:
            return

        if order.is_take_profit:
            # Rebuilt on the next management pass
            grid.take_profit_reference = None
            return

        index = grid.index_of(order.grid_level)
        if index is None or grid.levels[index].order_ref != order.order_id:
            return
        self.grid_engine.discard_level(grid, order.grid_level, order.status.value)
        if grid.filled_count == 0 and not grid.levels:
            await self._abandon_grid(grid)

    async def _abandon_grid(self, grid: MartingaleGrid) -> None:
        """Drop a grid that never got a fill; it frees its symbol slot."""
        await self.gateway.cancel_all_pending_orders(grid.symbol)
        self._deactivate(grid)
        logger.warning("grid_abandoned", symbol=grid.symbol)

    def _book_order_fill(self, order: PendingOrder) -> FillEvent:
        price = order.filled_price or order.price or ZERO
        quantity = order.filled_quantity or order.quantity
        fill = FillEvent(
            timestamp=order.updated_at or self._clock.now(),
            symbol=order.symbol,
            side=order.side,
            quantity=quantity,
            fill_price=price,
            commission=order.commission,
            order_id=order.order_id,
            grid_level=order.grid_level,
            is_hedge=order.is_hedge,
        )
        self.events.put(fill)

        grid = self.active_grids.get(order.symbol)
        if grid is None:
            logger.warning("fill_without_grid", symbol=order.symbol, order_id=order.order_id)
            return fill

        if order.is_take_profit:
            self._book_take_profit(grid, order, fill)
        elif order.grid_level is not None:
            self.grid_engine.mark_level_filled(
                grid, order.grid_level, order.order_id, price, quantity
            )
        return fill

    def _book_take_profit(self, grid: MartingaleGrid, order: PendingOrder, fill: FillEvent) -> None:
        for index, rung in enumerate(grid.take_profit_orders):
            if rung.order_ref == order.order_id:
                grid.take_profit_orders[index] = rung.as_filled(
                    order.order_id, fill.fill_price, fill.timestamp, fill.quantity
                )
                break
        if order.status is OrderState.PARTIALLY_FILLED:
            # Remainder is canceled; re-ladder what is still held
            grid.take_profit_reference = None

        if grid.side is Side.LONG:
            profit = (fill.fill_price - grid.average_entry) * fill.quantity
        else:
            profit = (grid.average_entry - fill.fill_price) * fill.quantity
        profit -= fill.commission
        grid.realized_pnl += profit

        self.events.put(
            TakeProfitEvent(
                timestamp=fill.timestamp,
                symbol=grid.symbol,
                tp_level=order.grid_level or 0,
                quantity=fill.quantity,
                price=fill.fill_price,
                profit_amount=profit,
                profit_pct=(
                    profit / (grid.average_entry * fill.quantity) * 100
                    if grid.average_entry > 0 and fill.quantity > 0
                    else ZERO
                ),
            )
        )

    # =========================================================================
    # Grid management
    # =========================================================================

    async def manage_existing_grids(self) -> None:
        for symbol, grid in list(self.active_grids.items()):
            with log_context(symbol=symbol, side=grid.side.value):
                try:
                    await self._manage_grid(grid)
                except Exception as e:
                    logger.error("grid_management_error", error=str(e), exc_info=True)

    def _grid_completed(self, grid: MartingaleGrid) -> bool:
        """All quantity was exited through take-profit fills."""
        return (
            grid.total_quantity > 0
            and any(rung.filled for rung in grid.take_profit_orders)
            and not self.ledger.has_position(grid.symbol)
        )

    async def _manage_grid(self, grid: MartingaleGrid) -> None:
        if self._grid_completed(grid):
            await self._retire_grid(grid, "take_profit")
            return

        directional = self.config.directional(grid.side)
        price = await self.exchange.get_ticker_price(grid.symbol)
        balance = await self.exchange.get_account_balance()
        position = await self.exchange.get_position(grid.symbol)

        now = self._clock.now()
        self.last_prices[grid.symbol] = price
        self.ledger.update_price(grid.symbol, price, now)
        self.grid_engine.update_grid_metrics(
            grid,
            price,
            balance.balance,
            position.liquidation_price if position is not None else None,
        )

        try:
            self.risk_monitor.assert_grid_healthy(grid, price, directional.risk)
        except RiskLimitExceeded as e:
            self.events.put(self.risk_monitor.build_stop_loss_event(grid, price, e.warnings, now))
            await self.close_grid(grid.symbol, "; ".join(e.warnings))
            return

        if not grid.working_entry_levels and self.grid_engine.should_add_level(
            grid, price, directional.grid
        ):
            await self.add_new_grid_level(grid, price)

        if self.grid_engine.take_profit_needs_refresh(
            grid, directional.take_profit.refresh_threshold
        ):
            await self.refresh_take_profit_orders(grid, directional)

    async def add_new_grid_level(self, grid: MartingaleGrid, price: Decimal) -> OrderResult | None:
        level = self.grid_engine.add_grid_entry(grid, price, grid.base_quantity)
        if level is None:
            return None

        self.events.put(
            GridTriggerEvent(
                timestamp=self._clock.now(),
                symbol=grid.symbol,
                level=level.level,
                trigger_price=price,
                quantity=level.quantity,
            )
        )
        result = await self.gateway.execute_limit_order(
            grid.symbol,
            grid.side.entry_order_side,
            level.price,
            level.quantity,
            grid_level=level.level,
        )
        if result.success and result.order_id:
            self.grid_engine.attach_order(grid, level.level, result.order_id)
        else:
            logger.error("grid_level_order_failed", level=level.level, error=result.error_message)
            self.grid_engine.discard_level(grid, level.level, "submission failed")
        return result

    async def refresh_take_profit_orders(
        self, grid: MartingaleGrid, directional: DirectionalConfig
    ) -> list[OrderResult]:
        for rung in grid.take_profit_orders:
            if rung.order_ref and not rung.filled and rung.order_ref in self.gateway.pending_orders:
                await self.gateway.cancel_pending_order(rung.order_ref, grid.symbol)

        position = self.ledger.get_position(grid.symbol)
        ladder = self.grid_engine.create_take_profit_orders(
            grid,
            directional.take_profit,
            open_quantity=position.size if position is not None else None,
        )
        if not ladder:
            return []

        results = await self.gateway.execute_take_profit_orders(
            grid, should_continue=self._should_continue
        )
        for index, result in enumerate(results):
            if result.success and result.order_id:
                grid.take_profit_orders[index] = grid.take_profit_orders[index].with_order(
                    result.order_id
                )
        return results

    # =========================================================================
    # Opportunity scan
    # =========================================================================

    async def scan_for_opportunities(self) -> list[MartingaleGrid]:
        portfolio = self.config.portfolio
        capacity = portfolio.max_symbols - len(self.active_grids)
        if capacity <= 0:
            return []

        analyses: list[MarketAnalysis] = []
        for symbol in portfolio.symbol_universe:
            if symbol in self.active_grids:
                continue
            try:
                analysis = await self.analyzer.analyze(symbol)
                if await self._passes_market_filters(analysis):
                    analyses.append(analysis)
            except InsufficientDataError as e:
                logger.info("analysis_skipped", symbol=symbol, reason=str(e))
            except ExchangeAPIError as e:
                logger.warning("analysis_failed", symbol=symbol, error=str(e))
            except Exception as e:
                logger.error("analysis_error", symbol=symbol, error=str(e), exc_info=True)

        opened: list[MartingaleGrid] = []
        for analysis in find_trading_opportunities(analyses, portfolio.min_signal_strength):
            if len(self.active_grids) >= portfolio.max_symbols or not self._should_continue():
                break
            side = analysis.recommended_side
            if side is None or not self.config.directional(side).enabled:
                continue
            with log_context(symbol=analysis.symbol, side=side.value):
                try:
                    grid = await self.open_grid(analysis)
                except Exception as e:
                    logger.error("grid_open_failed", error=str(e), exc_info=True)
                    continue
            if grid is not None:
                opened.append(grid)
        return opened

    async def _passes_market_filters(self, analysis: MarketAnalysis) -> bool:
        """Volatility band and 24h quote volume floor from the portfolio section."""
        portfolio = self.config.portfolio
        atr_pct = analysis.volatility.atr_pct
        if not portfolio.min_volatility <= atr_pct <= portfolio.max_volatility:
            logger.info(
                "symbol_filtered",
                symbol=analysis.symbol,
                reason="volatility",
                atr_pct=float(atr_pct),
            )
            return False

        if portfolio.min_volume_usd > 0:
            ticker = await self.exchange.get_ticker_24hr(analysis.symbol)
            if ticker.quote_volume < portfolio.min_volume_usd:
                logger.info(
                    "symbol_filtered",
                    symbol=analysis.symbol,
                    reason="volume",
                    quote_volume=float(ticker.quote_volume),
                )
                return False
        return True

    def calculate_base_quantity(
        self, capital: Decimal, analysis: MarketAnalysis, directional: DirectionalConfig
    ) -> Decimal:
        """
        First-level quantity such that the full martingale ladder fits the symbol allocation.

        allocation = capital * (1 - reserved%) / max_symbols * position_pct
        notional   = allocation * wallet_exposure_limit * leverage
        base       = notional / sum(factor ** i for i < max_levels) / price
        """
        portfolio = self.config.portfolio
        exchange = self.config.exchange
        position_pct = (
            analysis.recommended_position_size
            if analysis.recommended_position_size > 0
            else analysis.cci_signal.suggested_position_pct
        )
        allocation = (
            capital
            * (1 - portfolio.reserved_capital_pct / 100)
            / portfolio.max_symbols
            * position_pct
        )
        notional = allocation * directional.wallet_exposure_limit * directional.leverage
        factor = directional.grid.effective_ddown_factor
        ladder_weight = sum((factor**i for i in range(directional.grid.max_levels)), ZERO)

        if analysis.current_price <= 0 or ladder_weight <= 0:
            return exchange.min_order_qty

        quantity = (notional / ladder_weight / analysis.current_price).quantize(
            Decimal(1).scaleb(-exchange.quantity_precision), rounding=ROUND_DOWN
        )
        return max(quantity, exchange.min_order_qty)

    async def open_grid(self, analysis: MarketAnalysis) -> MartingaleGrid | None:
        """Create a grid for ``analysis`` and place its first entry at the current price."""
        side = analysis.recommended_side
        if side is None:
            return None
        symbol = analysis.symbol
        directional = self.config.directional(side)

        balance = await self.exchange.get_account_balance()
        await self.exchange.set_leverage(symbol, directional.leverage)
        try:
            await self.exchange.set_margin_type(symbol, self.config.exchange.margin_type.value)
        except ExchangeAPIError as e:
            # Venues reject a no-op margin change
            logger.info("margin_type_unchanged", reason=str(e))

        base_quantity = self.calculate_base_quantity(
            balance.available_balance, analysis, directional
        )
        grid = self.grid_engine.create_grid(
            symbol,
            side,
            analysis.cci_signal,
            analysis.trend,
            analysis.volatility,
            directional,
            balance.available_balance,
            base_quantity=base_quantity,
        )

        self.events.put(
            SignalEvent(
                timestamp=analysis.timestamp,
                symbol=symbol,
                side=side,
                strength=analysis.signal_strength,
                grid_spacing=grid.current_spacing,
                max_levels=grid.max_levels,
                ddown_factor=grid.martingale_factor,
                indicators=SignalIndicators(
                    cci=analysis.cci_signal.cci_value,
                    adx=analysis.trend.adx,
                    atr_pct=analysis.volatility.atr_pct,
                    ema_fast=analysis.trend.ema_fast,
                    ema_slow=analysis.trend.ema_slow,
                ),
            )
        )

        level = self.grid_engine.add_grid_entry(grid, analysis.current_price, base_quantity)
        if level is None:
            return None

        result = await self.gateway.execute_limit_order(
            symbol, side.entry_order_side, level.price, level.quantity, grid_level=level.level
        )
        if not result.success or not result.order_id:
            logger.error("first_grid_order_failed", error=result.error_message)
            return None

        self.grid_engine.attach_order(grid, level.level, result.order_id)
        self.active_grids[symbol] = grid
        logger.info(
            "grid_opened",
            order_id=result.order_id,
            price=str(level.price),
            quantity=str(level.quantity),
            strength=analysis.signal_strength,
        )
        return grid

    # =========================================================================
    # Portfolio risk
    # =========================================================================

    async def perform_risk_checks(self) -> PortfolioRiskReport:
        report = self.risk_monitor.check_portfolio_exposure(
            self.active_grids.values(),
            self.config.long.wallet_exposure_limit,
            self.config.short.wallet_exposure_limit,
        )
        try:
            balance = await self.exchange.get_account_balance()
        except ExchangeAPIError as e:
            logger.error("risk_check_balance_failed", error=str(e))
        else:
            self.risk_monitor.check_available_balance(balance, report)
        self.last_risk_report = report
        return report

    # =========================================================================
    # Closing
    # =========================================================================

    def _residual_quantity(self, grid: MartingaleGrid) -> Decimal:
        position = self.ledger.get_position(grid.symbol)
        if position is not None:
            return position.size
        if any(rung.filled for rung in grid.take_profit_orders):
            return ZERO
        return grid.total_quantity

    def _deactivate(self, grid: MartingaleGrid) -> None:
        grid.active = False
        grid.close_entries()
        self.active_grids.pop(grid.symbol, None)
        self.closed_grids.append(grid)

    async def _retire_grid(self, grid: MartingaleGrid, reason: str) -> None:
        await self.gateway.cancel_all_pending_orders(grid.symbol)
        self.total_pnl += grid.realized_pnl
        self.total_trades += 1
        self._deactivate(grid)
        logger.info("grid_completed", reason=reason, realized_pnl=float(grid.realized_pnl))

    def _book_emergency_close(
        self, grid: MartingaleGrid, quantity: Decimal, result: OrderResult
    ) -> Decimal:
        """
        Feed the close fill to the ledger and return the PnL it realized.

        Without fill data, or without a ledger position to reduce, the PnL is
        estimated on the closed quantity at the best known price.
        """
        symbol = grid.symbol
        if result.filled_quantity and result.filled_price and self.ledger.has_position(symbol):
            realized_before = self.ledger.total_realized_pnl
            self.events.put(
                FillEvent(
                    timestamp=result.timestamp,
                    symbol=symbol,
                    side=grid.side.exit_order_side,
                    quantity=result.filled_quantity,
                    fill_price=result.filled_price,
                    commission=result.commission,
                    order_id=result.order_id,
                )
            )
            self.process_events()
            return self.ledger.total_realized_pnl - realized_before

        price = result.filled_price or self.last_prices.get(symbol, grid.average_entry)
        return grid_spacing.calculate_unrealized_pnl(
            grid.average_entry, price, quantity, grid.side
        ) - result.commission

    async def close_grid(self, symbol: str, reason: str) -> bool:
        """
        Cancel the symbol's orders, flatten any residual position and drop the grid.

        Returns:
            False when there was no grid or the emergency close failed. The grid
            is removed from the active set either way.
        """
        grid = self.active_grids.get(symbol)
        if grid is None:
            logger.warning("grid_not_found", symbol=symbol)
            return False

        logger.info("grid_closing", symbol=symbol, reason=reason)
        closed = True
        try:
            await self.gateway.cancel_all_pending_orders(symbol)
            quantity = self._residual_quantity(grid)
            if quantity > 0:
                result = await self.gateway.emergency_close_position(symbol, quantity, grid.side)
                if result.success:
                    close_pnl = self._book_emergency_close(grid, quantity, result)
                    self.total_pnl += grid.realized_pnl + close_pnl
                    self.total_trades += 1
                    logger.info(
                        "grid_closed",
                        symbol=symbol,
                        pnl=float(grid.realized_pnl + close_pnl),
                    )
                else:
                    closed = False
                    logger.critical(
                        "grid_position_left_open",
                        symbol=symbol,
                        quantity=str(quantity),
                        error=result.error_message,
                    )
            else:
                self.total_pnl += grid.realized_pnl
        finally:
            self._deactivate(grid)
        self.process_events()
        return closed

    # =========================================================================
    # Events
    # =========================================================================

    def on_tick(self, tick: TickEvent) -> None:
        self.events.put(tick)

    def on_kline(self, bar: BarEvent) -> None:
        self.events.put(bar)

    def dispatch(self, event: Event) -> None:
        kind = event_kind(event)
        self.event_counts[kind] = self.event_counts.get(kind, 0) + 1

        match event:
            case FillEvent():
                self.ledger.on_fill(event)
            case TickEvent(symbol=symbol, price=price, timestamp=ts):
                self.last_prices[symbol] = price
                self.ledger.update_price(symbol, price, ts)
            case BarEvent(symbol=symbol, close=close, timestamp=ts):
                self.last_prices[symbol] = close
                self.ledger.update_price(symbol, close, ts)
            case TakeProfitEvent(symbol=symbol, tp_level=tp_level, profit_amount=profit):
                logger.info(
                    "take_profit_filled", symbol=symbol, tp_level=tp_level, profit=float(profit)
                )
            case StopLossEvent(symbol=symbol, reason=reason, loss_amount=loss):
                logger.warning(
                    "stop_loss_triggered", symbol=symbol, reason=reason, loss=float(loss)
                )
            case GridTriggerEvent() | SignalEvent() | OrderEvent() | HedgeTriggerEvent():
                logger.debug("event_recorded", kind=kind, symbol=event.symbol)

    def process_events(self) -> int:
        processed = 0
        for event in self.events.drain():
            self.dispatch(event)
            processed += 1
        return processed

    # =========================================================================
    # Status
    # =========================================================================

    def get_status(self, include_grids: bool = True) -> dict[str, Any]:
        status: dict[str, Any] = {
            "iteration": self.iteration,
            "active_grids": len(self.active_grids),
            "closed_grids": len(self.closed_grids),
            "total_pnl": float(self.total_pnl),
            "total_trades": self.total_trades,
            "ledger": {
                k: float(v) if isinstance(v, Decimal) else v
                for k, v in self.ledger.get_summary().items()
            },
            "execution": self.gateway.get_execution_stats(),
        }
        if self.last_risk_report is not None:
            status["risk"] = self.last_risk_report.to_dict()
        if include_grids:
            status["grids"] = {
                symbol: self.grid_engine.get_grid_status(
                    grid, self.last_prices.get(symbol, grid.average_entry)
                )
                for symbol, grid in self.active_grids.items()
            }
        return status

    def status_report(self) -> dict[str, Any]:
        status = self.get_status(include_grids=False)
        logger.info(
            "engine_status",
            iteration=self.iteration,
            active_grids=status["active_grids"],
            total_pnl=status["total_pnl"],
            total_trades=status["total_trades"],
            unrealized_pnl=status["ledger"]["total_unrealized_pnl"],
            pending_orders=status["execution"]["pending_orders"],
        )
        return status
