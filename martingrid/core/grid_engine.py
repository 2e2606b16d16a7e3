"""
GridEngine - martingale grid lifecycle.
Handles grid creation, level progression, fill bookkeeping, take-profit ladders and health checks.
"""

from decimal import Decimal

from martingrid.config.schemas import DirectionalConfig, GridConfig, RiskConfig, TakeProfitConfig
from martingrid.core import grid_spacing
from martingrid.core.types import (
    ZERO,
    CCISignal,
    GridHealth,
    GridLevel,
    MartingaleGrid,
    Side,
    TrendState,
    VolatilityMetrics,
)
from martingrid.utils.logger import get_logger
from martingrid.utils.time_provider import LiveTimeProvider, TimeProvider

logger = get_logger(__name__)

WALLET_EXPOSURE_WARNING = Decimal("0.8")


class GridEngine:
    """
    Martingale grid engine.

    Features:
    - Volatility and position aware spacing
    - Geometric level sizing keyed on the number of filled levels
    - Fill transitions that replace levels by index
    - Take-profit ladder construction and refresh detection
    - Per-grid health evaluation (hold time, stop loss, liquidation distance, exposure)
    """

    def __init__(
        self,
        time_provider: TimeProvider | None = None,
        assumed_leverage: Decimal = Decimal("10"),
    ):
        """
        Initialize Grid Engine.

        Args:
            time_provider: Clock for creation, fill and hold-time checks
            assumed_leverage: Leverage used to turn notional into margin for wallet exposure
        """
        if assumed_leverage <= 0:
            raise ValueError("assumed_leverage must be positive")

        self._clock = time_provider or LiveTimeProvider()
        self.assumed_leverage = assumed_leverage

    # =========================================================================
    # Creation and spacing
    # =========================================================================

    def calculate_spacing(
        self,
        volatility: VolatilityMetrics,
        position_margin_ratio: Decimal,
        config: GridConfig,
        major_coin: bool,
    ) -> Decimal:
        return grid_spacing.calculate_spacing(volatility, position_margin_ratio, config, major_coin)

    def create_grid(
        self,
        symbol: str,
        side: Side,
        signal: CCISignal,
        trend: TrendState,
        volatility: VolatilityMetrics,
        config: DirectionalConfig,
        capital: Decimal,
        base_quantity: Decimal = ZERO,
    ) -> MartingaleGrid:
        """
        Create an empty grid for a symbol.

        Args:
            symbol: Exchange symbol
            side: LONG or SHORT
            signal: Entry signal that justified the grid
            trend: Trend snapshot at creation
            volatility: Volatility snapshot used for spacing
            config: Directional section for ``side``
            capital: Capital allocated to this grid (logged)
            base_quantity: Quantity of the first level

        Returns:
            New MartingaleGrid with no levels
        """
        spacing = self.calculate_spacing(
            volatility, ZERO, config.grid, grid_spacing.is_major_coin(symbol)
        )

        grid = MartingaleGrid(
            symbol=symbol,
            side=side,
            entry_signal=signal,
            trend_snapshot=trend,
            base_spacing=config.grid.base_spacing,
            current_spacing=spacing,
            martingale_factor=config.grid.effective_ddown_factor,
            max_levels=config.grid.max_levels,
            base_quantity=base_quantity,
            creation_time=self._clock.now(),
        )

        logger.info(
            "grid_created",
            symbol=symbol,
            side=side.value,
            spacing_pct=float(spacing * 100),
            ddown_factor=float(grid.martingale_factor),
            max_levels=grid.max_levels,
            capital=float(capital),
            base_quantity=str(base_quantity),
        )
        return grid

    # =========================================================================
    # Level progression
    # =========================================================================

    def add_grid_entry(
        self, grid: MartingaleGrid, price: Decimal, base_quantity: Decimal
    ) -> GridLevel | None:
        """
        Append the next level at ``price``.

        Returns:
            The new level, or None if the grid no longer accepts entries
        """
        if not grid.allow_new_entries:
            logger.debug("grid_entries_closed", symbol=grid.symbol)
            return None

        if len(grid.levels) >= grid.max_levels:
            grid.close_entries()
            logger.warning(
                "grid_max_levels_reached", symbol=grid.symbol, max_levels=grid.max_levels
            )
            return None

        level = GridLevel(
            level=max((lvl.level for lvl in grid.levels), default=0) + 1,
            price=price,
            quantity=grid_spacing.calculate_next_quantity(
                base_quantity, grid.martingale_factor, grid.filled_count
            ),
        )
        grid.append_level(level)

        logger.info(
            "grid_level_added",
            symbol=grid.symbol,
            level=level.level,
            price=str(level.price),
            quantity=str(level.quantity),
        )
        return level

    def should_add_level(
        self, grid: MartingaleGrid, current_price: Decimal, config: GridConfig
    ) -> bool:
        """True when price has moved at least one spacing against the last fill."""
        if not grid.allow_new_entries:
            return False
        if grid.filled_count >= config.max_levels:
            return False
        if not grid.levels:
            return True

        last = grid.last_filled_level
        if last is None:
            return True

        if grid.side is Side.LONG:
            move = (last.price - current_price) / last.price
        else:
            move = (current_price - last.price) / last.price

        return move >= grid.current_spacing

    def attach_order(self, grid: MartingaleGrid, level_number: int, order_id: str) -> None:
        index = grid.index_of(level_number)
        if index is None:
            raise ValueError(f"{grid.symbol} has no level {level_number}")
        grid.replace_level(index, grid.levels[index].with_order(order_id))

    def discard_level(self, grid: MartingaleGrid, level_number: int, reason: str) -> bool:
        """
        Remove an unfilled level so it no longer counts toward ``max_levels``.

        Returns:
            False if the level is unknown or already filled
        """
        index = grid.index_of(level_number)
        if index is None or grid.levels[index].filled:
            return False
        grid.remove_level(level_number)
        logger.warning(
            "grid_level_discarded", symbol=grid.symbol, level=level_number, reason=reason
        )
        return True

    def mark_level_filled(
        self,
        grid: MartingaleGrid,
        level_number: int,
        order_id: str | None,
        fill_price: Decimal,
        filled_quantity: Decimal | None = None,
    ) -> GridLevel | None:
        """
        Record the fill of a level at its actual price.

        A ``filled_quantity`` below the planned size shrinks the level to what
        executed, so totals match the position actually held.

        Returns:
            The filled level, or None if the level is unknown or already filled
        """
        index = grid.index_of(level_number)
        if index is None:
            logger.warning("grid_level_unknown", symbol=grid.symbol, level=level_number)
            return None

        current = grid.levels[index]
        if current.filled:
            logger.warning("grid_level_already_filled", symbol=grid.symbol, level=level_number)
            return None

        now = self._clock.now()
        filled = current.as_filled(order_id, fill_price, now, filled_quantity)
        grid.replace_level(index, filled)

        grid.total_quantity, grid.average_entry = grid_spacing.calculate_average_entry(
            grid.levels
        )
        grid.last_fill_time = now

        logger.info(
            "grid_level_filled",
            symbol=grid.symbol,
            level=level_number,
            fill_price=str(fill_price),
            total_quantity=str(grid.total_quantity),
            average_entry=str(grid.average_entry),
        )
        return filled

    # =========================================================================
    # Metrics
    # =========================================================================

    def update_grid_metrics(
        self,
        grid: MartingaleGrid,
        current_price: Decimal,
        account_balance: Decimal,
        liquidation_price: Decimal | None = None,
    ) -> None:
        grid.unrealized_pnl = grid_spacing.calculate_unrealized_pnl(
            grid.average_entry, current_price, grid.total_quantity, grid.side
        )

        if grid.total_quantity > 0 and account_balance > 0:
            margin_used = grid.notional / self.assumed_leverage
            grid.wallet_exposure = margin_used / account_balance

        if liquidation_price is not None:
            grid.liquidation_price = liquidation_price

        logger.debug(
            "grid_metrics_updated",
            symbol=grid.symbol,
            unrealized_pnl=float(grid.unrealized_pnl),
            wallet_exposure_pct=float(grid.wallet_exposure * 100),
        )

    # =========================================================================
    # Take profit
    # =========================================================================

    def calculate_take_profit_levels(
        self,
        average_entry: Decimal,
        total_quantity: Decimal,
        side: Side,
        config: TakeProfitConfig,
    ):
        return grid_spacing.calculate_take_profit_levels(
            average_entry, total_quantity, side, config
        )

    def create_take_profit_orders(
        self,
        grid: MartingaleGrid,
        config: TakeProfitConfig,
        open_quantity: Decimal | None = None,
    ) -> list[GridLevel]:
        """
        Build the exit ladder for the grid's current position and store it on the grid.

        Args:
            grid: Grid to exit
            config: Take-profit section
            open_quantity: Size still held after earlier exits; defaults to total_quantity

        Returns:
            Take-profit rungs as GridLevels numbered from 1; empty without a position
        """
        quantity = grid.total_quantity if open_quantity is None else open_quantity
        if grid.total_quantity == 0 or quantity <= 0:
            logger.warning("take_profit_skipped_no_position", symbol=grid.symbol)
            return []

        ladder = [
            GridLevel(level=i, price=tp.price, quantity=tp.quantity)
            for i, tp in enumerate(
                self.calculate_take_profit_levels(
                    grid.average_entry, quantity, grid.side, config
                ),
                start=1,
            )
        ]
        grid.take_profit_orders = ladder
        grid.take_profit_reference = grid.average_entry

        logger.info(
            "take_profit_ladder_built",
            symbol=grid.symbol,
            orders=len(ladder),
            average_entry=str(grid.average_entry),
        )
        return ladder

    def take_profit_needs_refresh(
        self, grid: MartingaleGrid, threshold: Decimal = Decimal("0.001")
    ) -> bool:
        if grid.total_quantity == 0:
            return False
        reference = grid.take_profit_reference
        if not grid.take_profit_orders or reference is None or reference == 0:
            return True
        return abs(grid.average_entry - reference) / reference > threshold

    # =========================================================================
    # Health
    # =========================================================================

    def check_grid_health(
        self, grid: MartingaleGrid, current_price: Decimal, config: RiskConfig
    ) -> GridHealth:
        """
        Evaluate a grid against the directional risk limits.

        Hold time, stop loss and critical liquidation distance force a close;
        the other liquidation tiers and wallet exposure only warn.
        """
        warnings: list[str] = []
        should_close = False

        if grid.last_fill_time is not None:
            hold_hours = (self._clock.now() - grid.last_fill_time).total_seconds() / 3600
            if hold_hours > config.max_hold_hours:
                warnings.append(f"hold time {hold_hours:.1f}h exceeds {config.max_hold_hours}h")
                should_close = True

        if grid.total_quantity > 0:
            pnl_pct = grid.pnl_pct
            if pnl_pct < -config.stop_loss_pct:
                warnings.append(f"stop loss hit ({pnl_pct:.2f}% < -{config.stop_loss_pct}%)")
                should_close = True

        if grid.liquidation_price > 0:
            distance = grid_spacing.calculate_liquidation_distance(
                grid.average_entry, grid.liquidation_price, grid.side
            )
            if distance < config.liquidation_warning_distance:
                warnings.append(f"liquidation distance {distance:.1f}% below warning tier")
            if distance < config.liquidation_danger_distance:
                warnings.append(f"liquidation distance {distance:.1f}% below danger tier")
            if distance < config.liquidation_critical_distance:
                warnings.append(f"liquidation distance {distance:.1f}% below critical tier")
                should_close = True

        if grid.wallet_exposure > WALLET_EXPOSURE_WARNING:
            warnings.append(f"wallet exposure {grid.wallet_exposure * 100:.1f}% above 80%")

        return GridHealth(healthy=not warnings, warnings=warnings, should_close=should_close)

    def get_grid_status(self, grid: MartingaleGrid, current_price: Decimal) -> dict:
        status = grid.to_dict()
        status["current_price"] = str(current_price)
        status["pnl_pct"] = float(grid.pnl_pct)
        if grid.liquidation_price > 0:
            status["liquidation_distance_pct"] = float(
                grid_spacing.calculate_liquidation_distance(
                    grid.average_entry, grid.liquidation_price, grid.side
                )
            )
        return status
