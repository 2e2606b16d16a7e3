"""
Hedge grid data contract.

A hedge grid is a smaller opposite-direction ladder opened against a main
grid that is under water. The engine exposes the structure, its
construction from a parent grid, the activation predicate and profit
recycling; opening hedges is left to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

from martingrid.config.schemas import HedgeConfig
from martingrid.core import grid_spacing
from martingrid.core.events import HedgeTriggerEvent
from martingrid.core.types import ZERO, GridLevel, MartingaleGrid, Side


class HedgeActivationReason(str, Enum):
    DRAWDOWN = "DRAWDOWN"
    LIQUIDATION_RISK = "LIQUIDATION_RISK"
    TIME_UNDERWATER = "TIME_UNDERWATER"
    MANUAL = "MANUAL"


@dataclass
class HedgeGrid:
    # Parent is referenced by key, not owned
    parent_symbol: str
    parent_side: Side
    activation_reason: HedgeActivationReason
    activation_time: datetime
    activation_price: Decimal
    side: Side
    grid_spacing: Decimal
    profit_target: Decimal
    max_levels: int
    initial_size_ratio: Decimal
    max_exposure_ratio: Decimal
    recycling_enabled: bool = True
    recycling_ratio: Decimal = Decimal("0.7")
    levels: list[GridLevel] = field(default_factory=list)
    total_quantity: Decimal = ZERO
    average_entry: Decimal = ZERO
    unrealized_pnl: Decimal = ZERO
    realized_pnl: Decimal = ZERO
    total_recycled: Decimal = ZERO
    total_trades: int = 0
    active: bool = True
    last_fill_time: datetime | None = None

    @classmethod
    def from_parent(
        cls,
        parent: MartingaleGrid,
        config: HedgeConfig,
        reason: HedgeActivationReason,
        price: Decimal,
        at: datetime,
    ) -> HedgeGrid:
        return cls(
            parent_symbol=parent.symbol,
            parent_side=parent.side,
            activation_reason=reason,
            activation_time=at,
            activation_price=price,
            side=parent.side.opposite,
            grid_spacing=config.grid_spacing,
            profit_target=config.profit_target,
            max_levels=config.max_levels,
            initial_size_ratio=config.initial_size_ratio,
            max_exposure_ratio=config.max_exposure_ratio,
            recycling_enabled=config.profit_recycling_enabled,
            recycling_ratio=config.recycling_ratio,
        )

    def initial_quantity(self, parent_quantity: Decimal) -> Decimal:
        return parent_quantity * self.initial_size_ratio

    def max_quantity(self, parent_quantity: Decimal) -> Decimal:
        return parent_quantity * self.max_exposure_ratio

    def planned_levels(self, parent_quantity: Decimal) -> list[GridLevel]:
        """
        Evenly sized ladder away from the activation price.

        The first rung carries the initial hedge size; the rest split what is
        left under the exposure cap.
        """
        first = self.initial_quantity(parent_quantity)
        remaining = max(self.max_quantity(parent_quantity) - first, ZERO)
        rest = remaining / (self.max_levels - 1) if self.max_levels > 1 else ZERO
        ladder = grid_spacing.calculate_grid_levels(
            self.activation_price, self.side, self.grid_spacing, self.max_levels, Decimal("1")
        )
        # Rung 1 sits at the activation price
        return [
            GridLevel(
                level=number,
                price=self.activation_price if number == 1 else ladder[number - 2][1],
                quantity=first if number == 1 else rest,
            )
            for number, _, _ in ladder
        ]

    def record_realized_profit(self, amount: Decimal) -> Decimal:
        """
        Book realized hedge PnL.

        Returns:
            The share recycled into the parent's exposure reduction
        """
        self.realized_pnl += amount
        self.total_trades += 1
        if not self.recycling_enabled or amount <= 0:
            return ZERO
        recycled = amount * self.recycling_ratio
        self.total_recycled += recycled
        return recycled


def evaluate_hedge_trigger(
    grid: MartingaleGrid,
    current_price: Decimal,
    config: HedgeConfig,
    now: datetime,
) -> HedgeTriggerEvent | None:
    """
    Return a HedgeTriggerEvent when the main grid meets an activation rule.

    Rules, first match wins: unrealized PnL fraction at or below
    ``loss_threshold``; liquidation distance under the threshold; holding
    longer than ``max_hold_hours`` while losing.
    """
    if not config.enabled or grid.total_quantity <= 0 or grid.notional <= 0:
        return None

    pnl = grid_spacing.calculate_unrealized_pnl(
        grid.average_entry, current_price, grid.total_quantity, grid.side
    )
    pnl_fraction = pnl / grid.notional

    reason: HedgeActivationReason | None = None
    if pnl_fraction <= config.loss_threshold:
        reason = HedgeActivationReason.DRAWDOWN
    elif grid.liquidation_price > 0 and (
        grid_spacing.calculate_liquidation_distance(
            grid.average_entry, grid.liquidation_price, grid.side
        )
        < config.liquidation_distance_threshold
    ):
        reason = HedgeActivationReason.LIQUIDATION_RISK
    elif (
        pnl < 0
        and grid.last_fill_time is not None
        and (now - grid.last_fill_time).total_seconds() / 3600 > config.max_hold_hours
    ):
        reason = HedgeActivationReason.TIME_UNDERWATER

    if reason is None:
        return None

    return HedgeTriggerEvent(
        timestamp=now,
        symbol=grid.symbol,
        reason=reason.value,
        main_position_size=grid.total_quantity,
        main_avg_price=grid.average_entry,
        current_price=current_price,
        unrealized_pnl=pnl,
        unrealized_pnl_pct=pnl_fraction * 100,
        hedge_ratio=config.initial_size_ratio,
        grid_spacing=config.grid_spacing,
    )
