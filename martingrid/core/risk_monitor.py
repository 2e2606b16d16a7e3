"""
Risk Monitor - per-grid close decisions and portfolio-level warnings.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from martingrid.api.exceptions import RiskLimitExceeded
from martingrid.config.schemas import RiskConfig
from martingrid.core.events import StopLossEvent
from martingrid.core.grid_engine import GridEngine
from martingrid.core.types import ZERO, GridHealth, MartingaleGrid, Side
from martingrid.utils.logger import get_logger

if TYPE_CHECKING:
    from martingrid.api.exchange_protocol import AccountBalance

logger = get_logger(__name__)

LOW_BALANCE_RATIO = Decimal("0.1")


@dataclass
class PortfolioRiskReport:
    total_exposure: Decimal
    exposure_limit: Decimal
    exposure_exceeded: bool
    low_balance: bool = False
    warnings: list[str] = field(default_factory=list)

    @property
    def is_safe(self) -> bool:
        return not self.warnings

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_exposure": float(self.total_exposure),
            "exposure_limit": float(self.exposure_limit),
            "exposure_exceeded": self.exposure_exceeded,
            "low_balance": self.low_balance,
            "warnings": list(self.warnings),
        }


class RiskMonitor:
    """
    Evaluates grids against their risk limits.

    Grid checks delegate to GridEngine.check_grid_health and turn a close
    verdict into RiskLimitExceeded. Portfolio checks only report; nothing is
    closed when the combined exposure limit is exceeded.
    """

    def __init__(self, grid_engine: GridEngine) -> None:
        self.grid_engine = grid_engine
        self.exposure_breaches = 0

    def assert_grid_healthy(
        self, grid: MartingaleGrid, current_price: Decimal, config: RiskConfig
    ) -> GridHealth:
        """
        Raises:
            RiskLimitExceeded: the grid must be closed
        """
        health = self.grid_engine.check_grid_health(grid, current_price, config)
        if health.should_close:
            logger.warning("grid_requires_close", symbol=grid.symbol, warnings=health.warnings)
            raise RiskLimitExceeded(grid.symbol, health.warnings)
        if health.warnings:
            logger.warning("grid_health_warning", symbol=grid.symbol, warnings=health.warnings)
        return health

    def check_portfolio_exposure(
        self,
        grids: Iterable[MartingaleGrid],
        long_limit: Decimal,
        short_limit: Decimal,
    ) -> PortfolioRiskReport:
        total = sum((g.wallet_exposure for g in grids if g.active), ZERO)
        limit = long_limit + short_limit
        report = PortfolioRiskReport(
            total_exposure=total,
            exposure_limit=limit,
            exposure_exceeded=total > limit,
        )
        if report.exposure_exceeded:
            self.exposure_breaches += 1
            report.warnings.append(f"total exposure {total:.3f} above limit {limit:.3f}")
            logger.warning(
                "portfolio_exposure_exceeded",
                total_exposure=float(total),
                limit=float(limit),
            )
        return report

    def check_available_balance(
        self, balance: AccountBalance, report: PortfolioRiskReport | None = None
    ) -> bool:
        """True (and a warning) when less than 10% of the balance is available."""
        threshold = balance.balance * LOW_BALANCE_RATIO
        low = balance.balance > 0 and balance.available_balance < threshold
        if low:
            logger.warning(
                "available_balance_low",
                available=float(balance.available_balance),
                total=float(balance.balance),
            )
            if report is not None:
                report.low_balance = True
                report.warnings.append("available balance below 10% of total")
        return low

    def build_stop_loss_event(
        self,
        grid: MartingaleGrid,
        current_price: Decimal,
        warnings: list[str],
        at: datetime,
    ) -> StopLossEvent:
        joined = " ".join(warnings)
        if "hold time" in joined:
            reason = "TIME_LIMIT"
        elif "stop loss" in joined:
            reason = "MAX_LOSS"
        elif "liquidation" in joined:
            reason = "LIQUIDATION_RISK"
        else:
            reason = "RISK_LIMIT"

        if grid.side is Side.LONG:
            pnl = (current_price - grid.average_entry) * grid.total_quantity
        else:
            pnl = (grid.average_entry - current_price) * grid.total_quantity
        loss = -pnl if pnl < 0 else ZERO

        return StopLossEvent(
            timestamp=at,
            symbol=grid.symbol,
            reason=reason,
            position_size=grid.total_quantity,
            avg_price=grid.average_entry,
            current_price=current_price,
            loss_amount=loss,
            loss_pct=loss / grid.notional * 100 if grid.notional > 0 else ZERO,
        )
