"""
Position Ledger - weighted-average-cost positions built from fills.

Main and hedge books are kept apart and keyed by symbol. A fill in the
position's direction adds and re-averages the entry; an opposite fill
closes part or all of it at the unchanged entry price.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from martingrid.core.events import FillEvent
from martingrid.core.types import POSITION_EPSILON, ZERO, OrderSide
from martingrid.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class PositionRecord:
    symbol: str
    side: OrderSide
    size: Decimal
    entry_price: Decimal
    total_cost: Decimal
    open_time: datetime
    last_update: datetime
    is_hedge: bool = False
    unrealized_pnl: Decimal = ZERO
    realized_pnl: Decimal = ZERO
    total_fees: Decimal = ZERO
    fills_count: int = 1

    @property
    def notional(self) -> Decimal:
        return self.size * self.entry_price

    def pnl_at(self, price: Decimal) -> Decimal:
        if self.side is OrderSide.BUY:
            return (price - self.entry_price) * self.size
        return (self.entry_price - price) * self.size

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "side": self.side.value,
            "size": str(self.size),
            "entry_price": str(self.entry_price),
            "total_cost": str(self.total_cost),
            "unrealized_pnl": str(self.unrealized_pnl),
            "realized_pnl": str(self.realized_pnl),
            "total_fees": str(self.total_fees),
            "fills_count": self.fills_count,
            "is_hedge": self.is_hedge,
            "open_time": self.open_time.isoformat(),
            "last_update": self.last_update.isoformat(),
        }


@dataclass
class PositionLedger:
    main_positions: dict[str, PositionRecord] = field(default_factory=dict)
    hedge_positions: dict[str, PositionRecord] = field(default_factory=dict)
    closed_positions: list[PositionRecord] = field(default_factory=list)
    current_prices: dict[str, Decimal] = field(default_factory=dict)
    total_realized_pnl: Decimal = ZERO
    total_fees: Decimal = ZERO
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0

    def _book(self, is_hedge: bool) -> dict[str, PositionRecord]:
        return self.hedge_positions if is_hedge else self.main_positions

    # =========================================================================
    # Fill processing
    # =========================================================================

    def on_fill(self, fill: FillEvent) -> PositionRecord:
        """
        Apply a fill to the matching book.

        Returns:
            The affected record (already moved to closed history if flat)
        """
        book = self._book(fill.is_hedge)
        position = book.get(fill.symbol)

        if position is None:
            position = PositionRecord(
                symbol=fill.symbol,
                side=fill.side,
                size=fill.quantity,
                entry_price=fill.fill_price,
                total_cost=fill.notional + fill.commission,
                open_time=fill.timestamp,
                last_update=fill.timestamp,
                is_hedge=fill.is_hedge,
                total_fees=fill.commission,
            )
            book[fill.symbol] = position
            self.total_fees += fill.commission
            logger.info(
                "position_opened",
                symbol=fill.symbol,
                side=fill.side.value,
                size=str(fill.quantity),
                entry_price=str(fill.fill_price),
                is_hedge=fill.is_hedge,
            )
            return position

        if fill.side is position.side:
            self._add(position, fill)
        else:
            self._close(position, fill)
        return position

    def _add(self, position: PositionRecord, fill: FillEvent) -> None:
        new_size = position.size + fill.quantity
        if new_size > 0:
            position.entry_price = (
                position.size * position.entry_price + fill.notional
            ) / new_size
        position.size = new_size
        position.total_cost += fill.notional + fill.commission
        position.total_fees += fill.commission
        position.fills_count += 1
        position.last_update = fill.timestamp
        self.total_fees += fill.commission

        logger.debug(
            "position_increased",
            symbol=position.symbol,
            size=str(position.size),
            entry_price=str(position.entry_price),
        )

    def _close(self, position: PositionRecord, fill: FillEvent) -> None:
        close_qty = min(fill.quantity, position.size)
        if position.side is OrderSide.BUY:
            pnl = (fill.fill_price - position.entry_price) * close_qty
        else:
            pnl = (position.entry_price - fill.fill_price) * close_qty
        pnl -= fill.commission

        position.size -= close_qty
        position.realized_pnl += pnl
        position.total_fees += fill.commission
        position.fills_count += 1
        position.last_update = fill.timestamp

        self.total_realized_pnl += pnl
        self.total_fees += fill.commission
        self.total_trades += 1
        if pnl > 0:
            self.winning_trades += 1
        elif pnl < 0:
            self.losing_trades += 1

        logger.info(
            "position_reduced",
            symbol=position.symbol,
            closed_qty=str(close_qty),
            realized_pnl=float(pnl),
            remaining=str(position.size),
            is_hedge=position.is_hedge,
        )

        if position.size <= POSITION_EPSILON:
            position.unrealized_pnl = ZERO
            del self._book(position.is_hedge)[position.symbol]
            self.closed_positions.append(position)
            logger.info(
                "position_closed",
                symbol=position.symbol,
                realized_pnl=float(position.realized_pnl),
                is_hedge=position.is_hedge,
            )

    def update_price(self, symbol: str, price: Decimal, timestamp: datetime | None = None) -> None:
        self.current_prices[symbol] = price
        for book in (self.main_positions, self.hedge_positions):
            position = book.get(symbol)
            if position is not None:
                position.unrealized_pnl = position.pnl_at(price)
                if timestamp is not None:
                    position.last_update = timestamp

    # =========================================================================
    # Queries
    # =========================================================================

    def get_position(self, symbol: str, is_hedge: bool = False) -> PositionRecord | None:
        return self._book(is_hedge).get(symbol)

    def has_position(self, symbol: str, is_hedge: bool = False) -> bool:
        return symbol in self._book(is_hedge)

    def get_all_positions(self) -> list[PositionRecord]:
        return [*self.main_positions.values(), *self.hedge_positions.values()]

    def get_total_exposure(self) -> Decimal:
        """Sum of ``size * price`` over open positions (entry price when unpriced)."""
        total = ZERO
        for position in self.get_all_positions():
            price = self.current_prices.get(position.symbol, position.entry_price)
            total += position.size * price
        return total

    def get_total_unrealized_pnl(self) -> Decimal:
        return sum((p.unrealized_pnl for p in self.get_all_positions()), ZERO)

    @property
    def win_rate(self) -> float:
        if self.total_trades == 0:
            return 0.0
        return self.winning_trades / self.total_trades * 100

    def get_position_risk(self, symbol: str, is_hedge: bool = False) -> dict[str, Any]:
        position = self.get_position(symbol, is_hedge)
        if position is None:
            return {"has_position": False}

        price = self.current_prices.get(symbol, position.entry_price)
        pnl_pct = (
            position.unrealized_pnl / position.total_cost * 100 if position.total_cost else ZERO
        )
        change = (price - position.entry_price) / position.entry_price * 100
        if position.side is OrderSide.SELL:
            change = -change

        return {
            "has_position": True,
            "symbol": symbol,
            "side": position.side.value,
            "size": position.size,
            "entry_price": position.entry_price,
            "current_price": price,
            "unrealized_pnl": position.unrealized_pnl,
            "pnl_pct": pnl_pct,
            "price_change_pct": change,
            "total_cost": position.total_cost,
            "total_fees": position.total_fees,
            "is_hedge": position.is_hedge,
        }

    def get_summary(self) -> dict[str, Any]:
        unrealized = self.get_total_unrealized_pnl()
        return {
            "main_positions": len(self.main_positions),
            "hedge_positions": len(self.hedge_positions),
            "total_positions": len(self.main_positions) + len(self.hedge_positions),
            "closed_positions": len(self.closed_positions),
            "total_unrealized_pnl": unrealized,
            "total_realized_pnl": self.total_realized_pnl,
            "total_pnl": unrealized + self.total_realized_pnl,
            "total_exposure": self.get_total_exposure(),
            "total_fees": self.total_fees,
            "total_trades": self.total_trades,
            "winning_trades": self.winning_trades,
            "losing_trades": self.losing_trades,
            "win_rate": self.win_rate,
        }
