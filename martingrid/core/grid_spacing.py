"""
Grid spacing, martingale sizing and PnL arithmetic.

Pure functions over Decimal; GridEngine composes them.
"""

from collections.abc import Iterable
from decimal import Decimal

from martingrid.config.schemas import GridConfig, TakeProfitConfig
from martingrid.core.types import (
    ZERO,
    GridLevel,
    Side,
    TakeProfitLevel,
    VolatilityMetrics,
    VolatilityState,
)

MAJOR_COINS = frozenset({"BTCUSDT", "ETHUSDT"})

VOLATILITY_SPACING_MULTIPLIERS: dict[VolatilityState, Decimal] = {
    VolatilityState.VERY_HIGH: Decimal("1.30"),
    VolatilityState.HIGH: Decimal("1.15"),
    VolatilityState.VERY_LOW: Decimal("0.85"),
}

ONE = Decimal("1")
HUNDRED = Decimal("100")
INFINITE_DISTANCE = Decimal("Infinity")


def normalize_symbol(symbol: str) -> str:
    """``BTC/USDT:USDT`` -> ``BTCUSDT``"""
    return symbol.split(":")[0].replace("/", "").upper()


def is_major_coin(symbol: str) -> bool:
    return normalize_symbol(symbol) in MAJOR_COINS


def calculate_spacing(
    volatility: VolatilityMetrics,
    position_margin_ratio: Decimal,
    config: GridConfig,
    major_coin: bool,
) -> Decimal:
    """
    Distance between grid levels as a fraction of price.

    Args:
        volatility: Current volatility snapshot
        position_margin_ratio: Margin in use for the symbol relative to balance
        config: Grid section of the directional config
        major_coin: Use the major-coin ATR multiplier

    Returns:
        Spacing clamped to [min_spacing, max_spacing]
    """
    if config.use_atr_spacing:
        multiplier = config.atr_multiplier_major if major_coin else config.atr_multiplier_alt
        base = volatility.atr_pct * multiplier
    else:
        base = config.base_spacing

    if config.use_position_adjustment:
        position_mult = ONE + position_margin_ratio * config.position_spacing_factor
    else:
        position_mult = ONE

    volatility_mult = VOLATILITY_SPACING_MULTIPLIERS.get(volatility.state, ONE)

    spacing = max(config.base_spacing, base * position_mult * volatility_mult)
    return min(max(spacing, config.min_spacing), config.max_spacing)


def calculate_next_quantity(base_quantity: Decimal, factor: Decimal, filled_count: int) -> Decimal:
    """Martingale size for the next level: ``base * factor ** filled_count``."""
    return base_quantity * factor**filled_count


def calculate_grid_levels(
    entry_price: Decimal,
    side: Side,
    spacing: Decimal,
    num_levels: int,
    factor: Decimal,
) -> list[tuple[int, Decimal, Decimal]]:
    """
    Preview a full ladder from an entry price.

    Returns:
        ``(level, price, quantity_multiplier)`` for levels 1..num_levels.
        Longs step down, shorts step up.
    """
    direction = -ONE if side is Side.LONG else ONE
    return [
        (i, entry_price * (ONE + direction * spacing * i), factor ** (i - 1))
        for i in range(1, num_levels + 1)
    ]


def calculate_average_entry(levels: Iterable[GridLevel]) -> tuple[Decimal, Decimal]:
    """
    Quantity-weighted entry over filled levels.

    Returns:
        ``(total_quantity, average_entry)``; both zero when nothing is filled.
    """
    total_qty = ZERO
    total_value = ZERO
    for lvl in levels:
        if lvl.filled:
            total_qty += lvl.quantity
            total_value += lvl.price * lvl.quantity
    if total_qty == 0:
        return ZERO, ZERO
    return total_qty, total_value / total_qty


def calculate_unrealized_pnl(
    average_entry: Decimal, current_price: Decimal, quantity: Decimal, side: Side
) -> Decimal:
    if side is Side.LONG:
        return (current_price - average_entry) * quantity
    return (average_entry - current_price) * quantity


def calculate_liquidation_distance(
    average_entry: Decimal, liquidation_price: Decimal, side: Side
) -> Decimal:
    """
    Gap between average entry and liquidation price, in percent of entry.

    Infinite when there is no liquidation price. ``side`` is accepted for
    symmetry; the distance is absolute.
    """
    if liquidation_price == 0 or average_entry == 0:
        return INFINITE_DISTANCE
    return abs(average_entry - liquidation_price) / average_entry * HUNDRED


def calculate_take_profit_levels(
    average_entry: Decimal,
    total_quantity: Decimal,
    side: Side,
    config: TakeProfitConfig,
) -> list[TakeProfitLevel]:
    """
    Build the exit ladder for a position.

    Explicit ``partial_exits`` win; otherwise ``n_close_orders`` equal slices
    with markups ``min_markup + markup_range / n * i`` for i in 1..n.
    """
    sign = ONE if side is Side.LONG else -ONE
    levels: list[TakeProfitLevel] = []

    if config.partial_exits:
        for exit_ in config.partial_exits:
            levels.append(
                TakeProfitLevel(
                    price=average_entry * (ONE + sign * exit_.profit_pct),
                    quantity=total_quantity * exit_.qty_pct,
                    profit_pct=exit_.profit_pct,
                )
            )
        return levels

    n = config.n_close_orders
    step = config.markup_range / n
    slice_qty = total_quantity / n
    for i in range(1, n + 1):
        profit_pct = config.min_markup + step * i
        levels.append(
            TakeProfitLevel(
                price=average_entry * (ONE + sign * profit_pct),
                quantity=slice_qty,
                profit_pct=profit_pct,
            )
        )
    return levels
