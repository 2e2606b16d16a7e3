"""Tests for spacing, sizing and PnL arithmetic"""

from dataclasses import replace
from decimal import Decimal

import pytest

from martingrid.config.schemas import GridConfig, PartialExit, TakeProfitConfig
from martingrid.core.grid_spacing import (
    calculate_average_entry,
    calculate_grid_levels,
    calculate_liquidation_distance,
    calculate_next_quantity,
    calculate_spacing,
    calculate_take_profit_levels,
    calculate_unrealized_pnl,
    is_major_coin,
    normalize_symbol,
)
from martingrid.core.types import GridLevel, Side, VolatilityState
from tests.conftest import START


class TestSymbols:
    def test_normalize_ccxt_symbol(self):
        assert normalize_symbol("BTC/USDT:USDT") == "BTCUSDT"
        assert normalize_symbol("ethusdt") == "ETHUSDT"

    def test_major_coin(self):
        assert is_major_coin("BTC/USDT:USDT")
        assert not is_major_coin("DOGEUSDT")


# =========================================================================
# Spacing
# =========================================================================


class TestCalculateSpacing:
    def test_atr_spacing_major(self, volatility):
        spacing = calculate_spacing(volatility, Decimal("0"), GridConfig(), major_coin=True)
        assert spacing == Decimal("0.018")

    def test_atr_spacing_alt(self, volatility):
        spacing = calculate_spacing(volatility, Decimal("0"), GridConfig(), major_coin=False)
        assert spacing == Decimal("0.013")

    def test_position_adjustment_widens(self, volatility):
        spacing = calculate_spacing(volatility, Decimal("0.5"), GridConfig(), major_coin=True)
        # 0.018 * (1 + 0.5 * 2)
        assert spacing == Decimal("0.036")

    def test_very_high_volatility_widens(self, volatility):
        hot = replace(volatility, state=VolatilityState.VERY_HIGH)
        spacing = calculate_spacing(hot, Decimal("0"), GridConfig(), major_coin=True)
        assert spacing == Decimal("0.018") * Decimal("1.30")

    def test_clamped_to_max(self, volatility):
        wild = replace(volatility, atr_pct=Decimal("0.5"))
        spacing = calculate_spacing(wild, Decimal("10"), GridConfig(), major_coin=False)
        assert spacing == GridConfig().max_spacing

    def test_clamped_to_min(self, volatility):
        config = GridConfig(
            use_atr_spacing=False,
            base_spacing=Decimal("0.001"),
            min_spacing=Decimal("0.004"),
            max_spacing=Decimal("0.05"),
        )
        spacing = calculate_spacing(volatility, Decimal("0"), config, major_coin=True)
        assert spacing == Decimal("0.004")

    @pytest.mark.parametrize("atr_pct", ["0", "0.0001", "0.01", "0.2", "3"])
    @pytest.mark.parametrize("ratio", ["0", "0.3", "5"])
    def test_always_within_bounds(self, volatility, atr_pct, ratio):
        config = GridConfig()
        snapshot = replace(volatility, atr_pct=Decimal(atr_pct))
        spacing = calculate_spacing(snapshot, Decimal(ratio), config, major_coin=True)
        assert config.min_spacing <= spacing <= config.max_spacing


# =========================================================================
# Sizing and ladders
# =========================================================================


class TestSizing:
    def test_next_quantity(self):
        assert calculate_next_quantity(Decimal("1"), Decimal("1.5"), 0) == Decimal("1")
        assert calculate_next_quantity(Decimal("1"), Decimal("1.5"), 2) == Decimal("2.25")

    def test_grid_levels_long_step_down(self):
        levels = calculate_grid_levels(Decimal("100"), Side.LONG, Decimal("0.01"), 3, Decimal("2"))
        assert levels == [
            (1, Decimal("99"), Decimal("1")),
            (2, Decimal("98"), Decimal("2")),
            (3, Decimal("97"), Decimal("4")),
        ]

    def test_grid_levels_short_step_up(self):
        levels = calculate_grid_levels(Decimal("100"), Side.SHORT, Decimal("0.02"), 2, Decimal("1"))
        assert [price for _, price, _ in levels] == [Decimal("102"), Decimal("104")]


class TestAverageEntry:
    def test_only_filled_levels_count(self):
        levels = [
            GridLevel(1, Decimal("100"), Decimal("1")).as_filled("a", Decimal("100"), START),
            GridLevel(2, Decimal("90"), Decimal("2")).as_filled("b", Decimal("90"), START),
            GridLevel(3, Decimal("80"), Decimal("4")),
        ]
        total, average = calculate_average_entry(levels)
        assert total == Decimal("3")
        assert average == Decimal("280") / Decimal("3")

    def test_nothing_filled(self):
        levels = [GridLevel(1, Decimal("100"), Decimal("1"))]
        assert calculate_average_entry(levels) == (Decimal("0"), Decimal("0"))


class TestPnl:
    def test_long(self):
        pnl = calculate_unrealized_pnl(Decimal("100"), Decimal("94"), Decimal("2"), Side.LONG)
        assert pnl == Decimal("-12")

    def test_short(self):
        pnl = calculate_unrealized_pnl(Decimal("100"), Decimal("94"), Decimal("2"), Side.SHORT)
        assert pnl == Decimal("12")


class TestLiquidationDistance:
    def test_long_example(self):
        distance = calculate_liquidation_distance(Decimal("100"), Decimal("80"), Side.LONG)
        assert distance == Decimal("20")

    def test_short(self):
        distance = calculate_liquidation_distance(Decimal("100"), Decimal("130"), Side.SHORT)
        assert distance == Decimal("30")

    def test_no_liquidation_price(self):
        distance = calculate_liquidation_distance(Decimal("100"), Decimal("0"), Side.LONG)
        assert distance == Decimal("Infinity")


# =========================================================================
# Take profit
# =========================================================================


class TestTakeProfitLevels:
    def test_uniform_ladder(self):
        config = TakeProfitConfig(
            min_markup=Decimal("0.01"), markup_range=Decimal("0.04"), n_close_orders=4
        )
        levels = calculate_take_profit_levels(Decimal("100"), Decimal("2"), Side.LONG, config)

        assert [lvl.profit_pct for lvl in levels] == [
            Decimal("0.02"),
            Decimal("0.03"),
            Decimal("0.04"),
            Decimal("0.05"),
        ]
        assert all(lvl.quantity == Decimal("0.5") for lvl in levels)
        assert [lvl.price for lvl in levels] == [
            Decimal("102"),
            Decimal("103"),
            Decimal("104"),
            Decimal("105"),
        ]

    def test_short_ladder_below_entry(self):
        config = TakeProfitConfig(
            min_markup=Decimal("0.01"), markup_range=Decimal("0.04"), n_close_orders=4
        )
        levels = calculate_take_profit_levels(Decimal("100"), Decimal("2"), Side.SHORT, config)
        assert levels[0].price == Decimal("98")
        assert levels[-1].price == Decimal("95")

    def test_partial_exits_take_precedence(self):
        config = TakeProfitConfig(
            partial_exits=[
                PartialExit(qty_pct=Decimal("0.5"), profit_pct=Decimal("0.02")),
                PartialExit(qty_pct=Decimal("0.5"), profit_pct=Decimal("0.05")),
            ]
        )
        levels = calculate_take_profit_levels(Decimal("200"), Decimal("4"), Side.LONG, config)

        assert len(levels) == 2
        assert levels[0].price == Decimal("204")
        assert levels[0].quantity == Decimal("2")
        assert levels[1].price == Decimal("210")
