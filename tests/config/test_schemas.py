"""Tests for configuration schemas"""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from martingrid.config.schemas import (
    CCIConfig,
    DirectionalConfig,
    ExchangeConfig,
    GridConfig,
    LoggingConfig,
    PartialExit,
    PortfolioConfig,
    RiskConfig,
    StrategyConfig,
    TakeProfitConfig,
    TrendConfig,
)
from martingrid.core.types import Side


class TestDefaults:
    def test_strategy_defaults(self, strategy_config):
        """Long on, short off, testnet on"""
        assert strategy_config.long.enabled
        assert not strategy_config.short.enabled
        assert strategy_config.exchange.testnet
        assert strategy_config.exchange.name == "binanceusdm"
        assert strategy_config.long.grid.ddown_factor == Decimal("1.5")
        assert strategy_config.long.risk.stop_loss_pct == Decimal("10")
        assert strategy_config.portfolio.max_symbols == 3

    def test_directional(self, strategy_config):
        assert strategy_config.directional(Side.LONG) is strategy_config.long
        assert strategy_config.directional(Side.SHORT) is strategy_config.short

    def test_effective_ddown_factor(self):
        assert GridConfig(ddown_factor=Decimal("2")).effective_ddown_factor == Decimal("2")
        flat = GridConfig(ddown_factor=Decimal("2"), martingale_enabled=False)
        assert flat.effective_ddown_factor == Decimal("1")


class TestValidators:
    def test_ema_order(self):
        with pytest.raises(ValidationError):
            TrendConfig(ema_fast=200, ema_slow=50)

    def test_cci_lengths(self):
        with pytest.raises(ValidationError):
            CCIConfig(levels=[-100.0, -200.0], position_sizes=[Decimal("0.5")])

    def test_spacing_range(self):
        with pytest.raises(ValidationError):
            GridConfig(min_spacing=Decimal("0.05"), max_spacing=Decimal("0.01"))

    def test_max_levels_bounds(self):
        with pytest.raises(ValidationError):
            GridConfig(max_levels=0)
        with pytest.raises(ValidationError):
            GridConfig(max_levels=51)

    def test_partial_exit_sum(self):
        exits = [
            PartialExit(qty_pct=Decimal("0.6"), profit_pct=Decimal("0.01")),
            PartialExit(qty_pct=Decimal("0.6"), profit_pct=Decimal("0.02")),
        ]
        with pytest.raises(ValidationError):
            TakeProfitConfig(partial_exits=exits)

    def test_partial_exit_qty_bounds(self):
        with pytest.raises(ValidationError):
            PartialExit(qty_pct=Decimal("1.5"), profit_pct=Decimal("0.01"))

    def test_liquidation_tier_order(self):
        with pytest.raises(ValidationError):
            RiskConfig(
                liquidation_warning_distance=Decimal("20"),
                liquidation_danger_distance=Decimal("25"),
            )

    def test_leverage_bounds(self):
        with pytest.raises(ValidationError):
            DirectionalConfig(leverage=0)

    def test_empty_universe(self):
        with pytest.raises(ValidationError):
            PortfolioConfig(symbol_universe=[])

    def test_volatility_band(self):
        with pytest.raises(ValidationError):
            PortfolioConfig(min_volatility=Decimal("0.2"), max_volatility=Decimal("0.1"))

    def test_empty_credentials(self):
        with pytest.raises(ValidationError):
            ExchangeConfig(api_key="", api_secret="secret")

    def test_log_level(self):
        with pytest.raises(ValidationError):
            LoggingConfig(level="VERBOSE")

    def test_one_direction_required(self, exchange_config):
        with pytest.raises(ValidationError):
            StrategyConfig(
                exchange=exchange_config,
                long=DirectionalConfig(enabled=False),
                short=DirectionalConfig(enabled=False),
            )


class TestSoftWarnings:
    def test_defaults_are_quiet(self, strategy_config):
        assert strategy_config.soft_warnings() == []

    def test_aggressive_settings(self, exchange_config):
        config = StrategyConfig(
            exchange=exchange_config.model_copy(update={"testnet": False}),
            long=DirectionalConfig(
                leverage=25,
                wallet_exposure_limit=Decimal("1.5"),
                grid=GridConfig(ddown_factor=Decimal("2.5")),
            ),
            short=DirectionalConfig(wallet_exposure_limit=Decimal("1.5")),
        )

        warnings = config.soft_warnings()

        assert any("long.leverage" in w for w in warnings)
        assert any("ddown_factor" in w for w in warnings)
        assert any("combined wallet exposure" in w for w in warnings)
        assert any("testnet" in w for w in warnings)

    def test_disabled_side_ignored(self, exchange_config):
        config = StrategyConfig(
            exchange=exchange_config,
            short=DirectionalConfig(enabled=False, leverage=50),
        )
        assert config.soft_warnings() == []
