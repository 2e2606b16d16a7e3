"""
Pydantic schemas for the strategy configuration tree.
Everything here is validated once at startup; the engine trusts the result.
"""

from decimal import Decimal
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, model_validator

from martingrid.core.types import Side


class MarginType(str, Enum):
    ISOLATED = "ISOLATED"
    CROSSED = "CROSSED"


# =========================================================================
# Indicator sections (consumed by the external analyzer)
# =========================================================================


class TrendConfig(BaseModel):
    ema_fast: int = Field(default=50, ge=1)
    ema_slow: int = Field(default=200, ge=2)
    adx_period: int = Field(default=14, ge=1)
    adx_threshold: float = Field(default=25.0, ge=0)
    timeframe: str = Field(default="4h")
    confirmation_timeframe: str = Field(default="1h")

    @model_validator(mode="after")
    def validate_ema_order(self) -> "TrendConfig":
        if self.ema_fast >= self.ema_slow:
            raise ValueError("ema_fast must be smaller than ema_slow")
        return self


class CCIConfig(BaseModel):
    period: int = Field(default=20, ge=2)
    timeframe: str = Field(default="15m")
    levels: list[float] = Field(default_factory=lambda: [-100.0, -150.0, -200.0])
    position_sizes: list[Decimal] = Field(
        default_factory=lambda: [Decimal("0.3"), Decimal("0.5"), Decimal("1.0")],
        description="Fraction of the symbol allocation used at each CCI level",
    )

    @model_validator(mode="after")
    def validate_lengths(self) -> "CCIConfig":
        if len(self.levels) != len(self.position_sizes):
            raise ValueError("cci levels and position_sizes must have the same length")
        return self


# =========================================================================
# Directional sections
# =========================================================================


class GridConfig(BaseModel):
    """Grid spacing and martingale sizing"""

    base_spacing: Decimal = Field(default=Decimal("0.01"), gt=0, lt=1)
    min_spacing: Decimal = Field(default=Decimal("0.005"), gt=0, lt=1)
    max_spacing: Decimal = Field(default=Decimal("0.05"), gt=0, lt=1)
    use_atr_spacing: bool = Field(default=True)
    atr_multiplier_major: Decimal = Field(default=Decimal("1.8"), gt=0)
    atr_multiplier_alt: Decimal = Field(default=Decimal("1.3"), gt=0)
    martingale_enabled: bool = Field(default=True)
    ddown_factor: Decimal = Field(
        default=Decimal("1.5"),
        gt=0,
        description="Quantity multiplier applied per filled level",
    )
    max_levels: int = Field(default=10, ge=1, le=50)
    use_position_adjustment: bool = Field(default=True)
    position_spacing_factor: Decimal = Field(default=Decimal("2.0"), ge=0)

    @model_validator(mode="after")
    def validate_spacing_range(self) -> "GridConfig":
        if self.min_spacing >= self.max_spacing:
            raise ValueError("min_spacing must be smaller than max_spacing")
        return self

    @property
    def effective_ddown_factor(self) -> Decimal:
        return self.ddown_factor if self.martingale_enabled else Decimal("1")


class PartialExit(BaseModel):
    qty_pct: Decimal = Field(..., gt=0, le=1, description="Fraction of position closed")
    profit_pct: Decimal = Field(..., gt=0, description="Profit target as a fraction (0.02 = 2%)")


class TakeProfitConfig(BaseModel):
    min_markup: Decimal = Field(default=Decimal("0.005"), ge=0)
    markup_range: Decimal = Field(default=Decimal("0.02"), ge=0)
    n_close_orders: int = Field(default=5, ge=1)
    partial_exits: list[PartialExit] = Field(default_factory=list)
    refresh_threshold: Decimal = Field(
        default=Decimal("0.001"),
        ge=0,
        description="Relative move of average entry that triggers a ladder refresh",
    )

    @model_validator(mode="after")
    def validate_partial_exits(self) -> "TakeProfitConfig":
        total = sum((p.qty_pct for p in self.partial_exits), Decimal("0"))
        if total > 1:
            raise ValueError("partial_exits qty_pct must not sum above 1")
        return self


class RiskConfig(BaseModel):
    stop_loss_pct: Decimal = Field(
        default=Decimal("10"),
        gt=0,
        le=100,
        description="Close when unrealized loss exceeds this percentage of notional",
    )
    max_hold_hours: float = Field(default=48.0, gt=0)
    liquidation_warning_distance: Decimal = Field(default=Decimal("35"), gt=0)
    liquidation_danger_distance: Decimal = Field(default=Decimal("25"), gt=0)
    liquidation_critical_distance: Decimal = Field(default=Decimal("15"), gt=0)

    @model_validator(mode="after")
    def validate_liquidation_tiers(self) -> "RiskConfig":
        if not (
            self.liquidation_warning_distance
            > self.liquidation_danger_distance
            > self.liquidation_critical_distance
        ):
            raise ValueError("liquidation distances must satisfy warning > danger > critical")
        return self


class DirectionalConfig(BaseModel):
    enabled: bool = Field(default=True)
    leverage: int = Field(default=10, ge=1, le=125)
    wallet_exposure_limit: Decimal = Field(default=Decimal("1.0"), gt=0)
    grid: GridConfig = Field(default_factory=GridConfig)
    take_profit: TakeProfitConfig = Field(default_factory=TakeProfitConfig)
    risk: RiskConfig = Field(default_factory=RiskConfig)


class HedgeConfig(BaseModel):
    """Hedge grid parameters (data contract; activation is not automated)"""

    enabled: bool = Field(default=False)
    loss_threshold: Decimal = Field(default=Decimal("-0.05"), lt=0)
    liquidation_distance_threshold: Decimal = Field(default=Decimal("30"), gt=0)
    max_hold_hours: float = Field(default=2.0, gt=0)
    initial_size_ratio: Decimal = Field(default=Decimal("0.5"), gt=0, le=1)
    max_exposure_ratio: Decimal = Field(default=Decimal("1.0"), gt=0)
    grid_spacing: Decimal = Field(default=Decimal("0.003"), gt=0, lt=1)
    profit_target: Decimal = Field(default=Decimal("0.01"), gt=0)
    asymmetry_ratio: Decimal = Field(default=Decimal("0.6"), gt=0)
    max_levels: int = Field(default=4, ge=1)
    profit_recycling_enabled: bool = Field(default=True)
    recycling_ratio: Decimal = Field(default=Decimal("0.7"), ge=0, le=1)


class PortfolioConfig(BaseModel):
    max_symbols: int = Field(default=3, ge=1)
    reserved_capital_pct: Decimal = Field(default=Decimal("20"), ge=0, lt=100)
    symbol_universe: list[str] = Field(default_factory=lambda: ["BTCUSDT", "ETHUSDT"])
    min_volatility: Decimal = Field(default=Decimal("0.005"), ge=0)
    max_volatility: Decimal = Field(default=Decimal("0.1"), gt=0)
    min_volume_usd: Decimal = Field(
        default=Decimal("0"), ge=0, description="24h quote volume floor; 0 disables the check"
    )
    min_signal_strength: float = Field(default=0.6, ge=0, le=1)

    @model_validator(mode="after")
    def validate_universe(self) -> "PortfolioConfig":
        if not self.symbol_universe:
            raise ValueError("symbol_universe must not be empty")
        if self.min_volatility >= self.max_volatility:
            raise ValueError("min_volatility must be smaller than max_volatility")
        return self


class ExchangeConfig(BaseModel):
    name: str = Field(default="binanceusdm", description="ccxt exchange id")
    api_key: str = Field(..., min_length=1)
    api_secret: str = Field(..., min_length=1)
    testnet: bool = Field(default=True)
    rate_limit_per_minute: int = Field(default=1200, ge=1)
    order_timeout_seconds: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=1)
    retry_delay_seconds: float = Field(default=1.0, ge=0)
    margin_type: MarginType = Field(default=MarginType.CROSSED)
    quantity_precision: int = Field(default=3, ge=0, le=12)
    min_order_qty: Decimal = Field(default=Decimal("0.001"), gt=0)


class ExecutionConfig(BaseModel):
    loop_interval_seconds: float = Field(default=60.0, gt=0)
    settle_delay_seconds: float = Field(default=0.5, ge=0)
    batch_delay_seconds: float = Field(default=0.1, ge=0)
    poll_delay_seconds: float = Field(default=0.05, ge=0)
    assumed_leverage: Decimal = Field(default=Decimal("10"), gt=0)


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    log_dir: Path = Field(default=Path("logs"))
    log_to_file: bool = Field(default=True)
    log_to_console: bool = Field(default=True)
    json_logs: bool = Field(default=False)


class StrategyConfig(BaseModel):
    """Root configuration"""

    name: str = Field(default="martingrid")
    version: str = Field(default="1.0")
    trend: TrendConfig = Field(default_factory=TrendConfig)
    cci: CCIConfig = Field(default_factory=CCIConfig)
    long: DirectionalConfig = Field(default_factory=DirectionalConfig)
    short: DirectionalConfig = Field(default_factory=lambda: DirectionalConfig(enabled=False))
    hedge: HedgeConfig = Field(default_factory=HedgeConfig)
    portfolio: PortfolioConfig = Field(default_factory=PortfolioConfig)
    exchange: ExchangeConfig
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def validate_directions(self) -> "StrategyConfig":
        if not (self.long.enabled or self.short.enabled):
            raise ValueError("at least one of long/short must be enabled")
        return self

    def directional(self, side: Side) -> DirectionalConfig:
        """Return the long or short section for a grid direction."""
        return self.long if side is Side.LONG else self.short

    def soft_warnings(self) -> list[str]:
        """Settings that are legal but worth flagging at startup."""
        warnings = []
        for label, section in (("long", self.long), ("short", self.short)):
            if not section.enabled:
                continue
            if section.leverage > 20:
                warnings.append(f"{label}.leverage {section.leverage} is high")
            if section.grid.ddown_factor > 2:
                warnings.append(
                    f"{label}.grid.ddown_factor {section.grid.ddown_factor} is aggressive"
                )
        total_exposure = (self.long.wallet_exposure_limit if self.long.enabled else 0) + (
            self.short.wallet_exposure_limit if self.short.enabled else 0
        )
        if total_exposure > Decimal("2.5"):
            warnings.append(f"combined wallet exposure limit {total_exposure} exceeds 2.5")
        if self.exchange.testnet is False:
            warnings.append("exchange.testnet is off, orders go to the live venue")
        return warnings
