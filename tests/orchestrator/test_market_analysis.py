"""Tests for the market analysis contract"""

from decimal import Decimal

from martingrid.core.types import Side
from martingrid.orchestrator.market_analysis import (
    IMarketAnalyzer,
    RiskLevel,
    find_trading_opportunities,
)
from tests.conftest import StubAnalyzer


class TestFindTradingOpportunities:
    def test_sorted_strongest_first(self, make_analysis):
        analyses = [
            make_analysis("BTCUSDT", strength=0.7),
            make_analysis("ETHUSDT", strength=0.95),
            make_analysis("SOLUSDT", strength=0.8),
        ]

        ranked = find_trading_opportunities(analyses, min_strength=0.6)

        assert [a.symbol for a in ranked] == ["ETHUSDT", "SOLUSDT", "BTCUSDT"]

    def test_filters_untradeable(self, make_analysis):
        analyses = [
            make_analysis("BTCUSDT", should_trade=False),
            make_analysis("ETHUSDT", side=None),
            make_analysis("SOLUSDT", strength=0.5),
            make_analysis("XRPUSDT", strength=0.6),
        ]

        ranked = find_trading_opportunities(analyses, min_strength=0.6)

        assert [a.symbol for a in ranked] == ["XRPUSDT"]

    def test_empty(self):
        assert find_trading_opportunities([]) == []


class TestMarketAnalysis:
    def test_defaults(self, make_analysis):
        analysis = make_analysis(side=Side.SHORT, strength=0.75)

        assert analysis.signal_strength == 0.75
        assert analysis.risk_level is RiskLevel.MEDIUM
        assert analysis.current_price == Decimal("100")

    def test_stub_satisfies_protocol(self):
        assert isinstance(StubAnalyzer(), IMarketAnalyzer)
