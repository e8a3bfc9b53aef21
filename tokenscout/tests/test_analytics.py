"""Tests for the performance analytics engine."""

from __future__ import annotations

from datetime import date, timedelta

import numpy as np
import pytest

from tokenscout.analytics.performance import (
    AnalyticsEngine,
    DailyMetrics,
    MarketTrend,
    TradeOutcome,
    classify_outcome,
    max_drawdown_pct,
)
from tokenscout.config import RetentionConfig
from tokenscout.execution.ledger import Trade, TradeAction
from tokenscout.tests.conftest import NOW


def make_trade(address: str = "TokenA", amount: float = 100.0, price: float = 1.0) -> Trade:
    return Trade(
        trade_id=1,
        token_address=address,
        action=TradeAction.BUY,
        amount=amount,
        price=price,
        timestamp=NOW,
    )


def close_trade(
    analytics: AnalyticsEngine,
    strategy: str,
    pnl_pct: float,
    address: str = "TokenA",
    amount: float = 100.0,
    minutes: int = 30,
):
    analytics.record_trade(make_trade(address, amount), strategy, 80.0, strategy)
    return analytics.record_exit(
        address, 1.0 + pnl_pct / 100, NOW + timedelta(minutes=minutes)
    )


def make_metrics(day: date, pnl: float, value: float = 1_000.0) -> DailyMetrics:
    return DailyMetrics(
        date=day,
        total_pnl=pnl,
        win_rate=50.0,
        total_trades=1,
        avg_trade_size=100.0,
        max_drawdown=0.0,
        sharpe_ratio=0.0,
        portfolio_value=value,
    )


class TestOutcome:
    @pytest.mark.parametrize("pnl_pct,expected", [
        (5.01, TradeOutcome.WIN),
        (5.0, TradeOutcome.BREAKEVEN),
        (0.0, TradeOutcome.BREAKEVEN),
        (-5.0, TradeOutcome.BREAKEVEN),
        (-5.01, TradeOutcome.LOSS),
    ])
    def test_classify(self, pnl_pct, expected):
        assert classify_outcome(pnl_pct) == expected


class TestMaxDrawdown:
    def test_from_zero(self):
        assert max_drawdown_pct([10, -5]) == pytest.approx(50.0)

    def test_from_starting_value(self):
        assert max_drawdown_pct([100, -50], start=1_000) == pytest.approx(50 / 1_100 * 100)

    def test_monotonic_gains(self):
        assert max_drawdown_pct([1, 2, 3]) == 0.0

    def test_non_positive_peak(self):
        assert max_drawdown_pct([-10, -5]) == 0.0


class TestRecording:
    def test_exit_closes_record(self):
        analytics = AnalyticsEngine()
        closed = close_trade(analytics, "RSI oversold", 10.0, minutes=45)

        assert len(closed) == 1
        record = closed[0]
        assert record.outcome == TradeOutcome.WIN
        assert record.pnl == pytest.approx(10.0)
        assert record.pnl_pct == pytest.approx(10.0)
        assert record.duration_minutes == 45
        assert analytics.active_trades() == []

    def test_exit_closes_all_active_records_for_token(self):
        analytics = AnalyticsEngine()
        analytics.record_trade(make_trade("TokenA"), "A", 80, "A")
        analytics.record_trade(make_trade("TokenA"), "B", 80, "B")
        analytics.record_trade(make_trade("TokenB"), "A", 80, "A")

        closed = analytics.record_exit("TokenA", 0.8, NOW)

        assert len(closed) == 2
        assert all(r.outcome == TradeOutcome.LOSS for r in closed)
        assert [r.token_address for r in analytics.active_trades()] == ["TokenB"]

    def test_exit_without_active_record(self):
        assert AnalyticsEngine().record_exit("Nope", 1.0, NOW) == []

    def test_unknown_strategy_label(self):
        analytics = AnalyticsEngine()
        record = analytics.record_trade(make_trade(), "", 70, "")
        assert record.strategy_name == "Unknown Strategy"


class TestTradeAnalysis:
    def test_empty(self):
        analysis = AnalyticsEngine().trade_analysis()
        assert analysis.total_trades == 0
        assert analysis.best_strategy == "N/A"

    def test_win_rate_and_profit_factor(self):
        analytics = AnalyticsEngine()
        close_trade(analytics, "Breakout", 10.0, address="A")
        close_trade(analytics, "Breakout", 20.0, address="B")
        close_trade(analytics, "Fade", -10.0, address="C", amount=50.0)

        analysis = analytics.trade_analysis()
        assert analysis.total_trades == 3
        assert analysis.winning_trades == 2
        assert analysis.losing_trades == 1
        assert analysis.win_rate == pytest.approx(200 / 3)
        assert analysis.avg_win == pytest.approx(15.0)
        assert analysis.avg_loss == pytest.approx(5.0)
        assert analysis.profit_factor == pytest.approx(3.0)
        assert analysis.largest_win == pytest.approx(20.0)
        assert analysis.largest_loss == pytest.approx(5.0)
        assert analysis.total_pnl == pytest.approx(25.0)
        assert analysis.best_strategy == "Breakout"
        assert analysis.worst_strategy == "Fade"

    def test_no_losses_profit_factor_zero(self):
        analytics = AnalyticsEngine()
        close_trade(analytics, "Breakout", 10.0)
        assert analytics.trade_analysis().profit_factor == 0.0

    def test_breakeven_not_counted_as_win_or_loss(self):
        analytics = AnalyticsEngine()
        close_trade(analytics, "Flat", 1.0)
        analysis = analytics.trade_analysis()
        assert analysis.total_trades == 1
        assert analysis.winning_trades == 0
        assert analysis.losing_trades == 0


class TestStrategyAnalytics:
    def test_sorted_by_profitability(self):
        analytics = AnalyticsEngine()
        close_trade(analytics, "Loser", -20.0, address="A")
        close_trade(analytics, "Winner", 30.0, address="B")
        close_trade(analytics, "Winner", -10.0, address="C")

        results = analytics.strategy_analytics()
        assert [s.name for s in results] == ["Winner", "Loser"]

        winner, loser = results
        assert winner.total_trades == 2
        assert winner.win_rate == pytest.approx(50.0)
        assert winner.avg_pnl == pytest.approx(10.0)
        assert winner.profitability == pytest.approx(500.0)
        assert winner.reliability == pytest.approx(0.5)
        assert winner.max_drawdown == pytest.approx(10 / 30 * 100)
        assert loser.profitability == 0.0


class TestPortfolioAnalytics:
    def test_empty_uses_starting_value(self):
        summary = AnalyticsEngine(starting_value=2_500).portfolio_analytics()
        assert summary.total_value == 2_500
        assert summary.sharpe_ratio == 0.0
        assert summary.beta == 1.0

    def test_statistics(self):
        analytics = AnalyticsEngine(starting_value=1_000, rng=np.random.default_rng(0))
        start = date(2026, 1, 1)
        for i, pnl in enumerate([10.0, -20.0, 30.0]):
            analytics._daily_metrics.append(make_metrics(start + timedelta(days=i), pnl, 1_020.0))

        summary = analytics.portfolio_analytics()
        daily = np.array([10.0, -20.0, 30.0])

        assert summary.total_value == 1_020.0
        assert summary.daily_pnl == 30.0
        assert summary.monthly_pnl == pytest.approx(20.0)
        assert summary.volatility == pytest.approx(daily.std())
        assert summary.sharpe_ratio == pytest.approx(daily.mean() / daily.std())
        assert summary.alpha == pytest.approx(daily.mean() - 0.045)
        assert summary.max_drawdown == pytest.approx(20 / 1_010 * 100)
        assert 0.8 <= summary.beta <= 1.2

    def test_drawdown_starts_from_starting_value(self):
        analytics = AnalyticsEngine(starting_value=1_000)
        start = date(2026, 1, 1)
        for i, pnl in enumerate([-50.0, 10.0]):
            analytics._daily_metrics.append(make_metrics(start + timedelta(days=i), pnl, 900.0))
        assert analytics.portfolio_analytics().max_drawdown == pytest.approx(5.0)

    def test_zero_volatility_sharpe(self):
        analytics = AnalyticsEngine()
        start = date(2026, 1, 1)
        for i in range(3):
            analytics._daily_metrics.append(make_metrics(start + timedelta(days=i), 5.0))
        assert analytics.portfolio_analytics().sharpe_ratio == 0.0

    def test_weekly_uses_last_seven_days(self):
        analytics = AnalyticsEngine()
        start = date(2026, 1, 1)
        for i in range(10):
            analytics._daily_metrics.append(make_metrics(start + timedelta(days=i), float(i)))
        assert analytics.portfolio_analytics().weekly_pnl == pytest.approx(sum(range(3, 10)))


class TestDailyMetrics:
    def test_upsert_same_day(self):
        analytics = AnalyticsEngine()
        close_trade(analytics, "Breakout", 10.0)

        analytics.update_daily_metrics(1_010.0, today=NOW.date())
        row = analytics.update_daily_metrics(1_012.0, today=NOW.date())

        history = analytics.performance_history()
        assert len(history) == 1
        assert history[0] is row
        assert row.portfolio_value == 1_012.0
        assert row.total_pnl == pytest.approx(10.0)
        assert row.total_trades == 1

    def test_new_day_appends(self):
        analytics = AnalyticsEngine()
        analytics.update_daily_metrics(1_000.0, today=date(2026, 1, 1))
        analytics.update_daily_metrics(1_000.0, today=date(2026, 1, 2))
        assert len(analytics.performance_history()) == 2

    def test_daily_realized_pnl(self):
        analytics = AnalyticsEngine()
        close_trade(analytics, "A", 10.0, address="A")
        close_trade(analytics, "A", 20.0, address="B")
        series = analytics.daily_realized_pnl()
        assert series[NOW.date()] == pytest.approx(30.0)


class TestMarketConditions:
    def test_derived_from_token_moves(self):
        analytics = AnalyticsEngine()
        row = analytics.record_market_conditions(
            {"A": 10.0, "B": -4.0, "C": 6.0, "D": 0.0},
            {"A": 1_000.0, "B": 2_000.0, "C": 500.0, "D": 0.0},
            timestamp=NOW,
        )

        assert row.overall_trend == MarketTrend.BULLISH
        assert row.volatility_index == pytest.approx(np.sqrt(29.0))
        assert row.total_market_volume == pytest.approx(3_500.0)
        assert row.top_performers == ["A", "C", "D"]
        assert row.market_sentiment == pytest.approx(0.06)
        assert row.to_dict()["overall_trend"] == "BULLISH"

    @pytest.mark.parametrize("changes, trend", [
        ({"A": -5.0}, MarketTrend.BEARISH),
        ({"A": 1.5, "B": -1.0}, MarketTrend.SIDEWAYS),
        ({"A": 2.0}, MarketTrend.SIDEWAYS),
    ])
    def test_trend_bands(self, changes, trend):
        row = AnalyticsEngine().record_market_conditions(changes, {}, timestamp=NOW)
        assert row.overall_trend == trend

    def test_sentiment_and_volatility_clipped(self):
        row = AnalyticsEngine().record_market_conditions(
            {"A": 600.0, "B": -400.0}, {}, timestamp=NOW
        )
        assert row.volatility_index == 100.0
        assert row.market_sentiment == 1.0

    def test_no_market_data(self):
        analytics = AnalyticsEngine()
        assert analytics.record_market_conditions({}, {}, timestamp=NOW) is None
        assert analytics.market_history() == []

    def test_upsert_same_day(self):
        analytics = AnalyticsEngine()
        analytics.record_market_conditions({"A": 5.0}, {}, timestamp=NOW)
        latest = analytics.record_market_conditions(
            {"A": -5.0}, {}, timestamp=NOW + timedelta(hours=1)
        )
        assert analytics.market_history() == [latest]

        analytics.record_market_conditions({"A": 0.0}, {}, timestamp=NOW + timedelta(days=1))
        assert len(analytics.market_history()) == 2


class TestRetention:
    def test_history_views_bounded(self):
        analytics = AnalyticsEngine(
            retention=RetentionConfig(history_days=5, history_trades=3),
            rng=np.random.default_rng(7),
        )
        analytics.seed_demo_history(days=10, trades=10)

        assert len(analytics.performance_history()) == 5
        assert len(analytics.market_history()) == 5
        assert len(analytics.strategy_history()) == 3
        assert len(analytics.completed_trades()) == 10

    def test_strategy_records_capped(self):
        analytics = AnalyticsEngine(retention=RetentionConfig(max_strategy_records=4))
        for i in range(6):
            analytics.record_trade(make_trade(f"T{i}"), "A", 80, "A")
        assert len(analytics.active_trades()) == 4
