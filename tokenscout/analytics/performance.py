"""
Performance Analytics.

Aggregates closed strategy trades and a rolling daily-metrics series into
trade, portfolio and per-strategy statistics. The Sharpe ratio, beta and
alpha are simplified approximations, not validated financial models.
"""

from __future__ import annotations

import itertools
import logging
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from tokenscout.config import RetentionConfig
from tokenscout.execution.ledger import Trade

logger = logging.getLogger(__name__)

WIN_THRESHOLD_PCT = 5.0
LOSS_THRESHOLD_PCT = -5.0
RISK_FREE_DAILY = 0.05 * 0.9  # Used by the simulated alpha

TREND_THRESHOLD_PCT = 2.0  # Mean 24h change separating BULLISH/BEARISH from SIDEWAYS
SENTIMENT_SCALE_PCT = 50.0  # Mean 24h change mapped to sentiment +-1
TOP_PERFORMERS = 3

DEMO_STRATEGIES = [
    "Technical Breakout",
    "Volume Spike",
    "Social Momentum",
    "Mean Reversion",
    "Trend Following",
]


class MarketTrend(Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    SIDEWAYS = "SIDEWAYS"


class TradeOutcome(Enum):
    WIN = "WIN"
    LOSS = "LOSS"
    BREAKEVEN = "BREAKEVEN"
    ACTIVE = "ACTIVE"


def classify_outcome(pnl_pct: float) -> TradeOutcome:
    if pnl_pct > WIN_THRESHOLD_PCT:
        return TradeOutcome.WIN
    if pnl_pct < LOSS_THRESHOLD_PCT:
        return TradeOutcome.LOSS
    return TradeOutcome.BREAKEVEN


def _serialize(obj) -> dict:
    out = {}
    for key, value in asdict(obj).items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, (datetime, date)):
            value = value.isoformat()
        out[key] = value
    return out


@dataclass
class StrategyTrade:
    """Entry/exit record of one trade, tagged with the strategy that opened it."""

    record_id: int
    strategy_name: str
    token_address: str
    amount: float
    entry_price: float
    entry_time: datetime
    confidence: float
    reason: str
    exit_price: Optional[float] = None
    exit_time: Optional[datetime] = None
    pnl: Optional[float] = None
    pnl_pct: Optional[float] = None
    duration_minutes: Optional[int] = None
    outcome: TradeOutcome = TradeOutcome.ACTIVE

    @property
    def is_closed(self) -> bool:
        return self.outcome != TradeOutcome.ACTIVE

    def close(self, exit_price: float, exit_time: datetime) -> None:
        self.exit_price = exit_price
        self.exit_time = exit_time
        self.duration_minutes = int((exit_time - self.entry_time).total_seconds() // 60)
        self.pnl_pct = (exit_price - self.entry_price) / self.entry_price * 100
        self.pnl = self.amount * self.pnl_pct / 100
        self.outcome = classify_outcome(self.pnl_pct)

    def to_dict(self) -> dict:
        return _serialize(self)


@dataclass
class DailyMetrics:
    date: date
    total_pnl: float
    win_rate: float
    total_trades: int
    avg_trade_size: float
    max_drawdown: float
    sharpe_ratio: float
    portfolio_value: float

    def to_dict(self) -> dict:
        return _serialize(self)


@dataclass
class TradeAnalysis:
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    total_pnl: float = 0.0
    win_rate: float = 0.0  # %
    avg_win: float = 0.0
    avg_loss: float = 0.0
    profit_factor: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    avg_trade_duration: float = 0.0  # minutes
    best_strategy: str = "N/A"
    worst_strategy: str = "N/A"

    def to_dict(self) -> dict:
        return _serialize(self)


@dataclass
class PortfolioAnalytics:
    total_value: float
    daily_pnl: float = 0.0
    weekly_pnl: float = 0.0
    monthly_pnl: float = 0.0
    max_drawdown: float = 0.0  # %
    sharpe_ratio: float = 0.0
    volatility: float = 0.0
    beta: float = 1.0
    alpha: float = 0.0

    def to_dict(self) -> dict:
        return _serialize(self)


@dataclass
class StrategyAnalytics:
    name: str
    total_trades: int
    win_rate: float  # %
    avg_pnl: float
    max_drawdown: float  # %
    profitability: float
    reliability: float

    def to_dict(self) -> dict:
        return _serialize(self)


@dataclass
class MarketConditions:
    """Market-wide snapshot across the tracked tokens for one day."""

    condition_id: int
    timestamp: datetime
    overall_trend: MarketTrend
    volatility_index: float  # 0-100
    total_market_volume: float
    top_performers: list[str]
    market_sentiment: float  # -1 to 1

    def to_dict(self) -> dict:
        return _serialize(self)


def max_drawdown_pct(pnls: Iterable[float], start: float = 0.0) -> float:
    """Largest % decline from the running peak of start + cumulative P&L."""
    running = start
    peak = start
    worst = 0.0
    for pnl in pnls:
        running += pnl
        if running > peak:
            peak = running
        drawdown = (peak - running) / peak * 100 if peak > 0 else 0.0
        if drawdown > worst:
            worst = drawdown
    return worst


class AnalyticsEngine:
    """Strategy trade history and derived performance statistics."""

    def __init__(
        self,
        retention: Optional[RetentionConfig] = None,
        starting_value: float = 1_000.0,
        rng: Optional[np.random.Generator] = None,
    ):
        self._retention = retention or RetentionConfig()
        self._starting_value = starting_value
        self._rng = rng or np.random.default_rng()

        self._strategy_history: deque[StrategyTrade] = deque(
            maxlen=self._retention.max_strategy_records
        )
        self._daily_metrics: deque[DailyMetrics] = deque(
            maxlen=self._retention.history_days
        )
        self._market_history: deque[MarketConditions] = deque(
            maxlen=self._retention.history_days
        )
        self._record_ids = itertools.count(1)
        self._condition_ids = itertools.count(1)

    # ─── Recording ──────────────────────────────────────────────────────

    def record_trade(
        self, trade: Trade, strategy: str, confidence: float, reason: str
    ) -> StrategyTrade:
        record = StrategyTrade(
            record_id=next(self._record_ids),
            strategy_name=strategy or "Unknown Strategy",
            token_address=trade.token_address,
            amount=trade.amount,
            entry_price=trade.price,
            entry_time=trade.timestamp,
            confidence=confidence,
            reason=reason,
        )
        self._strategy_history.append(record)
        logger.debug("Trade recorded for analytics: %s %s", trade.action.value, trade.token_address)
        return record

    def record_exit(
        self, token_address: str, exit_price: float, exit_time: Optional[datetime] = None
    ) -> list[StrategyTrade]:
        """Close every active record for the token."""
        exit_time = exit_time or datetime.now(timezone.utc)
        closed = []
        for record in self._strategy_history:
            if record.token_address == token_address and not record.is_closed:
                record.close(exit_price, exit_time)
                closed.append(record)
                logger.info(
                    "Trade exit recorded: %s %s %.2f%%",
                    record.strategy_name, record.outcome.value, record.pnl_pct,
                )
        return closed

    def completed_trades(self) -> list[StrategyTrade]:
        return [r for r in self._strategy_history if r.is_closed]

    def active_trades(self) -> list[StrategyTrade]:
        return [r for r in self._strategy_history if not r.is_closed]

    # ─── Trade analysis ─────────────────────────────────────────────────

    def trade_analysis(self) -> TradeAnalysis:
        completed = self.completed_trades()
        if not completed:
            return TradeAnalysis()

        wins = [r.pnl for r in completed if r.outcome == TradeOutcome.WIN]
        losses = [abs(r.pnl) for r in completed if r.outcome == TradeOutcome.LOSS]

        avg_win = float(np.mean(wins)) if wins else 0.0
        avg_loss = float(np.mean(losses)) if losses else 0.0

        strategy_pnl: dict[str, float] = {}
        for r in completed:
            strategy_pnl[r.strategy_name] = strategy_pnl.get(r.strategy_name, 0.0) + r.pnl

        return TradeAnalysis(
            total_trades=len(completed),
            winning_trades=len(wins),
            losing_trades=len(losses),
            total_pnl=sum(r.pnl for r in completed),
            win_rate=len(wins) / len(completed) * 100,
            avg_win=avg_win,
            avg_loss=avg_loss,
            profit_factor=avg_win / avg_loss if avg_loss > 0 else 0.0,
            largest_win=max(wins) if wins else 0.0,
            largest_loss=max(losses) if losses else 0.0,
            avg_trade_duration=float(np.mean([r.duration_minutes or 0 for r in completed])),
            best_strategy=max(strategy_pnl, key=strategy_pnl.get),
            worst_strategy=min(strategy_pnl, key=strategy_pnl.get),
        )

    # ─── Portfolio analytics ────────────────────────────────────────────

    def portfolio_analytics(self) -> PortfolioAnalytics:
        """Drawdown is scanned from the starting value, not the latest value."""
        metrics = list(self._daily_metrics)
        if not metrics:
            return PortfolioAnalytics(total_value=self._starting_value)

        daily = np.array([m.total_pnl for m in metrics], dtype=float)
        avg_return = float(daily.mean())
        volatility = float(daily.std())

        return PortfolioAnalytics(
            total_value=metrics[-1].portfolio_value,
            daily_pnl=float(daily[-1]),
            weekly_pnl=float(daily[-7:].sum()),
            monthly_pnl=float(daily.sum()),
            max_drawdown=max_drawdown_pct(daily, start=self._starting_value),
            sharpe_ratio=avg_return / volatility if volatility > 0 else 0.0,
            volatility=volatility,
            beta=float(self._rng.uniform(0.8, 1.2)),
            alpha=avg_return - RISK_FREE_DAILY,
        )

    # ─── Strategy analytics ─────────────────────────────────────────────

    def strategy_analytics(self) -> list[StrategyAnalytics]:
        grouped: dict[str, list[StrategyTrade]] = {}
        for record in self.completed_trades():
            grouped.setdefault(record.strategy_name, []).append(record)

        results = []
        for name, trades in grouped.items():
            pnls = [t.pnl for t in trades]
            wins = sum(1 for t in trades if t.outcome == TradeOutcome.WIN)
            win_rate = wins / len(trades) * 100
            avg_pnl = float(np.mean(pnls))

            results.append(StrategyAnalytics(
                name=name,
                total_trades=len(trades),
                win_rate=win_rate,
                avg_pnl=avg_pnl,
                max_drawdown=max_drawdown_pct(pnls),
                profitability=avg_pnl * win_rate if avg_pnl > 0 else 0.0,
                reliability=win_rate / 100,
            ))

        return sorted(results, key=lambda s: s.profitability, reverse=True)

    # ─── Daily metrics ──────────────────────────────────────────────────

    def daily_realized_pnl(self) -> pd.Series:
        """Realized P&L of closed trades summed per exit date."""
        completed = self.completed_trades()
        if not completed:
            return pd.Series(dtype=float)

        df = pd.DataFrame({
            "date": [r.exit_time.date() for r in completed],
            "pnl": [r.pnl for r in completed],
        })
        return df.groupby("date")["pnl"].sum()

    def update_daily_metrics(
        self, portfolio_value: float, today: Optional[date] = None
    ) -> DailyMetrics:
        """Upsert the metrics row for today."""
        today = today or datetime.now(timezone.utc).date()

        todays = [r for r in self.completed_trades() if r.exit_time.date() == today]
        realized = self.daily_realized_pnl()
        day_pnl = float(realized.get(today, 0.0))

        row = DailyMetrics(
            date=today,
            total_pnl=day_pnl,
            win_rate=self.trade_analysis().win_rate,
            total_trades=len(todays),
            avg_trade_size=float(np.mean([r.amount for r in todays])) if todays else 0.0,
            max_drawdown=0.0,
            sharpe_ratio=0.0,
            portfolio_value=portfolio_value,
        )

        if self._daily_metrics and self._daily_metrics[-1].date == today:
            self._daily_metrics[-1] = row
        else:
            self._daily_metrics.append(row)

        summary = self.portfolio_analytics()
        row.max_drawdown = summary.max_drawdown
        row.sharpe_ratio = summary.sharpe_ratio

        logger.info(
            "Daily metrics updated: %d trades, %.2f P&L", row.total_trades, row.total_pnl
        )
        return row

    # ─── Market conditions ──────────────────────────────────────────────

    def record_market_conditions(
        self,
        changes: dict[str, float],
        volumes: dict[str, float],
        timestamp: Optional[datetime] = None,
    ) -> Optional[MarketConditions]:
        """Upsert today's market row from per-token 24h changes and volumes.

        Returns None when no token has market data.
        """
        if not changes:
            return None
        timestamp = timestamp or datetime.now(timezone.utc)

        moves = pd.Series(changes, dtype=float)
        mean_change = float(moves.mean())
        if mean_change > TREND_THRESHOLD_PCT:
            trend = MarketTrend.BULLISH
        elif mean_change < -TREND_THRESHOLD_PCT:
            trend = MarketTrend.BEARISH
        else:
            trend = MarketTrend.SIDEWAYS

        row = MarketConditions(
            condition_id=next(self._condition_ids),
            timestamp=timestamp,
            overall_trend=trend,
            volatility_index=float(min(100.0, moves.std(ddof=0))),
            total_market_volume=float(sum(volumes.values())),
            top_performers=list(moves.nlargest(TOP_PERFORMERS).index),
            market_sentiment=float(np.clip(mean_change / SENTIMENT_SCALE_PCT, -1.0, 1.0)),
        )

        last = self._market_history[-1] if self._market_history else None
        if last is not None and last.timestamp.date() == timestamp.date():
            self._market_history[-1] = row
        else:
            self._market_history.append(row)
        return row

    # ─── History views ──────────────────────────────────────────────────

    def performance_history(self) -> list[DailyMetrics]:
        return list(self._daily_metrics)[-self._retention.history_days:]

    def strategy_history(self) -> list[StrategyTrade]:
        return list(self._strategy_history)[-self._retention.history_trades:]

    def market_history(self) -> list[MarketConditions]:
        return list(self._market_history)[-self._retention.history_days:]

    # ─── Demo data ──────────────────────────────────────────────────────

    def seed_demo_history(self, days: int = 30, trades: int = 100) -> None:
        """Populate simulated history so a fresh dashboard has something to show."""
        now = datetime.now(timezone.utc)
        start = now - timedelta(days=days)
        value = self._starting_value

        for i in range(days):
            day_pnl = float((self._rng.random() - 0.45) * 200)
            value += day_pnl
            self._daily_metrics.append(DailyMetrics(
                date=(start + timedelta(days=i)).date(),
                total_pnl=day_pnl,
                win_rate=float(0.6 + self._rng.random() * 0.3) * 100,
                total_trades=int(self._rng.integers(5, 20)),
                avg_trade_size=float(50 + self._rng.random() * 100),
                max_drawdown=float(self._rng.random() * 15),
                sharpe_ratio=float(1.2 + self._rng.random() * 0.8),
                portfolio_value=value,
            ))

        for _ in range(trades):
            strategy = DEMO_STRATEGIES[int(self._rng.integers(len(DEMO_STRATEGIES)))]
            entry_time = start + timedelta(days=float(self._rng.random() * days))
            entry_price = float(0.001 + self._rng.random() * 0.1)
            exit_price = entry_price * (1 + float((self._rng.random() - 0.4) * 0.5))

            record = StrategyTrade(
                record_id=next(self._record_ids),
                strategy_name=strategy,
                token_address=f"token_{int(self._rng.integers(50))}",
                amount=50.0,
                entry_price=entry_price,
                entry_time=entry_time,
                confidence=float(60 + self._rng.random() * 35),
                reason=f"{strategy} signal detected",
            )
            record.close(exit_price, entry_time + timedelta(minutes=int(self._rng.integers(1440))))
            self._strategy_history.append(record)

        trends = list(MarketTrend)
        for i in range(days):
            self._market_history.append(MarketConditions(
                condition_id=next(self._condition_ids),
                timestamp=start + timedelta(days=i),
                overall_trend=trends[int(self._rng.integers(len(trends)))],
                volatility_index=float(self._rng.random() * 100),
                total_market_volume=float(1_000_000 + self._rng.random() * 5_000_000),
                top_performers=[f"token_{i}", f"token_{i + 1}", f"token_{i + 2}"],
                market_sentiment=float((self._rng.random() - 0.5) * 2),
            ))

        logger.info("Analytics seeded with %d days and %d demo trades", days, trades)
