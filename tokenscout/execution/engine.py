"""
Trading Engine.

Runs the paper-trading pipeline:
market data refresh → indicator estimation → signal scoring → risk gate →
ledger execution → revaluation → stop-loss/take-profit monitoring →
analytics. Orders are simulated fills against the in-memory ledger.

Every cycle step is a no-op while the engine is stopped and never raises:
unexpected errors are logged and the step waits for its next tick.
"""

from __future__ import annotations

import functools
import logging
from datetime import date, datetime, timezone
from typing import Callable, Optional

from tokenscout.analytics.performance import AnalyticsEngine
from tokenscout.config import BotSettings, EngineConfig
from tokenscout.data.market_feed import MarketDataCache, MarketDataProvider
from tokenscout.data.tokens import TokenDirectory
from tokenscout.execution.ledger import (
    ClosedPosition,
    ExitReason,
    PortfolioLedger,
    TradeAction,
)
from tokenscout.execution.risk import RiskGate, calculate_position_size
from tokenscout.indicators.estimator import IndicatorProvider, IndicatorSet
from tokenscout.signals.scoring import (
    FundamentalSignalScorer,
    SignalAction,
    TechnicalSignalScorer,
    TradeSignal,
)

logger = logging.getLogger(__name__)


def _cycle_step(func):
    """Skip while stopped; log and swallow unexpected errors."""

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        if not self._running:
            return None
        try:
            return func(self, *args, **kwargs)
        except Exception:
            logger.exception("%s failed, skipping this cycle", func.__name__)
            return None

    return wrapper


class TradingEngine:
    """Paper-trading engine owning the market cache, ledger and analytics."""

    def __init__(
        self,
        config: EngineConfig,
        directory: TokenDirectory,
        market_provider: MarketDataProvider,
        indicator_provider: IndicatorProvider,
        ledger: Optional[PortfolioLedger] = None,
        analytics: Optional[AnalyticsEngine] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._config = config
        self._settings = config.settings
        self._directory = directory
        self._market_provider = market_provider
        self._indicator_provider = indicator_provider
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._ledger = ledger or PortfolioLedger(
            starting_balance=config.risk.starting_balance,
            max_trade_history=config.retention.max_trade_history,
        )
        self._analytics = analytics or AnalyticsEngine(
            retention=config.retention,
            starting_value=config.risk.starting_balance,
        )
        self._risk_gate = RiskGate(config.risk)
        self._technical = TechnicalSignalScorer(self._settings)
        self._fundamental = FundamentalSignalScorer(self._settings)

        self._market_cache = MarketDataCache()
        self._indicators: dict[str, IndicatorSet] = {}
        self._running = False
        self._trading_day: Optional[date] = None

    # ─── Accessors ──────────────────────────────────────────────────────

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def settings(self) -> BotSettings:
        return self._settings

    @property
    def directory(self) -> TokenDirectory:
        return self._directory

    @property
    def ledger(self) -> PortfolioLedger:
        return self._ledger

    @property
    def analytics(self) -> AnalyticsEngine:
        return self._analytics

    @property
    def market_cache(self) -> MarketDataCache:
        return self._market_cache

    @property
    def indicators(self) -> dict[str, IndicatorSet]:
        return self._indicators

    @property
    def is_running(self) -> bool:
        return self._running

    def is_active(self) -> bool:
        return self._running and self._settings.enabled

    # ─── Lifecycle ──────────────────────────────────────────────────────

    def start(self) -> bool:
        """Start trading if enabled. Runs an initial refresh and cycle."""
        if self._running or not self._settings.enabled:
            return False

        self._running = True
        logger.info("Trading engine started (settings: %s)", self._settings.to_dict())

        self.collect_market_data()
        self.update_indicators()
        self.run_trading_cycle()
        return True

    def stop(self) -> None:
        """Gate future cycles. In-flight work is not interrupted."""
        if self._running:
            logger.info("Trading engine stopped")
        self._running = False

    def update_settings(self, **changes) -> BotSettings:
        self._settings = self._settings.updated(**changes)
        self._technical.update_settings(self._settings)
        self._fundamental.update_settings(self._settings)
        logger.info("Trading settings updated: %s", changes)

        if "enabled" in changes:
            if self._settings.enabled and not self._running:
                self.start()
            elif not self._settings.enabled and self._running:
                self.stop()

        return self._settings

    # ─── Cycle steps ────────────────────────────────────────────────────

    @_cycle_step
    def collect_market_data(self) -> int:
        """Refresh snapshots for the newest tokens and every held token.

        Returns tokens updated.
        """
        tokens = self._directory.get_all_tokens()[: self._config.schedule.max_tokens_per_refresh]
        refreshed = {t.address for t in tokens}
        for address in self._ledger.positions:
            held = self._directory.get_token(address)
            if held is not None and address not in refreshed:
                tokens.append(held)
                refreshed.add(address)

        updated = 0
        for token in tokens:
            snapshot = self._market_provider.fetch_snapshot(token)
            if snapshot is None:
                logger.debug("No market data for %s this cycle", token.symbol)
                continue
            self._market_cache.set(token.address, snapshot)
            updated += 1

        logger.info("Market data updated for %d tokens (%d cached)", updated, len(self._market_cache))
        return updated

    @_cycle_step
    def update_indicators(self) -> int:
        updated = 0
        for address, snapshot in self._market_cache.items():
            indicators = self._indicator_provider.estimate(address, snapshot)
            if indicators is not None:
                self._indicators[address] = indicators
                updated += 1
        return updated

    @_cycle_step
    def run_trading_cycle(self) -> list[TradeSignal]:
        """Score every token with full market data and trade the strong signals."""
        now = self._clock()
        self._roll_trading_day(now)

        candidates = [
            t for t in self._directory.get_all_tokens()
            if t.address in self._market_cache and t.address in self._indicators
        ]
        logger.info("Analyzing %d tokens with full market data", len(candidates))

        executed = []
        threshold = self._config.schedule.execution_threshold
        for token in candidates:
            signal = self._technical.score(
                token,
                self._market_cache.get(token.address),
                self._indicators[token.address],
                now=now,
            )
            if signal and signal.confidence > threshold and self.execute_signal(signal):
                executed.append(signal)

        return executed

    @_cycle_step
    def run_fundamental_scan(self) -> list[TradeSignal]:
        """Score tokens with the metadata-only strategy and trade its BUYs.

        Signals priced by estimate (no cached snapshot) are returned but
        never filled.
        """
        now = self._clock()
        signals = []
        for token in self._directory.get_all_tokens():
            snapshot = self._market_cache.get(token.address)
            signal = self._fundamental.score(token, snapshot, now=now)
            if signal is None:
                continue
            signals.append(signal)
            if snapshot is not None:
                self.execute_signal(signal)

        logger.info("Fundamental scan produced %d signals", len(signals))
        return signals

    @_cycle_step
    def rebalance(self) -> float:
        """Revalue open positions and refresh today's metrics."""
        now = self._clock()
        total = self._ledger.revalue(self._market_cache.prices())
        self._analytics.update_daily_metrics(total, today=now.date())

        snapshots = dict(self._market_cache.items())
        self._analytics.record_market_conditions(
            {addr: snap.price_change_24h for addr, snap in snapshots.items()},
            {addr: snap.volume_24h for addr, snap in snapshots.items()},
            timestamp=now,
        )
        logger.info("Portfolio value: $%.2f", total)
        return total

    @_cycle_step
    def monitor_risk_limits(self) -> list[ClosedPosition]:
        """Force exits for positions past their stop-loss or take-profit."""
        exits = []
        for address, position in list(self._ledger.positions.items()):
            snapshot = self._market_cache.get(address)
            if snapshot is None:
                continue

            price = snapshot.price
            if price <= position.stop_loss_price(self._settings.stop_loss_pct):
                logger.info("STOP LOSS triggered for %s at %.8g", address, price)
                closed = self.close_position(address, ExitReason.STOP_LOSS)
            elif price >= position.take_profit_price(self._settings.take_profit_pct):
                logger.info("TAKE PROFIT triggered for %s at %.8g", address, price)
                closed = self.close_position(address, ExitReason.TAKE_PROFIT)
            else:
                continue

            if closed:
                exits.append(closed)

        return exits

    # ─── Execution ──────────────────────────────────────────────────────

    def execute_signal(self, signal: TradeSignal) -> bool:
        """Risk-gate, size and paper-fill a BUY signal into the ledger."""
        if signal.action != SignalAction.BUY or signal.executed:
            return False
        if signal.price <= 0:
            logger.warning("Signal %s has no usable price, skipping", signal.signal_id)
            return False

        investment = calculate_position_size(
            self._settings, signal.confidence, self._config.risk.volatility_adjustment
        )
        decision = self._risk_gate.check(
            signal,
            investment,
            self._ledger.portfolio,
            self._market_cache.get(signal.token_address),
        )
        if not decision:
            return False

        trade = self._ledger.new_trade(
            signal.token_address,
            TradeAction.BUY,
            investment,
            signal.price,
            timestamp=self._clock(),
            reason=signal.reason,
        )
        self._ledger.apply_buy(trade)
        self._analytics.record_trade(
            trade, signal.strategy_name, signal.confidence, signal.reason
        )
        signal.mark_executed()

        logger.info(
            "Executed BUY %s: $%.2f @ %.8g conf=%.0f | stop %.8g, target %.8g (%s)",
            signal.token_address,
            investment,
            signal.price,
            signal.confidence,
            signal.price * (1 - self._settings.stop_loss_pct / 100),
            signal.price * (1 + self._settings.take_profit_pct / 100),
            signal.reason,
        )
        return True

    def close_position(
        self, address: str, reason: ExitReason = ExitReason.MANUAL
    ) -> Optional[ClosedPosition]:
        """Exit a position at the cached price."""
        snapshot = self._market_cache.get(address)
        if snapshot is None or self._ledger.get_position(address) is None:
            return None

        now = self._clock()
        closed = self._ledger.apply_sell(address, snapshot.price, reason.value, timestamp=now)
        if closed:
            self._analytics.record_exit(address, snapshot.price, now)
        return closed

    def _roll_trading_day(self, now: datetime) -> None:
        today = now.date()
        if self._trading_day is not None and today != self._trading_day:
            logger.info("New trading day %s, resetting daily loss", today)
            self._ledger.reset_daily()
        self._trading_day = today

    # ─── Views ──────────────────────────────────────────────────────────

    def portfolio_status(self) -> dict:
        return self._ledger.snapshot()

    def status(self) -> dict:
        return {
            "is_active": self.is_active(),
            "settings": self._settings.to_dict(),
            "portfolio": self.portfolio_status(),
        }

    def performance_report(self) -> dict:
        return {
            "trade_analysis": self._analytics.trade_analysis().to_dict(),
            "portfolio_analytics": self._analytics.portfolio_analytics().to_dict(),
            "strategy_analytics": [s.to_dict() for s in self._analytics.strategy_analytics()],
        }

    def history(self) -> dict:
        return {
            "performance_history": [m.to_dict() for m in self._analytics.performance_history()],
            "strategy_history": [r.to_dict() for r in self._analytics.strategy_history()],
            "market_history": [m.to_dict() for m in self._analytics.market_history()],
            "trade_history": [t.to_dict() for t in self._ledger.trade_history],
        }

    def stats(self) -> dict:
        """Dashboard counters plus the realized exit success rate."""
        stats = self._directory.stats(now=self._clock()).to_dict()
        stats["success_rate"] = round(self._ledger.portfolio.success_rate, 1)
        return stats

    def strategies(self) -> list[dict]:
        return [s.to_dict() for s in self._analytics.strategy_analytics()]

    def jobs(self) -> list[tuple[str, float, Callable[[], object]]]:
        """Scheduled cycle steps as (name, interval_seconds, callable)."""
        sched = self._config.schedule
        return [
            ("market_data", sched.market_data_interval, self.collect_market_data),
            ("indicators", sched.indicator_interval, self.update_indicators),
            ("trading_cycle", sched.trading_cycle_interval, self.run_trading_cycle),
            ("rebalance", sched.rebalance_interval, self.rebalance),
            ("risk_monitor", sched.risk_monitor_interval, self.monitor_risk_limits),
        ]
