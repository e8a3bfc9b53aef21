"""
Risk Gate and position sizing.

Pre-trade admission checks run immediately before an order is placed.
All checks must pass; evaluation stops at the first failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from tokenscout.config import BotSettings, RiskConfig
from tokenscout.data.market_feed import MarketSnapshot
from tokenscout.execution.ledger import Portfolio
from tokenscout.signals.scoring import TradeSignal

logger = logging.getLogger(__name__)


def calculate_position_size(
    settings: BotSettings, confidence: float, volatility_adjustment: float = 1.0
) -> float:
    """Investment in currency units, scaled by signal confidence."""
    return settings.max_investment * (confidence / 100) * volatility_adjustment


@dataclass(frozen=True)
class RiskDecision:
    approved: bool
    reason: str

    def __bool__(self) -> bool:
        return self.approved


class RiskGate:
    """Pure predicate over portfolio state; no side effects beyond logging."""

    def __init__(self, config: Optional[RiskConfig] = None):
        self._config = config or RiskConfig()

    @property
    def config(self) -> RiskConfig:
        return self._config

    def check(
        self,
        signal: TradeSignal,
        investment: float,
        portfolio: Portfolio,
        snapshot: Optional[MarketSnapshot] = None,
    ) -> RiskDecision:
        cfg = self._config

        if portfolio.daily_loss >= cfg.daily_loss_limit:
            return self._reject(signal, "Daily loss limit reached")

        if investment > portfolio.available_balance:
            return self._reject(signal, "Insufficient balance")

        max_position = portfolio.total_value * cfg.max_position_pct
        if investment > max_position:
            return self._reject(signal, "Position size too large")

        if snapshot is not None and abs(snapshot.price_change_24h) > cfg.max_volatility_pct:
            return self._reject(signal, "Extreme volatility detected")

        return RiskDecision(True, "Approved")

    def passes(
        self,
        signal: TradeSignal,
        investment: float,
        portfolio: Portfolio,
        snapshot: Optional[MarketSnapshot] = None,
    ) -> bool:
        return self.check(signal, investment, portfolio, snapshot).approved

    @staticmethod
    def _reject(signal: TradeSignal, reason: str) -> RiskDecision:
        logger.info("Risk check failed for %s: %s", signal.token_address, reason)
        return RiskDecision(False, reason)
