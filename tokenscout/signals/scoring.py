"""
Signal Scorer.

Turns token metadata, the latest market snapshot and estimated indicators
into trading signals by additive point accumulation over fixed weights.

Implements two scoring strategies:
1. Technical - indicators + market structure + social + age (primary cycle)
2. Fundamental - liquidity, holders, momentum, volume, social, age only,
   pricing from the snapshot or a liquidity/volume estimate
"""

from __future__ import annotations

import itertools
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from tokenscout.config import BotSettings
from tokenscout.data.market_feed import MarketSnapshot
from tokenscout.data.tokens import Token
from tokenscout.indicators.estimator import IndicatorSet

logger = logging.getLogger(__name__)

MAX_CONFIDENCE = 95.0
EARLY_LAUNCH_MINUTES = 60.0


class SignalAction(Enum):
    BUY = "BUY"
    HOLD = "HOLD"
    SELL = "SELL"  # Only issued by the risk monitor


@dataclass
class TradeSignal:
    """A scored trading signal for one token."""

    signal_id: int
    token_address: str
    action: SignalAction
    confidence: float  # 0-95
    reasons: list[str]
    price: float
    strategy: str = "technical"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    executed: bool = False

    @property
    def reason(self) -> str:
        return ", ".join(self.reasons)

    @property
    def strategy_name(self) -> str:
        """Label used to group trades in strategy analytics."""
        return self.reasons[0] if self.reasons else "Unknown Strategy"

    def mark_executed(self) -> bool:
        """Flag the signal as executed. False if it already was."""
        if self.executed:
            return False
        self.executed = True
        return True

    def to_dict(self) -> dict:
        return {
            "id": self.signal_id,
            "token_address": self.token_address,
            "signal": self.action.value,
            "confidence": self.confidence,
            "reason": self.reason,
            "price": self.price,
            "strategy": self.strategy,
            "timestamp": self.timestamp.isoformat(),
            "executed": self.executed,
        }


class _Scorer:
    """Shared bookkeeping for the scorers."""

    def __init__(self, settings: Optional[BotSettings] = None):
        self._settings = settings or BotSettings()
        self._ids = itertools.count(1)

    @property
    def settings(self) -> BotSettings:
        return self._settings

    def update_settings(self, settings: BotSettings) -> None:
        self._settings = settings

    def _next_id(self) -> int:
        return next(self._ids)


class TechnicalSignalScorer(_Scorer):
    """Primary scorer combining indicators with token metadata.

    A total below 60 is discarded, not turned into HOLD.
    """

    MIN_CONFIDENCE = 60.0

    def score(
        self,
        token: Token,
        snapshot: MarketSnapshot,
        indicators: IndicatorSet,
        now: Optional[datetime] = None,
    ) -> Optional[TradeSignal]:
        settings = self._settings
        confidence = 0.0
        reasons: list[str] = []

        # Technical analysis
        if indicators.is_oversold:
            confidence += 15
            reasons.append("RSI oversold")
        elif indicators.is_overbought:
            confidence -= 10
            reasons.append("RSI overbought")

        if snapshot.price > indicators.sma20 > indicators.sma50:
            confidence += 20
            reasons.append("Bullish trend")

        if indicators.macd_bullish:
            confidence += 15
            reasons.append("MACD bullish crossover")

        # Volume
        if snapshot.volume_24h > indicators.volume_profile * 2:
            confidence += 20
            reasons.append("High volume breakout")

        # Market structure
        if token.liquidity > settings.min_liquidity * 2:
            confidence += 10
            reasons.append("Strong liquidity")

        if token.holders > settings.min_holders * 1.5:
            confidence += 10
            reasons.append("Growing holder base")

        # Social sentiment
        social_score = token.social_mentions * settings.social_sentiment_weight
        if social_score > 30:
            confidence += 20
            reasons.append("High social interest")

        if token.age_minutes(now) < EARLY_LAUNCH_MINUTES:
            confidence += 10
            reasons.append("Early launch opportunity")

        if confidence < self.MIN_CONFIDENCE:
            return None

        # Both upper bands map to BUY; only 60-70 yields HOLD.
        if confidence > 85:
            action = SignalAction.BUY
        elif confidence > 70:
            action = SignalAction.BUY
        else:
            action = SignalAction.HOLD

        signal = TradeSignal(
            signal_id=self._next_id(),
            token_address=token.address,
            action=action,
            confidence=min(confidence, MAX_CONFIDENCE),
            reasons=reasons,
            price=snapshot.price,
            strategy="technical",
        )
        logger.debug(
            "Technical signal %s %s conf=%.0f (%s)",
            action.value, token.symbol, signal.confidence, signal.reason,
        )
        return signal


class FundamentalSignalScorer(_Scorer):
    """Alternate scorer using only token metadata.

    Tokens below the configured minimum liquidity are skipped outright.
    """

    MIN_CONFIDENCE = 50.0
    STALE_AGE_MINUTES = 720.0

    def score(
        self,
        token: Token,
        snapshot: Optional[MarketSnapshot] = None,
        now: Optional[datetime] = None,
    ) -> Optional[TradeSignal]:
        settings = self._settings
        confidence = 0.0
        reasons: list[str] = []

        # Liquidity
        if token.liquidity > settings.min_liquidity * 2:
            confidence += 25
            reasons.append("High liquidity")
        elif token.liquidity < settings.min_liquidity:
            return None

        # Holders
        if token.holders > settings.min_holders * 2:
            confidence += 20
            reasons.append("Strong holder base")
        elif token.holders > settings.min_holders:
            confidence += 10

        # Momentum
        if token.price_change > 20:
            confidence += 25
            reasons.append("Strong upward momentum")
        elif token.price_change > 10:
            confidence += 15
        elif token.price_change < -10:
            confidence -= 20
            reasons.append("Negative momentum")

        # Volume relative to liquidity
        volume_ratio = token.volume / token.liquidity if token.liquidity > 0 else 0.0
        if volume_ratio > 0.5:
            confidence += 15
            reasons.append("High trading volume")
        elif volume_ratio > 0.2:
            confidence += 8

        # Social
        social_weight = settings.social_sentiment_weight * 100
        if token.social_mentions > 50:
            confidence += social_weight
            reasons.append("High social interest")
        elif token.social_mentions > 20:
            confidence += social_weight * 0.5

        age = token.age_minutes(now)
        if age < EARLY_LAUNCH_MINUTES:
            confidence += 10
            reasons.append("Very early launch")
        elif age > self.STALE_AGE_MINUTES:
            confidence -= 10

        if confidence < self.MIN_CONFIDENCE:
            return None

        if confidence > 80:
            action = SignalAction.BUY
        elif confidence > 60:
            action = SignalAction.BUY
        else:
            action = SignalAction.HOLD

        price = snapshot.price if snapshot is not None else estimate_token_price(token)

        return TradeSignal(
            signal_id=self._next_id(),
            token_address=token.address,
            action=action,
            confidence=min(confidence, MAX_CONFIDENCE),
            reasons=reasons,
            price=price,
            strategy="fundamental",
        )


def estimate_token_price(token: Token) -> float:
    """Rough price from liquidity, volume and momentum when no quote exists."""
    base_price = 0.001
    liquidity_factor = math.log(max(token.liquidity, 1.0)) / 10
    volume_factor = math.log(token.volume + 1) / 15
    momentum_factor = 1 + token.price_change / 1000
    return base_price * liquidity_factor * volume_factor * momentum_factor
