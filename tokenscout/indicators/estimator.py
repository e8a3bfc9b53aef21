"""
Technical indicator estimation.

No price history is retained, so indicators are heuristic estimates
derived from the latest snapshot. Downstream scoring relies only on the
threshold semantics (RSI < 30 oversold, > 70 overbought, price above the
moving averages, MACD above its signal), which any real implementation
must preserve.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import numpy as np

from tokenscout.data.market_feed import MarketSnapshot

logger = logging.getLogger(__name__)

RSI_OVERSOLD = 30.0
RSI_OVERBOUGHT = 70.0
BOLLINGER_OFFSET = 0.05
VOLUME_NORMALIZER = 10_000.0


@dataclass(frozen=True)
class MACD:
    macd: float
    signal: float
    histogram: float

    @property
    def is_bullish(self) -> bool:
        return self.macd > self.signal and self.histogram > 0


@dataclass(frozen=True)
class BollingerBands:
    upper: float
    middle: float
    lower: float

    @classmethod
    def around(cls, price: float) -> "BollingerBands":
        return cls(
            upper=price * (1 + BOLLINGER_OFFSET),
            middle=price,
            lower=price * (1 - BOLLINGER_OFFSET),
        )


@dataclass(frozen=True)
class IndicatorSet:
    """Estimated indicators for one token."""

    rsi: float
    sma20: float
    sma50: float
    macd: MACD
    bollinger: BollingerBands
    volume_profile: float  # Normalized 24h volume

    @property
    def is_oversold(self) -> bool:
        return self.rsi < RSI_OVERSOLD

    @property
    def is_overbought(self) -> bool:
        return self.rsi > RSI_OVERBOUGHT

    @property
    def macd_bullish(self) -> bool:
        return self.macd.is_bullish


class IndicatorProvider(ABC):
    """Derives an IndicatorSet from a token's latest snapshot."""

    @abstractmethod
    def estimate(self, address: str, snapshot: MarketSnapshot) -> Optional[IndicatorSet]:
        """Estimate indicators, or None if they cannot be derived."""


class RandomIndicatorEstimator(IndicatorProvider):
    """Randomized stand-in for a real indicator library.

    RSI is drawn from [30, 70), so the oversold/overbought branches of the
    scorer never fire with this estimator.
    """

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self._rng = rng or np.random.default_rng()

    def estimate(self, address: str, snapshot: MarketSnapshot) -> Optional[IndicatorSet]:
        price = snapshot.price
        if price <= 0:
            return None

        u = self._rng.random(5)
        return IndicatorSet(
            rsi=30.0 + u[0] * 40.0,
            sma20=price * (0.95 + u[1] * 0.10),
            sma50=price * (0.90 + u[2] * 0.20),
            macd=MACD(
                macd=(u[3] - 0.5) * 0.1,
                signal=(u[4] - 0.5) * 0.05,
                histogram=(float(self._rng.random()) - 0.5) * 0.05,
            ),
            bollinger=BollingerBands.around(price),
            volume_profile=snapshot.volume_24h / VOLUME_NORMALIZER,
        )


class StaticIndicatorProvider(IndicatorProvider):
    """Deterministic provider backed by a dict of indicator sets."""

    def __init__(self, indicator_sets: Optional[dict[str, IndicatorSet]] = None):
        self._sets = dict(indicator_sets or {})

    def set_indicators(self, address: str, indicators: IndicatorSet) -> None:
        self._sets[address] = indicators

    def estimate(self, address: str, snapshot: MarketSnapshot) -> Optional[IndicatorSet]:
        return self._sets.get(address)
