"""
Market data feed interface.

Provides price/volume snapshots per token behind a provider abstraction,
with a best-effort live implementation (Jupiter + DexScreener), a simulated
random-walk feed for demo runs and a static feed for tests. The cache keeps
only the latest snapshot per token; no time series is retained.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator, Optional

import numpy as np
import requests

from tokenscout.config import FeedConfig
from tokenscout.data.tokens import Token

logger = logging.getLogger(__name__)

BID_SPREAD = 0.999
ASK_SPREAD = 1.001
ESTIMATED_SUPPLY = 1_000_000  # market cap = price * supply


@dataclass
class MarketSnapshot:
    """Latest known price/volume for a token."""

    price: float
    bid_price: float
    ask_price: float
    volume_24h: float
    price_change_24h: float
    market_cap: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_price(
        cls,
        price: float,
        volume_24h: float = 0.0,
        price_change_24h: float = 0.0,
        timestamp: Optional[datetime] = None,
    ) -> "MarketSnapshot":
        """Build a snapshot with the synthetic bid/ask spread and market cap."""
        return cls(
            price=price,
            bid_price=price * BID_SPREAD,
            ask_price=price * ASK_SPREAD,
            volume_24h=volume_24h,
            price_change_24h=price_change_24h,
            market_cap=price * ESTIMATED_SUPPLY,
            timestamp=timestamp or datetime.now(timezone.utc),
        )

    @property
    def spread(self) -> float:
        return self.ask_price - self.bid_price


class MarketDataCache:
    """Latest snapshot per token address. No eviction."""

    def __init__(self):
        self._snapshots: dict[str, MarketSnapshot] = {}

    def get(self, address: str) -> Optional[MarketSnapshot]:
        return self._snapshots.get(address)

    def set(self, address: str, snapshot: MarketSnapshot) -> None:
        self._snapshots[address] = snapshot

    def prices(self) -> dict[str, float]:
        return {addr: snap.price for addr, snap in self._snapshots.items()}

    def items(self) -> Iterator[tuple[str, MarketSnapshot]]:
        return iter(list(self._snapshots.items()))

    def __contains__(self, address: str) -> bool:
        return address in self._snapshots

    def __len__(self) -> int:
        return len(self._snapshots)


class MarketDataProvider(ABC):
    """Source of market snapshots.

    Implementations must return None rather than raise when data is
    unavailable; callers skip the token for the current cycle.
    """

    @abstractmethod
    def fetch_snapshot(self, token: Token) -> Optional[MarketSnapshot]:
        """Fetch the current snapshot for a token."""


class LiveMarketDataProvider(MarketDataProvider):
    """Jupiter price + DexScreener pair lookups over HTTP.

    Every request uses a short timeout and any failure is treated as
    "no data". Fields the sources do not provide (24h change, missing
    volume) are simulated, as the dashboard has always done.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        rng: Optional[np.random.Generator] = None,
        config: Optional[FeedConfig] = None,
    ):
        self._session = session or requests.Session()
        self._rng = rng or np.random.default_rng()
        self._config = config or FeedConfig()

    def fetch_snapshot(self, token: Token) -> Optional[MarketSnapshot]:
        address = token.address
        jupiter_price = self.get_jupiter_price(address)
        dex_data = self.get_dexscreener_data(address)

        if not jupiter_price and not dex_data:
            return None

        price = jupiter_price or (dex_data or {}).get("price") or 0.0
        if price <= 0:
            return None

        volume = (dex_data or {}).get("volume_24h") or float(self._rng.uniform(0, 50_000))
        price_change = float((self._rng.random() - 0.5) * 20)

        return MarketSnapshot.from_price(price, volume, price_change)

    def get_jupiter_price(self, address: str) -> Optional[float]:
        try:
            response = self._session.get(
                self._config.jupiter_price_url,
                params={"ids": address},
                timeout=self._config.request_timeout,
            )
            response.raise_for_status()
            price = response.json().get("data", {}).get(address, {}).get("price")
            return float(price) if price else None
        except (requests.RequestException, ValueError, TypeError, AttributeError) as e:
            logger.debug("Jupiter price unavailable for %s: %s", address, e)
            return None

    def get_dexscreener_data(self, address: str) -> Optional[dict]:
        try:
            response = self._session.get(
                f"{self._config.dexscreener_url}/tokens/{address}",
                timeout=self._config.request_timeout,
            )
            response.raise_for_status()
            pairs = response.json().get("pairs") or []
            if not pairs:
                return None
            pair = pairs[0]
            return {
                "price": float(pair.get("priceUsd") or 0),
                "volume_24h": float((pair.get("volume") or {}).get("h24") or 0),
            }
        except (requests.RequestException, ValueError, TypeError, AttributeError) as e:
            logger.debug("DexScreener data unavailable for %s: %s", address, e)
            return None


class SimulatedMarketDataProvider(MarketDataProvider):
    """Random-walk price feed for demo and paper runs.

    Each token starts at a price derived from its liquidity and then moves
    by a log-normal step on every fetch.
    """

    def __init__(self, rng: Optional[np.random.Generator] = None, volatility: float = 0.08):
        self._rng = rng or np.random.default_rng()
        self._volatility = volatility
        self._prices: dict[str, float] = {}
        self._open_prices: dict[str, float] = {}

    def seed_price(self, address: str, price: float) -> None:
        self._prices[address] = price
        self._open_prices[address] = price

    def fetch_snapshot(self, token: Token) -> Optional[MarketSnapshot]:
        address = token.address
        if address not in self._prices:
            base = max(token.liquidity, 1.0) / 1e6 * float(self._rng.uniform(0.5, 1.5))
            self.seed_price(address, base)
        else:
            step = float(self._rng.normal(0.0, self._volatility))
            self._prices[address] *= math.exp(step)

        price = self._prices[address]
        open_price = self._open_prices[address]
        change = (price - open_price) / open_price * 100
        volume = token.volume * float(self._rng.uniform(0.8, 1.2))

        return MarketSnapshot.from_price(price, volume, change)


class StaticMarketDataProvider(MarketDataProvider):
    """Deterministic provider backed by a dict of snapshots."""

    def __init__(self, snapshots: Optional[dict[str, MarketSnapshot]] = None):
        self._snapshots = dict(snapshots or {})

    def set_snapshot(self, address: str, snapshot: MarketSnapshot) -> None:
        self._snapshots[address] = snapshot

    def set_price(self, address: str, price: float) -> None:
        current = self._snapshots.get(address)
        if current is None:
            self._snapshots[address] = MarketSnapshot.from_price(price)
        else:
            self._snapshots[address] = MarketSnapshot.from_price(
                price, current.volume_24h, current.price_change_24h
            )

    def fetch_snapshot(self, token: Token) -> Optional[MarketSnapshot]:
        return self._snapshots.get(token.address)
