"""Tests for market data providers and the snapshot cache."""

from __future__ import annotations

from unittest.mock import MagicMock

import numpy as np
import pytest
import requests

from tokenscout.data.market_feed import (
    LiveMarketDataProvider,
    MarketDataCache,
    MarketSnapshot,
    SimulatedMarketDataProvider,
    StaticMarketDataProvider,
)
from tokenscout.indicators.estimator import RandomIndicatorEstimator
from tokenscout.tests.conftest import TOKEN_ADDRESS, make_indicators, make_snapshot, make_token


def make_response(payload: dict) -> MagicMock:
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


def make_session(jupiter: dict, dexscreener: dict) -> MagicMock:
    session = MagicMock()

    def get(url, **kwargs):
        if "jup.ag" in url:
            return make_response(jupiter)
        return make_response(dexscreener)

    session.get.side_effect = get
    return session


class TestMarketSnapshot:
    def test_from_price(self):
        snap = MarketSnapshot.from_price(2.0, volume_24h=500, price_change_24h=3)
        assert snap.bid_price == pytest.approx(1.998)
        assert snap.ask_price == pytest.approx(2.002)
        assert snap.market_cap == pytest.approx(2_000_000)
        assert snap.spread == pytest.approx(0.004)


class TestMarketDataCache:
    def test_latest_snapshot_wins(self):
        cache = MarketDataCache()
        cache.set("a", make_snapshot(price=1.0))
        cache.set("a", make_snapshot(price=2.0))
        assert len(cache) == 1
        assert cache.prices() == {"a": 2.0}
        assert cache.get("missing") is None


class TestLiveMarketDataProvider:
    def test_combines_sources(self):
        session = make_session(
            {"data": {TOKEN_ADDRESS: {"price": 2.5}}},
            {"pairs": [{"priceUsd": "2.4", "volume": {"h24": 1234}}]},
        )
        provider = LiveMarketDataProvider(session=session, rng=np.random.default_rng(1))

        snap = provider.fetch_snapshot(make_token())

        assert snap.price == 2.5
        assert snap.volume_24h == 1234
        assert -10 <= snap.price_change_24h <= 10
        for call in session.get.call_args_list:
            assert call.kwargs["timeout"] == 5.0

    def test_falls_back_to_dexscreener_price(self):
        session = make_session(
            {"data": {}},
            {"pairs": [{"priceUsd": "0.0042", "volume": {"h24": 10}}]},
        )
        provider = LiveMarketDataProvider(session=session, rng=np.random.default_rng(1))
        assert provider.fetch_snapshot(make_token()).price == pytest.approx(0.0042)

    def test_network_failure_returns_none(self):
        session = MagicMock()
        session.get.side_effect = requests.Timeout("slow")
        provider = LiveMarketDataProvider(session=session)
        assert provider.fetch_snapshot(make_token()) is None

    def test_malformed_payload_returns_none(self):
        session = make_session({"data": "nope"}, {"pairs": "nope"})
        provider = LiveMarketDataProvider(session=session)
        assert provider.get_jupiter_price(TOKEN_ADDRESS) is None
        assert provider.get_dexscreener_data(TOKEN_ADDRESS) is None

    def test_http_error_returns_none(self):
        response = MagicMock()
        response.raise_for_status.side_effect = requests.HTTPError("503")
        session = MagicMock()
        session.get.return_value = response
        provider = LiveMarketDataProvider(session=session)
        assert provider.fetch_snapshot(make_token()) is None


class TestSimulatedMarketDataProvider:
    def test_seeded_walk_is_reproducible(self):
        token = make_token()
        first = SimulatedMarketDataProvider(rng=np.random.default_rng(3))
        second = SimulatedMarketDataProvider(rng=np.random.default_rng(3))
        prices_a = [first.fetch_snapshot(token).price for _ in range(5)]
        prices_b = [second.fetch_snapshot(token).price for _ in range(5)]
        assert prices_a == prices_b
        assert all(p > 0 for p in prices_a)

    def test_change_measured_from_open(self):
        provider = SimulatedMarketDataProvider(rng=np.random.default_rng(3))
        provider.seed_price(TOKEN_ADDRESS, 1.0)
        snap = provider.fetch_snapshot(make_token())
        assert snap.price_change_24h == pytest.approx((snap.price - 1.0) * 100)


class TestStaticMarketDataProvider:
    def test_set_price_keeps_volume(self):
        provider = StaticMarketDataProvider({TOKEN_ADDRESS: make_snapshot(volume_24h=777)})
        provider.set_price(TOKEN_ADDRESS, 3.0)
        snap = provider.fetch_snapshot(make_token())
        assert snap.price == 3.0
        assert snap.volume_24h == 777

    def test_unknown_token(self):
        assert StaticMarketDataProvider().fetch_snapshot(make_token()) is None


class TestRandomIndicatorEstimator:
    def test_ranges(self):
        estimator = RandomIndicatorEstimator(rng=np.random.default_rng(11))
        snap = make_snapshot(price=2.0, volume_24h=20_000)
        for _ in range(20):
            ind = estimator.estimate(TOKEN_ADDRESS, snap)
            assert 30 <= ind.rsi < 70
            assert 1.9 <= ind.sma20 <= 2.1
            assert 1.8 <= ind.sma50 <= 2.2
            assert ind.volume_profile == pytest.approx(2.0)
            assert ind.bollinger.upper == pytest.approx(2.1)
            assert not ind.is_oversold and not ind.is_overbought

    def test_non_positive_price(self):
        estimator = RandomIndicatorEstimator(rng=np.random.default_rng(11))
        assert estimator.estimate(TOKEN_ADDRESS, make_snapshot(price=0.0)) is None


class TestIndicatorSet:
    @pytest.mark.parametrize("macd,expected", [
        ((0.05, 0.01, 0.02), True),
        ((0.01, 0.05, 0.02), False),
        ((0.05, 0.01, 0.0), False),
    ])
    def test_macd_bullish(self, macd, expected):
        assert make_indicators(macd=macd).macd_bullish is expected

    def test_rsi_bands(self):
        assert make_indicators(rsi=25).is_oversold
        assert make_indicators(rsi=75).is_overbought
        assert not make_indicators(rsi=50).is_oversold
