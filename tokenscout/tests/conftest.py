"""Shared test fixtures for the Token Scout engine tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from tokenscout.config import BotSettings, EngineConfig, RiskConfig
from tokenscout.data.market_feed import MarketSnapshot, StaticMarketDataProvider
from tokenscout.data.tokens import Token, TokenDirectory
from tokenscout.execution.engine import TradingEngine
from tokenscout.indicators.estimator import (
    MACD,
    BollingerBands,
    IndicatorSet,
    StaticIndicatorProvider,
)
from tokenscout.signals.scoring import SignalAction, TradeSignal

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)
TOKEN_ADDRESS = "So1anaTestToken111111111111111111111111111"


def make_token(
    address: str = TOKEN_ADDRESS,
    symbol: str = "TEST",
    liquidity: float = 25_000.0,
    holders: int = 100,
    volume: float = 50_000.0,
    price_change: float = 5.0,
    transactions: int = 100,
    social_mentions: int = 134,  # 134 * 0.3 = 40.2 social score
    age_minutes: float = 30.0,
    now: datetime = NOW,
) -> Token:
    return Token(
        address=address,
        name=f"{symbol} Token",
        symbol=symbol,
        liquidity=liquidity,
        holders=holders,
        volume=volume,
        price_change=price_change,
        transactions=transactions,
        social_mentions=social_mentions,
        launch_time=now - timedelta(minutes=age_minutes),
    )


def make_snapshot(
    price: float = 1.10,
    volume_24h: float = 50_000.0,
    price_change_24h: float = 5.0,
) -> MarketSnapshot:
    return MarketSnapshot.from_price(price, volume_24h, price_change_24h, timestamp=NOW)


def make_indicators(
    rsi: float = 25.0,
    sma20: float = 1.05,
    sma50: float = 1.00,
    macd: tuple[float, float, float] = (0.05, 0.01, 0.02),
    volume_profile: float = 5.0,
    price: float = 1.10,
) -> IndicatorSet:
    return IndicatorSet(
        rsi=rsi,
        sma20=sma20,
        sma50=sma50,
        macd=MACD(*macd),
        bollinger=BollingerBands.around(price),
        volume_profile=volume_profile,
    )


def make_signal(
    address: str = TOKEN_ADDRESS,
    confidence: float = 95.0,
    price: float = 1.10,
    action: SignalAction = SignalAction.BUY,
    reasons: Optional[list[str]] = None,
) -> TradeSignal:
    return TradeSignal(
        signal_id=1,
        token_address=address,
        action=action,
        confidence=confidence,
        reasons=reasons if reasons is not None else ["RSI oversold", "Bullish trend"],
        price=price,
        timestamp=NOW,
    )


class MutableClock:
    """Settable clock for the engine."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def settings() -> BotSettings:
    return BotSettings()


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig(
        settings=BotSettings(enabled=True),
        risk=RiskConfig(starting_balance=1_000.0),
    )


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def directory() -> TokenDirectory:
    directory = TokenDirectory()
    token = make_token()
    directory.create_token(
        token.address,
        token.name,
        token.symbol,
        liquidity=token.liquidity,
        holders=token.holders,
        volume=token.volume,
        price_change=token.price_change,
        transactions=token.transactions,
        social_mentions=token.social_mentions,
        launch_time=token.launch_time,
    )
    return directory


@pytest.fixture
def market_provider() -> StaticMarketDataProvider:
    return StaticMarketDataProvider({TOKEN_ADDRESS: make_snapshot()})


@pytest.fixture
def indicator_provider() -> StaticIndicatorProvider:
    return StaticIndicatorProvider({TOKEN_ADDRESS: make_indicators()})


@pytest.fixture
def engine(engine_config, directory, market_provider, indicator_provider, clock) -> TradingEngine:
    return TradingEngine(
        config=engine_config,
        directory=directory,
        market_provider=market_provider,
        indicator_provider=indicator_provider,
        clock=clock,
    )
