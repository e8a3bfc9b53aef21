"""
Configuration management for the Token Scout engine.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class BotSettings:
    """Operator-configurable trading thresholds."""
    max_investment: float = 100.0  # Currency units per trade at 100% confidence
    stop_loss_pct: float = 20.0
    take_profit_pct: float = 50.0
    min_liquidity: float = 10_000.0
    min_holders: int = 50
    social_sentiment_weight: float = 0.3
    enabled: bool = False

    def updated(self, **changes) -> "BotSettings":
        """Return a copy with a partial update applied."""
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown bot settings: {', '.join(sorted(unknown))}")
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class RiskConfig:
    """Risk gate parameters."""
    daily_loss_limit: float = 500.0
    max_position_pct: float = 0.10  # 10% of total portfolio value
    max_volatility_pct: float = 50.0  # |24h change| ceiling
    volatility_adjustment: float = 1.0
    starting_balance: float = 1_000.0


@dataclass(frozen=True)
class ScheduleConfig:
    """Cycle intervals in seconds."""
    market_data_interval: float = 5.0
    indicator_interval: float = 15.0
    trading_cycle_interval: float = 30.0
    rebalance_interval: float = 300.0
    risk_monitor_interval: float = 60.0
    max_tokens_per_refresh: int = 20
    execution_threshold: float = 75.0  # Min confidence for the full cycle to trade


@dataclass(frozen=True)
class RetentionConfig:
    """How much in-memory history is kept and served."""
    history_days: int = 30
    history_trades: int = 100
    max_strategy_records: int = 1_000
    max_trade_history: int = 1_000
    max_social_mentions: int = 1_000


@dataclass(frozen=True)
class FeedConfig:
    """External price and pair source configuration."""
    jupiter_price_url: str = "https://price.jup.ag/v4/price"
    jupiter_token_list_url: str = "https://token.jup.ag"
    dexscreener_url: str = "https://api.dexscreener.com/latest/dex"
    request_timeout: float = 5.0
    aggregation_timeout: float = 15.0
    use_live_prices: bool = False


@dataclass
class EngineConfig:
    """Top-level engine configuration."""
    settings: BotSettings = field(default_factory=BotSettings)
    risk: RiskConfig = field(default_factory=RiskConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    feed: FeedConfig = field(default_factory=FeedConfig)

    log_level: str = "INFO"
    seed: int = 42

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Load configuration from environment variables."""
        return cls(
            settings=BotSettings(
                max_investment=float(os.getenv("TOKENSCOUT_MAX_INVESTMENT", "100")),
                stop_loss_pct=float(os.getenv("TOKENSCOUT_STOP_LOSS", "20")),
                take_profit_pct=float(os.getenv("TOKENSCOUT_TAKE_PROFIT", "50")),
                min_liquidity=float(os.getenv("TOKENSCOUT_MIN_LIQUIDITY", "10000")),
                min_holders=int(os.getenv("TOKENSCOUT_MIN_HOLDERS", "50")),
                social_sentiment_weight=float(os.getenv("TOKENSCOUT_SOCIAL_WEIGHT", "0.3")),
                enabled=os.getenv("TOKENSCOUT_ENABLED", "").lower() == "true",
            ),
            risk=RiskConfig(
                daily_loss_limit=float(os.getenv("TOKENSCOUT_DAILY_LOSS_LIMIT", "500")),
                starting_balance=float(os.getenv("TOKENSCOUT_STARTING_BALANCE", "1000")),
            ),
            feed=FeedConfig(
                use_live_prices=os.getenv("TOKENSCOUT_LIVE_PRICES", "").lower() == "true",
            ),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            seed=int(os.getenv("TOKENSCOUT_SEED", "42")),
        )


# Baseline discovery filter
FILTER_MIN_LIQUIDITY = 5_000.0
FILTER_MIN_HOLDERS = 20
FILTER_MIN_TRANSACTIONS = 20
FILTER_MAX_AGE_MINUTES = 240.0

# High-alert thresholds, on top of the baseline filter
HIGH_ALERT_MIN_SOCIAL_MENTIONS = 50
HIGH_ALERT_MIN_LIQUIDITY = 15_000.0
