"""
Token directory.

In-memory keyed store of discovered tokens and social mentions, plus the
baseline discovery filter and high-alert classification used when tokens
are aggregated.
Nothing is persisted; a restart starts from an empty directory.
"""

from __future__ import annotations

import itertools
import logging
from collections import deque
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime, timedelta, timezone
from typing import Optional

from tokenscout.config import (
    FILTER_MAX_AGE_MINUTES,
    FILTER_MIN_HOLDERS,
    FILTER_MIN_LIQUIDITY,
    FILTER_MIN_TRANSACTIONS,
    HIGH_ALERT_MIN_LIQUIDITY,
    HIGH_ALERT_MIN_SOCIAL_MENTIONS,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Token:
    """A newly launched token and its market attributes."""

    address: str
    name: str
    symbol: str
    chain: str = "solana"

    liquidity: float = 0.0  # USD
    holders: int = 0
    volume: float = 0.0  # 24h USD
    price_change: float = 0.0  # 24h %
    transactions: int = 0
    social_mentions: int = 0

    launch_time: datetime = field(default_factory=_utcnow)
    is_filtered: bool = False
    is_high_alert: bool = False

    def age_minutes(self, now: Optional[datetime] = None) -> float:
        now = now or _utcnow()
        return (now - self.launch_time).total_seconds() / 60.0


@dataclass
class SocialMention:
    """A social post referencing the launch scene, optionally tied to a token."""

    mention_id: int
    platform: str
    username: str
    content: str
    likes: int = 0
    retweets: int = 0
    token_address: Optional[str] = None
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass
class DirectoryStats:
    """Dashboard counters over the directory."""

    total_found: int
    filtered: int
    high_alert: int
    last_15min: int
    avg_liquidity: int  # Over filtered tokens, rounded
    social_mentions: int

    def to_dict(self) -> dict:
        return asdict(self)


def passes_filter(
    liquidity: float, holders: int, transactions: int, age_minutes: float
) -> bool:
    """Baseline discovery filter."""
    return (
        liquidity >= FILTER_MIN_LIQUIDITY
        and holders >= FILTER_MIN_HOLDERS
        and transactions >= FILTER_MIN_TRANSACTIONS
        and age_minutes <= FILTER_MAX_AGE_MINUTES
    )


def is_high_alert(
    liquidity: float,
    holders: int,
    transactions: int,
    age_minutes: float,
    social_mentions: int,
) -> bool:
    return (
        passes_filter(liquidity, holders, transactions, age_minutes)
        and social_mentions > HIGH_ALERT_MIN_SOCIAL_MENTIONS
        and liquidity > HIGH_ALERT_MIN_LIQUIDITY
    )


class TokenDirectory:
    """In-memory token store keyed by address, plus recent social mentions."""

    RECENT_LAUNCH_WINDOW = timedelta(minutes=15)
    STATS_MENTION_LIMIT = 100

    def __init__(self, max_social_mentions: int = 1_000):
        self._tokens: dict[str, Token] = {}
        self._mentions: deque[SocialMention] = deque(maxlen=max_social_mentions)
        self._mention_ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._tokens)

    def __contains__(self, address: str) -> bool:
        return address in self._tokens

    def get_all_tokens(self) -> list[Token]:
        """All tokens, newest launch first."""
        return self._newest_first(self._tokens.values())

    def get_token(self, address: str) -> Optional[Token]:
        return self._tokens.get(address)

    def create_token(self, address: str, name: str, symbol: str, **attrs) -> Token:
        token = Token(address=address, name=name, symbol=symbol, **attrs)
        self._tokens[address] = token
        logger.debug("Token created: %s (%s)", symbol, address)
        return token

    def update_token(self, address: str, **updates) -> Optional[Token]:
        existing = self._tokens.get(address)
        if existing is None:
            return None

        known = {f.name for f in fields(Token)}
        updated = replace(
            existing, **{k: v for k, v in updates.items() if k in known and k != "address"}
        )
        self._tokens[address] = updated
        return updated

    def upsert_token(self, address: str, name: str, symbol: str, **attrs) -> Token:
        """Create the token or merge the attributes into the existing entry."""
        if address in self._tokens:
            return self.update_token(address, name=name, symbol=symbol, **attrs)
        return self.create_token(address, name, symbol, **attrs)

    def get_filtered_tokens(self) -> list[Token]:
        return self._newest_first(t for t in self._tokens.values() if t.is_filtered)

    def get_high_alert_tokens(self) -> list[Token]:
        return self._newest_first(t for t in self._tokens.values() if t.is_high_alert)

    # ─── Social mentions ────────────────────────────────────────────────

    def create_social_mention(
        self,
        platform: str,
        username: str,
        content: str,
        likes: int = 0,
        retweets: int = 0,
        token_address: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> SocialMention:
        mention = SocialMention(
            mention_id=next(self._mention_ids),
            platform=platform,
            username=username,
            content=content,
            likes=likes or 0,
            retweets=retweets or 0,
            token_address=token_address,
            timestamp=timestamp or _utcnow(),
        )
        self._mentions.append(mention)
        return mention

    def get_social_mentions(self, limit: int = 50) -> list[SocialMention]:
        """Most recent mentions first."""
        return self._latest_first(self._mentions)[:limit]

    def get_social_mentions_by_token(self, address: str) -> list[SocialMention]:
        return self._latest_first(m for m in self._mentions if m.token_address == address)

    # ─── Stats ──────────────────────────────────────────────────────────

    def stats(self, now: Optional[datetime] = None) -> DirectoryStats:
        now = now or _utcnow()
        tokens = list(self._tokens.values())
        filtered = [t for t in tokens if t.is_filtered]
        avg_liquidity = sum(t.liquidity for t in filtered) / len(filtered) if filtered else 0.0

        return DirectoryStats(
            total_found=len(tokens),
            filtered=len(filtered),
            high_alert=sum(1 for t in tokens if t.is_high_alert),
            last_15min=sum(1 for t in tokens if now - t.launch_time < self.RECENT_LAUNCH_WINDOW),
            avg_liquidity=round(avg_liquidity),
            social_mentions=len(self.get_social_mentions(self.STATS_MENTION_LIMIT)),
        )

    @staticmethod
    def _newest_first(tokens) -> list[Token]:
        return sorted(tokens, key=lambda t: t.launch_time, reverse=True)

    @staticmethod
    def _latest_first(mentions) -> list[SocialMention]:
        return sorted(mentions, key=lambda m: m.timestamp, reverse=True)
