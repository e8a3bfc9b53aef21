"""
Token and social aggregation.

Pulls freshly created Solana pairs from DexScreener and verified tokens
from the Jupiter token list into the token directory, tagging each with the
baseline filter and high-alert flags. Falls back to a seeded catalogue of
demonstration tokens when no live data is available.

The social aggregator records launch-scene mentions. It is a placeholder
feed: no social network is queried.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import numpy as np
import requests

from tokenscout.config import FeedConfig
from tokenscout.data.tokens import (
    SocialMention,
    TokenDirectory,
    is_high_alert,
    passes_filter,
)

logger = logging.getLogger(__name__)

MAX_PAIR_AGE = timedelta(hours=24)
MIN_PAIR_LIQUIDITY = 1_000.0
MAX_PAIRS = 50

SOLANA_MAINNET_CHAIN_ID = 101
MAX_JUPITER_TOKENS = 100

# Per-pair problems: missing keys, wrong types, non-numeric strings
_MALFORMED = (KeyError, TypeError, ValueError, AttributeError)

DEMO_CATALOGUE = [
    ("BONK", "Bonk"),
    ("WIF", "dogwifhat"),
    ("PEPE", "Pepe"),
    ("SHIB", "Shiba Inu"),
    ("FLOKI", "FLOKI"),
    ("SAMO", "Samoyed Coin"),
    ("COPE", "Cope"),
    ("FOXY", "Foxy"),
    ("STEP", "Step Finance"),
    ("RAY", "Raydium"),
]

_ADDRESS_ALPHABET = list("123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz")


class TokenAggregator:
    """Feeds the token directory from DexScreener, Jupiter or demo data."""

    def __init__(
        self,
        directory: TokenDirectory,
        session: Optional[requests.Session] = None,
        rng: Optional[np.random.Generator] = None,
        config: Optional[FeedConfig] = None,
        live: bool = True,
    ):
        self._directory = directory
        self._session = session or requests.Session()
        self._rng = rng or np.random.default_rng()
        self._config = config or FeedConfig()
        self._live = live

    # ─── Sources ────────────────────────────────────────────────────────

    def fetch_dexscreener_pairs(self) -> list[dict]:
        """Recent Solana pairs with some liquidity. Empty on any failure."""
        try:
            response = self._session.get(
                f"{self._config.dexscreener_url}/tokens/solana",
                timeout=self._config.aggregation_timeout,
            )
            response.raise_for_status()
            pairs = response.json().get("pairs") or []
        except (requests.RequestException, ValueError, AttributeError) as e:
            logger.warning("DexScreener pair fetch failed: %s", e)
            return []

        if not isinstance(pairs, list):
            logger.warning("DexScreener returned malformed pairs: %r", type(pairs))
            return []

        now_ms = datetime.now(timezone.utc).timestamp() * 1000
        recent = []
        for pair in pairs:
            try:
                if self._is_recent_pair(pair, now_ms):
                    recent.append(pair)
            except _MALFORMED as e:
                logger.debug("Skipping malformed DexScreener pair: %s", e)

        logger.info("Fetched %d pairs from DexScreener (%d recent)", len(pairs), len(recent))
        return recent[:MAX_PAIRS]

    @staticmethod
    def _is_recent_pair(pair: dict, now_ms: float) -> bool:
        created = pair.get("pairCreatedAt")
        liquidity = float((pair.get("liquidity") or {}).get("usd") or 0)
        return (
            pair.get("chainId") == "solana"
            and bool(created)
            and now_ms - float(created) < MAX_PAIR_AGE.total_seconds() * 1000
            and liquidity > MIN_PAIR_LIQUIDITY
        )

    def fetch_jupiter_tokens(self) -> list[dict]:
        """Verified Solana mainnet tokens from the Jupiter list. Empty on failure."""
        try:
            response = self._session.get(
                f"{self._config.jupiter_token_list_url}/all",
                headers={"Accept": "application/json"},
                timeout=self._config.aggregation_timeout,
            )
            response.raise_for_status()
            tokens = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning("Jupiter token list fetch failed: %s", e)
            return []

        if not isinstance(tokens, list):
            return []

        verified = [
            t for t in tokens
            if isinstance(t, dict)
            and t.get("chainId") == SOLANA_MAINNET_CHAIN_ID
            and t.get("symbol") and t.get("name") and t.get("address")
        ]
        logger.info("Fetched %d tokens from Jupiter (%d verified)", len(tokens), len(verified))
        return verified[:MAX_JUPITER_TOKENS]

    # ─── Record mapping ─────────────────────────────────────────────────

    def _pair_to_record(self, pair: dict) -> Optional[dict]:
        base = pair.get("baseToken") or {}
        if not base.get("address") or not base.get("name"):
            return None

        txns = (pair.get("txns") or {}).get("h24") or {}
        created = datetime.fromtimestamp(float(pair["pairCreatedAt"]) / 1000, tz=timezone.utc)
        return {
            "address": base["address"],
            "name": base["name"],
            "symbol": base.get("symbol", "?"),
            "liquidity": float((pair.get("liquidity") or {}).get("usd") or 0),
            # Pair data carries no holder count
            "holders": int(self._rng.integers(10, 110)),
            "volume": float((pair.get("volume") or {}).get("h24") or 0),
            "price_change": float((pair.get("priceChange") or {}).get("h24") or 0),
            "transactions": int((txns.get("buys") or 0) + (txns.get("sells") or 0)),
            "social_mentions": 0,
            "launch_time": created,
        }

    def _jupiter_to_record(self, token: dict) -> dict:
        """The token list has no market data, so metrics are simulated."""
        now = datetime.now(timezone.utc)
        return {
            "address": token["address"],
            "name": token["name"],
            "symbol": token["symbol"],
            "liquidity": float(self._rng.uniform(5_000, 55_000)),
            "holders": int(self._rng.integers(20, 120)),
            "volume": float(self._rng.uniform(0, 25_000)),
            "price_change": float((self._rng.random() - 0.3) * 200),
            "transactions": int(self._rng.integers(20, 120)),
            "social_mentions": 0,
            "launch_time": now - timedelta(minutes=float(self._rng.uniform(0, 240))),
        }

    def generate_demo_tokens(self, count: Optional[int] = None) -> list[dict]:
        """Seeded demonstration tokens with realistic-looking metrics."""
        now = datetime.now(timezone.utc)
        catalogue = DEMO_CATALOGUE[: count or len(DEMO_CATALOGUE)]
        records = []

        for symbol, name in catalogue:
            liquidity = float(self._rng.uniform(10_000, 100_000))
            volume = liquidity * float(self._rng.uniform(0.1, 1.0))
            address = "".join(self._rng.choice(_ADDRESS_ALPHABET, size=44))
            records.append({
                "address": address,
                "name": name,
                "symbol": symbol,
                "liquidity": liquidity,
                "holders": int(self._rng.integers(50, 550)),
                "volume": volume,
                "price_change": float((self._rng.random() - 0.5) * 200),
                "transactions": int(volume / float(self._rng.uniform(50, 500))),
                "social_mentions": int(self._rng.integers(0, 100)),
                "launch_time": now - timedelta(hours=float(self._rng.uniform(0, 12))),
            })

        return records

    # ─── Aggregation ────────────────────────────────────────────────────

    def collect_records(self) -> list[dict]:
        """Live records keyed by address; DexScreener wins over Jupiter."""
        records: dict[str, dict] = {}
        if not self._live:
            return []

        for pair in self.fetch_dexscreener_pairs():
            try:
                record = self._pair_to_record(pair)
            except _MALFORMED as e:
                logger.debug("Skipping unmappable DexScreener pair: %s", e)
                continue
            if record:
                records[record["address"]] = record

        for token in self.fetch_jupiter_tokens():
            if token["address"] not in records:
                records[token["address"]] = self._jupiter_to_record(token)

        return list(records.values())

    def aggregate(self) -> int:
        """Refresh the directory. Returns the number of tokens upserted."""
        records = self.collect_records()

        if not records:
            logger.info("No real-time token data available, using demonstration tokens")
            records = self.generate_demo_tokens()

        now = datetime.now(timezone.utc)
        for record in records:
            age = (now - record["launch_time"]).total_seconds() / 60.0
            record["is_filtered"] = passes_filter(
                record["liquidity"], record["holders"], record["transactions"], age
            )
            record["is_high_alert"] = is_high_alert(
                record["liquidity"], record["holders"], record["transactions"],
                age, record["social_mentions"],
            )
            self._directory.upsert_token(**record)

        logger.info(
            "Aggregated %d tokens (%d filtered, %d high alert)",
            len(records),
            sum(1 for r in records if r["is_filtered"]),
            sum(1 for r in records if r["is_high_alert"]),
        )
        return len(records)


class SocialAggregator:
    """Records launch-scene social mentions into the directory."""

    KEYWORDS = ("#Solana", "#meme", "#launch", "birdeye", "fair launch", "$SOL", "dexscreener")

    PLACEHOLDER_MENTIONS = (
        {
            "platform": "twitter",
            "username": "@cryptohunter",
            "content": "New #Solana gem just launched! Looking bullish, fair launch, no presale #meme",
            "likes": 234,
            "retweets": 67,
        },
        {
            "platform": "twitter",
            "username": "@degen_trader",
            "content": "Token trending on @birdeye_so! Early entry opportunity #DeFi #Solana",
            "likes": 89,
            "retweets": 23,
        },
    )

    def __init__(self, directory: TokenDirectory):
        self._directory = directory

    @classmethod
    def matches_keywords(cls, content: str) -> bool:
        text = content.lower()
        return any(k.lower() in text for k in cls.KEYWORDS)

    def scrape_social_mentions(self) -> list[SocialMention]:
        mentions = [
            self._directory.create_social_mention(**post)
            for post in self.PLACEHOLDER_MENTIONS
            if self.matches_keywords(post["content"])
        ]
        logger.debug("Recorded %d social mentions", len(mentions))
        return mentions
