"""
Token Scout Orchestrator.

Main entry point that wires the pipeline:
Token Aggregation → Market Data → Indicators → Signal Scoring → Risk Gate →
Ledger → Analytics

Supports two modes:
1. Demo: seeded demo tokens and simulated prices, a fixed number of
   virtual-time cycles, then a performance report
2. Paper: continuous scheduler loop with simulated fills on simulated or
   live (Jupiter/DexScreener) prices

Usage:
    python -m tokenscout.orchestrator --demo
    python -m tokenscout.orchestrator --demo --strategy both --ticks 240
    python -m tokenscout.orchestrator --paper --live-prices
"""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import replace

import numpy as np

from tokenscout.config import EngineConfig

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("tokenscout.orchestrator")

AGGREGATION_INTERVAL = 30.0
DEMO_TICK_SECONDS = 5.0


def build_engine(config: EngineConfig, live_prices: bool = False):
    """Construct the directory, aggregator, providers and engine."""
    from tokenscout.analytics.performance import AnalyticsEngine
    from tokenscout.data.aggregator import TokenAggregator
    from tokenscout.data.market_feed import (
        LiveMarketDataProvider,
        SimulatedMarketDataProvider,
    )
    from tokenscout.data.tokens import TokenDirectory
    from tokenscout.execution.engine import TradingEngine
    from tokenscout.indicators.estimator import RandomIndicatorEstimator

    rng = np.random.default_rng(config.seed)
    directory = TokenDirectory(max_social_mentions=config.retention.max_social_mentions)
    aggregator = TokenAggregator(directory, rng=rng, config=config.feed, live=live_prices)

    if live_prices:
        market_provider = LiveMarketDataProvider(rng=rng, config=config.feed)
    else:
        market_provider = SimulatedMarketDataProvider(rng=rng)

    engine = TradingEngine(
        config=config,
        directory=directory,
        market_provider=market_provider,
        indicator_provider=RandomIndicatorEstimator(rng=rng),
        analytics=AnalyticsEngine(
            retention=config.retention,
            starting_value=config.risk.starting_balance,
            rng=rng,
        ),
    )
    return engine, aggregator


def build_scheduler(engine, aggregator, strategy: str = "technical", **kwargs):
    from tokenscout.data.aggregator import SocialAggregator
    from tokenscout.scheduler import CycleScheduler

    social = SocialAggregator(engine.directory)
    scheduler = CycleScheduler(**kwargs)
    scheduler.add_job("aggregation", AGGREGATION_INTERVAL, aggregator.aggregate)
    scheduler.add_job("social_mentions", AGGREGATION_INTERVAL, social.scrape_social_mentions)
    for name, interval, func in engine.jobs():
        if name == "trading_cycle" and strategy == "fundamental":
            continue
        scheduler.add_job(name, interval, func)
    if strategy in ("fundamental", "both"):
        scheduler.add_job(
            "fundamental_scan",
            engine.config.schedule.trading_cycle_interval,
            engine.run_fundamental_scan,
        )
    return scheduler


def run_demo(config: EngineConfig, ticks: int, strategy: str, seed_history: bool) -> None:
    """Run virtual-time cycles on demo tokens and print the results."""
    logger.info("=" * 60)
    logger.info("TOKEN SCOUT - DEMO MODE")
    logger.info("=" * 60)

    engine, aggregator = build_engine(config, live_prices=False)
    aggregator.aggregate()
    if seed_history:
        engine.analytics.seed_demo_history()

    engine.update_settings(enabled=True)
    scheduler = build_scheduler(engine, aggregator, strategy=strategy)

    for tick in range(ticks):
        scheduler.run_pending(now=tick * DEMO_TICK_SECONDS)

    engine.rebalance()

    print("\n" + "=" * 60)
    print("DEMO RESULTS")
    print("=" * 60)
    status = engine.status()
    portfolio = status["portfolio"]
    print(f"Virtual time: {ticks * DEMO_TICK_SECONDS / 60:.1f} minutes")
    print(f"Portfolio value: ${portfolio['total_value']:.2f}")
    print(f"Available balance: ${portfolio['available_balance']:.2f}")
    print(f"Realized profit: ${portfolio['total_profit']:.2f}")
    print(f"Open positions: {len(portfolio['positions'])}")
    print(f"Max drawdown: {portfolio['max_drawdown']:.2f}%")
    print()

    stats = engine.stats()
    print(f"Tokens found: {stats['total_found']} "
          f"(filtered={stats['filtered']}, high alert={stats['high_alert']}, "
          f"mentions={stats['social_mentions']})")
    print()

    report = engine.performance_report()
    analysis = report["trade_analysis"]
    print("Trade Analysis:")
    print(f"  Closed trades: {analysis['total_trades']}")
    print(f"  Win rate: {analysis['win_rate']:.1f}%")
    print(f"  Profit factor: {analysis['profit_factor']:.2f}")
    print(f"  Best strategy: {analysis['best_strategy']}")
    print()
    print("Strategy ranking:")
    for row in report["strategy_analytics"][:5]:
        print(f"  {row['name']:<28} trades={row['total_trades']:<4} "
              f"win={row['win_rate']:.0f}% avg=${row['avg_pnl']:.2f}")

    engine.stop()


def run_paper_trading(config: EngineConfig, strategy: str, live_prices: bool) -> None:
    """Run the scheduler loop until interrupted."""
    logger.info("=" * 60)
    logger.info("TOKEN SCOUT - PAPER TRADING MODE")
    logger.info("=" * 60)
    logger.info("Starting balance: $%.2f", config.risk.starting_balance)
    logger.info("Max investment per trade: $%.2f", config.settings.max_investment)
    logger.info("Prices: %s", "live (Jupiter/DexScreener)" if live_prices else "simulated")

    engine, aggregator = build_engine(config, live_prices=live_prices)
    aggregator.aggregate()
    engine.update_settings(enabled=True)

    scheduler = build_scheduler(engine, aggregator, strategy=strategy)
    scheduler.install_signal_handlers()
    scheduler.run()

    engine.stop()
    print(json.dumps(engine.performance_report(), indent=2, default=str))


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Token Scout paper-trading engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m tokenscout.orchestrator --demo
  python -m tokenscout.orchestrator --demo --strategy both --ticks 240
  python -m tokenscout.orchestrator --paper --live-prices
        """,
    )

    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument("--demo", action="store_true", help="Run virtual-time demo on demo tokens")
    mode.add_argument("--paper", action="store_true", help="Run paper trading until interrupted")

    parser.add_argument("--strategy", choices=["technical", "fundamental", "both"], default="technical")
    parser.add_argument("--ticks", type=int, default=120, help="Demo cycles (5s of virtual time each)")
    parser.add_argument("--live-prices", action="store_true", help="Use Jupiter/DexScreener prices")
    parser.add_argument("--seed", type=int, help="Random seed for simulated data")
    parser.add_argument("--seed-history", action="store_true", help="Pre-fill analytics with demo history")
    parser.add_argument("--balance", type=float, help="Starting balance")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    config = EngineConfig.from_env()
    logging.getLogger().setLevel(logging.DEBUG if args.verbose else config.log_level)

    if args.seed is not None:
        config.seed = args.seed
    if args.balance is not None:
        config.risk = replace(config.risk, starting_balance=args.balance)

    if args.demo:
        run_demo(config, ticks=args.ticks, strategy=args.strategy, seed_history=args.seed_history)
    elif args.paper:
        live = args.live_prices or config.feed.use_live_prices
        run_paper_trading(config, strategy=args.strategy, live_prices=live)


if __name__ == "__main__":
    main()
