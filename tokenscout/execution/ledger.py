"""
Portfolio Ledger.

In-memory record of balances, weighted-average-cost positions, realized
and unrealized P&L and the trade log. Position amounts are denominated in
invested currency units, not token quantity, so unrealized P&L is
amount * price / avg_price - amount.
"""

from __future__ import annotations

import itertools
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class TradeAction(Enum):
    BUY = "BUY"
    SELL = "SELL"


class TradeStatus(Enum):
    PENDING = "PENDING"
    EXECUTED = "EXECUTED"
    FAILED = "FAILED"


class ExitReason(Enum):
    STOP_LOSS = "STOP_LOSS"
    TAKE_PROFIT = "TAKE_PROFIT"
    MANUAL = "MANUAL"


@dataclass(frozen=True)
class Trade:
    """An executed order. Never mutated after creation."""

    trade_id: int
    token_address: str
    action: TradeAction
    amount: float  # Currency units
    price: float
    status: TradeStatus = TradeStatus.EXECUTED
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    reason: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.trade_id,
            "token_address": self.token_address,
            "action": self.action.value,
            "amount": round(self.amount, 2),
            "price": self.price,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "reason": self.reason,
        }


@dataclass
class Position:
    """Open position in one token."""

    amount: float
    avg_price: float
    unrealized_pnl: float = 0.0

    def add(self, amount: float, price: float) -> None:
        """Merge a buy using weighted-average cost."""
        total = self.amount + amount
        self.avg_price = (self.avg_price * self.amount + price * amount) / total
        self.amount = total

    def revalue(self, price: float) -> float:
        self.unrealized_pnl = self.amount * price / self.avg_price - self.amount
        return self.unrealized_pnl

    def realized_pnl(self, price: float) -> float:
        return (price - self.avg_price) * (self.amount / self.avg_price)

    def stop_loss_price(self, stop_loss_pct: float) -> float:
        return self.avg_price * (1 - stop_loss_pct / 100)

    def take_profit_price(self, take_profit_pct: float) -> float:
        return self.avg_price * (1 + take_profit_pct / 100)

    @property
    def market_value(self) -> float:
        return self.amount + self.unrealized_pnl


@dataclass
class Portfolio:
    """Aggregate portfolio state."""

    total_value: float
    available_balance: float
    positions: dict[str, Position] = field(default_factory=dict)
    total_profit: float = 0.0
    active_trades: int = 0

    # Risk counters
    daily_loss: float = 0.0
    max_drawdown: float = 0.0  # % decline from peak total value
    peak_value: float = 0.0

    closed_trades: int = 0
    winning_exits: int = 0

    @property
    def success_rate(self) -> float:
        if self.closed_trades == 0:
            return 0.0
        return self.winning_exits / self.closed_trades * 100


@dataclass(frozen=True)
class ClosedPosition:
    """Result of a full exit."""

    trade: Trade
    pnl: float
    entry_price: float

    @property
    def pnl_pct(self) -> float:
        return (self.trade.price - self.entry_price) / self.entry_price * 100


class PortfolioLedger:
    """Applies buys, sells and revaluations to the portfolio.

    A token has at most one open Position; later buys merge into it.
    """

    def __init__(self, starting_balance: float = 1_000.0, max_trade_history: int = 1_000):
        self._starting_balance = starting_balance
        self._portfolio = Portfolio(
            total_value=starting_balance,
            available_balance=starting_balance,
            peak_value=starting_balance,
        )
        self._trade_history: deque[Trade] = deque(maxlen=max_trade_history)
        self._trade_ids = itertools.count(1)

    @property
    def portfolio(self) -> Portfolio:
        return self._portfolio

    @property
    def positions(self) -> dict[str, Position]:
        return self._portfolio.positions

    @property
    def trade_history(self) -> list[Trade]:
        return list(self._trade_history)

    def get_position(self, address: str) -> Optional[Position]:
        return self._portfolio.positions.get(address)

    def new_trade(
        self,
        address: str,
        action: TradeAction,
        amount: float,
        price: float,
        timestamp: Optional[datetime] = None,
        reason: str = "",
    ) -> Trade:
        if amount <= 0:
            raise ValueError(f"Trade amount must be positive, got {amount}")
        if price <= 0:
            raise ValueError(f"Trade price must be positive, got {price}")
        return Trade(
            trade_id=next(self._trade_ids),
            token_address=address,
            action=action,
            amount=amount,
            price=price,
            timestamp=timestamp or datetime.now(timezone.utc),
            reason=reason,
        )

    def apply_buy(self, trade: Trade) -> Position:
        if trade.action != TradeAction.BUY:
            raise ValueError(f"apply_buy expects a BUY trade, got {trade.action.value}")

        pf = self._portfolio
        pf.available_balance -= trade.amount
        pf.active_trades += 1

        position = pf.positions.get(trade.token_address)
        if position is None:
            position = Position(amount=trade.amount, avg_price=trade.price)
            pf.positions[trade.token_address] = position
        else:
            position.add(trade.amount, trade.price)
            position.unrealized_pnl = 0.0

        self._trade_history.append(trade)

        logger.info(
            "BUY %s: $%.2f @ %.8g (avg %.8g) | available $%.2f",
            trade.token_address, trade.amount, trade.price,
            position.avg_price, pf.available_balance,
        )
        return position

    def revalue(self, prices: dict[str, float]) -> float:
        """Recompute unrealized P&L and total value. Idempotent."""
        pf = self._portfolio
        for address, position in pf.positions.items():
            price = prices.get(address)
            if price is not None and price > 0:
                position.revalue(price)

        pf.total_value = pf.available_balance + sum(
            p.market_value for p in pf.positions.values()
        )

        if pf.total_value > pf.peak_value:
            pf.peak_value = pf.total_value
        if pf.peak_value > 0:
            drawdown = (pf.peak_value - pf.total_value) / pf.peak_value * 100
            pf.max_drawdown = max(pf.max_drawdown, drawdown)

        return pf.total_value

    def apply_sell(
        self,
        address: str,
        price: float,
        reason: str,
        timestamp: Optional[datetime] = None,
    ) -> Optional[ClosedPosition]:
        """Exit the whole position at the given price."""
        pf = self._portfolio
        position = pf.positions.get(address)
        if position is None:
            return None

        pnl = position.realized_pnl(price)
        trade = self.new_trade(
            address, TradeAction.SELL, position.amount, price,
            timestamp=timestamp, reason=reason,
        )

        pf.available_balance += position.amount + pnl
        pf.total_profit += pnl
        pf.active_trades -= 1
        pf.closed_trades += 1
        if pnl > 0:
            pf.winning_exits += 1
        else:
            pf.daily_loss += -pnl
        del pf.positions[address]

        self._trade_history.append(trade)

        logger.info(
            "SELL %s (%s): $%.2f @ %.8g | P&L %+.2f",
            address, reason, trade.amount, price, pnl,
        )
        return ClosedPosition(trade=trade, pnl=pnl, entry_price=position.avg_price)

    def reset_daily(self) -> None:
        self._portfolio.daily_loss = 0.0

    def snapshot(self) -> dict:
        pf = self._portfolio
        return {
            "total_value": round(pf.total_value, 2),
            "available_balance": round(pf.available_balance, 2),
            "total_profit": round(pf.total_profit, 2),
            "active_trades": pf.active_trades,
            "success_rate": round(pf.success_rate, 1),
            "daily_loss": round(pf.daily_loss, 2),
            "max_drawdown": round(pf.max_drawdown, 2),
            "positions": {
                addr: {
                    "amount": round(p.amount, 2),
                    "avg_price": p.avg_price,
                    "unrealized_pnl": round(p.unrealized_pnl, 2),
                }
                for addr, p in pf.positions.items()
            },
        }
