"""
Position sizing, reward/risk helpers and the account risk tracker.
"""

import itertools
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

logger = logging.getLogger(__name__)


def calc_position_size(equity: float, risk_pct: float, entry: float, sl: float) -> float:
    """Units such that hitting the stop loses `risk_pct`% of equity (4dp, 0 without stop distance)."""
    distance = abs(entry - sl)
    if not distance:
        return 0.0
    return round(equity * (risk_pct / 100) / distance, 4)


def calc_rr(entry: float, sl: float, tp: float) -> float:
    risk = abs(entry - sl)
    if not risk:
        return 0.0
    return round(abs(tp - entry) / risk, 2)


def calc_tp(entry: float, sl: float, rr_target: float, direction: str) -> float:
    distance = abs(entry - sl)
    if direction == "long":
        return round(entry + distance * rr_target, 6)
    return round(entry - distance * rr_target, 6)


def calc_partial_tp(entry: float, sl: float, partial_rr: float, direction: str) -> float:
    """Level at which a partial profit is taken."""
    return calc_tp(entry, sl, partial_rr, direction)


@dataclass(frozen=True)
class AdmissionDecision:
    ok: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.ok


@dataclass
class TrackedPosition:
    id: int
    size: float
    entry: float
    sl: float
    tp: float
    direction: str


@dataclass
class RiskTracker:
    """
    Account-level risk gates.

    Tracks equity, peak equity, realised loss since the last day reset and the
    open positions. Closed positions are dropped.
    """
    initial_equity: float
    max_daily_risk: float = 5.0
    max_concurrent_trades: int = 3
    max_drawdown_stop: float = 10.0

    equity: float = field(init=False)
    peak_equity: float = field(init=False)
    daily_start: float = field(init=False)
    daily_loss: float = field(init=False, default=0.0)
    positions: Dict[int, TrackedPosition] = field(init=False, default_factory=dict)

    def __post_init__(self):
        self.equity = self.initial_equity
        self.peak_equity = self.initial_equity
        self.daily_start = self.initial_equity
        self._ids = itertools.count(1)

    @classmethod
    def from_config(cls, config) -> "RiskTracker":
        return cls(
            initial_equity=config.initial_equity,
            max_daily_risk=config.max_daily_risk,
            max_concurrent_trades=config.max_concurrent_trades,
            max_drawdown_stop=config.max_drawdown_stop,
        )

    @property
    def open_positions(self) -> int:
        return len(self.positions)

    @property
    def drawdown_pct(self) -> float:
        if self.peak_equity <= 0:
            return 0.0
        return round((self.peak_equity - self.equity) / self.peak_equity * 100, 2)

    def can_trade(self) -> AdmissionDecision:
        daily_loss_pct = self.daily_loss / self.daily_start * 100 if self.daily_start > 0 else 100.0
        if daily_loss_pct >= self.max_daily_risk:
            return AdmissionDecision(False, "Daily risk cap hit")
        if self.open_positions >= self.max_concurrent_trades:
            return AdmissionDecision(False, "Max concurrent trades")
        if self.drawdown_pct >= self.max_drawdown_stop:
            return AdmissionDecision(False, "Max drawdown stop")
        return AdmissionDecision(True)

    def open_position(self, size: float, entry: float, sl: float, tp: float, direction: str) -> int:
        position_id = next(self._ids)
        self.positions[position_id] = TrackedPosition(position_id, size, entry, sl, tp, direction)
        return position_id

    def close_position(self, position_id: int, close_price: float) -> float:
        """Close a tracked position and return its R multiple (0 for unknown ids)."""
        pos = self.positions.pop(position_id, None)
        if pos is None:
            logger.warning(f"close_position: no open position {position_id}")
            return 0.0

        move = close_price - pos.entry if pos.direction == "long" else pos.entry - close_price
        pnl = move * pos.size
        risk = abs(pos.entry - pos.sl) * pos.size
        r = round(pnl / risk, 2) if risk > 0 else 0.0

        self.equity = round(self.equity + pnl, 2)
        if pnl < 0:
            self.daily_loss += abs(pnl)
        self.peak_equity = max(self.peak_equity, self.equity)
        return r

    def reset_day(self):
        self.daily_loss = 0.0
        self.daily_start = self.equity
