"""
Indicator helpers operating on candle sequences.

- Average True Range (Wilder's smoothing)
- Volume average / volume spike test
- Dealing range (high, low, equilibrium) and premium/discount zones
"""

from dataclasses import dataclass
from typing import Literal, Sequence

import numpy as np
import pandas as pd

from .candles import Candle


def _column(candles: Sequence[Candle], name: str) -> np.ndarray:
    return np.array([getattr(c, name) for c in candles], dtype=float)


def true_range(candles: Sequence[Candle]) -> np.ndarray:
    """True range of every candle after the first (needs the previous close)."""
    if len(candles) < 2:
        return np.empty(0)
    high, low = _column(candles, "high")[1:], _column(candles, "low")[1:]
    prev_close = _column(candles, "close")[:-1]
    return np.maximum.reduce([
        high - low,
        np.abs(high - prev_close),
        np.abs(low - prev_close),
    ])


def calculate_atr(candles: Sequence[Candle], period: int = 14) -> float:
    """
    Average True Range using Wilder's smoothing.

    The first `period` true ranges are averaged to seed the value, each later
    true range is blended in as `(atr * (period - 1) + tr) / period`.
    Returns 0.0 when fewer than two candles are available.
    """
    tr = true_range(candles)
    if tr.size == 0:
        return 0.0

    seed_len = min(period, tr.size)
    seeded = pd.Series(np.concatenate([[tr[:seed_len].mean()], tr[seed_len:]]))
    return float(seeded.ewm(alpha=1 / period, adjust=False).mean().iloc[-1])


def latest_atr(candles: Sequence[Candle], period: int = 14) -> float:
    """ATR over the most recent max(period * 3, 50) candles."""
    return calculate_atr(candles[-max(period * 3, 50):], period)


def avg_volume(candles: Sequence[Candle], period: int = 20) -> float:
    recent = candles[-period:]
    if not recent:
        return 0.0
    volumes = np.array([c.volume for c in recent], dtype=float)
    return float(np.nan_to_num(volumes).mean())


def is_volume_spike(
    candle: Candle,
    history: Sequence[Candle],
    multiplier: float = 1.5,
    period: int = 20,
) -> bool:
    """Volume test against the trailing average; passes when there is no volume history."""
    avg = avg_volume(history, period)
    if not avg:
        return True
    return (candle.volume or 0.0) >= avg * multiplier


# ============================================================
# DEALING RANGE
# ============================================================

@dataclass(frozen=True)
class DealingRange:
    high: float
    low: float
    high_idx: int
    low_idx: int

    @property
    def size(self) -> float:
        return self.high - self.low

    @property
    def equilibrium(self) -> float:
        return (self.high + self.low) / 2

    def fib_level(self, fib: float) -> float:
        return self.low + self.size * fib


def dealing_range(candles: Sequence[Candle], lookback: int = 50) -> DealingRange:
    """Highest high / lowest low over the last `lookback` candles (indices relative to that slice)."""
    recent = candles[-lookback:]
    if not recent:
        raise ValueError("dealing_range needs at least one candle")

    high_idx = int(np.argmax(_column(recent, "high")))
    low_idx = int(np.argmin(_column(recent, "low")))
    return DealingRange(recent[high_idx].high, recent[low_idx].low, high_idx, low_idx)


def premium_discount(price: float, rng: DealingRange) -> Literal["premium", "discount"]:
    return "premium" if price >= rng.equilibrium else "discount"
