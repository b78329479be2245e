"""
Statistics helpers - pure functions over P&L and equity series.
"""

import math
from typing import Optional, Sequence

import numpy as np

ANNUALIZATION = math.sqrt(252)

# Profit factor reported when there are wins and no losses.
PROFIT_FACTOR_CAP = 999.0


def round_to(value: float, decimals: int = 2) -> float:
    if value is None or not math.isfinite(value):
        return value
    return round(float(value), decimals)


def mean(values: Sequence[float]) -> float:
    return float(np.mean(values)) if len(values) else 0.0


def std(values: Sequence[float]) -> float:
    """Sample standard deviation (n - 1); 0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    return float(np.std(values, ddof=1))


def step_returns(equity_curve: Sequence[float]) -> np.ndarray:
    """Relative change between consecutive equity points, skipping zero bases."""
    eq = np.asarray(equity_curve, dtype=float)
    if eq.size < 2:
        return np.array([], dtype=float)
    prev, cur = eq[:-1], eq[1:]
    mask = prev != 0
    return (cur[mask] - prev[mask]) / prev[mask]


def sharpe_ratio(returns: Sequence[float]) -> float:
    """
    Annualised Sharpe ratio (sqrt(252)) using the population standard deviation.

    Returns 0.0 for an empty series or zero variance.
    """
    r = np.asarray(returns, dtype=float)
    if r.size == 0:
        return 0.0
    sd = float(r.std())
    if sd == 0:
        return 0.0
    return float(r.mean() / sd * ANNUALIZATION)


def sortino_ratio(returns: Sequence[float]) -> float:
    """Annualised Sortino ratio with downside deviation sqrt(mean(r^2)) over negative returns."""
    r = np.asarray(returns, dtype=float)
    neg = r[r < 0]
    if neg.size == 0:
        return 0.0
    downside = float(np.sqrt(np.mean(neg ** 2)))
    if downside == 0:
        return 0.0
    return float(r.mean() / downside * ANNUALIZATION)


def max_drawdown_pct(equity_curve: Sequence[float], initial: Optional[float] = None) -> float:
    """
    Largest peak-to-trough decline in percent.

    The running peak is seeded with `initial` when given, otherwise with the
    first point of the curve.
    """
    eq = np.asarray(equity_curve, dtype=float)
    if eq.size == 0:
        return 0.0
    seed = eq[0] if initial is None else initial
    peaks = np.maximum.accumulate(np.concatenate([[seed], eq]))[1:]
    with np.errstate(divide="ignore", invalid="ignore"):
        dd = np.where(peaks > 0, (peaks - eq) / peaks, 0.0)
    return float(dd.max() * 100)


def profit_factor(gross_win: float, gross_loss: float) -> float:
    gross_loss = abs(gross_loss)
    if gross_loss == 0:
        return PROFIT_FACTOR_CAP if gross_win > 0 else 0.0
    return gross_win / gross_loss


def expectancy(win_rate: float, avg_win: float, avg_loss: float) -> float:
    """win_rate * avg_win - (1 - win_rate) * |avg_loss|"""
    return win_rate * avg_win - (1 - win_rate) * abs(avg_loss)
