"""
Trade signal types and validation helpers.

A Signal is a proposal produced by a scanner. It carries per-strategy detail
records and is re-validated against the current candle before it is acted on.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Literal, Optional, Union

import pandas as pd

from .candles import Candle
from .risk import calc_rr
from .smc_primitives import Direction, FairValueGap, OrderBlock

logger = logging.getLogger(__name__)

StrategyId = Literal["S1", "S2", "S3"]

STRATEGY_NAMES: Dict[str, str] = {
    "S1": "HH Displacement Sweep",
    "S2": "Range Sweep + Short Trap",
    "S3": "Major SSL Sweep + MSS",
}

# Heuristic hit rates shown next to each signal; not derived from data.
WIN_RATES: Dict[str, float] = {"S1": 0.63, "S2": 0.60, "S3": 0.65}

# Max distance between current close and entry, in ATRs.
MAX_ATR_DISTANCE: Dict[str, float] = {"S1": 5.0, "S2": 8.0, "S3": 8.0}


# ============================================================
# DETAILS
# ============================================================

def _zones(ob: Optional[OrderBlock], fvg: Optional[FairValueGap]) -> Dict[str, Any]:
    return {
        "ob": ob.to_dict() if ob else None,
        "fvg": fvg.to_dict() if fvg else None,
    }


@dataclass(frozen=True)
class S1Details:
    hh_count: int
    sweep_low: float
    up_move_high: float
    ob: Optional[OrderBlock] = None
    fvg: Optional[FairValueGap] = None

    def to_dict(self):
        return {
            "hh_count": self.hh_count,
            "sweep_low": self.sweep_low,
            "up_move_high": self.up_move_high,
            **_zones(self.ob, self.fvg),
        }


@dataclass(frozen=True)
class S2Details:
    range_high: float
    range_low: float
    sweep_low: float
    bounce_high: float
    htf_target: float
    ob: Optional[OrderBlock] = None
    fvg: Optional[FairValueGap] = None

    def to_dict(self):
        return {
            "range_high": self.range_high,
            "range_low": self.range_low,
            "sweep_low": self.sweep_low,
            "bounce_high": self.bounce_high,
            "htf_target": self.htf_target,
            **_zones(self.ob, self.fvg),
        }


@dataclass(frozen=True)
class S3Details:
    major_low: float
    sweep_low: float
    mss_level: float
    mss_confirm: float
    htf_target: float
    ob: Optional[OrderBlock] = None
    fvg: Optional[FairValueGap] = None

    def to_dict(self):
        return {
            "major_low": self.major_low,
            "sweep_low": self.sweep_low,
            "mss_level": self.mss_level,
            "mss_confirm": self.mss_confirm,
            "htf_target": self.htf_target,
            **_zones(self.ob, self.fvg),
        }


StrategyDetails = Union[S1Details, S2Details, S3Details]


# ============================================================
# SIGNAL
# ============================================================

@dataclass(frozen=True)
class Signal:
    strategy: StrategyId
    direction: Direction
    entry: float
    sl: float
    tp: float
    time: int
    atr: float
    details: StrategyDetails
    reasoning: str = ""
    timeframe: str = "15m"
    symbol: Optional[str] = field(default=None, compare=False)

    @property
    def rr(self) -> float:
        return calc_rr(self.entry, self.sl, self.tp)

    @property
    def win_rate(self) -> float:
        return WIN_RATES[self.strategy]

    @property
    def name(self) -> str:
        return STRATEGY_NAMES[self.strategy]

    @property
    def pct_gain(self) -> float:
        if not self.entry:
            return 0.0
        return round(abs(self.tp - self.entry) / self.entry * 100, 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy,
            "name": self.name,
            "direction": self.direction,
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "time": self.time,
            "entry": self.entry,
            "sl": self.sl,
            "tp": self.tp,
            "rr": self.rr,
            "pct_gain": self.pct_gain,
            "win_rate": self.win_rate,
            "atr": self.atr,
            "details": self.details.to_dict(),
            "reasoning": self.reasoning,
        }


# ============================================================
# VALIDATION
# ============================================================

def has_valid_geometry(signal: Signal) -> bool:
    """sl < entry < tp for longs, tp < entry < sl for shorts, all finite."""
    prices = (signal.entry, signal.sl, signal.tp)
    if not all(math.isfinite(p) for p in prices):
        return False
    if signal.direction == "long":
        return signal.sl < signal.entry < signal.tp
    return signal.tp < signal.entry < signal.sl


def rejection_reason(
    signal: Signal,
    candle: Candle,
    max_atr_distance: Optional[float] = None,
) -> Optional[str]:
    """Why `signal` is not actionable at `candle`, or None when it is."""
    if not has_valid_geometry(signal):
        return "invalid geometry"

    close = candle.close
    if signal.direction == "long":
        if close > signal.tp * 0.99:
            return "target already reached"
        if close < signal.sl * 1.001:
            return "stop already hit"
    else:
        if close < signal.tp * 1.01:
            return "target already reached"
        if close > signal.sl * 0.999:
            return "stop already hit"

    limit = max_atr_distance if max_atr_distance is not None else MAX_ATR_DISTANCE[signal.strategy]
    if signal.atr > 0 and abs(close - signal.entry) / signal.atr > limit:
        return "entry too far from price"
    return None


def validate_signal(signal: Signal, candle: Candle, max_atr_distance: Optional[float] = None) -> bool:
    reason = rejection_reason(signal, candle, max_atr_distance)
    if reason:
        logger.debug(f"Rejected {signal.strategy} {signal.direction} @ {signal.entry}: {reason}")
        return False
    return True


def signals_to_frame(signals: Iterable[Signal]) -> pd.DataFrame:
    """Flat DataFrame view of signals, one row per signal (details dropped)."""
    rows = []
    for s in signals:
        row = s.to_dict()
        row.pop("details")
        row.pop("reasoning")
        rows.append(row)
    columns = ["strategy", "name", "direction", "symbol", "timeframe", "time",
               "entry", "sl", "tp", "rr", "pct_gain", "win_rate", "atr"]
    df = pd.DataFrame(rows, columns=columns)
    if not df.empty:
        df["time"] = pd.to_datetime(df["time"], unit="ms", utc=True)
    return df
