"""
Smart Money Concepts (SMC) Primitives

Core SMC detection algorithms:
- Displacement candles (large body, strong close, volume spike)
- Fair Value Gaps (FVG) and Order Blocks (OB) around a displacement
- Entry-zone selection between OB and FVG
- Market Structure Shift (MSS) / Change of Character (CHoCH)
- Multi-timeframe bias
- Trading sessions (UTC)
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Literal, Optional, Sequence

from .candles import Candle
from .indicators import is_volume_spike
from .swings import detect_swings

Direction = Literal["long", "short"]
Bias = Literal["bullish", "bearish", "neutral"]


# ============================================================
# DATACLASSES
# ============================================================

@dataclass(frozen=True)
class FairValueGap:
    type: Literal["bullish", "bearish"]
    top: float
    bottom: float
    index: int

    @property
    def mid(self) -> float:
        return (self.top + self.bottom) / 2

    def to_dict(self):
        return {"type": self.type, "top": self.top, "bottom": self.bottom, "mid": self.mid, "index": self.index}


@dataclass(frozen=True)
class OrderBlock:
    type: Literal["bullish", "bearish"]
    top: float
    bottom: float
    index: int

    @property
    def mid(self) -> float:
        return (self.top + self.bottom) / 2

    def to_dict(self):
        return {"type": self.type, "top": self.top, "bottom": self.bottom, "mid": self.mid, "index": self.index}


@dataclass(frozen=True)
class StructureShift:
    kind: Literal["MSS", "CHoCH"]
    direction: Direction
    swing_price: float
    confirm_time: int
    break_level: Optional[float] = None

    @property
    def confirmed(self) -> bool:
        return self.kind == "MSS"

    def to_dict(self):
        return vars(self).copy()


# ============================================================
# DISPLACEMENT
# ============================================================

def close_position(candle: Candle) -> float:
    """Where the close sits inside the candle range, 0 = low, 1 = high."""
    return (candle.close - candle.low) / (candle.range or 1)


def is_displacement(
    candle: Candle,
    history: Sequence[Candle],
    atr: float,
    atr_multiplier: float = 1.5,
    close_threshold: float = 0.7,
    volume_multiplier: float = 1.5,
) -> bool:
    """
    Displacement test. All three conditions are mandatory:

    - body >= atr * atr_multiplier
    - bullish close in the top `1 - close_threshold` of the range, bearish close
      in the bottom `1 - close_threshold`
    - volume spike against `history`
    """
    if atr <= 0 or candle.body < atr * atr_multiplier:
        return False

    pos = close_position(candle)
    if candle.is_bullish:
        if pos < close_threshold:
            return False
    elif candle.is_bearish:
        if pos > 1 - close_threshold:
            return False
    else:
        return False

    return is_volume_spike(candle, history, volume_multiplier)


# ============================================================
# FAIR VALUE GAPS / ORDER BLOCKS
# ============================================================

def find_fvg(candles: Sequence[Candle], idx: int, direction: Direction) -> Optional[FairValueGap]:
    """Three-candle imbalance centred on `idx`; needs a candle on each side."""
    if idx < 1 or idx >= len(candles) - 1:
        return None

    prev, nxt = candles[idx - 1], candles[idx + 1]
    if direction == "long" and nxt.low > prev.high:
        return FairValueGap("bullish", top=nxt.low, bottom=prev.high, index=idx)
    if direction == "short" and nxt.high < prev.low:
        return FairValueGap("bearish", top=prev.low, bottom=nxt.high, index=idx)
    return None


def find_order_block(
    candles: Sequence[Candle],
    disp_idx: int,
    direction: Direction,
    max_lookback: int = 5,
) -> Optional[OrderBlock]:
    """Nearest opposite-coloured candle 1..max_lookback bars before the displacement."""
    for i in range(disp_idx - 1, max(0, disp_idx - max_lookback) - 1, -1):
        c = candles[i]
        if (direction == "long" and c.is_bearish) or (direction == "short" and c.is_bullish):
            return OrderBlock(
                type="bullish" if direction == "long" else "bearish",
                top=max(c.open, c.close),
                bottom=min(c.open, c.close),
                index=i,
            )
    return None


def select_entry(
    ob: Optional[OrderBlock],
    fvg: Optional[FairValueGap],
    direction: Direction,
    fallback: float,
) -> float:
    """
    Entry price from the OB / FVG zones.

    With both zones a long takes the higher mid and a short the lower one;
    with a single zone its mid is used; otherwise `fallback`.
    """
    if ob and fvg:
        return max(ob.mid, fvg.mid) if direction == "long" else min(ob.mid, fvg.mid)
    if ob:
        return ob.mid
    if fvg:
        return fvg.mid
    return fallback


# ============================================================
# MSS / CHOCH
# ============================================================

def confirm_body_close(candle: Candle, level: float, direction: Direction) -> bool:
    """Structure break counts only on a body close beyond the level."""
    if direction == "long":
        return candle.close > level
    return candle.close < level


def detect_mss(candles: Sequence[Candle], direction: Direction, lookback: int = 20) -> Optional[StructureShift]:
    """
    Detect a structure shift over the last `lookback` candles (2/2 swings).

    Long: the last two swing lows must form a higher low. A body close of the
    latest candle above the last swing high is an MSS carrying the break
    level; otherwise the higher low alone is reported as a CHoCH. Shorts mirror
    this on lower highs. Returns None when no higher low / lower high exists.
    """
    window = candles[-lookback:]
    if not window:
        return None
    highs, lows = detect_swings(window, 2, 2)
    latest = window[-1]

    if direction == "long":
        if len(lows) < 2 or lows[-1].price <= lows[-2].price:
            return None
        last_low = lows[-1]
        if highs and confirm_body_close(latest, highs[-1].price, "long"):
            return StructureShift("MSS", "long", last_low.price, latest.time, break_level=highs[-1].price)
        return StructureShift("CHoCH", "long", last_low.price, last_low.time)

    if len(highs) < 2 or highs[-1].price >= highs[-2].price:
        return None
    last_high = highs[-1]
    if lows and confirm_body_close(latest, lows[-1].price, "short"):
        return StructureShift("MSS", "short", last_high.price, latest.time, break_level=lows[-1].price)
    return StructureShift("CHoCH", "short", last_high.price, last_high.time)


# ============================================================
# BIAS
# ============================================================

def calc_bias(candles: Sequence[Candle]) -> Bias:
    """HH + HL is bullish, LH + LL is bearish, anything else neutral."""
    if len(candles) < 20:
        return "neutral"

    highs, lows = detect_swings(candles, 3, 3)
    if len(highs) < 2 or len(lows) < 2:
        return "neutral"

    h_prev, h_last = highs[-2].price, highs[-1].price
    l_prev, l_last = lows[-2].price, lows[-1].price

    if h_last > h_prev and l_last > l_prev:
        return "bullish"
    if h_last < h_prev and l_last < l_prev:
        return "bearish"
    return "neutral"


def bias_all_timeframes(
    candles_15m: Sequence[Candle],
    candles_1h: Sequence[Candle],
    candles_4h: Sequence[Candle],
) -> Dict[str, Bias]:
    return {
        "15m": calc_bias(candles_15m),
        "1H": calc_bias(candles_1h),
        "4H": calc_bias(candles_4h),
    }


def aligned_bias(biases: Dict[str, Bias]) -> Bias:
    """1H and 4H must agree, otherwise neutral."""
    if biases.get("4H") == biases.get("1H") and biases.get("4H") in ("bullish", "bearish"):
        return biases["4H"]
    return "neutral"


# ============================================================
# SESSIONS
# ============================================================

@dataclass(frozen=True)
class Session:
    name: str
    start: int
    end: int


ASIAN = Session("Asian", 0, 8)
LONDON = Session("London", 8, 12)
NEW_YORK = Session("NY", 13, 17)
OFF = Session("Off", 17, 24)


def get_session(time_ms: int) -> Session:
    """Session for a UTC epoch-millisecond timestamp. 12:00-13:00 is off-session."""
    hour = datetime.fromtimestamp(time_ms / 1000, tz=timezone.utc).hour
    for session in (ASIAN, LONDON, NEW_YORK):
        if session.start <= hour < session.end:
            return session
    return OFF


def is_valid_session(time_ms: int, session_filter: bool = True) -> bool:
    if not session_filter:
        return True
    return get_session(time_ms) is not OFF


def is_london_or_ny(time_ms: int) -> bool:
    return get_session(time_ms) in (LONDON, NEW_YORK)
