"""
Swing point detection and swing-sequence helpers.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .candles import Candle


@dataclass(frozen=True)
class SwingPoint:
    index: int
    price: float
    time: int

    def to_dict(self) -> dict:
        return {"index": self.index, "price": self.price, "time": self.time}


def detect_swings(
    candles: Sequence[Candle],
    left: int = 3,
    right: int = 3,
) -> Tuple[List[SwingPoint], List[SwingPoint]]:
    """
    Detect swing highs and lows over a symmetric window.

    A candle is a swing high when its high is strictly greater than every
    other high in `[i - left, i + right]`; equal highs disqualify both
    candles. Swing lows mirror this on the lows. Only indices with a full
    window on both sides are considered.

    Returns:
        (highs, lows), each ordered oldest first
    """
    highs: List[SwingPoint] = []
    lows: List[SwingPoint] = []

    for i in range(left, len(candles) - right):
        c = candles[i]
        is_high = True
        is_low = True
        for j in range(i - left, i + right + 1):
            if j == i:
                continue
            if candles[j].high >= c.high:
                is_high = False
            if candles[j].low <= c.low:
                is_low = False
            if not is_high and not is_low:
                break

        if is_high:
            highs.append(SwingPoint(i, c.high, c.time))
        if is_low:
            lows.append(SwingPoint(i, c.low, c.time))

    return highs, lows


def detect_equal_highs_lows(
    highs: Sequence[SwingPoint],
    lows: Sequence[SwingPoint],
    tolerance: float = 0.001,
) -> Tuple[List[Tuple[SwingPoint, SwingPoint]], List[Tuple[SwingPoint, SwingPoint]]]:
    """
    Pair up swing points whose relative price difference is within `tolerance`.

    Every unordered pair is compared (O(n^2)); callers keep the swing lists short.
    """
    def pairs(points: Sequence[SwingPoint]) -> List[Tuple[SwingPoint, SwingPoint]]:
        out = []
        for i in range(len(points) - 1):
            for j in range(i + 1, len(points)):
                a, b = points[i], points[j]
                if a.price and abs(a.price - b.price) / a.price <= tolerance:
                    out.append((a, b))
        return out

    return pairs(highs), pairs(lows)


def higher_high_run(highs: Sequence[SwingPoint], min_count: int = 3) -> List[SwingPoint]:
    """
    First run of at least `min_count` strictly increasing swing highs.

    The run is extended while highs keep rising; the first lower high after a
    qualifying run ends the search. Returns an empty list when no run qualifies.
    """
    run: List[SwingPoint] = []
    for prev, cur in zip(highs, highs[1:]):
        if cur.price > prev.price:
            if not run:
                run.append(prev)
            run.append(cur)
        else:
            if len(run) >= min_count:
                break
            run = []
    return run if len(run) >= min_count else []


def detect_higher_lows(
    lows: Sequence[SwingPoint],
    min_count: int = 3,
    min_spacing: int = 3,
) -> List[List[SwingPoint]]:
    """Groups of rising swing lows spaced at least `min_spacing` bars apart."""
    if len(lows) < min_count:
        return []

    groups: List[List[SwingPoint]] = []
    current = [lows[0]]
    for low in lows[1:]:
        last = current[-1]
        if low.price > last.price and low.index - last.index >= min_spacing:
            current.append(low)
            if len(current) >= min_count:
                groups.append(list(current))
        elif low.price <= last.price:
            current = [low]
    return groups


def last_swing_high(candles: Sequence[Candle], lookback: int = 30) -> Optional[SwingPoint]:
    highs, _ = detect_swings(candles[-lookback:], 2, 2)
    return highs[-1] if highs else None


def last_swing_low(candles: Sequence[Candle], lookback: int = 30) -> Optional[SwingPoint]:
    _, lows = detect_swings(candles[-lookback:], 2, 2)
    return lows[-1] if lows else None
