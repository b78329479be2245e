"""
Liquidity mapping

- Buy-side / sell-side pools from equal highs and lows
- Previous-day high / low (15m candles, 24-candle blocks)
- Minor pools from the most recent swing points
- Sweep detection (wick through, close back inside)
- Higher-timeframe buy-side targets
"""

import logging
from dataclasses import dataclass, replace
from typing import List, Literal, Optional, Sequence, Set, Tuple

from .candles import Candle
from .swings import detect_equal_highs_lows, detect_swings

logger = logging.getLogger(__name__)

PoolType = Literal["BSL", "SSL", "PDH", "PDL", "SH", "SL"]
PoolKey = Tuple[str, float, Optional[int]]

UPPER_POOLS = frozenset({"BSL", "PDH", "SH"})
LOWER_POOLS = frozenset({"SSL", "PDL", "SL"})

DAY_BLOCK = 24


# ============================================================
# DATACLASSES
# ============================================================

@dataclass(frozen=True)
class LiquidityPool:
    type: PoolType
    price: float
    strength: Literal["equal", "major", "minor"]
    swept: bool = False
    time: Optional[int] = None
    indices: Optional[Tuple[int, int]] = None

    @property
    def is_upper(self) -> bool:
        return self.type in UPPER_POOLS

    @property
    def key(self) -> PoolKey:
        """Identity used by callers to remember which pools were already swept."""
        return (self.type, self.price, self.time)

    def to_dict(self):
        return {
            "type": self.type,
            "price": self.price,
            "strength": self.strength,
            "swept": self.swept,
            "time": self.time,
            "indices": list(self.indices) if self.indices else None,
        }


@dataclass(frozen=True)
class Sweep:
    pool: LiquidityPool
    candle: Candle
    direction: Literal["long", "short"]

    def to_dict(self):
        return {
            "pool": self.pool.to_dict(),
            "candle": self.candle.to_dict(),
            "direction": self.direction,
        }


# ============================================================
# POOL MAPPING
# ============================================================

def map_liquidity_pools(candles: Sequence[Candle], tolerance: float = 0.0015) -> List[LiquidityPool]:
    """
    Build the list of liquidity pools for a candle series.

    Pools are recomputed from scratch on every call and never deduplicated:
    the same price can appear as an equal-high pool and a swing-high pool.
    """
    highs, lows = detect_swings(candles, 3, 3)
    equal_highs, equal_lows = detect_equal_highs_lows(highs, lows, tolerance)

    pools: List[LiquidityPool] = []

    for a, b in equal_highs:
        pools.append(LiquidityPool("BSL", max(a.price, b.price), "equal", time=b.time, indices=(a.index, b.index)))
    for a, b in equal_lows:
        pools.append(LiquidityPool("SSL", min(a.price, b.price), "equal", time=b.time, indices=(a.index, b.index)))

    # previous day = the 24-candle block before the most recent one
    if len(candles) >= DAY_BLOCK * 4:
        prev_day = candles[-DAY_BLOCK * 2:-DAY_BLOCK]
        pools.append(LiquidityPool("PDH", max(c.high for c in prev_day), "major"))
        pools.append(LiquidityPool("PDL", min(c.low for c in prev_day), "major"))

    for h in highs[-5:]:
        pools.append(LiquidityPool("SH", h.price, "minor", time=h.time))
    for l in lows[-5:]:
        pools.append(LiquidityPool("SL", l.price, "minor", time=l.time))

    return pools


def check_sweep(candle: Candle, pool: LiquidityPool) -> bool:
    """Upper pools: wick above, close below. Lower pools: wick below, close above."""
    if pool.is_upper:
        return candle.high > pool.price and candle.close < pool.price
    return candle.low < pool.price and candle.close > pool.price


def get_recent_sweeps(
    candles: Sequence[Candle],
    pools: Sequence[LiquidityPool],
    swept_keys: Set[PoolKey],
    lookback: int = 5,
) -> List[Sweep]:
    """
    Sweeps among the last `lookback` candles.

    Pools whose key is already in `swept_keys` are skipped; newly swept pool
    keys are added to it, so a pool is reported at most once per caller.
    Returned pools are copies marked `swept=True`; the input pools are untouched.
    """
    sweeps: List[Sweep] = []
    for candle in candles[-lookback:]:
        for pool in pools:
            if pool.key in swept_keys or not check_sweep(candle, pool):
                continue
            swept_keys.add(pool.key)
            sweeps.append(Sweep(
                pool=replace(pool, swept=True),
                candle=candle,
                direction="short" if pool.is_upper else "long",
            ))
    if sweeps:
        logger.debug(f"{len(sweeps)} new liquidity sweep(s) in last {lookback} candles")
    return sweeps


# ============================================================
# HIGHER-TIMEFRAME TARGETS
# ============================================================

def htf_buy_side(candles: Sequence[Candle], lookback: int = 100) -> Optional[float]:
    """Highest high over the last `lookback` candles, or None when empty."""
    recent = candles[-lookback:]
    return max(c.high for c in recent) if recent else None


def htf_sell_side(candles: Sequence[Candle], lookback: int = 100) -> Optional[float]:
    recent = candles[-lookback:]
    return min(c.low for c in recent) if recent else None


def nearest_upper_pool(pools: Sequence[LiquidityPool], price: float) -> Optional[LiquidityPool]:
    """Closest buy-side pool strictly above `price`."""
    above = [p for p in pools if p.is_upper and p.price > price]
    return min(above, key=lambda p: p.price) if above else None
