"""
Scanner base class and the three Smart Money Concepts (SMC) setups.

Scanners are stateless: given the execution-timeframe candles (and optionally
higher-timeframe candles) they return a Signal for the latest candle or None.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple, Type

from ..config import StrategyConfig
from .candles import Candle
from .indicators import latest_atr
from .liquidity import htf_buy_side, map_liquidity_pools, nearest_upper_pool
from .signals import (
    MAX_ATR_DISTANCE,
    S1Details,
    S2Details,
    S3Details,
    Signal,
    StrategyDetails,
    rejection_reason,
)
from .smc_primitives import (
    confirm_body_close,
    find_fvg,
    find_order_block,
    is_displacement,
    select_entry,
)
from .swings import SwingPoint, detect_swings, higher_high_run

logger = logging.getLogger(__name__)


# ================================================================
# Base Scanner Interface
# ================================================================

class Scanner(ABC):
    """Abstract base class for setup scanners."""

    strategy_id: str = ""
    min_candles: int = 0

    def __init__(self, config: StrategyConfig):
        self.config = config

    @abstractmethod
    def scan(self, candles: Sequence[Candle], htf_candles: Optional[Sequence[Candle]] = None) -> Optional[Signal]:
        """Return a signal for the latest candle, or None."""
        pass

    # ------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------

    def is_disp(self, candle: Candle, history: Sequence[Candle], atr: float) -> bool:
        return is_displacement(
            candle,
            history,
            atr,
            atr_multiplier=self.config.atr_multiplier,
            close_threshold=self.config.displacement_close,
            volume_multiplier=self.config.volume_multiplier,
        )

    def build_signal(
        self,
        candles: Sequence[Candle],
        atr: float,
        entry: float,
        sl: float,
        tp: float,
        details: StrategyDetails,
        reasoning: str,
    ) -> Optional[Signal]:
        """Assemble a long signal and apply the checks every setup shares."""
        signal = Signal(
            strategy=self.strategy_id,
            direction="long",
            entry=round(entry, 6),
            sl=round(sl, 6),
            tp=round(tp, 6),
            time=candles[-1].time,
            atr=atr,
            details=details,
            reasoning=reasoning,
            timeframe=self.config.timeframe,
            symbol=self.config.symbol,
        )

        reason = rejection_reason(signal, candles[-1], MAX_ATR_DISTANCE[self.strategy_id])
        if reason is None and signal.rr < self.config.min_rr:
            reason = f"rr {signal.rr} below {self.config.min_rr}"
        if reason:
            logger.debug(f"{self.strategy_id} setup discarded: {reason}")
            return None
        return signal

    def __repr__(self):
        return f"{type(self).__name__}({self.strategy_id})"


# ================================================================
# S1 - Higher-high displacement sweep
# ================================================================

class HigherHighSweepScanner(Scanner):
    """
    3+ higher highs, then a bearish displacement sweeping down, then a
    bullish displacement up.

    Entry at the OB / FVG of the up move (fallback: its open), stop below the
    sweep low, target at the high of the up move.
    """

    strategy_id = "S1"
    min_candles = 80
    window = 120

    def scan(self, candles, htf_candles=None):
        if len(candles) < self.min_candles:
            return None
        atr = latest_atr(candles)
        if not atr:
            return None

        window = candles[-self.window:]
        highs, _ = detect_swings(window, 3, 3)
        hh = higher_high_run(highs, 3)
        if not hh:
            return None

        last_hh = hh[-1]
        after_hh = window[last_hh.index:]
        if len(after_hh) < 6:
            return None

        # sweep down: bearish displacement with the lowest low
        sweep_idx, sweep_low = -1, float("inf")
        for i in range(1, len(after_hh)):
            c = after_hh[i]
            if c.is_bearish and self.is_disp(c, after_hh[:i], atr) and c.low < sweep_low:
                sweep_idx, sweep_low = i, c.low
        if sweep_idx < 0:
            for i in range(1, len(after_hh)):
                c = after_hh[i]
                if c.is_bearish and c.close < last_hh.price * 0.995 and c.low < sweep_low:
                    sweep_idx, sweep_low = i, c.low
        if sweep_idx < 0:
            return None

        after_sweep = after_hh[sweep_idx:]
        if len(after_sweep) < 4:
            return None

        # up move: bullish displacement with the highest high
        up_idx, up_high = -1, float("-inf")
        for i in range(1, len(after_sweep)):
            c = after_sweep[i]
            if c.is_bullish and self.is_disp(c, after_sweep[:i], atr) and c.high > up_high:
                up_idx, up_high = i, c.high
        if up_idx < 0:
            return None

        ob = find_order_block(after_sweep, up_idx, "long")
        fvg = find_fvg(after_sweep, up_idx, "long")
        entry = select_entry(ob, fvg, "long", fallback=after_sweep[up_idx].open)
        sl = sweep_low - self.config.sl_buffer * atr
        tp = up_high

        details = S1Details(
            hh_count=len(hh),
            sweep_low=round(sweep_low, 6),
            up_move_high=round(up_high, 6),
            ob=ob,
            fvg=fvg,
        )
        reasoning = "\n".join([
            "S1 - Higher High Displacement Sweep",
            f"  {len(hh)} higher highs, last at {last_hh.price:.2f}",
            f"  Displacement sweep down to {sweep_low:.2f}",
            f"  Displacement up to {up_high:.2f} (target)",
            f"  Entry {entry:.2f} (OB/FVG 50%), stop {sl:.2f} below sweep low",
        ])
        return self.build_signal(candles, atr, entry, sl, tp, details, reasoning)


# ================================================================
# S2 - Range sweep + short trap
# ================================================================

class RangeSweepScanner(Scanner):
    """
    Support range, sweep below it, a small bounce that traps shorts, then a
    bullish displacement.

    Target is the nearest higher-timeframe buy-side pool above entry.
    """

    strategy_id = "S2"
    min_candles = 100
    window = 150
    min_range_candles = 40
    bounce_bars = 10

    def scan(self, candles, htf_candles=None):
        if len(candles) < self.min_candles:
            return None
        atr = latest_atr(candles)
        if not atr:
            return None

        window = candles[-self.window:]
        n = len(window)

        range_candles = window[:int(n * 0.6)]
        if len(range_candles) < self.min_range_candles:
            return None
        range_high = max(c.high for c in range_candles)
        range_low = min(c.low for c in range_candles)
        range_size = range_high - range_low
        if range_size < atr * 2 or range_size > atr * 20:
            return None

        # sweep below the range in the second half of the window
        after_range = window[int(n * 0.5):]
        sweep_idx, sweep_low = -1, float("inf")
        for i, c in enumerate(after_range):
            if c.low < range_low - atr * 0.3 and c.low < sweep_low:
                sweep_idx, sweep_low = i, c.low
        if sweep_idx < 0:
            return None

        post_sweep = after_range[sweep_idx:]
        if len(post_sweep) < 5:
            return None

        bounce_high, bounce_end = sweep_low, 0
        for i in range(1, min(len(post_sweep), self.bounce_bars)):
            if post_sweep[i].high > bounce_high:
                bounce_high, bounce_end = post_sweep[i].high, i
        if bounce_high - sweep_low < atr * 0.3:
            return None

        after_bounce = post_sweep[bounce_end:]
        if len(after_bounce) < 3:
            return None

        disp_idx = next(
            (i for i in range(1, len(after_bounce))
             if after_bounce[i].is_bullish and self.is_disp(after_bounce[i], after_bounce[:i], atr)),
            -1,
        )
        if disp_idx < 0:
            return None

        disp = after_bounce[disp_idx]
        ob = find_order_block(after_bounce, disp_idx, "long")
        fvg = find_fvg(after_bounce, disp_idx, "long")
        entry = select_entry(ob, fvg, "long", fallback=sweep_low + (disp.high - sweep_low) * 0.5)
        sl = sweep_low - self.config.sl_buffer * atr
        tp = self.target(entry, range_high, htf_candles)

        details = S2Details(
            range_high=round(range_high, 6),
            range_low=round(range_low, 6),
            sweep_low=round(sweep_low, 6),
            bounce_high=round(bounce_high, 6),
            htf_target=round(tp, 6),
            ob=ob,
            fvg=fvg,
        )
        reasoning = "\n".join([
            "S2 - Range Sweep + Short Trap",
            f"  Range {range_low:.2f} - {range_high:.2f}",
            f"  Sell-side sweep to {sweep_low:.2f}, bounce to {bounce_high:.2f}",
            f"  Displacement up, HTF buy-side target {tp:.2f}",
            f"  Entry {entry:.2f} (OB/FVG 50%), stop {sl:.2f} below sweep low",
        ])
        return self.build_signal(candles, atr, entry, sl, tp, details, reasoning)

    def target(self, entry: float, range_high: float, htf_candles: Optional[Sequence[Candle]]) -> float:
        if htf_candles:
            pool = nearest_upper_pool(map_liquidity_pools(htf_candles, self.config.liquidity_tolerance), entry)
            if pool is not None:
                return pool.price
            htf_high = htf_buy_side(htf_candles, 100)
            if htf_high is not None:
                return htf_high
        return range_high * 1.01


# ================================================================
# S3 - Major sell-side sweep + MSS
# ================================================================

class MajorLiquiditySweepScanner(Scanner):
    """
    Sweep of the major swing low (wick below, close above), a body-close
    market structure shift over the first reaction swing high, then an
    impulsive move up.
    """

    strategy_id = "S3"
    min_candles = 80
    window = 150
    reaction_bars = 30

    def scan(self, candles, htf_candles=None):
        if len(candles) < self.min_candles:
            return None
        atr = latest_atr(candles)
        if not atr:
            return None

        window = candles[-self.window:]
        _, lows = detect_swings(window, 4, 4)
        if len(lows) < 2:
            return None
        found = self.find_major_sweep(window, lows)
        if found is None:
            return None
        major_low, sweep_idx, sweep_low = found

        after_major = window[major_low.index:]
        post_sweep = after_major[sweep_idx:]
        if len(post_sweep) < 5:
            return None

        reaction = post_sweep[:self.reaction_bars]
        reaction_highs, _ = detect_swings(reaction, 2, 2)
        if not reaction_highs:
            return None
        mss_level = reaction_highs[0].price

        mss_idx = next(
            (i for i in range(reaction_highs[0].index + 1, len(reaction))
             if confirm_body_close(reaction[i], mss_level, "long")),
            -1,
        )
        if mss_idx < 0:
            return None
        mss_close = reaction[mss_idx].close

        after_mss = reaction[mss_idx:]
        if len(after_mss) < 3:
            return None

        imp_idx = self.impulse_index(after_mss, atr)
        if imp_idx < 0:
            return None

        leg_low = after_mss[0].low
        leg_high = after_mss[imp_idx].high
        ob = find_order_block(after_mss, imp_idx, "long")
        fvg = find_fvg(after_mss, imp_idx, "long")
        entry = select_entry(ob, fvg, "long", fallback=leg_low + (leg_high - leg_low) * 0.5)
        sl = sweep_low - self.config.sl_buffer * atr
        tp = self.target(window, major_low.index, leg_high, htf_candles)

        details = S3Details(
            major_low=round(major_low.price, 6),
            sweep_low=round(sweep_low, 6),
            mss_level=round(mss_level, 6),
            mss_confirm=round(mss_close, 6),
            htf_target=round(tp, 6),
            ob=ob,
            fvg=fvg,
        )
        reasoning = "\n".join([
            "S3 - Major SSL Sweep + MSS",
            f"  Major sell-side liquidity at {major_low.price:.2f}, swept to {sweep_low:.2f}",
            f"  Body close above {mss_level:.2f} confirms the shift",
            f"  Impulsive move up to {leg_high:.2f}, target {tp:.2f}",
            f"  Entry {entry:.2f}, stop {sl:.2f} below sweep low",
        ])
        return self.build_signal(candles, atr, entry, sl, tp, details, reasoning)

    @staticmethod
    def find_major_sweep(
        window: Sequence[Candle],
        lows: Sequence[SwingPoint],
    ) -> Optional[Tuple[SwingPoint, int, float]]:
        """
        Lowest swing low that a later candle sweeps (wick below, close above).

        A sweep candle with four bars after it is itself a lower swing low, so
        swing lows are tried from the lowest up until one has been swept.

        Returns:
            (major low, sweep offset from the major low, sweep low) or None
        """
        for major in sorted(lows, key=lambda s: s.price):
            after = window[major.index:]
            sweep_idx, sweep_low = -1, float("inf")
            for i in range(1, len(after)):
                c = after[i]
                if c.low < major.price and c.close > major.price and c.low < sweep_low:
                    sweep_idx, sweep_low = i, c.low
            if sweep_idx >= 0:
                return major, sweep_idx, sweep_low
        return None

    def impulse_index(self, after_mss: Sequence[Candle], atr: float) -> int:
        """First bullish displacement, else the third of three consecutive bullish candles."""
        for i, c in enumerate(after_mss):
            if c.is_bullish and self.is_disp(c, after_mss[:i], atr):
                return i
        run = 0
        for i, c in enumerate(after_mss):
            run = run + 1 if c.is_bullish else 0
            if run >= 3:
                return i
        return -1

    def target(self, window, major_idx: int, leg_high: float, htf_candles) -> float:
        if htf_candles:
            htf_high = htf_buy_side(htf_candles, 100)
            if htf_high is not None:
                return htf_high
        prior_highs, _ = detect_swings(window[:major_idx + 1], 3, 3)
        if prior_highs:
            return prior_highs[-1].price
        return leg_high * 1.01


# ================================================================
# Registry
# ================================================================

SCANNERS: Dict[str, Type[Scanner]] = {
    "S1": HigherHighSweepScanner,
    "S2": RangeSweepScanner,
    "S3": MajorLiquiditySweepScanner,
}


def build_scanners(config: StrategyConfig) -> List[Scanner]:
    """Enabled scanners in priority order (S1, S2, S3)."""
    enabled = {"S1": config.enable_s1, "S2": config.enable_s2, "S3": config.enable_s3}
    return [
        cls(config)
        for sid, cls in SCANNERS.items()
        if enabled[sid] and config.strategy in ("all", sid)
    ]


def run_scanners(
    scanners: Sequence[Scanner],
    candles: Sequence[Candle],
    htf_candles: Optional[Sequence[Candle]] = None,
    only_longs: bool = True,
) -> List[Signal]:
    """Signals from every scanner, in priority order."""
    signals = []
    for scanner in scanners:
        signal = scanner.scan(candles, htf_candles)
        if signal is None:
            continue
        if only_longs and signal.direction != "long":
            continue
        signals.append(signal)
    return signals
