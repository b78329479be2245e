"""Core detection, signal and risk components."""

from .candles import Candle, candles_from_frame, frame_from_candles
from .liquidity import LiquidityPool, Sweep, get_recent_sweeps, map_liquidity_pools
from .risk import RiskTracker, calc_position_size, calc_rr
from .signals import Signal, validate_signal
from .smc_primitives import (
    FairValueGap,
    OrderBlock,
    StructureShift,
    aligned_bias,
    calc_bias,
    detect_mss,
    find_fvg,
    find_order_block,
    get_session,
    is_displacement,
)
from .strategy import (
    HigherHighSweepScanner,
    MajorLiquiditySweepScanner,
    RangeSweepScanner,
    Scanner,
    build_scanners,
    run_scanners,
)

__all__ = [
    "Candle",
    "candles_from_frame",
    "frame_from_candles",
    "LiquidityPool",
    "Sweep",
    "get_recent_sweeps",
    "map_liquidity_pools",
    "RiskTracker",
    "calc_position_size",
    "calc_rr",
    "Signal",
    "validate_signal",
    "FairValueGap",
    "OrderBlock",
    "StructureShift",
    "aligned_bias",
    "calc_bias",
    "detect_mss",
    "find_fvg",
    "find_order_block",
    "get_session",
    "is_displacement",
    "Scanner",
    "HigherHighSweepScanner",
    "RangeSweepScanner",
    "MajorLiquiditySweepScanner",
    "build_scanners",
    "run_scanners",
]
