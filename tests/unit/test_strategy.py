"""Unit tests for the setup scanners."""
from dataclasses import replace

import pytest

from smc_prop_engine.config import StrategyConfig
from smc_prop_engine.core.indicators import latest_atr
from smc_prop_engine.core.signals import S2Details, Signal
from smc_prop_engine.core.swings import detect_swings
from smc_prop_engine.core.strategy import (
    HigherHighSweepScanner,
    MajorLiquiditySweepScanner,
    RangeSweepScanner,
    Scanner,
    build_scanners,
    run_scanners,
)


class ShortScanner(Scanner):
    strategy_id = "S2"

    def scan(self, candles, htf_candles=None):
        return Signal(
            strategy="S2",
            direction="short",
            entry=100.0,
            sl=110.0,
            tp=70.0,
            time=candles[-1].time,
            atr=5.0,
            details=S2Details(120.0, 90.0, 89.0, 95.0, 70.0),
        )


def test_s1_signal(scenario_b_candles):
    """Test the higher-high sweep setup on the latest candle."""
    signal = HigherHighSweepScanner(StrategyConfig()).scan(scenario_b_candles)

    assert signal is not None
    assert signal.strategy == 'S1'
    assert signal.direction == 'long'
    assert signal.symbol == 'BTCUSDT'
    assert signal.timeframe == '15m'
    assert signal.time == scenario_b_candles[-1].time

    # order block = last bearish candle before the up move, no FVG on the last bar
    assert signal.entry == pytest.approx(96.8)
    assert signal.details.ob is not None
    assert signal.details.fvg is None
    assert signal.tp == pytest.approx(117.0)
    assert signal.atr == pytest.approx(latest_atr(scenario_b_candles))
    assert signal.sl == pytest.approx(96.0 - 0.3 * signal.atr, abs=1e-6)

    assert signal.details.hh_count == 11
    assert signal.details.sweep_low == 96.0
    assert signal.details.up_move_high == 117.0
    assert signal.rr == pytest.approx(9.11, abs=0.01)
    assert signal.reasoning.startswith('S1')


def test_s1_rejects_when_target_reached(scenario_b_candles, target_hit_candle):
    """Test the setup is dropped once price trades into the target."""
    candles = scenario_b_candles + [target_hit_candle]

    assert HigherHighSweepScanner(StrategyConfig()).scan(candles) is None


def test_s1_min_rr(scenario_b_candles):
    """Test setups below the configured reward/risk are discarded."""
    assert HigherHighSweepScanner(StrategyConfig(min_rr=10)).scan(scenario_b_candles) is None


def test_s1_stop_buffer(scenario_b_candles):
    """Test the stop buffer is a multiple of ATR below the sweep low."""
    signal = HigherHighSweepScanner(StrategyConfig(sl_buffer=0.5)).scan(scenario_b_candles)

    assert signal.sl == pytest.approx(96.0 - 0.5 * signal.atr, abs=1e-6)


def test_s1_needs_completed_pattern(scenario_b_candles):
    """Test no signal before the up move or with too little history."""
    scanner = HigherHighSweepScanner(StrategyConfig())

    assert scanner.scan(scenario_b_candles[:88]) is None
    assert scanner.scan(scenario_b_candles[:91]) is None
    assert scanner.scan(scenario_b_candles[-79:]) is None


def test_other_scanners_quiet_on_s1_pattern(scenario_b_candles):
    """Test S2 needs 100 candles and S3 needs two major swing lows."""
    config = StrategyConfig()

    assert RangeSweepScanner(config).scan(scenario_b_candles) is None
    assert MajorLiquiditySweepScanner(config).scan(scenario_b_candles) is None


def test_no_signals_in_clean_uptrend(uptrend_candles):
    """Test a monotonic trend produces nothing."""
    scanners = build_scanners(StrategyConfig())

    assert run_scanners(scanners, uptrend_candles) == []


def test_s2_signal(range_sweep_candles):
    """Test the range sweep setup with an order block entry and range-high target."""
    config = StrategyConfig()
    signal = RangeSweepScanner(config).scan(range_sweep_candles)

    assert signal is not None
    assert signal.strategy == 'S2'
    assert signal.direction == 'long'
    assert signal.time == range_sweep_candles[-1].time
    assert signal.sl < signal.entry < signal.tp
    assert signal.rr >= config.min_rr

    details = signal.details
    assert details.range_high == 110.0
    assert details.range_low == 100.0
    assert details.sweep_low == 98.0
    assert details.bounce_high == 102.5
    assert details.htf_target == pytest.approx(111.1)
    assert details.fvg is None
    assert details.ob.mid == pytest.approx(100.95)

    assert signal.entry == pytest.approx(100.95)
    assert signal.tp == pytest.approx(111.1)
    assert signal.sl == pytest.approx(98.0 - 0.3 * signal.atr, abs=1e-6)
    assert signal.rr == pytest.approx(3.06, abs=0.01)


def test_s2_needs_volume_on_displacement(range_sweep_candles):
    """Test the last bar is not a displacement without a volume spike."""
    candles = range_sweep_candles[:-1] + [replace(range_sweep_candles[-1], volume=100.0)]

    assert RangeSweepScanner(StrategyConfig()).scan(candles) is None


def test_s3_signal(major_sweep_candles):
    """Test the major sweep setup with an FVG entry and prior swing high target."""
    config = StrategyConfig()
    signal = MajorLiquiditySweepScanner(config).scan(major_sweep_candles)

    assert signal is not None
    assert signal.strategy == 'S3'
    assert signal.direction == 'long'
    assert signal.time == major_sweep_candles[-1].time
    assert signal.sl < signal.entry < signal.tp
    assert signal.rr >= config.min_rr

    details = signal.details
    assert details.major_low == 100.0
    assert details.sweep_low == 99.0
    assert details.mss_level == 102.0
    assert details.mss_confirm == 102.4
    assert details.htf_target == 115.0
    # both zones present, the higher mid wins for a long
    assert details.ob.mid == pytest.approx(102.2)
    assert details.fvg.mid == pytest.approx(103.05)

    assert signal.entry == pytest.approx(103.05)
    assert signal.sl == pytest.approx(99.0 - 0.3 * signal.atr, abs=1e-6)
    assert signal.rr == pytest.approx(2.75, abs=0.01)


def test_s3_major_low_is_the_swept_one(major_sweep_candles):
    """Test the sweep candle, itself a lower swing low, is not taken as the major low."""
    window = major_sweep_candles
    _, lows = detect_swings(window, 4, 4)

    assert [(s.index, s.price) for s in lows] == [(32, 100.0), (42, 99.0)]
    major, sweep_idx, sweep_low = MajorLiquiditySweepScanner.find_major_sweep(window, lows)
    assert major.index == 32
    assert sweep_idx == 10
    assert sweep_low == 99.0
    assert MajorLiquiditySweepScanner.find_major_sweep(window, lows[1:]) is None


def test_s2_target_chain(uptrend_candles):
    """Test HTF pool, then HTF high, then range high fallback."""
    scanner = RangeSweepScanner(StrategyConfig())
    htf = uptrend_candles[:100]

    assert scanner.target(150.0, 120.0, htf) == pytest.approx(htf[75].high)
    assert scanner.target(180.0, 120.0, htf) == pytest.approx(htf[-1].high)
    assert scanner.target(150.0, 120.0, None) == pytest.approx(121.2)


def test_s3_target_chain(bullish_zigzag, uptrend_candles):
    """Test HTF high, then the last swing high before the major low, then leg high."""
    scanner = MajorLiquiditySweepScanner(StrategyConfig())

    assert scanner.target(bullish_zigzag, 30, 50.0, uptrend_candles) == pytest.approx(uptrend_candles[-1].high)
    assert scanner.target(bullish_zigzag, 30, 50.0, None) == pytest.approx(109.5)
    assert scanner.target(bullish_zigzag, 2, 50.0, None) == pytest.approx(50.5)


def test_s3_impulse_index(candle_factory):
    """Test three consecutive bullish candles count as an impulse."""
    scanner = MajorLiquiditySweepScanner(StrategyConfig())
    candles = candle_factory([
        (100.0, 100.5, 99.5, 99.8, 100.0),
        (99.8, 100.3, 99.7, 100.1, 100.0),
        (100.1, 100.6, 100.0, 100.4, 100.0),
        (100.4, 100.9, 100.3, 100.7, 100.0),
    ])

    assert scanner.impulse_index(candles, atr=5.0) == 3
    assert scanner.impulse_index(candles[:3], atr=5.0) == -1


def test_build_scanners_selection():
    """Test strategy selection and enable flags."""
    assert [type(s) for s in build_scanners(StrategyConfig())] == [
        HigherHighSweepScanner, RangeSweepScanner, MajorLiquiditySweepScanner,
    ]
    assert [s.strategy_id for s in build_scanners(StrategyConfig(strategy='S2'))] == ['S2']
    assert [s.strategy_id for s in build_scanners(StrategyConfig(enable_s1=False))] == ['S2', 'S3']
    assert build_scanners(StrategyConfig(strategy='S1', enable_s1=False)) == []


def test_run_scanners_only_longs(scenario_b_candles):
    """Test short signals are dropped when only longs are allowed."""
    scanners = [ShortScanner(StrategyConfig())]

    assert run_scanners(scanners, scenario_b_candles) == []
    assert len(run_scanners(scanners, scenario_b_candles, only_longs=False)) == 1


def test_scanner_is_abstract():
    """Test the base class cannot be instantiated."""
    with pytest.raises(TypeError):
        Scanner(StrategyConfig())
