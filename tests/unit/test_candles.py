"""Unit tests for candle conversions."""
import pandas as pd
import pytest

from smc_prop_engine.core.candles import (
    Candle,
    candles_from_frame,
    frame_from_candles,
    timeframe_to_ms,
)


def test_candle_properties():
    """Test body, range and colour."""
    c = Candle(0, open=100.0, high=105.0, low=98.0, close=103.0)

    assert c.body == pytest.approx(3.0)
    assert c.range == pytest.approx(7.0)
    assert c.is_bullish
    assert not c.is_bearish
    assert c.volume == 0.0

    doji = Candle(0, 100.0, 101.0, 99.0, 100.0)
    assert not doji.is_bullish and not doji.is_bearish


def test_candles_from_frame_time_column():
    """Test conversion from a frame with a time column."""
    df = pd.DataFrame({
        'time': pd.to_datetime(['2024-01-01 00:00', '2024-01-01 00:15'], utc=True),
        'open': [1.0, 2.0],
        'high': [1.5, 2.5],
        'low': [0.5, 1.5],
        'close': [1.2, 2.2],
    })

    candles = candles_from_frame(df)

    assert len(candles) == 2
    assert candles[0].time == 1_704_067_200_000
    assert candles[1].time - candles[0].time == 15 * 60 * 1000
    assert candles[0].volume == 0.0
    assert candles[1].close == 2.2


def test_frame_round_trip(scenario_b_candles):
    """Test frame_from_candles -> candles_from_frame keeps every field."""
    df = frame_from_candles(scenario_b_candles)

    assert isinstance(df.index, pd.DatetimeIndex)
    assert list(df.columns) == ['open', 'high', 'low', 'close', 'volume']
    assert candles_from_frame(df) == scenario_b_candles


def test_candles_from_frame_requires_time():
    """Test a frame without time information is rejected."""
    df = pd.DataFrame({'open': [1.0], 'high': [1.0], 'low': [1.0], 'close': [1.0]})

    with pytest.raises(ValueError):
        candles_from_frame(df)

    assert candles_from_frame(df.iloc[0:0]) == []


def test_timeframe_to_ms():
    """Test timeframe strings."""
    assert timeframe_to_ms('15m') == 900_000
    assert timeframe_to_ms('1h') == 3_600_000
    assert timeframe_to_ms('4H') == 14_400_000
    assert timeframe_to_ms('1d') == 86_400_000

    with pytest.raises(ValueError):
        timeframe_to_ms('1M')
    with pytest.raises(ValueError):
        timeframe_to_ms('abc')
