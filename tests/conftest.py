"""Pytest configuration and fixtures."""
import pytest
import pandas as pd
import numpy as np
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from smc_prop_engine.core.candles import Candle
from smc_prop_engine.db.models import Base

# 2024-01-01 00:00 UTC
BASE_TIME = 1_704_067_200_000
M15 = 15 * 60 * 1000

SAWTOOTH = [0, 1, 2, 3, 4, 3, 2, 1]


def build_candles(rows, start=BASE_TIME, step=M15):
    """Candles from (open, high, low, close[, volume]) tuples, one `step` apart."""
    return [Candle(start + i * step, *row) for i, row in enumerate(rows)]


def zigzag_rows(cycles, step, base=100.0):
    """8-bar up/down cycles whose mid price drifts by `step` per cycle."""
    rows = []
    for k in range(cycles):
        for j, offset in enumerate(SAWTOOTH):
            m = base + k * step + offset
            if j <= 4:
                o, c = m - 0.3, m + 0.3
            else:
                o, c = m + 0.3, m - 0.3
            rows.append((o, m + 1.5, m - 1.5, c, 100.0))
    return rows


def unit_row(m, bullish, volume=100.0):
    """One-point candle around `m` with a 0.4 body."""
    if bullish:
        return (m - 0.2, m + 0.5, m - 0.5, m + 0.2, volume)
    return (m + 0.2, m + 0.5, m - 0.5, m - 0.2, volume)


@pytest.fixture
def candle_factory():
    return build_candles


@pytest.fixture
def scenario_b_candles():
    """
    Eleven rising sawtooth cycles (11 higher highs), a high-volume bearish
    displacement down to 96.0, two small bearish candles and a high-volume
    bullish displacement up to 117.0 on the last bar.
    """
    rows = zigzag_rows(11, 1)
    rows += [
        (110.7, 111.0, 96.0, 96.5, 1000.0),
        (96.8, 97.5, 96.2, 96.6, 100.0),
        (97.0, 97.6, 96.3, 96.6, 100.0),
        (96.6, 117.0, 96.4, 114.0, 1000.0),
    ]
    return build_candles(rows)


@pytest.fixture
def target_hit_candle(scenario_b_candles):
    """Bar after the scenario B setup that trades through its 117.0 target."""
    return Candle(scenario_b_candles[-1].time + M15, 114.0, 117.5, 113.8, 116.5, 100.0)


@pytest.fixture
def range_sweep_candles():
    """
    100 candles: a 100-110 range, a drift down to a sweep at 98.0, a bounce
    to 102.5, a quiet base, then a bearish order block candle and a
    high-volume bullish displacement to 105.0 on the last bar.
    """
    rows = [unit_row(105.0, i % 2 == 0) for i in range(60)]
    rows[10] = (104.8, 110.0, 104.5, 105.2, 100.0)
    rows[20] = (104.8, 105.5, 100.0, 105.2, 100.0)
    rows += [unit_row(m, False) for m in (104.5, 104.0, 103.5, 103.0, 102.5, 102.0, 101.5, 101.0)]
    rows += [
        (100.8, 101.0, 98.0, 100.6, 100.0),
        (100.6, 101.8, 100.4, 101.6, 100.0),
        (101.6, 102.5, 101.4, 102.2, 100.0),
        (102.2, 102.3, 101.3, 101.5, 100.0),
        (101.5, 101.7, 100.9, 101.1, 100.0),
        (101.1, 101.4, 100.7, 101.0, 100.0),
        (101.0, 101.3, 100.6, 100.9, 100.0),
        (100.9, 101.3, 100.6, 101.1, 100.0),
        (101.1, 101.4, 100.8, 101.0, 100.0),
    ]
    rows += [unit_row(101.0, j % 2 == 0) for j in range(21)]
    rows += [
        (101.2, 101.4, 100.5, 100.7, 100.0),
        (100.7, 105.0, 100.6, 104.8, 500.0),
    ]
    return build_candles(rows)


@pytest.fixture
def major_sweep_candles():
    """
    100 candles: a 115.0 swing high, a decline to a major swing low at 100.0,
    a bounce, a sweep candle wicking to 99.0 and closing back above 100.0,
    a reaction high at 102.0 broken by a 102.4 close, a bearish candle and a
    high-volume bullish displacement that leaves a gap, then a base at 104.
    """
    rows = [unit_row(108.0, i % 2 == 0) for i in range(8)]
    rows += [unit_row(m, True) for m in (108.5, 109.0, 109.5, 110.0)]
    rows.append((110.3, 115.0, 110.0, 110.7, 100.0))
    rows += [unit_row(110.0 - 0.5 * k, False) for k in range(20)]
    rows += [unit_row(m, True) for m in (101.0, 101.5, 102.0, 102.5, 103.0)]
    rows += [unit_row(m, False) for m in (102.5, 102.0, 101.5, 101.0)]
    rows += [
        (101.0, 101.2, 99.0, 100.6, 100.0),
        (100.6, 101.6, 100.4, 101.4, 100.0),
        (101.4, 102.0, 101.2, 101.8, 100.0),
        (101.8, 101.9, 101.0, 101.2, 100.0),
        (101.2, 101.4, 100.6, 100.8, 100.0),
        (100.8, 101.6, 100.7, 101.5, 100.0),
        (101.5, 102.6, 101.4, 102.4, 100.0),
        (102.4, 102.5, 101.9, 102.0, 100.0),
        (102.0, 104.6, 101.9, 104.4, 500.0),
        (104.4, 105.0, 103.6, 104.6, 100.0),
    ]
    rows += [unit_row(104.0, j % 2 == 0) for j in range(48)]
    return build_candles(rows)


@pytest.fixture
def uptrend_candles():
    """200 strictly rising bullish candles; no swings, no sweeps."""
    rows = []
    for i in range(200):
        p = 100.0 + i
        rows.append((p, p + 1.2, p - 0.2, p + 1.0, 100.0))
    return build_candles(rows)


@pytest.fixture
def bullish_zigzag():
    """Higher highs and higher lows."""
    return build_candles(zigzag_rows(6, 2))


@pytest.fixture
def bearish_zigzag():
    """Lower highs and lower lows (the bullish zigzag played backwards)."""
    return build_candles(list(reversed(zigzag_rows(6, 2))))


@pytest.fixture
def sample_ohlc():
    """Generate sample OHLC data for testing."""
    rng = np.random.default_rng(42)
    n = 400
    times = pd.date_range(start='2024-01-01', periods=n, freq='15min', tz='UTC')

    close = 100 + np.cumsum(rng.normal(0, 0.8, n))
    open_price = np.concatenate([[100.0], close[:-1]])
    high = np.maximum(open_price, close) + np.abs(rng.normal(0, 0.4, n))
    low = np.minimum(open_price, close) - np.abs(rng.normal(0, 0.4, n))
    volume = rng.integers(100, 1000, n).astype(float)

    return pd.DataFrame({
        'time': times,
        'open': open_price,
        'high': high,
        'low': low,
        'close': close,
        'volume': volume
    })


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine)

    yield factory

    engine.dispose()
