"""Unit tests for the market data provider."""
from datetime import datetime

import pandas as pd
import pytest

from smc_prop_engine.core.candles import Candle
from smc_prop_engine.data.marketdata import MarketDataProvider


@pytest.fixture
def csv_file(tmp_path):
    path = tmp_path / 'btc_15m.csv'
    path.write_text(
        "time,open,high,low,close\n"
        "2024-01-01 00:30:00,3,4,2,3.5\n"
        "2024-01-01 00:00:00,1,2,0.5,1.5\n"
        "2024-01-01 00:15:00,2,3,1,2.5\n"
        "2024-01-01 00:15:00,2,3,1,2.7\n"
    )
    return path


def test_load_csv(csv_file):
    """Test CSV is sorted, de-duplicated and gets a volume column."""
    df = MarketDataProvider('csv').get_data('BTCUSDT', '15m', csv_path=str(csv_file))

    assert list(df.columns) == ['open', 'high', 'low', 'close', 'volume']
    assert len(df) == 3
    assert df.index.is_monotonic_increasing
    assert str(df.index.tz) == 'UTC'
    assert df['close'].iloc[1] == 2.7
    assert (df['volume'] == 0).all()


def test_load_csv_date_filter(csv_file):
    """Test start / end filtering."""
    df = MarketDataProvider('csv').get_data(
        'BTCUSDT', '15m',
        start=datetime(2024, 1, 1, 0, 15),
        end=datetime(2024, 1, 1, 0, 15),
        csv_path=str(csv_file),
    )

    assert len(df) == 1
    assert df['close'].iloc[0] == 2.7


def test_load_csv_epoch_millis(tmp_path):
    """Test numeric time columns are read as epoch milliseconds."""
    path = tmp_path / 'ms.csv'
    path.write_text("time,open,high,low,close,volume\n1704067200000,1,2,0.5,1.5,10\n")

    df = MarketDataProvider('csv').get_data('BTCUSDT', '15m', csv_path=str(path))

    assert df.index[0] == pd.Timestamp('2024-01-01', tz='UTC')
    assert df['volume'].iloc[0] == 10


def test_load_csv_errors(tmp_path):
    """Test missing path, file and columns."""
    provider = MarketDataProvider('csv')

    with pytest.raises(ValueError):
        provider.get_data('BTCUSDT', '15m')
    with pytest.raises(FileNotFoundError):
        provider.get_data('BTCUSDT', '15m', csv_path=str(tmp_path / 'missing.csv'))

    bad = tmp_path / 'bad.csv'
    bad.write_text("time,open,close\n2024-01-01,1,2\n")
    with pytest.raises(ValueError, match='Missing required columns'):
        provider.get_data('BTCUSDT', '15m', csv_path=str(bad))


def test_unknown_source():
    """Test unsupported sources are rejected."""
    with pytest.raises(ValueError):
        MarketDataProvider('parquet').get_data('BTCUSDT', '15m')


class FakeClient:
    def __init__(self):
        self.calls = []

    def fetch_history(self, symbol, interval, start_time, end_time):
        self.calls.append((symbol, interval, start_time, end_time))
        return [Candle(start_time, 1.0, 2.0, 0.5, 1.5, 3.0)]


def test_load_from_binance():
    """Test the binance source pages history through the client."""
    client = FakeClient()
    provider = MarketDataProvider('binance', client=client)

    df = provider.get_data('BTCUSDT', '1h', end=datetime(2024, 1, 2))

    symbol, interval, start_ms, end_ms = client.calls[0]
    assert (symbol, interval) == ('BTCUSDT', '1h')
    assert end_ms == 1_704_153_600_000
    assert end_ms - start_ms == 1000 * 3_600_000
    assert len(df) == 1
    assert df['volume'].iloc[0] == 3.0
