"""
Market data provider - unified interface for CSV files and Binance REST.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal, Optional

import pandas as pd

from ..core.candles import frame_from_candles, timeframe_to_ms
from .binance import BinanceClient

logger = logging.getLogger(__name__)

# Candles requested when no start date is given
DEFAULT_HISTORY_BARS = 1000


def _to_ms(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def _utc(dt: datetime) -> pd.Timestamp:
    ts = pd.Timestamp(dt)
    return ts.tz_localize('UTC') if ts.tzinfo is None else ts.tz_convert('UTC')


class MarketDataProvider:
    """
    Unified market data provider.

    Supports:
    - CSV files
    - Binance spot REST
    """

    def __init__(self, source: Literal['csv', 'binance'] = 'csv', client: Optional[BinanceClient] = None):
        """
        Initialize market data provider.

        Args:
            source: Data source type
            client: Binance client to use for the binance source
        """
        self.source = source
        self.client = client

        if source == 'binance' and self.client is None:
            self.client = BinanceClient()

    def get_data(
        self,
        symbol: str,
        timeframe: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        csv_path: Optional[str] = None
    ) -> pd.DataFrame:
        """
        Get OHLC data from configured source.

        Args:
            symbol: Trading symbol
            timeframe: Timeframe
            start: Start datetime
            end: End datetime
            csv_path: Path to CSV file (for csv source)

        Returns:
            DataFrame with OHLC data and UTC datetime index
        """
        if self.source == 'csv':
            df = self._load_from_csv(csv_path)
            if start is not None:
                df = df[df.index >= _utc(start)]
            if end is not None:
                df = df[df.index <= _utc(end)]
            return df

        elif self.source == 'binance':
            return self._load_from_binance(symbol, timeframe, start, end)

        else:
            raise ValueError(f"Unknown source: {self.source}")

    def _load_from_binance(
        self,
        symbol: str,
        timeframe: str,
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> pd.DataFrame:
        end_ms = _to_ms(end) if end else int(datetime.now(timezone.utc).timestamp() * 1000)
        if start is not None:
            start_ms = _to_ms(start)
        else:
            start_ms = end_ms - DEFAULT_HISTORY_BARS * timeframe_to_ms(timeframe)

        candles = self.client.fetch_history(symbol, timeframe, start_ms, end_ms)
        df = frame_from_candles(candles)
        logger.info(f"Loaded {len(df)} {timeframe} bars for {symbol} from Binance")
        return df

    def _load_from_csv(self, csv_path: str) -> pd.DataFrame:
        """
        Load OHLC data from CSV file.

        Expected CSV format:
        - Columns: time, open, high, low, close[, volume]
        - time column parseable as datetime, or epoch milliseconds

        Args:
            csv_path: Path to CSV file

        Returns:
            DataFrame with OHLC data
        """
        if not csv_path:
            raise ValueError("csv_path required for CSV source")

        path = Path(csv_path)
        if not path.exists():
            raise FileNotFoundError(f"CSV file not found: {csv_path}")

        df = pd.read_csv(csv_path)

        # Ensure required columns
        required = ['time', 'open', 'high', 'low', 'close']
        missing = [col for col in required if col not in df.columns]
        if missing:
            raise ValueError(f"Missing required columns: {missing}")

        # Parse time column
        if pd.api.types.is_numeric_dtype(df['time']):
            df['time'] = pd.to_datetime(df['time'], unit='ms', utc=True)
        else:
            df['time'] = pd.to_datetime(df['time'], utc=True)
        df.set_index('time', inplace=True)
        df.sort_index(inplace=True, kind='stable')
        df = df[~df.index.duplicated(keep='last')]

        if 'volume' not in df.columns:
            df['volume'] = 0.0

        logger.info(f"Loaded {len(df)} bars from {csv_path}")

        return df[['open', 'high', 'low', 'close', 'volume']]
