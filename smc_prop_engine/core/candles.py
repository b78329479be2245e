"""
Candle value type and conversions between candle sequences and OHLC DataFrames.
"""

from dataclasses import dataclass, asdict
from typing import Iterable, List, Sequence

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class Candle:
    """A single OHLCV bar. `time` is the bar open time in epoch milliseconds."""
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open

    def to_dict(self) -> dict:
        return asdict(self)


def candles_from_frame(ohlc: pd.DataFrame) -> List[Candle]:
    """
    Convert an OHLC DataFrame into a list of candles.

    The time is taken from a `time` column when present, otherwise from a
    DatetimeIndex (converted to epoch milliseconds). Missing volume becomes 0.
    """
    if ohlc is None or len(ohlc) == 0:
        return []

    if "time" in ohlc.columns:
        times = pd.to_datetime(ohlc["time"], utc=True)
    elif isinstance(ohlc.index, pd.DatetimeIndex):
        times = ohlc.index.tz_localize("UTC") if ohlc.index.tz is None else ohlc.index
    else:
        raise ValueError("OHLC frame needs a 'time' column or a DatetimeIndex")

    epoch = pd.Timestamp(0, tz="UTC")
    millis = ((pd.DatetimeIndex(times) - epoch) // pd.Timedelta(1, "ms")).to_numpy(dtype=np.int64)
    volume = ohlc["volume"].fillna(0.0).to_numpy(dtype=float) if "volume" in ohlc.columns else np.zeros(len(ohlc))

    return [
        Candle(int(t), float(o), float(h), float(l), float(c), float(v))
        for t, o, h, l, c, v in zip(
            millis,
            ohlc["open"].to_numpy(dtype=float),
            ohlc["high"].to_numpy(dtype=float),
            ohlc["low"].to_numpy(dtype=float),
            ohlc["close"].to_numpy(dtype=float),
            volume,
        )
    ]


def frame_from_candles(candles: Iterable[Candle]) -> pd.DataFrame:
    """Build an OHLC DataFrame indexed by UTC timestamp from candles."""
    rows = [c.to_dict() for c in candles]
    if not rows:
        return pd.DataFrame(columns=["open", "high", "low", "close", "volume"])
    df = pd.DataFrame(rows)
    df.index = pd.to_datetime(df.pop("time"), unit="ms", utc=True)
    df.index.name = "time"
    return df


def times_of(candles: Sequence[Candle]) -> List[int]:
    return [c.time for c in candles]


_UNIT_MS = {"m": 60_000, "h": 3_600_000, "d": 86_400_000, "w": 604_800_000}


def timeframe_to_ms(timeframe: str) -> int:
    """'15m' -> 900000, '1h' / '1H' -> 3600000, '4h', '1d', '1w'."""
    tf = timeframe.strip()
    unit = tf[-1:] if tf.endswith("M") else tf[-1:].lower()
    if unit not in _UNIT_MS or not tf[:-1].isdigit():
        raise ValueError(f"Unsupported timeframe: {timeframe}")
    return int(tf[:-1]) * _UNIT_MS[unit]
