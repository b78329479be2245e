"""
In-memory candle store keyed by (symbol, timeframe).
"""

from threading import Lock
from typing import Dict, Iterable, List, Tuple

from ..core.candles import Candle

MAX_CANDLES = 500


class CandleStore:
    """
    Thread-safe rolling candle buffers.

    `update` replaces the last candle when the open time matches (an
    in-progress bar) and appends otherwise, trimming to `max_candles`.
    """

    def __init__(self, max_candles: int = MAX_CANDLES):
        self.max_candles = max_candles
        self._data: Dict[Tuple[str, str], List[Candle]] = {}
        self._lock = Lock()

    @staticmethod
    def key(symbol: str, timeframe: str) -> Tuple[str, str]:
        return symbol.upper(), timeframe

    def set(self, symbol: str, timeframe: str, candles: Iterable[Candle]):
        with self._lock:
            self._data[self.key(symbol, timeframe)] = list(candles)[-self.max_candles:]

    def get(self, symbol: str, timeframe: str) -> List[Candle]:
        """Copy of the stored candles (empty when unknown)."""
        with self._lock:
            return list(self._data.get(self.key(symbol, timeframe), []))

    def update(self, symbol: str, timeframe: str, candle: Candle):
        with self._lock:
            series = self._data.setdefault(self.key(symbol, timeframe), [])
            if series and series[-1].time == candle.time:
                series[-1] = candle
            else:
                series.append(candle)
                if len(series) > self.max_candles:
                    del series[0]

    def has_data(self, symbol: str, timeframe: str) -> bool:
        with self._lock:
            return bool(self._data.get(self.key(symbol, timeframe)))
