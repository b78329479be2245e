"""Data management and market data access."""

from .binance import BinanceClient, CandleFetchError, DataSourceError
from .candle_store import CandleStore
from .marketdata import MarketDataProvider

__all__ = ["BinanceClient", "CandleFetchError", "DataSourceError", "CandleStore", "MarketDataProvider"]
