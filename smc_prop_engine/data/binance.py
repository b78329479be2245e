"""
Binance spot REST client for market data.

Klines, paginated history, current price and symbol discovery. Failures are
raised as CandleFetchError; nothing is substituted for missing data.
"""

import logging
import time
from threading import Lock
from typing import Callable, Dict, List, Optional

import requests

from ..config import settings
from ..core.candles import Candle

logger = logging.getLogger(__name__)

# Retry settings
_MAX_KLINES = 1000
_RETRY_BASE_DELAY = 1.0  # seconds; doubles each attempt
_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class DataSourceError(Exception):
    """Base error for market data sources."""


class CandleFetchError(DataSourceError):
    """A candle / price request failed or returned unusable data."""


class SymbolCache:
    """Thread-safe symbol list cache with a time-to-live."""

    def __init__(self, ttl: float = 3600.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._lock = Lock()
        self._symbols: Optional[List[str]] = None
        self._expires_at = 0.0

    def get(self) -> Optional[List[str]]:
        """Cached symbols, or None when empty or expired."""
        with self._lock:
            if self._symbols is None or self._clock() >= self._expires_at:
                return None
            return list(self._symbols)

    def set(self, symbols: List[str]):
        with self._lock:
            self._symbols = list(symbols)
            self._expires_at = self._clock() + self.ttl

    def invalidate(self):
        with self._lock:
            self._symbols = None
            self._expires_at = 0.0


def normalize_interval(interval: str) -> str:
    """'1H' -> '1h', '4H' -> '4h'; Binance keeps '1M' (month) upper case."""
    if interval.endswith("M") and interval[:-1].isdigit():
        return interval
    return interval.lower()


def parse_kline(raw: list) -> Candle:
    return Candle(
        time=int(raw[0]),
        open=float(raw[1]),
        high=float(raw[2]),
        low=float(raw[3]),
        close=float(raw[4]),
        volume=float(raw[5]),
    )


class BinanceClient:
    """
    Binance spot market data client.

    Args:
        base_url: REST base, e.g. https://api.binance.com/api/v3
        timeout: per-request timeout in seconds
        max_retries: attempts for transient failures (429 / 5xx / connection errors)
        session: requests.Session to use (created when omitted)
        symbol_cache: cache for `list_symbols`
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        session: Optional[requests.Session] = None,
        symbol_cache: Optional[SymbolCache] = None,
        retry_base_delay: float = _RETRY_BASE_DELAY,
        rate_limit_pause: float = 0.3,
    ):
        self.base_url = (base_url or settings.binance_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.max_retries = max(1, max_retries if max_retries is not None else settings.request_max_retries)
        self.session = session or requests.Session()
        self.symbol_cache = symbol_cache if symbol_cache is not None else SymbolCache(settings.symbol_cache_ttl)
        self.retry_base_delay = retry_base_delay
        self.rate_limit_pause = rate_limit_pause

    # ------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------
    def _get(self, path: str, params: Optional[Dict] = None):
        """GET with exponential-backoff retry; returns decoded JSON."""
        url = f"{self.base_url}/{path.lstrip('/')}"
        last_error: Optional[str] = None

        for attempt in range(self.max_retries):
            try:
                resp = self.session.get(url, params=params, timeout=self.timeout)
            except (requests.ConnectionError, requests.Timeout) as e:
                last_error = f"transport error: {e}"
            else:
                if resp.status_code == 200:
                    try:
                        return resp.json()
                    except ValueError as e:
                        raise CandleFetchError(f"Invalid JSON from {url}: {e}") from e
                if resp.status_code not in _RETRYABLE_STATUS_CODES:
                    raise CandleFetchError(f"Binance API error {resp.status_code} for {url}: {resp.text[:200]}")
                last_error = f"HTTP {resp.status_code}"

            if attempt < self.max_retries - 1:
                delay = self.retry_base_delay * (2 ** attempt)
                logger.warning(f"GET {url} failed ({last_error}), retry {attempt + 1}/{self.max_retries} in {delay:.1f}s")
                time.sleep(delay)

        logger.error(f"GET {url} failed after {self.max_retries} attempts: {last_error}")
        raise CandleFetchError(f"Request to {url} failed after {self.max_retries} attempts: {last_error}")

    # ------------------------------------------------------------
    # Candles
    # ------------------------------------------------------------
    def fetch_klines(
        self,
        symbol: str,
        interval: str,
        limit: int = 300,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
    ) -> List[Candle]:
        """
        Fetch up to 1000 klines, oldest first.

        Args:
            symbol: e.g. "BTCUSDT"
            interval: e.g. "15m", "1h", "4H"
            limit: number of candles (capped at 1000)
            start_time / end_time: epoch milliseconds
        """
        params = {
            "symbol": symbol.upper(),
            "interval": normalize_interval(interval),
            "limit": min(int(limit), _MAX_KLINES),
        }
        if start_time is not None:
            params["startTime"] = int(start_time)
        if end_time is not None:
            params["endTime"] = int(end_time)

        data = self._get("klines", params)
        if not isinstance(data, list):
            raise CandleFetchError(f"Unexpected klines payload for {symbol} {interval}")
        try:
            return [parse_kline(row) for row in data]
        except (IndexError, TypeError, ValueError) as e:
            raise CandleFetchError(f"Malformed kline for {symbol} {interval}: {e}") from e

    def fetch_history(self, symbol: str, interval: str, start_time: int, end_time: int) -> List[Candle]:
        """Page through klines between two epoch-ms timestamps."""
        candles: List[Candle] = []
        current = int(start_time)

        while current < end_time:
            batch = self.fetch_klines(symbol, interval, _MAX_KLINES, current, end_time)
            if not batch:
                break
            candles.extend(batch)
            current = batch[-1].time + 1
            if len(batch) < _MAX_KLINES:
                break
            time.sleep(self.rate_limit_pause)

        logger.info(f"Fetched {len(candles)} {interval} candles for {symbol}")
        return candles

    def fetch_multi_timeframe(self, symbol: str) -> Dict[str, List[Candle]]:
        """15m / 1H / 4H candles for live scanning."""
        return {
            "15m": self.fetch_klines(symbol, "15m", 300),
            "1H": self.fetch_klines(symbol, "1h", 200),
            "4H": self.fetch_klines(symbol, "4h", 100),
        }

    # ------------------------------------------------------------
    # Prices / symbols
    # ------------------------------------------------------------
    def fetch_current_price(self, symbol: str) -> float:
        data = self._get("ticker/price", {"symbol": symbol.upper()})
        try:
            return float(data["price"])
        except (KeyError, TypeError, ValueError) as e:
            raise CandleFetchError(f"Unexpected price payload for {symbol}: {data!r}") from e

    def list_symbols(self, quote: str = "USDT") -> List[str]:
        """Trading spot symbols quoted in `quote`, served from the symbol cache when fresh."""
        cached = self.symbol_cache.get()
        if cached is None:
            data = self._get("exchangeInfo")
            cached = sorted(
                s["symbol"] for s in data.get("symbols", [])
                if s.get("status") == "TRADING"
            )
            self.symbol_cache.set(cached)
        return [s for s in cached if s.endswith(quote.upper())]
