"""
Signal log and alert dispatch.

- SignalLog: newest-first list of recent signals, de-duplicated per strategy
  and symbol within a time window, safe to append from scanner threads
- AlertManager: per symbol/strategy cooldown, bounded alert history and
  registered sink callables (logging by default)
"""

import itertools
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, List, Optional

from .core.signals import Signal

logger = logging.getLogger(__name__)

DEDUPE_WINDOW_MS = 5 * 60 * 1000
COOLDOWN_SECONDS = 5 * 60


class SignalLog:
    """Recent signals, newest first, bounded to `max_size`."""

    def __init__(self, max_size: int = 20, dedupe_window_ms: int = DEDUPE_WINDOW_MS):
        self.max_size = max_size
        self.dedupe_window_ms = dedupe_window_ms
        self._signals: List[Signal] = []
        self._lock = Lock()

    def add(self, signal: Signal) -> bool:
        """Record `signal`; returns False when it duplicates a recent one."""
        with self._lock:
            for existing in self._signals:
                if (
                    existing.strategy == signal.strategy
                    and existing.symbol == signal.symbol
                    and abs(existing.time - signal.time) < self.dedupe_window_ms
                ):
                    return False
            self._signals.insert(0, signal)
            del self._signals[self.max_size:]
            return True

    def recent(self) -> List[Signal]:
        with self._lock:
            return list(self._signals)

    def clear(self):
        with self._lock:
            self._signals.clear()

    def __len__(self):
        with self._lock:
            return len(self._signals)


@dataclass(frozen=True)
class Alert:
    id: int
    strategy: str
    direction: str
    symbol: str
    entry: float
    sl: float
    tp: float
    rr: float
    win_rate: float
    timeframe: str
    created_at: datetime

    @property
    def message(self) -> str:
        return (
            f"{self.strategy} {self.direction.upper()} {self.symbol} | "
            f"E:{self.entry:.2f} SL:{self.sl:.2f} TP:{self.tp:.2f} | {self.rr}R"
        )

    def to_dict(self) -> dict:
        d = vars(self).copy()
        d["created_at"] = self.created_at.isoformat()
        d["message"] = self.message
        return d


AlertSink = Callable[[Alert], None]


def log_sink(alert: Alert):
    logger.info(f"ALERT {alert.message}")


class AlertManager:
    """Fires alerts to registered sinks, at most once per symbol/strategy per cooldown."""

    def __init__(
        self,
        cooldown_seconds: float = COOLDOWN_SECONDS,
        max_log: int = 50,
        clock: Callable[[], float] = time.time,
    ):
        self.cooldown_seconds = cooldown_seconds
        self.max_log = max_log
        self._clock = clock
        self._sinks: List[AlertSink] = []
        self._cooldowns = {}
        self._log: List[Alert] = []
        self._ids = itertools.count(1)
        self._lock = Lock()

    def register(self, sink: AlertSink):
        self._sinks.append(sink)

    def can_alert(self, symbol: str, strategy: str) -> bool:
        last = self._cooldowns.get((symbol, strategy))
        return last is None or self._clock() - last > self.cooldown_seconds

    def fire(self, signal: Signal, default_symbol: str = "BTCUSDT") -> Optional[Alert]:
        """Dispatch `signal` unless its symbol/strategy is cooling down."""
        symbol = signal.symbol or default_symbol
        with self._lock:
            if not self.can_alert(symbol, signal.strategy):
                logger.debug(f"Alert for {signal.strategy} {symbol} suppressed by cooldown")
                return None
            now = self._clock()
            self._cooldowns[(symbol, signal.strategy)] = now
            alert = Alert(
                id=next(self._ids),
                strategy=signal.strategy,
                direction=signal.direction,
                symbol=symbol,
                entry=signal.entry,
                sl=signal.sl,
                tp=signal.tp,
                rr=signal.rr,
                win_rate=signal.win_rate,
                timeframe=signal.timeframe,
                created_at=datetime.fromtimestamp(now, tz=timezone.utc),
            )
            self._log.insert(0, alert)
            del self._log[self.max_log:]

        for sink in self._sinks:
            try:
                sink(alert)
            except Exception:
                logger.exception(f"Alert sink {sink!r} failed for {alert.message}")
        return alert

    def get_log(self) -> List[Alert]:
        with self._lock:
            return list(self._log)

    def clear_log(self):
        with self._lock:
            self._log.clear()
