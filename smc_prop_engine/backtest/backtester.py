"""
Backtesting engine: single-position candle-by-candle replay with spot sizing.
"""

import asyncio
import logging
import math
import time
from bisect import bisect_right
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Union

import pandas as pd

from ..config import StrategyConfig
from ..core.candles import Candle, candles_from_frame, timeframe_to_ms, times_of
from ..core.risk import RiskTracker, calc_position_size
from ..core.signals import Signal, validate_signal
from ..core.smc_primitives import is_valid_session
from ..core.strategy import Scanner, build_scanners

logger = logging.getLogger(__name__)

# Scanners never look further back than this many execution candles.
SCAN_TAIL = 300
# Higher-timeframe candles handed to scanners, matching the live fetch depth.
HTF_TAIL = 200

ProgressCallback = Callable[[int], None]


class SimState(Enum):
    SCANNING = "scanning"
    IN_POSITION = "in_position"
    DONE = "done"


@dataclass(frozen=True)
class Trade:
    """Represents a completed trade."""
    entry_time: int
    exit_time: int
    strategy: str
    direction: str
    entry: float
    sl: float
    tp: float
    exit_price: float
    qty: float
    outcome: str
    r: float
    pnl: float
    pnl_pct: float
    gain_pct: float
    equity_after: float
    bars_held: int
    exit_reason: str

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)


@dataclass
class OpenPosition:
    signal: Signal
    entry_idx: int
    qty: float
    equity_before: float
    tracker_id: Optional[int] = None


@dataclass
class BacktestResult:
    trades: List[Trade]
    equity_curve: List[float]
    initial_equity: float
    final_equity: float
    status: str = "completed"
    bars_processed: int = 0
    signals_seen: int = 0

    def trades_frame(self) -> pd.DataFrame:
        df = pd.DataFrame([t.to_dict() for t in self.trades])
        if not df.empty:
            df["entry_time"] = pd.to_datetime(df["entry_time"], unit="ms", utc=True)
            df["exit_time"] = pd.to_datetime(df["exit_time"], unit="ms", utc=True)
        return df

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "initial_equity": self.initial_equity,
            "final_equity": self.final_equity,
            "bars_processed": self.bars_processed,
            "signals_seen": self.signals_seen,
            "equity_curve": list(self.equity_curve),
            "trades": [t.to_dict() for t in self.trades],
        }


class _Simulation:
    """
    State machine for one backtest run.

    SCANNING -> IN_POSITION on an admitted signal, back to SCANNING on exit,
    DONE after the last candle. `steps` yields the progress percentage at each
    checkpoint so the caller can report progress, cancel or yield.
    """

    def __init__(
        self,
        config: StrategyConfig,
        scanners: Sequence[Scanner],
        candles: Sequence[Candle],
        htf_candles: Optional[Sequence[Candle]],
        use_risk_gates: bool,
    ):
        self.config = config
        self.scanners = scanners
        self.candles = candles
        self.htf_candles = list(htf_candles or [])
        self.htf_times = times_of(self.htf_candles)
        self.tf_ms = timeframe_to_ms(config.timeframe)
        self.htf_ms = timeframe_to_ms(config.htf_timeframe)

        self.state = SimState.SCANNING
        self.equity = config.initial_equity
        self.ruin_floor = config.initial_equity * config.ruin_floor_pct / 100
        self.equity_curve: List[float] = [self.equity]
        self.trades: List[Trade] = []
        self.position: Optional[OpenPosition] = None
        self.bars_processed = 0
        self.signals_seen = 0

        self.tracker = RiskTracker.from_config(config) if use_risk_gates else None
        self.current_day: Optional[str] = None
        self.trades_today = 0

    # ------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------
    def steps(self, checkpoint_every: int) -> Iterator[int]:
        start = self.config.warmup
        n = len(self.candles)
        total = max(n - start, 1)

        for i in range(start, n):
            bar = self.candles[i]
            self._roll_day(bar)

            if self.state is SimState.IN_POSITION:
                self._check_exit(i, bar)
            elif self.equity > self.ruin_floor:
                self._try_enter(i, bar)

            self.bars_processed += 1
            if self.bars_processed % checkpoint_every == 0:
                yield min(100, int(self.bars_processed / total * 100))

    def finish(self) -> BacktestResult:
        if self.position is not None and self.candles:
            last = self.candles[-1]
            self._close(len(self.candles) - 1, last, last.close, "end_of_data")
        self.state = SimState.DONE
        logger.info(
            f"Backtest finished: {len(self.trades)} trades, "
            f"final equity {self.equity:.2f} ({self.bars_processed} bars)"
        )
        return self._result("completed")

    def cancelled(self) -> BacktestResult:
        """Closed trades only; an open position is dropped."""
        self.position = None
        self.state = SimState.DONE
        logger.info(f"Backtest cancelled after {self.bars_processed} bars, {len(self.trades)} trades closed")
        return self._result("cancelled")

    def _result(self, status: str) -> BacktestResult:
        return BacktestResult(
            trades=list(self.trades),
            equity_curve=list(self.equity_curve),
            initial_equity=self.config.initial_equity,
            final_equity=self.equity,
            status=status,
            bars_processed=self.bars_processed,
            signals_seen=self.signals_seen,
        )

    # ------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------
    def _try_enter(self, i: int, bar: Candle):
        signal = self._scan(i)
        if signal is None:
            return
        self.signals_seen += 1

        if not validate_signal(signal, bar):
            return
        if not is_valid_session(bar.time, self.config.session_filter):
            logger.debug(f"{signal.strategy} skipped outside trading session")
            return
        if self.tracker is not None:
            decision = self.tracker.can_trade()
            if not decision:
                logger.debug(f"{signal.strategy} blocked by risk gate: {decision.reason}")
                return
            if self.trades_today >= self.config.max_trades_per_day:
                logger.debug(f"{signal.strategy} blocked: daily trade limit reached")
                return

        qty = calc_position_size(self.equity, self.config.risk_pct, signal.entry, signal.sl)
        if qty * signal.entry > self.equity:
            qty = math.floor(self.equity / signal.entry * 10_000) / 10_000
        if qty <= 0:
            return

        tracker_id = None
        if self.tracker is not None:
            tracker_id = self.tracker.open_position(qty, signal.entry, signal.sl, signal.tp, signal.direction)
        self.position = OpenPosition(signal, i, qty, self.equity, tracker_id)
        self.trades_today += 1
        self.state = SimState.IN_POSITION
        logger.debug(f"Opened {signal.strategy} {signal.direction} qty={qty} @ {signal.entry}")

    def _scan(self, i: int) -> Optional[Signal]:
        window = self.candles[max(0, i + 1 - SCAN_TAIL):i + 1]
        htf = self._htf_until(self.candles[i])
        for scanner in self.scanners:
            signal = scanner.scan(window, htf)
            if signal is None:
                continue
            if self.config.only_longs and signal.direction != "long":
                continue
            return signal
        return None

    def _htf_until(self, bar: Candle) -> Optional[List[Candle]]:
        """Higher-timeframe candles fully closed by the end of `bar`."""
        if not self.htf_candles:
            return None
        cutoff = bar.time + self.tf_ms - self.htf_ms
        end = bisect_right(self.htf_times, cutoff)
        return self.htf_candles[max(0, end - HTF_TAIL):end] or None

    # ------------------------------------------------------------
    # Exits
    # ------------------------------------------------------------
    def _check_exit(self, i: int, bar: Candle):
        pos = self.position
        sig = pos.signal
        bars_held = i - pos.entry_idx

        if sig.direction == "long":
            stop_hit, target_hit = bar.low <= sig.sl, bar.high >= sig.tp
        else:
            stop_hit, target_hit = bar.high >= sig.sl, bar.low <= sig.tp

        if stop_hit:
            self._close(i, bar, sig.sl, "stop_loss")
        elif target_hit:
            self._close(i, bar, sig.tp, "take_profit")
        elif bars_held > self.config.max_hold_bars:
            self._close(i, bar, bar.close, "max_hold")

    def _close(self, i: int, bar: Candle, exit_price: float, reason: str):
        pos = self.position
        sig = pos.signal
        move = exit_price - sig.entry if sig.direction == "long" else sig.entry - exit_price
        pnl = move * pos.qty
        risk_amount = abs(sig.entry - sig.sl) * pos.qty

        if reason == "stop_loss":
            outcome = "loss"
        elif reason == "take_profit":
            outcome = "win"
        else:
            outcome = "win" if pnl > 0 else "loss"

        self.equity = round(self.equity + pnl, 2)
        self.equity_curve.append(self.equity)
        if self.tracker is not None and pos.tracker_id is not None:
            self.tracker.close_position(pos.tracker_id, exit_price)

        trade = Trade(
            entry_time=self.candles[pos.entry_idx].time,
            exit_time=bar.time,
            strategy=sig.strategy,
            direction=sig.direction,
            entry=sig.entry,
            sl=sig.sl,
            tp=sig.tp,
            exit_price=exit_price,
            qty=pos.qty,
            outcome=outcome,
            r=round(pnl / risk_amount, 2) if risk_amount else 0.0,
            pnl=round(pnl, 2),
            pnl_pct=round(pnl / pos.equity_before * 100, 4) if pos.equity_before else 0.0,
            gain_pct=round(move / sig.entry * 100, 4) if sig.entry else 0.0,
            equity_after=self.equity,
            bars_held=i - pos.entry_idx,
            exit_reason=reason,
        )
        self.trades.append(trade)
        self.position = None
        self.state = SimState.SCANNING
        logger.info(
            f"{trade.strategy} {trade.direction} closed ({reason}): "
            f"pnl={trade.pnl:.2f} r={trade.r:.2f} equity={self.equity:.2f}"
        )

    def _roll_day(self, bar: Candle):
        day = datetime.fromtimestamp(bar.time / 1000, tz=timezone.utc).strftime("%Y-%m-%d")
        if day != self.current_day:
            self.current_day = day
            self.trades_today = 0
            if self.tracker is not None:
                self.tracker.reset_day()


class Backtester:
    """
    Backtesting engine for the SMC scanners.

    Features:
    - One open position at a time, filled at the signal entry
    - Risk-based sizing capped at available equity (spot, no leverage)
    - Exit priority per bar: stop loss, take profit, max hold
    - Higher-timeframe candles sliced by time (no look-ahead)
    - Progress / cancellation checkpoints, sync and async
    """

    def __init__(
        self,
        config: Optional[StrategyConfig] = None,
        scanners: Optional[Sequence[Scanner]] = None,
        use_risk_gates: bool = False,
        checkpoint_every: int = 50,
    ):
        self.config = config or StrategyConfig()
        self.scanners = list(scanners) if scanners is not None else build_scanners(self.config)
        self.use_risk_gates = use_risk_gates
        self.checkpoint_every = max(1, int(checkpoint_every))

    def _simulation(self, candles, htf_candles) -> _Simulation:
        candles = self._as_candles(candles)
        htf = self._as_candles(htf_candles) if htf_candles is not None else None
        logger.info(
            f"Starting backtest on {len(candles)} bars with "
            f"{', '.join(s.strategy_id for s in self.scanners) or 'no scanners'}"
        )
        return _Simulation(self.config, self.scanners, candles, htf, self.use_risk_gates)

    # ------------------------------------------------------------
    # Run
    # ------------------------------------------------------------
    def run(
        self,
        candles: Union[pd.DataFrame, Sequence[Candle]],
        htf_candles: Union[pd.DataFrame, Sequence[Candle], None] = None,
        progress: Optional[ProgressCallback] = None,
        cancel=None,
    ) -> BacktestResult:
        """
        Replay `candles` and return the trade ledger.

        Args:
            candles: execution timeframe candles (list or OHLC DataFrame)
            htf_candles: optional higher-timeframe candles for targets
            progress: called with a percentage at each checkpoint
            cancel: object with `is_set()`, checked at each in-loop checkpoint;
                a position still open once every bar is replayed is closed
                as end_of_data
        """
        sim = self._simulation(candles, htf_candles)
        for pct in sim.steps(self.checkpoint_every):
            if progress:
                progress(pct)
            if cancel is not None and cancel.is_set():
                return sim.cancelled()
            time.sleep(0)
        if progress:
            progress(100)
        return sim.finish()

    async def run_async(
        self,
        candles: Union[pd.DataFrame, Sequence[Candle]],
        htf_candles: Union[pd.DataFrame, Sequence[Candle], None] = None,
        progress: Optional[ProgressCallback] = None,
        cancel=None,
    ) -> BacktestResult:
        """Same as `run`, yielding to the event loop at each checkpoint."""
        sim = self._simulation(candles, htf_candles)
        for pct in sim.steps(self.checkpoint_every):
            if progress:
                progress(pct)
            if cancel is not None and cancel.is_set():
                return sim.cancelled()
            await asyncio.sleep(0)
        if progress:
            progress(100)
        return sim.finish()

    @staticmethod
    def _as_candles(data) -> List[Candle]:
        if isinstance(data, pd.DataFrame):
            return candles_from_frame(data)
        return list(data)
