"""
High-level orchestrator for backtest, scan and live workflows.

This module coordinates:
- Backtesting (data -> scanners -> simulator -> metrics -> Monte Carlo)
- One-shot scanning of a candle series
- Live polling of Binance for several symbols with alerting
"""

import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Set

import numpy as np

from .alerts import AlertManager, SignalLog, log_sink
from .backtest.backtester import Backtester, BacktestResult
from .backtest.metrics import MetricsResult, metrics_for
from .backtest.monte_carlo import MonteCarloResult, run_monte_carlo
from .config import StrategyConfig, settings
from .core.candles import Candle, candles_from_frame
from .core.liquidity import LiquidityPool, PoolKey, Sweep, get_recent_sweeps, map_liquidity_pools
from .core.signals import Signal
from .core.smc_primitives import StructureShift, aligned_bias, bias_all_timeframes, detect_mss, get_session
from .core.strategy import Scanner, build_scanners, run_scanners
from .data.binance import BinanceClient, DataSourceError
from .data.candle_store import CandleStore
from .data.marketdata import MarketDataProvider

logger = logging.getLogger(__name__)


@dataclass
class BacktestReport:
    result: BacktestResult
    metrics: Optional[MetricsResult]
    monte_carlo: Optional[MonteCarloResult]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result": self.result.to_dict(),
            "metrics": self.metrics.to_dict() if self.metrics else None,
            "monte_carlo": self.monte_carlo.to_dict() if self.monte_carlo else None,
        }


@dataclass
class MarketSnapshot:
    """Per-symbol view produced by one live scan."""
    symbol: str
    time: int
    price: float
    biases: Dict[str, str]
    aligned_bias: str
    session: str
    pools: List[LiquidityPool] = field(default_factory=list)
    sweeps: List[Sweep] = field(default_factory=list)
    structure: Optional[StructureShift] = None
    signals: List[Signal] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "time": self.time,
            "price": self.price,
            "biases": self.biases,
            "aligned_bias": self.aligned_bias,
            "session": self.session,
            "pools": [p.to_dict() for p in self.pools],
            "sweeps": [s.to_dict() for s in self.sweeps],
            "structure": self.structure.to_dict() if self.structure else None,
            "signals": [s.to_dict() for s in self.signals],
        }


def to_safe_json(data) -> Any:
    """JSON-compatible copy of nested results (numpy scalars and datetimes converted)."""
    def convert(obj):
        if isinstance(obj, dict):
            return {k: convert(v) for k, v in obj.items()}
        if isinstance(obj, (list, tuple)):
            return [convert(v) for v in obj]
        if isinstance(obj, (np.floating, np.integer)):
            return obj.item()
        if isinstance(obj, datetime):
            return obj.isoformat()
        return obj
    return json.loads(json.dumps(convert(data)))


class Orchestrator:
    """
    High-level orchestrator for trading workflows.

    Responsibilities:
    - Run backtests with metrics and Monte Carlo
    - Scan candle series with the enabled scanners
    - Poll Binance for live setups and dispatch alerts
    """

    def __init__(
        self,
        config: Optional[StrategyConfig] = None,
        client: Optional[BinanceClient] = None,
        alert_manager: Optional[AlertManager] = None,
        signal_log: Optional[SignalLog] = None,
        candle_store: Optional[CandleStore] = None,
    ):
        self.config = config or StrategyConfig()
        self._client = client
        self.alert_manager = alert_manager
        if self.alert_manager is None:
            self.alert_manager = AlertManager()
            self.alert_manager.register(log_sink)
        self.signal_log = signal_log or SignalLog()
        self.candle_store = candle_store or CandleStore()

        self._scanners: Dict[str, List[Scanner]] = {}
        self._swept: Dict[str, Set[PoolKey]] = {}
        self._lock = threading.Lock()

    @property
    def client(self) -> BinanceClient:
        if self._client is None:
            self._client = BinanceClient()
        return self._client

    # ---------------------------
    # Backtest
    # ---------------------------
    def run_backtest(
        self,
        symbol: Optional[str] = None,
        timeframe: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        source: str = "csv",
        csv_path: Optional[str] = None,
        htf_csv_path: Optional[str] = None,
        use_risk_gates: bool = False,
        mc_seed: Optional[int] = None,
        progress=None,
        cancel=None,
    ) -> BacktestReport:
        """
        Run a backtest on CSV or Binance data.

        Returns:
            BacktestReport with the trade ledger, metrics (None without trades)
            and the Monte Carlo summary (None without trades or when cancelled)
        """
        symbol = symbol or self.config.symbol
        timeframe = timeframe or self.config.timeframe
        config = self.config.with_overrides(symbol=symbol, timeframe=timeframe)
        logger.info(f"Running backtest: {config.strategy} on {symbol} {timeframe} ({source})")

        provider = MarketDataProvider(source=source, client=self._client if source == "binance" else None)
        candles = candles_from_frame(provider.get_data(symbol, timeframe, start, end, csv_path))
        logger.info(f"Loaded {len(candles)} bars")

        htf = None
        if source == "binance":
            htf = candles_from_frame(provider.get_data(symbol, config.htf_timeframe, start, end))
        elif htf_csv_path:
            htf = candles_from_frame(provider.get_data(symbol, config.htf_timeframe, start, end, htf_csv_path))

        backtester = Backtester(config, use_risk_gates=use_risk_gates)
        result = backtester.run(candles, htf, progress=progress, cancel=cancel)
        return self.summarize(result, config, mc_seed)

    def summarize(
        self,
        result: BacktestResult,
        config: Optional[StrategyConfig] = None,
        mc_seed: Optional[int] = None,
    ) -> BacktestReport:
        config = config or self.config
        metrics = metrics_for(result)
        monte_carlo = None
        if result.status == "completed" and result.trades:
            monte_carlo = run_monte_carlo(
                result.trades,
                result.initial_equity,
                iterations=config.mc_iterations,
                seed=mc_seed,
                ruin_pct=config.ruin_floor_pct,
            )
        if metrics:
            logger.info(
                f"Backtest: {metrics.total_trades} trades, win rate {metrics.win_rate_pct:.1f}%, "
                f"PF {metrics.profit_factor:.2f}, return {metrics.total_return_pct:.2f}%"
            )
        else:
            logger.info("Backtest produced no trades")
        return BacktestReport(result, metrics, monte_carlo)

    # ---------------------------
    # Scanning
    # ---------------------------
    def scanners_for(self, symbol: str) -> List[Scanner]:
        with self._lock:
            if symbol not in self._scanners:
                self._scanners[symbol] = build_scanners(self.config.with_overrides(symbol=symbol))
            return self._scanners[symbol]

    def scan(
        self,
        candles: Sequence[Candle],
        htf_candles: Optional[Sequence[Candle]] = None,
        symbol: Optional[str] = None,
    ) -> List[Signal]:
        """Signals for the latest candle from every enabled scanner."""
        scanners = self.scanners_for(symbol or self.config.symbol)
        return run_scanners(scanners, candles, htf_candles, only_longs=self.config.only_longs)

    def build_snapshot(self, symbol: str, frames: Dict[str, List[Candle]]) -> MarketSnapshot:
        """Bias, session, liquidity, structure and signals for one symbol."""
        c15, c1h, c4h = frames["15m"], frames.get("1H", []), frames.get("4H", [])
        last = c15[-1]

        biases = bias_all_timeframes(c15, c1h, c4h)
        pools = map_liquidity_pools(c15, self.config.liquidity_tolerance)
        with self._lock:
            swept = self._swept.setdefault(symbol, set())
            # pools that left the candle window cannot be swept again
            swept.intersection_update(p.key for p in pools)
        sweeps = get_recent_sweeps(c15, pools, swept)
        structure = detect_mss(c15, "long") or detect_mss(c15, "short")

        return MarketSnapshot(
            symbol=symbol,
            time=last.time,
            price=last.close,
            biases=biases,
            aligned_bias=aligned_bias(biases),
            session=get_session(last.time).name,
            pools=pools,
            sweeps=sweeps,
            structure=structure,
            signals=self.scan(c15, c1h or None, symbol),
        )

    def scan_symbol(self, symbol: str) -> MarketSnapshot:
        """Fetch fresh candles for `symbol`, update the store and alert on new signals."""
        frames = self.client.fetch_multi_timeframe(symbol)
        for tf, candles in frames.items():
            self.candle_store.set(symbol, tf, candles)
        frames = {tf: self.candle_store.get(symbol, tf) for tf in frames}
        if not frames.get("15m"):
            raise DataSourceError(f"No 15m candles for {symbol}")

        snapshot = self.build_snapshot(symbol, frames)
        for signal in snapshot.signals:
            if self.signal_log.add(signal):
                self.alert_manager.fire(signal)
        return snapshot

    # ---------------------------
    # Live
    # ---------------------------
    def run_live(
        self,
        symbols: Optional[Sequence[str]] = None,
        poll_interval: Optional[float] = None,
        max_cycles: Optional[int] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> Dict[str, MarketSnapshot]:
        """
        Poll every symbol each cycle until stopped.

        A failing symbol is logged and skipped for that cycle; the loop keeps
        running. Returns the last snapshot per symbol.
        """
        symbols = [s.upper() for s in (symbols or settings.symbol_list())]
        poll_interval = settings.live_poll_interval if poll_interval is None else poll_interval
        stop_event = stop_event or threading.Event()
        latest: Dict[str, MarketSnapshot] = {}

        logger.info(f"Live scanning {', '.join(symbols)} every {poll_interval}s")
        cycle = 0
        with ThreadPoolExecutor(max_workers=max(1, min(settings.live_workers, len(symbols)))) as pool:
            while not stop_event.is_set():
                futures = {symbol: pool.submit(self.scan_symbol, symbol) for symbol in symbols}
                for symbol, future in futures.items():
                    try:
                        snapshot = future.result()
                    except DataSourceError as e:
                        logger.error(f"{symbol}: market data unavailable: {e}")
                        continue
                    latest[symbol] = snapshot
                    logger.info(
                        f"{symbol} {snapshot.price:.2f} | bias {snapshot.aligned_bias} | "
                        f"{snapshot.session} | {len(snapshot.sweeps)} sweeps | {len(snapshot.signals)} signals"
                    )

                cycle += 1
                if max_cycles is not None and cycle >= max_cycles:
                    break
                stop_event.wait(poll_interval)

        logger.info("Live scanning stopped")
        return latest
