"""
Monte Carlo robustness analysis of a trade ledger.

Each iteration replays the realised trade P&L in a shuffled order against the
initial equity. Iterations are generated in fixed-size chunks, each with its
own child seed sequence, so results depend only on the seed and the iteration
count, never on how many workers ran the chunks.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

import numpy as np

from .backtester import Trade

logger = logging.getLogger(__name__)

CHUNK_SIZE = 250
PERCENTILES = (0.10, 0.25, 0.50, 0.75, 0.90)


@dataclass
class MonteCarloResult:
    """Monte Carlo simulation results."""
    iterations: int
    n_trades: int
    seed: Optional[int]

    # Equity bands per trade index, keyed p10 / p25 / p50 / p75 / p90
    bands: Dict[str, List[float]]

    # Final equity distribution
    mean_final: float
    median_final: float
    p10_final: float
    p90_final: float

    # Risk
    risk_of_ruin: float          # % of iterations ending below the ruin floor
    worst_drawdown: float        # %
    median_drawdown: float       # %

    def to_dict(self) -> dict:
        return vars(self).copy()


def _percentile_index(n: int, q: float) -> int:
    return min(int(math.floor(n * q)), n - 1)


def _simulate_chunk(pnls: np.ndarray, initial_equity: float, size: int, seed_seq: np.random.SeedSequence) -> np.ndarray:
    """Equity curves (size x (n_trades + 1)) for one chunk of shuffles."""
    rng = np.random.default_rng(seed_seq)
    curves = np.empty((size, pnls.size + 1), dtype=float)
    order = pnls.copy()
    for row in range(size):
        rng.shuffle(order)  # Fisher-Yates
        curves[row, 0] = initial_equity
        curves[row, 1:] = initial_equity + np.cumsum(order)
    return np.maximum(curves, 0.0)


def _max_drawdowns(curves: np.ndarray) -> np.ndarray:
    peaks = np.maximum.accumulate(curves, axis=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        dd = np.where(peaks > 0, (peaks - curves) / peaks, 0.0)
    return dd.max(axis=1)


def run_monte_carlo(
    trades: Sequence[Union[Trade, float]],
    initial_equity: float,
    iterations: int = 1000,
    seed: Optional[int] = None,
    n_jobs: int = 1,
    ruin_pct: float = 50.0,
) -> Optional[MonteCarloResult]:
    """
    Shuffle the trade order `iterations` times and summarise the equity paths.

    Args:
        trades: closed trades, or their P&L values
        initial_equity: starting balance of every path
        iterations: number of shuffles (>= 1)
        seed: seed for reproducible runs
        n_jobs: worker threads for chunk generation
        ruin_pct: a path ending below this % of initial equity counts as ruin

    Returns:
        MonteCarloResult, or None for an empty ledger

    Raises:
        ValueError: if iterations < 1
    """
    if iterations < 1:
        raise ValueError(f"iterations must be >= 1, got {iterations}")

    pnls = np.array([t.pnl if isinstance(t, Trade) else float(t) for t in trades], dtype=float)
    if pnls.size == 0:
        return None

    n_chunks = math.ceil(iterations / CHUNK_SIZE)
    sizes = [min(CHUNK_SIZE, iterations - k * CHUNK_SIZE) for k in range(n_chunks)]
    seeds = np.random.SeedSequence(seed).spawn(n_chunks)

    if n_jobs > 1 and n_chunks > 1:
        with ThreadPoolExecutor(max_workers=n_jobs) as pool:
            chunks = list(pool.map(lambda args: _simulate_chunk(pnls, initial_equity, *args), zip(sizes, seeds)))
    else:
        chunks = [_simulate_chunk(pnls, initial_equity, size, s) for size, s in zip(sizes, seeds)]

    curves = np.vstack(chunks)
    finals = np.sort(curves[:, -1])
    sorted_cols = np.sort(curves, axis=0)
    drawdowns = np.sort(_max_drawdowns(curves))

    bands = {
        f"p{int(q * 100)}": [round(float(v), 2) for v in sorted_cols[_percentile_index(iterations, q)]]
        for q in PERCENTILES
    }
    ruined = int(np.sum(finals < initial_equity * ruin_pct / 100))

    result = MonteCarloResult(
        iterations=iterations,
        n_trades=int(pnls.size),
        seed=seed,
        bands=bands,
        mean_final=round(float(finals.mean()), 2),
        median_final=round(float(finals[_percentile_index(iterations, 0.5)]), 2),
        p10_final=round(float(finals[_percentile_index(iterations, 0.1)]), 2),
        p90_final=round(float(finals[_percentile_index(iterations, 0.9)]), 2),
        risk_of_ruin=round(ruined / iterations * 100, 1),
        worst_drawdown=round(float(drawdowns[-1]) * 100, 1),
        median_drawdown=round(float(drawdowns[_percentile_index(iterations, 0.5)]) * 100, 1),
    )
    logger.info(
        f"Monte Carlo: {iterations} iterations over {pnls.size} trades, "
        f"median final {result.median_final:.2f}, ruin {result.risk_of_ruin:.1f}%"
    )
    return result
