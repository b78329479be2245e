"""Backtesting engine, performance metrics and Monte Carlo analysis."""

from .backtester import Backtester, BacktestResult, Trade
from .metrics import calculate_metrics, format_report, MetricsResult
from .monte_carlo import run_monte_carlo, MonteCarloResult

__all__ = [
    "Backtester",
    "BacktestResult",
    "Trade",
    "calculate_metrics",
    "format_report",
    "MetricsResult",
    "run_monte_carlo",
    "MonteCarloResult",
]
