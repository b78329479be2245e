"""
Performance metrics calculation.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import pandas as pd

from . import stats
from .backtester import BacktestResult, Trade


@dataclass
class StrategyBreakdown:
    strategy: str
    trades: int
    win_rate: float
    avg_r: float
    pnl: float
    pct_gain: float

    def to_dict(self) -> dict:
        return vars(self).copy()


@dataclass
class MetricsResult:
    """Container for backtest performance metrics."""
    total_trades: int
    wins: int
    losses: int
    win_rate: float
    profit_factor: float
    expectancy_r: float
    expectancy: float
    total_return_pct: float
    final_equity: float
    max_drawdown_pct: float
    sharpe_ratio: float
    sortino_ratio: float
    avg_rr: float
    avg_win: float
    avg_loss: float
    avg_pct_gain_per_win: float
    avg_pct_loss_per_loss: float
    long_win_rate: float
    short_win_rate: float
    gross_win: float
    gross_loss: float
    monthly_pnl: Dict[str, float] = field(default_factory=dict)
    strategy_breakdown: List[StrategyBreakdown] = field(default_factory=list)

    @property
    def win_rate_pct(self) -> float:
        return round(self.win_rate * 100, 1)

    @property
    def net_profit(self) -> float:
        return round(self.gross_win - self.gross_loss, 2)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        d = {k: v for k, v in vars(self).items() if k != "strategy_breakdown"}
        d["win_rate_pct"] = self.win_rate_pct
        d["strategy_breakdown"] = [b.to_dict() for b in self.strategy_breakdown]
        return d


def calculate_metrics(
    trades: Sequence[Trade],
    equity_curve: Sequence[float],
    initial_equity: float,
) -> Optional[MetricsResult]:
    """
    Calculate performance metrics from a closed-trade ledger.

    Args:
        trades: closed trades in exit order
        equity_curve: initial equity followed by equity after each trade
        initial_equity: starting balance

    Returns:
        MetricsResult, or None when there are no trades
    """
    if not trades:
        return None

    df = pd.DataFrame([t.to_dict() for t in trades])
    n = len(df)
    wins = df[df["outcome"] == "win"]
    losses = df[df["outcome"] == "loss"]
    win_rate = len(wins) / n

    gross_win = float(wins["pnl"].sum())
    gross_loss = abs(float(losses["pnl"].sum()))
    total_pnl = float(df["pnl"].sum())
    final_equity = initial_equity + total_pnl

    avg_win = gross_win / len(wins) if len(wins) else 0.0
    avg_loss = gross_loss / len(losses) if len(losses) else 0.0
    avg_win_r = float(wins["r"].mean()) if len(wins) else 0.0
    avg_loss_r = abs(float(losses["r"].mean())) if len(losses) else 0.0

    # planned reward/risk of each trade
    risk = (df["entry"] - df["sl"]).abs()
    planned_rr = ((df["tp"] - df["entry"]).abs() / risk.where(risk > 0)).fillna(0.0)

    returns = stats.step_returns(equity_curve)

    return MetricsResult(
        total_trades=n,
        wins=len(wins),
        losses=len(losses),
        win_rate=round(win_rate, 3),
        profit_factor=stats.round_to(stats.profit_factor(gross_win, gross_loss), 2),
        expectancy_r=stats.round_to(stats.expectancy(win_rate, avg_win_r, avg_loss_r), 3),
        expectancy=stats.round_to(stats.expectancy(win_rate, avg_win, avg_loss), 2),
        total_return_pct=stats.round_to((final_equity - initial_equity) / initial_equity * 100, 2),
        final_equity=round(final_equity, 2),
        max_drawdown_pct=stats.round_to(stats.max_drawdown_pct(equity_curve, initial_equity), 2),
        sharpe_ratio=stats.round_to(stats.sharpe_ratio(returns), 2),
        sortino_ratio=stats.round_to(stats.sortino_ratio(returns), 2),
        avg_rr=stats.round_to(float(planned_rr.mean()), 2),
        avg_win=round(avg_win, 2),
        avg_loss=round(avg_loss, 2),
        avg_pct_gain_per_win=stats.round_to(float(wins["gain_pct"].mean()), 2) if len(wins) else 0.0,
        avg_pct_loss_per_loss=stats.round_to(float(losses["gain_pct"].abs().mean()), 2) if len(losses) else 0.0,
        long_win_rate=_side_win_rate(df, "long"),
        short_win_rate=_side_win_rate(df, "short"),
        gross_win=round(gross_win, 2),
        gross_loss=round(gross_loss, 2),
        monthly_pnl=monthly_pnl(df),
        strategy_breakdown=strategy_breakdown(df, initial_equity),
    )


def metrics_for(result: BacktestResult) -> Optional[MetricsResult]:
    return calculate_metrics(result.trades, result.equity_curve, result.initial_equity)


def _side_win_rate(df: pd.DataFrame, direction: str) -> float:
    side = df[df["direction"] == direction]
    if side.empty:
        return 0.0
    return round((side["outcome"] == "win").mean() * 100, 2)


def monthly_pnl(df: pd.DataFrame) -> Dict[str, float]:
    """P&L summed by the UTC month of each trade's entry."""
    months = pd.to_datetime(df["entry_time"], unit="ms", utc=True).dt.strftime("%Y-%m")
    grouped = df.groupby(months)["pnl"].sum()
    return {month: round(float(pnl), 2) for month, pnl in grouped.items()}


def strategy_breakdown(df: pd.DataFrame, initial_equity: float) -> List[StrategyBreakdown]:
    out = []
    for strategy, group in df.groupby("strategy", sort=True):
        pnl = round(float(group["pnl"].sum()), 2)
        out.append(StrategyBreakdown(
            strategy=str(strategy),
            trades=len(group),
            win_rate=round(float((group["outcome"] == "win").mean()), 3),
            avg_r=round(float(group["r"].mean()), 2),
            pnl=pnl,
            pct_gain=round(pnl / initial_equity * 100, 2),
        ))
    return out


def format_report(metrics: Optional[MetricsResult], initial_equity: float) -> str:
    """Generate a text report of backtest metrics."""
    if metrics is None:
        return "No trades executed."

    lines = [
        "=== Backtest Report ===",
        f"Initial Equity: ${initial_equity:,.2f}",
        f"Final Equity: ${metrics.final_equity:,.2f}",
        f"Total Return: {metrics.total_return_pct:.2f}%",
        "",
        "Risk Metrics:",
        f"Max Drawdown: {metrics.max_drawdown_pct:.2f}%",
        f"Sharpe Ratio: {metrics.sharpe_ratio:.2f}",
        f"Sortino Ratio: {metrics.sortino_ratio:.2f}",
        "",
        "Trade Statistics:",
        f"Total Trades: {metrics.total_trades} ({metrics.wins} W / {metrics.losses} L)",
        f"Win Rate: {metrics.win_rate_pct:.1f}%",
        f"Profit Factor: {metrics.profit_factor:.2f}",
        f"Expectancy: {metrics.expectancy_r:.3f}R (${metrics.expectancy:.2f})",
        f"Average R:R: {metrics.avg_rr:.2f}",
        f"Average Win: ${metrics.avg_win:.2f}  Average Loss: ${metrics.avg_loss:.2f}",
        "",
        "By Strategy:",
    ]
    for b in metrics.strategy_breakdown:
        lines.append(
            f"  {b.strategy}: {b.trades} trades, WR {b.win_rate * 100:.1f}%, "
            f"avg {b.avg_r:+.2f}R, P&L ${b.pnl:,.2f} ({b.pct_gain:+.2f}%)"
        )
    if metrics.monthly_pnl:
        lines.append("")
        lines.append("Monthly P&L:")
        for month, pnl in metrics.monthly_pnl.items():
            lines.append(f"  {month}: ${pnl:,.2f}")
    return "\n".join(lines)
