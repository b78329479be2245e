"""Unit tests for statistics helpers."""
import math

import pytest

from smc_prop_engine.backtest import stats


def test_step_returns():
    """Test relative change between equity points."""
    assert list(stats.step_returns([100, 110, 99])) == pytest.approx([0.1, -0.1])
    assert list(stats.step_returns([100])) == []
    assert list(stats.step_returns([0, 50, 100])) == pytest.approx([1.0])


def test_sharpe_ratio():
    """Test annualised Sharpe with population deviation."""
    assert stats.sharpe_ratio([0.01, 0.03]) == pytest.approx(2 * math.sqrt(252))
    assert stats.sharpe_ratio([0.02, 0.02]) == 0.0
    assert stats.sharpe_ratio([]) == 0.0


def test_sortino_ratio():
    """Test downside deviation over negative returns only."""
    returns = [0.02, -0.01, -0.03]
    downside = math.sqrt((0.01 ** 2 + 0.03 ** 2) / 2)
    expected = (sum(returns) / 3) / downside * math.sqrt(252)

    assert stats.sortino_ratio(returns) == pytest.approx(expected)
    assert stats.sortino_ratio([0.01, 0.02]) == 0.0


def test_max_drawdown():
    """Test peak-to-trough decline."""
    assert stats.max_drawdown_pct([10000, 9000, 9500, 8000, 12000]) == pytest.approx(20.0)
    assert stats.max_drawdown_pct([10000, 11000, 12000]) == 0.0
    assert stats.max_drawdown_pct([10000], initial=11000) == pytest.approx(100 / 11)
    assert stats.max_drawdown_pct([]) == 0.0


def test_profit_factor():
    """Test gross win over gross loss with the no-loss cap."""
    assert stats.profit_factor(300, -100) == pytest.approx(3.0)
    assert stats.profit_factor(100, 0) == stats.PROFIT_FACTOR_CAP
    assert stats.profit_factor(0, 0) == 0.0


def test_expectancy():
    """Test expected value per trade."""
    assert stats.expectancy(0.5, 2.0, 1.0) == pytest.approx(0.5)
    assert stats.expectancy(0.5, 2.0, -1.0) == pytest.approx(0.5)


def test_mean_std_round():
    """Test small numeric helpers."""
    assert stats.mean([]) == 0.0
    assert stats.mean([1, 2, 3]) == pytest.approx(2.0)
    assert stats.std([1, 2, 3, 4]) == pytest.approx(1.2909944)
    assert stats.std([5]) == 0.0
    assert stats.round_to(1.23456, 3) == 1.235
    assert math.isinf(stats.round_to(float('inf')))
