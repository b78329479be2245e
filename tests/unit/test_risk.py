"""Unit tests for sizing helpers and the risk tracker."""
import pytest

from smc_prop_engine.config import StrategyConfig
from smc_prop_engine.core.risk import (
    RiskTracker,
    calc_partial_tp,
    calc_position_size,
    calc_rr,
    calc_tp,
)


def test_position_size():
    """Test risk-based units."""
    assert calc_position_size(10000, 1, 100, 90) == 10.0
    assert calc_position_size(10000, 1, 100, 97) == pytest.approx(33.3333)
    assert calc_position_size(10000, 1, 100, 100) == 0.0


def test_rr_and_targets():
    """Test reward/risk and target levels."""
    assert calc_rr(100, 90, 130) == 3.0
    assert calc_rr(100, 100, 130) == 0.0
    assert calc_tp(100, 90, 2, 'long') == 120.0
    assert calc_tp(100, 110, 2, 'short') == 80.0
    assert calc_partial_tp(100, 90, 1.5, 'long') == 115.0


def test_tracker_from_config():
    """Test limits come from the strategy config."""
    config = StrategyConfig(initial_equity=5000, max_concurrent_trades=2)
    tracker = RiskTracker.from_config(config)

    assert tracker.equity == 5000
    assert tracker.max_concurrent_trades == 2
    assert tracker.can_trade()


def test_daily_risk_cap():
    """Test realised losses block new trades until the day resets."""
    tracker = RiskTracker(10000, max_daily_risk=1.0)
    pid = tracker.open_position(10, 100, 90, 130, 'long')

    assert tracker.close_position(pid, 90) == -1.0
    assert tracker.equity == 9900

    decision = tracker.can_trade()
    assert not decision
    assert decision.reason == 'Daily risk cap hit'

    tracker.reset_day()
    assert tracker.can_trade()
    assert tracker.daily_start == 9900


def test_concurrent_limit():
    """Test open positions count against the limit."""
    tracker = RiskTracker(10000, max_concurrent_trades=1)
    pid = tracker.open_position(1, 100, 90, 130, 'long')

    assert tracker.can_trade().reason == 'Max concurrent trades'

    tracker.close_position(pid, 130)
    assert tracker.open_positions == 0
    assert tracker.can_trade()


def test_drawdown_stop():
    """Test drawdown from peak equity stops trading."""
    tracker = RiskTracker(10000, max_daily_risk=100.0, max_drawdown_stop=5.0)
    pid = tracker.open_position(100, 100, 90, 130, 'long')

    assert tracker.close_position(pid, 94) == pytest.approx(-0.6)
    assert tracker.drawdown_pct == 6.0
    assert tracker.can_trade().reason == 'Max drawdown stop'


def test_short_position_and_peak():
    """Test short P&L and peak tracking."""
    tracker = RiskTracker(10000)
    pid = tracker.open_position(10, 100, 110, 70, 'short')

    assert tracker.close_position(pid, 70) == 3.0
    assert tracker.equity == 10300
    assert tracker.peak_equity == 10300
    assert tracker.positions == {}


def test_close_unknown_position():
    """Test closing an unknown id is a no-op."""
    tracker = RiskTracker(10000)

    assert tracker.close_position(42, 100) == 0.0
    assert tracker.equity == 10000


def test_closed_positions_are_dropped():
    """Test the tracker only keeps open positions and a second close is a no-op."""
    tracker = RiskTracker(10000, max_concurrent_trades=100)
    for _ in range(50):
        pid = tracker.open_position(1, 100, 90, 130, 'long')
        tracker.close_position(pid, 130)
    keep = tracker.open_position(1, 100, 90, 130, 'long')

    assert list(tracker.positions) == [keep]
    assert tracker.close_position(pid, 130) == 0.0
    assert tracker.equity == 10000 + 50 * 30
