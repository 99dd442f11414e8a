"""Tests for the risk management module.

Covers position sizing, fill pricing, exit rules, drawdown tracking,
and circuit breaker activation.
"""

import pytest

from tradelens.backtest.models import ExitReason, Trade, TradeSide
from tradelens.risk.drawdown import DrawdownTracker
from tradelens.risk.exit_rules import (
    MAX_HOLD_MS,
    evaluate_exit,
    price_change,
    track_excursion,
)
from tradelens.risk.position_sizer import (
    calculate_position_value,
    calculate_quantity,
    entry_fill_price,
    exit_fill_price,
)


def _trade(direction=TradeSide.LONG, entry_price=100.0, peak=0.0):
    return Trade(
        id="t1",
        entry_time=0,
        entry_price=entry_price,
        direction=direction,
        quantity=2.0,
        notional=200.0,
        commission=0.2,
        slippage=0.1,
        prediction=None,
        peak_excursion=peak,
    )


# ── Position sizing ──────────────────────────────────────────────────────


class TestPositionSizing:
    """Unit tests for calculate_position_value() and fills."""

    def test_position_value(self):
        """$10,000 capital at 2 % → $200 notional."""
        assert calculate_position_value(10_000.0, 0.02) == pytest.approx(200.0)

    def test_below_minimum_returns_zero(self):
        assert calculate_position_value(1_000.0, 0.02) == 0.0

    def test_negative_capital_returns_zero(self):
        assert calculate_position_value(-50.0, 1.0) == 0.0

    def test_rejects_zero_position_size(self):
        with pytest.raises(ValueError, match="position_size"):
            calculate_position_value(10_000.0, 0.0)

    def test_quantity(self):
        assert calculate_quantity(200.0, 50.0) == pytest.approx(4.0)

    def test_quantity_rejects_zero_price(self):
        with pytest.raises(ValueError, match="entry_price"):
            calculate_quantity(200.0, 0.0)

    def test_slippage_always_adverse(self):
        assert entry_fill_price(100.0, TradeSide.LONG, 0.001) == pytest.approx(100.1)
        assert entry_fill_price(100.0, TradeSide.SHORT, 0.001) == pytest.approx(99.9)
        assert exit_fill_price(100.0, TradeSide.LONG, 0.001) == pytest.approx(99.9)
        assert exit_fill_price(100.0, TradeSide.SHORT, 0.001) == pytest.approx(100.1)


# ── Exit rules ───────────────────────────────────────────────────────────


class TestExitRules:

    def test_price_change_sign(self):
        assert price_change(_trade(TradeSide.LONG), 101.0) == pytest.approx(0.01)
        assert price_change(_trade(TradeSide.SHORT), 101.0) == pytest.approx(-0.01)

    def test_hold(self):
        assert evaluate_exit(_trade(), 100.5, 60_000) is None

    def test_stop_loss_long(self):
        assert evaluate_exit(_trade(), 97.9, 60_000) == ExitReason.STOP_LOSS

    def test_stop_loss_short(self):
        trade = _trade(TradeSide.SHORT)
        assert evaluate_exit(trade, 102.5, 60_000) == ExitReason.STOP_LOSS

    def test_profit_target(self):
        trade = track_excursion(_trade(), 104.5)
        assert evaluate_exit(trade, 104.5, 60_000) == ExitReason.PROFIT_TARGET

    def test_time_limit(self):
        assert evaluate_exit(_trade(), 100.0, MAX_HOLD_MS + 1) == ExitReason.TIME_LIMIT

    def test_exactly_24h_is_not_expired(self):
        assert evaluate_exit(_trade(), 100.0, MAX_HOLD_MS) is None

    def test_price_rule_overrides_time_limit(self):
        assert evaluate_exit(_trade(), 97.0, MAX_HOLD_MS + 1) == ExitReason.STOP_LOSS

    def test_trailing_stop_after_retrace(self):
        trade = track_excursion(_trade(), 103.0)
        assert trade.peak_excursion == pytest.approx(0.03)
        assert evaluate_exit(trade, 101.0, 60_000) == ExitReason.TRAILING_STOP

    def test_trailing_stop_inactive_below_activation(self):
        trade = track_excursion(_trade(), 100.8)
        assert evaluate_exit(trade, 100.1, 60_000) is None

    def test_trailing_holds_above_half_of_peak(self):
        trade = track_excursion(_trade(), 103.0)
        assert evaluate_exit(trade, 102.0, 60_000) is None

    def test_excursion_only_rises(self):
        trade = track_excursion(_trade(), 103.0)
        assert track_excursion(trade, 101.0) is trade


# ── Drawdown tracking ───────────────────────────────────────────────────


class TestDrawdownTracking:
    """Unit tests for DrawdownTracker."""

    def test_initial_state(self):
        tracker = DrawdownTracker(10_000.0)
        assert tracker.peak_equity == 10_000.0
        assert tracker.drawdown == 0.0
        assert not tracker.limit_breached

    def test_peak_rises(self):
        tracker = DrawdownTracker(10_000.0)
        tracker.update(11_000.0)
        assert tracker.peak_equity == 11_000.0
        assert tracker.update(9_900.0) == pytest.approx(0.1)

    def test_drawdown_clamped(self):
        tracker = DrawdownTracker(10_000.0)
        assert tracker.update(-500.0) == 1.0

    def test_drawdown_for_does_not_record(self):
        tracker = DrawdownTracker(10_000.0)
        assert tracker.drawdown_for(9_000.0) == pytest.approx(0.1)
        assert tracker.drawdown_for(12_000.0) == 0.0
        assert tracker.current_equity == 10_000.0
        assert tracker.peak_equity == 10_000.0

    def test_rejects_non_positive_equity(self):
        with pytest.raises(ValueError, match="initial_equity"):
            DrawdownTracker(0.0)


# ── Circuit breaker ──────────────────────────────────────────────────────


class TestCircuitBreaker:

    def test_at_limit_is_not_breached(self):
        tracker = DrawdownTracker(10_000.0, max_drawdown=0.2)
        tracker.update(8_000.0)
        assert not tracker.limit_breached

    def test_beyond_limit_is_breached(self):
        tracker = DrawdownTracker(10_000.0, max_drawdown=0.2)
        tracker.update(7_999.0)
        assert tracker.limit_breached

    def test_near_limit(self):
        tracker = DrawdownTracker(10_000.0, max_drawdown=0.2)
        tracker.update(8_500.0)
        assert not tracker.near_limit(0.8)
        tracker.update(8_300.0)
        assert tracker.near_limit(0.8)
