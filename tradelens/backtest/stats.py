"""Backtest statistics — pure functions over the trade ledger and equity curve."""

import math
from typing import Sequence

import numpy as np
import pandas as pd

from tradelens.backtest.models import (
    BacktestConfig,
    BacktestReport,
    EquityPoint,
    RiskMetrics,
    Trade,
    TradeStatus,
)

TRADING_DAYS = 252
_MS_PER_MINUTE = 60 * 1000


def calculate_report(
    trades: Sequence[Trade],
    equity_curve: Sequence[EquityPoint],
    config: BacktestConfig,
    final_capital: float,
    processing_time: float = 0.0,
) -> BacktestReport:
    """Compute the full performance report for one run.

    Only closed trades are counted.  A trade with ``pnl <= 0`` counts as a
    loss.  Every ratio falls back to 0.0 when its denominator is zero.
    """
    closed = [t for t in trades if t.status == TradeStatus.CLOSED]
    pnls = [t.pnl for t in closed]
    winners = [p for p in pnls if p > 0]
    losers = [p for p in pnls if p <= 0]

    total_pnl = sum(pnls)
    total_pnl_pct = total_pnl / config.initial_capital
    win_rate = len(winners) / len(closed) if closed else 0.0

    max_dd = max((p.drawdown for p in equity_curve), default=0.0)

    returns = equity_returns(equity_curve)
    daily_rf = config.risk_free_rate / TRADING_DAYS
    avg_return = _mean(returns)
    volatility = _std(returns)

    average_win = _mean(winners)
    average_loss = _mean(losers)
    profit_factor = -average_win / average_loss if average_loss < 0 else 0.0

    durations = [t.duration_ms / _MS_PER_MINUTE for t in closed]
    calmar = total_pnl_pct / max_dd if max_dd > 0 else 0.0

    return BacktestReport(
        total_trades=len(closed),
        winning_trades=len(winners),
        losing_trades=len(losers),
        win_rate=win_rate,
        total_pnl=total_pnl,
        total_pnl_percentage=total_pnl_pct,
        final_capital=final_capital,
        max_drawdown=max_dd * config.initial_capital,
        max_drawdown_percentage=max_dd,
        sharpe_ratio=_sharpe(returns, daily_rf),
        sortino_ratio=_sortino(returns, daily_rf),
        calmar_ratio=calmar,
        profit_factor=profit_factor,
        average_win=average_win,
        average_loss=average_loss,
        largest_win=max(winners, default=0.0),
        largest_loss=min(losers, default=0.0),
        average_trade_duration=_mean(durations),
        max_trade_duration=max(durations, default=0.0),
        total_commissions=sum(t.commission for t in closed),
        total_slippage=sum(t.slippage for t in closed),
        recovery_factor=calmar,
        expected_return=avg_return * TRADING_DAYS,
        volatility=volatility * math.sqrt(TRADING_DAYS),
        risk_metrics=calculate_risk_metrics(returns, closed, daily_rf),
        returns=returns,
        monthly_returns=monthly_returns(equity_curve, config.initial_capital),
        start_time=equity_curve[0].timestamp if equity_curve else None,
        end_time=equity_curve[-1].timestamp if equity_curve else None,
        processing_time=processing_time,
    )


def calculate_risk_metrics(
    returns: Sequence[float],
    closed_trades: Sequence[Trade],
    target_return: float = 0.0,
) -> RiskMetrics:
    """Empirical VaR / CVaR, semi-deviations and win/loss streaks."""
    pnls = [t.pnl for t in closed_trades]
    var95 = _value_at_risk(returns, 0.05)
    tail = [r for r in returns if r <= var95]

    excess = np.asarray(returns, dtype=np.float64) - target_return
    downside = excess[excess < 0]
    upside = excess[excess > 0]

    return RiskMetrics(
        var95=var95,
        var99=_value_at_risk(returns, 0.01),
        cvar95=_mean(tail) if returns else 0.0,
        downside_deviation=float(np.sqrt(np.mean(downside ** 2))) if downside.size else 0.0,
        upside_deviation=float(np.sqrt(np.mean(upside ** 2))) if upside.size else 0.0,
        max_consecutive_wins=_max_streak(pnls, winning=True),
        max_consecutive_losses=_max_streak(pnls, winning=False),
    )


def equity_returns(equity_curve: Sequence[EquityPoint]) -> list[float]:
    """Step-to-step fractional change of the equity curve."""
    returns: list[float] = []
    for prev, curr in zip(equity_curve, equity_curve[1:]):
        if prev.equity > 0:
            returns.append((curr.equity - prev.equity) / prev.equity)
    return returns


def monthly_returns(
    equity_curve: Sequence[EquityPoint], initial_capital: float,
) -> list[dict]:
    """Return per UTC calendar month, measured from the previous month's close.

    The first month is measured against *initial_capital*.
    """
    if not equity_curve:
        return []

    index = pd.to_datetime([p.timestamp for p in equity_curve], unit="ms", utc=True)
    equity = pd.Series([p.equity for p in equity_curve], index=index)
    month_close = equity.groupby(index.strftime("%Y-%m")).last()
    previous = month_close.shift(1).fillna(initial_capital)
    changes = (month_close - previous) / previous

    return [
        {"month": month, "return": float(value)}
        for month, value in changes.items()
    ]


# ── Helpers ──────────────────────────────────────────────────────────────


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _std(values: Sequence[float]) -> float:
    """Population standard deviation; 0.0 for an empty series."""
    if not values:
        return 0.0
    mean = _mean(values)
    return math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))


def _sharpe(returns: Sequence[float], risk_free: float) -> float:
    """Per-step Sharpe ratio: ``(mean - risk_free) / σ``.

    Returns 0.0 when the series is empty or has zero variance.
    """
    std = _std(returns)
    if std == 0:
        return 0.0
    return (_mean(returns) - risk_free) / std


def _sortino(returns: Sequence[float], target: float) -> float:
    """Sortino ratio using the downside deviation of excess returns.

    Returns 0.0 when no return falls below *target*.
    """
    excess = [r - target for r in returns]
    downside = [e for e in excess if e < 0]
    if not downside:
        return 0.0
    down_dev = math.sqrt(sum(e * e for e in downside) / len(downside))
    if down_dev == 0:
        return 0.0
    return _mean(excess) / down_dev


def _value_at_risk(returns: Sequence[float], tail: float) -> float:
    """Empirical VaR: the sorted return at ``floor(n × tail)``."""
    if not returns:
        return 0.0
    ordered = sorted(returns)
    return ordered[math.floor(len(ordered) * tail)]


def _max_streak(pnls: Sequence[float], winning: bool) -> int:
    """Longest run of wins (``pnl > 0``) or losses (``pnl <= 0``) in closure order."""
    longest = 0
    current = 0
    for p in pnls:
        if (p > 0) == winning:
            current += 1
            longest = max(longest, current)
        else:
            current = 0
    return longest
