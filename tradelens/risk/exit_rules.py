"""Exit rules — time limit, fixed stop-loss / profit-target, and trailing stop.

Rules, evaluated on each candle close while a trade is open:
  - Held longer than 24 h → close (time limit).
  - Adverse move of 2 % or more → close (stop-loss).
  - Favourable move of 4 % or more → close (profit target).
  - Once the best favourable move has exceeded 1 %, close if the current
    move falls below half of that best move (trailing stop).

Later rules take precedence when several fire on the same candle.
"""

from dataclasses import replace
from typing import Optional

from tradelens.backtest.models import ExitReason, Trade, TradeSide

MAX_HOLD_MS = 24 * 60 * 60 * 1000
STOP_LOSS = -0.02
PROFIT_TARGET = 0.04
TRAILING_ACTIVATION = 0.01
TRAILING_RETRACE = 0.5


def price_change(trade: Trade, price: float) -> float:
    """Signed fractional move from entry, positive when in the trade's favour."""
    if trade.direction == TradeSide.LONG:
        return (price - trade.entry_price) / trade.entry_price
    return (trade.entry_price - price) / trade.entry_price


def track_excursion(trade: Trade, price: float) -> Trade:
    """Return *trade* with its peak favourable excursion raised to *price*'s move."""
    change = price_change(trade, price)
    if change > trade.peak_excursion:
        return replace(trade, peak_excursion=change)
    return trade


def evaluate_exit(trade: Trade, price: float, timestamp: int) -> Optional[ExitReason]:
    """Return the reason *trade* should close at *price* / *timestamp*, or ``None``.

    *trade* should already carry the peak excursion including *price*
    (see :func:`track_excursion`).
    """
    reason: Optional[ExitReason] = None

    if timestamp - trade.entry_time > MAX_HOLD_MS:
        reason = ExitReason.TIME_LIMIT

    change = price_change(trade, price)
    if change <= STOP_LOSS:
        reason = ExitReason.STOP_LOSS
    elif change >= PROFIT_TARGET:
        reason = ExitReason.PROFIT_TARGET

    if (
        trade.peak_excursion > TRAILING_ACTIVATION
        and change < trade.peak_excursion * TRAILING_RETRACE
    ):
        reason = ExitReason.TRAILING_STOP

    return reason
