"""Position sizing and fill pricing — pure math, no I/O."""

from tradelens.backtest.models import TradeSide

MIN_POSITION_VALUE = 100.0


def calculate_position_value(capital: float, position_size: float) -> float:
    """Notional to commit to a new trade.

    Formula::

        position_value = capital × position_size

    Returns 0.0 when the result would fall below ``MIN_POSITION_VALUE``,
    meaning no trade should be opened.
    """
    if position_size <= 0:
        raise ValueError(f"position_size must be positive, got {position_size}")
    value = capital * position_size
    if value < MIN_POSITION_VALUE:
        return 0.0
    return value


def calculate_quantity(position_value: float, entry_price: float) -> float:
    """Units bought (or sold short) for *position_value* at *entry_price*."""
    if entry_price <= 0:
        raise ValueError(f"entry_price must be positive, got {entry_price}")
    return position_value / entry_price


def entry_fill_price(price: float, side: TradeSide, slippage: float) -> float:
    """Entry price after slippage: longs pay up, shorts sell lower."""
    if side == TradeSide.LONG:
        return price * (1 + slippage)
    return price * (1 - slippage)


def exit_fill_price(price: float, side: TradeSide, slippage: float) -> float:
    """Exit price after slippage: longs sell lower, shorts cover higher."""
    if side == TradeSide.LONG:
        return price * (1 - slippage)
    return price * (1 + slippage)
