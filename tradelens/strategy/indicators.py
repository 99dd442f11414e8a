"""Technical indicators — SMA, EMA, RSI, Bollinger, MACD, Stochastic. Pure functions, no I/O.

Every function operates on an ordered numeric sequence (oldest first) and
returns a single float.  Degenerate input never raises: each indicator
falls back to a neutral value so one bad bar cannot abort a long backtest.
"""

import math
from typing import Sequence


def calculate_sma(series: Sequence[float], period: int) -> float:
    """Simple Moving Average of the last *period* values.

    When the series is shorter than *period* the last value is returned
    (0.0 for an empty series).
    """
    if not series:
        return 0.0
    if len(series) < period:
        return series[-1]
    window = series[-period:]
    return sum(window) / period


def calculate_ema(series: Sequence[float], period: int) -> float:
    """Exponential Moving Average over the whole series.

    Seeded with ``series[0]``, then
        ``ema = price × k + ema × (1 - k)``  with  ``k = 2 / (period + 1)``.
    """
    if not series:
        return 0.0
    if len(series) == 1:
        return series[0]

    k = 2.0 / (period + 1)
    ema = series[0]
    for price in series[1:]:
        ema = price * k + ema * (1 - k)
    return ema


# ── RSI ──────────────────────────────────────────────────────────────────


def calculate_rsi(series: Sequence[float], period: int = 14) -> float:
    """Relative Strength Index from simple average gain/loss.

    Algorithm:
        1. delta = close[i] - close[i-1]
        2. avg gain / avg loss over the last *period* deltas.
        3. RSI = 100 - 100 / (1 + avg_gain / avg_loss)

    Returns 50.0 with fewer than ``period + 1`` values and 100.0 when the
    average loss is zero (this includes a perfectly flat series).
    """
    if len(series) < period + 1:
        return 50.0

    deltas = [series[i] - series[i - 1] for i in range(1, len(series))]
    recent = deltas[-period:]
    avg_gain = sum(d for d in recent if d > 0) / period
    avg_loss = sum(-d for d in recent if d < 0) / period

    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


# ── Bollinger / MACD / Stochastic ────────────────────────────────────────


def calculate_bollinger_position(series: Sequence[float], period: int = 20) -> float:
    """Position of the last price relative to the Bollinger middle band.

    ``(price - SMA) / (2σ)`` over the last *period* values, so ±1 sits on
    the 2σ bands.  0.0 with insufficient history or zero deviation.
    """
    if len(series) < period:
        return 0.0
    sma = calculate_sma(series, period)
    sigma = calculate_std_dev(series[-period:])
    if sigma == 0:
        return 0.0
    return (series[-1] - sma) / (2 * sigma)


def calculate_macd_normalized(series: Sequence[float]) -> float:
    """MACD line divided by the slow EMA: ``(EMA12 - EMA26) / EMA26``.

    Requires at least 26 values, else 0.0.
    """
    if len(series) < 26:
        return 0.0
    ema12 = calculate_ema(series, 12)
    ema26 = calculate_ema(series, 26)
    if ema26 == 0:
        return 0.0
    return (ema12 - ema26) / ema26


def calculate_stochastic(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = 14,
) -> float:
    """Stochastic %K in [0, 100].

    ``(close - lowest_low) / (highest_high - lowest_low) × 100`` over the
    last *period* bars.  50.0 with insufficient history or a zero range.
    """
    if len(highs) < period or len(lows) < period or not closes:
        return 50.0
    highest = max(highs[-period:])
    lowest = min(lows[-period:])
    if highest == lowest:
        return 50.0
    return (closes[-1] - lowest) / (highest - lowest) * 100.0


# ── Statistics ───────────────────────────────────────────────────────────


def calculate_std_dev(values: Sequence[float]) -> float:
    """Population standard deviation; 0.0 for an empty sequence."""
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return math.sqrt(variance)


def calculate_linear_regression_slope(values: Sequence[float]) -> float:
    """Least-squares slope of *values* against x = 0, 1, …, n-1."""
    n = len(values)
    if n < 2:
        return 0.0

    sum_x = n * (n - 1) / 2
    sum_y = sum(values)
    sum_xy = sum(i * v for i, v in enumerate(values))
    sum_xx = sum(i * i for i in range(n))

    denominator = n * sum_xx - sum_x * sum_x
    if denominator == 0:
        return 0.0
    return (n * sum_xy - sum_x * sum_y) / denominator


def calculate_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """Pearson correlation coefficient.

    0.0 for empty or mismatched sequences, or when either side is constant.
    """
    if len(x) != len(y) or not x:
        return 0.0

    n = len(x)
    mean_x = sum(x) / n
    mean_y = sum(y) / n

    numerator = 0.0
    sum_sq_x = 0.0
    sum_sq_y = 0.0
    for xi, yi in zip(x, y):
        dx = xi - mean_x
        dy = yi - mean_y
        numerator += dx * dy
        sum_sq_x += dx * dx
        sum_sq_y += dy * dy

    denominator = math.sqrt(sum_sq_x * sum_sq_y)
    if denominator == 0:
        return 0.0
    return numerator / denominator
