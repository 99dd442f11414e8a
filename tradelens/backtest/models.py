"""Backtest data models — configuration, trades, equity curve, and reports."""

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Optional

from tradelens.ml.models import PredictionResult


class TradeSide(str, Enum):
    LONG = "long"
    SHORT = "short"


class TradeStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class ExitReason(str, Enum):
    TIME_LIMIT = "time_limit"
    STOP_LOSS = "stop_loss"
    PROFIT_TARGET = "profit_target"
    TRAILING_STOP = "trailing_stop"
    DRAWDOWN_HALT = "drawdown_halt"
    END_OF_DATA = "end_of_data"


@dataclass(frozen=True)
class BacktestConfig:
    """Per-run simulation parameters.  Fractions, not percentages."""

    initial_capital: float = 10_000.0
    position_size: float = 0.02  # fraction of capital per trade
    commission: float = 0.001  # fraction of notional, each side
    slippage: float = 0.0005  # fraction of price, each side
    max_drawdown: float = 0.2  # circuit breaker
    max_concurrent_trades: int = 5
    risk_free_rate: float = 0.02  # annualised

    def __post_init__(self) -> None:
        if self.initial_capital <= 0:
            raise ValueError(f"initial_capital must be positive, got {self.initial_capital}")
        if not 0 < self.position_size <= 1:
            raise ValueError(f"position_size must be in (0, 1], got {self.position_size}")
        for name in ("commission", "slippage"):
            value = getattr(self, name)
            if not 0 <= value < 1:
                raise ValueError(f"{name} must be in [0, 1), got {value}")
        if not 0 < self.max_drawdown <= 1:
            raise ValueError(f"max_drawdown must be in (0, 1], got {self.max_drawdown}")
        if self.max_concurrent_trades < 1:
            raise ValueError(
                f"max_concurrent_trades must be at least 1, got {self.max_concurrent_trades}"
            )


def merge_config(base: BacktestConfig, overrides: Optional[dict] = None) -> BacktestConfig:
    """Return *base* with *overrides* applied.  Unknown keys are rejected."""
    if not overrides:
        return base
    known = {f.name for f in fields(BacktestConfig)}
    unknown = set(overrides) - known
    if unknown:
        raise ValueError(f"Unknown backtest config key(s): {', '.join(sorted(unknown))}")
    return replace(base, **overrides)


@dataclass(frozen=True)
class Trade:
    """One simulated position.

    Lifecycle is ``open → closed``; closing returns a new ``Trade`` rather
    than mutating the open one.
    """

    id: str
    entry_time: int
    entry_price: float
    direction: TradeSide
    quantity: float
    notional: float
    commission: float
    slippage: float
    prediction: PredictionResult
    status: TradeStatus = TradeStatus.OPEN
    peak_excursion: float = 0.0
    exit_time: Optional[int] = None
    exit_price: Optional[float] = None
    gross_pnl: Optional[float] = None
    pnl: Optional[float] = None
    pnl_percentage: Optional[float] = None
    exit_reason: Optional[ExitReason] = None

    @property
    def duration_ms(self) -> Optional[int]:
        if self.exit_time is None:
            return None
        return self.exit_time - self.entry_time


@dataclass(frozen=True)
class EquityPoint:
    """Mark-to-market equity after one processed candle."""

    timestamp: int
    equity: float
    drawdown: float


@dataclass(frozen=True)
class RiskMetrics:
    """Tail-risk and streak statistics."""

    var95: float = 0.0
    var99: float = 0.0
    cvar95: float = 0.0
    downside_deviation: float = 0.0
    upside_deviation: float = 0.0
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0


@dataclass(frozen=True)
class BacktestReport:
    """Aggregate performance of one backtest run."""

    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    total_pnl: float
    total_pnl_percentage: float
    final_capital: float
    max_drawdown: float  # currency
    max_drawdown_percentage: float  # fraction of peak
    sharpe_ratio: float
    sortino_ratio: float
    calmar_ratio: float
    profit_factor: float
    average_win: float
    average_loss: float
    largest_win: float
    largest_loss: float
    average_trade_duration: float  # minutes
    max_trade_duration: float  # minutes
    total_commissions: float
    total_slippage: float
    recovery_factor: float
    expected_return: float  # annualised
    volatility: float  # annualised
    risk_metrics: RiskMetrics
    returns: list[float] = field(default_factory=list)
    monthly_returns: list[dict] = field(default_factory=list)
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    processing_time: float = 0.0  # milliseconds


@dataclass(frozen=True)
class BacktestResult:
    """Everything a run produces: ledger, equity curve, and report."""

    trades: list[Trade]
    equity_curve: list[EquityPoint]
    report: BacktestReport
    config: BacktestConfig
    halted: bool = False
    candles_processed: int = 0
