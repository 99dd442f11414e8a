"""Backtest engine — replays a prediction series through a market simulator.

Iterates candles chronologically alongside a parallel prediction series,
opening and closing virtual positions with commission and slippage, and
marking equity after every candle.  No real orders are placed.

Each step looks one candle ahead: decisions are made on candle ``i`` and
filled on candle ``i + 1`` (entries at its open, exits at its close).
"""

import logging
import time
import uuid
from dataclasses import replace
from typing import Callable, Optional, Sequence

from tradelens.backtest.models import (
    BacktestConfig,
    BacktestResult,
    EquityPoint,
    ExitReason,
    Trade,
    TradeSide,
    TradeStatus,
    merge_config,
)
from tradelens.backtest.stats import calculate_report
from tradelens.ml.models import PredictionResult
from tradelens.risk.drawdown import DrawdownTracker
from tradelens.risk.exit_rules import evaluate_exit, track_excursion
from tradelens.risk.position_sizer import (
    calculate_position_value,
    calculate_quantity,
    entry_fill_price,
    exit_fill_price,
)
from tradelens.strategy.models import CandleData, Direction

logger = logging.getLogger("tradelens.backtest")

MIN_ENTRY_CONFIDENCE = 0.6
VOLATILE_ENTRY_CONFIDENCE = 0.8
VOLATILE_RANGE = 0.02
DRAWDOWN_ENTRY_FRACTION = 0.8


def _uuid_id() -> str:
    return str(uuid.uuid4())


class BacktestEngine:
    """Simulates trading a prediction series on historical candles.

    State lives on the instance and is reset at the start of every
    :meth:`run`; concurrent backtests need separate instances.

    Args:
        config: Base configuration; per-run overrides are merged over it.
        id_factory: Source of unique trade identifiers.
    """

    def __init__(
        self,
        config: Optional[BacktestConfig] = None,
        id_factory: Callable[[], str] = _uuid_id,
    ) -> None:
        self._base_config = config or BacktestConfig()
        self._id_factory = id_factory
        self._reset(self._base_config)

    # ── Public API ───────────────────────────────────────────────────────

    @property
    def current_capital(self) -> float:
        return self._capital

    @property
    def open_trades(self) -> list[Trade]:
        return list(self._open_trades)

    @property
    def trades(self) -> list[Trade]:
        return list(self._trades)

    @property
    def equity_curve(self) -> list[EquityPoint]:
        return list(self._equity_curve)

    def run(
        self,
        candles: Sequence[CandleData],
        predictions: Sequence[Optional[PredictionResult]],
        overrides: Optional[dict] = None,
    ) -> BacktestResult:
        """Execute a full backtest.

        Args:
            candles: Candles in chronological order.
            predictions: One prediction per candle (``None`` = no signal),
                aligned by position with *candles*.
            overrides: Config fields to change for this run only.

        Returns:
            A ``BacktestResult`` with the closed-trade ledger, the equity
            curve, and the performance report.
        """
        started = time.perf_counter()
        config = merge_config(self._base_config, overrides)
        self._reset(config)

        logger.info(
            "Backtest started: candles=%d predictions=%d initial_capital=%.2f "
            "position_size=%.4f max_drawdown=%.4f max_concurrent=%d",
            len(candles), len(predictions), config.initial_capital,
            config.position_size, config.max_drawdown,
            config.max_concurrent_trades,
        )

        try:
            steps = min(len(predictions), len(candles) - 1)
            final_candle = candles[-1] if candles else None
            processed = 0

            for i in range(steps):
                current = candles[i]
                fill = candles[i + 1]

                # 1 — Exits on open trades
                self._process_exits(current, fill)

                # 2 — Entry on this candle's prediction
                prediction = predictions[i]
                if prediction is not None and self._should_enter(prediction, current):
                    self._enter_trade(prediction, fill)

                # 3 — Mark equity
                self._record_equity(current)
                processed += 1

                # 4 — Circuit breaker
                if self._tracker.limit_breached:
                    logger.warning(
                        "Maximum drawdown exceeded, stopping backtest: "
                        "drawdown=%.4f max_drawdown=%.4f candle_index=%d",
                        self._tracker.drawdown, config.max_drawdown, current.index,
                    )
                    self._halted = True
                    final_candle = fill
                    break

            if final_candle is not None:
                reason = ExitReason.DRAWDOWN_HALT if self._halted else ExitReason.END_OF_DATA
                self._close_all(final_candle, reason)

            processing_time = (time.perf_counter() - started) * 1000.0
            report = calculate_report(
                self._trades,
                self._equity_curve,
                config,
                final_capital=self._capital,
                processing_time=processing_time,
            )
        except Exception as exc:
            logger.error(
                "Backtest failed: trades_processed=%d error=%s",
                len(self._trades), exc,
            )
            raise

        logger.info(
            "Backtest completed: trades=%d win_rate=%.3f total_pnl=%.2f "
            "sharpe=%.4f max_drawdown=%.4f halted=%s processing_ms=%.1f",
            report.total_trades, report.win_rate, report.total_pnl,
            report.sharpe_ratio, report.max_drawdown_percentage,
            self._halted, processing_time,
        )

        return BacktestResult(
            trades=list(self._trades),
            equity_curve=list(self._equity_curve),
            report=report,
            config=config,
            halted=self._halted,
            candles_processed=processed,
        )

    # ── Entry ────────────────────────────────────────────────────────────

    def _should_enter(self, prediction: PredictionResult, candle: CandleData) -> bool:
        """Apply confidence, capacity, capital and drawdown gates."""
        cfg = self._config
        if prediction.confidence < MIN_ENTRY_CONFIDENCE:
            return False
        if len(self._open_trades) >= cfg.max_concurrent_trades:
            return False
        position_value = calculate_position_value(self._capital, cfg.position_size)
        if position_value <= 0:
            return False
        if self._tracker.near_limit(DRAWDOWN_ENTRY_FRACTION):
            return False
        # Equity after entry costs must not trip the breaker on this candle
        entry_costs = position_value * (cfg.commission + cfg.slippage)
        projected = self._mark_equity(candle) - entry_costs
        if self._tracker.drawdown_for(projected) > cfg.max_drawdown:
            return False

        # Volatile candles demand a stronger signal
        if self._is_volatile(candle):
            return prediction.confidence > VOLATILE_ENTRY_CONFIDENCE
        return True

    def _enter_trade(self, prediction: PredictionResult, fill: CandleData) -> None:
        cfg = self._config
        side = TradeSide.LONG if prediction.direction == Direction.UP else TradeSide.SHORT

        position_value = calculate_position_value(self._capital, cfg.position_size)
        entry_price = entry_fill_price(fill.open, side, cfg.slippage)
        quantity = calculate_quantity(position_value, entry_price)
        commission = position_value * cfg.commission
        slippage = position_value * cfg.slippage

        trade = Trade(
            id=self._id_factory(),
            entry_time=fill.timestamp,
            entry_price=entry_price,
            direction=side,
            quantity=quantity,
            notional=position_value,
            commission=commission,
            slippage=slippage,
            prediction=prediction,
        )

        # Reserve the notional and pay entry costs up front
        self._capital -= position_value + commission + slippage
        self._open_trades.append(trade)

        logger.info(
            "Trade opened: id=%s direction=%s entry_price=%.6f quantity=%.6f "
            "notional=%.2f confidence=%.3f",
            trade.id, side.value, entry_price, quantity,
            position_value, prediction.confidence,
        )

    # ── Exit ─────────────────────────────────────────────────────────────

    def _process_exits(self, current: CandleData, fill: CandleData) -> None:
        """Evaluate exit rules on *current* and fill any exits on *fill*."""
        still_open: list[Trade] = []
        to_close: list[tuple[Trade, ExitReason]] = []

        for trade in self._open_trades:
            tracked = track_excursion(trade, current.close)
            reason = evaluate_exit(tracked, current.close, current.timestamp)
            if reason is None:
                still_open.append(tracked)
            else:
                to_close.append((tracked, reason))

        self._open_trades = still_open
        for trade, reason in to_close:
            self._close_trade(trade, fill, reason)

    def _close_all(self, candle: CandleData, reason: ExitReason) -> None:
        remaining, self._open_trades = self._open_trades, []
        for trade in remaining:
            self._close_trade(trade, candle, reason)

    def _close_trade(self, trade: Trade, candle: CandleData, reason: ExitReason) -> None:
        """Close *trade* at *candle*'s close and credit capital.

        The caller is responsible for removing *trade* from the open set.
        """
        cfg = self._config
        exit_price = exit_fill_price(candle.close, trade.direction, cfg.slippage)
        gross = self._calc_pnl(trade, exit_price)

        exit_value = trade.quantity * exit_price
        exit_commission = exit_value * cfg.commission
        exit_slippage = exit_value * cfg.slippage
        net = gross - exit_commission - exit_slippage

        closed = replace(
            trade,
            status=TradeStatus.CLOSED,
            exit_time=candle.timestamp,
            exit_price=exit_price,
            gross_pnl=gross,
            pnl=net,
            pnl_percentage=net / trade.notional,
            commission=trade.commission + exit_commission,
            slippage=trade.slippage + exit_slippage,
            exit_reason=reason,
        )

        self._capital += trade.notional + net
        self._trades.append(closed)

        logger.info(
            "Trade closed: id=%s reason=%s exit_price=%.6f pnl=%.2f "
            "pnl_pct=%.4f duration_ms=%d",
            closed.id, reason.value, exit_price, net,
            closed.pnl_percentage, closed.duration_ms,
        )

    # ── Equity ───────────────────────────────────────────────────────────

    def _record_equity(self, candle: CandleData) -> None:
        """Append a mark-to-market equity point for *candle*.

        Open trades are valued at notional plus unrealised P&L at the
        candle close; trades whose fill lies after *candle* count at cost.
        """
        equity = self._mark_equity(candle)
        drawdown = self._tracker.update(equity)
        self._equity_curve.append(
            EquityPoint(timestamp=candle.timestamp, equity=equity, drawdown=drawdown)
        )

    def _mark_equity(self, candle: CandleData) -> float:
        equity = self._capital
        for trade in self._open_trades:
            equity += trade.notional
            if trade.entry_time <= candle.timestamp:
                equity += self._calc_pnl(trade, candle.close)
        return equity

    # ── Helpers ──────────────────────────────────────────────────────────

    def _reset(self, config: BacktestConfig) -> None:
        self._config = config
        self._capital = config.initial_capital
        self._tracker = DrawdownTracker(config.initial_capital, config.max_drawdown)
        self._open_trades: list[Trade] = []
        self._trades: list[Trade] = []
        self._equity_curve: list[EquityPoint] = []
        self._halted = False

    @staticmethod
    def _is_volatile(candle: CandleData) -> bool:
        return (candle.high - candle.low) / candle.close > VOLATILE_RANGE

    @staticmethod
    def _calc_pnl(trade: Trade, price: float) -> float:
        """Gross P&L for *trade* valued at *price*."""
        if trade.direction == TradeSide.LONG:
            return (price - trade.entry_price) * trade.quantity
        return (trade.entry_price - price) * trade.quantity
