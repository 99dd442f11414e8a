"""Backtest run repository — persists backtest summaries to SQLite."""

from tradelens.backtest.models import BacktestResult
from tradelens.repos.db import get_connection


class BacktestRepo:
    """Data access layer for the ``backtest_runs`` table.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def insert_run(
        self,
        symbol: str,
        timeframe: str,
        result: BacktestResult,
    ) -> int:
        """Persist a backtest run summary.  Returns the row id."""
        report = result.report
        conn = get_connection(self._db_path)
        try:
            cur = conn.execute(
                """
                INSERT INTO backtest_runs
                    (symbol, timeframe, start_time, end_time, total_trades,
                     winning_trades, losing_trades, win_rate, profit_factor,
                     sharpe_ratio, sortino_ratio, max_drawdown_pct,
                     total_pnl, final_capital, halted)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    symbol,
                    timeframe,
                    report.start_time,
                    report.end_time,
                    report.total_trades,
                    report.winning_trades,
                    report.losing_trades,
                    round(report.win_rate, 4),
                    round(report.profit_factor, 4),
                    round(report.sharpe_ratio, 4),
                    round(report.sortino_ratio, 4),
                    round(report.max_drawdown_percentage, 4),
                    round(report.total_pnl, 2),
                    round(report.final_capital, 2),
                    int(result.halted),
                ),
            )
            conn.commit()
            return cur.lastrowid
        finally:
            conn.close()

    def get_runs(self, limit: int = 10) -> list[dict]:
        """Return recent backtest run summaries, newest first."""
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM backtest_runs ORDER BY id DESC LIMIT ?",
                (limit,),
            ).fetchall()
            return [dict(r) for r in rows]
        finally:
            conn.close()
