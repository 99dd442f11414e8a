"""Database initialization and connection management.

Creates the schema on first boot, provides connection factory.
"""

import pathlib
import sqlite3


_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    updated_at  TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS backtest_runs (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    symbol              TEXT NOT NULL,
    timeframe           TEXT NOT NULL,
    start_time          INTEGER,
    end_time            INTEGER,
    total_trades        INTEGER NOT NULL,
    winning_trades      INTEGER NOT NULL,
    losing_trades       INTEGER NOT NULL,
    win_rate            REAL NOT NULL,
    profit_factor       REAL NOT NULL,
    sharpe_ratio        REAL NOT NULL,
    sortino_ratio       REAL NOT NULL,
    max_drawdown_pct    REAL NOT NULL,
    total_pnl           REAL NOT NULL,
    final_capital       REAL NOT NULL,
    halted              INTEGER NOT NULL DEFAULT 0,
    created_at          TEXT NOT NULL DEFAULT (datetime('now'))
);
"""


def init_db(db_path: str) -> None:
    """Initialize the database, creating any missing tables.

    Safe to call on every start.  Parent directories of *db_path* are
    created as needed.

    Args:
        db_path: Path to the SQLite database file (or ``":memory:"``).
    """
    if db_path != ":memory:":
        pathlib.Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        conn.executescript(_SCHEMA)
    finally:
        conn.close()


def get_connection(db_path: str) -> sqlite3.Connection:
    """Return a new SQLite connection with row-factory enabled.

    Callers are responsible for closing the connection.
    """
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn
