"""TradeLens — application configuration.

Loads .env variables into a typed config object.
Validates numeric variables on startup.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from tradelens.backtest.models import BacktestConfig


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    db_path: str
    log_level: str
    api_port: int
    model_version: str
    initial_capital: float
    position_size: float
    commission: float
    slippage: float
    max_drawdown: float
    max_concurrent_trades: int
    risk_free_rate: float

    def backtest_config(self) -> BacktestConfig:
        """Return the default ``BacktestConfig`` described by this config."""
        return BacktestConfig(
            initial_capital=self.initial_capital,
            position_size=self.position_size,
            commission=self.commission,
            slippage=self.slippage,
            max_drawdown=self.max_drawdown,
            max_concurrent_trades=self.max_concurrent_trades,
            risk_free_rate=self.risk_free_rate,
        )


def _env_float(name: str, default: str) -> float:
    raw = os.environ.get(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number, got {raw!r}") from None


def _env_int(name: str, default: str) -> int:
    raw = os.environ.get(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}") from None


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Every variable has a default.  Raises ``ValueError`` naming the
    variable when a value is malformed or out of range.
    """
    load_dotenv(dotenv_path=env_path)

    config = Config(
        db_path=os.environ.get("TRADELENS_DB_PATH", "data/tradelens.db"),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        api_port=_env_int("API_PORT", "8080"),
        model_version=os.environ.get("MODEL_VERSION", "1.0.0"),
        initial_capital=_env_float("BACKTEST_INITIAL_CAPITAL", "10000"),
        position_size=_env_float("BACKTEST_POSITION_SIZE", "0.02"),
        commission=_env_float("BACKTEST_COMMISSION", "0.001"),
        slippage=_env_float("BACKTEST_SLIPPAGE", "0.0005"),
        max_drawdown=_env_float("BACKTEST_MAX_DRAWDOWN", "0.2"),
        max_concurrent_trades=_env_int("BACKTEST_MAX_CONCURRENT_TRADES", "5"),
        risk_free_rate=_env_float("BACKTEST_RISK_FREE_RATE", "0.02"),
    )

    # Surface range errors under the environment variable name
    try:
        config.backtest_config()
    except ValueError as exc:
        field_name = str(exc).split(" ", 1)[0]
        var = "BACKTEST_" + field_name.upper()
        raise ValueError(f"Invalid {var}: {exc}") from exc

    return config
