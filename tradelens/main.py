"""TradeLens — application entry point.

Boots the FastAPI internal server and provides the CLI entry point for
serve and backtest modes.
"""

import logging

from fastapi import FastAPI

from tradelens.api.routers import router

app = FastAPI(title="TradeLens Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("tradelens")


@app.get("/health")
async def health():
    """Liveness probe."""
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments and dispatch to the appropriate mode."""
    import argparse

    from tradelens.api.routers import configure_routers
    from tradelens.config import load_config
    from tradelens.ml.pipeline import PredictionPipeline
    from tradelens.repos.backtest_repo import BacktestRepo
    from tradelens.repos.db import init_db
    from tradelens.repos.kv_repo import KeyValueRepo

    parser = argparse.ArgumentParser(description="TradeLens prediction journal")
    parser.add_argument(
        "--mode",
        choices=["serve", "backtest"],
        default="serve",
        help="Run the API server or a one-off backtest (default: serve)",
    )
    parser.add_argument("--csv", help="Candle CSV for backtest mode")
    parser.add_argument("--symbol", default="UNKNOWN", help="Symbol label for the run")
    parser.add_argument("--timeframe", default="1h", help="Timeframe label for the run")
    args = parser.parse_args()

    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    init_db(config.db_path)
    pipeline = PredictionPipeline(
        metrics_store=KeyValueRepo(config.db_path),
        model_version=config.model_version,
    )
    pipeline.load_performance_metrics()
    backtest_repo = BacktestRepo(config.db_path)

    if args.mode == "backtest":
        if not args.csv:
            parser.error("--csv is required in backtest mode")
        _run_backtest(config, pipeline, backtest_repo, args.csv, args.symbol, args.timeframe)
        return

    import uvicorn

    configure_routers(
        pipeline=pipeline,
        base_config=config.backtest_config(),
        backtest_repo=backtest_repo,
    )
    logger.info("Starting TradeLens API on port %d", config.api_port)
    uvicorn.run(app, host="0.0.0.0", port=config.api_port, log_level="info")


def _run_backtest(config, pipeline, backtest_repo, csv_path, symbol, timeframe) -> None:
    """Load candles from *csv_path*, predict, replay, and persist the run."""
    import pandas as pd

    from tradelens.backtest.engine import BacktestEngine
    from tradelens.strategy.models import candles_from_records

    frame = pd.read_csv(csv_path)
    columns = ["timestamp", "open", "high", "low", "close", "volume"]
    if "index" in frame.columns:
        columns.append("index")
    candles = candles_from_records(frame[columns].to_dict(orient="records"))

    predictions = pipeline.predict_series(candles)
    result = BacktestEngine(config.backtest_config()).run(candles, predictions)
    run_id = backtest_repo.insert_run(symbol, timeframe, result)

    report = result.report
    logger.info(
        "Backtest complete: run_id=%d trades=%d PnL=$%.2f win_rate=%.1f%% "
        "sharpe=%.3f max_dd=%.2f%% halted=%s",
        run_id,
        report.total_trades,
        report.total_pnl,
        report.win_rate * 100,
        report.sharpe_ratio,
        report.max_drawdown_percentage * 100,
        result.halted,
    )


if __name__ == "__main__":
    _run_cli()
