"""Internal API routers — /predictions, /backtests, /metrics endpoints.

No business logic, no DB access.  Delegates to the prediction pipeline,
backtest engine, and repos injected at startup.
"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Query

from tradelens.backtest.engine import BacktestEngine
from tradelens.backtest.models import BacktestConfig, BacktestResult, Trade
from tradelens.ml.features import InsufficientDataError
from tradelens.ml.models import PredictionResult
from tradelens.ml.pipeline import PredictionPipeline, outcome_from_candle
from tradelens.strategy.models import candles_from_records

logger = logging.getLogger("tradelens.api")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_pipeline: PredictionPipeline = PredictionPipeline()
_base_config: BacktestConfig = BacktestConfig()
_backtest_repo = None  # Set via configure_routers()


def configure_routers(
    pipeline: Optional[PredictionPipeline] = None,
    base_config: Optional[BacktestConfig] = None,
    backtest_repo=None,
) -> None:
    """Inject dependencies from the application startup.

    Args:
        pipeline: A ``PredictionPipeline`` (a default in-memory one otherwise).
        base_config: Default ``BacktestConfig`` for runs without overrides.
        backtest_repo: A ``BacktestRepo`` instance (or duck-type for tests).
    """
    global _pipeline, _base_config, _backtest_repo  # noqa: PLW0603
    _pipeline = pipeline or PredictionPipeline()
    _base_config = base_config or BacktestConfig()
    _backtest_repo = backtest_repo


# ── Serialisation ────────────────────────────────────────────────────────


def _prediction_to_dict(prediction: PredictionResult) -> dict:
    return asdict(prediction)


def _trade_to_dict(trade: Trade) -> dict:
    """Trade summary without the embedded feature vector."""
    data = asdict(trade)
    data["prediction"] = {
        "direction": trade.prediction.direction.value,
        "probability": trade.prediction.probability,
        "confidence": trade.prediction.confidence,
        "candle_index": trade.prediction.features.metadata.candle_index,
    }
    return data


def _result_to_dict(result: BacktestResult) -> dict:
    return {
        "report": asdict(result.report),
        "trades": [_trade_to_dict(t) for t in result.trades],
        "equity_curve": [asdict(p) for p in result.equity_curve],
        "config": asdict(result.config),
        "halted": result.halted,
        "candles_processed": result.candles_processed,
    }


def _parse_candles(body: dict, errors: list[str]):
    try:
        return candles_from_records(body.get("candles") or [])
    except (ValueError, TypeError, AttributeError) as exc:
        errors.append(f"candles: {exc}")
        return []


def _parse_seed(body: dict, errors: list[str]):
    seed = body.get("seed")
    if seed is not None and not isinstance(seed, str):
        errors.append("seed must be a string")
        return None
    return seed


# ── Predictions ──────────────────────────────────────────────────────────


@router.post("/predictions")
async def create_prediction(body: dict):
    """Predict the candle after ``candles[index]``."""
    errors: list[str] = []
    candles = _parse_candles(body, errors)
    index = body.get("index", len(candles) - 1)
    seed = _parse_seed(body, errors)
    if not isinstance(index, int) or not 0 <= index < max(len(candles), 1):
        errors.append("index must be an integer within the candle list")
    if errors:
        return {"status": "error", "errors": errors}

    try:
        prediction = _pipeline.predict(candles, index, seed=seed)
    except InsufficientDataError as exc:
        return {"status": "error", "errors": [str(exc)]}
    return {"status": "ok", "prediction": _prediction_to_dict(prediction)}


@router.post("/predictions/series")
async def create_prediction_series(body: dict):
    """Predict every candle; entries without enough history are ``null``."""
    errors: list[str] = []
    candles = _parse_candles(body, errors)
    if errors:
        return {"status": "error", "errors": errors}

    predictions = _pipeline.predict_series(candles)
    return {
        "status": "ok",
        "predictions": [
            _prediction_to_dict(p) if p is not None else None for p in predictions
        ],
    }


# ── Backtests ────────────────────────────────────────────────────────────


@router.post("/backtests")
async def create_backtest(body: dict):
    """Generate predictions for the candles and replay them.

    Optional ``config`` overrides the default ``BacktestConfig``; with
    ``symbol`` and ``timeframe`` the run summary is persisted.
    """
    errors: list[str] = []
    candles = _parse_candles(body, errors)
    overrides = body.get("config") or {}
    if not isinstance(overrides, dict):
        errors.append("config must be an object")
    if errors:
        return {"status": "error", "errors": errors}

    predictions = _pipeline.predict_series(candles)
    engine = BacktestEngine(_base_config)
    try:
        result = engine.run(candles, predictions, overrides)
    except (ValueError, TypeError) as exc:
        return {"status": "error", "errors": [str(exc)]}

    response = {"status": "ok", **_result_to_dict(result)}

    symbol = body.get("symbol")
    timeframe = body.get("timeframe")
    if _backtest_repo is not None and symbol and timeframe:
        response["run_id"] = _backtest_repo.insert_run(symbol, timeframe, result)
        logger.info("Backtest run persisted: run_id=%s symbol=%s", response["run_id"], symbol)

    return response


@router.get("/backtests")
async def list_backtests(limit: int = Query(default=10, ge=1, le=100)):
    """Return recent persisted backtest summaries."""
    if _backtest_repo is None:
        return {"runs": []}
    return {"runs": _backtest_repo.get_runs(limit=limit)}


# ── Metrics ──────────────────────────────────────────────────────────────


@router.get("/metrics")
async def get_metrics():
    """Return the running prediction accuracy."""
    return _pipeline.get_performance_metrics().to_dict()


@router.post("/metrics/outcome")
async def record_outcome(body: dict):
    """Predict ``candles[index]`` and score it against ``candles[index + 1]``."""
    errors: list[str] = []
    candles = _parse_candles(body, errors)
    index = body.get("index")
    seed = _parse_seed(body, errors)
    if not isinstance(index, int) or not 0 <= index < len(candles) - 1:
        errors.append("index must have a following candle to validate against")
    if errors:
        return {"status": "error", "errors": errors}

    try:
        prediction = _pipeline.predict(candles, index, seed=seed)
    except InsufficientDataError as exc:
        return {"status": "error", "errors": [str(exc)]}

    outcome = outcome_from_candle(candles[index + 1])
    metrics = _pipeline.update_performance_metrics(prediction, outcome)
    return {
        "status": "ok",
        "direction": prediction.direction.value,
        "actual_up": outcome,
        "metrics": metrics.to_dict(),
    }
