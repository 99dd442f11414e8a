"""Prediction pipeline — feature extraction, scoring, and accuracy tracking.

Wraps the extractor and scorer into ``PredictionResult`` objects and keeps
a running accuracy counter that is persisted through a key-value store.
Store failures never interrupt prediction: they are logged and the
in-memory counters carry on.
"""

import logging
import sqlite3
import time
import uuid
from dataclasses import replace
from typing import Callable, Optional, Sequence

from tradelens.ml.features import FeatureExtractor, InsufficientDataError
from tradelens.ml.models import PerformanceMetrics, PredictionResult
from tradelens.ml.scorer import score_features
from tradelens.repos.kv_repo import InMemoryStore, KeyValueStore
from tradelens.strategy.models import CandleData, Direction

logger = logging.getLogger("tradelens.ml")

METRICS_KEY = "ml_performance_metrics"
DEFAULT_MODEL_VERSION = "1.0.0"

_STORE_ERRORS = (sqlite3.Error, OSError, ValueError, TypeError)


def _uuid_seed() -> str:
    return str(uuid.uuid4())


class PredictionPipeline:
    """Produces predictions for a candle series and tracks their accuracy.

    Args:
        extractor: Feature extractor (a fresh one by default).
        metrics_store: Key-value store for the accuracy counter.
        seed_factory: Source of hex-bearing seed strings.
        model_version: Version tag stamped on every prediction.
    """

    def __init__(
        self,
        extractor: Optional[FeatureExtractor] = None,
        metrics_store: Optional[KeyValueStore] = None,
        seed_factory: Callable[[], str] = _uuid_seed,
        model_version: str = DEFAULT_MODEL_VERSION,
    ) -> None:
        self._extractor = extractor or FeatureExtractor()
        self._store = metrics_store if metrics_store is not None else InMemoryStore()
        self._seed_factory = seed_factory
        self._model_version = model_version
        self._metrics = PerformanceMetrics()

    @property
    def model_version(self) -> str:
        return self._model_version

    # ── Prediction ───────────────────────────────────────────────────────

    def predict(
        self,
        candles: Sequence[CandleData],
        current_index: int,
        seed: Optional[str] = None,
    ) -> PredictionResult:
        """Predict the direction of the candle after ``candles[current_index]``.

        Raises:
            InsufficientDataError: If the lookback window is too short.
        """
        start = time.perf_counter()
        try:
            features = self._extractor.extract(candles, current_index)
            scored = score_features(features, seed if seed is not None else self._seed_factory())
        except Exception as exc:
            logger.error(
                "Prediction generation failed: candle_index=%d error=%s",
                current_index, exc,
            )
            raise

        processing_time = (time.perf_counter() - start) * 1000.0
        result = PredictionResult(
            direction=scored.direction,
            probability=scored.probability,
            confidence=scored.confidence,
            features=features,
            model_version=self._model_version,
            processing_time=processing_time,
        )
        logger.info(
            "Prediction generated: candle_index=%d direction=%s "
            "probability=%.3f confidence=%.3f processing_ms=%.3f",
            current_index, result.direction.value,
            result.probability, result.confidence, processing_time,
        )
        return result

    def predict_series(
        self, candles: Sequence[CandleData],
    ) -> list[Optional[PredictionResult]]:
        """Predict every index of *candles*.

        Indices whose lookback window is too short map to ``None`` so the
        output stays aligned with the input.
        """
        predictions: list[Optional[PredictionResult]] = []
        for i in range(len(candles)):
            try:
                predictions.append(self.predict(candles, i))
            except InsufficientDataError:
                predictions.append(None)
        return predictions

    # ── Accuracy tracking ────────────────────────────────────────────────

    def update_performance_metrics(
        self, prediction: PredictionResult, actual_outcome: bool,
    ) -> PerformanceMetrics:
        """Record whether *prediction* matched the realised move.

        *actual_outcome* is ``True`` when the candle closed up.
        """
        was_correct = (prediction.direction == Direction.UP) == actual_outcome

        total = self._metrics.total_predictions + 1
        correct = self._metrics.correct_predictions + (1 if was_correct else 0)
        self._metrics = PerformanceMetrics(
            accuracy=correct / total,
            correct_predictions=correct,
            total_predictions=total,
        )
        self._save_metrics()

        logger.info(
            "Performance metrics updated: total=%d accuracy=%.3f was_correct=%s",
            total, self._metrics.accuracy, was_correct,
        )
        return self.get_performance_metrics()

    def get_performance_metrics(self) -> PerformanceMetrics:
        """Return a copy of the current counters."""
        return replace(self._metrics)

    def load_performance_metrics(self) -> PerformanceMetrics:
        """Merge stored counters over the in-memory defaults."""
        try:
            saved = self._store.load(METRICS_KEY)
        except _STORE_ERRORS as exc:
            logger.error("Failed to load performance metrics: %s", exc)
            return self.get_performance_metrics()

        if saved is not None:
            try:
                if not isinstance(saved, dict):
                    raise TypeError(f"expected an object, got {type(saved).__name__}")
                merged = {**self._metrics.to_dict(), **saved}
                self._metrics = PerformanceMetrics.from_dict(merged)
            except (TypeError, ValueError) as exc:
                logger.error("Ignoring malformed performance metrics: %s", exc)
                return self.get_performance_metrics()
            logger.info(
                "Performance metrics loaded: total=%d accuracy=%.3f",
                self._metrics.total_predictions, self._metrics.accuracy,
            )
        return self.get_performance_metrics()

    def reset(self) -> None:
        """Discard in-memory counters (the stored copy is left untouched)."""
        self._metrics = PerformanceMetrics()
        logger.info("Prediction pipeline reset")

    def _save_metrics(self) -> None:
        try:
            self._store.save(METRICS_KEY, self._metrics.to_dict())
        except _STORE_ERRORS as exc:
            logger.error("Failed to save performance metrics: %s", exc)


def outcome_from_candle(candle: CandleData) -> bool:
    """``True`` when *candle* closed above its open."""
    return candle.close > candle.open

