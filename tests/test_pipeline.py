"""Tests for tradelens.ml.pipeline — predictions and accuracy tracking."""

import sqlite3

import pytest

from tradelens.ml.features import InsufficientDataError
from tradelens.ml.pipeline import METRICS_KEY, PredictionPipeline, outcome_from_candle
from tradelens.repos.kv_repo import InMemoryStore
from tradelens.strategy.models import CandleData, Direction

HOUR_MS = 60 * 60 * 1000
SEED = "c0ffee00-1234-4abc-8def-000000000001"


def _make_candles(n: int, growth: float = 1.0):
    candles = []
    prev = 100.0
    for i in range(n):
        c = prev * growth
        candles.append(CandleData(
            timestamp=1_700_000_000_000 + i * HOUR_MS,
            open=prev, high=max(prev, c), low=min(prev, c), close=c,
            volume=500.0 + i, index=i,
        ))
        prev = c
    return candles


class _FailingStore:
    """Store whose every call fails, to exercise the tolerant paths."""

    def load(self, key):
        raise sqlite3.OperationalError("database is locked")

    def save(self, key, value):
        raise sqlite3.OperationalError("database is locked")


# ── Prediction ───────────────────────────────────────────────────────────


class TestPredict:

    def test_prediction_fields(self):
        pipeline = PredictionPipeline(model_version="2.1.0")
        result = pipeline.predict(_make_candles(25, growth=1.01), 24, seed=SEED)
        assert result.direction in (Direction.UP, Direction.DOWN)
        assert 0.5 <= result.probability <= 0.95
        assert 0.1 <= result.confidence <= 0.95
        assert result.model_version == "2.1.0"
        assert result.processing_time >= 0
        assert result.features.metadata.candle_index == 24

    def test_fixed_seed_is_reproducible(self):
        pipeline = PredictionPipeline()
        candles = _make_candles(25, growth=0.995)
        first = pipeline.predict(candles, 24, seed=SEED)
        second = pipeline.predict(candles, 24, seed=SEED)
        assert first.direction == second.direction
        assert first.probability == second.probability
        assert first.confidence == second.confidence

    def test_seed_factory_is_used(self):
        calls = []

        def factory():
            calls.append(1)
            return "ffffffff-0000"

        pipeline = PredictionPipeline(seed_factory=factory)
        pipeline.predict(_make_candles(10), 9)
        assert calls == [1]

    def test_insufficient_data_propagates(self):
        with pytest.raises(InsufficientDataError):
            PredictionPipeline().predict(_make_candles(2), 1)

    def test_series_stays_aligned(self):
        candles = _make_candles(12, growth=1.002)
        predictions = PredictionPipeline().predict_series(candles)
        assert len(predictions) == len(candles)
        assert predictions[0] is None
        assert predictions[1] is None
        assert all(p is not None for p in predictions[2:])
        assert predictions[5].features.metadata.candle_index == 5


# ── Accuracy tracking ────────────────────────────────────────────────────


class TestPerformanceMetrics:

    def _prediction(self, seed):
        return PredictionPipeline().predict(_make_candles(10), 9, seed=seed)

    def test_correct_and_incorrect(self):
        store = InMemoryStore()
        pipeline = PredictionPipeline(metrics_store=store)
        up = self._prediction("ffffffff")  # flat window → seed decides: up
        assert up.direction == Direction.UP

        pipeline.update_performance_metrics(up, actual_outcome=True)
        metrics = pipeline.update_performance_metrics(up, actual_outcome=False)

        assert metrics.total_predictions == 2
        assert metrics.correct_predictions == 1
        assert metrics.accuracy == pytest.approx(0.5)
        assert store.load(METRICS_KEY)["total_predictions"] == 2

    def test_down_prediction_correct_on_down_move(self):
        pipeline = PredictionPipeline()
        down = self._prediction("00000000")
        metrics = pipeline.update_performance_metrics(down, actual_outcome=False)
        assert metrics.accuracy == 1.0

    def test_load_merges_stored_values(self):
        store = InMemoryStore()
        store.save(METRICS_KEY, {"accuracy": 0.75, "correct_predictions": 3, "total_predictions": 4})
        pipeline = PredictionPipeline(metrics_store=store)
        metrics = pipeline.load_performance_metrics()
        assert metrics.total_predictions == 4
        assert metrics.accuracy == 0.75

    def test_store_failures_are_tolerated(self):
        pipeline = PredictionPipeline(metrics_store=_FailingStore())
        assert pipeline.load_performance_metrics().total_predictions == 0
        metrics = pipeline.update_performance_metrics(self._prediction("ffffffff"), True)
        assert metrics.total_predictions == 1

    def test_non_object_payload_is_ignored(self):
        store = InMemoryStore()
        store.save(METRICS_KEY, [1, 2])
        pipeline = PredictionPipeline(metrics_store=store)
        assert pipeline.load_performance_metrics().total_predictions == 0
        metrics = pipeline.update_performance_metrics(self._prediction("ffffffff"), True)
        assert metrics.total_predictions == 1

    def test_mistyped_fields_are_ignored(self):
        store = InMemoryStore()
        store.save(METRICS_KEY, {"total_predictions": "oops", "correct_predictions": 1})
        pipeline = PredictionPipeline(metrics_store=store)
        assert pipeline.load_performance_metrics().total_predictions == 0
        metrics = pipeline.update_performance_metrics(self._prediction("ffffffff"), True)
        assert metrics.total_predictions == 1
        assert metrics.accuracy == 1.0

    def test_numeric_strings_are_coerced(self):
        store = InMemoryStore()
        store.save(METRICS_KEY, {"total_predictions": "4", "correct_predictions": 3.0})
        metrics = PredictionPipeline(metrics_store=store).load_performance_metrics()
        assert metrics.total_predictions == 4
        assert metrics.correct_predictions == 3

    def test_returned_metrics_are_copies(self):
        pipeline = PredictionPipeline()
        snapshot = pipeline.get_performance_metrics()
        snapshot.total_predictions = 99
        assert pipeline.get_performance_metrics().total_predictions == 0

    def test_reset(self):
        pipeline = PredictionPipeline()
        pipeline.update_performance_metrics(self._prediction("ffffffff"), True)
        pipeline.reset()
        assert pipeline.get_performance_metrics().total_predictions == 0


def test_outcome_from_candle():
    assert outcome_from_candle(CandleData(0, 1.0, 2.0, 1.0, 1.5, 10.0)) is True
    assert outcome_from_candle(CandleData(0, 1.5, 2.0, 1.0, 1.0, 10.0)) is False
