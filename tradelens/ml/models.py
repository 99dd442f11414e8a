"""Prediction data models — scored predictions and running accuracy."""

import time
from dataclasses import asdict, dataclass, field

from tradelens.ml.features import FeatureVector
from tradelens.strategy.models import Direction


@dataclass(frozen=True)
class PredictionResult:
    """A next-candle direction prediction for one (series, index) pair."""

    direction: Direction
    probability: float  # [0.5, 0.95]
    confidence: float  # [0.1, 0.95]
    features: FeatureVector
    model_version: str
    processing_time: float  # milliseconds


@dataclass
class PerformanceMetrics:
    """Running prediction accuracy, persisted as a plain JSON object."""

    accuracy: float = 0.0
    correct_predictions: int = 0
    total_predictions: int = 0
    last_updated: float = field(default_factory=lambda: time.time() * 1000)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "PerformanceMetrics":
        """Build from stored data, ignoring keys this version does not know.

        Missing fields take their defaults.  Raises ``TypeError`` or
        ``ValueError`` when *data* is not an object or a value cannot be
        coerced to its field type.
        """
        if not isinstance(data, dict):
            raise TypeError(f"expected an object, got {type(data).__name__}")
        defaults = cls()
        return cls(
            accuracy=float(data.get("accuracy", defaults.accuracy)),
            correct_predictions=int(data.get("correct_predictions", defaults.correct_predictions)),
            total_predictions=int(data.get("total_predictions", defaults.total_predictions)),
            last_updated=float(data.get("last_updated", defaults.last_updated)),
        )
