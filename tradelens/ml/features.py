"""Feature engineering — 17-feature vector for next-candle prediction.

Builds the normalised observation the scorer sees at each candle.  All
unbounded ratios pass through ``tanh`` so the downstream linear scoring
works without per-feature calibration.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence

import numpy as np

from tradelens.strategy.indicators import (
    calculate_bollinger_position,
    calculate_correlation,
    calculate_linear_regression_slope,
    calculate_macd_normalized,
    calculate_rsi,
    calculate_sma,
    calculate_std_dev,
    calculate_stochastic,
)
from tradelens.strategy.models import CandleData


LOOKBACK = 20
MIN_WINDOW = 3
FEATURE_DIM = 17

# Data-quality heuristics
BASE_CONFIDENCE = 0.8
MIN_CONFIDENCE = 0.1
SHORT_WINDOW = 5
GAP_THRESHOLD = 0.05
GAP_PENALTY = 0.8
ZERO_VOLUME_PENALTY = 0.9


class InsufficientDataError(ValueError):
    """Raised when the lookback window holds fewer than ``MIN_WINDOW`` candles."""


# ── Feature vector ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class FeatureMetadata:
    """Provenance and data-quality score of a feature vector."""

    timestamp: int
    candle_index: int
    confidence: float


@dataclass(frozen=True)
class FeatureVector:
    """The four feature groups extracted from one candle window.

    Group sizes are fixed: technical (6), price (5), volume (3),
    temporal (3).
    """

    technical_indicators: tuple[float, ...]
    price_features: tuple[float, ...]
    volume_features: tuple[float, ...]
    temporal_features: tuple[float, ...]
    metadata: FeatureMetadata

    # Named accessors for the slots the scorer reads
    @property
    def rsi(self) -> float:
        return self.technical_indicators[1]

    @property
    def bollinger_position(self) -> float:
        return self.technical_indicators[2]

    @property
    def macd(self) -> float:
        return self.technical_indicators[3]

    @property
    def stochastic(self) -> float:
        return self.technical_indicators[4]

    @property
    def momentum(self) -> float:
        return self.price_features[4]

    @property
    def volume_ratio(self) -> float:
        return self.volume_features[0]

    def to_array(self) -> np.ndarray:
        """Flatten the four groups into a float64 array of shape (17,)."""
        values = (
            list(self.technical_indicators)
            + list(self.price_features)
            + list(self.volume_features)
            + list(self.temporal_features)
        )
        arr = np.array(values, dtype=np.float64)
        return np.nan_to_num(arr, nan=0.0, posinf=0.0, neginf=0.0)


# ── Extractor ────────────────────────────────────────────────────────────


class FeatureExtractor:
    """Builds a ``FeatureVector`` from the candles ending at an index.

    Stateless: one instance may serve any number of independent series.
    """

    def extract(self, candles: Sequence[CandleData], current_index: int) -> FeatureVector:
        """Extract features for ``candles[current_index]``.

        The window is the last ``min(20, len(candles))`` candles before
        *current_index* plus the current one.

        Raises:
            InsufficientDataError: If the window holds fewer than 3 candles.
        """
        lookback = min(LOOKBACK, len(candles))
        window = list(candles[max(0, current_index - lookback) : current_index + 1])

        if len(window) < MIN_WINDOW:
            raise InsufficientDataError(
                f"Need at least {MIN_WINDOW} candles for feature extraction "
                f"at index {current_index}, got {len(window)}"
            )

        current = window[-1]
        return FeatureVector(
            technical_indicators=self._technical_features(window),
            price_features=self._price_features(window),
            volume_features=self._volume_features(window),
            temporal_features=self._temporal_features(current),
            metadata=FeatureMetadata(
                timestamp=current.timestamp,
                candle_index=current.index,
                confidence=self._window_confidence(window),
            ),
        )

    # ── Groups ───────────────────────────────────────────────────────

    @staticmethod
    def _technical_features(window: list[CandleData]) -> tuple[float, ...]:
        closes = [c.close for c in window]
        highs = [c.high for c in window]
        lows = [c.low for c in window]

        sma5 = calculate_sma(closes, 5)
        sma10 = calculate_sma(closes, 10)
        price = closes[-1]

        return (
            math.tanh(sma5 / sma10 - 1),
            calculate_rsi(closes, 14) / 100.0,
            calculate_bollinger_position(closes, 20),
            math.tanh(calculate_macd_normalized(closes)),
            calculate_stochastic(highs, lows, closes, 14) / 100.0,
            math.tanh((price - sma10) / sma10 * 10),
        )

    @staticmethod
    def _price_features(window: list[CandleData]) -> tuple[float, ...]:
        returns: list[float] = []
        body_ratios: list[float] = []
        shadow_ratios: list[float] = []

        for prev, curr in zip(window, window[1:]):
            returns.append(math.log(curr.close / prev.close))

            rng = curr.high - curr.low
            if rng > 0:
                upper = curr.high - max(curr.open, curr.close)
                lower = min(curr.open, curr.close) - curr.low
                body_ratios.append(abs(curr.close - curr.open) / rng)
                shadow_ratios.append((upper - lower) / rng)
            else:
                body_ratios.append(0.0)
                shadow_ratios.append(0.0)

        mean_return = _mean(returns)
        momentum = sum(returns[-3:])

        return (
            math.tanh(mean_return * 100),
            math.tanh(calculate_std_dev(returns) * 10),
            _mean(body_ratios),
            math.tanh(_mean(shadow_ratios)),
            math.tanh(momentum * 50),
        )

    @staticmethod
    def _volume_features(window: list[CandleData]) -> tuple[float, ...]:
        volumes = [c.volume for c in window]
        closes = [c.close for c in window]

        mean_volume = _mean(volumes)
        ratio = volumes[-1] / mean_volume if mean_volume > 0 else 1.0
        # tanh(ln(0)) tends to -1
        log_ratio = math.log(ratio) if ratio > 0 else -math.inf

        return (
            math.tanh(log_ratio),
            math.tanh(calculate_linear_regression_slope(volumes) * 10),
            math.tanh(calculate_correlation(closes, volumes)),
        )

    @staticmethod
    def _temporal_features(candle: CandleData) -> tuple[float, ...]:
        dt = datetime.fromtimestamp(candle.timestamp / 1000.0, tz=timezone.utc)
        day_of_week = (dt.weekday() + 1) % 7  # Sunday = 0
        return (
            dt.hour / 23.0,
            day_of_week / 6.0,
            (dt.month - 1) / 11.0,
        )

    @staticmethod
    def _window_confidence(window: list[CandleData]) -> float:
        """Data-quality score: penalise price gaps and zero-volume bars."""
        if len(window) < SHORT_WINDOW:
            return MIN_CONFIDENCE

        confidence = BASE_CONFIDENCE
        for prev, curr in zip(window, window[1:]):
            gap = abs(curr.open - prev.close) / prev.close
            if gap > GAP_THRESHOLD:
                confidence *= GAP_PENALTY
            if curr.volume == 0:
                confidence *= ZERO_VOLUME_PENALTY
        return max(MIN_CONFIDENCE, confidence)


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0
