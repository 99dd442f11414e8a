"""Rule-based direction scorer — weighted technical signals plus a seeded perturbation.

Pure function of ``(features, seed)``: the only randomness is derived from
the seed string, so fixing the seed makes scoring fully reproducible.
"""

import re
from dataclasses import dataclass

from tradelens.ml.features import FeatureVector
from tradelens.strategy.models import Direction


# Signal thresholds and weights
RSI_OVERSOLD = 0.3
RSI_OVERBOUGHT = 0.7
RSI_WEIGHT = 0.3
BB_LOWER = -0.8
BB_UPPER = 0.8
BB_WEIGHT = 0.2
MACD_WEIGHT = 0.25
STOCH_OVERSOLD = 0.2
STOCH_OVERBOUGHT = 0.8
STOCH_WEIGHT = 0.15
MOMENTUM_WEIGHT = 0.3

PERTURBATION_SCALE = 0.1
VOLUME_CONFIRMATION_THRESHOLD = 0.1
VOLUME_CONFIRMATION_WEIGHT = 0.2

MIN_PROBABILITY = 0.5
MAX_PROBABILITY = 0.95
MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 0.95

_HEX_PREFIX = re.compile(r"[0-9a-fA-F]{1,8}")


@dataclass(frozen=True)
class ScoreResult:
    """Direction, probability and confidence for one feature vector."""

    direction: Direction
    probability: float
    confidence: float
    score: float


def seed_perturbation(seed: str) -> float:
    """Map the first 8 hex characters of *seed* onto [-0.05, 0.05].

    Only the leading run of hex digits counts (``"1234567g"`` reads as
    ``0x1234567``); signs, ``0x`` and underscores are not digits.  A seed
    without a leading hex digit contributes nothing.
    """
    match = _HEX_PREFIX.match(seed[:8])
    if match is None:
        return 0.0
    raw = int(match.group(), 16)
    return (raw / 0xFFFFFFFF - 0.5) * PERTURBATION_SCALE


def score_features(features: FeatureVector, seed: str) -> ScoreResult:
    """Score *features* into a direction prediction.

    Oversold readings push the score up, overbought readings push it
    down; MACD and recent momentum add linearly.  A flat window leaves
    only the seeded perturbation, so the direction is effectively a coin
    flip there.
    """
    score = 0.0

    if features.rsi < RSI_OVERSOLD:
        score += RSI_WEIGHT
    elif features.rsi > RSI_OVERBOUGHT:
        score -= RSI_WEIGHT

    if features.bollinger_position < BB_LOWER:
        score += BB_WEIGHT
    elif features.bollinger_position > BB_UPPER:
        score -= BB_WEIGHT

    score += features.macd * MACD_WEIGHT

    if features.stochastic < STOCH_OVERSOLD:
        score += STOCH_WEIGHT
    elif features.stochastic > STOCH_OVERBOUGHT:
        score -= STOCH_WEIGHT

    score += features.momentum * MOMENTUM_WEIGHT
    score += seed_perturbation(seed)

    direction = Direction.UP if score > 0 else Direction.DOWN
    strength = abs(score)
    probability = _clamp(0.5 + strength, MIN_PROBABILITY, MAX_PROBABILITY)

    confidence = 0.5 + strength * 0.5 + features.metadata.confidence * 0.3
    if strength > VOLUME_CONFIRMATION_THRESHOLD:
        confidence += abs(features.volume_ratio) * VOLUME_CONFIRMATION_WEIGHT
    confidence = _clamp(confidence, MIN_CONFIDENCE, MAX_CONFIDENCE)

    return ScoreResult(
        direction=direction,
        probability=probability,
        confidence=confidence,
        score=score,
    )


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
