"""Market data models — typed candles and prediction direction."""

import math
from dataclasses import dataclass, fields
from enum import Enum
from typing import Iterable


class Direction(str, Enum):
    """Predicted next-candle direction."""

    UP = "up"
    DOWN = "down"


@dataclass(frozen=True)
class CandleData:
    """A single OHLCV bar.

    ``timestamp`` is epoch milliseconds; ``index`` is the bar's position
    within its series (insertion order = chronological order).
    """

    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float
    index: int = 0


_CANDLE_FIELDS = {f.name for f in fields(CandleData)}


# ── Ingestion boundary ───────────────────────────────────────────────────


def validate_candle(candle: CandleData) -> None:
    """Reject a candle that breaks the OHLCV invariants.

    Raises ``ValueError`` describing the first violation found.
    """
    for name in ("open", "high", "low", "close"):
        value = getattr(candle, name)
        if not math.isfinite(value) or value <= 0:
            raise ValueError(f"{name} must be a positive finite number, got {value}")
    if not math.isfinite(candle.volume) or candle.volume < 0:
        raise ValueError(f"volume must be a non-negative finite number, got {candle.volume}")
    if candle.index < 0:
        raise ValueError(f"index must be non-negative, got {candle.index}")

    body_low = min(candle.open, candle.close)
    body_high = max(candle.open, candle.close)
    if not candle.low <= body_low <= body_high <= candle.high:
        raise ValueError(
            f"candle {candle.index} violates low <= open/close <= high "
            f"(o={candle.open}, h={candle.high}, l={candle.low}, c={candle.close})"
        )


def candles_from_records(records: Iterable[dict]) -> list[CandleData]:
    """Coerce plain dicts into validated ``CandleData``.

    Records missing ``index`` get their position in *records*.  Unknown
    keys are rejected rather than carried through.
    """
    candles: list[CandleData] = []
    seen: set[int] = set()
    for position, record in enumerate(records):
        unknown = set(record) - _CANDLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown candle field(s): {', '.join(sorted(unknown))}")
        try:
            candle = CandleData(
                timestamp=int(record["timestamp"]),
                open=float(record["open"]),
                high=float(record["high"]),
                low=float(record["low"]),
                close=float(record["close"]),
                volume=float(record["volume"]),
                index=int(record.get("index", position)),
            )
        except KeyError as exc:
            raise ValueError(f"Candle {position} missing field {exc.args[0]!r}") from exc
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Candle {position} has a malformed value: {exc}") from exc

        validate_candle(candle)
        if candle.index in seen:
            raise ValueError(f"Duplicate candle index {candle.index}")
        seen.add(candle.index)
        candles.append(candle)
    return candles
