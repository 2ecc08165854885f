"""Weighted signal aggregation and confidence adjustment.

Aggregation rules:
- direction = up iff upWeight > downWeight * 1.2, down iff the mirror holds,
  otherwise neutral (hysteresis band against flip-flopping on near ties)
- agreement = max(upWeight, downWeight) / totalWeight (neutral weights count
  towards the total)
- confidence = clamp(round(agreement * 70 + 15), 15, 85)
- change = +/-(agreement - 0.5) * 2 * 0.5 signed by direction, 0 when neutral

Magnitude comes from agreement only, never from raw indicator values.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable

from core.models.prediction import (
    CONFIDENCE_CEILING,
    CONFIDENCE_FLOOR,
    Direction,
    PredictionReason,
    Signal,
)

HYSTERESIS = 1.2
CONFIDENCE_SPAN = CONFIDENCE_CEILING - CONFIDENCE_FLOOR  # 70
CHANGE_SCALE = 0.5

# Accuracy assumed for a slot without enough history
NEUTRAL_ACCURACY = 50.0


@dataclass
class AggregateResult:
    """Outcome of combining weighted signals."""

    direction: Direction
    change: float  # Percent
    confidence: int
    signals: list[Signal] = field(default_factory=list)
    reasons: list[PredictionReason] = field(default_factory=list)
    current_value: float = 0.0
    agreement: float = 0.0

    @property
    def predicted_value(self) -> float:
        return self.current_value * (1 + self.change / 100)


def clamp_confidence(value: float) -> int:
    """Round half up and clamp a confidence to [15, 85].

    Values are first snapped to 9 decimals so weight ratios such as
    0.6 / 0.8 land on their exact half instead of just below it.
    """
    rounded = math.floor(round(value, 9) + 0.5)
    return int(min(CONFIDENCE_CEILING, max(CONFIDENCE_FLOOR, rounded)))


def aggregate_signals(
    signals: Iterable[Signal],
    current_value: float = 0.0,
) -> AggregateResult:
    """
    Combine weighted directional signals into direction, change and confidence.

    Args:
        signals: Signals to combine (raw values are carried for audit only)
        current_value: Value the predicted change applies to

    Returns:
        AggregateResult
    """
    signals = list(signals)
    if not signals:
        return AggregateResult(
            direction=Direction.NEUTRAL,
            change=0.0,
            confidence=CONFIDENCE_FLOOR,
            signals=signals,
            current_value=current_value,
        )

    up_weight = 0.0
    down_weight = 0.0
    total_weight = 0.0
    for s in signals:
        total_weight += s.weight
        if s.direction == Direction.UP:
            up_weight += s.weight
        elif s.direction == Direction.DOWN:
            down_weight += s.weight

    if up_weight > down_weight * HYSTERESIS:
        direction = Direction.UP
    elif down_weight > up_weight * HYSTERESIS:
        direction = Direction.DOWN
    else:
        direction = Direction.NEUTRAL

    agreement = max(up_weight, down_weight) / total_weight if total_weight > 0 else 0.0
    confidence = clamp_confidence(agreement * CONFIDENCE_SPAN + CONFIDENCE_FLOOR)

    if direction == Direction.NEUTRAL:
        change = 0.0
    else:
        change_base = (agreement - 0.5) * 2
        change = change_base * CHANGE_SCALE
        if direction == Direction.DOWN:
            change = -change

    return AggregateResult(
        direction=direction,
        change=change,
        confidence=confidence,
        signals=signals,
        current_value=current_value,
        agreement=agreement,
    )


def adjust_confidence(base_confidence: float, historical_accuracy: float) -> int:
    """
    Damp a confidence by historical accuracy.

    adjusted = base * (0.5 + 0.5 * accuracy / 100), clamped to [15, 85].
    Callers without history pass NEUTRAL_ACCURACY (multiplier 0.75).
    """
    adjusted = base_confidence * (0.5 + 0.5 * (historical_accuracy / 100))
    return clamp_confidence(adjusted)
