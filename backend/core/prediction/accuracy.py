"""Accuracy statistics over resolved predictions."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable

from core.models.prediction import (
    Prediction,
    PredictionAccuracy,
    PredictionTarget,
    Timeframe,
)

RECENT_WINDOW = timedelta(hours=24)


def compute_accuracy(
    predictions: Iterable[Prediction],
    now: datetime,
    target: PredictionTarget | None = None,
    timeframe: Timeframe | None = None,
) -> list[PredictionAccuracy]:
    """
    Compute per-target accuracy from resolved predictions.

    Args:
        predictions: Any mix of active and resolved predictions
        now: Reference time for the 24h window (by creation time)
        target: Restrict to one target (default: all targets, in enum order)
        timeframe: Restrict to one timeframe

    Returns:
        One PredictionAccuracy per requested target (zeros when no data)
    """
    targets = [target] if target is not None else list(PredictionTarget)
    resolved = [
        p
        for p in predictions
        if p.resolved and (timeframe is None or p.timeframe == timeframe)
    ]

    results = []
    for t in targets:
        scoped = [p for p in resolved if p.target == t]
        correct = sum(1 for p in scoped if p.accurate)
        recent = [p for p in scoped if now - p.created_at < RECENT_WINDOW]
        recent_correct = sum(1 for p in recent if p.accurate)

        stats = PredictionAccuracy(target=t, total_predictions=len(scoped))
        stats.correct_predictions = correct
        if scoped:
            stats.accuracy = correct / len(scoped) * 100
            stats.avg_error = sum(p.error or 0.0 for p in scoped) / len(scoped)
        if recent:
            stats.last_24h_accuracy = recent_correct / len(recent) * 100
        results.append(stats)

    return results
