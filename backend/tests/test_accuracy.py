"""Tests for accuracy statistics."""

from datetime import datetime, timedelta, timezone

import pytest

from core.models import Direction, Prediction, PredictionTarget, Timeframe
from core.prediction import compute_accuracy

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def resolved(
    actual: float,
    age: timedelta,
    target: PredictionTarget = PredictionTarget.PRICE,
    timeframe: Timeframe = Timeframe.M5,
) -> Prediction:
    p = Prediction(
        created_at=NOW - age,
        target=target,
        timeframe=timeframe,
        direction=Direction.UP,
        current_value=100.0,
        predicted_value=101.0,
        predicted_change=1.0,
        confidence=50,
    )
    p.resolve(actual)
    return p


class TestComputeAccuracy:
    def test_basic_stats(self):
        predictions = [
            resolved(101, timedelta(hours=1)),   # correct, error 0
            resolved(103, timedelta(hours=2)),   # correct, error 2
            resolved(99, timedelta(days=3)),     # wrong, error 2
        ]
        [stats] = compute_accuracy(predictions, NOW, target=PredictionTarget.PRICE)

        assert stats.total_predictions == 3
        assert stats.correct_predictions == 2
        assert stats.accuracy == pytest.approx(200 / 3)
        assert stats.avg_error == pytest.approx(4 / 3)
        # Only the two recent ones fall in the 24h window
        assert stats.last_24h_accuracy == pytest.approx(100.0)

    def test_unresolved_ignored(self):
        active = Prediction(
            created_at=NOW,
            target=PredictionTarget.PRICE,
            timeframe=Timeframe.M5,
            direction=Direction.UP,
            current_value=100.0,
            predicted_value=101.0,
            predicted_change=1.0,
            confidence=50,
        )
        [stats] = compute_accuracy([active], NOW, target=PredictionTarget.PRICE)
        assert stats.total_predictions == 0
        assert stats.accuracy == 0.0

    def test_all_targets(self):
        predictions = [
            resolved(101, timedelta(hours=1)),
            resolved(99, timedelta(hours=1), target=PredictionTarget.TX_VOLUME),
        ]
        stats = compute_accuracy(predictions, NOW)

        assert [s.target for s in stats] == list(PredictionTarget)
        by_target = {s.target: s for s in stats}
        assert by_target[PredictionTarget.PRICE].accuracy == 100.0
        assert by_target[PredictionTarget.TX_VOLUME].accuracy == 0.0
        assert by_target[PredictionTarget.LARGE_TX].total_predictions == 0

    def test_timeframe_filter(self):
        predictions = [
            resolved(101, timedelta(hours=1), timeframe=Timeframe.M5),
            resolved(99, timedelta(hours=1), timeframe=Timeframe.H1),
        ]
        [stats] = compute_accuracy(
            predictions, NOW, target=PredictionTarget.PRICE, timeframe=Timeframe.H1
        )
        assert stats.total_predictions == 1
        assert stats.correct_predictions == 0
