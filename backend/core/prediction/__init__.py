"""Prediction logic: aggregation, predictors, resolution and accuracy."""

from core.prediction.accuracy import compute_accuracy
from core.prediction.aggregator import (
    NEUTRAL_ACCURACY,
    AggregateResult,
    adjust_confidence,
    aggregate_signals,
    clamp_confidence,
)
from core.prediction.explainer import explain_resolution
from core.prediction.predictors import (
    predict_correlation_signal,
    predict_exchange_netflow,
    predict_holder_trend,
    predict_large_tx,
    predict_price,
    predict_tx_volume,
    predict_whale_alert_freq,
    predict_whale_movement,
)
from core.prediction.targets import (
    FeatureHistory,
    FeedRequest,
    build_prediction,
    generation_feeds,
    observation_feeds,
    observe_actual,
)

__all__ = [
    "AggregateResult",
    "FeatureHistory",
    "FeedRequest",
    "NEUTRAL_ACCURACY",
    "adjust_confidence",
    "aggregate_signals",
    "build_prediction",
    "clamp_confidence",
    "compute_accuracy",
    "explain_resolution",
    "generation_feeds",
    "observation_feeds",
    "observe_actual",
    "predict_correlation_signal",
    "predict_exchange_netflow",
    "predict_holder_trend",
    "predict_large_tx",
    "predict_price",
    "predict_tx_volume",
    "predict_whale_alert_freq",
    "predict_whale_movement",
]
