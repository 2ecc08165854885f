"""Data models shared by the prediction and alert subsystems."""

from core.models.alert import (
    Alert,
    AlertCategory,
    RuleFinding,
    RuleState,
    RuleStatus,
    Severity,
)
from core.models.market import (
    AddressActivity,
    ExchangeFlow,
    FeeRates,
    MarketSample,
    MempoolSnapshot,
    PricePoint,
    PriceSnapshot,
    TopHolder,
    TxType,
    WhaleTransaction,
)
from core.models.prediction import (
    CONFIDENCE_CEILING,
    CONFIDENCE_FLOOR,
    Direction,
    Impact,
    OutcomeScore,
    Prediction,
    PredictionAccuracy,
    PredictionReason,
    PredictionTarget,
    ResolutionExplanation,
    Signal,
    Timeframe,
    score_outcome,
)

__all__ = [
    # Alerts
    "Alert",
    "AlertCategory",
    "RuleFinding",
    "RuleState",
    "RuleStatus",
    "Severity",
    # Market data
    "AddressActivity",
    "ExchangeFlow",
    "FeeRates",
    "MarketSample",
    "MempoolSnapshot",
    "PricePoint",
    "PriceSnapshot",
    "TopHolder",
    "TxType",
    "WhaleTransaction",
    # Predictions
    "CONFIDENCE_CEILING",
    "CONFIDENCE_FLOOR",
    "Direction",
    "Impact",
    "OutcomeScore",
    "Prediction",
    "PredictionAccuracy",
    "PredictionReason",
    "PredictionTarget",
    "ResolutionExplanation",
    "Signal",
    "Timeframe",
    "score_outcome",
]
