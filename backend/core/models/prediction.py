"""Prediction data models."""

import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# Confidence bounds for a heuristic (non-learned) scorer
CONFIDENCE_FLOOR = 15
CONFIDENCE_CEILING = 85

# |actual change| below this (percent) counts as "flat" for neutral calls
NEUTRAL_BAND_PCT = 0.1


class Direction(str, Enum):
    """Forecast direction."""

    UP = "up"
    DOWN = "down"
    NEUTRAL = "neutral"


class Impact(str, Enum):
    """Market impact label attached to a prediction reason."""

    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class PredictionTarget(str, Enum):
    """What a prediction forecasts."""

    PRICE = "price"
    TX_VOLUME = "tx_volume"
    WHALE_MOVEMENT = "whale_movement"
    LARGE_TX = "large_tx"
    HOLDER_TREND = "holder_trend"
    CORRELATION_SIGNAL = "correlation_signal"
    EXCHANGE_NETFLOW = "exchange_netflow"
    WHALE_ALERT_FREQ = "whale_alert_freq"


class Timeframe(str, Enum):
    """Forecast horizon."""

    M5 = "5m"
    M20 = "20m"
    H1 = "1h"
    H6 = "6h"
    H12 = "12h"
    D1 = "1d"
    W1 = "1w"

    @property
    def seconds(self) -> int:
        return _TIMEFRAME_SECONDS[self]

    @property
    def duration(self) -> timedelta:
        return timedelta(seconds=self.seconds)

    @property
    def price_days(self) -> int:
        """Days of price history sampled for this horizon."""
        return _TIMEFRAME_PRICE_DAYS[self]


_TIMEFRAME_SECONDS = {
    Timeframe.M5: 300,
    Timeframe.M20: 1200,
    Timeframe.H1: 3600,
    Timeframe.H6: 21600,
    Timeframe.H12: 43200,
    Timeframe.D1: 86400,
    Timeframe.W1: 604800,
}

_TIMEFRAME_PRICE_DAYS = {
    Timeframe.M5: 1,
    Timeframe.M20: 1,
    Timeframe.H1: 2,
    Timeframe.H6: 7,
    Timeframe.H12: 14,
    Timeframe.D1: 30,
    Timeframe.W1: 90,
}


class Signal(BaseModel):
    """A single indicator's directional opinion."""

    model_config = ConfigDict(frozen=True)

    name: str
    direction: Direction
    weight: float = Field(gt=0, le=1)
    value: float  # Raw indicator reading, audit only


class PredictionReason(BaseModel):
    """Human-readable reason behind a prediction."""

    model_config = ConfigDict(frozen=True)

    signal: str
    impact: Impact
    detail: str


class ResolutionExplanation(BaseModel):
    """Audit trail produced when a prediction is resolved."""

    summary: str
    reasons: list[str] = Field(default_factory=list)
    key_factor: str
    confirmed_signals: list[str] = Field(default_factory=list)
    contradicted_signals: list[str] = Field(default_factory=list)


@dataclass(frozen=True)
class OutcomeScore:
    """Direction correctness and error of a forecast against an observed value."""

    actual_change: float
    accurate: bool
    error: float


def score_outcome(
    direction: Direction,
    current_value: float,
    predicted_change: float,
    actual_value: float,
) -> OutcomeScore:
    """Score a forecast against the later-observed value.

    actual_change = (actual - current) / current * 100 (0 when current is 0)
    up is correct iff actual_change > 0, down iff < 0,
    neutral iff |actual_change| < NEUTRAL_BAND_PCT.
    error = |actual_change - predicted_change|
    """
    actual_change = (
        (actual_value - current_value) / current_value * 100
        if current_value != 0
        else 0.0
    )

    if direction == Direction.UP:
        accurate = actual_change > 0
    elif direction == Direction.DOWN:
        accurate = actual_change < 0
    else:
        accurate = abs(actual_change) < NEUTRAL_BAND_PCT

    return OutcomeScore(
        actual_change=actual_change,
        accurate=accurate,
        error=abs(actual_change - predicted_change),
    )


def _generate_prediction_id(
    target: PredictionTarget, timeframe: Timeframe, created_at: datetime
) -> str:
    """Deterministic ID: same slot and creation time always yield the same ID."""
    ts_str = created_at.strftime("%Y%m%d%H%M%S%f")
    key = f"{target.value}:{timeframe.value}:{ts_str}"
    return hashlib.sha256(key.encode()).hexdigest()[:32]


class Prediction(BaseModel):
    """A directional forecast for one (target, timeframe) slot."""

    id: str = ""  # Set in model_post_init
    created_at: datetime
    target_time: datetime | None = None  # Set in model_post_init
    target: PredictionTarget
    timeframe: Timeframe
    direction: Direction
    current_value: float
    predicted_value: float
    predicted_change: float  # Percent
    confidence: int = Field(ge=CONFIDENCE_FLOOR, le=CONFIDENCE_CEILING)
    signals: list[Signal] = Field(default_factory=list)
    reasons: list[PredictionReason] | None = None

    resolved: bool = False
    resolved_at: datetime | None = None
    actual_value: float | None = None
    actual_change: float | None = None
    accurate: bool | None = None
    error: float | None = None
    resolution: ResolutionExplanation | None = None

    def model_post_init(self, __context) -> None:
        """Derive ID and target time after initialization."""
        if not self.id:
            object.__setattr__(
                self,
                "id",
                _generate_prediction_id(self.target, self.timeframe, self.created_at),
            )
        if self.target_time is None:
            object.__setattr__(
                self, "target_time", self.created_at + self.timeframe.duration
            )

    @property
    def slot(self) -> tuple["PredictionTarget", "Timeframe"]:
        return self.target, self.timeframe

    def is_expired(self, now: datetime) -> bool:
        """True once the horizon has passed and the prediction awaits resolution."""
        return not self.resolved and self.target_time <= now

    def seconds_remaining(self, now: datetime) -> float:
        """Countdown to target time, never negative."""
        return max(0.0, (self.target_time - now).total_seconds())

    def resolve(
        self,
        actual_value: float,
        resolved_at: datetime | None = None,
        explanation: ResolutionExplanation | None = None,
    ) -> bool:
        """
        Resolve against an observed value.

        Returns True if the prediction changed. An already resolved
        prediction is left untouched.
        """
        if self.resolved:
            return False

        score = score_outcome(
            self.direction, self.current_value, self.predicted_change, actual_value
        )
        self.resolved = True
        self.resolved_at = resolved_at
        self.actual_value = actual_value
        self.actual_change = score.actual_change
        self.accurate = score.accurate
        self.error = score.error
        self.resolution = explanation
        return True


@dataclass
class PredictionAccuracy:
    """Accuracy statistics for one target, derived from resolved predictions."""

    target: PredictionTarget
    total_predictions: int = 0
    correct_predictions: int = 0
    accuracy: float = 0.0  # Percent
    avg_error: float = 0.0  # Percent points
    last_24h_accuracy: float = 0.0  # Percent
