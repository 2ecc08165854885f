"""Human-readable explanations for resolved predictions."""

from __future__ import annotations

from core.models.prediction import (
    Direction,
    Impact,
    Prediction,
    ResolutionExplanation,
    score_outcome,
)

# Magnitude error bands (percent points)
PRECISE_ERROR = 0.5
ACCEPTABLE_ERROR = 2.0
# Error below which a correct call counts as "magnitude accurate"
KEY_FACTOR_ERROR = 1.0

KEY_FACTOR_ALIGNED = "signals aligned and magnitude accurate"
KEY_FACTOR_MAGNITUDE_OFF = "direction right, magnitude off"
KEY_FACTOR_AGAINST = "market moved against the dominant signals"

_DIRECTION_WORDS = {
    Direction.UP: "up",
    Direction.DOWN: "down",
    Direction.NEUTRAL: "flat",
}


def _move_word(change: float) -> str:
    if change > 0:
        return "up"
    if change < 0:
        return "down"
    return "flat"


def _signed(value: float) -> str:
    return f"{value:+.2f}%"


def explain_resolution(prediction: Prediction, actual_value: float) -> ResolutionExplanation:
    """
    Explain how a prediction fared against the observed value.

    Reasons partition the prediction's own reasons (if any) into confirmed
    signals (impact matches the sign of the actual move) and contradicted
    ones (impact opposes it).
    """
    score = score_outcome(
        prediction.direction,
        prediction.current_value,
        prediction.predicted_change,
        actual_value,
    )
    actual_change = score.actual_change
    error = score.error
    predicted_word = _DIRECTION_WORDS[prediction.direction]
    actual_word = _move_word(actual_change)

    reasons: list[str] = []
    if score.accurate:
        reasons.append(
            f"Direction correct: predicted {predicted_word}, actual {actual_word}"
        )
        if error < PRECISE_ERROR:
            reasons.append(f"Magnitude precise, error below {PRECISE_ERROR}%")
        elif error < ACCEPTABLE_ERROR:
            reasons.append(f"Magnitude error {error:.2f}%, within a reasonable range")
        else:
            reasons.append(
                f"Magnitude error {error:.2f}%, direction right but size misjudged"
            )
    else:
        reasons.append(
            f"Direction wrong: predicted {predicted_word}, actual {actual_word}"
        )
        reasons.append(f"Actual change {_signed(actual_change)} ran against the call")

    confirmed: list[str] = []
    contradicted: list[str] = []
    for reason in prediction.reasons or []:
        if actual_change > 0:
            agrees = reason.impact == Impact.BULLISH
            opposes = reason.impact == Impact.BEARISH
        elif actual_change < 0:
            agrees = reason.impact == Impact.BEARISH
            opposes = reason.impact == Impact.BULLISH
        else:
            agrees = reason.impact == Impact.NEUTRAL
            opposes = False
        if agrees:
            confirmed.append(reason.signal)
        elif opposes:
            contradicted.append(reason.signal)

    if confirmed:
        reasons.append(f"Confirmed signals: {', '.join(confirmed)}")
    if contradicted:
        reasons.append(f"Contradicted signals: {', '.join(contradicted)}")

    if not score.accurate:
        key_factor = KEY_FACTOR_AGAINST
    elif error < KEY_FACTOR_ERROR:
        key_factor = KEY_FACTOR_ALIGNED
    else:
        key_factor = KEY_FACTOR_MAGNITUDE_OFF

    verdict = "Correct" if score.accurate else "Wrong"
    summary = (
        f"{verdict}: predicted {predicted_word} {_signed(prediction.predicted_change)}, "
        f"actual {actual_word} {_signed(actual_change)}"
    )
    if score.accurate:
        summary += f", error {error:.2f}%"

    return ResolutionExplanation(
        summary=summary,
        reasons=reasons,
        key_factor=key_factor,
        confirmed_signals=confirmed,
        contradicted_signals=contradicted,
    )
