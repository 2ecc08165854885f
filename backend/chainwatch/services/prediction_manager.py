"""Prediction lifecycle: generate, persist, time out, resolve.

One prediction list per timeframe is kept in memory (most recent first)
and mirrored to the list store under ``predictions:<timeframe>``. The
in-memory lists are authoritative for the running process.

Slots are (target, timeframe) pairs. Per slot:
- at most one generation is in flight (re-entrancy guard)
- the newest unresolved prediction is the Active one
- an epoch counter, advanced by clear_history(), invalidates generations
  whose data arrives after the slot moved on
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable

from pydantic import ValidationError

from chainwatch.services.sampling import collect_sample
from chainwatch.storage.cache import predictions_key
from core.models.prediction import (
    Prediction,
    PredictionAccuracy,
    PredictionTarget,
    Timeframe,
)
from core.prediction.accuracy import compute_accuracy
from core.prediction.aggregator import NEUTRAL_ACCURACY, adjust_confidence
from core.prediction.explainer import explain_resolution
from core.prediction.targets import (
    FeatureHistory,
    FeedRequest,
    build_prediction,
    generation_feeds,
    observation_feeds,
    observe_actual,
)
from core.protocols import ListStore, MarketDataSource

logger = logging.getLogger(__name__)

Slot = tuple[PredictionTarget, Timeframe]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _slot_name(slot: Slot) -> str:
    return f"{slot[0].value}:{slot[1].value}"


class PredictionManager:
    """Owns every prediction slot and its persisted history."""

    def __init__(
        self,
        source: MarketDataSource,
        store: ListStore,
        slots: list[Slot],
        cap: int = 500,
        min_resolved_for_accuracy: int = 5,
        large_tx_min_btc: float = 10.0,
        large_tx_block_depth: int = 2,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.source = source
        self.store = store
        self.slots = list(slots)
        self.cap = cap
        self.min_resolved_for_accuracy = min_resolved_for_accuracy
        self.large_tx_min_btc = large_tx_min_btc
        self.large_tx_block_depth = large_tx_block_depth
        self.clock = clock

        self.history = FeatureHistory()
        self._predictions: dict[Timeframe, list[Prediction]] = {
            tf: [] for tf in self.timeframes
        }
        self._in_flight: set[Slot] = set()
        self._epochs: dict[Slot, int] = {slot: 0 for slot in self.slots}
        self._resolving = False
        self._save_lock = asyncio.Lock()

    @property
    def timeframes(self) -> list[Timeframe]:
        """Configured timeframes in first-seen order."""
        seen: list[Timeframe] = []
        for _, tf in self.slots:
            if tf not in seen:
                seen.append(tf)
        return seen

    def slots_for(self, timeframe: Timeframe) -> list[Slot]:
        return [slot for slot in self.slots if slot[1] == timeframe]

    # =========================================================================
    # Persistence
    # =========================================================================

    async def load(self) -> int:
        """Restore persisted predictions. Returns the number loaded."""
        total = 0
        for tf in self.timeframes:
            records = await self.store.load_list(predictions_key(tf.value))
            predictions = []
            for record in records:
                try:
                    predictions.append(Prediction.model_validate(record))
                except ValidationError as e:
                    logger.warning(f"Skipping invalid stored prediction ({tf.value}): {e}")
            self._predictions[tf] = predictions[: self.cap]
            total += len(self._predictions[tf])
        logger.info(f"Loaded {total} stored predictions")
        return total

    async def _save(self, timeframe: Timeframe) -> bool:
        async with self._save_lock:
            records = [
                p.model_dump(mode="json") for p in self._predictions[timeframe][: self.cap]
            ]
            return await self.store.save_list(predictions_key(timeframe.value), records, self.cap)

    def _insert(self, prediction: Prediction) -> None:
        items = self._predictions.setdefault(prediction.timeframe, [])
        items.insert(0, prediction)
        del items[self.cap:]

    # =========================================================================
    # Queries
    # =========================================================================

    def all_predictions(self) -> list[Prediction]:
        return [p for tf in self._predictions for p in self._predictions[tf]]

    @property
    def active_predictions(self) -> list[Prediction]:
        """The Active prediction of every slot that has one."""
        result = []
        for target, tf in self.slots:
            active = self.active_for(target, tf)
            if active is not None:
                result.append(active)
        return result

    @property
    def resolved_predictions(self) -> list[Prediction]:
        """Resolved predictions, most recently created first."""
        resolved = [p for p in self.all_predictions() if p.resolved]
        resolved.sort(key=lambda p: p.created_at, reverse=True)
        return resolved

    def active_for(self, target: PredictionTarget, timeframe: Timeframe) -> Prediction | None:
        """Newest unresolved prediction of a slot."""
        for p in self._predictions.get(timeframe, []):
            if p.target == target and not p.resolved:
                return p
        return None

    def get_accuracy(
        self,
        target: PredictionTarget | None = None,
        timeframe: Timeframe | None = None,
    ) -> list[PredictionAccuracy]:
        return compute_accuracy(self.all_predictions(), self.clock(), target, timeframe)

    def slot_accuracy(self, target: PredictionTarget, timeframe: Timeframe) -> float:
        """Historical accuracy of a slot, or the neutral default without enough history."""
        resolved = [
            p
            for p in self._predictions.get(timeframe, [])
            if p.target == target and p.resolved
        ]
        if len(resolved) <= self.min_resolved_for_accuracy:
            return NEUTRAL_ACCURACY
        correct = sum(1 for p in resolved if p.accurate)
        return correct / len(resolved) * 100

    def initial_delay(self, timeframe: Timeframe) -> float:
        """Seconds left on the newest Active prediction of a timeframe (0 if none)."""
        now = self.clock()
        for p in self._predictions.get(timeframe, []):
            if not p.resolved:
                return p.seconds_remaining(now)
        return 0.0

    # =========================================================================
    # Generation
    # =========================================================================

    async def generate(self, target: PredictionTarget, timeframe: Timeframe) -> Prediction | None:
        """Generate one slot on demand."""
        created = await self._generate_slots([(target, timeframe)])
        return created[0] if created else None

    async def generate_timeframe(self, timeframe: Timeframe) -> list[Prediction]:
        """Generate every slot of a timeframe from one shared sample."""
        return await self._generate_slots(self.slots_for(timeframe))

    async def _generate_slots(self, slots: list[Slot]) -> list[Prediction]:
        runnable = []
        for slot in slots:
            if slot in self._in_flight:
                logger.debug(f"Generation for {_slot_name(slot)} already running, skipping")
                continue
            runnable.append(slot)
        if not runnable:
            return []

        self._in_flight.update(runnable)
        try:
            epochs = {slot: self._epochs.get(slot, 0) for slot in runnable}
            request = FeedRequest()
            for target, tf in runnable:
                request = request.merge(generation_feeds(target, tf))

            sample = await collect_sample(
                self.source,
                request,
                self.clock(),
                self.large_tx_min_btc,
                self.large_tx_block_depth,
            )
            if sample.mempool is not None and any(
                t == PredictionTarget.TX_VOLUME for t, _ in runnable
            ):
                self.history.record(sample.mempool)

            created: list[Prediction] = []
            for slot in runnable:
                if self._epochs.get(slot, 0) != epochs[slot]:
                    logger.info(f"Discarding stale generation for {_slot_name(slot)}")
                    continue
                prediction = self._build(slot, sample)
                if prediction is not None:
                    self._insert(prediction)
                    created.append(prediction)

            for tf in {p.timeframe for p in created}:
                await self._save(tf)
            return created
        finally:
            self._in_flight.difference_update(runnable)

    def _build(self, slot: Slot, sample) -> Prediction | None:
        target, tf = slot
        try:
            result = build_prediction(target, tf, sample, self.history)
        except Exception as e:
            logger.error(f"Predictor for {_slot_name(slot)} failed: {e}", exc_info=True)
            return None

        if result is None:
            logger.info(f"Skipping {_slot_name(slot)} generation: insufficient data")
            return None

        accuracy = self.slot_accuracy(target, tf)
        prediction = Prediction(
            created_at=self.clock(),
            target=target,
            timeframe=tf,
            direction=result.direction,
            current_value=result.current_value,
            predicted_value=result.predicted_value,
            predicted_change=result.change,
            confidence=adjust_confidence(result.confidence, accuracy),
            signals=result.signals,
            reasons=result.reasons or None,
        )
        logger.info(
            f"New prediction {_slot_name(slot)}: {prediction.direction.value} "
            f"{prediction.predicted_change:+.2f}% (confidence {prediction.confidence})"
        )
        return prediction

    # =========================================================================
    # Resolution
    # =========================================================================

    def expired_predictions(self) -> list[Prediction]:
        now = self.clock()
        return [p for p in self.all_predictions() if p.is_expired(now)]

    async def resolve_expired(self) -> list[Prediction]:
        """Resolve every expired prediction whose actual value is available."""
        if self._resolving:
            logger.debug("Resolve pass already running, skipping")
            return []

        expired = self.expired_predictions()
        if not expired:
            return []

        self._resolving = True
        try:
            request = FeedRequest()
            for target in {p.target for p in expired}:
                request = request.merge(observation_feeds(target))
            sample = await collect_sample(
                self.source,
                request,
                self.clock(),
                self.large_tx_min_btc,
                self.large_tx_block_depth,
            )

            now = self.clock()
            resolved: list[Prediction] = []
            for prediction in expired:
                actual = observe_actual(prediction.target, sample)
                if actual is None:
                    logger.info(
                        f"No actual value for {prediction.target.value}:"
                        f"{prediction.timeframe.value}, retrying next pass"
                    )
                    continue
                explanation = explain_resolution(prediction, actual)
                if prediction.resolve(actual, resolved_at=now, explanation=explanation):
                    resolved.append(prediction)
                    logger.info(f"Resolved {prediction.id}: {explanation.summary}")

            for tf in {p.timeframe for p in resolved}:
                if tf in self._predictions:
                    await self._save(tf)
            return resolved
        finally:
            self._resolving = False

    # =========================================================================
    # Maintenance
    # =========================================================================

    async def clear_history(self, timeframe: Timeframe | None = None) -> None:
        """Drop stored predictions for one or all timeframes.

        Clearing every timeframe also empties the rolling feature history.
        """
        timeframes = [timeframe] if timeframe is not None else self.timeframes
        if timeframe is None:
            self.history.clear()
        for tf in timeframes:
            self._predictions[tf] = []
            for slot in self.slots_for(tf):
                self._epochs[slot] = self._epochs.get(slot, 0) + 1
            await self._save(tf)
        logger.info(f"Cleared prediction history: {', '.join(tf.value for tf in timeframes)}")
