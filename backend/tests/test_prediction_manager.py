"""Tests for the prediction lifecycle manager."""

import asyncio
from datetime import timedelta

import pytest

from conftest import NOW, make_whale, price_points
from chainwatch.services import PredictionManager, collect_sample
from core.models import (
    Direction,
    ExchangeFlow,
    MempoolSnapshot,
    Prediction,
    PredictionTarget,
    PriceSnapshot,
    Timeframe,
)
from core.prediction import FeedRequest, NEUTRAL_ACCURACY

PRICE_5M = (PredictionTarget.PRICE, Timeframe.M5)
WHALES_5M = (PredictionTarget.WHALE_MOVEMENT, Timeframe.M5)


class MutableClock:
    def __init__(self):
        self.now = NOW

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return MutableClock()


@pytest.fixture
def manager(source, store, clock):
    return PredictionManager(source, store, [PRICE_5M, WHALES_5M], clock=clock)


def rising_prices(n: int = 40) -> list:
    return price_points([100.0 + i for i in range(n)])


def resolved_prediction(created_at, accurate: bool) -> Prediction:
    p = Prediction(
        created_at=created_at,
        target=PredictionTarget.PRICE,
        timeframe=Timeframe.M5,
        direction=Direction.UP,
        current_value=100.0,
        predicted_value=101.0,
        predicted_change=1.0,
        confidence=50,
    )
    p.resolve(102.0 if accurate else 98.0, resolved_at=created_at)
    return p


class TestGenerate:
    @pytest.mark.asyncio
    async def test_generate_price(self, source, manager, store):
        source.prices = {1: rising_prices()}

        prediction = await manager.generate(*PRICE_5M)

        assert prediction is not None
        assert prediction.created_at == NOW
        assert prediction.target_time == NOW + timedelta(minutes=5)
        assert 15 <= prediction.confidence <= 85
        assert manager.active_for(*PRICE_5M) is prediction
        stored = await store.load_list("predictions:5m")
        assert [r["id"] for r in stored] == [prediction.id]

    @pytest.mark.asyncio
    async def test_insufficient_history_skips(self, source, manager, store):
        source.prices = {1: rising_prices(10)}

        assert await manager.generate(*PRICE_5M) is None
        assert manager.all_predictions() == []
        assert await store.load_list("predictions:5m") == []

    @pytest.mark.asyncio
    async def test_failed_feed_skips(self, source, manager):
        source.prices = RuntimeError("coingecko down")
        assert await manager.generate(*PRICE_5M) is None

    @pytest.mark.asyncio
    async def test_timeframe_shares_one_sample(self, source, manager):
        source.prices = {1: rising_prices()}
        source.transactions = [make_whale(80)]

        created = await manager.generate_timeframe(Timeframe.M5)

        assert {p.target for p in created} == {PredictionTarget.PRICE, PredictionTarget.WHALE_MOVEMENT}
        assert source.calls.count("prices:1") == 1
        assert source.calls.count("large_transactions") == 1

    @pytest.mark.asyncio
    async def test_newer_prediction_becomes_active(self, source, manager, clock):
        source.transactions = []
        first = await manager.generate(*WHALES_5M)
        clock.advance(seconds=1)
        second = await manager.generate(*WHALES_5M)

        assert manager.active_for(*WHALES_5M) is second
        assert first.id != second.id
        assert manager.active_predictions == [second]

    @pytest.mark.asyncio
    async def test_in_flight_generation_skipped(self, source, manager):
        gate = asyncio.Event()
        original = source.get_large_transactions

        async def slow(min_amount, block_depth):
            await gate.wait()
            return await original(min_amount, block_depth)

        source.get_large_transactions = slow
        first = asyncio.create_task(manager.generate(*WHALES_5M))
        await asyncio.sleep(0)

        assert await manager.generate(*WHALES_5M) is None
        gate.set()
        assert await first is not None

    @pytest.mark.asyncio
    async def test_clear_history_discards_in_flight(self, source, manager, store):
        gate = asyncio.Event()
        original = source.get_large_transactions

        async def slow(min_amount, block_depth):
            await gate.wait()
            return await original(min_amount, block_depth)

        source.get_large_transactions = slow
        pending = asyncio.create_task(manager.generate(*WHALES_5M))
        await asyncio.sleep(0)

        await manager.clear_history(Timeframe.M5)
        gate.set()

        assert await pending is None
        assert manager.all_predictions() == []
        assert await store.load_list("predictions:5m") == []

    @pytest.mark.asyncio
    async def test_cap(self, source, store, clock):
        manager = PredictionManager(source, store, [WHALES_5M], cap=3, clock=clock)
        for _ in range(5):
            await manager.generate(*WHALES_5M)
            clock.advance(seconds=1)

        assert len(manager.all_predictions()) == 3
        assert len(await store.load_list("predictions:5m")) == 3


class TestResolve:
    @pytest.mark.asyncio
    async def test_resolve_after_expiry(self, source, manager, clock):
        source.prices = {1: rising_prices()}
        source.snapshot = PriceSnapshot(price=139.0)
        prediction = await manager.generate(*PRICE_5M)

        assert await manager.resolve_expired() == []

        clock.advance(minutes=5)
        source.snapshot = PriceSnapshot(price=150.0)
        resolved = await manager.resolve_expired()

        assert resolved == [prediction]
        assert prediction.resolved
        assert prediction.actual_value == 150.0
        assert prediction.resolved_at == clock.now
        assert prediction.resolution is not None
        assert manager.active_for(*PRICE_5M) is None
        assert manager.resolved_predictions == [prediction]

    @pytest.mark.asyncio
    async def test_unavailable_actual_retried(self, source, manager, clock):
        source.prices = {1: rising_prices()}
        prediction = await manager.generate(*PRICE_5M)
        clock.advance(minutes=6)

        source.snapshot = PriceSnapshot(price=0.0)
        assert await manager.resolve_expired() == []
        assert not prediction.resolved

        source.snapshot = RuntimeError("timeout")
        assert await manager.resolve_expired() == []

        source.snapshot = PriceSnapshot(price=120.0)
        assert await manager.resolve_expired() == [prediction]

    @pytest.mark.asyncio
    async def test_resolved_once(self, source, manager, clock, store):
        source.transactions = [make_whale(60)]
        await manager.generate(*WHALES_5M)
        clock.advance(minutes=5)

        assert len(await manager.resolve_expired()) == 1
        assert await manager.resolve_expired() == []
        [record] = await store.load_list("predictions:5m")
        assert record["resolved"] is True


class TestPersistence:
    @pytest.mark.asyncio
    async def test_load_restores_and_recovers_countdown(self, source, store, clock):
        first = PredictionManager(source, store, [WHALES_5M], clock=clock)
        created = await first.generate(*WHALES_5M)

        clock.advance(seconds=100)
        second = PredictionManager(source, store, [WHALES_5M], clock=clock)
        assert await second.load() == 1
        assert second.active_for(*WHALES_5M).id == created.id
        assert second.initial_delay(Timeframe.M5) == pytest.approx(200.0)

    @pytest.mark.asyncio
    async def test_initial_delay_without_active(self, manager):
        assert manager.initial_delay(Timeframe.M5) == 0.0

    @pytest.mark.asyncio
    async def test_invalid_records_skipped(self, source, store, clock):
        good = resolved_prediction(NOW, accurate=True)
        await store.save_list("predictions:5m", [{"bogus": True}, good.model_dump(mode="json")], 500)

        manager = PredictionManager(source, store, [PRICE_5M], clock=clock)
        assert await manager.load() == 1

    @pytest.mark.asyncio
    async def test_clear_all_history(self, source, manager, store):
        source.transactions = []
        await manager.generate(*WHALES_5M)

        await manager.clear_history()

        assert manager.all_predictions() == []
        assert await store.load_list("predictions:5m") == []

    @pytest.mark.asyncio
    async def test_clear_all_resets_feature_history(self, manager):
        manager.history.record(MempoolSnapshot(count=12000))

        await manager.clear_history(Timeframe.M5)
        assert list(manager.history.mempool_counts) == [12000.0]

        await manager.clear_history()
        assert list(manager.history.mempool_counts) == []
        assert list(manager.history.fee_rates) == []


class TestSlotAccuracy:
    @pytest.mark.asyncio
    async def test_neutral_until_enough_history(self, source, store, clock):
        records = [
            resolved_prediction(NOW - timedelta(minutes=10 * i), accurate=False).model_dump(mode="json")
            for i in range(5)
        ]
        await store.save_list("predictions:5m", records, 500)
        manager = PredictionManager(source, store, [PRICE_5M], clock=clock)
        await manager.load()

        assert manager.slot_accuracy(*PRICE_5M) == NEUTRAL_ACCURACY

    @pytest.mark.asyncio
    async def test_accuracy_with_history(self, source, store, clock):
        records = [
            resolved_prediction(NOW - timedelta(minutes=10 * i), accurate=i < 3).model_dump(mode="json")
            for i in range(6)
        ]
        await store.save_list("predictions:5m", records, 500)
        manager = PredictionManager(source, store, [PRICE_5M], clock=clock)
        await manager.load()

        assert manager.slot_accuracy(*PRICE_5M) == pytest.approx(50.0)
        [stats] = manager.get_accuracy(PredictionTarget.PRICE)
        assert stats.total_predictions == 6
        assert stats.correct_predictions == 3


class TestCollectSample:
    @pytest.mark.asyncio
    async def test_flow_windows_sliced_by_date(self, source):
        older = ExchangeFlow(timestamp=NOW - timedelta(days=5), inflow=40, outflow=10, netflow=30)
        today = ExchangeFlow(timestamp=NOW.replace(hour=0), inflow=5, outflow=25, netflow=-20)
        source.flows = [older, today]

        sample = await collect_sample(source, FeedRequest(flow_days={1, 7}), NOW)

        assert source.calls.count("flows:7") == 1
        assert sample.flows[7] == [older, today]
        # The 1-day window never falls back to an older observed day
        assert sample.flows[1] == [today]

    @pytest.mark.asyncio
    async def test_no_flow_today_gives_empty_window(self, source):
        source.flows = [ExchangeFlow(timestamp=NOW - timedelta(days=2), inflow=1, outflow=0, netflow=1)]

        sample = await collect_sample(source, FeedRequest(flow_days={1}), NOW)

        assert sample.flows[1] == []
