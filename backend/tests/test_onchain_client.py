"""Tests for the on-chain REST client, served by an httpx mock transport."""

from datetime import date, datetime, timedelta, timezone

import httpx
import pytest

from chainwatch.clients import OnChainClient
from chainwatch.clients.onchain_rest import (
    bucket_flows,
    classify_transfer,
    parse_whale_transaction,
)
from chainwatch.config import Settings
from conftest import make_whale
from core.models import MarketSample, PredictionTarget, PricePoint, Timeframe, TxType
from core.prediction import FeatureHistory, build_prediction, observe_actual

BINANCE = "3M219KR5vEneNb47ewrPfWyb5jQ2DjxRP6"
BLOCK_TIME = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)


def raw_tx(txid: str, sender: str | None, outputs: list[tuple[str, int]]) -> dict:
    vin = [{"prevout": {"scriptpubkey_address": sender, "value": 0}}] if sender else [{"is_coinbase": True}]
    return {
        "txid": txid,
        "vin": vin,
        "vout": [{"scriptpubkey_address": addr, "value": sats} for addr, sats in outputs],
    }


def make_client(handler) -> OnChainClient:
    settings = Settings(requests_per_minute=600000, large_tx_min_btc=10.0, flow_block_depth=2)
    return OnChainClient(settings, transport=httpx.MockTransport(handler))


class TestParsing:
    def test_classify(self):
        assert classify_transfer("Binance", "unknown") == TxType.EXCHANGE_WITHDRAWAL
        assert classify_transfer("unknown", "Kraken") == TxType.EXCHANGE_DEPOSIT
        assert classify_transfer("unknown", "unknown") == TxType.WHALE_TRANSFER
        assert classify_transfer("Binance", "Kraken") == TxType.WHALE_TRANSFER

    def test_deposit_detected(self):
        tx = raw_tx("f" * 64, "1Someone", [(BINANCE, 40 * 10**8), ("1Change", 20 * 10**8)])

        whale = parse_whale_transaction(tx, BLOCK_TIME, min_btc=10)

        assert whale.amount == pytest.approx(60.0)
        assert whale.type == TxType.EXCHANGE_DEPOSIT
        assert whale.to_owner == "Binance"
        assert whale.from_address == "1Someone"
        assert whale.id == "f" * 16

    def test_small_transaction_ignored(self):
        tx = raw_tx("a" * 64, "1Someone", [("1Other", 5 * 10**8)])
        assert parse_whale_transaction(tx, BLOCK_TIME, min_btc=10) is None

    def test_coinbase_sender(self):
        tx = raw_tx("b" * 64, None, [("1Miner", 15 * 10**8)])
        assert parse_whale_transaction(tx, BLOCK_TIME, min_btc=10).from_address == "coinbase"

    def test_bucket_flows(self):
        txs = [
            make_whale(30, tx_type=TxType.EXCHANGE_DEPOSIT, timestamp=datetime(2026, 3, 1, 9, tzinfo=timezone.utc)),
            make_whale(10, tx_type=TxType.EXCHANGE_WITHDRAWAL, timestamp=datetime(2026, 3, 1, 8, tzinfo=timezone.utc)),
            make_whale(5, tx_type=TxType.EXCHANGE_DEPOSIT, timestamp=datetime(2026, 2, 28, 23, tzinfo=timezone.utc)),
            make_whale(99, tx_type=TxType.WHALE_TRANSFER, timestamp=datetime(2026, 3, 1, 7, tzinfo=timezone.utc)),
        ]

        flows = bucket_flows(txs, days=3, today=date(2026, 3, 1))

        # Feb 27 holds no scanned transaction and is left out
        assert [f.timestamp.day for f in flows] == [28, 1]
        assert flows[0].inflow == 5
        assert (flows[1].inflow, flows[1].outflow, flows[1].netflow) == (30, 10, 20)

    def test_bucket_flows_day_with_only_transfers_is_observed(self):
        txs = [make_whale(99, tx_type=TxType.WHALE_TRANSFER, timestamp=datetime(2026, 3, 1, 7, tzinfo=timezone.utc))]

        [flow] = bucket_flows(txs, days=7, today=date(2026, 3, 1))
        assert (flow.inflow, flow.outflow, flow.netflow) == (0, 0, 0)

    def test_bucket_flows_ignores_days_outside_window(self):
        txs = [
            make_whale(40, tx_type=TxType.EXCHANGE_DEPOSIT, timestamp=datetime(2026, 2, 20, 9, tzinfo=timezone.utc)),
            make_whale(20, tx_type=TxType.EXCHANGE_DEPOSIT, timestamp=datetime(2026, 3, 2, 1, tzinfo=timezone.utc)),
        ]
        assert bucket_flows(txs, days=3, today=date(2026, 3, 1)) == []

    def test_single_observed_day_gives_no_netflow_or_correlation_prediction(self):
        today = date(2026, 3, 1)
        deposit = make_whale(200, tx_type=TxType.EXCHANGE_DEPOSIT, timestamp=BLOCK_TIME)
        points = [
            PricePoint(time=BLOCK_TIME - timedelta(days=i), price=60000.0 + i)
            for i in range(30)
        ]
        sample = MarketSample(
            fetched_at=BLOCK_TIME,
            price_series={30: points},
            flows={
                7: bucket_flows([deposit], days=7, today=today),
                30: bucket_flows([deposit], days=30, today=today),
            },
        )

        assert len(sample.flows[7]) == 1
        for target in (PredictionTarget.EXCHANGE_NETFLOW, PredictionTarget.CORRELATION_SIGNAL):
            assert build_prediction(target, Timeframe.M5, sample, FeatureHistory()) is None

    def test_flow_from_previous_day_is_not_an_actual(self):
        deposit = make_whale(200, tx_type=TxType.EXCHANGE_DEPOSIT, timestamp=BLOCK_TIME)
        next_day = BLOCK_TIME + timedelta(days=1)
        sample = MarketSample(
            fetched_at=next_day,
            flows={7: bucket_flows([deposit], days=7, today=next_day.date())},
        )

        assert observe_actual(PredictionTarget.EXCHANGE_NETFLOW, sample) is None


class TestClient:
    @pytest.mark.asyncio
    async def test_snapshot(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path.endswith("/coins/bitcoin")
            return httpx.Response(200, json={"market_data": {
                "current_price": {"usd": 65000.0},
                "price_change_percentage_24h": 2.5,
                "high_24h": {"usd": 66000.0},
            }})

        client = make_client(handler)
        snapshot = await client.get_current_snapshot()
        await client.close()

        assert snapshot.price == 65000.0
        assert snapshot.change_percent_24h == 2.5
        assert snapshot.high_24h == 66000.0
        assert snapshot.low_24h == 0.0

    @pytest.mark.asyncio
    async def test_price_series(self):
        def handler(request):
            assert request.url.params["days"] == "1"
            return httpx.Response(200, json={"prices": [[1772359200000, 100.0], [1772359500000, 101.0]]})

        client = make_client(handler)
        points = await client.get_price_series(1)
        await client.close()

        assert [p.price for p in points] == [100.0, 101.0]
        assert points[0].time.tzinfo is not None

    @pytest.mark.asyncio
    async def test_mempool(self):
        def handler(request):
            if request.url.path.endswith("/mempool"):
                return httpx.Response(200, json={"count": 25000, "vsize": 9000000, "total_fee": 1.5})
            return httpx.Response(200, json={"fastestFee": 40, "halfHourFee": 30, "hourFee": 20, "economyFee": 5})

        client = make_client(handler)
        mempool = await client.get_mempool_snapshot()
        await client.close()

        assert mempool.count == 25000
        assert mempool.fee_rates.fastest == 40

    @pytest.mark.asyncio
    async def test_large_transactions_across_blocks(self):
        block_txs = {
            "/block/h1/txs/0": [raw_tx("1" * 64, "1A", [(BINANCE, 80 * 10**8)])],
            "/block/h2/txs/0": [raw_tx("2" * 64, "1B", [("1C", 200 * 10**8)]), raw_tx("3" * 64, "1D", [("1E", 10**8)])],
        }

        def handler(request):
            path = request.url.path
            if path.endswith("/blocks"):
                return httpx.Response(200, json=[
                    {"id": "h1", "timestamp": 1772359200},
                    {"id": "h2", "timestamp": 1772358600},
                    {"id": "h3", "timestamp": 1772358000},
                ])
            for suffix, txs in block_txs.items():
                if path.endswith(suffix):
                    return httpx.Response(200, json=txs)
            return httpx.Response(404)

        client = make_client(handler)
        txs = await client.get_large_transactions(min_amount=10, block_depth=2)
        await client.close()

        assert [t.amount for t in txs] == [200.0, 80.0]
        assert txs[1].type == TxType.EXCHANGE_DEPOSIT

    @pytest.mark.asyncio
    async def test_address_activity_uses_previous_transaction(self):
        def handler(request):
            return httpx.Response(200, json=[
                {"status": {"confirmed": True, "block_time": 1772359200}},
                {"status": {"confirmed": True, "block_time": 1700000000}},
                {"status": {"confirmed": False}},
            ])

        client = make_client(handler)
        activity = await client.get_address_last_activity("1Old")
        await client.close()

        assert activity.last_active == datetime.fromtimestamp(1700000000, tz=timezone.utc)

    @pytest.mark.asyncio
    async def test_address_without_history(self):
        client = make_client(lambda request: httpx.Response(200, json=[]))
        activity = await client.get_address_last_activity("1New")
        await client.close()

        assert activity.last_active is None

    @pytest.mark.asyncio
    async def test_top_holders_labels(self):
        def handler(request):
            return httpx.Response(200, json={"data": [
                {"address": "34xp4vRoCGJym3xR7yCVPFHoCNxv4Twseo", "balance": 248000 * 10**8},
                {"address": "1BigUnknown", "balance": 20000 * 10**8},
                {"address": "1Small", "balance": 5000 * 10**8},
            ]})

        client = make_client(handler)
        holders = await client.get_top_holders()
        await client.close()

        assert [h.rank for h in holders] == [1, 2, 3]
        assert [h.label for h in holders] == ["Binance Cold Wallet", "whale", "unknown"]
        assert holders[0].percent_of_total == pytest.approx(248000 / 21_000_000 * 100)

    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        client = make_client(lambda request: httpx.Response(503))
        with pytest.raises(httpx.HTTPStatusError):
            await client.get_mempool_snapshot()
        await client.close()
