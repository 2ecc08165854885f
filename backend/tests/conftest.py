"""Shared fixtures: an in-memory data source and store."""

from datetime import datetime, timedelta, timezone

import pytest

from chainwatch.storage import MemoryListStore
from core.models import (
    AddressActivity,
    ExchangeFlow,
    MempoolSnapshot,
    PricePoint,
    PriceSnapshot,
    TopHolder,
    TxType,
    WhaleTransaction,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeDataSource:
    """Configurable MarketDataSource. Set a feed to an Exception to make it fail."""

    def __init__(self):
        self.prices: dict[int, list[PricePoint]] | Exception = {}
        self.snapshot: PriceSnapshot | Exception | None = PriceSnapshot(price=100.0)
        self.mempool: MempoolSnapshot | Exception = MempoolSnapshot(count=20000)
        self.transactions: list[WhaleTransaction] | Exception = []
        self.holders: list[TopHolder] | Exception = []
        self.activity: dict[str, AddressActivity] = {}
        self.flows: list[ExchangeFlow] | Exception = []
        self.calls: list[str] = []

    @staticmethod
    def _value(value):
        if isinstance(value, Exception):
            raise value
        return value

    async def get_price_series(self, days: int) -> list[PricePoint]:
        self.calls.append(f"prices:{days}")
        prices = self._value(self.prices)
        return prices.get(days, [])

    async def get_current_snapshot(self) -> PriceSnapshot:
        self.calls.append("snapshot")
        return self._value(self.snapshot)

    async def get_mempool_snapshot(self) -> MempoolSnapshot:
        self.calls.append("mempool")
        return self._value(self.mempool)

    async def get_large_transactions(self, min_amount: float, block_depth: int) -> list[WhaleTransaction]:
        self.calls.append("large_transactions")
        return self._value(self.transactions)

    async def get_top_holders(self) -> list[TopHolder]:
        self.calls.append("holders")
        return self._value(self.holders)

    async def get_address_last_activity(self, address: str) -> AddressActivity:
        self.calls.append(f"activity:{address}")
        if address not in self.activity:
            raise LookupError(f"no history for {address}")
        return self.activity[address]

    async def get_exchange_flows(self, days: int) -> list[ExchangeFlow]:
        self.calls.append(f"flows:{days}")
        return self._value(self.flows)[-days:]


def make_whale(
    amount: float,
    sender: str = "1SenderAddr",
    tx_type: TxType = TxType.UNKNOWN,
    timestamp: datetime = NOW,
) -> WhaleTransaction:
    return WhaleTransaction(
        id=f"{sender}-{amount}",
        hash="ab" * 32,
        timestamp=timestamp,
        amount=amount,
        from_address=sender,
        to_address="1ReceiverAddr",
        type=tx_type,
    )


def make_holders(addresses: list[str]) -> list[TopHolder]:
    return [
        TopHolder(
            rank=i + 1,
            address=address,
            balance=100000 - i * 100,
            percent_of_total=(100000 - i * 100) / 21_000_000 * 100,
            label="unknown",
        )
        for i, address in enumerate(addresses)
    ]


def price_points(prices: list[float], step: timedelta = timedelta(minutes=5)) -> list[PricePoint]:
    start = NOW - step * (len(prices) - 1)
    return [PricePoint(time=start + step * i, price=p) for i, p in enumerate(prices)]


@pytest.fixture
def source():
    return FakeDataSource()


@pytest.fixture
def store():
    return MemoryListStore()
