"""Protocols for the external data source and list storage.

The live service implements these over HTTP and Redis; tests implement them
in memory. Every data-source call may raise; callers treat a failure as
"no data this cycle".
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from core.models.market import (
    AddressActivity,
    ExchangeFlow,
    MempoolSnapshot,
    PricePoint,
    PriceSnapshot,
    TopHolder,
    WhaleTransaction,
)


@runtime_checkable
class MarketDataSource(Protocol):
    """Protocol that market/on-chain data providers must implement."""

    async def get_price_series(self, days: int) -> list[PricePoint]:
        """Price history over the last ``days`` days, oldest first."""
        ...

    async def get_current_snapshot(self) -> PriceSnapshot:
        """Current spot price and 24h statistics."""
        ...

    async def get_mempool_snapshot(self) -> MempoolSnapshot:
        """Mempool size and recommended fees."""
        ...

    async def get_large_transactions(
        self, min_amount: float, block_depth: int
    ) -> list[WhaleTransaction]:
        """Transactions of at least ``min_amount`` BTC in the most recent blocks."""
        ...

    async def get_top_holders(self) -> list[TopHolder]:
        """Richest addresses, ranked."""
        ...

    async def get_address_last_activity(self, address: str) -> AddressActivity:
        """When ``address`` last moved coins before its current activity."""
        ...

    async def get_exchange_flows(self, days: int) -> list[ExchangeFlow]:
        """Daily exchange inflow/outflow, oldest first."""
        ...


@runtime_checkable
class ListStore(Protocol):
    """Protocol for capped, most-recent-first record lists."""

    async def load_list(self, key: str) -> list[dict[str, Any]]:
        """Load a list, most recent first. Empty when missing or unreadable."""
        ...

    async def save_list(self, key: str, records: list[dict[str, Any]], cap: int) -> bool:
        """Persist at most ``cap`` leading records. Returns False if not saved."""
        ...
