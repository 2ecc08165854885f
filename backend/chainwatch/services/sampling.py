"""Fan-out collection of one MarketSample from the data source.

Every feed is fetched concurrently and caught on its own, so one failing
endpoint leaves only its field empty.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable

from core.models.market import MarketSample
from core.prediction.targets import FeedRequest
from core.protocols import MarketDataSource

logger = logging.getLogger(__name__)


async def fetch_or_none(name: str, call: Awaitable[Any]) -> Any | None:
    """Await a data-source call, logging and returning None on failure."""
    try:
        return await call
    except Exception as e:
        logger.warning(f"Fetch {name} failed: {e}")
        return None


async def collect_sample(
    source: MarketDataSource,
    request: FeedRequest,
    now: datetime,
    large_tx_min_btc: float = 10.0,
    large_tx_block_depth: int = 2,
) -> MarketSample:
    """Fetch the requested feeds concurrently into one MarketSample."""
    sample = MarketSample(fetched_at=now)
    calls: dict[str, Awaitable[Any]] = {}

    for days in sorted(request.price_days):
        calls[f"prices:{days}"] = source.get_price_series(days)
    if request.snapshot:
        calls["snapshot"] = source.get_current_snapshot()
    if request.mempool:
        calls["mempool"] = source.get_mempool_snapshot()
    if request.large_transactions:
        calls["large_transactions"] = source.get_large_transactions(
            large_tx_min_btc, large_tx_block_depth
        )
    if request.holders:
        calls["holders"] = source.get_top_holders()
    # Flows are fetched once for the widest window and sliced
    flow_days = max(request.flow_days) if request.flow_days else 0
    if flow_days:
        calls["flows"] = source.get_exchange_flows(flow_days)

    if not calls:
        return sample

    results = await asyncio.gather(
        *(fetch_or_none(name, call) for name, call in calls.items())
    )
    fetched = dict(zip(calls, results))

    for days in request.price_days:
        series = fetched.get(f"prices:{days}")
        if series is not None:
            sample.price_series[days] = series
    sample.snapshot = fetched.get("snapshot")
    sample.mempool = fetched.get("mempool")
    sample.large_transactions = fetched.get("large_transactions")
    sample.holders = fetched.get("holders")

    flows = fetched.get("flows")
    if flows is not None:
        today = now.astimezone(timezone.utc).date()
        for days in request.flow_days:
            first_day = today - timedelta(days=days - 1)
            sample.flows[days] = [f for f in flows if f.timestamp.date() >= first_day]

    return sample
