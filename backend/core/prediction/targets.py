"""Mapping from prediction targets to data feeds, predictors and observations.

For each target this module knows which feeds a generation or a resolution
needs, how to turn one MarketSample into an AggregateResult, and how to read
the actual value used to resolve an expired prediction.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import date, timezone

from core.indicators import pearson_correlation
from core.models.market import (
    ExchangeFlow,
    MarketSample,
    MempoolSnapshot,
    PricePoint,
    TxType,
    WhaleTransaction,
)
from core.models.prediction import PredictionTarget, Timeframe
from core.prediction.aggregator import AggregateResult
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

FEATURE_WINDOW = 20
LARGE_TX_MIN_BTC = 50

# Flow windows (days)
PRICE_FLOW_DAYS = 1
HOLDER_FLOW_DAYS = 3
NETFLOW_DAYS = 7
CORRELATION_DAYS = 30

# Top-holder labels that are not exchanges
NON_EXCHANGE_LABELS = frozenset({"whale", "unknown", "Satoshi Era Wallet"})


@dataclass
class FeedRequest:
    """Which data-source feeds a tick has to fetch."""

    price_days: set[int] = field(default_factory=set)
    snapshot: bool = False
    mempool: bool = False
    large_transactions: bool = False
    holders: bool = False
    flow_days: set[int] = field(default_factory=set)

    def merge(self, other: FeedRequest) -> FeedRequest:
        return FeedRequest(
            price_days=self.price_days | other.price_days,
            snapshot=self.snapshot or other.snapshot,
            mempool=self.mempool or other.mempool,
            large_transactions=self.large_transactions or other.large_transactions,
            holders=self.holders or other.holders,
            flow_days=self.flow_days | other.flow_days,
        )

    @property
    def empty(self) -> bool:
        return not (
            self.price_days
            or self.snapshot
            or self.mempool
            or self.large_transactions
            or self.holders
            or self.flow_days
        )


class FeatureHistory:
    """Rolling mempool samples feeding the tx_volume predictor."""

    def __init__(self, window: int = FEATURE_WINDOW):
        self.mempool_counts: deque[float] = deque(maxlen=window)
        self.fee_rates: deque[float] = deque(maxlen=window)

    def record(self, mempool: MempoolSnapshot) -> None:
        self.mempool_counts.append(float(mempool.count))
        self.fee_rates.append(mempool.fee_rates.fastest)

    def clear(self) -> None:
        self.mempool_counts.clear()
        self.fee_rates.clear()


def generation_feeds(target: PredictionTarget, timeframe: Timeframe) -> FeedRequest:
    """Feeds needed to generate a prediction for one slot."""
    if target == PredictionTarget.PRICE:
        return FeedRequest(
            price_days={timeframe.price_days},
            snapshot=True,
            flow_days={PRICE_FLOW_DAYS},
        )
    if target == PredictionTarget.TX_VOLUME:
        return FeedRequest(mempool=True)
    if target == PredictionTarget.WHALE_MOVEMENT:
        return FeedRequest(large_transactions=True)
    if target in (PredictionTarget.LARGE_TX, PredictionTarget.WHALE_ALERT_FREQ):
        return FeedRequest(mempool=True, large_transactions=True)
    if target == PredictionTarget.EXCHANGE_NETFLOW:
        return FeedRequest(flow_days={NETFLOW_DAYS})
    if target == PredictionTarget.CORRELATION_SIGNAL:
        return FeedRequest(price_days={CORRELATION_DAYS}, flow_days={CORRELATION_DAYS})
    if target == PredictionTarget.HOLDER_TREND:
        return FeedRequest(holders=True, flow_days={HOLDER_FLOW_DAYS})
    raise ValueError(f"Unknown prediction target: {target}")


def observation_feeds(target: PredictionTarget) -> FeedRequest:
    """Feeds needed to observe the actual value of a target."""
    if target == PredictionTarget.PRICE:
        return FeedRequest(snapshot=True)
    if target == PredictionTarget.TX_VOLUME:
        return FeedRequest(mempool=True)
    if target in (
        PredictionTarget.WHALE_MOVEMENT,
        PredictionTarget.LARGE_TX,
        PredictionTarget.WHALE_ALERT_FREQ,
    ):
        return FeedRequest(large_transactions=True)
    if target == PredictionTarget.EXCHANGE_NETFLOW:
        return FeedRequest(flow_days={NETFLOW_DAYS})
    if target == PredictionTarget.CORRELATION_SIGNAL:
        return FeedRequest(price_days={CORRELATION_DAYS}, flow_days={CORRELATION_DAYS})
    if target == PredictionTarget.HOLDER_TREND:
        return FeedRequest(holders=True)
    raise ValueError(f"Unknown prediction target: {target}")


def _count_type(transactions: list[WhaleTransaction], tx_type: TxType) -> int:
    return sum(1 for tx in transactions if tx.type == tx_type)


def _daily_closes(points: list[PricePoint]) -> dict[date, float]:
    """Last price of each UTC day."""
    closes: dict[date, float] = {}
    for point in sorted(points, key=lambda p: p.time):
        closes[point.time.date()] = point.price
    return closes


def align_daily(
    points: list[PricePoint], flows: list[ExchangeFlow]
) -> tuple[list[float], list[float]]:
    """Pair each flow day with that day's closing price, oldest first."""
    closes = _daily_closes(points)
    prices: list[float] = []
    netflows: list[float] = []
    for flow in sorted(flows, key=lambda f: f.timestamp):
        price = closes.get(flow.timestamp.date())
        if price is not None:
            prices.append(price)
            netflows.append(flow.netflow)
    return prices, netflows


def build_prediction(
    target: PredictionTarget,
    timeframe: Timeframe,
    sample: MarketSample,
    history: FeatureHistory,
) -> AggregateResult | None:
    """
    Run the target's predictor on one sample.

    Returns None when a required feed is missing or too short.
    """
    if target == PredictionTarget.PRICE:
        prices = sample.prices(timeframe.price_days)
        if prices is None:
            return None
        flows = sample.flows.get(PRICE_FLOW_DAYS) or []
        netflow = flows[-1].netflow if flows else 0.0
        current = sample.snapshot.price if sample.snapshot else None
        return predict_price(prices, netflow, current)

    if target == PredictionTarget.TX_VOLUME:
        if sample.mempool is None:
            return None
        return predict_tx_volume(list(history.mempool_counts), list(history.fee_rates))

    if target == PredictionTarget.WHALE_MOVEMENT:
        txs = sample.large_transactions
        if txs is None:
            return None
        deposit_ratio = _count_type(txs, TxType.EXCHANGE_DEPOSIT) / len(txs) if txs else 0.0
        return predict_whale_movement(len(txs), deposit_ratio)

    if target == PredictionTarget.LARGE_TX:
        txs = sample.large_transactions
        if txs is None or sample.mempool is None:
            return None
        large = sum(1 for tx in txs if tx.amount > LARGE_TX_MIN_BTC)
        return predict_large_tx(sample.mempool.count, large)

    if target == PredictionTarget.EXCHANGE_NETFLOW:
        flows = sample.flows.get(NETFLOW_DAYS)
        if flows is None:
            return None
        return predict_exchange_netflow(
            [f.inflow for f in flows], [f.outflow for f in flows]
        )

    if target == PredictionTarget.CORRELATION_SIGNAL:
        points = sample.price_series.get(CORRELATION_DAYS)
        flows = sample.flows.get(CORRELATION_DAYS)
        if points is None or flows is None:
            return None
        prices, netflows = align_daily(points, flows)
        return predict_correlation_signal(prices, netflows)

    if target == PredictionTarget.HOLDER_TREND:
        holders = sample.holders
        if not holders:
            return None
        total = sum(h.balance for h in holders)
        exchange = sum(h.balance for h in holders if h.label not in NON_EXCHANGE_LABELS)
        flows = sample.flows.get(HOLDER_FLOW_DAYS) or []
        netflow = sum(f.netflow for f in flows)
        return predict_holder_trend(total, exchange, total - exchange, netflow)

    if target == PredictionTarget.WHALE_ALERT_FREQ:
        txs = sample.large_transactions
        if txs is None or sample.mempool is None:
            return None
        return predict_whale_alert_freq(
            tx_count=len(txs),
            deposits=_count_type(txs, TxType.EXCHANGE_DEPOSIT),
            withdrawals=_count_type(txs, TxType.EXCHANGE_WITHDRAWAL),
            transfers=_count_type(txs, TxType.WHALE_TRANSFER),
            total_btc=sum(tx.amount for tx in txs),
            mempool_count=sample.mempool.count,
        )

    raise ValueError(f"Unknown prediction target: {target}")


def observe_actual(target: PredictionTarget, sample: MarketSample) -> float | None:
    """Actual value of a target in a sample, None when unavailable."""
    if target == PredictionTarget.PRICE:
        if sample.snapshot is None or sample.snapshot.price <= 0:
            return None
        return sample.snapshot.price

    if target == PredictionTarget.TX_VOLUME:
        return float(sample.mempool.count) if sample.mempool else None

    if target in (PredictionTarget.WHALE_MOVEMENT, PredictionTarget.WHALE_ALERT_FREQ):
        txs = sample.large_transactions
        return float(len(txs)) if txs is not None else None

    if target == PredictionTarget.LARGE_TX:
        txs = sample.large_transactions
        if txs is None:
            return None
        return float(sum(1 for tx in txs if tx.amount > LARGE_TX_MIN_BTC))

    if target == PredictionTarget.EXCHANGE_NETFLOW:
        flows = sample.flows.get(NETFLOW_DAYS)
        if not flows:
            return None
        # Only a flow observed on the sample's own UTC day is current
        latest = flows[-1]
        if latest.timestamp.date() != sample.fetched_at.astimezone(timezone.utc).date():
            return None
        return latest.netflow

    if target == PredictionTarget.CORRELATION_SIGNAL:
        points = sample.price_series.get(CORRELATION_DAYS)
        flows = sample.flows.get(CORRELATION_DAYS)
        if points is None or flows is None:
            return None
        prices, netflows = align_daily(points, flows)
        if len(prices) < 3:
            return None
        return abs(pearson_correlation(prices, netflows)) * 100

    if target == PredictionTarget.HOLDER_TREND:
        if not sample.holders:
            return None
        return sum(h.balance for h in sample.holders)

    raise ValueError(f"Unknown prediction target: {target}")
