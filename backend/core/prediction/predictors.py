"""Per-target heuristic predictors.

Each predictor turns raw inputs into weighted Signals, aggregates them and
returns an AggregateResult, or None when the minimum input is missing (the
caller skips that generation). Thresholds and weights are fixed heuristics,
not fitted parameters.
"""

from __future__ import annotations

import math
from typing import Sequence

from core.indicators import (
    bollinger_bands,
    is_defined,
    last,
    macd,
    momentum,
    pearson_correlation,
    rsi,
    sma,
)
from core.models.prediction import Direction, Impact, PredictionReason, Signal
from core.prediction.aggregator import AggregateResult, aggregate_signals

MIN_PRICE_HISTORY = 30
MIN_MEMPOOL_SAMPLES = 3
MIN_FLOW_DAYS = 3
MIN_CORRELATION_POINTS = 10

# Baselines used where no long-run average is tracked
WHALE_TX_BASELINE = 10
MEMPOOL_BASELINE = 30000
LARGE_TX_BASELINE = 5

_REL_TOL = 1e-9


def _compare(a: float, b: float) -> Direction:
    """UP if a > b, DOWN if a < b, NEUTRAL when equal within float noise."""
    if math.isclose(a, b, rel_tol=_REL_TOL, abs_tol=_REL_TOL):
        return Direction.NEUTRAL
    return Direction.UP if a > b else Direction.DOWN


def _threshold(value: float, above: float, below: float) -> Direction:
    """UP if value > above, DOWN if value < below, else NEUTRAL."""
    if value > above:
        return Direction.UP
    if value < below:
        return Direction.DOWN
    return Direction.NEUTRAL


def _invert(direction: Direction) -> Direction:
    if direction == Direction.UP:
        return Direction.DOWN
    if direction == Direction.DOWN:
        return Direction.UP
    return Direction.NEUTRAL


def _impact(direction: Direction, rising_is_bullish: bool = True) -> Impact:
    if direction == Direction.NEUTRAL:
        return Impact.NEUTRAL
    bullish = (direction == Direction.UP) == rising_is_bullish
    return Impact.BULLISH if bullish else Impact.BEARISH


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _result(
    signals: list[Signal],
    current_value: float,
    reasons: list[PredictionReason] | None = None,
) -> AggregateResult:
    result = aggregate_signals(signals, current_value)
    if reasons:
        result.reasons = reasons
    return result


# =============================================================================
# Price
# =============================================================================

def predict_price(
    prices: Sequence[float],
    exchange_netflow: float = 0.0,
    current_price: float | None = None,
) -> AggregateResult | None:
    """
    Price direction from technical indicators plus exchange netflow.

    Signals: SMA5/SMA20 cross (0.2), RSI 30/70 (0.2), MACD histogram slope
    (0.2), 10-step momentum +/-0.1% (0.15), Bollinger position 0.2/0.8
    (0.15), exchange netflow sign (0.1, net inflow is bearish).

    Returns None with fewer than 30 prices.
    """
    if len(prices) < MIN_PRICE_HISTORY:
        return None

    signals: list[Signal] = []
    latest = prices[-1]

    sma5 = last(sma(prices, 5))
    sma20 = last(sma(prices, 20))
    if is_defined(sma5) and is_defined(sma20):
        signals.append(Signal(
            name="SMA cross", direction=_compare(sma5, sma20), weight=0.2, value=sma5 - sma20,
        ))

    rsi_last = last(rsi(prices))
    if is_defined(rsi_last):
        # Oversold bounces, overbought fades
        signals.append(Signal(
            name="RSI",
            direction=_invert(_threshold(rsi_last, 70, 30)),
            weight=0.2,
            value=rsi_last,
        ))

    _, _, histogram = macd(prices)
    hist_last = last(histogram)
    hist_prev = last(histogram, 2)
    if is_defined(hist_last) and is_defined(hist_prev):
        signals.append(Signal(
            name="MACD", direction=_compare(hist_last, hist_prev), weight=0.2, value=hist_last,
        ))

    mom_last = last(momentum(prices))
    if is_defined(mom_last):
        signals.append(Signal(
            name="Momentum", direction=_threshold(mom_last, 0.1, -0.1), weight=0.15, value=mom_last,
        ))

    upper, _, lower = bollinger_bands(prices)
    bb_upper = last(upper)
    bb_lower = last(lower)
    if is_defined(bb_upper) and is_defined(bb_lower):
        if _compare(bb_upper, bb_lower) == Direction.UP:
            position = (latest - bb_lower) / (bb_upper - bb_lower)
        else:
            position = 0.5
        signals.append(Signal(
            name="Bollinger",
            direction=_invert(_threshold(position, 0.8, 0.2)),
            weight=0.15,
            value=position,
        ))

    if exchange_netflow != 0:
        # Net inflow to exchanges = sell pressure
        signals.append(Signal(
            name="Exchange netflow",
            direction=Direction.DOWN if exchange_netflow > 0 else Direction.UP,
            weight=0.1,
            value=exchange_netflow,
        ))

    current = current_price if current_price and current_price > 0 else latest
    return _result(signals, current)


# =============================================================================
# Network activity
# =============================================================================

def predict_tx_volume(
    mempool_counts: Sequence[float],
    fee_rates: Sequence[float],
    block_tx_counts: Sequence[float] = (),
) -> AggregateResult | None:
    """
    Mempool transaction volume from recent mempool, fee and block samples.

    Returns None with fewer than 3 mempool samples.
    """
    if len(mempool_counts) < MIN_MEMPOOL_SAMPLES:
        return None

    signals: list[Signal] = []

    recent = mempool_counts[-3:]
    mempool_trend = recent[-1] - recent[0]
    signals.append(Signal(
        name="Mempool trend",
        direction=_threshold(mempool_trend, 100, -100),
        weight=0.4,
        value=mempool_trend,
    ))

    if len(fee_rates) >= 3:
        fees = fee_rates[-3:]
        fee_trend = fees[-1] - fees[0]
        signals.append(Signal(
            name="Fee trend",
            direction=_threshold(fee_trend, 2, -2),
            weight=0.3,
            value=fee_trend,
        ))

    if len(block_tx_counts) >= 2:
        avg = _mean(block_tx_counts)
        latest_block = block_tx_counts[-1]
        signals.append(Signal(
            name="Block activity",
            direction=_threshold(latest_block, avg * 1.1, avg * 0.9),
            weight=0.3,
            value=latest_block,
        ))

    return _result(signals, float(mempool_counts[-1]))


def predict_whale_movement(
    recent_count: int,
    deposit_ratio: float,
    dormant_activations: int = 0,
    baseline_count: float = WHALE_TX_BASELINE,
) -> AggregateResult:
    """Whale transaction count: frequency vs baseline, deposit share, dormant wake-ups."""
    freq_ratio = recent_count / baseline_count if baseline_count > 0 else 1.0
    signals = [
        Signal(
            name="Whale frequency",
            direction=_threshold(freq_ratio, 1.3, 0.7),
            weight=0.35,
            value=freq_ratio,
        ),
        Signal(
            name="Exchange deposit ratio",
            direction=_threshold(deposit_ratio, 0.6, 0.4),
            weight=0.35,
            value=deposit_ratio,
        ),
        Signal(
            name="Dormant activations",
            direction=Direction.UP if dormant_activations > 0 else Direction.NEUTRAL,
            weight=0.3,
            value=dormant_activations,
        ),
    ]
    return _result(signals, float(recent_count))


def predict_large_tx(
    mempool_count: float,
    large_tx_count: int,
    mempool_baseline: float = MEMPOOL_BASELINE,
    large_tx_baseline: float = LARGE_TX_BASELINE,
) -> AggregateResult:
    """Count of very large transactions from mempool pressure and recent rate."""
    mempool_ratio = mempool_count / mempool_baseline if mempool_baseline > 0 else 1.0
    rate_ratio = large_tx_count / large_tx_baseline if large_tx_baseline > 0 else 1.0
    signals = [
        Signal(
            name="Mempool pressure",
            direction=_threshold(mempool_ratio, 1.2, 0.8),
            weight=0.4,
            value=mempool_ratio,
        ),
        Signal(
            name="Large tx rate",
            direction=_threshold(rate_ratio, 1.2, 0.8),
            weight=0.35,
            value=rate_ratio,
        ),
        Signal(
            name="Congestion",
            direction=_threshold(mempool_count, 50000, 10000),
            weight=0.25,
            value=mempool_count,
        ),
    ]
    return _result(signals, float(large_tx_count))


# =============================================================================
# Exchange flows and correlation
# =============================================================================

def predict_exchange_netflow(
    inflows: Sequence[float],
    outflows: Sequence[float],
) -> AggregateResult | None:
    """
    Exchange netflow (inflow - outflow) from daily flow history.

    Rising netflow is reported as bearish: coins moving onto exchanges.
    Returns None with fewer than 3 days.
    """
    n = min(len(inflows), len(outflows))
    if n < MIN_FLOW_DAYS:
        return None

    inflows = list(inflows[-n:])
    outflows = list(outflows[-n:])
    netflows = [i - o for i, o in zip(inflows, outflows)]
    signals: list[Signal] = []
    reasons: list[PredictionReason] = []

    trend = netflows[-1] - netflows[-3]
    trend_dir = _compare(trend, 0.0)
    signals.append(Signal(name="Netflow trend", direction=trend_dir, weight=0.3, value=trend))
    reasons.append(PredictionReason(
        signal="Netflow trend",
        impact=_impact(trend_dir, rising_is_bullish=False),
        detail=f"Netflow moved {trend:+.1f} BTC over the last 3 days",
    ))

    avg_out = _mean(outflows)
    ratio = _mean(inflows) / avg_out if avg_out > 0 else 1.0
    ratio_dir = _threshold(ratio, 1.1, 0.9)
    signals.append(Signal(name="Inflow/outflow ratio", direction=ratio_dir, weight=0.3, value=ratio))
    reasons.append(PredictionReason(
        signal="Inflow/outflow ratio",
        impact=_impact(ratio_dir, rising_is_bullish=False),
        detail=f"Average inflow is {ratio:.2f}x average outflow",
    ))

    sma3 = _mean(netflows[-3:])
    sma7 = _mean(netflows[-7:])
    ma_dir = _compare(sma3, sma7)
    signals.append(Signal(name="Netflow MA", direction=ma_dir, weight=0.2, value=sma3 - sma7))
    reasons.append(PredictionReason(
        signal="Netflow MA",
        impact=_impact(ma_dir, rising_is_bullish=False),
        detail=f"3-day average {sma3:+.1f} BTC vs 7-day average {sma7:+.1f} BTC",
    ))

    flow_momentum = netflows[-1] - netflows[-5] if len(netflows) >= 5 else 0.0
    mom_dir = _threshold(flow_momentum, 50, -50)
    signals.append(Signal(name="Netflow momentum", direction=mom_dir, weight=0.2, value=flow_momentum))
    if mom_dir != Direction.NEUTRAL:
        reasons.append(PredictionReason(
            signal="Netflow momentum",
            impact=_impact(mom_dir, rising_is_bullish=False),
            detail=f"Netflow changed {flow_momentum:+.1f} BTC over 5 days",
        ))

    return _result(signals, netflows[-1], reasons)


def predict_correlation_signal(
    prices: Sequence[float],
    netflows: Sequence[float],
) -> AggregateResult | None:
    """
    Strength of the price/netflow correlation.

    Compares the correlation of the recent half against the older half,
    plus recent netflow direction and price momentum. The current value is
    |corr| * 100. Returns None with fewer than 10 aligned points.
    """
    n = min(len(prices), len(netflows))
    if n < MIN_CORRELATION_POINTS:
        return None

    prices = list(prices[-n:])
    netflows = list(netflows[-n:])
    correlation = pearson_correlation(prices, netflows)
    signals: list[Signal] = []
    reasons: list[PredictionReason] = []

    half = n // 2
    older = pearson_correlation(prices[:half], netflows[:half])
    recent = pearson_correlation(prices[half:], netflows[half:])
    corr_trend = recent - older
    trend_dir = _threshold(corr_trend, 0.1, -0.1)
    signals.append(Signal(name="Correlation trend", direction=trend_dir, weight=0.35, value=corr_trend))
    reasons.append(PredictionReason(
        signal="Correlation trend",
        impact=_impact(trend_dir, rising_is_bullish=False),
        detail=f"Recent correlation {recent:+.2f} vs earlier {older:+.2f}",
    ))

    avg_netflow = _mean(netflows[-5:])
    flow_dir = _invert(_compare(avg_netflow, 0.0))
    signals.append(Signal(name="Recent netflow", direction=flow_dir, weight=0.3, value=avg_netflow))
    reasons.append(PredictionReason(
        signal="Recent netflow",
        impact=_impact(flow_dir),
        detail=f"Average netflow over the last 5 points is {avg_netflow:+.1f} BTC",
    ))

    base = prices[-5]
    price_momentum = (prices[-1] - base) / base * 100 if base else 0.0
    mom_dir = _threshold(price_momentum, 1, -1)
    signals.append(Signal(name="Price momentum", direction=mom_dir, weight=0.35, value=price_momentum))
    reasons.append(PredictionReason(
        signal="Price momentum",
        impact=_impact(mom_dir),
        detail=f"Price moved {price_momentum:+.2f}% over the last 5 points",
    ))

    return _result(signals, abs(correlation) * 100, reasons)


# =============================================================================
# Holders and whale alerts
# =============================================================================

def predict_holder_trend(
    total_balance: float,
    exchange_balance: float,
    non_exchange_balance: float,
    recent_netflow: float,
) -> AggregateResult | None:
    """
    Total top-holder balance from exchange share and recent netflow.

    Returns None when there is no holder balance to track.
    """
    if total_balance <= 0:
        return None

    exchange_ratio = exchange_balance / total_balance
    non_exchange_ratio = non_exchange_balance / total_balance
    signals: list[Signal] = []
    reasons: list[PredictionReason] = []

    # Heavy exchange share = supply ready to sell
    ex_dir = _invert(_threshold(exchange_ratio, 0.25, 0.15))
    signals.append(Signal(name="Exchange share", direction=ex_dir, weight=0.3, value=exchange_ratio))
    reasons.append(PredictionReason(
        signal="Exchange share",
        impact=_impact(ex_dir),
        detail=f"Exchanges hold {exchange_ratio * 100:.1f}% of top-holder balance",
    ))

    hodl_dir = _threshold(non_exchange_ratio, 0.8, 0.7)
    signals.append(Signal(name="Long-term holders", direction=hodl_dir, weight=0.3, value=non_exchange_ratio))
    reasons.append(PredictionReason(
        signal="Long-term holders",
        impact=_impact(hodl_dir),
        detail=f"Non-exchange addresses hold {non_exchange_ratio * 100:.1f}%",
    ))

    flow_dir = _invert(_threshold(recent_netflow, 100, -100))
    signals.append(Signal(name="Exchange netflow", direction=flow_dir, weight=0.4, value=recent_netflow))
    if flow_dir != Direction.NEUTRAL:
        reasons.append(PredictionReason(
            signal="Exchange netflow",
            impact=_impact(flow_dir),
            detail=f"Net {recent_netflow:+.1f} BTC moved onto exchanges recently",
        ))

    return _result(signals, total_balance, reasons)


def predict_whale_alert_freq(
    tx_count: int,
    deposits: int,
    withdrawals: int,
    transfers: int,
    total_btc: float,
    mempool_count: float,
) -> AggregateResult:
    """
    Frequency of whale alerts.

    More alerts are expected under exchange-deposit pressure, a congested
    mempool, bigger average sizes and an already busy tape.
    """
    classified = deposits + withdrawals + transfers
    deposit_ratio = deposits / classified if classified else 0.0
    avg_size = total_btc / tx_count if tx_count else 0.0
    signals: list[Signal] = []
    reasons: list[PredictionReason] = []

    dep_dir = _threshold(deposit_ratio, 0.5, 0.3)
    signals.append(Signal(name="Deposit ratio", direction=dep_dir, weight=0.3, value=deposit_ratio))
    reasons.append(PredictionReason(
        signal="Deposit ratio",
        impact=_impact(dep_dir, rising_is_bullish=False),
        detail=f"{deposits} of {classified} classified whale transfers went to exchanges",
    ))

    mp_dir = _threshold(mempool_count, 50000, 10000)
    signals.append(Signal(name="Mempool", direction=mp_dir, weight=0.25, value=mempool_count))
    reasons.append(PredictionReason(
        signal="Mempool",
        impact=_impact(mp_dir, rising_is_bullish=False),
        detail=f"{int(mempool_count)} unconfirmed transactions",
    ))

    size_dir = _threshold(avg_size, 500, 100)
    signals.append(Signal(name="Average size", direction=size_dir, weight=0.25, value=avg_size))
    if size_dir != Direction.NEUTRAL:
        reasons.append(PredictionReason(
            signal="Average size",
            impact=_impact(size_dir, rising_is_bullish=False),
            detail=f"Average whale transfer is {avg_size:.1f} BTC",
        ))

    count_dir = _threshold(tx_count, 15, 5)
    signals.append(Signal(name="Alert count", direction=count_dir, weight=0.2, value=tx_count))

    return _result(signals, float(tx_count), reasons)
