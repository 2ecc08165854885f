"""Alert rule evaluators.

Rules are plain objects owning their own cross-tick state (checked
addresses, fee window, previous holder set). They never perform I/O: the
engine fetches a ScanInputs bundle, runs the address lookups the dormant
rule asks for, and hands the results back in.

A rule returns one RuleFinding per detection. ``available()`` tells the
engine whether the inputs the rule depends on were fetched this tick.
"""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, runtime_checkable

from core.models.alert import AlertCategory, RuleFinding, Severity
from core.models.market import (
    AddressActivity,
    MempoolSnapshot,
    PriceSnapshot,
    TopHolder,
    TxType,
    WhaleTransaction,
)

# Source addresses that never identify a wallet owner
UNTRACKABLE_ADDRESSES = frozenset({"coinbase", "unknown"})

SECONDS_PER_DAY = 86400


@dataclass
class ScanInputs:
    """Data fetched for one scan. None means the feed was unavailable."""

    now: datetime
    transactions: list[WhaleTransaction] | None = None
    snapshot: PriceSnapshot | None = None
    mempool: MempoolSnapshot | None = None
    holders: list[TopHolder] | None = None
    # Filled by the engine for the dormant rule's candidates
    activity: dict[str, AddressActivity] = field(default_factory=dict)


def _short(address: str) -> str:
    return f"{address[:12]}..."


@runtime_checkable
class AlertRule(Protocol):
    """Protocol that alert rule evaluators must implement."""

    category: AlertCategory
    name: str

    def available(self, inputs: ScanInputs) -> bool:
        """True when the feeds this rule depends on were fetched this tick."""
        ...

    def evaluate(self, inputs: ScanInputs) -> list[RuleFinding]:
        """Findings for this tick (empty when nothing fired)."""
        ...

    def reset(self) -> None:
        """Drop cross-tick state."""
        ...


# =============================================================================
# Dormant address activation
# =============================================================================

class DormantActivationRule:
    """
    Large transfers out of long-dormant addresses.

    critical: dormant > 365 days and amount >= 50 BTC
    warning:  dormant > 180 days and amount >= 10 BTC

    Each source address is looked up at most once per process lifetime,
    and at most ``check_limit`` new addresses are looked up per tick.
    """

    category = AlertCategory.DORMANT_ACTIVATION
    name = "Dormant Activation"

    CRITICAL_DAYS = 365
    CRITICAL_AMOUNT = 50.0
    WARNING_DAYS = 180
    WARNING_AMOUNT = 10.0

    def __init__(self, check_limit: int = 10):
        self.check_limit = check_limit
        self.checked: set[str] = set()
        self._pending: list[WhaleTransaction] = []

    def available(self, inputs: ScanInputs) -> bool:
        return inputs.transactions is not None

    def candidates(self, transactions: list[WhaleTransaction]) -> list[WhaleTransaction]:
        """
        Pick up to ``check_limit`` transactions with unseen source addresses.

        The picked addresses are marked checked immediately, so a lookup
        that fails is not retried on a later tick.
        """
        picked: list[WhaleTransaction] = []
        for tx in transactions:
            if len(picked) >= self.check_limit:
                break
            address = tx.from_address
            if address in UNTRACKABLE_ADDRESSES or address in self.checked:
                continue
            self.checked.add(address)
            picked.append(tx)
        self._pending = picked
        return picked

    @staticmethod
    def dormant_days(activity: AddressActivity, now: datetime) -> int | None:
        if activity.last_active is None:
            return None
        return math.floor((now - activity.last_active).total_seconds() / SECONDS_PER_DAY)

    def evaluate(self, inputs: ScanInputs) -> list[RuleFinding]:
        findings: list[RuleFinding] = []
        for tx in self._pending:
            activity = inputs.activity.get(tx.from_address)
            if activity is None:
                continue
            days = self.dormant_days(activity, inputs.now)
            if days is None:
                continue

            if days > self.CRITICAL_DAYS and tx.amount >= self.CRITICAL_AMOUNT:
                severity = Severity.CRITICAL
                title = "Dormant address activated (>1 year)"
            elif days > self.WARNING_DAYS and tx.amount >= self.WARNING_AMOUNT:
                severity = Severity.WARNING
                title = "Dormant address activated (>180 days)"
            else:
                continue

            findings.append(RuleFinding(
                severity=severity,
                title=title,
                message=(
                    f"Address {_short(tx.from_address)} moved {tx.amount:.2f} BTC "
                    f"after {days} days dormant"
                ),
                data={"address": tx.from_address, "dormant_days": days, "amount": tx.amount},
            ))
        self._pending = []
        return findings

    def reset(self) -> None:
        self.checked.clear()
        self._pending = []


# =============================================================================
# Long trap (deposits into a rally)
# =============================================================================

def deposit_withdrawal_ratio(deposit_btc: float, withdrawal_btc: float) -> float:
    """Deposit/withdrawal volume ratio; 10 when only deposits exist, 1 when neither."""
    if withdrawal_btc > 0:
        return deposit_btc / withdrawal_btc
    return 10.0 if deposit_btc > 0 else 1.0


class LongTrapRule:
    """
    Heavy exchange deposits relative to withdrawals.

    warning: ratio > 2 while price is up more than 2% over 24h
    info:    ratio > 3 regardless of price
    """

    category = AlertCategory.LONG_TRAP_SIGNAL
    name = "Long Trap Signal"

    WARNING_RATIO = 2.0
    INFO_RATIO = 3.0
    PRICE_UP_PCT = 2.0

    def available(self, inputs: ScanInputs) -> bool:
        return inputs.transactions is not None

    def evaluate(self, inputs: ScanInputs) -> list[RuleFinding]:
        txs = inputs.transactions or []
        deposit_btc = sum(t.amount for t in txs if t.type == TxType.EXCHANGE_DEPOSIT)
        withdrawal_btc = sum(t.amount for t in txs if t.type == TxType.EXCHANGE_WITHDRAWAL)
        ratio = deposit_withdrawal_ratio(deposit_btc, withdrawal_btc)
        # Without a snapshot the price leg cannot fire
        price_change = inputs.snapshot.change_percent_24h if inputs.snapshot else 0.0

        if ratio > self.WARNING_RATIO and price_change > self.PRICE_UP_PCT:
            return [RuleFinding(
                severity=Severity.WARNING,
                title="Possible long trap",
                message=(
                    f"Exchange deposit/withdrawal ratio {ratio:.1f}:1 while price is up "
                    f"{price_change:.1f}% in 24h; heavy inflows may be distribution"
                ),
                data={
                    "ratio": ratio,
                    "deposit_btc": deposit_btc,
                    "withdrawal_btc": withdrawal_btc,
                    "price_change": price_change,
                },
            )]
        if ratio > self.INFO_RATIO:
            return [RuleFinding(
                severity=Severity.INFO,
                title="Elevated exchange deposits",
                message=(
                    f"Exchange deposit/withdrawal ratio {ratio:.1f}:1; "
                    f"watch the price reaction"
                ),
                data={"ratio": ratio, "deposit_btc": deposit_btc, "withdrawal_btc": withdrawal_btc},
            )]
        return []

    def reset(self) -> None:
        pass  # Stateless


# =============================================================================
# Derivatives hedging (fee spike + large deposits)
# =============================================================================

class DerivativesHedgingRule:
    """
    Fee spike coinciding with a large exchange deposit.

    Keeps the last ``window`` fastest-fee samples. With at least 3 samples,
    warns when the current fee exceeds twice the mean of the prior samples
    and a deposit above 50 BTC landed this tick.
    """

    category = AlertCategory.DERIVATIVES_HEDGING
    name = "Derivatives Hedging"

    MIN_SAMPLES = 3
    SPIKE_FACTOR = 2.0
    LARGE_DEPOSIT_BTC = 50.0

    def __init__(self, window: int = 12):
        self.fee_history: deque[float] = deque(maxlen=window)

    def available(self, inputs: ScanInputs) -> bool:
        return inputs.mempool is not None

    def evaluate(self, inputs: ScanInputs) -> list[RuleFinding]:
        current_fee = inputs.mempool.fee_rates.fastest
        self.fee_history.append(current_fee)
        if len(self.fee_history) < self.MIN_SAMPLES:
            return []

        prior = list(self.fee_history)[:-1]
        avg_fee = sum(prior) / len(prior)
        spike = current_fee > avg_fee * self.SPIKE_FACTOR
        large_deposit = any(
            t.type == TxType.EXCHANGE_DEPOSIT and t.amount > self.LARGE_DEPOSIT_BTC
            for t in inputs.transactions or []
        )
        if not (spike and large_deposit):
            return []

        return [RuleFinding(
            severity=Severity.WARNING,
            title="Derivatives hedging alert",
            message=(
                f"Fastest fee jumped to {current_fee:g} sat/vB (mean {avg_fee:.0f}) "
                f"alongside a large exchange deposit; possible urgent hedging"
            ),
            data={
                "current_fee": current_fee,
                "avg_fee": avg_fee,
                "spike": current_fee / avg_fee if avg_fee > 0 else None,
            },
        )]

    def reset(self) -> None:
        self.fee_history.clear()


# =============================================================================
# New whale in the top 100
# =============================================================================

class NewWhaleRule:
    """
    Addresses entering the top-holder list.

    The first evaluation only records the baseline set.
    """

    category = AlertCategory.NEW_WHALE_TOP100
    name = "New Whale in Top 100"

    def __init__(self):
        self.previous: set[str] | None = None

    def available(self, inputs: ScanInputs) -> bool:
        return bool(inputs.holders)

    def evaluate(self, inputs: ScanInputs) -> list[RuleFinding]:
        holders = inputs.holders or []
        findings: list[RuleFinding] = []
        if self.previous is not None:
            for holder in holders:
                if holder.address in self.previous:
                    continue
                findings.append(RuleFinding(
                    severity=Severity.CRITICAL,
                    title="New whale in top 100",
                    message=(
                        f"Address {_short(holder.address)} entered the top 100 holding "
                        f"{holder.balance:,.2f} BTC ({holder.percent_of_total:.3f}%)"
                    ),
                    data={
                        "address": holder.address,
                        "balance": holder.balance,
                        "rank": holder.rank,
                    },
                ))
        self.previous = {h.address for h in holders}
        return findings

    def reset(self) -> None:
        self.previous = None


def default_rules(dormant_check_limit: int = 10, fee_window: int = 12) -> list[AlertRule]:
    """The four built-in rules in evaluation order."""
    return [
        DormantActivationRule(check_limit=dormant_check_limit),
        LongTrapRule(),
        DerivativesHedgingRule(window=fee_window),
        NewWhaleRule(),
    ]
