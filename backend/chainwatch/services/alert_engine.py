"""Alert rule engine.

One scan fetches the shared inputs concurrently, then evaluates every
enabled rule concurrently. Each rule is isolated: missing inputs skip it,
and an exception inside it is logged without touching the other rules.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Callable

from chainwatch.services.alert_manager import AlertManager
from chainwatch.services.sampling import fetch_or_none
from core.alerts.rules import (
    AlertRule,
    DormantActivationRule,
    ScanInputs,
    default_rules,
)
from core.models.alert import Alert, AlertCategory, RuleState, RuleStatus
from core.protocols import MarketDataSource

logger = logging.getLogger(__name__)

SCAN_LOG_SIZE = 50


class AlertEngine:
    """Evaluates alert rules on demand or from the scheduler."""

    def __init__(
        self,
        source: MarketDataSource,
        alert_manager: AlertManager,
        rules: list[AlertRule] | None = None,
        large_tx_min_btc: float = 10.0,
        large_tx_block_depth: int = 2,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.source = source
        self.alert_manager = alert_manager
        self.large_tx_min_btc = large_tx_min_btc
        self.large_tx_block_depth = large_tx_block_depth
        self.clock = clock

        rules = rules if rules is not None else default_rules()
        self._rules: dict[AlertCategory, AlertRule] = {r.category: r for r in rules}
        self._status: dict[AlertCategory, RuleStatus] = {
            r.category: RuleStatus(name=r.name, category=r.category) for r in rules
        }
        self._scanning = False
        self.scan_log: deque[str] = deque(maxlen=SCAN_LOG_SIZE)
        self.last_scan: datetime | None = None

    # =========================================================================
    # Rule control
    # =========================================================================

    @property
    def statuses(self) -> list[RuleStatus]:
        return list(self._status.values())

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    def status(self, category: AlertCategory) -> RuleStatus:
        return self._status[category]

    def set_enabled(self, category: AlertCategory, enabled: bool) -> None:
        if category not in self._status:
            raise KeyError(f"No rule for category {category.value}")
        self._status[category].enabled = enabled
        logger.info(f"Rule {category.value} {'enabled' if enabled else 'disabled'}")

    def toggle(self, category: AlertCategory) -> bool:
        enabled = not self._status[category].enabled
        self.set_enabled(category, enabled)
        return enabled

    def _log(self, message: str) -> None:
        self.scan_log.appendleft(f"{self.clock():%H:%M:%S} {message}")
        logger.info(message)

    # =========================================================================
    # Scanning
    # =========================================================================

    async def _fetch_inputs(self, now: datetime) -> ScanInputs:
        transactions, snapshot, mempool, holders = await asyncio.gather(
            fetch_or_none(
                "large_transactions",
                self.source.get_large_transactions(
                    self.large_tx_min_btc, self.large_tx_block_depth
                ),
            ),
            fetch_or_none("snapshot", self.source.get_current_snapshot()),
            fetch_or_none("mempool", self.source.get_mempool_snapshot()),
            fetch_or_none("holders", self.source.get_top_holders()),
        )
        return ScanInputs(
            now=now,
            transactions=transactions,
            snapshot=snapshot,
            mempool=mempool,
            holders=holders,
        )

    async def _lookup_activity(self, rule: DormantActivationRule, inputs: ScanInputs) -> None:
        candidates = rule.candidates(inputs.transactions or [])
        if not candidates:
            return
        results = await asyncio.gather(*(
            fetch_or_none(
                f"activity:{tx.from_address}",
                self.source.get_address_last_activity(tx.from_address),
            )
            for tx in candidates
        ))
        for tx, activity in zip(candidates, results):
            if activity is not None:
                inputs.activity[tx.from_address] = activity

    async def _run_rule(self, rule: AlertRule, inputs: ScanInputs) -> list[Alert]:
        status = self._status[rule.category]
        if not rule.available(inputs):
            self._log(f"Skipping {rule.category.value}: input unavailable")
            return []

        status.status = RuleState.CHECKING
        status.last_check = inputs.now
        try:
            if isinstance(rule, DormantActivationRule):
                await self._lookup_activity(rule, inputs)
            findings = rule.evaluate(inputs)
        except Exception as e:
            logger.error(f"Rule {rule.category.value} failed: {e}", exc_info=True)
            self._log(f"{rule.category.value} check failed")
            status.status = RuleState.NORMAL
            return []

        alerts = []
        for finding in findings:
            alerts.append(await self.alert_manager.add_alert(
                finding.severity,
                rule.category,
                finding.title,
                finding.message,
                finding.data,
            ))
        status.trigger_count += len(findings)
        status.status = RuleState.TRIGGERED if findings else RuleState.NORMAL
        self._log(f"{rule.category.value} check done: {len(findings)} finding(s)")
        return alerts

    async def scan(self) -> list[Alert]:
        """Run one scan over every enabled rule. Returns the alerts raised."""
        if self._scanning:
            logger.debug("Scan already running, skipping")
            return []

        enabled = [self._rules[c] for c, s in self._status.items() if s.enabled]
        if not enabled:
            return []

        self._scanning = True
        try:
            now = self.clock()
            self._log("Scan started")
            inputs = await self._fetch_inputs(now)
            results = await asyncio.gather(*(self._run_rule(r, inputs) for r in enabled))
            alerts = [a for rule_alerts in results for a in rule_alerts]
            self.last_scan = now
            self._log(f"Scan complete: {len(alerts)} alert(s)")
            return alerts
        finally:
            self._scanning = False
