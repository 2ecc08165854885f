"""Alert notification surface: durable alert list plus transient toasts."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import ValidationError

from chainwatch.storage.cache import KEY_ALERTS
from core.models.alert import Alert, AlertCategory, Severity
from core.protocols import ListStore

logger = logging.getLogger(__name__)


@dataclass
class _Toast:
    alert: Alert
    shown_at: float  # Monotonic clock


class AlertManager:
    """
    Owns the alert list (most recent first, capped) and the toast view.

    Toasts are independent of the durable list: at most ``toast_limit``
    of the newest alerts, each visible for ``toast_duration`` seconds.
    """

    def __init__(
        self,
        store: ListStore,
        cap: int = 200,
        toast_limit: int = 5,
        toast_duration: float = 5.0,
        monotonic: Callable[[], float] = time.monotonic,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.cap = cap
        self.toast_limit = toast_limit
        self.toast_duration = toast_duration
        self.monotonic = monotonic
        self.clock = clock

        self._alerts: list[Alert] = []
        self._toasts: list[_Toast] = []
        self._save_lock = asyncio.Lock()

    async def load(self) -> int:
        """Restore the persisted alert list."""
        alerts = []
        for record in await self.store.load_list(KEY_ALERTS):
            try:
                alerts.append(Alert.model_validate(record))
            except ValidationError as e:
                logger.warning(f"Skipping invalid stored alert: {e}")
        self._alerts = alerts[: self.cap]
        return len(self._alerts)

    async def _save(self) -> bool:
        async with self._save_lock:
            records = [a.model_dump(mode="json") for a in self._alerts]
            return await self.store.save_list(KEY_ALERTS, records, self.cap)

    # =========================================================================
    # Durable list
    # =========================================================================

    @property
    def alerts(self) -> list[Alert]:
        return list(self._alerts)

    @property
    def unread_count(self) -> int:
        return sum(1 for a in self._alerts if not a.read)

    async def add_alert(
        self,
        severity: Severity,
        category: AlertCategory,
        title: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> Alert:
        alert = Alert(
            timestamp=self.clock(),
            severity=severity,
            category=category,
            title=title,
            message=message,
            data=data,
        )
        self._alerts.insert(0, alert)
        del self._alerts[self.cap:]

        self._toasts.insert(0, _Toast(alert=alert, shown_at=self.monotonic()))
        del self._toasts[self.toast_limit:]

        logger.info(f"Alert [{severity.value}] {category.value}: {title}")
        await self._save()
        return alert

    async def mark_read(self, alert_id: str) -> bool:
        for alert in self._alerts:
            if alert.id == alert_id:
                if alert.read:
                    return False
                alert.read = True
                await self._save()
                return True
        return False

    async def mark_all_read(self) -> int:
        changed = 0
        for alert in self._alerts:
            if not alert.read:
                alert.read = True
                changed += 1
        if changed:
            await self._save()
        return changed

    async def clear_all(self) -> None:
        self._alerts = []
        self._toasts = []
        await self._save()

    # =========================================================================
    # Toasts
    # =========================================================================

    @property
    def toasts(self) -> list[Alert]:
        """Currently visible toasts, newest first."""
        now = self.monotonic()
        self._toasts = [t for t in self._toasts if now - t.shown_at < self.toast_duration]
        return [t.alert for t in self._toasts]

    def dismiss_toast(self, alert_id: str) -> bool:
        before = len(self._toasts)
        self._toasts = [t for t in self._toasts if t.alert.id != alert_id]
        return len(self._toasts) != before
