"""Alert and rule status models."""

import secrets
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Severity(str, Enum):
    """Alert severity."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AlertCategory(str, Enum):
    """Alert category (one per detector)."""

    DORMANT_ACTIVATION = "dormant_activation"
    LONG_TRAP_SIGNAL = "long_trap_signal"
    DERIVATIVES_HEDGING = "derivatives_hedging"
    NEW_WHALE_TOP100 = "new_whale_top100"
    LARGE_INFLOW = "large_inflow"
    LARGE_OUTFLOW = "large_outflow"


class RuleState(str, Enum):
    """Rule evaluation state."""

    IDLE = "idle"
    CHECKING = "checking"
    TRIGGERED = "triggered"
    NORMAL = "normal"


def _generate_alert_id(timestamp: datetime) -> str:
    return f"{int(timestamp.timestamp() * 1000)}-{secrets.token_hex(3)}"


class Alert(BaseModel):
    """A severity-tagged notification produced by a triggered rule."""

    id: str = ""  # Set in model_post_init
    timestamp: datetime
    severity: Severity
    category: AlertCategory
    title: str
    message: str
    data: dict[str, Any] | None = None
    read: bool = False

    def model_post_init(self, __context) -> None:
        if not self.id:
            object.__setattr__(self, "id", _generate_alert_id(self.timestamp))


class RuleFinding(BaseModel):
    """One detection made by a rule; becomes exactly one Alert."""

    severity: Severity
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)


class RuleStatus(BaseModel):
    """Runtime status of one rule. Rebuilt as idle at process start."""

    name: str
    category: AlertCategory
    enabled: bool = True
    last_check: datetime | None = None
    trigger_count: int = 0
    status: RuleState = RuleState.IDLE
