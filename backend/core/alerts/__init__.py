"""Alert rule evaluators."""

from core.alerts.rules import (
    AlertRule,
    DerivativesHedgingRule,
    DormantActivationRule,
    LongTrapRule,
    NewWhaleRule,
    ScanInputs,
    default_rules,
    deposit_withdrawal_ratio,
)

__all__ = [
    "AlertRule",
    "DerivativesHedgingRule",
    "DormantActivationRule",
    "LongTrapRule",
    "NewWhaleRule",
    "ScanInputs",
    "default_rules",
    "deposit_withdrawal_ratio",
]
