"""Monitoring services."""

from chainwatch.services.alert_engine import AlertEngine
from chainwatch.services.alert_manager import AlertManager
from chainwatch.services.prediction_manager import PredictionManager
from chainwatch.services.sampling import collect_sample
from chainwatch.services.scheduler import Scheduler

__all__ = [
    "AlertEngine",
    "AlertManager",
    "PredictionManager",
    "Scheduler",
    "collect_sample",
]
