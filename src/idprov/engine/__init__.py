"""Convergence engine and run results."""

from idprov.engine.engine import ConvergenceEngine
from idprov.engine.notifications import NotificationQueue
from idprov.engine.results import ResourceOutcome, ResourceStatus, RunReport

__all__ = [
    "ConvergenceEngine",
    "NotificationQueue",
    "ResourceOutcome",
    "ResourceStatus",
    "RunReport",
]
