"""Result types for convergence runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Dict, List, Optional

from idprov.providers.base import PlanChange
from idprov.resources.base import ResourceKey


class ResourceStatus(StrEnum):
    UP_TO_DATE = "up_to_date"
    UPDATED = "updated"
    EXECUTED = "executed"
    SKIPPED = "skipped"
    WOULD_UPDATE = "would_update"


CHANGED_STATUSES = frozenset({ResourceStatus.UPDATED, ResourceStatus.EXECUTED, ResourceStatus.WOULD_UPDATE})


@dataclass
class ResourceOutcome:
    """What happened to one resource action during a run."""

    key: ResourceKey
    action: str
    status: ResourceStatus
    changes: List[PlanChange] = field(default_factory=list)
    duration_seconds: float = 0.0
    triggered_by: Optional[str] = None
    notified: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.status in CHANGED_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resource": str(self.key),
            "action": self.action,
            "status": str(self.status),
            "changes": [{"action": c.action, **c.details} for c in self.changes],
            "duration_seconds": round(self.duration_seconds, 3),
            "triggered_by": self.triggered_by,
            "notified": list(self.notified),
        }


@dataclass
class RunReport:
    """Result of converging a resource collection."""

    outcomes: List[ResourceOutcome] = field(default_factory=list)
    duration_seconds: float = 0.0
    dry_run: bool = False

    def record(self, outcome: ResourceOutcome) -> None:
        self.outcomes.append(outcome)

    def count(self, status: ResourceStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def updated_count(self) -> int:
        """Resources whose state a run changed (or, in dry-run, would change)."""
        return self.count(ResourceStatus.UPDATED) + self.count(ResourceStatus.WOULD_UPDATE)

    @property
    def executed_count(self) -> int:
        return self.count(ResourceStatus.EXECUTED)

    @property
    def changed(self) -> List[ResourceOutcome]:
        return [outcome for outcome in self.outcomes if outcome.changed]

    def summary(self) -> Dict[str, int]:
        return {str(status): self.count(status) for status in ResourceStatus}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "duration_seconds": round(self.duration_seconds, 3),
            "summary": self.summary(),
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }
