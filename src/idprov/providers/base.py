from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Literal

from idprov.core.errors import ConfigurationError

if TYPE_CHECKING:
    from idprov.providers.context import ProviderContext
    from idprov.resources.base import Resource

# Every resource type accepts this action; the engine skips such resources.
NOTHING = "nothing"


@dataclass(frozen=True)
class PlanChange:
    """Represents a single change detected during planning."""

    action: Literal["create", "update", "delete", "run"]
    details: dict[str, Any]


@dataclass(frozen=True)
class PlanResult:
    """Plan result summarising pending changes."""

    changes: list[PlanChange]
    metadata: dict[str, Any] | None = None

    @property
    def has_changes(self) -> bool:
        return bool(self.changes)


class ResourceProvider(ABC):
    """
    Executor that inspects and mutates one kind of resource.

    ``actions`` lists what a declaration may ask for. Actions in
    ``always_apply_actions`` are inherently mutating (restart, run a command,
    poll a service); the engine applies them without loading current state.
    """

    resource_type: ClassVar[str]
    actions: ClassVar[frozenset[str]]
    always_apply_actions: ClassVar[frozenset[str]] = frozenset()

    def __init__(self, context: ProviderContext) -> None:
        self._ctx = context

    def check_action(self, resource: Resource) -> None:
        if resource.action != NOTHING and resource.action not in self.actions:
            raise ConfigurationError(
                f"Action '{resource.action}' is not supported by {type(self).__name__}",
                {"resource": str(resource), "supported": ", ".join(sorted(self.actions))},
            )

    def always_applies(self, action: str) -> bool:
        return action in self.always_apply_actions

    @abstractmethod
    def load_current_state(self, resource: Resource) -> dict[str, Any] | None:
        """Return the observed state of the resource, ``None`` when absent."""

    @abstractmethod
    def compute_diff(self, resource: Resource, current: dict[str, Any] | None) -> PlanResult:
        """Compare observed state with the declaration for its action."""

    @abstractmethod
    def apply(self, resource: Resource) -> None:
        """Perform the resource's action."""

    def plan(self, resource: Resource) -> PlanResult:
        return self.compute_diff(resource, self.load_current_state(resource))


def diff_fields(
    desired: dict[str, Any],
    current: dict[str, Any],
    fields: tuple[str, ...],
) -> list[PlanChange]:
    """Update changes for declared fields whose observed value differs."""
    changes: list[PlanChange] = []
    for name in fields:
        value = desired.get(name)
        if value is not None and current.get(name) != value:
            changes.append(PlanChange("update", {"field": name, "from": current.get(name), "to": value}))
    return changes
