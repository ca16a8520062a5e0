"""Declared-resource model: a unit of desired state plus the action reaching it."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from idprov.core.errors import ConfigurationError


class Timing(StrEnum):
    """When a notification fires relative to the triggering resource."""

    IMMEDIATE = "immediately"
    DELAYED = "delayed"


@dataclass(frozen=True)
class ResourceKey:
    """Identity of a declared resource."""

    type: str
    name: str

    def __str__(self) -> str:
        return f"{self.type}[{self.name}]"


@dataclass(frozen=True)
class Notification:
    """Edge from a changed resource to an action on another resource."""

    action: str
    target: ResourceKey
    timing: Timing = Timing.DELAYED


@dataclass
class Resource:
    """
    A declared resource.

    ``provider`` optionally names the provider variant explicitly (for example
    the SQL engine of a database resource); otherwise the variant is picked
    from the run's platform during provider resolution.
    """

    type: str
    name: str
    action: str
    attributes: dict[str, Any] = field(default_factory=dict)
    provider: str | None = None
    notifies: list[Notification] = field(default_factory=list)

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(self.type, self.name)

    def __str__(self) -> str:
        return str(self.key)

    def get(self, attribute: str, default: Any = None) -> Any:
        return self.attributes.get(attribute, default)

    def require(self, attribute: str) -> Any:
        """Return a declared attribute, failing if the declaration omits it."""
        value = self.attributes.get(attribute)
        if value is None:
            raise ConfigurationError(
                f"Resource {self} requires attribute '{attribute}'",
                {"action": self.action},
            )
        return value

    def notify(
        self,
        action: str,
        target: Resource | ResourceKey,
        timing: Timing = Timing.DELAYED,
    ) -> Resource:
        """Declare a notification edge; repeated identical edges collapse."""
        target_key = target.key if isinstance(target, Resource) else target
        edge = Notification(action=action, target=target_key, timing=Timing(timing))
        if edge not in self.notifies:
            self.notifies.append(edge)
        return self
