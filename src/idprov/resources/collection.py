"""Ordered collection of declared resources keyed by (type, name)."""

from __future__ import annotations

from typing import Any, Iterable, Iterator

import structlog

from idprov.core.errors import ConfigurationError
from idprov.resources.base import Notification, Resource, ResourceKey

logger = structlog.get_logger()


class ResourceCollection:
    """
    Resources in declaration order.

    Declaring a (type, name) pair a second time updates the first declaration
    in place: attributes are merged, the action is replaced and notification
    edges are added. The resource still runs once, at its original position.
    """

    def __init__(self, resources: Iterable[Resource] = ()) -> None:
        self._resources: dict[ResourceKey, Resource] = {}
        for resource in resources:
            self.add(resource)

    def add(self, resource: Resource) -> Resource:
        existing = self._resources.get(resource.key)
        if existing is None:
            self._resources[resource.key] = resource
            return resource

        logger.debug("resource_redeclared", resource=str(resource.key))
        existing.attributes.update(resource.attributes)
        existing.action = resource.action
        if resource.provider is not None:
            existing.provider = resource.provider
        for edge in resource.notifies:
            existing.notify(edge.action, edge.target, edge.timing)
        return existing

    def declare(
        self,
        resource_type: str,
        name: str,
        action: str,
        *,
        provider: str | None = None,
        notifies: Iterable[Notification] = (),
        **attributes: Any,
    ) -> Resource:
        """Declare a resource and return the collection's instance of it."""
        resource = Resource(
            type=resource_type,
            name=name,
            action=action,
            attributes=attributes,
            provider=provider,
            notifies=list(notifies),
        )
        return self.add(resource)

    def lookup(self, key: ResourceKey) -> Resource:
        resource = self._resources.get(key)
        if resource is None:
            raise ConfigurationError(f"Resource {key} is not declared")
        return resource

    def validate_notifications(self) -> None:
        """Every notification edge must point at a declared resource."""
        for resource in self:
            for edge in resource.notifies:
                if edge.target not in self._resources:
                    raise ConfigurationError(
                        f"Resource {resource} notifies undeclared resource {edge.target}",
                        {"action": edge.action},
                    )

    def __iter__(self) -> Iterator[Resource]:
        return iter(list(self._resources.values()))

    def __len__(self) -> int:
        return len(self._resources)

    def __contains__(self, key: object) -> bool:
        return key in self._resources
