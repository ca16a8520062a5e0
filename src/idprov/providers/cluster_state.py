from __future__ import annotations

from typing import Any

import structlog

from idprov.cluster.state import ClusterState
from idprov.core.errors import ConfigurationError
from idprov.providers.base import PlanChange, PlanResult, ResourceProvider
from idprov.providers.registry import register_provider
from idprov.resources.base import Resource

logger = structlog.get_logger()


class ClusterStateProvider(ResourceProvider):
    """Append ``value`` to the list at ``path`` on ``node``'s shared state, once."""

    resource_type = "cluster_state"
    actions = frozenset({"append"})

    @property
    def state(self) -> ClusterState:
        if self._ctx.state is None:
            raise ConfigurationError("cluster_state resources need a cluster state file")
        return self._ctx.state

    def load_current_state(self, resource: Resource) -> dict[str, Any] | None:
        items = self.state.get(resource.require("node"), resource.require("path"))
        return {"items": list(items) if isinstance(items, list) else items}

    def compute_diff(self, resource: Resource, current: dict[str, Any] | None) -> PlanResult:
        value = resource.require("value")
        items = (current or {}).get("items") or []
        if value in items:
            return PlanResult([])
        return PlanResult(
            [PlanChange("update", {"node": resource.get("node"), "path": resource.get("path"), "append": value})]
        )

    def apply(self, resource: Resource) -> None:
        node, path = resource.require("node"), resource.require("path")
        if self.state.append_unique(node, path, resource.require("value")):
            self.state.save()
            logger.info("cluster_state_appended", node=node, path=path)


register_provider("cluster_state", ClusterStateProvider, description="shared cluster state lists")

__all__ = ["ClusterStateProvider"]
