from __future__ import annotations

from typing import Any

import structlog

from idprov.providers.base import PlanChange, PlanResult, ResourceProvider
from idprov.providers.registry import register_provider
from idprov.resources.base import Resource

logger = structlog.get_logger()


class SystemdServiceProvider(ResourceProvider):
    """Manage a systemd unit; ``service_name`` overrides the resource name."""

    resource_type = "service"
    actions = frozenset({"enable", "disable", "start", "stop", "restart", "reload"})
    always_apply_actions = frozenset({"restart", "reload"})

    # action -> (state field, value the action converges to)
    _TARGETS = {
        "enable": ("enabled", True),
        "disable": ("enabled", False),
        "start": ("active", True),
        "stop": ("active", False),
    }

    @staticmethod
    def service_name(resource: Resource) -> str:
        return resource.get("service_name") or resource.name

    def load_current_state(self, resource: Resource) -> dict[str, Any] | None:
        name = self.service_name(resource)
        enabled = self._ctx.runner.run(["systemctl", "is-enabled", "--quiet", name], check=False)
        active = self._ctx.runner.run(["systemctl", "is-active", "--quiet", name], check=False)
        return {"enabled": enabled.ok, "active": active.ok}

    def compute_diff(self, resource: Resource, current: dict[str, Any] | None) -> PlanResult:
        if self.always_applies(resource.action):
            details = {"service": self.service_name(resource), "action": resource.action}
            return PlanResult([PlanChange("run", details)])
        field, wanted = self._TARGETS[resource.action]
        observed = (current or {}).get(field)
        if observed == wanted:
            return PlanResult([])
        return PlanResult(
            [PlanChange("update", {"service": self.service_name(resource), field: wanted})]
        )

    def apply(self, resource: Resource) -> None:
        name = self.service_name(resource)
        self._ctx.runner.run(["systemctl", resource.action, name])
        logger.info("service_changed", service=name, action=resource.action)


register_provider("service", SystemdServiceProvider, description="systemd units")

__all__ = ["SystemdServiceProvider"]
