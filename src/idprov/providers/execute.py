from __future__ import annotations

import os
import shlex
from typing import Any

import structlog

from idprov.providers.base import PlanChange, PlanResult, ResourceProvider
from idprov.providers.registry import register_provider
from idprov.resources.base import Resource

logger = structlog.get_logger()


class ExecuteProvider(ResourceProvider):
    """Run a command on every convergence; ``command`` defaults to the resource name."""

    resource_type = "execute"
    actions = frozenset({"run"})
    always_apply_actions = frozenset({"run"})

    @staticmethod
    def argv(resource: Resource) -> list[str]:
        command = resource.get("command") or resource.name
        if isinstance(command, str):
            return shlex.split(command)
        return [str(part) for part in command]

    def load_current_state(self, resource: Resource) -> dict[str, Any] | None:
        return None

    def compute_diff(self, resource: Resource, current: dict[str, Any] | None) -> PlanResult:
        return PlanResult([PlanChange("run", {"command": shlex.join(self.argv(resource))})])

    def apply(self, resource: Resource) -> None:
        environment = resource.get("environment")
        env = {**os.environ, **environment} if environment else None
        result = self._ctx.runner.run(self.argv(resource), env=env, cwd=resource.get("cwd"))
        logger.info("command_executed", command=shlex.join(result.argv))


register_provider("execute", ExecuteProvider, description="commands run on every convergence")

__all__ = ["ExecuteProvider"]
