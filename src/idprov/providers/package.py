"""Package providers, one variant per platform family."""

from __future__ import annotations

import os
from abc import abstractmethod
from typing import Any

import structlog

from idprov.providers.base import PlanChange, PlanResult, ResourceProvider
from idprov.providers.registry import register_provider
from idprov.resources.base import Resource

logger = structlog.get_logger()


class PackageProvider(ResourceProvider):
    """Install or remove a package; ``package_name`` overrides the resource name."""

    resource_type = "package"
    actions = frozenset({"install", "remove"})

    @staticmethod
    def package_name(resource: Resource) -> str:
        return resource.get("package_name") or resource.name

    def load_current_state(self, resource: Resource) -> dict[str, Any] | None:
        version = self._installed_version(self.package_name(resource))
        if version is None:
            return None
        return {"version": version}

    def compute_diff(self, resource: Resource, current: dict[str, Any] | None) -> PlanResult:
        name = self.package_name(resource)
        if resource.action == "remove":
            if current is None:
                return PlanResult([])
            return PlanResult([PlanChange("delete", {"package": name})])

        if current is None:
            return PlanResult([PlanChange("create", {"package": name, "version": resource.get("version")})])
        version = resource.get("version")
        if version and current.get("version") != version:
            return PlanResult(
                [PlanChange("update", {"package": name, "from": current.get("version"), "to": version})]
            )
        return PlanResult([])

    def apply(self, resource: Resource) -> None:
        name = self.package_name(resource)
        if resource.action == "remove":
            self._remove(name)
        else:
            self._install(name, resource.get("version"))
        logger.info("package_changed", package=name, action=resource.action)

    @abstractmethod
    def _installed_version(self, name: str) -> str | None:
        """Installed version of ``name``, ``None`` when not installed."""

    @abstractmethod
    def _install(self, name: str, version: str | None) -> None:
        """Install ``name``, pinned to ``version`` when given."""

    @abstractmethod
    def _remove(self, name: str) -> None:
        """Remove ``name``."""


class AptPackageProvider(PackageProvider):
    def _installed_version(self, name: str) -> str | None:
        result = self._ctx.runner.run(
            ["dpkg-query", "-W", "-f=${Status} ${Version}", name], check=False
        )
        if not result.ok or not result.stdout.startswith("install ok installed"):
            return None
        return result.stdout.split()[-1]

    def _install(self, name: str, version: str | None) -> None:
        target = f"{name}={version}" if version else name
        self._ctx.runner.run(["apt-get", "install", "-y", "-q", target], env=self._env())

    def _remove(self, name: str) -> None:
        self._ctx.runner.run(["apt-get", "remove", "-y", "-q", name], env=self._env())

    @staticmethod
    def _env() -> dict[str, str]:
        return {**os.environ, "DEBIAN_FRONTEND": "noninteractive"}


class RpmPackageProvider(PackageProvider):
    def _installed_version(self, name: str) -> str | None:
        result = self._ctx.runner.run(
            ["rpm", "-q", "--qf", "%{VERSION}-%{RELEASE}", name], check=False
        )
        if not result.ok:
            return None
        return result.stdout.strip()


class ZypperPackageProvider(RpmPackageProvider):
    def _install(self, name: str, version: str | None) -> None:
        target = f"{name}={version}" if version else name
        self._ctx.runner.run(["zypper", "--non-interactive", "install", target])

    def _remove(self, name: str) -> None:
        self._ctx.runner.run(["zypper", "--non-interactive", "remove", name])


class YumPackageProvider(RpmPackageProvider):
    def _install(self, name: str, version: str | None) -> None:
        target = f"{name}-{version}" if version else name
        self._ctx.runner.run(["yum", "install", "-y", target])

    def _remove(self, name: str) -> None:
        self._ctx.runner.run(["yum", "remove", "-y", name])


register_provider("package", AptPackageProvider, variant="debian", description="apt/dpkg packages")
register_provider("package", ZypperPackageProvider, variant="suse", description="zypper/rpm packages")
register_provider("package", YumPackageProvider, variant="rhel", description="yum/rpm packages")

__all__ = [
    "AptPackageProvider",
    "PackageProvider",
    "YumPackageProvider",
    "ZypperPackageProvider",
]
