"""
Idempotent registration against the identity service admin API.

Every action checks existence by natural key and creates the entity only when
it is absent. Existing entities are never updated. Relational actions
(``add_user``, ``add_access``, ``add_ec2``, ``add_endpoint_template``) look up
the entities they reference by name and fail with ``ConfigurationError`` when
one has not been registered; nothing is created implicitly.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

import structlog

from idprov.clients.keystone import KeystoneAdminClient
from idprov.core.errors import ConfigurationError
from idprov.providers.base import PlanChange, PlanResult, ResourceProvider
from idprov.providers.registry import register_provider
from idprov.resources.base import Resource

logger = structlog.get_logger()


class KeystoneRegisterProvider(ResourceProvider):
    """
    Provider for ``keystone_register`` resources.

    Connection attributes shared by every action: ``host``, ``port``,
    ``token`` and optionally ``protocol``.
    """

    resource_type = "keystone_register"
    actions = frozenset(
        {
            "wakeup",
            "add_tenant",
            "add_user",
            "add_role",
            "add_access",
            "add_ec2",
            "add_service",
            "add_endpoint_template",
        }
    )
    always_apply_actions = frozenset({"wakeup"})

    @contextmanager
    def client(self, resource: Resource) -> Iterator[KeystoneAdminClient]:
        client = self._ctx.keystone_client_factory(
            resource.require("host"),
            int(resource.require("port")),
            resource.require("token"),
            protocol=resource.get("protocol", "http"),
            timeout=self._ctx.http_timeout,
            max_retries=self._ctx.http_max_retries,
            backoff_factor=self._ctx.http_retry_backoff_factor,
        )
        with client:
            yield client

    # === Contract ===

    def load_current_state(self, resource: Resource) -> dict[str, Any] | None:
        if resource.action == "wakeup":
            return None
        loader = getattr(self, f"_load_{resource.action[len('add_'):]}")
        with self.client(resource) as client:
            return loader(client, resource)

    def compute_diff(self, resource: Resource, current: dict[str, Any] | None) -> PlanResult:
        if resource.action == "wakeup":
            return PlanResult([PlanChange("run", {"host": resource.get("host"), "port": resource.get("port")})])
        if current is not None:
            return PlanResult([])
        return PlanResult([PlanChange("create", self._identity(resource))])

    def apply(self, resource: Resource) -> None:
        with self.client(resource) as client:
            if resource.action == "wakeup":
                client.wait_until_available(
                    attempts=self._ctx.wakeup_attempts,
                    interval=self._ctx.wakeup_interval,
                    timeout=self._ctx.wakeup_timeout,
                )
                return
            creator = getattr(self, f"_create_{resource.action[len('add_'):]}")
            creator(client, resource)
        logger.info("keystone_registered", resource=str(resource), **self._identity(resource))

    @staticmethod
    def _identity(resource: Resource) -> dict[str, Any]:
        """Natural key of the entity an action registers."""
        action = resource.action
        if action == "add_tenant":
            return {"tenant": resource.require("tenant_name")}
        if action == "add_user":
            return {"user": resource.require("user_name")}
        if action == "add_role":
            return {"role": resource.require("role_name")}
        if action == "add_access":
            return {
                "user": resource.require("user_name"),
                "role": resource.require("role_name"),
                "tenant": resource.require("tenant_name"),
            }
        if action == "add_ec2":
            return {"user": resource.require("user_name"), "tenant": resource.require("tenant_name")}
        if action == "add_service":
            return {"service": resource.require("service_name")}
        return {
            "service": resource.require("endpoint_service"),
            "region": resource.require("endpoint_region"),
        }

    # === Lookups (None means "absent") ===
    #
    # Relational lookups also report absence when a referenced entity is
    # missing, so dry runs can plan a full registration sequence. The create
    # step then raises for the missing reference.

    def _load_tenant(self, client: KeystoneAdminClient, resource: Resource) -> dict[str, Any] | None:
        return client.find_tenant(resource.require("tenant_name"))

    def _load_user(self, client: KeystoneAdminClient, resource: Resource) -> dict[str, Any] | None:
        return client.find_user(resource.require("user_name"))

    def _load_role(self, client: KeystoneAdminClient, resource: Resource) -> dict[str, Any] | None:
        return client.find_role(resource.require("role_name"))

    def _load_access(self, client: KeystoneAdminClient, resource: Resource) -> dict[str, Any] | None:
        tenant = client.find_tenant(resource.require("tenant_name"))
        user = client.find_user(resource.require("user_name"))
        role = client.find_role(resource.require("role_name"))
        if tenant is None or user is None or role is None:
            return None
        assigned = client.user_roles(tenant["id"], user["id"])
        if any(r.get("id") == role["id"] for r in assigned):
            return {"tenant_id": tenant["id"], "user_id": user["id"], "role_id": role["id"]}
        return None

    def _load_ec2(self, client: KeystoneAdminClient, resource: Resource) -> dict[str, Any] | None:
        tenant = client.find_tenant(resource.require("tenant_name"))
        user = client.find_user(resource.require("user_name"))
        if tenant is None or user is None:
            return None
        for credential in client.ec2_credentials(user["id"]):
            if credential.get("tenant_id") == tenant["id"]:
                return {"tenant_id": tenant["id"], "user_id": user["id"]}
        return None

    def _load_service(self, client: KeystoneAdminClient, resource: Resource) -> dict[str, Any] | None:
        return client.find_service(resource.require("service_name"))

    def _load_endpoint_template(
        self, client: KeystoneAdminClient, resource: Resource
    ) -> dict[str, Any] | None:
        service = client.find_service(resource.require("endpoint_service"))
        if service is None:
            return None
        return client.find_endpoint(service["id"], resource.require("endpoint_region"))

    # === Creation ===

    def _create_tenant(self, client: KeystoneAdminClient, resource: Resource) -> None:
        client.create_tenant(resource.require("tenant_name"), description=resource.get("description"))

    def _create_user(self, client: KeystoneAdminClient, resource: Resource) -> None:
        tenant = _referenced(client.find_tenant, "tenant", resource.require("tenant_name"), resource)
        client.create_user(
            resource.require("user_name"),
            resource.require("user_password"),
            tenant["id"],
            email=resource.get("email"),
        )

    def _create_role(self, client: KeystoneAdminClient, resource: Resource) -> None:
        client.create_role(resource.require("role_name"))

    def _create_access(self, client: KeystoneAdminClient, resource: Resource) -> None:
        tenant = _referenced(client.find_tenant, "tenant", resource.require("tenant_name"), resource)
        user = _referenced(client.find_user, "user", resource.require("user_name"), resource)
        role = _referenced(client.find_role, "role", resource.require("role_name"), resource)
        client.grant_role(tenant["id"], user["id"], role["id"])

    def _create_ec2(self, client: KeystoneAdminClient, resource: Resource) -> None:
        tenant = _referenced(client.find_tenant, "tenant", resource.require("tenant_name"), resource)
        user = _referenced(client.find_user, "user", resource.require("user_name"), resource)
        client.create_ec2_credentials(user["id"], tenant["id"])

    def _create_service(self, client: KeystoneAdminClient, resource: Resource) -> None:
        name = resource.require("service_name")
        client.create_service(
            name,
            resource.require("service_type"),
            resource.get("service_description") or name,
        )

    def _create_endpoint_template(self, client: KeystoneAdminClient, resource: Resource) -> None:
        service = _referenced(client.find_service, "service", resource.require("endpoint_service"), resource)
        client.create_endpoint(
            service["id"],
            resource.require("endpoint_region"),
            public_url=resource.require("endpoint_public_url"),
            admin_url=resource.require("endpoint_admin_url"),
            internal_url=resource.require("endpoint_internal_url"),
        )


def _referenced(find: Any, kind: str, name: str, resource: Resource) -> dict[str, Any]:
    entity = find(name)
    if entity is None:
        raise ConfigurationError(
            f"Resource {resource} references {kind} '{name}' which is not registered",
            {"action": resource.action},
        )
    return entity


register_provider(
    "keystone_register",
    KeystoneRegisterProvider,
    description="identity service registrations (create if absent)",
)

__all__ = ["KeystoneRegisterProvider"]
