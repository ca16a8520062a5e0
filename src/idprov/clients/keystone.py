"""
Client for the identity service v2.0 administrative API.

Lookups are by natural key (names, or name tuples resolved to ids) so that
callers can implement create-if-absent without keeping any local copy of
remote ids. All transport failures surface as ``RemoteCallError``.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

import structlog
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_fixed,
)

from idprov.clients.base import BaseHTTPClient, PermanentHTTPError, RetryableHTTPError
from idprov.core.errors import RemoteCallError

logger = structlog.get_logger()

API_PREFIX = "/v2.0"


class KeystoneAdminClient(BaseHTTPClient):
    """Identity service admin API client authenticated by the admin token."""

    def __init__(
        self,
        host: str,
        port: int,
        token: str,
        *,
        protocol: str = "http",
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
    ) -> None:
        super().__init__(
            f"{protocol}://{host}:{port}{API_PREFIX}",
            timeout=timeout,
            max_retries=max_retries,
            backoff_factor=backoff_factor,
        )
        self._token = token

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        headers["X-Auth-Token"] = self._token
        return headers

    @contextmanager
    def _remote(self, operation: str, **details: Any) -> Iterator[None]:
        try:
            yield
        except PermanentHTTPError as exc:
            raise RemoteCallError(
                f"Identity API rejected {operation}",
                {"url": self.base_url, "status": exc.status_code, **details},
            ) from exc
        except RetryableHTTPError as exc:
            raise RemoteCallError(
                f"Identity API unavailable during {operation}",
                {"url": self.base_url, "error": str(exc), **details},
            ) from exc

    # === Liveness ===

    def wait_until_available(
        self,
        *,
        attempts: int = 30,
        interval: float = 2.0,
        timeout: float = 120.0,
    ) -> None:
        """
        Block until the API answers, polling up to ``attempts`` times or
        ``timeout`` seconds, whichever comes first.

        Raises:
            RemoteCallError: the API did not answer within the bound, or
                answered with a non-retryable error.
        """
        retrying = Retrying(
            retry=retry_if_exception_type(RetryableHTTPError),
            stop=stop_after_attempt(attempts) | stop_after_delay(timeout),
            wait=wait_fixed(interval),
            before_sleep=self._log_wakeup_attempt,
        )
        try:
            with self._remote("wakeup"):
                for attempt in retrying:
                    with attempt:
                        self._send("GET", "/")
        except RetryError as exc:
            raise RemoteCallError(
                "Identity API did not become reachable",
                {"url": self.base_url, "attempts": exc.last_attempt.attempt_number},
            ) from exc
        logger.info("keystone_available", url=self.base_url)

    def _log_wakeup_attempt(self, retry_state: RetryCallState) -> None:
        logger.info(
            "keystone_wakeup_attempt",
            url=self.base_url,
            attempt=retry_state.attempt_number,
        )

    # === Tenants ===

    def find_tenant(self, name: str) -> dict[str, Any] | None:
        with self._remote("tenant lookup", tenant=name):
            data = self.get("/tenants")
        return _by_name(data.get("tenants", []), name)

    def create_tenant(self, name: str, *, description: str | None = None) -> dict[str, Any]:
        payload = {"tenant": {"name": name, "description": description or name, "enabled": True}}
        with self._remote("tenant creation", tenant=name):
            data = self.post("/tenants", json=payload)
        return data.get("tenant", {})

    # === Users ===

    def find_user(self, name: str) -> dict[str, Any] | None:
        with self._remote("user lookup", user=name):
            data = self.get("/users")
        return _by_name(data.get("users", []), name)

    def create_user(
        self,
        name: str,
        password: str,
        tenant_id: str,
        *,
        email: str | None = None,
    ) -> dict[str, Any]:
        payload = {
            "user": {
                "name": name,
                "password": password,
                "tenantId": tenant_id,
                "email": email,
                "enabled": True,
            }
        }
        with self._remote("user creation", user=name):
            data = self.post("/users", json=payload)
        return data.get("user", {})

    # === Roles ===

    def find_role(self, name: str) -> dict[str, Any] | None:
        with self._remote("role lookup", role=name):
            data = self.get("/OS-KSADM/roles")
        return _by_name(data.get("roles", []), name)

    def create_role(self, name: str) -> dict[str, Any]:
        with self._remote("role creation", role=name):
            data = self.post("/OS-KSADM/roles", json={"role": {"name": name}})
        return data.get("role", {})

    def user_roles(self, tenant_id: str, user_id: str) -> list[dict[str, Any]]:
        with self._remote("role assignment lookup", tenant_id=tenant_id, user_id=user_id):
            data = self.get(f"/tenants/{tenant_id}/users/{user_id}/roles")
        return list(data.get("roles", []))

    def grant_role(self, tenant_id: str, user_id: str, role_id: str) -> None:
        with self._remote("role assignment", tenant_id=tenant_id, user_id=user_id, role_id=role_id):
            self.put(f"/tenants/{tenant_id}/users/{user_id}/roles/OS-KSADM/{role_id}")

    # === EC2 credentials ===

    def ec2_credentials(self, user_id: str) -> list[dict[str, Any]]:
        with self._remote("ec2 credential lookup", user_id=user_id):
            data = self.get(f"/users/{user_id}/credentials/OS-EC2")
        return list(data.get("credentials", []))

    def create_ec2_credentials(self, user_id: str, tenant_id: str) -> dict[str, Any]:
        with self._remote("ec2 credential creation", user_id=user_id, tenant_id=tenant_id):
            data = self.post(f"/users/{user_id}/credentials/OS-EC2", json={"tenant_id": tenant_id})
        return data.get("credential", {})

    # === Service catalog ===

    def find_service(self, name: str) -> dict[str, Any] | None:
        with self._remote("service lookup", service=name):
            data = self.get("/OS-KSADM/services")
        return _by_name(data.get("OS-KSADM:services", []), name)

    def create_service(self, name: str, service_type: str, description: str) -> dict[str, Any]:
        payload = {"OS-KSADM:service": {"name": name, "type": service_type, "description": description}}
        with self._remote("service creation", service=name):
            data = self.post("/OS-KSADM/services", json=payload)
        return data.get("OS-KSADM:service", {})

    def find_endpoint(self, service_id: str, region: str) -> dict[str, Any] | None:
        with self._remote("endpoint lookup", service_id=service_id, region=region):
            data = self.get("/endpoints")
        for endpoint in data.get("endpoints", []):
            if endpoint.get("service_id") == service_id and endpoint.get("region") == region:
                return endpoint
        return None

    def create_endpoint(
        self,
        service_id: str,
        region: str,
        *,
        public_url: str,
        admin_url: str,
        internal_url: str,
    ) -> dict[str, Any]:
        payload = {
            "endpoint": {
                "service_id": service_id,
                "region": region,
                "publicurl": public_url,
                "adminurl": admin_url,
                "internalurl": internal_url,
            }
        }
        with self._remote("endpoint creation", service_id=service_id, region=region):
            data = self.post("/endpoints", json=payload)
        return data.get("endpoint", {})


def _by_name(entities: list[dict[str, Any]], name: str) -> dict[str, Any] | None:
    for entity in entities:
        if entity.get("name") == name:
            return entity
    return None
