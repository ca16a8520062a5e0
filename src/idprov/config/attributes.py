"""
Typed node attributes for the identity service.

Mirrors the ``keystone`` attribute tree kept for a node in cluster state:
database engine selection, connection pool tuning, API bind addresses,
the administrative token and the seed accounts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from idprov.core.errors import ConfigurationError

SQL_ENGINES = ("mysql", "postgresql", "sqlite")


@dataclass
class DatabaseAttributes:
    """Identity database name and credentials."""
    database: str = "keystone"
    user: str = "keystone"
    password: str | None = None  # generated once and persisted when absent

    def to_dict(self) -> dict[str, Any]:
        return {"database": self.database, "user": self.user, "password": self.password}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DatabaseAttributes:
        return cls(
            database=data.get("database", "keystone"),
            user=data.get("user", "keystone"),
            password=data.get("password"),
        )


@dataclass
class SqlPoolAttributes:
    """SQLAlchemy pool settings rendered into the service config."""
    idle_timeout: int = 30
    min_pool_size: int = 5
    max_pool_size: int = 10
    pool_timeout: int = 200

    def to_dict(self) -> dict[str, Any]:
        return {
            "idle_timeout": self.idle_timeout,
            "min_pool_size": self.min_pool_size,
            "max_pool_size": self.max_pool_size,
            "pool_timeout": self.pool_timeout,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SqlPoolAttributes:
        return cls(
            idle_timeout=int(data.get("idle_timeout", 30)),
            min_pool_size=int(data.get("min_pool_size", 5)),
            max_pool_size=int(data.get("max_pool_size", 10)),
            pool_timeout=int(data.get("pool_timeout", 200)),
        )


@dataclass
class ApiAttributes:
    """Bind hosts and ports of the service, admin and public APIs."""
    service_port: int = 5000
    service_host: str = "0.0.0.0"
    admin_port: int = 35357
    admin_host: str = "0.0.0.0"
    api_port: int = 5000
    api_host: str = "0.0.0.0"

    def to_dict(self) -> dict[str, Any]:
        return {
            "service_port": self.service_port,
            "service_host": self.service_host,
            "admin_port": self.admin_port,
            "admin_host": self.admin_host,
            "api_port": self.api_port,
            "api_host": self.api_host,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ApiAttributes:
        return cls(
            service_port=int(data.get("service_port", 5000)),
            service_host=data.get("service_host", "0.0.0.0"),
            admin_port=int(data.get("admin_port", 35357)),
            admin_host=data.get("admin_host", "0.0.0.0"),
            api_port=int(data.get("api_port", 5000)),
            api_host=data.get("api_host", "0.0.0.0"),
        )


@dataclass
class ServiceAttributes:
    """Administrative token and the tenant that owns service accounts."""
    token: str = ""
    tenant: str = "service"

    def to_dict(self) -> dict[str, Any]:
        return {"token": self.token, "tenant": self.tenant}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServiceAttributes:
        return cls(token=str(data.get("token", "")), tenant=data.get("tenant", "service"))


@dataclass
class AccountAttributes:
    """A seed user account and its home tenant."""
    tenant: str
    username: str
    password: str

    def to_dict(self) -> dict[str, Any]:
        return {"tenant": self.tenant, "username": self.username, "password": self.password}

    @classmethod
    def from_dict(cls, data: dict[str, Any], defaults: AccountAttributes) -> AccountAttributes:
        return cls(
            tenant=data.get("tenant", defaults.tenant),
            username=data.get("username", defaults.username),
            password=str(data.get("password", defaults.password)),
        )


@dataclass
class MonitorAttributes:
    svcs: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"svcs": list(self.svcs)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MonitorAttributes:
        return cls(svcs=list(data.get("svcs") or []))


DEFAULT_ADMIN = AccountAttributes(tenant="admin", username="admin", password="crowbar")
DEFAULT_ACCOUNT = AccountAttributes(tenant="openstack", username="crowbar", password="crowbar")


@dataclass
class KeystoneAttributes:
    """The complete ``keystone`` attribute tree of a node."""
    sql_engine: str = "mysql"
    sql_instance: str = "default"
    debug: bool = False
    verbose: bool = False
    use_syslog: bool = False
    db: DatabaseAttributes = field(default_factory=DatabaseAttributes)
    sql: SqlPoolAttributes = field(default_factory=SqlPoolAttributes)
    api: ApiAttributes = field(default_factory=ApiAttributes)
    service: ServiceAttributes = field(default_factory=ServiceAttributes)
    admin: AccountAttributes = field(
        default_factory=lambda: AccountAttributes(**DEFAULT_ADMIN.to_dict())
    )
    default: AccountAttributes = field(
        default_factory=lambda: AccountAttributes(**DEFAULT_ACCOUNT.to_dict())
    )
    monitor: MonitorAttributes = field(default_factory=MonitorAttributes)

    def validate(self) -> None:
        """Reject attribute combinations that cannot be converged."""
        if self.sql_engine not in SQL_ENGINES:
            raise ConfigurationError(
                f"Unknown SQL engine '{self.sql_engine}'",
                {"supported": ", ".join(SQL_ENGINES)},
            )
        if not self.service.token:
            raise ConfigurationError("keystone.service.token must be set")

    def to_dict(self) -> dict[str, Any]:
        return {
            "sql_engine": self.sql_engine,
            "sql_instance": self.sql_instance,
            "debug": self.debug,
            "verbose": self.verbose,
            "use_syslog": self.use_syslog,
            "db": self.db.to_dict(),
            "sql": self.sql.to_dict(),
            "api": self.api.to_dict(),
            "service": self.service.to_dict(),
            "admin": self.admin.to_dict(),
            "default": self.default.to_dict(),
            "monitor": self.monitor.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KeystoneAttributes:
        attributes = cls(
            sql_engine=data.get("sql_engine", "mysql"),
            sql_instance=str(data.get("sql_instance", "default")),
            debug=bool(data.get("debug", False)),
            verbose=bool(data.get("verbose", False)),
            use_syslog=bool(data.get("use_syslog", False)),
            db=DatabaseAttributes.from_dict(data.get("db") or {}),
            sql=SqlPoolAttributes.from_dict(data.get("sql") or {}),
            api=ApiAttributes.from_dict(data.get("api") or {}),
            service=ServiceAttributes.from_dict(data.get("service") or {}),
            admin=AccountAttributes.from_dict(data.get("admin") or {}, DEFAULT_ADMIN),
            default=AccountAttributes.from_dict(data.get("default") or {}, DEFAULT_ACCOUNT),
            monitor=MonitorAttributes.from_dict(data.get("monitor") or {}),
        )
        attributes.validate()
        return attributes
