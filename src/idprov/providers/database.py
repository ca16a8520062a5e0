"""
Database and database-user providers, one variant per SQL engine.

Every resource carries a ``connection`` descriptor ``{host, username,
password, port?}`` for an account allowed to create databases and users.
DDL runs with AUTOCOMMIT isolation. Passwords never reach error details:
bound parameters are hidden and driver messages are masked.
"""

from __future__ import annotations

import re
from abc import abstractmethod
from contextlib import contextmanager
from typing import Any, ClassVar, Iterable, Iterator

import structlog
from sqlalchemy import text
from sqlalchemy.engine import URL, Connection
from sqlalchemy.exc import SQLAlchemyError

from idprov.core.errors import ApplyError, ConfigurationError
from idprov.providers.base import PlanChange, PlanResult, ResourceProvider
from idprov.providers.registry import register_provider
from idprov.resources.base import Resource

logger = structlog.get_logger()

MYSQL_PRIVILEGES = ("SELECT", "INSERT", "UPDATE", "DELETE", "CREATE", "DROP", "INDEX", "ALTER")
POSTGRESQL_PRIVILEGES = ("CREATE", "CONNECT", "TEMP")

ENGINE_PRIVILEGES = {
    "mysql": MYSQL_PRIVILEGES,
    "postgresql": POSTGRESQL_PRIVILEGES,
}

_PRIVILEGE_RE = re.compile(r"^[A-Z][A-Z ]*$")


def privileges_for(engine: str) -> tuple[str, ...]:
    try:
        return ENGINE_PRIVILEGES[engine]
    except KeyError:
        raise ConfigurationError(f"No privilege set for SQL engine '{engine}'") from None


class SqlProvider(ResourceProvider):
    """Shared connection handling for the SQL providers."""

    drivername: ClassVar[str]
    maintenance_database: ClassVar[str | None] = None

    def url(self, resource: Resource) -> URL:
        connection = resource.require("connection")
        if not connection.get("host"):
            raise ConfigurationError(f"Resource {resource} has no connection host")
        return URL.create(
            self.drivername,
            username=connection.get("username"),
            password=connection.get("password"),
            host=connection["host"],
            port=connection.get("port"),
            database=self.maintenance_database,
        )

    @staticmethod
    def secrets(resource: Resource) -> list[str]:
        values = (resource.get("password"), resource.require("connection").get("password"))
        return [str(value) for value in values if value]

    @contextmanager
    def connect(self, resource: Resource) -> Iterator[Connection]:
        engine = self._ctx.engine_factory(
            self.url(resource), isolation_level="AUTOCOMMIT", hide_parameters=True
        )
        try:
            with engine.connect() as connection:
                yield connection
        except SQLAlchemyError as exc:
            # The statement text can hold a password literal; the chain is cut.
            driver_error = getattr(exc, "orig", None) or exc
            raise ApplyError(
                f"SQL statement failed for {resource}",
                {
                    "host": resource.require("connection")["host"],
                    "error_type": type(driver_error).__name__,
                    "error": redact(str(driver_error), self.secrets(resource)),
                },
            ) from None
        finally:
            engine.dispose()

    @staticmethod
    def quote(connection: Connection, identifier: str) -> str:
        return connection.dialect.identifier_preparer.quote(identifier)

    @staticmethod
    def privileges(resource: Resource) -> list[str]:
        privileges = [str(p).upper() for p in resource.get("privileges") or []]
        for privilege in privileges:
            if not _PRIVILEGE_RE.match(privilege):
                raise ConfigurationError(f"Invalid privilege '{privilege}' on {resource}")
        return privileges


# === Databases ===


class DatabaseProvider(SqlProvider):
    resource_type = "database"
    actions = frozenset({"create"})

    _exists_sql: ClassVar[str]

    @staticmethod
    def database_name(resource: Resource) -> str:
        return resource.get("database_name") or resource.name

    def load_current_state(self, resource: Resource) -> dict[str, Any] | None:
        name = self.database_name(resource)
        with self.connect(resource) as connection:
            row = connection.execute(text(self._exists_sql), {"name": name}).first()
        return {"database_name": name} if row is not None else None

    def compute_diff(self, resource: Resource, current: dict[str, Any] | None) -> PlanResult:
        name = self.database_name(resource)
        return PlanResult([] if current else [PlanChange("create", {"database": name})])

    def apply(self, resource: Resource) -> None:
        name = self.database_name(resource)
        with self.connect(resource) as connection:
            connection.execute(text(f"CREATE DATABASE {self.quote(connection, name)}"))
        logger.info("database_changed", database=name, action=resource.action)


class MysqlDatabaseProvider(DatabaseProvider):
    drivername = "mysql+pymysql"
    _exists_sql = "SELECT SCHEMA_NAME FROM INFORMATION_SCHEMA.SCHEMATA WHERE SCHEMA_NAME = :name"


class PostgresqlDatabaseProvider(DatabaseProvider):
    drivername = "postgresql+psycopg"
    maintenance_database = "postgres"
    _exists_sql = "SELECT 1 FROM pg_database WHERE datname = :name"


# === Database users ===


class DatabaseUserProvider(SqlProvider):
    """
    ``create`` ensures the account exists, ``grant`` ensures it holds every
    declared privilege on ``database_name``.
    """

    resource_type = "database_user"
    actions = frozenset({"create", "grant"})

    @staticmethod
    def username(resource: Resource) -> str:
        return resource.get("username") or resource.name

    def compute_diff(self, resource: Resource, current: dict[str, Any] | None) -> PlanResult:
        user = self.username(resource)
        if resource.action == "create":
            return PlanResult([] if current else [PlanChange("create", {"user": user})])

        held = set((current or {}).get("privileges", ()))
        missing = [p for p in self.privileges(resource) if p not in held]
        if not missing:
            return PlanResult([])
        return PlanResult(
            [
                PlanChange(
                    "update",
                    {"user": user, "database": resource.require("database_name"), "privileges": missing},
                )
            ]
        )

    def apply(self, resource: Resource) -> None:
        with self.connect(resource) as connection:
            if resource.action == "create":
                self._create(connection, resource)
            else:
                self._grant(connection, resource)
        logger.info("database_user_changed", user=self.username(resource), action=resource.action)

    @abstractmethod
    def _create(self, connection: Connection, resource: Resource) -> None:
        """Create the account with its password."""

    @abstractmethod
    def _grant(self, connection: Connection, resource: Resource) -> None:
        """Grant the declared privileges on ``database_name``."""


class MysqlUserProvider(DatabaseUserProvider):
    """Accounts are ``'user'@'host'``; ``host`` defaults to ``%``."""

    drivername = "mysql+pymysql"

    @staticmethod
    def host(resource: Resource) -> str:
        return resource.get("host") or "%"

    def _account(self, resource: Resource) -> dict[str, str]:
        return {"user": self.username(resource), "host": self.host(resource)}

    def load_current_state(self, resource: Resource) -> dict[str, Any] | None:
        account = self._account(resource)
        with self.connect(resource) as connection:
            row = connection.execute(
                text("SELECT 1 FROM mysql.user WHERE User = :user AND Host = :host"), account
            ).first()
            if row is None:
                return None
            privileges: list[str] = []
            database = resource.get("database_name")
            if database:
                rows = connection.execute(
                    text(
                        "SELECT PRIVILEGE_TYPE FROM INFORMATION_SCHEMA.SCHEMA_PRIVILEGES "
                        "WHERE GRANTEE = :grantee AND TABLE_SCHEMA = :database"
                    ),
                    {"grantee": f"'{account['user']}'@'{account['host']}'", "database": database},
                )
                privileges = [r[0] for r in rows]
        return {**account, "privileges": privileges}

    def _create(self, connection: Connection, resource: Resource) -> None:
        connection.execute(
            text("CREATE USER IF NOT EXISTS :user@:host IDENTIFIED BY :password"),
            {**self._account(resource), "password": resource.require("password")},
        )

    def _grant(self, connection: Connection, resource: Resource) -> None:
        database = self.quote(connection, resource.require("database_name"))
        privileges = ", ".join(self.privileges(resource))
        connection.execute(
            text(f"GRANT {privileges} ON {database}.* TO :user@:host"),
            self._account(resource),
        )


class PostgresqlUserProvider(DatabaseUserProvider):
    drivername = "postgresql+psycopg"
    maintenance_database = "postgres"

    def load_current_state(self, resource: Resource) -> dict[str, Any] | None:
        user = self.username(resource)
        with self.connect(resource) as connection:
            row = connection.execute(
                text("SELECT 1 FROM pg_roles WHERE rolname = :user"), {"user": user}
            ).first()
            if row is None:
                return None
            privileges: list[str] = []
            database = resource.get("database_name")
            if database:
                for privilege in self.privileges(resource):
                    held = connection.execute(
                        text("SELECT has_database_privilege(:user, :database, :privilege)"),
                        {"user": user, "database": database, "privilege": privilege},
                    ).scalar()
                    if held:
                        privileges.append(privilege)
        return {"user": user, "privileges": privileges}

    def _create(self, connection: Connection, resource: Resource) -> None:
        user = self.quote(connection, self.username(resource))
        password = _sql_literal(resource.require("password"))
        connection.execute(text(f"CREATE ROLE {user} WITH LOGIN PASSWORD {password}"))

    def _grant(self, connection: Connection, resource: Resource) -> None:
        user = self.quote(connection, self.username(resource))
        database = self.quote(connection, resource.require("database_name"))
        privileges = ", ".join(self.privileges(resource))
        connection.execute(text(f"GRANT {privileges} ON DATABASE {database} TO {user}"))


def _sql_literal(value: str) -> str:
    # Colons are escaped so text() does not read them as bind parameters.
    return "'" + str(value).replace("'", "''").replace(":", r"\:") + "'"


def redact(message: str, secrets: Iterable[str], mask: str = "***") -> str:
    """Mask each secret in ``message``, raw or as a quoted SQL literal body."""
    for secret in secrets:
        for form in (secret.replace("'", "''"), secret):
            message = message.replace(form, mask)
    return message


register_provider("database", MysqlDatabaseProvider, variant="mysql", description="MySQL databases")
register_provider(
    "database", PostgresqlDatabaseProvider, variant="postgresql", description="PostgreSQL databases"
)
register_provider("database_user", MysqlUserProvider, variant="mysql", description="MySQL accounts and grants")
register_provider(
    "database_user", PostgresqlUserProvider, variant="postgresql", description="PostgreSQL roles and grants"
)

__all__ = [
    "ENGINE_PRIVILEGES",
    "MYSQL_PRIVILEGES",
    "POSTGRESQL_PRIVILEGES",
    "MysqlDatabaseProvider",
    "MysqlUserProvider",
    "PostgresqlDatabaseProvider",
    "PostgresqlUserProvider",
    "privileges_for",
]
