"""
Identity service server recipe.

Declares, in order: the package and service, the SQL backend (a local
sqlite file, or a database plus account on the cluster's SQL server), the
rendered configuration, the schema migration, the wakeup barrier, the seed
registrations and the monitoring entry.

Nothing is touched while declaring, except that a missing database password
is generated and persisted to cluster state so every run reuses it. A dry
run generates it in memory only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog

from idprov.cluster.inventory import Inventory, NodeRecord
from idprov.cluster.state import ClusterState
from idprov.config.attributes import KeystoneAttributes
from idprov.core.errors import DependencyResolutionError
from idprov.providers.database import privileges_for
from idprov.resources.base import Timing
from idprov.resources.collection import ResourceCollection
from idprov.secrets import persisted_password

logger = structlog.get_logger()

SQLITE_PATH = "/var/lib/keystone/keystone.db"
CONFIG_PATH = "/etc/keystone/keystone.conf"
CONFIG_TEMPLATE = "keystone.conf.j2"
DB_MAKER_USER = "db_maker"
DB_PASSWORD_PATH = "keystone.db.password"
MONITOR_PATH = "keystone.monitor.svcs"

ROLES = ("admin", "Member", "KeystoneAdmin", "KeystoneServiceAdmin", "sysadmin", "netadmin")
SERVICE_REGION = "RegionOne"

# engine -> {platform: driver package}; None is the default platform
SQL_DRIVER_PACKAGES: dict[str, dict[str | None, str]] = {
    "mysql": {None: "python-mysqldb", "suse": "python-mysql"},
    "postgresql": {None: "python-psycopg2"},
}


@dataclass(frozen=True)
class DatabaseBackend:
    """Where the service keeps its data, as seen by the config template."""

    sql_connection: str
    address: str | None = None


def keystone_server(
    attributes: KeystoneAttributes,
    *,
    node: NodeRecord,
    inventory: Inventory,
    state: ClusterState,
    platform: str | None = None,
    dry_run: bool = False,
) -> ResourceCollection:
    """Declare the resources that converge ``node`` into an identity server."""
    attributes.validate()
    collection = ResourceCollection()
    suse = platform == "suse"

    collection.declare(
        "package",
        "keystone",
        "install",
        **({"package_name": "openstack-keystone"} if suse else {}),
    )
    service = collection.declare(
        "service",
        "keystone",
        "enable",
        **({"service_name": "openstack-keystone"} if suse else {}),
    )

    logger.info("sql_backend_selected", engine=attributes.sql_engine)
    backend = _declare_database(collection, attributes, node, inventory, state, platform, dry_run)

    collection.declare(
        "template",
        CONFIG_PATH,
        "create",
        source=CONFIG_TEMPLATE,
        mode="0644",
        variables=config_variables(attributes, backend.sql_connection),
    ).notify("restart", service, Timing.IMMEDIATE)

    collection.declare("execute", "keystone-manage db_sync", "run")

    admin_address = inventory.resolve_address(node, "admin")
    public_address = _public_address(inventory, node, admin_address)
    _declare_registrations(collection, attributes, admin_address, public_address)

    collection.declare(
        "cluster_state",
        "keystone monitoring",
        "append",
        node=node.name,
        path=MONITOR_PATH,
        value="keystone",
    )
    return collection


def config_variables(attributes: KeystoneAttributes, sql_connection: str) -> dict[str, Any]:
    """Variables of the configuration template."""
    return {
        "sql_connection": sql_connection,
        "sql_idle_timeout": attributes.sql.idle_timeout,
        "sql_min_pool_size": attributes.sql.min_pool_size,
        "sql_max_pool_size": attributes.sql.max_pool_size,
        "sql_pool_timeout": attributes.sql.pool_timeout,
        "debug": attributes.debug,
        "verbose": attributes.verbose,
        "admin_token": attributes.service.token,
        "service_api_port": attributes.api.service_port,
        "service_api_host": attributes.api.service_host,
        "admin_api_port": attributes.api.admin_port,
        "admin_api_host": attributes.api.admin_host,
        "api_port": attributes.api.api_port,
        "api_host": attributes.api.api_host,
        "use_syslog": attributes.use_syslog,
    }


# === SQL backend ===


def _declare_database(
    collection: ResourceCollection,
    attributes: KeystoneAttributes,
    node: NodeRecord,
    inventory: Inventory,
    state: ClusterState,
    platform: str | None,
    dry_run: bool,
) -> DatabaseBackend:
    engine = attributes.sql_engine
    if engine == "sqlite":
        collection.declare("file", SQLITE_PATH, "create_if_missing", owner="keystone")
        return DatabaseBackend(sql_connection=f"sqlite:///{SQLITE_PATH}")

    drivers = SQL_DRIVER_PACKAGES[engine]
    driver = drivers.get(platform, drivers[None])
    collection.declare("package", driver, "install")

    server = inventory.find_one(
        f"{engine}-server",
        where={f"{engine}_config_environment": f"{engine}-config-{attributes.sql_instance}"},
    )
    if server.name == node.name:
        logger.info("database_server_is_local", node=node.name)
    address = inventory.resolve_address(server, "admin")
    logger.info("database_server_found", engine=engine, node=server.name, address=address)

    db_maker_password = server.attribute(f"{engine}.db_maker_password")
    if not db_maker_password:
        raise DependencyResolutionError(
            f"Database server '{server.name}' does not publish {engine}.db_maker_password"
        )
    connection = {"host": address, "username": DB_MAKER_USER, "password": db_maker_password}

    password = attributes.db.password or persisted_password(
        state, node.name, DB_PASSWORD_PATH, persist=not dry_run
    )
    database = attributes.db.database
    user = attributes.db.user

    collection.declare(
        "database",
        f"create {database} database",
        "create",
        provider=engine,
        connection=connection,
        database_name=database,
    )
    collection.declare(
        "database_user",
        "create keystone database user",
        "create",
        provider=engine,
        connection=connection,
        username=user,
        password=password,
        host=address,
    )
    collection.declare(
        "database_user",
        "grant database access for keystone database user",
        "grant",
        provider=engine,
        connection=connection,
        username=user,
        password=password,
        database_name=database,
        host=address,
        privileges=list(privileges_for(engine)),
    )
    return DatabaseBackend(
        sql_connection=f"{engine}://{user}:{password}@{address}/{database}",
        address=address,
    )


# === Registrations ===


def _public_address(inventory: Inventory, node: NodeRecord, fallback: str) -> str:
    try:
        return inventory.resolve_address(node, "public")
    except DependencyResolutionError:
        logger.info("public_address_fallback", node=node.name, address=fallback)
        return fallback


def _declare_registrations(
    collection: ResourceCollection,
    attributes: KeystoneAttributes,
    admin_address: str,
    public_address: str,
) -> None:
    admin_port = attributes.api.admin_port
    service_port = attributes.api.service_port
    connection = {"host": admin_address, "port": admin_port, "token": attributes.service.token}
    admin, default = attributes.admin, attributes.default

    def register(name: str, action: str, **fields: Any) -> None:
        collection.declare("keystone_register", name, action, **connection, **fields)

    register("wakeup keystone", "wakeup")

    for tenant in (admin.tenant, attributes.service.tenant, default.tenant):
        register(f"add default {tenant} tenant", "add_tenant", tenant_name=tenant)

    for account in (admin, default):
        register(
            f"add default {account.username} user",
            "add_user",
            user_name=account.username,
            user_password=account.password,
            tenant_name=account.tenant,
        )

    for role in ROLES:
        register(f"add default {role} role", "add_role", role_name=role)

    assignments = [
        (admin.username, "admin", admin.tenant),
        (admin.username, "KeystoneAdmin", admin.tenant),
        (admin.username, "KeystoneServiceAdmin", admin.tenant),
        (admin.username, "admin", default.tenant),
        (default.username, "Member", default.tenant),
        (default.username, "sysadmin", default.tenant),
        (default.username, "netadmin", default.tenant),
    ]
    for user, role, tenant in assignments:
        register(
            f"add default {tenant}:{user} -> {role} role",
            "add_access",
            user_name=user,
            role_name=role,
            tenant_name=tenant,
        )

    for user, tenant in (
        (admin.username, admin.tenant),
        (admin.username, default.tenant),
        (default.username, default.tenant),
    ):
        register(f"add default ec2 creds for {tenant}:{user}", "add_ec2", user_name=user, tenant_name=tenant)

    register(
        "register keystone service",
        "add_service",
        service_name="keystone",
        service_type="identity",
        service_description="Openstack Identity Service",
    )
    register(
        "register keystone endpoint",
        "add_endpoint_template",
        endpoint_service="keystone",
        endpoint_region=SERVICE_REGION,
        endpoint_public_url=f"http://{public_address}:{service_port}/v2.0",
        endpoint_admin_url=f"http://{admin_address}:{admin_port}/v2.0",
        endpoint_internal_url=f"http://{admin_address}:{service_port}/v2.0",
    )
