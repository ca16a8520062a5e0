"""
Cluster inventory.

The inventory is a YAML document listing the nodes of the cluster:

    nodes:
      - name: db1.cluster.local
        roles: [mysql-server]
        attributes:
          mysql_config_environment: mysql-config-default
          mysql:
            db_maker_password: secret
        networks:
          admin: {address: 192.168.124.10}
          public: {address: 10.0.0.10}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import structlog
import yaml

from idprov.core.errors import ConfigurationError, DependencyResolutionError

logger = structlog.get_logger()


@dataclass(frozen=True)
class NetworkAddress:
    network_type: str
    address: str
    netmask: str | None = None


@dataclass
class NodeRecord:
    """One inventory entry."""

    name: str
    roles: list[str] = field(default_factory=list)
    attributes: dict[str, Any] = field(default_factory=dict)
    networks: dict[str, dict[str, Any]] = field(default_factory=dict)

    def attribute(self, path: str, default: Any = None) -> Any:
        current: Any = self.attributes
        for part in path.split("."):
            if not isinstance(current, dict) or part not in current:
                return default
            current = current[part]
        return current

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NodeRecord:
        if not data.get("name"):
            raise ConfigurationError("Inventory node without a name", {"entry": str(data)})
        return cls(
            name=data["name"],
            roles=list(data.get("roles") or []),
            attributes=dict(data.get("attributes") or {}),
            networks=dict(data.get("networks") or {}),
        )


class Inventory:
    """Lookup of cluster nodes by name, role and network."""

    def __init__(self, nodes: list[NodeRecord] | None = None) -> None:
        self._nodes: dict[str, NodeRecord] = {node.name: node for node in nodes or []}

    @classmethod
    def load(cls, path: str | Path) -> Inventory:
        inventory_path = Path(path)
        if not inventory_path.exists():
            raise ConfigurationError("Inventory file not found", {"path": str(inventory_path)})
        try:
            with open(inventory_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                "Inventory file is not valid YAML", {"path": str(inventory_path), "error": str(e)}
            ) from e
        return cls([NodeRecord.from_dict(entry) for entry in data.get("nodes") or []])

    def get(self, name: str) -> NodeRecord:
        node = self._nodes.get(name)
        if node is None:
            raise DependencyResolutionError(f"Node '{name}' is not in the inventory")
        return node

    def search(self, role: str, where: Mapping[str, Any] | None = None) -> list[NodeRecord]:
        """Nodes carrying ``role`` whose attributes match every ``where`` entry, by name."""
        conditions = dict(where or {})
        matches = [
            node
            for node in self._nodes.values()
            if role in node.roles
            and all(node.attribute(path) == value for path, value in conditions.items())
        ]
        return sorted(matches, key=lambda node: node.name)

    def get_network_by_type(self, node: NodeRecord, network_type: str) -> NetworkAddress:
        network = node.networks.get(network_type) or {}
        address = network.get("address")
        if not address:
            raise DependencyResolutionError(
                f"Node '{node.name}' has no address on the '{network_type}' network"
            )
        return NetworkAddress(network_type=network_type, address=address, netmask=network.get("netmask"))

    def resolve_address(self, node: str | NodeRecord, network_type: str) -> str:
        record = self.get(node) if isinstance(node, str) else node
        return self.get_network_by_type(record, network_type).address

    def find_one(
        self,
        role: str,
        *,
        where: Mapping[str, Any] | None = None,
    ) -> NodeRecord:
        """
        First node, by name, advertising ``role``.

        Raises:
            DependencyResolutionError: nothing advertises the role.
        """
        matches = self.search(role, where)
        if not matches:
            raise DependencyResolutionError(
                f"No node advertises role '{role}'",
                {"filter": ", ".join(f"{k}={v}" for k, v in (where or {}).items()) or "none"},
            )
        node = matches[0]
        logger.debug("inventory_node_found", role=role, node=node.name)
        return node
