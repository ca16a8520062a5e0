"""Cluster inventory and persisted cluster state."""

from idprov.cluster.inventory import Inventory, NetworkAddress, NodeRecord
from idprov.cluster.state import ClusterState

__all__ = ["ClusterState", "Inventory", "NetworkAddress", "NodeRecord"]
