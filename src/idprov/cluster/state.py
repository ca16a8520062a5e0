"""
Persisted cluster-wide node state.

State lives in a YAML document shaped as ``{nodes: {<node>: {<attribute tree>}}}``.
Attribute paths are dotted (``keystone.db.password``). Collection fields are
merged with append-if-absent semantics.
"""

from __future__ import annotations

import copy
import os
import tempfile
from pathlib import Path
from typing import Any, Callable

import structlog
import yaml

from idprov.core.errors import ApplyError, ConfigurationError

logger = structlog.get_logger()

_MISSING = object()


class ClusterState:
    """Read/modify/write store for node attributes shared across the cluster."""

    def __init__(self, path: str | Path, data: dict[str, Any] | None = None) -> None:
        self.path = Path(path)
        self._data: dict[str, Any] = data if data is not None else {"nodes": {}}
        self._data.setdefault("nodes", {})

    @classmethod
    def load(cls, path: str | Path) -> ClusterState:
        """Load state from disk; a missing file is an empty cluster."""
        state_path = Path(path)
        if not state_path.exists():
            logger.debug("cluster_state_missing", path=str(state_path))
            return cls(state_path)
        try:
            with open(state_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                "Cluster state is not valid YAML", {"path": str(state_path), "error": str(e)}
            ) from e
        if not isinstance(data, dict):
            raise ConfigurationError("Cluster state must contain a mapping", {"path": str(state_path)})
        return cls(state_path, data)

    def node(self, name: str) -> dict[str, Any]:
        """Copy of a node's attribute tree."""
        return copy.deepcopy(self._data["nodes"].get(name, {}))

    def get(self, node: str, path: str, default: Any = None) -> Any:
        value = self._walk(node, path)
        return default if value is _MISSING else value

    def set(self, node: str, path: str, value: Any) -> None:
        parent, leaf = self._parent(node, path)
        parent[leaf] = value

    def set_unless(self, node: str, path: str, factory: Callable[[], Any]) -> bool:
        """Set ``path`` from ``factory()`` only when it holds no value yet."""
        if self._walk(node, path) not in (_MISSING, None):
            return False
        self.set(node, path, factory())
        return True

    def append_unique(self, node: str, path: str, item: Any) -> bool:
        """Append ``item`` to the list at ``path`` unless it is already there."""
        parent, leaf = self._parent(node, path)
        items = parent.get(leaf)
        if items is None:
            items = parent[leaf] = []
        if not isinstance(items, list):
            raise ConfigurationError(
                f"Cluster state attribute '{path}' is not a list", {"node": node}
            )
        if item in items:
            return False
        items.append(item)
        return True

    def save(self) -> None:
        """Write the document to a temporary file and move it into place."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        except OSError as e:
            raise ApplyError("Cluster state could not be saved", {"path": str(self.path), "error": str(e)}) from e
        try:
            with os.fdopen(fd, "w") as f:
                yaml.safe_dump(self._data, f, default_flow_style=False, sort_keys=True)
            os.replace(tmp_name, self.path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise ApplyError("Cluster state could not be saved", {"path": str(self.path), "error": str(e)}) from e
        logger.debug("cluster_state_saved", path=str(self.path))

    def _walk(self, node: str, path: str) -> Any:
        current: Any = self._data["nodes"].get(node, _MISSING)
        for part in path.split("."):
            if not isinstance(current, dict) or part not in current:
                return _MISSING
            current = current[part]
        return current

    def _parent(self, node: str, path: str) -> tuple[dict[str, Any], str]:
        *branches, leaf = path.split(".")
        current = self._data["nodes"].setdefault(node, {})
        for part in branches:
            child = current.setdefault(part, {})
            if not isinstance(child, dict):
                raise ConfigurationError(
                    f"Cluster state attribute '{part}' in '{path}' is not a mapping", {"node": node}
                )
            current = child
        return current, leaf
