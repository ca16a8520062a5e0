"""Tests for cluster/inventory.py, cluster/state.py and secrets.py."""

import pytest
import yaml
from idprov.cluster import ClusterState, Inventory, NodeRecord
from idprov.core.errors import ApplyError, ConfigurationError, DependencyResolutionError
from idprov.providers.cluster_state import ClusterStateProvider
from idprov.providers.context import ProviderContext
from idprov.resources import Resource
from idprov.secrets import PASSWORD_ALPHABET, generate_password, persisted_password

INVENTORY = {
    "nodes": [
        {
            "name": "db2.cluster.local",
            "roles": ["mysql-server"],
            "attributes": {"mysql_config_environment": "mysql-config-other"},
            "networks": {"admin": {"address": "192.168.124.12"}},
        },
        {
            "name": "db1.cluster.local",
            "roles": ["mysql-server"],
            "attributes": {
                "mysql_config_environment": "mysql-config-default",
                "mysql": {"db_maker_password": "maker-secret"},
            },
            "networks": {"admin": {"address": "192.168.124.10", "netmask": "255.255.255.0"}},
        },
        {
            "name": "keystone1.cluster.local",
            "roles": ["keystone-server"],
            "networks": {
                "admin": {"address": "192.168.124.81"},
                "public": {"address": "10.0.0.81"},
            },
        },
    ]
}


@pytest.fixture
def inventory(tmp_path):
    path = tmp_path / "inventory.yaml"
    path.write_text(yaml.safe_dump(INVENTORY))
    return Inventory.load(path)


class TestInventory:
    """Tests for Inventory lookups."""

    def test_missing_file(self, tmp_path):
        """Test a missing inventory is a configuration error."""
        with pytest.raises(ConfigurationError):
            Inventory.load(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        """Test unparsable YAML is a configuration error."""
        path = tmp_path / "inventory.yaml"
        path.write_text("nodes: [unclosed")

        with pytest.raises(ConfigurationError):
            Inventory.load(path)

    def test_node_without_name(self):
        """Test inventory entries must be named."""
        with pytest.raises(ConfigurationError):
            NodeRecord.from_dict({"roles": ["x"]})

    def test_get_unknown_node(self, inventory):
        """Test looking up an unknown node is a dependency error."""
        with pytest.raises(DependencyResolutionError):
            inventory.get("ghost.cluster.local")

    def test_search_by_role_sorted(self, inventory):
        """Test search returns matches sorted by name."""
        names = [node.name for node in inventory.search("mysql-server")]

        assert names == ["db1.cluster.local", "db2.cluster.local"]

    def test_search_with_attribute_filter(self, inventory):
        """Test attribute filters narrow the search."""
        matches = inventory.search("mysql-server", {"mysql_config_environment": "mysql-config-other"})

        assert [node.name for node in matches] == ["db2.cluster.local"]

    def test_find_one_without_match(self, inventory):
        """Test find_one fails when nothing advertises the role."""
        with pytest.raises(DependencyResolutionError) as exc:
            inventory.find_one("postgresql-server")

        assert "postgresql-server" in exc.value.message

    def test_network_address(self, inventory):
        """Test the address on a network type is returned."""
        node = inventory.get("db1.cluster.local")

        network = inventory.get_network_by_type(node, "admin")

        assert network.address == "192.168.124.10"
        assert network.netmask == "255.255.255.0"

    def test_missing_network(self, inventory):
        """Test a node without the network type is a dependency error."""
        with pytest.raises(DependencyResolutionError):
            inventory.resolve_address("db1.cluster.local", "public")

    def test_dotted_attribute(self, inventory):
        """Test nested attributes are read by dotted path."""
        node = inventory.get("db1.cluster.local")

        assert node.attribute("mysql.db_maker_password") == "maker-secret"
        assert node.attribute("mysql.missing", "default") == "default"


class TestClusterState:
    """Tests for ClusterState."""

    def test_missing_file_is_empty(self, tmp_path):
        """Test a missing state file loads as an empty cluster."""
        state = ClusterState.load(tmp_path / "state.yaml")

        assert state.node("keystone1") == {}
        assert state.get("keystone1", "keystone.db.password") is None

    def test_set_unless_only_sets_once(self, tmp_path):
        """Test set_unless keeps an existing value."""
        state = ClusterState(tmp_path / "state.yaml")

        assert state.set_unless("n1", "keystone.db.password", lambda: "first") is True
        assert state.set_unless("n1", "keystone.db.password", lambda: "second") is False
        assert state.get("n1", "keystone.db.password") == "first"

    def test_append_unique(self, tmp_path):
        """Test append_unique appends an item only once."""
        state = ClusterState(tmp_path / "state.yaml")

        assert state.append_unique("n1", "keystone.monitor.svcs", "keystone") is True
        assert state.append_unique("n1", "keystone.monitor.svcs", "keystone") is False
        assert state.get("n1", "keystone.monitor.svcs") == ["keystone"]

    def test_append_to_non_list(self, tmp_path):
        """Test appending to a scalar is a configuration error."""
        state = ClusterState(tmp_path / "state.yaml")
        state.set("n1", "keystone.monitor.svcs", "keystone")

        with pytest.raises(ConfigurationError):
            state.append_unique("n1", "keystone.monitor.svcs", "glance")

    def test_save_and_reload(self, tmp_path):
        """Test state survives a save/load cycle."""
        path = tmp_path / "var" / "state.yaml"
        state = ClusterState(path)
        state.set("n1", "keystone.db.password", "pw")
        state.save()

        reloaded = ClusterState.load(path)

        assert reloaded.get("n1", "keystone.db.password") == "pw"
        assert list(path.parent.iterdir()) == [path]

    def test_save_failure_is_apply_error(self, tmp_path):
        """Test an unwritable location is an ApplyError."""
        blocker = tmp_path / "file"
        blocker.write_text("")
        state = ClusterState(blocker / "state.yaml")
        state.set("n1", "a", 1)

        with pytest.raises(ApplyError):
            state.save()

    def test_node_returns_copy(self, tmp_path):
        """Test node() cannot be used to mutate state."""
        state = ClusterState(tmp_path / "state.yaml")
        state.set("n1", "keystone.debug", False)

        state.node("n1")["keystone"]["debug"] = True

        assert state.get("n1", "keystone.debug") is False


class TestSecrets:
    """Tests for password helpers."""

    def test_generate_password(self):
        """Test generated passwords have the requested length and alphabet."""
        password = generate_password(16)

        assert len(password) == 16
        assert set(password) <= set(PASSWORD_ALPHABET)

    def test_persisted_password_generated_once(self, tmp_path):
        """Test the password is generated, saved, and reused."""
        path = tmp_path / "state.yaml"
        first = persisted_password(ClusterState.load(path), "n1", "keystone.db.password")
        second = persisted_password(ClusterState.load(path), "n1", "keystone.db.password")

        assert len(first) == 12
        assert first == second


class TestClusterStateProvider:
    """Tests for the cluster_state provider."""

    def _resource(self):
        return Resource(
            "cluster_state",
            "keystone monitoring",
            "append",
            {"node": "n1", "path": "keystone.monitor.svcs", "value": "keystone"},
        )

    def test_appends_once_and_saves(self, tmp_path):
        """Test the value is appended, saved, and then converged."""
        path = tmp_path / "state.yaml"
        state = ClusterState.load(path)
        provider = ClusterStateProvider(ProviderContext(state=state))

        assert provider.plan(self._resource()).has_changes
        provider.apply(self._resource())

        assert ClusterState.load(path).get("n1", "keystone.monitor.svcs") == ["keystone"]
        assert not provider.plan(self._resource()).has_changes

    def test_existing_entries_kept(self, tmp_path):
        """Test other services in the list are preserved."""
        state = ClusterState(tmp_path / "state.yaml")
        state.set("n1", "keystone.monitor.svcs", ["glance"])
        provider = ClusterStateProvider(ProviderContext(state=state))

        provider.apply(self._resource())

        assert state.get("n1", "keystone.monitor.svcs") == ["glance", "keystone"]

    def test_requires_state(self):
        """Test the provider needs a cluster state."""
        with pytest.raises(ConfigurationError):
            ClusterStateProvider(ProviderContext()).plan(self._resource())
