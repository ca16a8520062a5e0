"""Tests for config/attributes.py, config/loader.py and config/settings.py."""

import pytest
import yaml
from idprov.config import KeystoneAttributes, Settings, load_attributes, save_attributes
from idprov.core.errors import ConfigurationError


class TestKeystoneAttributes:
    """Tests for KeystoneAttributes."""

    def test_defaults(self):
        """Test unset attributes take the documented defaults."""
        attributes = KeystoneAttributes.from_dict({"service": {"token": "admin-token"}})

        assert attributes.sql_engine == "mysql"
        assert attributes.db.database == "keystone"
        assert attributes.db.password is None
        assert attributes.api.admin_port == 35357
        assert attributes.api.service_port == 5000
        assert attributes.sql.pool_timeout == 200
        assert attributes.service.tenant == "service"
        assert attributes.admin.username == "admin"
        assert attributes.default.tenant == "openstack"

    def test_partial_account_keeps_defaults(self):
        """Test a partially declared account fills in the rest."""
        attributes = KeystoneAttributes.from_dict(
            {"service": {"token": "t"}, "admin": {"password": "hunter2"}}
        )

        assert attributes.admin.username == "admin"
        assert attributes.admin.tenant == "admin"
        assert attributes.admin.password == "hunter2"

    def test_unknown_engine_rejected(self):
        """Test an unsupported SQL engine is a configuration error."""
        with pytest.raises(ConfigurationError) as exc:
            KeystoneAttributes.from_dict({"sql_engine": "oracle", "service": {"token": "t"}})

        assert "oracle" in exc.value.message

    def test_empty_token_rejected(self):
        """Test the administrative token is required."""
        with pytest.raises(ConfigurationError):
            KeystoneAttributes.from_dict({"sql_engine": "sqlite"})

    def test_ports_coerced_to_int(self):
        """Test ports given as strings become integers."""
        attributes = KeystoneAttributes.from_dict({"service": {"token": "t"}, "api": {"admin_port": "35358"}})

        assert attributes.api.admin_port == 35358

    def test_dict_round_trip(self):
        """Test to_dict output loads back to equal attributes."""
        attributes = KeystoneAttributes.from_dict(
            {"sql_engine": "postgresql", "debug": True, "service": {"token": "t"}, "monitor": {"svcs": ["x"]}}
        )

        assert KeystoneAttributes.from_dict(attributes.to_dict()) == attributes


class TestLoader:
    """Tests for load_attributes and save_attributes."""

    def test_load(self, tmp_path):
        """Test the keystone mapping is read from YAML."""
        path = tmp_path / "attributes.yaml"
        path.write_text(yaml.safe_dump({"keystone": {"sql_engine": "sqlite", "service": {"token": "t"}}}))

        attributes = load_attributes(path)

        assert attributes.sql_engine == "sqlite"
        assert attributes.service.token == "t"

    def test_missing_file(self, tmp_path):
        """Test a missing file is a configuration error naming the path."""
        with pytest.raises(ConfigurationError) as exc:
            load_attributes(tmp_path / "missing.yaml")

        assert exc.value.details["path"].endswith("missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        """Test unparsable YAML is a configuration error."""
        path = tmp_path / "attributes.yaml"
        path.write_text("keystone: {unclosed")

        with pytest.raises(ConfigurationError):
            load_attributes(path)

    def test_non_mapping(self, tmp_path):
        """Test a YAML list is rejected."""
        path = tmp_path / "attributes.yaml"
        path.write_text("- keystone\n")

        with pytest.raises(ConfigurationError):
            load_attributes(path)

    def test_save_then_load(self, tmp_path):
        """Test saved attributes load back unchanged."""
        attributes = KeystoneAttributes.from_dict({"sql_engine": "mysql", "service": {"token": "t"}})
        path = tmp_path / "out" / "attributes.yaml"

        save_attributes(attributes, path)

        assert load_attributes(path) == attributes


class TestSettings:
    """Tests for environment-based Settings."""

    def test_defaults(self):
        """Test the default settings."""
        settings = Settings(_env_file=None)

        assert settings.platform == "debian"
        assert settings.wakeup_attempts == 30
        assert settings.dry_run is False

    def test_env_prefix(self, monkeypatch):
        """Test IDPROV_ variables override defaults."""
        monkeypatch.setenv("IDPROV_PLATFORM", "suse")
        monkeypatch.setenv("IDPROV_WAKEUP_ATTEMPTS", "5")
        monkeypatch.setenv("IDPROV_DRY_RUN", "true")

        settings = Settings(_env_file=None)

        assert settings.platform == "suse"
        assert settings.wakeup_attempts == 5
        assert settings.dry_run is True
