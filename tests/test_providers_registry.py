"""Tests for providers/registry.py."""

import pytest
from idprov.core.errors import ConfigurationError
from idprov.providers import list_providers, resolve_provider
from idprov.providers.database import MysqlDatabaseProvider, PostgresqlUserProvider
from idprov.providers.package import AptPackageProvider, YumPackageProvider, ZypperPackageProvider
from idprov.providers.registry import ProviderRegistry


def _factory(ctx):
    return ctx


class TestProviderRegistry:
    """Tests for ProviderRegistry resolution rules."""

    def test_explicit_variant(self):
        """Test an explicit variant resolves to exactly that variant."""
        registry = ProviderRegistry()
        registry.register("database", _factory, variant="mysql")
        registry.register("database", _factory, variant="postgresql")

        spec = registry.resolve("database", "postgresql")

        assert spec.variant == "postgresql"
        assert spec.name == "database:postgresql"

    def test_unknown_explicit_variant_never_falls_back(self):
        """Test an unknown variant fails even when a default exists."""
        registry = ProviderRegistry()
        registry.register("database", _factory)
        registry.register("database", _factory, variant="mysql")

        with pytest.raises(ConfigurationError) as exc:
            registry.resolve("database", "oracle")

        assert exc.value.details["registered"] == "mysql"

    def test_platform_variant_preferred(self):
        """Test the platform variant wins over the platform-neutral one."""
        registry = ProviderRegistry()
        registry.register("package", _factory)
        registry.register("package", _factory, variant="suse")

        assert registry.resolve("package", platform="suse").variant == "suse"
        assert registry.resolve("package", platform="debian").variant is None

    def test_no_provider_for_platform(self):
        """Test a type with only other platforms' variants fails."""
        registry = ProviderRegistry()
        registry.register("package", _factory, variant="suse")

        with pytest.raises(ConfigurationError):
            registry.resolve("package", platform="debian")

    def test_register_requires_type(self):
        """Test registering without a resource type is rejected."""
        with pytest.raises(ValueError):
            ProviderRegistry().register("", _factory)

    def test_list_sorted_by_name(self):
        """Test listing is sorted by provider name."""
        registry = ProviderRegistry()
        registry.register("service", _factory)
        registry.register("database", _factory, variant="mysql")

        assert [spec.name for spec in registry.list()] == ["database:mysql", "service"]


class TestBuiltinProviders:
    """Tests for the providers registered on import."""

    @pytest.mark.parametrize(
        ("platform", "expected"),
        [
            ("debian", AptPackageProvider),
            ("suse", ZypperPackageProvider),
            ("rhel", YumPackageProvider),
        ],
    )
    def test_package_per_platform(self, platform, expected):
        """Test each platform family gets its package manager."""
        assert resolve_provider("package", platform=platform).factory is expected

    def test_sql_variants(self):
        """Test SQL engines select their database providers."""
        assert resolve_provider("database", "mysql").factory is MysqlDatabaseProvider
        assert resolve_provider("database_user", "postgresql").factory is PostgresqlUserProvider

    def test_sqlite_has_no_database_provider(self):
        """Test the local-file engine has no database provider."""
        with pytest.raises(ConfigurationError):
            resolve_provider("database", "sqlite")

    def test_all_builtin_types_listed(self):
        """Test every built-in resource type is registered."""
        types = {spec.resource_type for spec in list_providers()}

        assert {
            "package",
            "service",
            "file",
            "template",
            "execute",
            "database",
            "database_user",
            "keystone_register",
            "cluster_state",
        } <= types
