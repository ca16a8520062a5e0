"""Provider utilities and built-in registrations."""

# Import built-in providers for side effects (registration)
from idprov.providers import cluster_state as _cluster_state  # noqa: F401
from idprov.providers import database as _database  # noqa: F401
from idprov.providers import execute as _execute  # noqa: F401
from idprov.providers import files as _files  # noqa: F401
from idprov.providers import keystone as _keystone  # noqa: F401
from idprov.providers import package as _package  # noqa: F401
from idprov.providers import service as _service  # noqa: F401
from idprov.providers.base import NOTHING, PlanChange, PlanResult, ResourceProvider
from idprov.providers.context import ProviderContext
from idprov.providers.registry import (
    ProviderRegistry,
    ProviderSpec,
    list_providers,
    provider_registry,
    register_provider,
    resolve_provider,
)

__all__ = [
    "NOTHING",
    "PlanChange",
    "PlanResult",
    "ProviderContext",
    "ProviderRegistry",
    "ProviderSpec",
    "ResourceProvider",
    "list_providers",
    "provider_registry",
    "register_provider",
    "resolve_provider",
]
