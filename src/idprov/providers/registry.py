"""
Provider resolution.

Maps a resource type plus selection attributes (an explicit variant such as
the SQL engine, or the node's platform family) to a registered provider.
Resolution never executes anything and never falls back to a default when
an explicit variant is unknown.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple

from idprov.core.errors import ConfigurationError

if TYPE_CHECKING:
    from idprov.providers.base import ResourceProvider
    from idprov.providers.context import ProviderContext

ProviderFactory = Callable[["ProviderContext"], "ResourceProvider"]


@dataclass(frozen=True)
class ProviderSpec:
    """Metadata describing a registered provider variant."""

    resource_type: str
    variant: Optional[str]
    factory: ProviderFactory
    description: Optional[str] = None

    @property
    def name(self) -> str:
        if self.variant is None:
            return self.resource_type
        return f"{self.resource_type}:{self.variant}"


class ProviderRegistry:
    """In-memory registry of provider variants keyed by (resource type, variant)."""

    def __init__(self) -> None:
        self._providers: Dict[Tuple[str, Optional[str]], ProviderSpec] = {}

    def register(
        self,
        resource_type: str,
        factory: ProviderFactory,
        *,
        variant: Optional[str] = None,
        description: Optional[str] = None,
    ) -> None:
        if not resource_type:
            raise ValueError("Resource type is required")
        spec = ProviderSpec(
            resource_type=resource_type,
            variant=variant,
            factory=factory,
            description=description,
        )
        self._providers[(resource_type, variant)] = spec

    def resolve(
        self,
        resource_type: str,
        variant: Optional[str] = None,
        *,
        platform: Optional[str] = None,
    ) -> ProviderSpec:
        """
        Pick the provider variant for a resource.

        An explicit variant must be registered as-is. Without one, the
        platform-specific variant wins over the platform-neutral one.

        Raises:
            ConfigurationError: no registered variant matches.
        """
        if variant is not None:
            spec = self._providers.get((resource_type, variant))
            if spec is None:
                raise ConfigurationError(
                    f"No '{variant}' provider registered for resource type '{resource_type}'",
                    {"registered": ", ".join(self.variants(resource_type)) or "none"},
                )
            return spec

        if platform is not None:
            spec = self._providers.get((resource_type, platform))
            if spec is not None:
                return spec

        spec = self._providers.get((resource_type, None))
        if spec is None:
            raise ConfigurationError(
                f"No provider registered for resource type '{resource_type}'",
                {"platform": platform or "any", "registered": ", ".join(self.variants(resource_type)) or "none"},
            )
        return spec

    def variants(self, resource_type: str) -> List[str]:
        return sorted(
            variant
            for rtype, variant in self._providers
            if rtype == resource_type and variant is not None
        )

    def list(self) -> List[ProviderSpec]:
        return sorted(self._providers.values(), key=lambda spec: spec.name)


provider_registry = ProviderRegistry()


def register_provider(
    resource_type: str,
    factory: ProviderFactory,
    *,
    variant: Optional[str] = None,
    description: Optional[str] = None,
) -> None:
    provider_registry.register(resource_type, factory, variant=variant, description=description)


def resolve_provider(
    resource_type: str,
    variant: Optional[str] = None,
    *,
    platform: Optional[str] = None,
) -> ProviderSpec:
    return provider_registry.resolve(resource_type, variant, platform=platform)


def list_providers() -> List[ProviderSpec]:
    return provider_registry.list()
