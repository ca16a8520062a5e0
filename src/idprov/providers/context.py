"""Capabilities injected into every provider."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

import sqlalchemy

from idprov.clients.keystone import KeystoneAdminClient
from idprov.cluster.state import ClusterState
from idprov.config.settings import Settings
from idprov.system import CommandRunner
from idprov.templating import TemplateRenderer


@dataclass
class ProviderContext:
    """
    External collaborators shared by the providers of one run.

    Built once at run start and read-only afterwards.
    """

    runner: CommandRunner = field(default_factory=CommandRunner)
    renderer: TemplateRenderer = field(default_factory=TemplateRenderer)
    state: ClusterState | None = None
    engine_factory: Callable[..., Any] = sqlalchemy.create_engine
    keystone_client_factory: Callable[..., KeystoneAdminClient] = KeystoneAdminClient
    http_timeout: float = 30.0
    http_max_retries: int = 3
    http_retry_backoff_factor: float = 0.5
    wakeup_attempts: int = 30
    wakeup_interval: float = 2.0
    wakeup_timeout: float = 120.0

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> ProviderContext:
        values: dict[str, Any] = {
            "renderer": TemplateRenderer(settings.template_dir),
            "http_timeout": settings.http_timeout,
            "http_max_retries": settings.http_max_retries,
            "http_retry_backoff_factor": settings.http_retry_backoff_factor,
            "wakeup_attempts": settings.wakeup_attempts,
            "wakeup_interval": settings.wakeup_interval,
            "wakeup_timeout": settings.wakeup_timeout,
        }
        values.update(overrides)
        return cls(**values)
