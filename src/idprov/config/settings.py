"""
Application settings using Pydantic.

Provides environment-based configuration loading with IDPROV_ prefix.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="IDPROV_",
    )

    # Node identity
    node_name: str = "localhost"
    platform: str = "debian"  # debian, suse, rhel

    # Input/state files
    attributes_file: str = "/etc/idprov/attributes.yaml"
    inventory_file: str = "/etc/idprov/inventory.yaml"
    state_file: str = "/var/lib/idprov/state.yaml"
    template_dir: str | None = None

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # HTTP client settings
    http_timeout: float = 30.0
    http_max_retries: int = 3
    http_retry_backoff_factor: float = 0.5

    # Administrative API wakeup barrier
    wakeup_attempts: int = 30
    wakeup_interval: float = 2.0
    wakeup_timeout: float = 120.0

    # Converge without applying anything
    dry_run: bool = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
