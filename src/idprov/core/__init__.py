"""Core modules for idprov - centralized definitions and utilities."""

from idprov.core.errors import (
    ApplyError,
    ConfigurationError,
    DependencyResolutionError,
    ExitCode,
    IdprovError,
    RemoteCallError,
    format_error_message,
    main_with_error_handling,
)

__all__ = [
    "ExitCode",
    "IdprovError",
    "ConfigurationError",
    "DependencyResolutionError",
    "RemoteCallError",
    "ApplyError",
    "main_with_error_handling",
    "format_error_message",
]
