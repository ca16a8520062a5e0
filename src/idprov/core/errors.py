"""
Unified error handling for idprov.

Every failure that aborts a convergence run is one of the classes below.
The CLI boundary turns them into process exit codes.

Exit Codes:
- 0: Success
- 10: Configuration error (unknown engine, unresolvable provider, bad attributes)
- 11: Dependency resolution error (cluster inventory lookup failed)
- 12: Remote call error (administrative API unreachable or rejected a request)
- 13: Apply error (a provider failed to apply a resource change)
- 127: Unknown/internal error
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import IntEnum
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Standardized exit codes for CLI commands."""

    SUCCESS = 0
    CONFIG_ERROR = 10
    DEPENDENCY_ERROR = 11
    REMOTE_ERROR = 12
    APPLY_ERROR = 13
    UNKNOWN_ERROR = 127


class IdprovError(Exception):
    """Base exception for idprov errors with exit code support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.resource: Any = None

    def __str__(self) -> str:
        return format_error_message(self)


class ConfigurationError(IdprovError):
    """Raised for configuration errors; always raised before any mutation."""

    exit_code = ExitCode.CONFIG_ERROR


class DependencyResolutionError(IdprovError):
    """Raised when the cluster inventory cannot satisfy a lookup."""

    exit_code = ExitCode.DEPENDENCY_ERROR


class RemoteCallError(IdprovError):
    """Raised when the administrative API is unreachable or rejects a call."""

    exit_code = ExitCode.REMOTE_ERROR


class ApplyError(IdprovError):
    """Raised when a provider fails to apply a resource change."""

    exit_code = ExitCode.APPLY_ERROR


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for CLI main functions that provides unified error handling.

    Catches exceptions and converts them to appropriate exit codes with
    consistent error reporting.

    Args:
        show_traceback: If True, show full traceback for unexpected errors
        log_errors: If True, log errors to structlog

    Exit codes:
        - IdprovError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130 (standard for SIGINT)
        - Other exceptions: Returns 127 (unknown error)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except IdprovError as e:
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=type(e).__name__,
                        message=e.message,
                        exit_code=int(e.exit_code),
                        **e.details,
                    )
                if e.show_traceback or show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return 130  # Standard exit code for SIGINT
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=int(ExitCode.UNKNOWN_ERROR),
                    )
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator


def format_error_message(error: IdprovError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg
