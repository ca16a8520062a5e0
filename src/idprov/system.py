"""Local command execution used by package, service and execute providers."""

from __future__ import annotations

import shlex
import subprocess
from dataclasses import dataclass
from typing import Mapping, Sequence

import structlog

from idprov.core.errors import ApplyError

logger = structlog.get_logger()


@dataclass(frozen=True)
class CommandResult:
    argv: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """Runs commands on the local machine."""

    def __init__(self, *, timeout: float | None = None) -> None:
        self._timeout = timeout

    def run(
        self,
        argv: Sequence[str],
        *,
        check: bool = True,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
    ) -> CommandResult:
        command = shlex.join(argv)
        logger.debug("command_started", command=command)
        try:
            completed = subprocess.run(
                list(argv),
                capture_output=True,
                text=True,
                env=dict(env) if env is not None else None,
                cwd=cwd,
                timeout=self._timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise ApplyError(f"Command could not be run: {command}", {"error": str(exc)}) from exc

        result = CommandResult(
            argv=tuple(argv),
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )
        if check and not result.ok:
            raise ApplyError(
                f"Command failed: {command}",
                {"returncode": result.returncode, "stderr": result.stderr.strip()},
            )
        return result
