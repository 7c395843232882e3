"""Blocking external command execution with a timeout."""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from ..errors import CommandError

logger = logging.getLogger(__name__)

# Exit codes reported when the command never produced one
TIMEOUT_EXIT_CODE = 124
NOT_FOUND_EXIT_CODE = 127


@dataclass
class CommandResult:
    """Result of executing an external command."""
    command: List[str]
    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        return self.exit_status == 0

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


class CommandRunner:
    """Runs commands in the project directory and captures their output."""

    def __init__(
        self,
        cwd: Union[str, Path] = ".",
        env: Optional[Dict[str, str]] = None,
    ) -> None:
        self.cwd = Path(cwd)
        self.env = dict(env or {})

    def run(
        self,
        args: Sequence[str],
        *,
        timeout: int,
        env: Optional[Dict[str, str]] = None,
        check: bool = True,
    ) -> CommandResult:
        """
        Execute ``args`` and wait at most ``timeout`` seconds.

        Raises:
            CommandError: if the command times out, cannot be started, or
                (with ``check``) exits non-zero.
        """
        command = list(args)
        merged_env = {**os.environ, **self.env, **(env or {})}
        logger.debug("Executing: %s", " ".join(command))
        try:
            process = subprocess.run(
                command,
                cwd=str(self.cwd),
                env=merged_env,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise CommandError(
                command, TIMEOUT_EXIT_CODE, f"timed out after {timeout}s"
            ) from exc
        except OSError as exc:
            raise CommandError(command, NOT_FOUND_EXIT_CODE, str(exc)) from exc

        result = CommandResult(
            command=command,
            stdout=process.stdout or "",
            stderr=process.stderr or "",
            exit_status=process.returncode,
        )
        if check and not result.ok:
            raise CommandError(command, result.exit_status, result.stderr.strip())
        return result
