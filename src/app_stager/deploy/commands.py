"""Shell command execution for extraction and dependency installs."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import structlog

from app_stager.core.exceptions import CommandError

logger = structlog.get_logger()


@dataclass
class CommandResult:
    command: str
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """Runs shell command strings and reports failures."""

    def __init__(self, timeout: Optional[float] = 300.0):
        self.timeout = timeout

    def run(
        self,
        command: str,
        cwd: Optional[Union[str, Path]] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """Run ``command`` through the shell and capture its output.

        Args:
            command: Shell command string
            cwd: Working directory for the command
            timeout: Seconds before the command is killed (defaults to the runner timeout)

        Returns:
            Result with exit code and captured streams

        Raises:
            CommandError: If the command times out or cannot be started
        """
        timeout = self.timeout if timeout is None else timeout
        logger.debug("Running command", command=command, cwd=str(cwd) if cwd else None)

        try:
            proc = subprocess.run(
                command,
                shell=True,
                cwd=str(cwd) if cwd else None,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            logger.error("Command timed out", command=command, timeout=timeout)
            raise CommandError(f"Command timed out after {timeout}s: {command}", command=command) from e
        except OSError as e:
            logger.error("Command could not be started", command=command, error=str(e))
            raise CommandError(f"Command could not be started: {e}", command=command) from e

        result = CommandResult(
            command=command,
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
        )
        if not result.ok:
            logger.error(
                "Error running command",
                command=command,
                returncode=result.returncode,
                stderr=result.stderr[:2000],
            )
        return result

    def check(
        self,
        command: str,
        cwd: Optional[Union[str, Path]] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """Run ``command`` and raise ``CommandError`` on a non-zero exit."""
        result = self.run(command, cwd=cwd, timeout=timeout)
        if not result.ok:
            raise CommandError(
                f"Command failed with exit code {result.returncode}: {command}",
                command=command,
                returncode=result.returncode,
                stderr=result.stderr,
            )
        return result
