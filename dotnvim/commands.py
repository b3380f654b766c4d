"""Typed external command descriptors and their execution."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import NamedTuple

logger = logging.getLogger(__name__)

TRANSIENT_INDICATORS = (
    "connection refused",
    "connection timed out",
    "connection reset",
    "temporary failure",
    "network unreachable",
    "network is unreachable",
    "could not resolve host",
    "could not get lock",
    "waiting for cache lock",
    "dpkg frontend lock",
)

NOT_FOUND_INDICATORS = (
    "unable to locate package",
    "has no installation candidate",
    "no available formula",
    "no formulae or casks found",
)


class Command(NamedTuple):
    """An argument vector to execute, never passed through a shell."""

    argv: tuple[str, ...]
    sudo: bool = False
    cwd: Path | None = None
    timeout: float | None = None

    def __str__(self) -> str:
        """Return a readable rendering of the command."""
        prefix = "sudo " if self.sudo else ""
        return prefix + " ".join(self.argv)


class CommandResult(NamedTuple):
    """Outcome of running a Command."""

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        """Whether the command exited successfully."""
        return self.returncode == 0


def run_command(command: Command) -> CommandResult:
    """Run `command` and capture its output."""
    argv = list(command.argv)
    if command.sudo and os.geteuid() != 0:
        argv = ["sudo", *argv]
    logger.debug("Executing: %s", " ".join(argv))
    try:
        result = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            cwd=command.cwd,
            timeout=command.timeout,
            check=False,
        )
    except FileNotFoundError:
        return CommandResult(127, "", f"Command not found: {argv[0]}")
    except subprocess.TimeoutExpired:
        return CommandResult(124, "", f"Command timed out after {command.timeout}s")
    return CommandResult(result.returncode, result.stdout, result.stderr)


def is_transient_failure(result: CommandResult) -> bool:
    """Whether a failed command looks like it could succeed on retry."""
    stderr = result.stderr.lower()
    return any(indicator in stderr for indicator in TRANSIENT_INDICATORS)


def is_not_found_failure(result: CommandResult) -> bool:
    """Whether a failed install means the package does not exist."""
    output = f"{result.stdout}\n{result.stderr}".lower()
    return any(indicator in output for indicator in NOT_FOUND_INDICATORS)
