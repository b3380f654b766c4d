"""Native package manager dispatch."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, NamedTuple

from .commands import Command, CommandResult, is_not_found_failure, is_transient_failure
from .errors import PackageConfigError
from .utils import PlatformDescriptor, homebrew_prefix, log

if TYPE_CHECKING:
    from .installers import Session

logger = logging.getLogger(__name__)

REFRESH_RETRIES = 2
INSTALL_RETRIES = 2
RETRY_DELAY = 2.0


@dataclass(frozen=True)
class PackageManager:
    """A platform's native package manager."""

    name: str
    executable: str
    refresh_args: tuple[str, ...]
    install_args: tuple[str, ...]
    sudo: bool

    def refresh_command(self, timeout: float | None = None) -> Command:
        """Command that refreshes the package index."""
        return Command((self.executable, *self.refresh_args), self.sudo, timeout=timeout)

    def install_command(
        self,
        packages: Sequence[str],
        timeout: float | None = None,
    ) -> Command:
        """Command that installs `packages`."""
        return Command(
            (self.executable, *self.install_args, *packages),
            self.sudo,
            timeout=timeout,
        )


class InstallResult(NamedTuple):
    """Outcome of a package install."""

    success: bool
    message: str = ""


def package_manager_for(platform: PlatformDescriptor) -> PackageManager:
    """Return the package manager of `platform`."""
    if platform.os_family == "macos":
        brew = homebrew_prefix(platform) / "bin" / "brew"
        return PackageManager(
            name="brew",
            executable=str(brew) if brew.exists() else "brew",
            refresh_args=("update",),
            install_args=("install",),
            sudo=False,
        )
    return PackageManager(
        name="apt",
        executable="apt-get",
        refresh_args=("update",),
        install_args=("install", "-y"),
        sudo=True,
    )


def refresh_index(session: Session) -> bool:
    """Refresh the package index once per session.

    Failures only produce a warning; installs are attempted regardless.
    """
    if session.index_refreshed:
        return True
    session.index_refreshed = True

    manager = package_manager_for(session.platform)
    command = manager.refresh_command(session.config.command_timeout)
    result = _run_with_retry(session, command, REFRESH_RETRIES)
    if result.ok:
        logger.debug("Refreshed %s index", manager.name)
        return True
    log(
        f"Could not refresh {manager.name} package index: {_first_line(result)}",
        "warning",
        "⚠️",
    )
    return False


def install_package(
    session: Session,
    logical_name: str,
    package_ids: Mapping[str, str | Sequence[str]],
) -> InstallResult:
    """Install `logical_name` using the ids mapped for the session's platform."""
    ids = package_ids.get(session.platform.os_family)
    if not ids:
        msg = f"No package configured for {logical_name} on {session.platform.os_family}"
        raise PackageConfigError(msg)
    if isinstance(ids, str):
        ids = [ids]

    refresh_index(session)
    manager = package_manager_for(session.platform)
    log(f"Installing {' '.join(ids)} via {manager.name}", "info", "📦")
    command = manager.install_command(ids, session.config.command_timeout)
    result = _run_with_retry(session, command, INSTALL_RETRIES)
    if result.ok:
        return InstallResult(True)
    if is_not_found_failure(result):
        return InstallResult(False, f"Package not found: {' '.join(ids)}")
    return InstallResult(False, _first_line(result))


def _run_with_retry(session: Session, command: Command, retries: int) -> CommandResult:
    for attempt in range(retries + 1):
        result = session.runner(command)
        if result.ok or is_not_found_failure(result) or not is_transient_failure(result):
            return result
        if attempt < retries:
            logger.debug(
                "Transient failure running %s, retrying in %.1fs",
                command,
                RETRY_DELAY,
            )
            time.sleep(RETRY_DELAY)
    return result


def _first_line(result: CommandResult) -> str:
    output = result.stderr.strip() or result.stdout.strip()
    if not output:
        return f"exit code {result.returncode}"
    return output.splitlines()[0]
