"""Utility functions for dotnvim."""

from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import NamedTuple

import requests
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from .errors import UnsupportedPlatformError

# Initialize rich console
console = Console()
logger = logging.getLogger(__name__)

OS_FAMILIES = {"Linux": "linux", "Darwin": "macos"}

_LOG_STYLES = {
    "default": "",
    "info": "cyan",
    "success": "green",
    "warning": "yellow",
    "error": "bold red",
}


def log(message: str, level: str = "default", emoji: str = "") -> None:
    """Print a styled message to the console."""
    style = _LOG_STYLES.get(level, "")
    message = escape(message)
    prefix = f"{emoji} " if emoji else ""
    if style:
        console.print(f"{prefix}[{style}]{message}[/{style}]")
    else:
        console.print(f"{prefix}{message}")


def setup_logging(verbose: bool = False) -> None:  # noqa: FBT001, FBT002
    """Configure logging level based on verbosity."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


class PlatformDescriptor(NamedTuple):
    """The host OS family and CPU architecture."""

    os_family: str
    arch: str


def detect_platform(
    system: str | None = None,
    machine: str | None = None,
) -> PlatformDescriptor:
    """Detect the current platform and architecture.

    Raises UnsupportedPlatformError for any kernel other than Linux or Darwin.
    """
    if system is None or machine is None:
        uname = os.uname()
        system = system if system is not None else uname.sysname
        machine = machine if machine is not None else uname.machine

    if system not in OS_FAMILIES:
        raise UnsupportedPlatformError(system)

    arch = "amd64"
    if machine.lower() in ["arm64", "aarch64"]:
        arch = "arm64"

    return PlatformDescriptor(OS_FAMILIES[system], arch)


def homebrew_prefix(platform: PlatformDescriptor) -> Path:
    """Return the Homebrew prefix for a macOS architecture."""
    if platform.arch == "arm64":
        return Path("/opt/homebrew")
    return Path("/usr/local")


def get_latest_release(repo: str, timeout: float = 30) -> dict:
    """Get the latest release information from GitHub."""
    url = f"https://api.github.com/repos/{repo}/releases/latest"
    log(f"Fetching latest release from {url}", "info", "🔍")
    headers = {}
    if token := os.environ.get("GITHUB_TOKEN"):
        headers["Authorization"] = f"token {token}"
    response = requests.get(url, headers=headers, timeout=timeout)
    response.raise_for_status()
    return response.json()


def timestamp() -> str:
    """Return a timestamp suffix for backup names."""
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def ensure_path_in_profile(profile: Path, directory: Path) -> bool:
    """Append a PATH export for `directory` to `profile` unless already present.

    Returns True if the profile was modified.
    """
    line = f'export PATH="{directory}:$PATH"'
    existing = profile.read_text() if profile.exists() else ""
    if line in existing:
        return False

    profile.parent.mkdir(parents=True, exist_ok=True)
    with profile.open("a") as f:
        if existing and not existing.endswith("\n"):
            f.write("\n")
        f.write(f"# Added by dotnvim\n{line}\n")
    log(f"Added {directory} to PATH in {profile}", "info", "🔧")
    return True
