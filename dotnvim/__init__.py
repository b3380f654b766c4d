"""dotnvim - Idempotent Neovim configuration installer.

Installs Neovim, the tools its configuration depends on, fonts, the
configuration files and plugins on Linux and macOS. The outcome for
every component is recorded in a state file, so running dotnvim again
only redoes the work that has not succeeded yet.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .cli import main, run
from .config import DotnvimConfig
from .download import fetch_and_verify, fetched_artifact
from .installers import Session, run_installers
from .packages import install_package, refresh_index
from .state import VALID_COMPONENTS, StateStore, Status
from .utils import detect_platform

__all__ = [
    "VALID_COMPONENTS",
    "DotnvimConfig",
    "Session",
    "StateStore",
    "Status",
    "detect_platform",
    "fetch_and_verify",
    "fetched_artifact",
    "install_package",
    "main",
    "refresh_index",
    "run",
    "run_installers",
]
