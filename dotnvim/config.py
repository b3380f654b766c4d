"""Configuration management for dotnvim."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from .utils import PlatformDescriptor, console

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "~/.config/dotnvim/config.yaml"


@dataclass
class DotnvimConfig:
    """Configuration for dotnvim.

    Every path that is left unset is derived from `home` so that tests can
    point the whole installation at a temporary directory.
    """

    home: Path | None = None
    state_file: Path | None = None
    source_dir: Path | None = None
    nvim_config_dir: Path | None = None
    nvim_data_dir: Path | None = None
    local_bin_dir: Path | None = None
    system_bin_dir: Path = Path("/usr/local/bin")
    fonts_dir: Path | None = None
    fzf_dir: Path | None = None
    profile_file: Path | None = None
    tmux_conf: Path | None = None
    tmux_marker: str = "dotnvim"
    connect_timeout: float = 10
    read_timeout: float = 60
    download_timeout: float = 600
    download_attempts: int = 3
    command_timeout: float = 900

    def __post_init__(self) -> None:
        """Resolve derived paths."""
        home = Path(self.home) if self.home else Path.home()
        self.home = home
        self.state_file = _path_or(
            self.state_file,
            home / ".config" / "dotnvim" / "state.yaml",
        )
        self.source_dir = _path_or(self.source_dir, Path.cwd())
        self.nvim_config_dir = _path_or(self.nvim_config_dir, home / ".config" / "nvim")
        self.nvim_data_dir = _path_or(
            self.nvim_data_dir,
            home / ".local" / "share" / "nvim",
        )
        self.local_bin_dir = _path_or(self.local_bin_dir, home / ".local" / "bin")
        self.system_bin_dir = Path(self.system_bin_dir).expanduser()
        self.fzf_dir = _path_or(self.fzf_dir, home / ".fzf")
        self.tmux_conf = _path_or(self.tmux_conf, home / ".tmux.conf")

    def resolve_platform_paths(self, platform: PlatformDescriptor) -> None:
        """Fill in the font directory and shell profile for `platform`.

        Paths set explicitly are kept.
        """
        if platform.os_family == "macos":
            default_fonts = self.home / "Library" / "Fonts"
            default_profile = self.home / ".zshrc"
        else:
            default_fonts = self.home / ".local" / "share" / "fonts"
            default_profile = self.home / ".bashrc"
        self.fonts_dir = _path_or(self.fonts_dir, default_fonts)
        self.profile_file = _path_or(self.profile_file, default_profile)

    @property
    def lazy_dir(self) -> Path:
        """Directory holding lazy.nvim managed plugins."""
        return self.nvim_data_dir / "lazy"

    @property
    def lazy_path(self) -> Path:
        """Checkout location of lazy.nvim itself."""
        return self.lazy_dir / "lazy.nvim"

    @property
    def font_install_dir(self) -> Path:
        """Dedicated directory for the JetBrains Mono font files."""
        return self.fonts_dir / "JetBrainsMono"

    @classmethod
    def load_from_file(
        cls,
        config_path: str | Path | None = None,
        **overrides: Any,
    ) -> DotnvimConfig:
        """Load configuration from a YAML file, falling back to defaults."""
        path = Path(os.path.expanduser(str(config_path or DEFAULT_CONFIG_FILE)))
        overrides = {k: v for k, v in overrides.items() if v is not None}

        try:
            with open(path) as file:
                config_data = yaml.safe_load(file) or {}
        except FileNotFoundError:
            if config_path:
                console.print(
                    f"⚠️ [yellow]Configuration file not found: {path}[/yellow]",
                )
            return cls(**overrides)
        except yaml.YAMLError:
            console.print(
                f"❌ [bold red]Invalid YAML in configuration file: {path}[/bold red]",
            )
            return cls(**overrides)

        if not isinstance(config_data, dict):
            console.print(
                f"❌ [bold red]Configuration file must be a mapping: {path}[/bold red]",
            )
            return cls(**overrides)

        known = {f.name for f in fields(cls)}
        for key in sorted(set(config_data) - known):
            console.print(f"⚠️ [yellow]Ignoring unknown setting '{key}'[/yellow]")
        data = {k: v for k, v in config_data.items() if k in known}
        data.update(overrides)
        logger.debug("Loaded settings from %s: %s", path, data)
        return cls(**data)


def _path_or(value: str | Path | None, default: Path) -> Path:
    if value is None:
        return default
    return Path(os.path.expanduser(str(value)))
