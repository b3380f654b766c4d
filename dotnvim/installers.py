"""Component installers and the state machine they share.

Every installer follows the same flow: honour a skip flag, trust an
`installed` state, otherwise probe for the component, install it if the
probe fails and probe again. Only a successful second probe marks the
component `installed`.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from rich.markup import escape

from .commands import Command, CommandResult, run_command
from .components import COMPONENT_SPECS, SKIP_GROUPS, ComponentSpec
from .config import DotnvimConfig
from .download import (
    extract_archive,
    fetch_checksum,
    fetched_artifact,
    find_binary,
    install_binary,
)
from .errors import ArtifactError, ComponentFailure, DotnvimError, PackageConfigError
from .packages import install_package
from .state import StateStore, Status
from .utils import (
    PlatformDescriptor,
    console,
    ensure_path_in_profile,
    get_latest_release,
    homebrew_prefix,
    log,
    timestamp,
)

logger = logging.getLogger(__name__)

FONT_URL = "https://github.com/JetBrains/JetBrainsMono/releases/download/v2.304/JetBrainsMono-2.304.zip"
FZF_REPO_URL = "https://github.com/junegunn/fzf.git"
LAZY_REPO_URL = "https://github.com/folke/lazy.nvim.git"
LAZYGIT_REPO = "jesseduffield/lazygit"
LAZYGIT_ARCH_MAP = {"amd64": "x86_64", "arm64": "arm64"}
LAZYGIT_OS_MAP = {"linux": "Linux", "macos": "Darwin"}

# Never copied from the source directory into the Neovim config
CONFIG_IGNORE = (".git", ".github", "__pycache__", "*.pyc", ".venv", "node_modules")


class Outcome(str, Enum):
    """What happened to a component during a run."""

    ALREADY = "already"
    SKIPPED = "skipped"
    INSTALLING = "installing"
    SUCCESS = "success"
    FAILED = "failed"


_OUTCOME_STYLES = {
    Outcome.SKIPPED: ("⏸️ ", "blue", "Skipped"),
    Outcome.ALREADY: ("✓", "green", "Already installed"),
    Outcome.INSTALLING: ("⚙️ ", "yellow", "Installing"),
    Outcome.SUCCESS: ("✅", "green", "Success"),
    Outcome.FAILED: ("❌", "red", "Failed"),
}


def log_action(component: str, action: str, outcome: Outcome) -> None:
    """Report a component outcome in the shared format."""
    emoji, style, label = _OUTCOME_STYLES[outcome]
    console.print(
        f"{emoji} [{style}]{escape(f'[{component}]')} {label} - {escape(action)}[/{style}]",
    )


@dataclass
class Session:
    """Everything an installer needs for one orchestrator run."""

    config: DotnvimConfig
    platform: PlatformDescriptor
    store: StateStore
    skip: frozenset[str] = frozenset()
    verify_installed: bool = False
    runner: Callable[[Command], CommandResult] = run_command
    index_refreshed: bool = False
    outcomes: dict[str, Outcome] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.config.resolve_platform_paths(self.platform)

    @classmethod
    def with_skip_groups(
        cls,
        config: DotnvimConfig,
        platform: PlatformDescriptor,
        store: StateStore,
        groups: set[str] | frozenset[str] = frozenset(),
        **kwargs: object,
    ) -> Session:
        """Create a session skipping every component in `groups`."""
        skip = frozenset(name for group in groups for name in SKIP_GROUPS[group])
        return cls(config, platform, store, skip=skip, **kwargs)

    def is_skipped(self, component: str) -> bool:
        """Whether the operator asked to skip `component` this run."""
        return component in self.skip

    def search_path(self) -> str:
        """PATH used by presence probes, including dotnvim's own bin dirs."""
        extra = [
            self.config.system_bin_dir,
            self.config.local_bin_dir,
            self.config.fzf_dir / "bin",
        ]
        if self.platform.os_family == "macos":
            extra.append(homebrew_prefix(self.platform) / "bin")
        return os.pathsep.join([os.environ.get("PATH", ""), *map(str, extra)])

    def which(self, name: str) -> str | None:
        """Locate an executable on the probe PATH."""
        return shutil.which(name, path=self.search_path())

    def has_any(self, names: tuple[str, ...]) -> bool:
        """Whether any of `names` is on the probe PATH."""
        return any(self.which(name) for name in names)

    def run(self, *argv: str | Path, sudo: bool = False, cwd: Path | None = None) -> CommandResult:
        """Run an external command through the session's runner."""
        command = Command(
            tuple(str(arg) for arg in argv),
            sudo=sudo,
            cwd=cwd,
            timeout=self.config.command_timeout,
        )
        return self.runner(command)

    def download_options(self) -> dict:
        """Keyword arguments for `fetched_artifact` taken from the config."""
        return {
            "attempts": self.config.download_attempts,
            "connect_timeout": self.config.connect_timeout,
            "read_timeout": self.config.read_timeout,
            "total_timeout": self.config.download_timeout,
        }

    def record(self, component: str, outcome: Outcome) -> Outcome:
        """Remember the outcome of `component` for this run."""
        self.outcomes[component] = outcome
        return outcome


def run_component(
    session: Session,
    name: str,
    probe: Callable[[], bool],
    install: Callable[[], bool],
    *,
    on_skip: Callable[[], None] | None = None,
    reprobe_installed: bool = True,
) -> Outcome:
    """Drive one component through check, install and verification.

    Raises ComponentFailure if a critical component cannot be installed.
    """
    spec = COMPONENT_SPECS[name]
    label = spec.display_name
    store = session.store

    if session.is_skipped(name):
        log_action(label, "Skipped by user flag", Outcome.SKIPPED)
        if on_skip is not None:
            on_skip()
        return session.record(name, Outcome.SKIPPED)

    if not store.needs_action(name):
        if not (session.verify_installed and reprobe_installed) or probe():
            log_action(label, "Already installed", Outcome.ALREADY)
            return session.record(name, Outcome.ALREADY)
        log(
            f"{label} is recorded as installed but was not found, reinstalling",
            "warning",
            "⚠️",
        )
    elif probe():
        store.set(name, Status.INSTALLED)
        log_action(label, "Already available", Outcome.ALREADY)
        return session.record(name, Outcome.ALREADY)

    log_action(label, f"Installing {label}", Outcome.INSTALLING)
    try:
        succeeded = install()
    except (DotnvimError, OSError) as e:
        log(f"{label}: {e}", "error", "❌")
        logger.debug("Install of %s raised", name, exc_info=True)
        succeeded = False

    if succeeded and probe():
        store.set(name, Status.INSTALLED)
        log_action(label, "Installation completed", Outcome.SUCCESS)
        return session.record(name, Outcome.SUCCESS)

    store.set(name, Status.NOTINSTALLED)
    log_action(label, "Installation failed", Outcome.FAILED)
    session.record(name, Outcome.FAILED)
    if spec.critical:
        raise ComponentFailure(name, critical=True)
    return Outcome.FAILED


def install_from_spec(session: Session, spec: ComponentSpec) -> bool:
    """Install a component with the package manager, then a direct download."""
    os_family = session.platform.os_family
    if os_family not in spec.packages and os_family not in spec.downloads:
        msg = f"No install method for {spec.display_name} on {os_family}"
        raise PackageConfigError(msg)

    if os_family in spec.packages:
        result = install_package(session, spec.name, spec.packages)
        if result.success:
            return True
        log(f"{spec.display_name}: {result.message}", "warning", "⚠️")
        if os_family not in spec.downloads:
            return False

    url = spec.downloads[os_family].format(arch=session.platform.arch)
    with fetched_artifact(url, expected_type="binary", **session.download_options()) as path:
        install_binary(session, path, spec.commands[0])
    return True


def _install_standard(session: Session, name: str) -> Outcome:
    spec = COMPONENT_SPECS[name]
    return run_component(
        session,
        name,
        probe=lambda: session.has_any(spec.commands),
        install=lambda: install_from_spec(session, spec),
    )


def check_neovim(session: Session) -> Outcome:
    """Make sure Neovim itself is available."""
    spec = COMPONENT_SPECS["neovim_check"]

    def install() -> bool:
        if session.platform.os_family in spec.packages:
            return install_from_spec(session, spec)
        console.print("[red]Please install Neovim first:[/red]")
        console.print(
            "  curl -LO https://github.com/neovim/neovim/releases/download/v0.10.3/nvim.appimage",
        )
        console.print("  chmod u+x nvim.appimage")
        console.print("  sudo mv nvim.appimage /usr/local/bin/nvim")
        return False

    return run_component(
        session,
        "neovim_check",
        probe=lambda: session.has_any(spec.commands),
        install=install,
    )


def install_git(session: Session) -> Outcome:
    """Install Git."""
    return _install_standard(session, "git_install")


def install_yq(session: Session) -> Outcome:
    """Install the yq YAML processor."""
    return _install_standard(session, "yq_install")


def install_jq(session: Session) -> Outcome:
    """Install the jq JSON processor."""
    return _install_standard(session, "jq_install")


def install_ripgrep(session: Session) -> Outcome:
    """Install ripgrep."""
    return _install_standard(session, "ripgrep_install")


def install_fd(session: Session) -> Outcome:
    """Install fd, linking Debian's `fdfind` to `fd` if needed."""
    spec = COMPONENT_SPECS["fd_install"]

    def install() -> bool:
        if not install_from_spec(session, spec):
            return False
        fdfind = session.which("fdfind")
        if session.which("fd") or not fdfind:
            return True
        link = session.config.local_bin_dir / "fd"
        link.parent.mkdir(parents=True, exist_ok=True)
        link.unlink(missing_ok=True)
        link.symlink_to(fdfind)
        ensure_path_in_profile(session.config.profile_file, session.config.local_bin_dir)
        return True

    return run_component(
        session,
        "fd_install",
        probe=lambda: session.has_any(spec.commands),
        install=install,
    )


def install_fzf(session: Session) -> Outcome:
    """Install fzf from Homebrew or from a git checkout in ~/.fzf."""
    spec = COMPONENT_SPECS["fzf_install"]
    fzf_dir = session.config.fzf_dir

    def partial_checkout() -> bool:
        return fzf_dir.exists() and not (fzf_dir / "bin" / "fzf").exists()

    def install() -> bool:
        if session.platform.os_family in spec.packages:
            return install_from_spec(session, spec)
        if partial_checkout():
            shutil.rmtree(fzf_dir)
        if not fzf_dir.exists():
            clone = session.run("git", "clone", "--depth", "1", FZF_REPO_URL, fzf_dir)
            if not clone.ok:
                log(f"git clone of fzf failed: {clone.stderr.strip()}", "error", "❌")
                return False
        return session.run(fzf_dir / "install", "--bin", cwd=fzf_dir).ok

    def cleanup() -> None:
        if session.store.get("fzf_install") is not Status.INSTALLED and partial_checkout():
            log(f"Removing incomplete fzf checkout {fzf_dir}", "info", "🧹")
            shutil.rmtree(fzf_dir)

    return run_component(
        session,
        "fzf_install",
        probe=lambda: session.has_any(spec.commands),
        install=install,
        on_skip=cleanup,
    )


def install_node(session: Session) -> Outcome:
    """Install Node.js."""
    return _install_standard(session, "node_install")


def install_python(session: Session) -> Outcome:
    """Install Python 3."""
    return _install_standard(session, "python_install")


def install_lua(session: Session) -> Outcome:
    """Install Lua."""
    return _install_standard(session, "lua_install")


def install_luarocks(session: Session) -> Outcome:
    """Install LuaRocks."""
    return _install_standard(session, "luarocks_install")


def _fonts_present(session: Session) -> bool:
    if any(session.config.font_install_dir.glob("JetBrainsMono*.ttf")):
        return True
    if session.platform.os_family == "linux" and session.which("fc-list"):
        return "JetBrains Mono" in session.run("fc-list").stdout
    return False


def install_fonts(session: Session) -> Outcome:
    """Install the JetBrains Mono font for the current user."""
    config = session.config
    target = config.font_install_dir
    staging = target.with_name(f".{target.name}.partial")

    def install() -> bool:
        with fetched_artifact(
            FONT_URL,
            expected_type="zip",
            **session.download_options(),
        ) as archive, tempfile.TemporaryDirectory() as tmp:
            extracted = Path(tmp)
            extract_archive(archive, extracted)
            fonts = sorted((extracted / "fonts" / "ttf").glob("*.ttf")) or sorted(
                extracted.rglob("*.ttf"),
            )
            if not fonts:
                msg = "No .ttf files found in the JetBrains Mono archive"
                raise ArtifactError(msg)
            shutil.rmtree(staging, ignore_errors=True)
            staging.mkdir(parents=True)
            for font in fonts:
                shutil.copy2(font, staging / font.name)
            if target.exists():
                shutil.rmtree(target)
            staging.rename(target)
        log(f"Copied {len(fonts)} font files to {target}", "success", "✅")

        if session.platform.os_family == "linux" and session.which("fc-cache"):
            if not session.run("fc-cache", "-f").ok:
                log("fc-cache failed, fonts may need a re-login", "warning", "⚠️")
        return True

    def cleanup() -> None:
        shutil.rmtree(staging, ignore_errors=True)
        if target.exists() and not any(target.glob("JetBrainsMono*.ttf")):
            log(f"Removing incomplete font directory {target}", "info", "🧹")
            shutil.rmtree(target)

    return run_component(
        session,
        "fonts_install",
        probe=lambda: _fonts_present(session),
        install=install,
        on_skip=cleanup,
    )


def _remove_path(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.exists():
        shutil.rmtree(path)


def backup_config(session: Session) -> Outcome:
    """Move an existing Neovim config out of the way.

    With the backup skipped, the existing config directory is deleted
    instead. This loses data and only happens on explicit request.
    """
    target = session.config.nvim_config_dir

    def install() -> bool:
        backup = target.with_name(f"{target.name}.backup.{timestamp()}")
        target.rename(backup)
        log(f"Backup created: {backup.name}", "success", "💾")
        return True

    def delete_existing() -> None:
        if target.exists() or target.is_symlink():
            log_action("Config Cleanup", "Removing existing config", Outcome.INSTALLING)
            _remove_path(target)

    return run_component(
        session,
        "config_backup",
        probe=lambda: not (target.exists() or target.is_symlink()),
        install=install,
        on_skip=delete_existing,
        reprobe_installed=False,
    )


def install_config(session: Session) -> Outcome:
    """Copy the configuration files, on every run, to keep them in sync."""
    name = "config_install"
    label = COMPONENT_SPECS[name].display_name
    source = session.config.source_dir
    target = session.config.nvim_config_dir

    log_action(label, "Copying configuration files", Outcome.INSTALLING)
    try:
        if not (source / "init.lua").is_file():
            msg = f"No init.lua in configuration source {source}"
            raise FileNotFoundError(msg)
        if source.resolve() != target.resolve():
            target.mkdir(parents=True, exist_ok=True)
            shutil.copytree(
                source,
                target,
                dirs_exist_ok=True,
                ignore=shutil.ignore_patterns(*CONFIG_IGNORE),
            )
        copied = (target / "init.lua").is_file()
    except OSError as e:
        log(f"{label}: {e}", "error", "❌")
        copied = False

    if copied:
        session.store.set(name, Status.INSTALLED)
        log_action(label, "Configuration files copied", Outcome.SUCCESS)
        return session.record(name, Outcome.SUCCESS)
    session.store.set(name, Status.NOTINSTALLED)
    log_action(label, "Copy failed", Outcome.FAILED)
    return session.record(name, Outcome.FAILED)


def install_lazyvim(session: Session) -> Outcome:
    """Bootstrap the lazy.nvim plugin manager."""
    lazy_path = session.config.lazy_path

    def install() -> bool:
        lazy_path.parent.mkdir(parents=True, exist_ok=True)
        result = session.run(
            "git",
            "clone",
            "--filter=blob:none",
            "--branch=stable",
            LAZY_REPO_URL,
            lazy_path,
        )
        return result.ok

    return run_component(
        session,
        "lazyvim_install",
        probe=lazy_path.is_dir,
        install=install,
    )


def _plugins_present(session: Session) -> bool:
    lazy_dir = session.config.lazy_dir
    if not lazy_dir.is_dir():
        return False
    return any(p.is_dir() and p.name != "lazy.nvim" for p in lazy_dir.iterdir())


def install_plugins(session: Session) -> Outcome:
    """Sync plugins with a headless Neovim."""

    def install() -> bool:
        result = session.run("nvim", "--headless", "+Lazy! sync", "+qa")
        if not result.ok:
            log(f"Lazy sync exited with {result.returncode}", "error", "❌")
        return result.ok

    return run_component(
        session,
        "plugins_install",
        probe=lambda: _plugins_present(session),
        install=install,
    )


def lazygit_asset_name(version: str, platform: PlatformDescriptor) -> str:
    """Name of the lazygit release tarball for `platform`."""
    os_name = LAZYGIT_OS_MAP[platform.os_family]
    arch = LAZYGIT_ARCH_MAP[platform.arch]
    return f"lazygit_{version}_{os_name}_{arch}.tar.gz"


def install_lazygit(session: Session) -> Outcome:
    """Install lazygit: package manager, then release tarball."""
    spec = COMPONENT_SPECS["lazygit_install"]

    def install() -> bool:
        result = install_package(session, spec.name, spec.packages)
        if result.success and session.which("lazygit"):
            return True
        log(
            f"LazyGit not available from the package manager ({result.message or 'not found'}), "
            "downloading release",
            "warning",
            "⚠️",
        )

        release = get_latest_release(LAZYGIT_REPO)
        version = release["tag_name"].lstrip("v")
        asset = lazygit_asset_name(version, session.platform)
        base_url = f"https://github.com/{LAZYGIT_REPO}/releases/download/v{version}"
        checksum = fetch_checksum(f"{base_url}/checksums.txt", asset)
        with fetched_artifact(
            f"{base_url}/{asset}",
            checksum,
            "gzip",
            **session.download_options(),
        ) as archive, tempfile.TemporaryDirectory() as tmp:
            extract_archive(archive, Path(tmp))
            install_binary(session, find_binary(Path(tmp), "lazygit"), "lazygit")
        return True

    return run_component(
        session,
        "lazygit_install",
        probe=lambda: session.has_any(spec.commands),
        install=install,
    )


def _tmux_config_present(session: Session) -> bool:
    target = session.config.tmux_conf
    if not target.is_file():
        return False
    content = target.read_text(errors="replace")
    if session.config.tmux_marker in content:
        return True
    source = session.config.source_dir / "tmux.conf"
    return source.is_file() and source.read_text(errors="replace") == content


def install_tmux(session: Session) -> Outcome:
    """Install tmux and its configuration."""
    spec = COMPONENT_SPECS["tmux_install"]

    def install() -> bool:
        if not session.has_any(spec.commands):
            result = install_package(session, spec.name, spec.packages)
            if not result.success:
                log(f"tmux: {result.message}", "warning", "⚠️")

        source = session.config.source_dir / "tmux.conf"
        if not source.is_file():
            log(f"No tmux.conf found in {session.config.source_dir}", "error", "❌")
            return False
        target = session.config.tmux_conf
        if target.exists():
            backup = target.with_name(f"{target.name}.backup.{timestamp()}")
            target.rename(backup)
            log(f"Backed up existing tmux config to {backup.name}", "info", "💾")
        shutil.copy2(source, target)
        return True

    return run_component(
        session,
        "tmux_install",
        probe=lambda: session.has_any(spec.commands) and _tmux_config_present(session),
        install=install,
    )


# Fixed execution order
INSTALLERS: tuple[tuple[str, Callable[[Session], Outcome]], ...] = (
    ("neovim_check", check_neovim),
    ("git_install", install_git),
    ("yq_install", install_yq),
    ("jq_install", install_jq),
    ("ripgrep_install", install_ripgrep),
    ("fd_install", install_fd),
    ("fzf_install", install_fzf),
    ("node_install", install_node),
    ("python_install", install_python),
    ("lua_install", install_lua),
    ("luarocks_install", install_luarocks),
    ("fonts_install", install_fonts),
    ("config_backup", backup_config),
    ("config_install", install_config),
    ("lazyvim_install", install_lazyvim),
    ("plugins_install", install_plugins),
    ("lazygit_install", install_lazygit),
    ("tmux_install", install_tmux),
)


def run_installers(session: Session) -> dict[str, Outcome]:
    """Run every installer in order.

    A ComponentFailure from a critical component stops the run immediately.
    """
    for _name, installer in INSTALLERS:
        installer(session)
    return session.outcomes
