"""Configuration for pytest fixtures used in dotnvim tests."""

from __future__ import annotations

import shutil
import tarfile
import tempfile
import zipfile
from pathlib import Path
from typing import Callable

import pytest

from dotnvim.commands import Command, CommandResult
from dotnvim.config import DotnvimConfig
from dotnvim.installers import Session
from dotnvim.state import StateStore
from dotnvim.utils import PlatformDescriptor

LINUX = PlatformDescriptor("linux", "amd64")
MACOS_ARM = PlatformDescriptor("macos", "arm64")

# Executable provided by each package in the fake package managers
PACKAGE_BINARIES = {
    "fd-find": "fdfind",
    "nodejs": "node",
    "python3-pip": "pip3",
    "ripgrep": "rg",
    "neovim": "nvim",
    "python": "python3",
}


def make_executable(directory: Path, name: str) -> Path:
    """Create a dummy executable called `name` in `directory`."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text("#!/bin/sh\nexit 0\n")
    path.chmod(0o755)
    return path


class FakeRunner:
    """Records commands instead of running them and simulates their effects."""

    def __init__(self, bin_dir: Path, config: DotnvimConfig) -> None:
        self.bin_dir = bin_dir
        self.config = config
        self.commands: list[Command] = []
        self.missing_packages: set[str] = set()
        self.results: dict[str, list[CommandResult]] = {}

    def __call__(self, command: Command) -> CommandResult:
        self.commands.append(command)
        key = " ".join(command.argv)
        queued = self.results.get(key)
        if queued:
            return queued.pop(0)
        name = Path(command.argv[0]).name.replace("-", "_")
        handler = getattr(self, f"_{name}", None)
        if handler is None:
            return CommandResult(127, "", f"Command not found: {command.argv[0]}")
        return handler(command.argv)

    @property
    def executed(self) -> list[str]:
        """Rendered commands in execution order."""
        return [str(c) for c in self.commands]

    def _install_packages(self, packages: tuple[str, ...]) -> CommandResult:
        for package in packages:
            if package in self.missing_packages:
                return CommandResult(100, "", f"E: Unable to locate package {package}")
        for package in packages:
            make_executable(self.bin_dir, PACKAGE_BINARIES.get(package, package))
        return CommandResult(0)

    def _apt_get(self, argv: tuple[str, ...]) -> CommandResult:
        if argv[1] == "update":
            return CommandResult(0)
        return self._install_packages(argv[3:])

    def _brew(self, argv: tuple[str, ...]) -> CommandResult:
        if argv[1] == "update":
            return CommandResult(0)
        return self._install_packages(argv[2:])

    def _git(self, argv: tuple[str, ...]) -> CommandResult:
        if argv[1] == "clone":
            Path(argv[-1]).mkdir(parents=True, exist_ok=True)
            return CommandResult(0)
        return CommandResult(1, "", "unsupported git command")

    def _install(self, argv: tuple[str, ...]) -> CommandResult:
        if argv[1] == "--bin":
            make_executable(Path(argv[0]).parent / "bin", "fzf")
            return CommandResult(0)
        source, target = Path(argv[-2]), Path(argv[-1])
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, target)
        target.chmod(0o755)
        return CommandResult(0)

    def _nvim(self, argv: tuple[str, ...]) -> CommandResult:
        (self.config.lazy_dir / "telescope.nvim").mkdir(parents=True, exist_ok=True)
        return CommandResult(0)


@pytest.fixture
def bin_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """An empty directory that is the only entry on PATH."""
    directory = tmp_path / "bin"
    directory.mkdir()
    monkeypatch.setenv("PATH", str(directory))
    return directory


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    """A minimal Neovim configuration to install."""
    source = tmp_path / "source"
    (source / "lua" / "config").mkdir(parents=True)
    (source / "init.lua").write_text('require("config.options")\n')
    (source / "lua" / "config" / "options.lua").write_text("vim.opt.number = true\n")
    (source / "tmux.conf").write_text("# dotnvim tmux configuration\nset -g mouse on\n")
    (source / ".git").mkdir()
    (source / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    return source


@pytest.fixture
def config(tmp_path: Path, source_dir: Path) -> DotnvimConfig:
    """A configuration rooted in a temporary home directory."""
    home = tmp_path / "home"
    home.mkdir()
    return DotnvimConfig(
        home=home,
        source_dir=source_dir,
        system_bin_dir=tmp_path / "usr-local-bin",
        fonts_dir=home / ".local" / "share" / "fonts",
        profile_file=home / ".bashrc",
        download_attempts=2,
    )


@pytest.fixture
def store(config: DotnvimConfig) -> StateStore:
    """An initialized state store."""
    state = StateStore(config.state_file)
    state.init()
    return state


@pytest.fixture
def runner(bin_dir: Path, config: DotnvimConfig) -> FakeRunner:
    """A fake command runner."""
    return FakeRunner(bin_dir, config)


@pytest.fixture
def session(config: DotnvimConfig, store: StateStore, runner: FakeRunner) -> Session:
    """A Linux session using the fake runner."""
    return Session(config, LINUX, store, runner=runner)


@pytest.fixture
def create_dummy_archive() -> Callable:
    r"""Create an archive file with binary files for testing.

    Usage:
        archive_path = create_dummy_archive(
            dest_path=tmp_path / "test.tar.gz",
            binary_names=["mybinary", "otherbinary"],
            archive_type="tar.gz",
            binary_content="#!/bin/sh\necho test"
        )
    """

    def _create_archive(
        dest_path: Path,
        binary_names: str | list[str],
        archive_type: str = "tar.gz",
        binary_content: str = "#!/usr/bin/env echo\n",
        nested_dir: str | None = None,
    ) -> Path:
        if isinstance(binary_names, str):
            binary_names = [binary_names]

        with tempfile.TemporaryDirectory() as tmp_dir:
            tmp_path = Path(tmp_dir)

            if nested_dir:
                bin_dir = tmp_path / nested_dir
                bin_dir.mkdir(exist_ok=True, parents=True)
            else:
                bin_dir = tmp_path

            created_files = []
            for binary in binary_names:
                bin_file = bin_dir / binary
                bin_file.write_text(binary_content)
                bin_file.chmod(0o755)
                created_files.append(bin_file)

            if archive_type == "tar.gz":
                with tarfile.open(dest_path, "w:gz") as tar:
                    for file_path in created_files:
                        tar.add(file_path, arcname=str(file_path.relative_to(tmp_path)))
            elif archive_type == "zip":
                with zipfile.ZipFile(dest_path, "w") as zipf:
                    for file_path in created_files:
                        zipf.write(file_path, arcname=str(file_path.relative_to(tmp_path)))
            else:  # pragma: no cover
                msg = f"Unsupported archive type: {archive_type}"
                raise ValueError(msg)

            return dest_path

    return _create_archive
