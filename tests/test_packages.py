"""Tests for dotnvim.packages and dotnvim.commands."""

from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import patch

import pytest
from _pytest.capture import CaptureFixture

from dotnvim.commands import (
    Command,
    CommandResult,
    is_not_found_failure,
    is_transient_failure,
    run_command,
)
from dotnvim.errors import PackageConfigError
from dotnvim.installers import Session
from dotnvim.packages import install_package, package_manager_for, refresh_index

from .conftest import LINUX, MACOS_ARM, FakeRunner, make_executable

GIT_IDS = {"linux": "git", "macos": "git"}


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("dotnvim.packages.time.sleep") as sleep:
        yield sleep


def test_index_refreshed_once_per_session(session: Session, runner: FakeRunner) -> None:
    install_package(session, "git", GIT_IDS)
    install_package(session, "jq", {"linux": "jq"})

    assert runner.executed == [
        "sudo apt-get update",
        "sudo apt-get install -y git",
        "sudo apt-get install -y jq",
    ]
    assert session.index_refreshed


def test_each_session_refreshes_again(session: Session, runner: FakeRunner) -> None:
    refresh_index(session)
    other = Session(session.config, LINUX, session.store, runner=runner)
    refresh_index(other)

    assert runner.executed.count("sudo apt-get update") == 2


def test_refresh_failure_is_only_a_warning(
    session: Session,
    runner: FakeRunner,
    capsys: CaptureFixture[str],
) -> None:
    runner.results["apt-get update"] = [CommandResult(100, "", "E: Release file is invalid")]

    result = install_package(session, "git", GIT_IDS)

    assert result.success
    assert "Could not refresh apt package index" in capsys.readouterr().out
    assert runner.executed.count("sudo apt-get update") == 1


def test_transient_refresh_failure_is_retried(
    session: Session,
    runner: FakeRunner,
    no_sleep,
) -> None:
    runner.results["apt-get update"] = [
        CommandResult(100, "", "Could not resolve host: archive.ubuntu.com"),
        CommandResult(100, "", "Temporary failure resolving 'archive.ubuntu.com'"),
    ]

    assert refresh_index(session) is True
    assert runner.executed.count("sudo apt-get update") == 3
    assert no_sleep.call_count == 2


def test_refresh_gives_up_after_retries(session: Session, runner: FakeRunner) -> None:
    runner.results["apt-get update"] = [
        CommandResult(100, "", "Could not resolve host: archive.ubuntu.com"),
    ] * 3

    assert refresh_index(session) is False
    assert runner.executed.count("sudo apt-get update") == 3
    assert refresh_index(session) is True  # already attempted this session
    assert runner.executed.count("sudo apt-get update") == 3


def test_missing_package_is_not_retried(session: Session, runner: FakeRunner) -> None:
    runner.missing_packages.add("lazygit")

    result = install_package(session, "lazygit", {"linux": "lazygit"})

    assert not result.success
    assert result.message == "Package not found: lazygit"
    assert runner.executed.count("sudo apt-get install -y lazygit") == 1


def test_missing_mapping_is_a_configuration_error(session: Session, runner: FakeRunner) -> None:
    with pytest.raises(PackageConfigError):
        install_package(session, "fzf", {"macos": "fzf"})

    assert runner.commands == []


def test_multiple_package_ids(session: Session, runner: FakeRunner, bin_dir: Path) -> None:
    install_package(session, "node", {"linux": ("nodejs", "npm")})

    assert "sudo apt-get install -y nodejs npm" in runner.executed
    assert (bin_dir / "node").exists()


def test_brew_never_uses_sudo(session: Session, runner: FakeRunner) -> None:
    mac = Session(session.config, MACOS_ARM, session.store, runner=runner)

    install_package(mac, "git", GIT_IDS)

    assert all(not c.sudo for c in runner.commands)
    assert [c.argv[1:] for c in runner.commands] == [("update",), ("install", "git")]


def test_package_manager_for_macos_prefers_prefix_brew(tmp_path: Path) -> None:
    make_executable(tmp_path / "bin", "brew")

    with patch("dotnvim.packages.homebrew_prefix", return_value=tmp_path):
        manager = package_manager_for(MACOS_ARM)

    brew = str(tmp_path / "bin" / "brew")
    assert manager.executable == brew
    assert manager.install_command(["jq"]).argv == (brew, "install", "jq")
    assert not manager.sudo


def test_package_manager_for_macos_falls_back_to_path_brew(tmp_path: Path) -> None:
    with patch("dotnvim.packages.homebrew_prefix", return_value=tmp_path / "missing"):
        manager = package_manager_for(MACOS_ARM)

    assert manager.executable == "brew"


def test_failure_classification() -> None:
    assert is_transient_failure(CommandResult(100, "", "Could not get lock /var/lib/dpkg/lock"))
    assert not is_transient_failure(CommandResult(1, "", "permission denied"))
    assert is_not_found_failure(CommandResult(1, "Error: No available formula with the name \"x\""))
    assert not is_not_found_failure(CommandResult(1, "", "E: Broken packages"))


def test_command_str() -> None:
    assert str(Command(("apt-get", "update"), sudo=True)) == "sudo apt-get update"


def test_run_command_reports_exit_status() -> None:
    result = run_command(Command((sys.executable, "-c", "import sys; sys.exit(3)")))
    assert result.returncode == 3
    assert not result.ok


def test_run_command_missing_executable() -> None:
    result = run_command(Command(("dotnvim-no-such-binary",)))
    assert result.returncode == 127
    assert "Command not found" in result.stderr
