"""Tests for dotnvim.state."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from dotnvim.errors import InvalidComponentError, InvalidStatusError, StateCorruptError
from dotnvim.state import VALID_COMPONENTS, StateStore, Status


def test_init_creates_all_components_unchecked(tmp_path: Path) -> None:
    store = StateStore(tmp_path / "nested" / "state.yaml")
    assert store.init() is True

    data = yaml.safe_load(store.path.read_text())
    assert list(data) == list(VALID_COMPONENTS)
    assert set(data.values()) == {"notcheckedyet"}
    assert store.path.read_text().startswith("# Neovim Configuration Installation State")


def test_init_never_overwrites_progress(store: StateStore) -> None:
    store.set("git_install", "installed")
    before = store.path.read_bytes()

    assert store.init() is False
    assert store.path.read_bytes() == before
    assert store.get("git_install") is Status.INSTALLED


def test_set_is_visible_to_new_instances(store: StateStore) -> None:
    store.set("ripgrep_install", Status.NOTINSTALLED)

    assert store.get("ripgrep_install") is Status.NOTINSTALLED
    assert StateStore(store.path).get("ripgrep_install") is Status.NOTINSTALLED


def test_unknown_component_leaves_file_untouched(store: StateStore) -> None:
    before = store.path.read_bytes()

    with pytest.raises(InvalidComponentError):
        store.set("not_a_real_component", "installed")
    with pytest.raises(InvalidComponentError):
        store.get("not_a_real_component")

    assert store.path.read_bytes() == before


def test_invalid_status_keeps_previous_value(store: StateStore) -> None:
    store.set("git_install", "installed")

    with pytest.raises(InvalidStatusError):
        store.set("git_install", "bogus_status")

    assert store.get("git_install") is Status.INSTALLED


def test_missing_key_means_never_checked(tmp_path: Path) -> None:
    path = tmp_path / "state.yaml"
    path.write_text("git_install: installed\nneovim_check: installed\n")
    store = StateStore(path)

    assert store.get("fonts_install") is Status.NOTCHECKEDYET
    assert store.needs_action("fonts_install")
    assert not store.needs_action("git_install")


def test_set_appends_missing_key(tmp_path: Path) -> None:
    path = tmp_path / "state.yaml"
    path.write_text("git_install: installed")
    store = StateStore(path)

    store.set("fonts_install", "installed")

    assert yaml.safe_load(path.read_text()) == {
        "git_install": "installed",
        "fonts_install": "installed",
    }


def test_set_preserves_comments_and_other_lines(tmp_path: Path) -> None:
    path = tmp_path / "state.yaml"
    path.write_text(
        "# my notes\n"
        "git_install: installed  # done by hand\n"
        "lua_install: notinstalled\n"
        "luarocks_install: notinstalled\n",
    )
    store = StateStore(path)

    store.set("git_install", "notcheckedyet")
    store.set("lua_install", "installed")

    assert path.read_text() == (
        "# my notes\n"
        "git_install: notcheckedyet  # done by hand\n"
        "lua_install: installed\n"
        "luarocks_install: notinstalled\n"
    )


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        ("notcheckedyet", True),
        ("notinstalled", True),
        ("installed", False),
    ],
)
def test_needs_action(store: StateStore, status: str, expected: bool) -> None:
    store.set("node_install", status)
    assert store.needs_action("node_install") is expected


def test_reset_all(store: StateStore) -> None:
    for component in VALID_COMPONENTS:
        store.set(component, "installed")

    store.reset_all()

    assert store.summary() == [(c, Status.NOTCHECKEDYET) for c in VALID_COMPONENTS]


def test_summary_uses_whitelist_order(tmp_path: Path) -> None:
    path = tmp_path / "state.yaml"
    path.write_text("tmux_install: installed\nneovim_check: notinstalled\n")

    summary = StateStore(path).summary()

    assert [name for name, _ in summary] == list(VALID_COMPONENTS)
    assert summary[0] == ("neovim_check", Status.NOTINSTALLED)
    assert summary[-1] == ("tmux_install", Status.INSTALLED)


def test_hand_edit_affects_only_that_component(store: StateStore) -> None:
    for component in VALID_COMPONENTS:
        store.set(component, "installed")
    text = store.path.read_text().replace("jq_install: installed", "jq_install: notcheckedyet")
    store.path.write_text(text)

    needing_action = [c for c in VALID_COMPONENTS if store.needs_action(c)]

    assert needing_action == ["jq_install"]


def test_unparseable_file_is_not_repaired(tmp_path: Path) -> None:
    path = tmp_path / "state.yaml"
    path.write_text("git_install: [installed\n")
    before = path.read_bytes()
    store = StateStore(path)

    with pytest.raises(StateCorruptError):
        store.get("git_install")
    with pytest.raises(StateCorruptError):
        store.set("git_install", "installed")
    with pytest.raises(StateCorruptError):
        store.summary()

    assert path.read_bytes() == before


def test_non_mapping_document_is_corrupt(tmp_path: Path) -> None:
    path = tmp_path / "state.yaml"
    path.write_text("- git_install\n- installed\n")

    with pytest.raises(StateCorruptError):
        StateStore(path).get("git_install")


def test_invalid_persisted_value_is_corrupt(tmp_path: Path) -> None:
    path = tmp_path / "state.yaml"
    path.write_text("git_install: maybe\n")

    with pytest.raises(StateCorruptError):
        StateStore(path).get("git_install")


def test_set_creates_missing_file(tmp_path: Path) -> None:
    store = StateStore(tmp_path / "state.yaml")

    store.set("tmux_install", "installed")

    assert store.get("tmux_install") is Status.INSTALLED
    assert store.get("git_install") is Status.NOTCHECKEDYET


def test_writes_leave_no_temporary_files(store: StateStore) -> None:
    store.set("git_install", "installed")
    store.reset_all()

    assert [p.name for p in store.path.parent.iterdir()] == [store.path.name]
