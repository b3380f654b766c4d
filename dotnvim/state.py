"""Persistent installation state for dotnvim.

The state lives in a small YAML document, one `component: status` line per
component. Updates rewrite only the affected line, so comments and manual
edits elsewhere in the file survive. Every write goes to a temporary file
in the same directory which is then renamed over the original.

No locking is done: two dotnvim processes writing the same file at the
same time may race.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from enum import Enum
from pathlib import Path

import yaml

from .errors import InvalidComponentError, InvalidStatusError, StateCorruptError

logger = logging.getLogger(__name__)

# Whitelist of component names, in display and execution order
VALID_COMPONENTS = (
    "neovim_check",
    "git_install",
    "yq_install",
    "jq_install",
    "ripgrep_install",
    "fd_install",
    "fzf_install",
    "node_install",
    "python_install",
    "lua_install",
    "luarocks_install",
    "fonts_install",
    "config_backup",
    "config_install",
    "lazyvim_install",
    "plugins_install",
    "lazygit_install",
    "tmux_install",
)

_HEADER = """\
# Neovim Configuration Installation State
# Values: notcheckedyet, installed, notinstalled
"""


class Status(str, Enum):
    """Lifecycle status of a component."""

    NOTCHECKEDYET = "notcheckedyet"
    INSTALLED = "installed"
    NOTINSTALLED = "notinstalled"

    def __str__(self) -> str:
        """Return the persisted value."""
        return self.value


def validate_component_name(component: str) -> str:
    """Return `component` if it is whitelisted, raise otherwise."""
    if component not in VALID_COMPONENTS:
        raise InvalidComponentError(component)
    return component


def validate_status(status: str | Status) -> Status:
    """Convert `status` to a Status, raise if it is not one of the three values."""
    try:
        return Status(status)
    except ValueError:
        raise InvalidStatusError(str(status)) from None


class StateStore:
    """Read and write component states in a YAML file."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def init(self) -> bool:
        """Create the state file with every component unchecked.

        Existing files are never touched. Returns True if the file was created.
        """
        if self.path.exists():
            return False
        lines = [f"{name}: {Status.NOTCHECKEDYET}" for name in VALID_COMPONENTS]
        self._write(_HEADER + "\n".join(lines) + "\n")
        logger.debug("Created state file %s", self.path)
        return True

    def get(self, component: str) -> Status:
        """Return the status of `component`.

        A key missing from the file means the component was never checked.
        """
        validate_component_name(component)
        value = self._load().get(component)
        if value is None:
            return Status.NOTCHECKEDYET
        try:
            return Status(value)
        except ValueError:
            msg = f"Invalid value {value!r} for '{component}' in {self.path}"
            raise StateCorruptError(msg) from None

    def set(self, component: str, status: str | Status) -> None:
        """Persist `status` for `component`."""
        validate_component_name(component)
        status = validate_status(status)
        if not self.path.exists():
            self.init()
        text = self._read_text()
        self._parse(text)
        self._write(_set_line(text, component, status))
        logger.debug("State %s -> %s", component, status)

    def needs_action(self, component: str) -> bool:
        """Whether `component` still has to be checked or installed."""
        return self.get(component) in (Status.NOTCHECKEDYET, Status.NOTINSTALLED)

    def reset_all(self) -> None:
        """Set every component back to notcheckedyet."""
        if not self.path.exists():
            self.init()
            return
        text = self._read_text()
        self._parse(text)
        for component in VALID_COMPONENTS:
            text = _set_line(text, component, Status.NOTCHECKEDYET)
        self._write(text)

    def summary(self) -> list[tuple[str, Status]]:
        """Return (component, status) pairs in whitelist order."""
        data = self._load()
        result = []
        for component in VALID_COMPONENTS:
            value = data.get(component)
            try:
                status = Status(value) if value is not None else Status.NOTCHECKEDYET
            except ValueError:
                msg = f"Invalid value {value!r} for '{component}' in {self.path}"
                raise StateCorruptError(msg) from None
            result.append((component, status))
        return result

    def _read_text(self) -> str:
        try:
            return self.path.read_text()
        except FileNotFoundError:
            return ""

    def _load(self) -> dict:
        return self._parse(self._read_text())

    def _parse(self, text: str) -> dict:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            msg = f"Cannot parse state file {self.path}: {e}"
            raise StateCorruptError(msg) from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            msg = f"State file {self.path} is not a mapping"
            raise StateCorruptError(msg)
        return data

    def _write(self, text: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.",
            dir=self.path.parent,
        )
        try:
            with os.fdopen(fd, "w") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


def _set_line(text: str, component: str, status: Status) -> str:
    """Replace the value on the `component:` line, or append one."""
    pattern = re.compile(
        rf"^(?P<key>{re.escape(component)}\s*:)[ \t]*(?P<value>[^#\n]*?)"
        rf"(?P<comment>[ \t]+#[^\n]*)?$",
        re.MULTILINE,
    )
    replacement = rf"\g<key> {status.value}\g<comment>"
    new_text, count = pattern.subn(lambda m: m.expand(replacement), text, count=1)
    if count:
        return new_text
    if text and not text.endswith("\n"):
        text += "\n"
    return f"{text}{component}: {status.value}\n"
