"""Exceptions raised by dotnvim."""

from __future__ import annotations


class DotnvimError(Exception):
    """Base class for all dotnvim errors."""


class UnsupportedPlatformError(DotnvimError):
    """The host OS is not one of the supported families."""

    def __init__(self, system: str) -> None:
        """Initialize the UnsupportedPlatformError."""
        self.system = system
        super().__init__(f"Unsupported operating system: {system!r}")


class StateError(DotnvimError):
    """Base class for state store errors."""


class InvalidComponentError(StateError):
    """A component name outside the whitelist was used."""

    def __init__(self, component: str) -> None:
        """Initialize the InvalidComponentError."""
        self.component = component
        super().__init__(f"Invalid component name '{component}'")


class InvalidStatusError(StateError):
    """A status value outside the tri-state enum was used."""

    def __init__(self, status: str) -> None:
        """Initialize the InvalidStatusError."""
        self.status = status
        super().__init__(
            f"Invalid state: {status}. Must be: notcheckedyet, installed, notinstalled",
        )


class StateCorruptError(StateError):
    """The state file exists but cannot be parsed."""


class PackageConfigError(DotnvimError):
    """No install strategy is configured for the current platform."""


class ArtifactError(DotnvimError):
    """A downloaded artifact failed verification or installation."""


class TransientNetworkError(ArtifactError):
    """A network operation failed in a way that may succeed on retry."""


class ChecksumMismatchError(ArtifactError):
    """The digest of a downloaded file does not match the expected one."""

    def __init__(self, path: str, expected: str, actual: str) -> None:
        """Initialize the ChecksumMismatchError."""
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Checksum mismatch for {path}: expected {expected}, got {actual}",
        )


class ComponentFailure(DotnvimError):
    """A component could not be installed."""

    def __init__(self, component: str, *, critical: bool = False) -> None:
        """Initialize the ComponentFailure."""
        self.component = component
        self.critical = critical
        super().__init__(f"Component '{component}' failed to install")
