"""Download, verification and extraction of release artifacts."""

from __future__ import annotations

import contextlib
import hashlib
import logging
import os
import shutil
import tarfile
import tempfile
import time
import zipfile
import zlib
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING

import requests

from .commands import Command
from .errors import ArtifactError, ChecksumMismatchError, TransientNetworkError
from .utils import ensure_path_in_profile, log

if TYPE_CHECKING:
    from .installers import Session

logger = logging.getLogger(__name__)

DOWNLOAD_ATTEMPTS = 3
BACKOFF_SECONDS = 2.0
CHUNK_SIZE = 8192

MB = 1024 * 1024

# Plausible (min, max) sizes per artifact type
SIZE_BOUNDS = {
    "binary": (1 * MB, 50 * MB),
    "gzip": (100 * 1024, 100 * MB),
    "zip": (100 * 1024, 200 * MB),
}

_SIGNATURES = (
    (b"\x1f\x8b", "gzip"),
    (b"PK\x03\x04", "zip"),
    (b"\x7fELF", "elf"),
    (b"\xcf\xfa\xed\xfe", "macho"),
    (b"\xce\xfa\xed\xfe", "macho"),
    (b"\xfe\xed\xfa\xcf", "macho"),
    (b"\xfe\xed\xfa\xce", "macho"),
    (b"\xca\xfe\xba\xbe", "macho"),
)

# Types that satisfy an expected type hint
_TYPE_ALIASES = {
    "binary": {"elf", "macho"},
    "elf": {"elf"},
    "macho": {"macho"},
    "gzip": {"gzip"},
    "zip": {"zip"},
}


def download_file(
    url: str,
    destination: Path,
    *,
    connect_timeout: float = 10,
    read_timeout: float = 60,
    total_timeout: float = 600,
) -> Path:
    """Download a file from a URL to a destination path."""
    log(f"Downloading from {url}", "info", "📥")
    deadline = time.monotonic() + total_timeout
    try:
        with requests.get(
            url,
            stream=True,
            timeout=(connect_timeout, read_timeout),
        ) as response:
            response.raise_for_status()
            with open(destination, "wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if time.monotonic() > deadline:
                        msg = f"Download of {url} exceeded {total_timeout}s"
                        raise TransientNetworkError(msg)
                    f.write(chunk)
    except requests.RequestException as e:
        msg = f"Failed to download {url}: {e}"
        raise TransientNetworkError(msg) from e
    return destination


def file_digest(path: Path, algorithm: str = "sha256") -> str:
    """Return the hex digest of a file."""
    hasher = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def sniff_file_type(path: Path) -> str | None:
    """Guess a file's type from its leading bytes."""
    with open(path, "rb") as f:
        header = f.read(512)
    for signature, file_type in _SIGNATURES:
        if header.startswith(signature):
            return file_type
    if header.lstrip().lower().startswith((b"<!doctype html", b"<html")):
        return "html"
    return None


def verify_artifact(
    path: Path,
    expected_checksum: str | None = None,
    expected_type: str | None = None,
    size_bounds: tuple[int, int] | None = None,
) -> None:
    """Check a downloaded file, raising ArtifactError if it looks wrong."""
    if not path.is_file() or path.stat().st_size == 0:
        msg = f"Downloaded file {path} is missing or empty"
        raise ArtifactError(msg)

    if expected_checksum:
        actual = file_digest(path)
        if actual.lower() != expected_checksum.strip().lower():
            raise ChecksumMismatchError(str(path), expected_checksum, actual)
        return

    if expected_type is None:
        return
    detected = sniff_file_type(path)
    if detected not in _TYPE_ALIASES.get(expected_type, {expected_type}):
        msg = f"Expected a {expected_type} file at {path}, found {detected or 'unknown data'}"
        raise ArtifactError(msg)
    low, high = size_bounds or SIZE_BOUNDS.get(expected_type, (1, 1024 * MB))
    size = path.stat().st_size
    if not low <= size <= high:
        msg = f"Size of {path} ({size} bytes) outside plausible range {low}-{high}"
        raise ArtifactError(msg)


def fetch_and_verify(
    url: str,
    destination: Path,
    expected_checksum: str | None = None,
    expected_type: str | None = None,
    *,
    size_bounds: tuple[int, int] | None = None,
    attempts: int = DOWNLOAD_ATTEMPTS,
    connect_timeout: float = 10,
    read_timeout: float = 60,
    total_timeout: float = 600,
) -> Path:
    """Download `url` to `destination` with retries, then verify it.

    The destination file is removed whenever this raises.
    """
    try:
        for attempt in range(1, attempts + 1):
            try:
                download_file(
                    url,
                    destination,
                    connect_timeout=connect_timeout,
                    read_timeout=read_timeout,
                    total_timeout=total_timeout,
                )
                break
            except TransientNetworkError as e:
                if attempt == attempts:
                    raise
                delay = BACKOFF_SECONDS * attempt
                log(
                    f"Attempt {attempt}/{attempts} failed ({e}), retrying in {delay:.0f}s",
                    "warning",
                    "🔁",
                )
                time.sleep(delay)
        verify_artifact(destination, expected_checksum, expected_type, size_bounds)
    except BaseException:
        destination.unlink(missing_ok=True)
        raise
    log(f"Verified {destination.name}", "success", "✅")
    return destination


@contextlib.contextmanager
def fetched_artifact(
    url: str,
    expected_checksum: str | None = None,
    expected_type: str | None = None,
    *,
    filename: str | None = None,
    **kwargs: object,
) -> Iterator[Path]:
    """Fetch and verify `url` into a temporary directory removed on exit."""
    temp_dir = Path(tempfile.mkdtemp(prefix="dotnvim-"))
    try:
        destination = temp_dir / (filename or url.rstrip("/").split("/")[-1])
        yield fetch_and_verify(
            url,
            destination,
            expected_checksum,
            expected_type,
            **kwargs,
        )
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)


def fetch_checksum(checksums_url: str, asset_name: str, timeout: float = 30) -> str | None:
    """Look up `asset_name` in a sha256sum-style checksum list."""
    try:
        response = requests.get(checksums_url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        log(f"Could not fetch checksums from {checksums_url}: {e}", "warning", "⚠️")
        return None
    for line in response.text.splitlines():
        parts = line.split()
        if len(parts) == 2 and parts[1].lstrip("*") == asset_name:
            return parts[0]
    return None


def extract_archive(archive_path: Path, dest_dir: Path) -> None:
    """Extract an archive to a destination directory."""
    with open(archive_path, "rb") as f:
        header = f.read(4)

    try:
        if header.startswith(b"\x1f\x8b") or archive_path.name.endswith((".tar.gz", ".tgz")):
            with tarfile.open(archive_path, mode="r:gz") as tar:
                tar.extractall(path=dest_dir, filter="data")
        elif header.startswith(b"PK") or archive_path.name.endswith(".zip"):
            with zipfile.ZipFile(archive_path) as zip_file:
                zip_file.extractall(path=dest_dir)
        else:
            msg = f"Unsupported archive format: {archive_path}"
            raise ArtifactError(msg)
    except (tarfile.TarError, zipfile.BadZipFile, zlib.error, EOFError) as e:
        msg = f"Error extracting archive {archive_path}: {e}"
        raise ArtifactError(msg) from e


def find_binary(extracted_dir: Path, binary_name: str) -> Path:
    """Locate `binary_name` inside an extracted archive."""
    exact_matches = [p for p in extracted_dir.glob(f"**/{binary_name}") if p.is_file()]
    if len(exact_matches) == 1:
        return exact_matches[0]

    # Prefer something in a bin/ directory if several files match
    bin_matches = [p for p in exact_matches if p.parent.name == "bin"]
    if len(bin_matches) == 1:
        return bin_matches[0]

    msg = f"Could not find {binary_name} in extracted archive"
    raise ArtifactError(msg)


def install_binary(session: Session, source: Path, binary_name: str) -> Path:
    """Install an executable into the system binary directory.

    If that fails on Linux, the user's binary directory is used instead and
    added to PATH in the shell profile.
    """
    config = session.config
    target = config.system_bin_dir / binary_name
    if os.access(config.system_bin_dir, os.W_OK):
        try:
            _copy_executable(source, target)
            return target
        except OSError as e:
            log(f"Could not write {target}: {e}", "warning", "⚠️")
    else:
        command = Command(
            ("install", "-m", "755", str(source), str(target)),
            sudo=True,
            timeout=config.command_timeout,
        )
        result = session.runner(command)
        if result.ok:
            log(f"Installed {binary_name} to {target}", "success", "✅")
            return target
        log(f"Could not install {binary_name} to {target}", "warning", "⚠️")

    if session.platform.os_family != "linux":
        msg = f"Failed to install {binary_name} to {config.system_bin_dir}"
        raise ArtifactError(msg)

    fallback = config.local_bin_dir / binary_name
    config.local_bin_dir.mkdir(parents=True, exist_ok=True)
    _copy_executable(source, fallback)
    ensure_path_in_profile(config.profile_file, config.local_bin_dir)
    return fallback


def _copy_executable(source: Path, target: Path) -> None:
    """Copy `source` to `target` via a temporary name so `target` is never partial."""
    tmp_target = target.with_name(f".{target.name}.tmp")
    try:
        shutil.copy2(source, tmp_target)
        tmp_target.chmod(tmp_target.stat().st_mode | 0o755)
        os.replace(tmp_target, target)
    except BaseException:
        tmp_target.unlink(missing_ok=True)
        raise
    log(f"Copied binary to {target}", "success", "✅")
