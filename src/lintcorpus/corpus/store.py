# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""On-disk corpus of fetched archives and unpacked package sources.

Layout under the corpus root::

    archives/<name>-<version>.crate
    packages/<name>-<version>/          unpacked source
    packages/<name>-<version>/.lintcorpus.json
    manifest.json                       entries and skipped packages of the last fetch

The marker file inside each package directory records the identity and the
checksum of the archive it was unpacked from. A directory without a marker
is an interrupted unpack and is never treated as a corpus entry.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
import tarfile
import tempfile
import zlib
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import UnpackError
from ..models import CorpusEntry, FetchResult, PackageId, SkippedPackage

LOGGER = logging.getLogger(__name__)

ARCHIVES_DIR: Final[str] = "archives"
PACKAGES_DIR: Final[str] = "packages"
MANIFEST_FILE: Final[str] = "manifest.json"
MARKER_FILE: Final[str] = ".lintcorpus.json"
ARCHIVE_SUFFIX: Final[str] = ".crate"

_HASH_CHUNK: Final[int] = 1024 * 1024
_MAX_MEMBER_SIZE: Final[int] = 256 * 1024 * 1024


def sha256_file(path: Path) -> str:
    """Return the hex SHA-256 digest of ``path``."""

    hasher = hashlib.sha256()
    with path.open("rb") as handle:
        while chunk := handle.read(_HASH_CHUNK):
            hasher.update(chunk)
    return hasher.hexdigest()


def _atomic_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    )
    tmp_path = Path(handle.name)
    try:
        with handle:
            handle.write(text)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


class CorpusManifest(BaseModel):
    """Summary of the last acquisition written next to the corpus."""

    model_config = ConfigDict(frozen=True)

    created: datetime
    entries: tuple[CorpusEntry, ...] = Field(default_factory=tuple)
    skipped: tuple[SkippedPackage, ...] = Field(default_factory=tuple)


class _Marker(BaseModel):
    model_config = ConfigDict(frozen=True)

    package: PackageId
    checksum: str


class CorpusStore:
    """Owns the archive cache and the unpacked package directories."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.archives_dir = root / ARCHIVES_DIR
        self.packages_dir = root / PACKAGES_DIR
        self.manifest_path = root / MANIFEST_FILE

    def ensure_layout(self) -> None:
        """Create the corpus directories when missing."""

        self.archives_dir.mkdir(parents=True, exist_ok=True)
        self.packages_dir.mkdir(parents=True, exist_ok=True)

    def archive_path(self, package: PackageId) -> Path:
        return self.archives_dir / f"{package.dir_name}{ARCHIVE_SUFFIX}"

    def entry_path(self, package: PackageId) -> Path:
        return self.packages_dir / package.dir_name

    def cached_archive(self, package: PackageId, expected_checksum: str | None) -> tuple[Path, str] | None:
        """Return the cached archive and its checksum when it can be reused.

        An archive is reusable when it exists and, if the registry knows a
        checksum, hashes to it.
        """

        path = self.archive_path(package)
        if not path.is_file():
            return None
        try:
            actual = sha256_file(path)
        except OSError as exc:
            LOGGER.warning("cannot read cached archive %s: %s", path, exc)
            return None
        if expected_checksum is not None and actual != expected_checksum.lower():
            LOGGER.debug("cached archive %s does not match the registry checksum", path)
            return None
        return path, actual

    def unpacked_match(self, package: PackageId, expected_checksum: str | None) -> CorpusEntry | None:
        """Return the unpacked entry when its recorded checksum is the registry one.

        Lets an acquisition skip the download when the archive was removed
        but the package directory is intact.
        """

        if expected_checksum is None:
            return None
        entry = self.entry(package)
        if entry is None or entry.checksum != expected_checksum.lower():
            return None
        return entry

    def discard_archive(self, package: PackageId) -> None:
        """Remove a cached archive so the next acquisition fetches it again."""

        self.archive_path(package).unlink(missing_ok=True)

    def entry(self, package: PackageId) -> CorpusEntry | None:
        """Return the unpacked entry for ``package`` if one is complete."""

        marker = self._read_marker(self.entry_path(package))
        if marker is None or marker.package != package:
            return None
        return CorpusEntry(package=package, path=self.entry_path(package).resolve(), checksum=marker.checksum)

    def materialize(self, result: FetchResult) -> CorpusEntry | None:
        """Unpack a fetched archive into its package directory.

        Args:
            result: Outcome of the fetch.

        Returns:
            CorpusEntry | None: The entry, or ``None`` for a failed fetch.

        Raises:
            UnpackError: If the archive is corrupt or cannot be extracted.
        """

        if not result.ok or result.path is None or result.checksum is None:
            return None
        package = result.package
        existing = self.entry(package)
        if existing is not None and existing.checksum == result.checksum:
            LOGGER.debug("%s already unpacked with matching checksum", package)
            return existing

        self.packages_dir.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f".unpack-{package.dir_name}-", dir=self.packages_dir))
        try:
            self._extract(result.path, staging)
            source = self._content_root(staging)
            marker = _Marker(package=package, checksum=result.checksum)
            (source / MARKER_FILE).write_text(marker.model_dump_json(), encoding="utf-8")
            target = self.entry_path(package)
            if target.exists():
                shutil.rmtree(target)
            os.replace(source, target)
        except OSError as exc:
            raise UnpackError(result.path, str(exc)) from exc
        finally:
            shutil.rmtree(staging, ignore_errors=True)
        return CorpusEntry(package=package, path=target.resolve(), checksum=result.checksum)

    @staticmethod
    def _content_root(staging: Path) -> Path:
        children = list(staging.iterdir())
        if len(children) == 1 and children[0].is_dir():
            return children[0]
        return staging

    def _extract(self, archive: Path, destination: Path) -> None:
        try:
            with tarfile.open(archive, "r:*") as tar:
                members = tar.getmembers()
                if not members:
                    raise UnpackError(archive, "archive is empty")
                for member in members:
                    if not _is_safe_member(member, destination):
                        LOGGER.warning("skipping unsafe archive member %s in %s", member.name, archive.name)
                        continue
                    tar.extract(member, path=destination, set_attrs=False, filter="data")
        except (tarfile.TarError, EOFError, zlib.error) as exc:
            raise UnpackError(archive, str(exc) or type(exc).__name__) from exc

    def entries(self, *, latest_only: bool = False) -> list[CorpusEntry]:
        """Discover complete entries under the corpus root.

        Args:
            latest_only: Keep only the highest version of each package name.

        Returns:
            list[CorpusEntry]: Entries sorted by name then version.
        """

        if not self.packages_dir.is_dir():
            return []
        found: list[CorpusEntry] = []
        for child in sorted(self.packages_dir.iterdir()):
            if not child.is_dir() or child.name.startswith("."):
                continue
            marker = self._read_marker(child)
            if marker is None:
                LOGGER.debug("ignoring %s without a complete unpack marker", child)
                continue
            found.append(CorpusEntry(package=marker.package, path=child.resolve(), checksum=marker.checksum))
        if latest_only:
            return latest_versions(found)
        return sorted(found, key=lambda entry: entry.package.sort_key())

    def write_manifest(self, entries: Iterable[CorpusEntry], skipped: Iterable[SkippedPackage]) -> Path:
        """Record the outcome of an acquisition in ``manifest.json``."""

        manifest = CorpusManifest(
            created=datetime.now(UTC),
            entries=tuple(sorted(entries, key=lambda entry: entry.package.sort_key())),
            skipped=tuple(sorted(skipped, key=lambda item: item.package.sort_key())),
        )
        _atomic_write_text(self.manifest_path, manifest.model_dump_json(indent=2) + "\n")
        return self.manifest_path

    def read_manifest(self) -> CorpusManifest | None:
        """Return the last written manifest, or ``None`` when absent or unreadable."""

        if not self.manifest_path.is_file():
            return None
        try:
            payload: Any = json.loads(self.manifest_path.read_text(encoding="utf-8"))
            return CorpusManifest.model_validate(payload)
        except (OSError, ValueError, ValidationError) as exc:
            LOGGER.warning("ignoring unreadable corpus manifest %s: %s", self.manifest_path, exc)
            return None

    @staticmethod
    def _read_marker(directory: Path) -> _Marker | None:
        path = directory / MARKER_FILE
        if not path.is_file():
            return None
        try:
            return _Marker.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError):
            return None


def latest_versions(entries: Iterable[CorpusEntry]) -> list[CorpusEntry]:
    """Keep the highest version of each package name, sorted by name."""

    newest: dict[str, CorpusEntry] = {}
    for entry in entries:
        current = newest.get(entry.package.name)
        if current is None or entry.package.semver > current.package.semver:
            newest[entry.package.name] = entry
    return sorted(newest.values(), key=lambda entry: entry.package.sort_key())


def _is_safe_member(member: tarfile.TarInfo, destination: Path) -> bool:
    name = member.name
    if name.startswith(("/", "\\")) or ".." in Path(name).parts:
        return False
    try:
        (destination / name).resolve().relative_to(destination.resolve())
    except ValueError:
        return False
    if member.issym() or member.islnk() or member.isdev():
        return False
    return not (member.isfile() and member.size > _MAX_MEMBER_SIZE)


__all__ = [
    "ARCHIVES_DIR",
    "MANIFEST_FILE",
    "MARKER_FILE",
    "PACKAGES_DIR",
    "CorpusManifest",
    "CorpusStore",
    "latest_versions",
    "sha256_file",
]
