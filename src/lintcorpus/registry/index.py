# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""In-memory projection of the registry used for selection and resolution."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from ..errors import CorruptSnapshot, UnknownPackage
from ..models import DependencyEdge, DependencyKind, PackageId, PackageMetadata
from ..semver import InvalidVersion, Version, VersionReq
from .snapshot import iter_crates, iter_dependencies, iter_versions, locate_tables

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _RawDependency:
    name: str
    requirement: str
    kind: DependencyKind
    optional: bool


@dataclass(slots=True)
class _VersionRecord:
    version: Version
    raw: str
    yanked: bool
    checksum: str | None
    dependencies: list[_RawDependency] = field(default_factory=list)


@dataclass(slots=True)
class _PackageRecord:
    name: str
    downloads: int
    versions: list[_VersionRecord] = field(default_factory=list)

    def candidates(self) -> list[_VersionRecord]:
        return [record for record in self.versions if not record.yanked]


class RegistryIndex:
    """Read-only index of package metadata keyed by name.

    The index is immutable once built, so concurrent lookups from worker
    threads need no locking.
    """

    def __init__(self, packages: Iterable[_PackageRecord]) -> None:
        self._packages: dict[str, _PackageRecord] = {}
        for record in packages:
            record.versions.sort(key=lambda entry: entry.version, reverse=True)
            self._packages[record.name] = record

    @classmethod
    def load(cls, snapshot: Path) -> RegistryIndex:
        """Build an index from a registry dump directory.

        Args:
            snapshot: Dump directory (see :func:`locate_tables`).

        Returns:
            RegistryIndex: Populated index.

        Raises:
            CorruptSnapshot: If tables or required fields are missing or
                malformed.
        """

        tables = locate_tables(snapshot)
        records: dict[str, _PackageRecord] = {}
        crate_names: dict[str, str] = {}
        for crate in iter_crates(tables):
            crate_names[crate.crate_id] = crate.name
            records[crate.name] = _PackageRecord(name=crate.name, downloads=crate.downloads)
        if not records:
            raise CorruptSnapshot("no packages found", path=tables.crates)

        by_version_id: dict[str, _VersionRecord] = {}
        invalid_versions = 0
        for row in iter_versions(tables):
            name = crate_names.get(row.crate_id)
            if name is None:
                raise CorruptSnapshot(f"version {row.version_id} references unknown crate {row.crate_id}")
            try:
                version = Version.parse(row.num)
            except InvalidVersion:
                invalid_versions += 1
                continue
            entry = _VersionRecord(version=version, raw=row.num.strip(), yanked=row.yanked, checksum=row.checksum)
            records[name].versions.append(entry)
            if not row.yanked:
                by_version_id[row.version_id] = entry
        if invalid_versions:
            LOGGER.warning("skipped %d version rows with invalid version numbers", invalid_versions)

        dangling = 0
        for dep in iter_dependencies(tables):
            owner = by_version_id.get(dep.version_id)
            if owner is None:
                continue
            target = crate_names.get(dep.crate_id)
            if target is None:
                dangling += 1
                continue
            owner.dependencies.append(
                _RawDependency(name=target, requirement=dep.req, kind=dep.kind, optional=dep.optional),
            )
        if dangling:
            LOGGER.warning("skipped %d dependency rows referencing unknown crates", dangling)
        LOGGER.debug("indexed %d packages from %s", len(records), snapshot)
        return cls(records.values())

    @classmethod
    def from_metadata(cls, entries: Iterable[PackageMetadata]) -> RegistryIndex:
        """Build an index from already-projected metadata.

        The download count of a package is the largest one seen among its
        versions.
        """

        records: dict[str, _PackageRecord] = {}
        for meta in entries:
            name = meta.package.name
            record = records.setdefault(name, _PackageRecord(name=name, downloads=meta.downloads))
            record.downloads = max(record.downloads, meta.downloads)
            record.versions.append(
                _VersionRecord(
                    version=meta.package.semver,
                    raw=meta.package.version,
                    yanked=meta.yanked,
                    checksum=meta.checksum,
                    dependencies=[
                        _RawDependency(
                            name=edge.required_name,
                            requirement=edge.requirement,
                            kind=edge.kind,
                            optional=edge.optional,
                        )
                        for edge in meta.dependencies
                    ],
                ),
            )
        return cls(records.values())

    def __len__(self) -> int:
        return len(self._packages)

    def __contains__(self, name: object) -> bool:
        return name in self._packages

    def names(self) -> list[str]:
        """Return every indexed package name in sorted order."""

        return sorted(self._packages)

    def _record(self, name: str) -> _PackageRecord:
        record = self._packages.get(name)
        if record is None:
            raise UnknownPackage(name)
        return record

    def lookup(self, name: str) -> tuple[PackageMetadata, ...]:
        """Return every version of ``name``, newest first.

        Raises:
            UnknownPackage: If ``name`` is not in the registry.
        """

        record = self._record(name)
        return tuple(self._materialize(record, entry) for entry in record.versions)

    def metadata(self, package: PackageId) -> PackageMetadata:
        """Return the metadata for one exact package version.

        Raises:
            UnknownPackage: If the name or version is not in the registry.
        """

        record = self._record(package.name)
        wanted = package.semver
        for entry in record.versions:
            if entry.version == wanted:
                return self._materialize(record, entry)
        raise UnknownPackage(str(package))

    def checksum(self, package: PackageId) -> str | None:
        """Return the registry checksum for ``package`` when one is known."""

        try:
            return self.metadata(package).checksum
        except UnknownPackage:
            return None

    def seed_version(self, name: str) -> PackageId | None:
        """Return the newest stable non-yanked version, else the newest pre-release."""

        candidates = self._record(name).candidates()
        for entry in candidates:
            if not entry.version.is_prerelease:
                return PackageId(name=name, version=entry.raw)
        if candidates:
            return PackageId(name=name, version=candidates[0].raw)
        return None

    def highest_matching(self, name: str, requirement: VersionReq) -> PackageId | None:
        """Return the newest non-yanked version of ``name`` satisfying ``requirement``.

        Raises:
            UnknownPackage: If ``name`` is not in the registry.
        """

        for entry in self._record(name).candidates():
            if requirement.matches(entry.version):
                return PackageId(name=name, version=entry.raw)
        return None

    def top_n(self, n: int, *, exclude_prefixes: Sequence[str] = ()) -> list[PackageId]:
        """Select the ``n`` most downloaded packages.

        Packages without a usable version or whose name starts with one of
        ``exclude_prefixes`` are not eligible. Ties on download count are
        broken by name so the selection is deterministic.

        Args:
            n: Number of packages to select.
            exclude_prefixes: Name prefixes that are never selected.

        Returns:
            list[PackageId]: Seed versions ordered by descending downloads.
        """

        if n <= 0:
            return []
        prefixes = tuple(exclude_prefixes)
        ranked = sorted(
            (
                record
                for record in self._packages.values()
                if record.candidates() and not (prefixes and record.name.startswith(prefixes))
            ),
            key=lambda record: (-record.downloads, record.name),
        )
        selected: list[PackageId] = []
        for record in ranked[:n]:
            seed = self.seed_version(record.name)
            if seed is not None:
                selected.append(seed)
        return selected

    @staticmethod
    def _materialize(record: _PackageRecord, entry: _VersionRecord) -> PackageMetadata:
        package = PackageId(name=record.name, version=entry.raw)
        edges = tuple(
            DependencyEdge(
                dependent=package,
                required_name=dep.name,
                requirement=dep.requirement,
                kind=dep.kind,
                optional=dep.optional,
            )
            for dep in entry.dependencies
        )
        return PackageMetadata(
            package=package,
            downloads=record.downloads,
            yanked=entry.yanked,
            checksum=entry.checksum,
            dependencies=edges,
        )


__all__ = ["RegistryIndex"]
