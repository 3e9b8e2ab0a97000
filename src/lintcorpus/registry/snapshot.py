# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Readers for the crates.io database dump tables.

Only the columns needed for selection, resolution and download are read.
The dump ships one CSV per table under a ``data/`` directory; rows are
streamed so the loader never holds a whole table as raw text.
"""

from __future__ import annotations

import csv
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from ..errors import CorruptSnapshot
from ..models import DependencyKind

CRATES_TABLE: Final[str] = "crates.csv"
VERSIONS_TABLE: Final[str] = "versions.csv"
DEPENDENCIES_TABLE: Final[str] = "dependencies.csv"

CRATE_COLUMNS: Final[tuple[str, ...]] = ("id", "name", "downloads")
VERSION_COLUMNS: Final[tuple[str, ...]] = ("id", "crate_id", "num", "yanked")
DEPENDENCY_COLUMNS: Final[tuple[str, ...]] = ("version_id", "crate_id", "req", "kind")

# crates.csv carries whole READMEs in some columns.
_FIELD_SIZE_LIMIT: Final[int] = 2**31 - 1
_TRUE_VALUES: Final[frozenset[str]] = frozenset({"t", "true", "1", "yes"})


@dataclass(frozen=True, slots=True)
class SnapshotTables:
    """Paths of the dump tables the index is built from."""

    crates: Path
    versions: Path
    dependencies: Path


@dataclass(frozen=True, slots=True)
class CrateRow:
    crate_id: str
    name: str
    downloads: int


@dataclass(frozen=True, slots=True)
class VersionRow:
    version_id: str
    crate_id: str
    num: str
    yanked: bool
    checksum: str | None


@dataclass(frozen=True, slots=True)
class DependencyRow:
    version_id: str
    crate_id: str
    req: str
    kind: DependencyKind
    optional: bool


def locate_tables(snapshot: Path) -> SnapshotTables:
    """Return the table paths for a dump rooted at ``snapshot``.

    ``snapshot`` may be the ``data/`` directory itself, the dump root that
    contains it, or a directory holding a single timestamped dump root.

    Args:
        snapshot: Path supplied by the caller.

    Returns:
        SnapshotTables: Resolved table paths.

    Raises:
        CorruptSnapshot: If the directory or any required table is missing.
    """

    if not snapshot.is_dir():
        raise CorruptSnapshot("snapshot directory does not exist", path=snapshot)
    data_dir = _find_data_dir(snapshot)
    tables = SnapshotTables(
        crates=data_dir / CRATES_TABLE,
        versions=data_dir / VERSIONS_TABLE,
        dependencies=data_dir / DEPENDENCIES_TABLE,
    )
    for table in (tables.crates, tables.versions, tables.dependencies):
        if not table.is_file():
            raise CorruptSnapshot("missing table", path=table)
    return tables


def _find_data_dir(snapshot: Path) -> Path:
    if (snapshot / CRATES_TABLE).is_file():
        return snapshot
    if (snapshot / "data").is_dir():
        return snapshot / "data"
    nested = sorted(child / "data" for child in snapshot.iterdir() if (child / "data").is_dir())
    if len(nested) == 1:
        return nested[0]
    return snapshot


@contextmanager
def _open_table(path: Path, required: Sequence[str]) -> Iterator[Iterator[Mapping[str, str]]]:
    """Open ``path`` as a CSV table, validating that ``required`` columns exist."""

    csv.field_size_limit(_FIELD_SIZE_LIMIT)
    try:
        handle = path.open(encoding="utf-8", newline="")
    except OSError as exc:
        raise CorruptSnapshot(f"cannot open table: {exc}", path=path) from exc
    with handle:
        reader = csv.DictReader(handle)
        header = reader.fieldnames or []
        missing = [column for column in required if column not in header]
        if missing:
            raise CorruptSnapshot(f"missing column(s) {', '.join(missing)}", path=path)
        yield reader


def _parse_int(value: str | None, *, path: Path, row: int, column: str) -> int:
    try:
        return int(value or "")
    except ValueError as exc:
        raise CorruptSnapshot(f"row {row}: column '{column}' is not an integer: {value!r}", path=path) from exc


def _require(value: str | None, *, path: Path, row: int, column: str) -> str:
    if value is None or not value.strip():
        raise CorruptSnapshot(f"row {row}: column '{column}' is empty", path=path)
    return value.strip()


def _parse_flag(value: str | None) -> bool:
    return (value or "").strip().lower() in _TRUE_VALUES


def iter_crates(tables: SnapshotTables) -> Iterator[CrateRow]:
    """Yield one row per crate from ``crates.csv``."""

    path = tables.crates
    with _open_table(path, CRATE_COLUMNS) as reader:
        for row_number, row in enumerate(reader, start=2):
            yield CrateRow(
                crate_id=_require(row.get("id"), path=path, row=row_number, column="id"),
                name=_require(row.get("name"), path=path, row=row_number, column="name"),
                downloads=_parse_int(row.get("downloads"), path=path, row=row_number, column="downloads"),
            )


def iter_versions(tables: SnapshotTables) -> Iterator[VersionRow]:
    """Yield one row per published version from ``versions.csv``."""

    path = tables.versions
    with _open_table(path, VERSION_COLUMNS) as reader:
        for row_number, row in enumerate(reader, start=2):
            checksum = (row.get("checksum") or "").strip() or None
            yield VersionRow(
                version_id=_require(row.get("id"), path=path, row=row_number, column="id"),
                crate_id=_require(row.get("crate_id"), path=path, row=row_number, column="crate_id"),
                num=_require(row.get("num"), path=path, row=row_number, column="num"),
                yanked=_parse_flag(row.get("yanked")),
                checksum=checksum,
            )


def iter_dependencies(tables: SnapshotTables) -> Iterator[DependencyRow]:
    """Yield one row per dependency declaration from ``dependencies.csv``."""

    path = tables.dependencies
    with _open_table(path, DEPENDENCY_COLUMNS) as reader:
        for row_number, row in enumerate(reader, start=2):
            raw_kind = _require(row.get("kind"), path=path, row=row_number, column="kind")
            try:
                kind = DependencyKind.from_code(raw_kind)
            except ValueError as exc:
                raise CorruptSnapshot(f"row {row_number}: unknown dependency kind {raw_kind!r}", path=path) from exc
            yield DependencyRow(
                version_id=_require(row.get("version_id"), path=path, row=row_number, column="version_id"),
                crate_id=_require(row.get("crate_id"), path=path, row=row_number, column="crate_id"),
                req=(row.get("req") or "").strip(),
                kind=kind,
                optional=_parse_flag(row.get("optional")),
            )


__all__ = [
    "CRATES_TABLE",
    "DEPENDENCIES_TABLE",
    "VERSIONS_TABLE",
    "CrateRow",
    "DependencyRow",
    "SnapshotTables",
    "VersionRow",
    "iter_crates",
    "iter_dependencies",
    "iter_versions",
    "locate_tables",
]
