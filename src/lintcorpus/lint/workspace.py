# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Scratch workspaces and cargo target directories for lint runs."""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager, suppress
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Final

import toml

from ..corpus.store import MARKER_FILE

LOGGER = logging.getLogger(__name__)

MANIFEST_NAME: Final[str] = "Cargo.toml"
DISCARDED_FILES: Final[tuple[str, ...]] = ("Cargo.lock", ".cargo/config", ".cargo/config.toml")
DEPENDENCY_TABLES: Final[tuple[str, ...]] = ("dependencies", "build-dependencies", "dev-dependencies")
STRIPPED_KEYS: Final[tuple[str, ...]] = ("workspace", "bench")


def _strip_path_dependencies(table: Any) -> bool:
    """Turn ``path`` dependencies into registry ones, returning ``True`` on change."""

    if not isinstance(table, MutableMapping):
        return False
    changed = False
    for dependency in table.values():
        if isinstance(dependency, MutableMapping) and "path" in dependency:
            del dependency["path"]
            dependency.setdefault("version", "*")
            changed = True
    return changed


def prepare_manifest(path: Path) -> bool:
    """Make a published manifest buildable outside its original workspace.

    ``[workspace]`` and ``[[bench]]`` are removed and path dependencies in
    every dependency table (``target.*`` ones included) point at the
    registry instead.

    Returns:
        bool: ``True`` when the manifest was rewritten.
    """

    try:
        document = toml.load(path)
    except (OSError, toml.TomlDecodeError) as exc:
        LOGGER.debug("leaving %s untouched: %s", path, exc)
        return False
    changed = False
    for key in STRIPPED_KEYS:
        if document.pop(key, None) is not None:
            changed = True
    for name in DEPENDENCY_TABLES:
        changed |= _strip_path_dependencies(document.get(name))
    targets = document.get("target")
    if isinstance(targets, MutableMapping):
        for platform in targets.values():
            if isinstance(platform, MutableMapping):
                for name in DEPENDENCY_TABLES:
                    changed |= _strip_path_dependencies(platform.get(name))
    if changed:
        path.write_text(toml.dumps(document), encoding="utf-8")
    return changed


def prepare_workspace(source: Path, destination: Path) -> Path:
    """Copy a corpus entry to ``destination`` and prepare it for linting.

    The corpus copy is never modified.

    Returns:
        Path: Manifest of the prepared copy.

    Raises:
        FileNotFoundError: If the entry has no ``Cargo.toml``.
    """

    shutil.copytree(source, destination, symlinks=True, ignore=shutil.ignore_patterns(MARKER_FILE))
    for relative in DISCARDED_FILES:
        (destination / relative).unlink(missing_ok=True)
    manifest = destination / MANIFEST_NAME
    if not manifest.is_file():
        raise FileNotFoundError(f"no {MANIFEST_NAME} in {source}")
    prepare_manifest(manifest)
    return manifest


@dataclass(slots=True)
class _TargetSlot:
    path: Path
    uses: int = 0


class TargetDirPool:
    """Hand out cargo target directories, one per concurrent run.

    Each directory is wiped after ``reset_interval`` uses so build artefacts
    do not grow without bound. ``0`` disables recycling. Only the
    ``worker-N`` directories the pool creates are ever removed, so ``base``
    may be shared with other cargo builds.
    """

    def __init__(self, base: Path, *, reset_interval: int = 256) -> None:
        self._base = base
        self._owns_base = not base.exists()
        self._reset_interval = reset_interval
        self._lock = Lock()
        self._free: list[_TargetSlot] = []
        self._slots: list[_TargetSlot] = []

    @contextmanager
    def acquire(self) -> Iterator[Path]:
        """Yield a target directory owned by the caller until the block exits."""

        with self._lock:
            if self._free:
                slot = self._free.pop()
            else:
                slot = _TargetSlot(self._base / f"worker-{len(self._slots)}")
                self._slots.append(slot)
        try:
            if self._reset_interval and slot.uses and slot.uses % self._reset_interval == 0:
                LOGGER.debug("recycling target directory %s after %d runs", slot.path, slot.uses)
                shutil.rmtree(slot.path, ignore_errors=True)
            slot.uses += 1
            slot.path.mkdir(parents=True, exist_ok=True)
            yield slot.path
        finally:
            with self._lock:
                self._free.append(slot)

    def cleanup(self) -> None:
        """Remove every target directory the pool created.

        ``base`` itself is removed only when the pool created it and it is
        empty afterwards.
        """

        with self._lock:
            slots = list(self._slots)
            self._slots.clear()
            self._free.clear()
        for slot in slots:
            shutil.rmtree(slot.path, ignore_errors=True)
        if self._owns_base:
            with suppress(OSError):
                self._base.rmdir()


__all__ = ["TargetDirPool", "prepare_manifest", "prepare_workspace"]
