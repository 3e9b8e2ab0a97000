# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Builders and fakes shared by the test modules."""

from __future__ import annotations

import csv
import io
import json
import tarfile
from collections.abc import Callable, Iterable, Mapping, Sequence
from pathlib import Path
from threading import Lock
from typing import Any, BinaryIO

from lintcorpus.download import TransportError
from lintcorpus.models import PackageId
from lintcorpus.process_utils import CommandResult

CRATE_HEADER = ("id", "name", "downloads", "description")
VERSION_HEADER = ("id", "crate_id", "num", "yanked", "checksum")
DEPENDENCY_HEADER = ("id", "version_id", "crate_id", "req", "optional", "kind")

# A small registry: three top seeds whose closure adds proc-macro2 and quote.
SAMPLE_CRATES = [
    ("1", "serde", "1000", "A serialization framework"),
    ("2", "serde_derive", "900", "Derive macros"),
    ("3", "syn", "800", "Parser for Rust source code"),
    ("4", "proc-macro2", "700", ""),
    ("5", "quote", "650", ""),
    ("6", "rustc-ap-syntax", "5000", "Automatically published"),
    ("7", "tiny", "10", ""),
    ("8", "yanked-only", "500", ""),
]
SAMPLE_VERSIONS = [
    ("10", "1", "1.0.100", "f", ""),
    ("11", "1", "1.0.101", "f", ""),
    ("12", "1", "2.0.0-alpha.1", "f", ""),
    ("20", "2", "1.0.101", "f", ""),
    ("30", "3", "2.0.10", "f", ""),
    ("31", "3", "1.0.109", "f", ""),
    ("40", "4", "1.0.70", "f", ""),
    ("50", "5", "1.0.33", "f", ""),
    ("60", "6", "700.0.0", "f", ""),
    ("70", "7", "0.1.0", "f", ""),
    ("80", "8", "0.3.0", "t", ""),
]
SAMPLE_DEPENDENCIES = [
    ("100", "11", "2", "=1.0.101", "t", "0"),
    ("101", "20", "3", "^2.0", "f", "0"),
    ("102", "20", "4", "^1", "f", "0"),
    ("103", "20", "5", "^1", "f", "0"),
    ("104", "20", "1", "^1", "f", "2"),
    ("105", "30", "4", "^1.0.60", "f", "0"),
    ("106", "30", "5", "^1.0.30", "f", "0"),
    ("107", "50", "4", "^1.0.66", "f", "0"),
    ("108", "70", "3", "^9", "f", "0"),
]


def _write_table(path: Path, header: Sequence[str], rows: Iterable[Sequence[str]]) -> None:
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(header)
        writer.writerows(rows)


def write_snapshot(
    root: Path,
    *,
    crates: Iterable[Sequence[str]] = SAMPLE_CRATES,
    versions: Iterable[Sequence[str]] = SAMPLE_VERSIONS,
    dependencies: Iterable[Sequence[str]] = SAMPLE_DEPENDENCIES,
) -> Path:
    """Write a registry dump laid out as ``<root>/<stamp>/data/*.csv``."""

    data_dir = root / "2024-01-01-020000" / "data"
    data_dir.mkdir(parents=True)
    _write_table(data_dir / "crates.csv", CRATE_HEADER, crates)
    _write_table(data_dir / "versions.csv", VERSION_HEADER, versions)
    _write_table(data_dir / "dependencies.csv", DEPENDENCY_HEADER, dependencies)
    return root


def crate_bytes(name: str, version: str, files: Mapping[str, str] | None = None) -> bytes:
    """Return a gzipped tarball shaped like a published crate."""

    contents = dict(files or {})
    contents.setdefault(
        "Cargo.toml",
        f'[package]\nname = "{name}"\nversion = "{version}"\nedition = "2021"\n',
    )
    contents.setdefault("src/lib.rs", "pub fn answer() -> u32 { 42 }\n")
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for relative, text in sorted(contents.items()):
            data = text.encode("utf-8")
            info = tarfile.TarInfo(f"{name}-{version}/{relative}")
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def write_crate(path: Path, name: str, version: str, files: Mapping[str, str] | None = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(crate_bytes(name, version, files))
    return path


class FakeTransport:
    """Transport serving scripted responses per URL.

    Each URL maps to a list of responses consumed in order; the last one
    repeats. A response is either the body bytes or an exception to raise.
    """

    def __init__(self, responses: Mapping[str, Sequence[bytes | Exception]] | None = None) -> None:
        self._responses = {url: list(items) for url, items in (responses or {}).items()}
        self._lock = Lock()
        self.calls: list[str] = []

    def add(self, url: str, *responses: bytes | Exception) -> None:
        self._responses[url] = list(responses)

    def fetch(self, url: str, sink: BinaryIO, *, timeout: float) -> None:
        with self._lock:
            self.calls.append(url)
            script = self._responses.get(url)
            if not script:
                raise TransportError(f"HTTP 404 for {url}", transient=False, status=404)
            response = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(response, Exception):
            raise response
        sink.write(response)

    def count(self, url: str) -> int:
        return self.calls.count(url)


def compiler_message(
    code: str | None,
    message: str,
    *,
    level: str = "warning",
    file_name: str = "src/lib.rs",
    line: int = 1,
) -> str:
    """Return one ``compiler-message`` line of cargo's JSON output."""

    payload: dict[str, Any] = {
        "reason": "compiler-message",
        "package_id": "pkg 0.1.0",
        "message": {
            "message": message,
            "code": {"code": code, "explanation": None} if code else None,
            "level": level,
            "spans": [
                {"file_name": file_name, "line_start": line, "column_start": 5, "is_primary": True},
            ],
            "rendered": f"{level}: {message}\n --> {file_name}:{line}:5\n",
        },
    }
    return json.dumps(payload)


def build_finished(success: bool) -> str:
    return json.dumps({"reason": "build-finished", "success": success})


class FakeRunner:
    """Subprocess runner returning canned results and recording calls."""

    def __init__(self, respond: Callable[[list[str]], CommandResult] | None = None) -> None:
        self._respond = respond
        self._lock = Lock()
        self.calls: list[tuple[list[str], dict[str, Any]]] = []

    def __call__(self, args: Sequence[str], **kwargs: Any) -> CommandResult:
        with self._lock:
            self.calls.append((list(args), kwargs))
        if self._respond is None:
            return CommandResult(args=tuple(args), returncode=0, stdout="", stderr="")
        return self._respond(list(args))


def result(
    args: Sequence[str],
    stdout: str = "",
    *,
    returncode: int = 0,
    stderr: str = "",
    timed_out: bool = False,
) -> CommandResult:
    return CommandResult(
        args=tuple(args),
        returncode=returncode,
        stdout=stdout,
        stderr=stderr,
        timed_out=timed_out,
    )


def pkg(name: str, version: str) -> PackageId:
    return PackageId(name=name, version=version)
