# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Core data models shared across the lintcorpus package."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .semver import InvalidVersion, Version
from .severity import Severity, is_failure


class DependencyKind(str, Enum):
    """Kind of a dependency edge as recorded by the registry."""

    NORMAL = "normal"
    BUILD = "build"
    DEV = "dev"

    @classmethod
    def from_code(cls, code: str) -> DependencyKind:
        """Return the kind for a registry dump code (``0``/``1``/``2``) or name."""

        mapping = {"0": cls.NORMAL, "1": cls.BUILD, "2": cls.DEV}
        key = code.strip().lower()
        if key in mapping:
            return mapping[key]
        return cls(key)

    @property
    def needed_for_lint(self) -> bool:
        """Return ``True`` when the edge must be satisfied to build the package."""

        return self is not DependencyKind.DEV


class PackageId(BaseModel):
    """Immutable identity of one published artifact."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str

    @field_validator("version")
    @classmethod
    def _validate_version(cls, value: str) -> str:
        try:
            Version.parse(value)
        except InvalidVersion as exc:
            raise ValueError(str(exc)) from exc
        return value.strip()

    @property
    def semver(self) -> Version:
        """Return the parsed semantic version."""

        return Version.parse(self.version)

    def sort_key(self) -> tuple[str, Version]:
        """Return a deterministic ordering key (name, then version precedence)."""

        return (self.name, self.semver)

    @property
    def dir_name(self) -> str:
        """Return the ``name-version`` stem used for archives and directories."""

        return f"{self.name}-{self.version}"

    def __str__(self) -> str:
        return self.dir_name


class DependencyEdge(BaseModel):
    """Requirement from ``dependent`` on some version of ``required_name``."""

    model_config = ConfigDict(frozen=True)

    dependent: PackageId
    required_name: str
    requirement: str
    kind: DependencyKind = DependencyKind.NORMAL
    optional: bool = False


class PackageMetadata(BaseModel):
    """Read-only registry metadata for one package version."""

    model_config = ConfigDict(frozen=True)

    package: PackageId
    downloads: int = Field(default=0, ge=0)
    yanked: bool = False
    checksum: str | None = None
    dependencies: tuple[DependencyEdge, ...] = Field(default_factory=tuple)


class DependencyGap(BaseModel):
    """Warning record for a dependency edge no registry version satisfies."""

    model_config = ConfigDict(frozen=True)

    edge: DependencyEdge
    reason: str

    def describe(self) -> str:
        """Return a one-line description suitable for logs and reports."""

        edge = self.edge
        return f"{edge.dependent} -> {edge.required_name} {edge.requirement} ({edge.kind.value}): {self.reason}"


class ResolvedSet(BaseModel):
    """Outcome of a closure computation.

    ``packages`` lists every selected artifact once, in breadth-first
    discovery order. ``gaps`` lists each unresolvable edge once.
    """

    model_config = ConfigDict(frozen=True)

    seeds: tuple[PackageId, ...] = Field(default_factory=tuple)
    packages: tuple[PackageId, ...] = Field(default_factory=tuple)
    gaps: tuple[DependencyGap, ...] = Field(default_factory=tuple)

    def __contains__(self, package: object) -> bool:
        return package in self.packages

    def __len__(self) -> int:
        return len(self.packages)


class FetchStatus(str, Enum):
    """Terminal status of an archive fetch."""

    SUCCESS = "success"
    FAILURE = "failure"


class FetchFailureKind(str, Enum):
    """Classification of fetch failures."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    CANCELLED = "cancelled"


class FetchResult(BaseModel):
    """Outcome of fetching the archive for one package."""

    model_config = ConfigDict(frozen=True)

    package: PackageId
    status: FetchStatus
    path: Path | None = None
    checksum: str | None = None
    reason: str | None = None
    failure_kind: FetchFailureKind | None = None
    attempts: int = 0
    cached: bool = False

    @classmethod
    def success(
        cls,
        package: PackageId,
        path: Path,
        checksum: str,
        *,
        attempts: int,
        cached: bool = False,
    ) -> FetchResult:
        """Build a successful result pointing at the local archive."""

        return cls(
            package=package,
            status=FetchStatus.SUCCESS,
            path=path,
            checksum=checksum,
            attempts=attempts,
            cached=cached,
        )

    @classmethod
    def failure(
        cls,
        package: PackageId,
        reason: str,
        *,
        kind: FetchFailureKind,
        attempts: int,
    ) -> FetchResult:
        """Build a failed result carrying the terminal reason."""

        return cls(
            package=package,
            status=FetchStatus.FAILURE,
            reason=reason,
            failure_kind=kind,
            attempts=attempts,
        )

    @property
    def ok(self) -> bool:
        """Return ``True`` when the archive is available locally."""

        return self.status is FetchStatus.SUCCESS


class CorpusEntry(BaseModel):
    """An unpacked package inside the corpus root."""

    model_config = ConfigDict(frozen=True)

    package: PackageId
    path: Path
    checksum: str


class SkipStage(str, Enum):
    """Stage at which a package dropped out of the corpus."""

    FETCH = "fetch"
    UNPACK = "unpack"


class SkippedPackage(BaseModel):
    """A package that never reached the linter, with its reason."""

    model_config = ConfigDict(frozen=True)

    package: PackageId
    stage: SkipStage
    reason: str
    attempts: int = 0


class LintStatus(str, Enum):
    """Terminal status of one linter invocation."""

    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    BUILD_FAILED = "build_failed"
    CRASHED_TOOL = "crashed_tool"


class SourceSpan(BaseModel):
    """Primary location of a diagnostic."""

    model_config = ConfigDict(frozen=True)

    file: str
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"


class Diagnostic(BaseModel):
    """Normalised diagnostic parsed from the linter's message stream."""

    model_config = ConfigDict(frozen=True)

    lint: str
    severity: Severity
    message: str
    rendered: str | None = None
    span: SourceSpan | None = None

    @property
    def is_failure(self) -> bool:
        """Return ``True`` for error or internal-compiler-error diagnostics."""

        return is_failure(self.severity)


class LintOutcome(BaseModel):
    """Result bundle produced for each linted package."""

    model_config = ConfigDict(frozen=True)

    package: PackageId
    status: LintStatus
    diagnostics: tuple[Diagnostic, ...] = Field(default_factory=tuple)
    duration: float = 0.0
    returncode: int | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        """Return ``True`` when the linter ran to completion."""

        return self.status is LintStatus.COMPLETED


__all__ = [
    "CorpusEntry",
    "DependencyEdge",
    "DependencyGap",
    "DependencyKind",
    "Diagnostic",
    "FetchFailureKind",
    "FetchResult",
    "FetchStatus",
    "LintOutcome",
    "LintStatus",
    "PackageId",
    "PackageMetadata",
    "ResolvedSet",
    "SkipStage",
    "SkippedPackage",
    "SourceSpan",
]
