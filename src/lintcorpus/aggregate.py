# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Thread-safe accumulation of lint outcomes into a final report."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable
from threading import Lock

from pydantic import BaseModel, ConfigDict, Field

from .config import DEFAULT_LINT_PREFIX
from .models import Diagnostic, LintOutcome, LintStatus, PackageId, SkippedPackage, SkipStage

LOGGER = logging.getLogger(__name__)


class Evidence(BaseModel):
    """One recorded diagnostic together with the package it came from."""

    model_config = ConfigDict(frozen=True)

    package: PackageId
    diagnostic: Diagnostic


class LintSummary(BaseModel):
    """Count and evidence for a single lint."""

    model_config = ConfigDict(frozen=True)

    lint: str
    count: int
    evidence: tuple[Evidence, ...] = Field(default_factory=tuple)

    @property
    def packages(self) -> tuple[PackageId, ...]:
        """Return the distinct packages the lint fired in, in evidence order."""

        return tuple(dict.fromkeys(item.package for item in self.evidence))


class PackageCount(BaseModel):
    """Number of recorded diagnostics in one package."""

    model_config = ConfigDict(frozen=True)

    package: PackageId
    count: int


class RunCounters(BaseModel):
    """Global counters of a lint run."""

    model_config = ConfigDict(frozen=True)

    attempted: int = 0
    completed: int = 0
    timed_out: int = 0
    build_failed: int = 0
    crashed: int = 0
    skipped_fetch: int = 0
    skipped_unpack: int = 0

    @property
    def failed(self) -> int:
        return self.timed_out + self.build_failed + self.crashed

    @property
    def skipped(self) -> int:
        return self.skipped_fetch + self.skipped_unpack


class AggregateReport(BaseModel):
    """Immutable snapshot of everything a run recorded.

    ``summary`` is ordered by descending count, then lint name. Evidence,
    outcomes and skipped packages are ordered by package name and version,
    so two runs over the same corpus render identically.
    """

    model_config = ConfigDict(frozen=True)

    lints: tuple[str, ...] = Field(default_factory=tuple)
    summary: tuple[LintSummary, ...] = Field(default_factory=tuple)
    outcomes: tuple[LintOutcome, ...] = Field(default_factory=tuple)
    package_counts: tuple[PackageCount, ...] = Field(default_factory=tuple)
    skipped: tuple[SkippedPackage, ...] = Field(default_factory=tuple)
    counters: RunCounters = Field(default_factory=RunCounters)

    def lint(self, name: str) -> LintSummary | None:
        """Return the summary for ``name`` if it fired."""

        return next((item for item in self.summary if item.lint == name), None)

    def outcome(self, package: PackageId) -> LintOutcome | None:
        """Return the recorded outcome for ``package``."""

        return next((item for item in self.outcomes if item.package == package), None)

    @property
    def failures(self) -> tuple[LintOutcome, ...]:
        """Return every outcome that did not complete."""

        return tuple(item for item in self.outcomes if not item.ok)

    @property
    def total_diagnostics(self) -> int:
        return sum(item.count for item in self.summary)


_STATUS_FIELD = {
    LintStatus.COMPLETED: "completed",
    LintStatus.TIMED_OUT: "timed_out",
    LintStatus.BUILD_FAILED: "build_failed",
    LintStatus.CRASHED_TOOL: "crashed",
}
_SKIP_FIELD = {SkipStage.FETCH: "skipped_fetch", SkipStage.UNPACK: "skipped_unpack"}


class DiagnosticAggregator:
    """Merge per-package results into run-wide counts and evidence.

    The aggregator is the only mutable state shared by lint workers; every
    merge happens under one lock. Outcomes are copied in, never shared.
    """

    def __init__(self, lints: Iterable[str] = (), *, lint_prefix: str | None = DEFAULT_LINT_PREFIX) -> None:
        """Initialise the aggregator.

        Args:
            lints: Requested lint names, already normalised. When empty,
                every diagnostic whose code starts with ``lint_prefix`` is
                recorded.
            lint_prefix: Namespace used when no lints were requested.
                ``None`` records every diagnostic that carries a code.
        """

        self._lints = frozenset(lints)
        self._prefix = lint_prefix
        self._lock = Lock()
        self._outcomes: dict[PackageId, LintOutcome] = {}
        self._skipped: dict[PackageId, SkippedPackage] = {}
        self._evidence: dict[str, list[Evidence]] = {}
        self._per_package: Counter[PackageId] = Counter()
        self._counters: Counter[str] = Counter()

    def wants(self, lint: str) -> bool:
        """Return ``True`` when diagnostics of ``lint`` are recorded."""

        if self._lints:
            return lint in self._lints
        if not lint:
            return False
        return self._prefix is None or lint.startswith(self._prefix)

    def record(self, outcome: LintOutcome) -> None:
        """Merge one package's outcome.

        A second outcome for the same package is ignored.
        """

        selected = [diagnostic for diagnostic in outcome.diagnostics if self.wants(diagnostic.lint)]
        with self._lock:
            if outcome.package in self._outcomes:
                LOGGER.warning("ignoring duplicate outcome for %s", outcome.package)
                return
            self._outcomes[outcome.package] = outcome
            self._counters["attempted"] += 1
            self._counters[_STATUS_FIELD[outcome.status]] += 1
            for diagnostic in selected:
                evidence = Evidence(package=outcome.package, diagnostic=diagnostic)
                self._evidence.setdefault(diagnostic.lint, []).append(evidence)
            if selected:
                self._per_package[outcome.package] += len(selected)

    def record_skipped(self, skipped: SkippedPackage) -> None:
        """Record a package that never reached the linter."""

        with self._lock:
            if skipped.package in self._skipped:
                return
            self._skipped[skipped.package] = skipped
            self._counters[_SKIP_FIELD[skipped.stage]] += 1

    def finalize(self) -> AggregateReport:
        """Return an immutable, deterministically ordered snapshot."""

        with self._lock:
            summary = [
                LintSummary(
                    lint=lint,
                    count=len(items),
                    evidence=tuple(_sorted_evidence(items)),
                )
                for lint, items in self._evidence.items()
            ]
            summary.sort(key=lambda item: (-item.count, item.lint))
            outcomes = sorted(self._outcomes.values(), key=lambda item: item.package.sort_key())
            package_counts = [
                PackageCount(package=package, count=count)
                for package, count in sorted(self._per_package.items(), key=lambda pair: pair[0].sort_key())
            ]
            skipped = sorted(self._skipped.values(), key=lambda item: item.package.sort_key())
            counters = RunCounters(**dict(self._counters))
        return AggregateReport(
            lints=tuple(sorted(self._lints)),
            summary=tuple(summary),
            outcomes=tuple(outcomes),
            package_counts=tuple(package_counts),
            skipped=tuple(skipped),
            counters=counters,
        )


def _sorted_evidence(items: list[Evidence]) -> list[Evidence]:
    """Order evidence by package, keeping emission order within a package."""

    indexed = list(enumerate(items))
    indexed.sort(key=lambda pair: (pair[1].package.sort_key(), pair[0]))
    return [item for _, item in indexed]


__all__ = [
    "AggregateReport",
    "DiagnosticAggregator",
    "Evidence",
    "LintSummary",
    "PackageCount",
    "RunCounters",
]
