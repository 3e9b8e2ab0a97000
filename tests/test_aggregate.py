# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for merging lint outcomes into the aggregate report."""

from __future__ import annotations

import random
from concurrent.futures import ThreadPoolExecutor

from support import pkg

from lintcorpus.aggregate import DiagnosticAggregator
from lintcorpus.models import Diagnostic, LintOutcome, LintStatus, PackageId, SkippedPackage, SkipStage
from lintcorpus.severity import Severity


def _diag(lint: str, message: str = "message", severity: Severity = Severity.WARNING) -> Diagnostic:
    return Diagnostic(lint=lint, severity=severity, message=message)


def _outcome(package: PackageId, *diagnostics: Diagnostic, status: LintStatus = LintStatus.COMPLETED) -> LintOutcome:
    return LintOutcome(package=package, status=status, diagnostics=diagnostics, duration=1.0)


OUTCOMES = [
    _outcome(pkg("serde", "1.0.101"), _diag("clippy::needless_return", "first"), _diag("clippy::needless_return", "second")),
    _outcome(pkg("syn", "2.0.10"), _diag("clippy::redundant_clone"), _diag("unused_variables")),
    _outcome(pkg("anyhow", "1.0.86"), _diag("clippy::needless_return", "third")),
    _outcome(pkg("quote", "1.0.33"), status=LintStatus.TIMED_OUT),
    _outcome(pkg("libc", "0.2.155"), _diag("E0433", severity=Severity.ERROR), status=LintStatus.BUILD_FAILED),
]


def _aggregate(outcomes: list[LintOutcome], lints: tuple[str, ...] = ()) -> DiagnosticAggregator:
    aggregator = DiagnosticAggregator(lints)
    for outcome in outcomes:
        aggregator.record(outcome)
    return aggregator


def test_counts_cover_every_recorded_diagnostic() -> None:
    report = _aggregate(OUTCOMES).finalize()

    assert [(item.lint, item.count) for item in report.summary] == [
        ("clippy::needless_return", 3),
        ("clippy::redundant_clone", 1),
    ]
    assert report.total_diagnostics == sum(len(item.evidence) for item in report.summary)
    assert report.lint("unused_variables") is None


def test_evidence_is_ordered_by_package_then_emission() -> None:
    report = _aggregate(OUTCOMES).finalize()

    summary = report.lint("clippy::needless_return")
    assert summary is not None
    assert [(str(item.package), item.diagnostic.message) for item in summary.evidence] == [
        ("anyhow-1.0.86", "third"),
        ("serde-1.0.101", "first"),
        ("serde-1.0.101", "second"),
    ]
    assert summary.packages == (pkg("anyhow", "1.0.86"), pkg("serde", "1.0.101"))


def test_report_does_not_depend_on_completion_order() -> None:
    expected = _aggregate(OUTCOMES).finalize()

    shuffled = list(OUTCOMES)
    for seed in range(5):
        random.Random(seed).shuffle(shuffled)
        assert _aggregate(shuffled).finalize() == expected


def test_concurrent_recording_matches_sequential() -> None:
    outcomes = [
        _outcome(pkg(f"crate{index:03d}", "1.0.0"), *[_diag("clippy::lint_a")] * (index % 4))
        for index in range(200)
    ]
    aggregator = DiagnosticAggregator()

    with ThreadPoolExecutor(max_workers=8) as executor:
        list(executor.map(aggregator.record, outcomes))

    assert aggregator.finalize() == _aggregate(outcomes).finalize()


def test_selection_restricts_recorded_lints() -> None:
    report = _aggregate(OUTCOMES, lints=("clippy::redundant_clone",)).finalize()

    assert [item.lint for item in report.summary] == ["clippy::redundant_clone"]
    assert report.lints == ("clippy::redundant_clone",)


def test_without_prefix_every_coded_diagnostic_is_recorded() -> None:
    aggregator = DiagnosticAggregator(lint_prefix=None)
    aggregator.record(OUTCOMES[1])
    aggregator.record(_outcome(pkg("x", "1.0.0"), _diag("")))

    assert {item.lint for item in aggregator.finalize().summary} == {"clippy::redundant_clone", "unused_variables"}


def test_counters_and_failures() -> None:
    aggregator = _aggregate(OUTCOMES)
    aggregator.record_skipped(
        SkippedPackage(package=pkg("gone", "0.1.0"), stage=SkipStage.FETCH, reason="HTTP 404", attempts=1),
    )
    aggregator.record_skipped(
        SkippedPackage(package=pkg("bad", "0.1.0"), stage=SkipStage.UNPACK, reason="not a gzip file"),
    )

    report = aggregator.finalize()

    counters = report.counters
    assert counters.attempted == 5
    assert counters.completed == 3
    assert counters.timed_out == 1
    assert counters.build_failed == 1
    assert counters.failed == 2
    assert counters.skipped == 2
    assert [str(item.package) for item in report.failures] == ["libc-0.2.155", "quote-1.0.33"]
    assert [str(item.package) for item in report.skipped] == ["bad-0.1.0", "gone-0.1.0"]


def test_per_package_counts_only_include_recorded_lints() -> None:
    report = _aggregate(OUTCOMES).finalize()

    assert [(str(item.package), item.count) for item in report.package_counts] == [
        ("anyhow-1.0.86", 1),
        ("serde-1.0.101", 2),
        ("syn-2.0.10", 1),
    ]


def test_duplicate_outcomes_are_ignored() -> None:
    aggregator = _aggregate(OUTCOMES)
    aggregator.record(OUTCOMES[0])

    report = aggregator.finalize()

    assert report.counters.attempted == len(OUTCOMES)
    summary = report.lint("clippy::needless_return")
    assert summary is not None
    assert summary.count == 3
