# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Plain-text rendering of the final aggregate report."""

from __future__ import annotations

import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

from pydantic import BaseModel, ConfigDict, Field

from ..aggregate import AggregateReport, LintSummary
from ..errors import ReportWriteError
from ..models import LintOutcome, PackageId, SkippedPackage

_DETAIL_LINES: Final[int] = 20
_INDENT: Final[str] = "    "


class RunMetadata(BaseModel):
    """Facts about a run that are not part of the aggregate itself."""

    model_config = ConfigDict(frozen=True)

    linter: str
    lints: tuple[str, ...] = Field(default_factory=tuple)
    lint_prefix: str | None = None
    started: datetime = Field(default_factory=lambda: datetime.now(UTC))
    finished: datetime | None = None
    corpus_root: Path | None = None
    not_linted: tuple[PackageId, ...] = Field(default_factory=tuple)

    def lint_set_label(self) -> str:
        if self.lints:
            return ", ".join(self.lints)
        if self.lint_prefix:
            return f"all {self.lint_prefix} lints"
        return "all lints"


def _heading(title: str) -> list[str]:
    return ["", title, "-" * len(title)]


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def _indented(text: str, *, limit: int | None = None) -> list[str]:
    lines = text.rstrip().splitlines()
    if limit is not None and len(lines) > limit:
        hidden = len(lines) - limit
        lines = [*lines[:limit], f"... ({hidden} more lines)"]
    return [f"{_INDENT}{line}" if line else "" for line in lines]


def _sample_lines(item: LintSummary, max_samples: int) -> list[str]:
    shown = item.evidence if max_samples == 0 else item.evidence[:max_samples]
    header = f"## {item.lint} ({_plural(item.count, 'occurrence')}"
    header += ")" if len(shown) == item.count else f", showing {len(shown)})"
    lines = ["", header]
    for evidence in shown:
        diagnostic = evidence.diagnostic
        location = f" {diagnostic.span}" if diagnostic.span is not None else ""
        lines.append(f"[{evidence.package}]{location}")
        lines.extend(_indented(diagnostic.rendered or diagnostic.message))
    return lines


def _failure_lines(outcome: LintOutcome) -> list[str]:
    lines = [f"{outcome.package}: {outcome.status.value} ({outcome.duration:.1f}s)"]
    if outcome.detail:
        lines.extend(_indented(outcome.detail, limit=_DETAIL_LINES))
    return lines


def _skipped_line(skipped: SkippedPackage) -> str:
    attempts = f" after {_plural(skipped.attempts, 'attempt')}" if skipped.attempts else ""
    return f"{skipped.package}: {skipped.stage.value} failed{attempts}: {skipped.reason}"


def render_text_report(report: AggregateReport, metadata: RunMetadata, *, max_samples: int = 10) -> str:
    """Render ``report`` as the text artifact.

    Args:
        report: Finalised aggregate.
        metadata: Linter identity, lint set and timestamps.
        max_samples: Messages shown per lint, ``0`` for all.

    Returns:
        str: Report text ending in a newline.
    """

    counters = report.counters
    lines = ["Lint corpus report", "=================="]
    lines.append(f"Linter:    {metadata.linter}")
    lines.append(f"Lints:     {metadata.lint_set_label()}")
    lines.append(f"Started:   {metadata.started.isoformat(timespec='seconds')}")
    if metadata.finished is not None:
        lines.append(f"Finished:  {metadata.finished.isoformat(timespec='seconds')}")
    if metadata.corpus_root is not None:
        lines.append(f"Corpus:    {metadata.corpus_root}")

    lines.extend(_heading("Per-lint counts"))
    if report.summary:
        lines.extend(f"{item.lint}: {_plural(item.count, 'occurrence')}" for item in report.summary)
    else:
        lines.append("No diagnostics recorded.")

    if report.summary:
        lines.extend(_heading("Sampled messages"))
        for item in report.summary:
            lines.extend(_sample_lines(item, max_samples))

    if report.package_counts:
        lines.extend(_heading("Per-package counts"))
        lines.extend(f"{entry.package}: {_plural(entry.count, 'warning')}" for entry in report.package_counts)

    lines.extend(_heading("Package outcomes"))
    lines.append(f"Attempted:                 {counters.attempted}")
    lines.append(f"Succeeded:                 {counters.completed}")
    lines.append(f"Timed out:                 {counters.timed_out}")
    lines.append(f"Build failed:              {counters.build_failed}")
    lines.append(f"Crashed tool:              {counters.crashed}")
    lines.append(f"Skipped (fetch failure):   {counters.skipped_fetch}")
    lines.append(f"Skipped (unpack failure):  {counters.skipped_unpack}")
    if metadata.not_linted:
        lines.append(f"Not linted (stopped):      {len(metadata.not_linted)}")

    if report.failures:
        lines.extend(_heading("Failed packages"))
        for outcome in report.failures:
            lines.extend(_failure_lines(outcome))

    if report.skipped or metadata.not_linted:
        lines.extend(_heading("Skipped packages"))
        lines.extend(_skipped_line(item) for item in report.skipped)
        lines.extend(f"{package}: stopped before linting" for package in metadata.not_linted)

    lines.extend(_heading("Totals"))
    lines.append(f"Diagnostics recorded: {report.total_diagnostics}")
    lines.append(f"Lints fired:          {len(report.summary)}")
    skipped = counters.skipped + len(metadata.not_linted)
    lines.append(f"Packages considered:  {counters.attempted + skipped}")
    lines.append(f"Packages failed:      {counters.failed}")
    lines.append(f"Packages skipped:     {skipped}")
    return "\n".join(lines) + "\n"


def write_report_text(path: Path, text: str) -> Path:
    """Atomically write ``text`` to ``path``.

    Raises:
        ReportWriteError: When the file cannot be written. Nothing already
            in memory is affected.
    """

    try:
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
    except OSError as exc:
        raise ReportWriteError(path, str(exc)) from exc
    return path


class ReportWriter:
    """Render and persist the text report."""

    def __init__(self, path: Path, *, max_samples: int = 10) -> None:
        self.path = path
        self._max_samples = max_samples

    def render(self, report: AggregateReport, metadata: RunMetadata) -> str:
        return render_text_report(report, metadata, max_samples=self._max_samples)

    def write(self, report: AggregateReport, metadata: RunMetadata) -> Path:
        """Write the report and return its path.

        Raises:
            ReportWriteError: If the file cannot be written.
        """

        return write_report_text(self.path, self.render(report, metadata))


__all__ = ["ReportWriter", "RunMetadata", "render_text_report", "write_report_text"]
