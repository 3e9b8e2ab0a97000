# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Rich tables summarising a run on the terminal."""

from __future__ import annotations

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from ..aggregate import AggregateReport

DEFAULT_TOP_LINTS = 15


def _styled(value: str, style: str | None) -> Text:
    return Text(value, style=style) if style else Text(value)


def build_outcome_table(report: AggregateReport, *, use_color: bool = True) -> Table:
    """Return a two-column table of package outcome counters."""

    counters = report.counters
    label_style = "cyan" if use_color else None
    table = Table(show_header=False, box=box.SIMPLE, pad_edge=False, expand=False)
    table.add_column(style=label_style, justify="left", no_wrap=True)
    table.add_column(justify="right", no_wrap=True)
    rows = (
        ("Attempted", counters.attempted, None),
        ("Succeeded", counters.completed, "green"),
        ("Timed out", counters.timed_out, "yellow"),
        ("Build failed", counters.build_failed, "yellow"),
        ("Crashed tool", counters.crashed, "red"),
        ("Skipped (fetch)", counters.skipped_fetch, "yellow"),
        ("Skipped (unpack)", counters.skipped_unpack, "yellow"),
    )
    for label, value, style in rows:
        value_style = style if use_color and value else None
        table.add_row(_styled(label, label_style), _styled(str(value), value_style))
    return table


def build_lint_table(report: AggregateReport, *, limit: int = DEFAULT_TOP_LINTS) -> Table:
    """Return a table of the most frequent lints."""

    table = Table(box=box.SIMPLE_HEAD, pad_edge=False, expand=False)
    table.add_column("Lint", no_wrap=True)
    table.add_column("Count", justify="right")
    table.add_column("Packages", justify="right")
    for item in report.summary[:limit]:
        table.add_row(item.lint, str(item.count), str(len(item.packages)))
    hidden = len(report.summary) - limit
    if hidden > 0:
        table.caption = f"{hidden} more lint(s) in the report"
    return table


def render_summary(report: AggregateReport, console: Console, *, use_color: bool = True) -> None:
    """Print the outcome counters and, when any fired, the lint table."""

    console.print(build_outcome_table(report, use_color=use_color))
    if report.summary:
        console.print(build_lint_table(report))


__all__ = ["build_lint_table", "build_outcome_table", "render_summary"]
