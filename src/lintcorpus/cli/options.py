# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Typer option aliases and the option objects built from them."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Annotated

import typer

CONFIG_OPTION = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Extra TOML configuration file applied last.", dir_okay=False),
]
CORPUS_ROOT_OPTION = Annotated[
    Path | None,
    typer.Option("--corpus-root", help="Directory holding the corpus.", file_okay=False),
]
JOBS_OPTION = Annotated[
    int | None,
    typer.Option("--jobs", "-j", min=1, help="Concurrent downloads or linter runs."),
]
EMOJI_OPTION = Annotated[
    bool,
    typer.Option("--emoji/--no-emoji", help="Toggle emoji in console output."),
]
COLOR_OPTION = Annotated[
    bool,
    typer.Option("--color/--no-color", help="Toggle colour in console output."),
]
VERBOSE_OPTION = Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")]
QUIET_OPTION = Annotated[bool, typer.Option("--quiet", "-q", help="Only show warnings and errors.")]

SNAPSHOT_ARGUMENT = Annotated[
    Path,
    typer.Argument(help="Directory holding the registry dump CSV files.", file_okay=False),
]
LINTER_DIR_ARGUMENT = Annotated[
    Path | None,
    typer.Argument(help="Linter source tree to build and run.", file_okay=False),
]

COUNT_OPTION = Annotated[
    int | None,
    typer.Option("--count", "-n", min=0, help="Number of most downloaded packages to seed the corpus with."),
]
RETRIES_OPTION = Annotated[
    int | None,
    typer.Option("--retries", min=1, help="Attempts per archive before giving up."),
]
NO_CACHE_OPTION = Annotated[
    bool,
    typer.Option("--no-cache", help="Download archives even when a verified copy is cached."),
]

LINT_OPTION = Annotated[
    list[str] | None,
    typer.Option("--lint", "-l", help="Lint to record; repeat for several. Default records all lints."),
]
REPORT_FILE_OPTION = Annotated[
    Path | None,
    typer.Option("--report-file", "-r", help="Text report path. Default is <branch>-<date>.txt.", dir_okay=False),
]
JSON_REPORT_OPTION = Annotated[
    Path | None,
    typer.Option("--json-report", help="Also write the report as JSON.", dir_okay=False),
]
TIMEOUT_OPTION = Annotated[
    float | None,
    typer.Option("--timeout", min=1, help="Seconds before a single linter run is killed."),
]
LINTER_COMMAND_OPTION = Annotated[
    str | None,
    typer.Option("--linter-command", help="Run an installed linter instead of building one."),
]


@dataclass(slots=True)
class OutputOptions:
    """Console behaviour shared by every command.

    ``None`` for ``emoji`` and ``color`` leaves the configured value in place.
    """

    emoji: bool | None
    color: bool | None
    verbose: bool
    quiet: bool


@dataclass(slots=True)
class CommonOptions:
    """Options accepted by every command."""

    config: Path | None
    corpus_root: Path | None
    jobs: int | None
    output: OutputOptions


@dataclass(slots=True)
class FetchOptions:
    """Stage A options."""

    snapshot: Path
    count: int | None = None
    retries: int | None = None
    no_cache: bool = False


@dataclass(slots=True)
class LintOptions:
    """Stage B options."""

    linter_dir: Path | None = None
    lints: list[str] = field(default_factory=list)
    report_file: Path | None = None
    json_report: Path | None = None
    timeout: float | None = None
    linter_command: str | None = None


def build_common_options(
    *,
    config: Path | None,
    corpus_root: Path | None,
    jobs: int | None,
    emoji: bool | None,
    color: bool | None,
    verbose: bool,
    quiet: bool,
) -> CommonOptions:
    """Return the shared options, rejecting contradictory verbosity flags."""

    if verbose and quiet:
        raise typer.BadParameter("--verbose and --quiet cannot be combined")
    return CommonOptions(
        config=config,
        corpus_root=corpus_root,
        jobs=jobs,
        output=OutputOptions(emoji=emoji, color=color, verbose=verbose, quiet=quiet),
    )


def build_lint_options(
    *,
    linter_dir: Path | None,
    lints: list[str] | None,
    report_file: Path | None,
    json_report: Path | None,
    timeout: float | None,
    linter_command: str | None,
) -> LintOptions:
    """Return stage B options with blank lint names dropped."""

    cleaned = [name.strip() for name in lints or () if name.strip()]
    command = linter_command.strip() if linter_command else None
    return LintOptions(
        linter_dir=linter_dir,
        lints=cleaned,
        report_file=report_file,
        json_report=json_report,
        timeout=timeout,
        linter_command=command or None,
    )


__all__ = [
    "CommonOptions",
    "FetchOptions",
    "LintOptions",
    "OutputOptions",
    "build_common_options",
    "build_lint_options",
]
