# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Typer application exposing the ``fetch``, ``lint`` and ``run`` commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer
from click.core import ParameterSource

from ..config import Config, ConfigError
from ..errors import LintCorpusError
from .options import (
    COLOR_OPTION,
    CONFIG_OPTION,
    CORPUS_ROOT_OPTION,
    COUNT_OPTION,
    EMOJI_OPTION,
    JOBS_OPTION,
    JSON_REPORT_OPTION,
    LINT_OPTION,
    LINTER_COMMAND_OPTION,
    LINTER_DIR_ARGUMENT,
    NO_CACHE_OPTION,
    QUIET_OPTION,
    REPORT_FILE_OPTION,
    RETRIES_OPTION,
    SNAPSHOT_ARGUMENT,
    TIMEOUT_OPTION,
    VERBOSE_OPTION,
    CommonOptions,
    FetchOptions,
    build_common_options,
    build_lint_options,
)
from .shared import CLIError, CLILogger, build_cli_logger, interrupt_guard
from .stages import (
    apply_fetch_options,
    apply_lint_options,
    cli_logger_for,
    exit_code_for,
    load_cli_config,
    run_fetch,
    run_lint,
    select_linter,
)

app = typer.Typer(
    name="lintcorpus",
    help="Run a linter over a corpus of registry packages and report what it finds.",
    no_args_is_help=True,
    add_completion=False,
    pretty_exceptions_enable=False,
)


def _explicit(ctx: typer.Context, name: str, value: bool) -> bool | None:
    """Return ``value`` only when the flag was given on the command line."""

    source = ctx.get_parameter_source(name)
    if source is None or source is ParameterSource.DEFAULT:
        return None
    return value


def _common(
    ctx: typer.Context,
    *,
    config: Path | None,
    corpus_root: Path | None,
    jobs: int | None,
    emoji: bool,
    color: bool,
    verbose: bool,
    quiet: bool,
) -> CommonOptions:
    return build_common_options(
        config=config,
        corpus_root=corpus_root,
        jobs=jobs,
        emoji=_explicit(ctx, "emoji", emoji),
        color=_explicit(ctx, "color", color),
        verbose=verbose,
        quiet=quiet,
    )


@contextmanager
def _fatal_errors(logger: CLILogger) -> Iterator[None]:
    """Print fatal errors with ``fail`` and exit non-zero."""

    try:
        yield
    except CLIError as exc:
        logger.fail(str(exc))
        raise typer.Exit(code=exc.exit_code) from exc
    except (LintCorpusError, ConfigError) as exc:
        logger.fail(str(exc))
        raise typer.Exit(code=1) from exc


def _prepare(common: CommonOptions) -> tuple[Config, CLILogger]:
    output = common.output
    fallback = build_cli_logger(
        emoji=output.emoji is not False,
        color=output.color is not False,
        quiet=output.quiet,
    )
    with _fatal_errors(fallback):
        config = load_cli_config(common)
    return config, cli_logger_for(config)


@app.command("fetch")
def fetch_command(
    ctx: typer.Context,
    snapshot: SNAPSHOT_ARGUMENT,
    count: COUNT_OPTION = None,
    retries: RETRIES_OPTION = None,
    no_cache: NO_CACHE_OPTION = False,
    config: CONFIG_OPTION = None,
    corpus_root: CORPUS_ROOT_OPTION = None,
    jobs: JOBS_OPTION = None,
    emoji: EMOJI_OPTION = True,
    color: COLOR_OPTION = True,
    verbose: VERBOSE_OPTION = False,
    quiet: QUIET_OPTION = False,
) -> None:
    """Select the most downloaded packages, resolve their dependencies and fetch them."""

    common = _common(
        ctx,
        config=config,
        corpus_root=corpus_root,
        jobs=jobs,
        emoji=emoji,
        color=color,
        verbose=verbose,
        quiet=quiet,
    )
    options = FetchOptions(snapshot=snapshot, count=count, retries=retries, no_cache=no_cache)
    cfg, logger = _prepare(common)
    with _fatal_errors(logger), interrupt_guard(logger) as stop_event:
        apply_fetch_options(cfg, options)
        run_fetch(cfg, logger, stop_event)
    raise typer.Exit(code=exit_code_for(stop_event))


@app.command("lint")
def lint_command(
    ctx: typer.Context,
    linter_dir: LINTER_DIR_ARGUMENT = None,
    lints: LINT_OPTION = None,
    report_file: REPORT_FILE_OPTION = None,
    json_report: JSON_REPORT_OPTION = None,
    timeout: TIMEOUT_OPTION = None,
    linter_command: LINTER_COMMAND_OPTION = None,
    config: CONFIG_OPTION = None,
    corpus_root: CORPUS_ROOT_OPTION = None,
    jobs: JOBS_OPTION = None,
    emoji: EMOJI_OPTION = True,
    color: COLOR_OPTION = True,
    verbose: VERBOSE_OPTION = False,
    quiet: QUIET_OPTION = False,
) -> None:
    """Lint every package of an existing corpus and write the report."""

    common = _common(
        ctx,
        config=config,
        corpus_root=corpus_root,
        jobs=jobs,
        emoji=emoji,
        color=color,
        verbose=verbose,
        quiet=quiet,
    )
    options = build_lint_options(
        linter_dir=linter_dir,
        lints=lints,
        report_file=report_file,
        json_report=json_report,
        timeout=timeout,
        linter_command=linter_command,
    )
    cfg, logger = _prepare(common)
    with _fatal_errors(logger), interrupt_guard(logger) as stop_event:
        apply_lint_options(cfg, options)
        linter = select_linter(cfg, options, logger)
        run_lint(cfg, linter, logger, stop_event)
    raise typer.Exit(code=exit_code_for(stop_event))


@app.command("run")
def run_all_command(
    ctx: typer.Context,
    snapshot: SNAPSHOT_ARGUMENT,
    linter_dir: LINTER_DIR_ARGUMENT = None,
    count: COUNT_OPTION = None,
    retries: RETRIES_OPTION = None,
    no_cache: NO_CACHE_OPTION = False,
    lints: LINT_OPTION = None,
    report_file: REPORT_FILE_OPTION = None,
    json_report: JSON_REPORT_OPTION = None,
    timeout: TIMEOUT_OPTION = None,
    linter_command: LINTER_COMMAND_OPTION = None,
    config: CONFIG_OPTION = None,
    corpus_root: CORPUS_ROOT_OPTION = None,
    jobs: JOBS_OPTION = None,
    emoji: EMOJI_OPTION = True,
    color: COLOR_OPTION = True,
    verbose: VERBOSE_OPTION = False,
    quiet: QUIET_OPTION = False,
) -> None:
    """Build the linter, fetch the corpus and lint it in one go."""

    common = _common(
        ctx,
        config=config,
        corpus_root=corpus_root,
        jobs=jobs,
        emoji=emoji,
        color=color,
        verbose=verbose,
        quiet=quiet,
    )
    fetch_options = FetchOptions(snapshot=snapshot, count=count, retries=retries, no_cache=no_cache)
    lint_options = build_lint_options(
        linter_dir=linter_dir,
        lints=lints,
        report_file=report_file,
        json_report=json_report,
        timeout=timeout,
        linter_command=linter_command,
    )
    cfg, logger = _prepare(common)
    with _fatal_errors(logger), interrupt_guard(logger) as stop_event:
        apply_fetch_options(cfg, fetch_options)
        apply_lint_options(cfg, lint_options)
        # Build first: a broken linter tree must not cost a full download.
        linter = select_linter(cfg, lint_options, logger)
        acquired = run_fetch(cfg, logger, stop_event)
        run_lint(
            cfg,
            linter,
            logger,
            stop_event,
            entries=acquired.entries,
            skipped=acquired.skipped,
        )
    raise typer.Exit(code=exit_code_for(stop_event))


def main() -> None:
    """Console script entry point."""

    app()


__all__ = ["app", "main"]
