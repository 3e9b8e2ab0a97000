# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Command implementations shared by the ``fetch``, ``lint`` and ``run`` commands."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from threading import Event

from pydantic import ValidationError

from ..config import Config, ConfigError
from ..config_loader import load_config
from ..download import Transport, UrllibTransport
from ..lint import LinterCommand, build_linter, default_report_name, explicit_linter
from ..logging import configure_logging, detect_tty
from ..models import CorpusEntry, LintOutcome, SkippedPackage
from ..pipeline import AcquisitionResult, LintRunResult, acquire_corpus, lint_corpus
from ..process_utils import run_command
from ..progress import StageProgress
from ..reporting import ReportWriter, render_summary, write_json_report
from .options import CommonOptions, FetchOptions, LintOptions
from .shared import CLIError, CLILogger, build_cli_logger

LOGGER = logging.getLogger(__name__)

# Exit status of a run cut short by Ctrl-C after writing its partial report.
INTERRUPTED_EXIT_CODE = 130


def load_cli_config(common: CommonOptions, *, project_root: Path | None = None) -> Config:
    """Load layered configuration and apply the shared CLI flags on top.

    Raises:
        ConfigError: If a configuration source or a flag value is invalid.
    """

    config = load_config(project_root or Path.cwd(), extra_config=common.config)
    output = common.output
    try:
        if common.corpus_root is not None:
            config.corpus.root = common.corpus_root.resolve()
        if common.jobs is not None:
            config.download.concurrency = common.jobs
            config.lint.concurrency = common.jobs
        if output.emoji is not None:
            config.output.emoji = output.emoji
        if output.color is not None:
            config.output.color = output.color
        if output.verbose:
            config.output.verbose = True
            config.output.quiet = False
        elif output.quiet:
            config.output.quiet = True
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
    return config


def apply_fetch_options(config: Config, options: FetchOptions) -> None:
    """Apply stage A flags to ``config``."""

    try:
        config.registry.snapshot = options.snapshot.resolve()
        if options.count is not None:
            config.registry.top_n = options.count
        if options.retries is not None:
            config.download.retry_limit = options.retries
        if options.no_cache:
            config.download.cache_reuse = False
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


def apply_lint_options(config: Config, options: LintOptions) -> None:
    """Apply stage B flags to ``config``."""

    try:
        if options.linter_dir is not None:
            config.lint.linter_dir = options.linter_dir.resolve()
        if options.lints:
            config.lint.lints = list(options.lints)
        if options.timeout is not None:
            config.lint.timeout = options.timeout
        if options.report_file is not None:
            config.output.report_file = options.report_file
        if options.json_report is not None:
            config.output.json_report = options.json_report
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


def cli_logger_for(config: Config) -> CLILogger:
    """Configure log routing and return the console logger for ``config``."""

    output = config.output
    configure_logging(verbose=output.verbose, quiet=output.quiet)
    return build_cli_logger(emoji=output.emoji, color=output.color, quiet=output.quiet)


def build_transport(config: Config) -> Transport:
    return UrllibTransport(user_agent=config.download.user_agent)


def stage_progress(description: str, config: Config, logger: CLILogger) -> StageProgress:
    enabled = detect_tty() and not config.output.quiet
    return StageProgress(description=description, console=logger.console, enabled=enabled)


def select_linter(config: Config, options: LintOptions, logger: CLILogger) -> LinterCommand:
    """Return the linter named by the flags or the configuration.

    An explicit command wins over a linter source tree.

    Raises:
        CLIError: If neither a command nor a source tree is available.
        LinterBuildError: If the source tree fails to build.
    """

    lint_config = config.lint
    command: Sequence[str] | str | None = options.linter_command or lint_config.command or None
    if command:
        return explicit_linter(command, lint_prefix=lint_config.lint_prefix, runner=run_command)
    if lint_config.linter_dir is None:
        raise CLIError("no linter given: pass LINTER_DIR, --linter-command or set lint.linter_dir")
    logger.info(f"Building linter in {lint_config.linter_dir}")
    linter = build_linter(lint_config.linter_dir, lint_prefix=lint_config.lint_prefix, runner=run_command)
    logger.ok(f"Built {linter.identity}")
    return linter


def run_fetch(config: Config, logger: CLILogger, stop_event: Event) -> AcquisitionResult:
    """Run stage A and report what it produced."""

    logger.section("Corpus acquisition")
    logger.info(f"Reading registry snapshot {config.registry.snapshot}")
    with stage_progress("Fetching", config, logger) as progress:
        result = acquire_corpus(
            config,
            transport=build_transport(config),
            stop_event=stop_event,
            progress=progress,
        )
    resolved = result.resolved
    logger.info(f"Resolved {len(resolved)} packages from {len(resolved.seeds)} seed packages")
    if resolved.gaps:
        logger.warn(f"{len(resolved.gaps)} dependency requirement(s) could not be satisfied")
        for gap in resolved.gaps:
            LOGGER.debug("dependency gap: %s", gap.describe())
    logger.ok(f"{len(result.entries)} packages in corpus {config.corpus.root} ({result.cached} reused from cache)")
    _report_skips(result.skipped, logger)
    return result


def _report_skips(skipped: Sequence[SkippedPackage], logger: CLILogger) -> None:
    for item in skipped:
        logger.warn(f"Skipped {item.package} ({item.stage.value}): {item.reason}")


def run_lint(
    config: Config,
    linter: LinterCommand,
    logger: CLILogger,
    stop_event: Event,
    *,
    entries: Sequence[CorpusEntry] | None = None,
    skipped: Sequence[SkippedPackage] = (),
) -> LintRunResult:
    """Run stage B, write the reports and print the summary."""

    logger.section("Linting corpus")

    def _on_outcome(outcome: LintOutcome) -> None:
        if not outcome.ok:
            LOGGER.info("%s: %s", outcome.package, outcome.status.value)

    with stage_progress("Linting", config, logger) as progress:
        result = lint_corpus(
            config,
            linter,
            entries=entries,
            skipped=skipped,
            runner=run_command,
            stop_event=stop_event,
            progress=progress,
            on_outcome=_on_outcome,
        )
    write_reports(config, linter, result, logger)
    return result


def write_reports(config: Config, linter: LinterCommand, result: LintRunResult, logger: CLILogger) -> Path:
    """Write the text report, and the JSON report when configured."""

    output = config.output
    path = output.report_file or default_report_name(linter.source_dir, runner=run_command)
    written = ReportWriter(path, max_samples=output.max_samples).write(result.report, result.metadata)
    if not output.quiet:
        render_summary(result.report, logger.console, use_color=output.color)
    logger.ok(f"Report written to {written}")
    if output.json_report is not None:
        json_path = write_json_report(result.report, result.metadata, output.json_report)
        logger.ok(f"JSON report written to {json_path}")
    if result.not_started:
        logger.warn(f"Stopped early: {len(result.not_started)} package(s) were not linted")
    return written


def exit_code_for(stop_event: Event) -> int:
    return INTERRUPTED_EXIT_CODE if stop_event.is_set() else 0


__all__ = [
    "INTERRUPTED_EXIT_CODE",
    "apply_fetch_options",
    "apply_lint_options",
    "build_transport",
    "cli_logger_for",
    "exit_code_for",
    "load_cli_config",
    "run_fetch",
    "run_lint",
    "select_linter",
    "write_reports",
]
