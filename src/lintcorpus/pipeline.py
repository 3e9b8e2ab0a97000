# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Two-stage pipeline: corpus acquisition, then lint execution and aggregation."""

from __future__ import annotations

import logging
import shutil
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from threading import Event

from .aggregate import AggregateReport, DiagnosticAggregator
from .config import Config, ConfigError
from .corpus import CorpusStore, latest_versions
from .download import Downloader, Transport
from .errors import EmptyCorpusError, UnpackError
from .lint import LinterCommand, LintRunner, TargetDirPool, normalize_lints
from .models import (
    CorpusEntry,
    FetchResult,
    LintOutcome,
    PackageId,
    ResolvedSet,
    SkippedPackage,
    SkipStage,
)
from .process_utils import CommandRunner, run_command
from .progress import StageProgress, disabled_progress
from .registry import RegistryIndex
from .reporting import RunMetadata
from .resolver import DependencyResolver

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class AcquisitionResult:
    """Everything stage A produced."""

    resolved: ResolvedSet
    fetched: tuple[FetchResult, ...]
    entries: tuple[CorpusEntry, ...]
    skipped: tuple[SkippedPackage, ...]
    manifest: Path | None = None

    @property
    def cached(self) -> int:
        return sum(1 for result in self.fetched if result.cached)


@dataclass(slots=True)
class LintRunResult:
    """Everything stage B produced."""

    report: AggregateReport
    metadata: RunMetadata
    not_started: tuple[PackageId, ...] = field(default_factory=tuple)


def load_index(config: Config) -> RegistryIndex:
    """Load the registry snapshot named by ``config.registry.snapshot``.

    Raises:
        ConfigError: If no snapshot is configured.
        CorruptSnapshot: If the snapshot is unusable.
    """

    snapshot = config.registry.snapshot
    if snapshot is None:
        raise ConfigError("no registry snapshot configured")
    started = time.monotonic()
    index = RegistryIndex.load(snapshot)
    LOGGER.info("indexed %d packages in %.1fs", len(index), time.monotonic() - started)
    return index


def resolve_corpus(index: RegistryIndex, config: Config) -> ResolvedSet:
    """Select seeds and compute their dependency closure.

    Raises:
        EmptyCorpusError: If no seed package could be selected.
    """

    registry = config.registry
    seeds = index.top_n(registry.top_n, exclude_prefixes=registry.exclude_prefixes)
    if not seeds:
        raise EmptyCorpusError(f"no seed packages selected (top_n={registry.top_n})")
    resolved = DependencyResolver(index, include_optional=registry.include_optional).resolve(seeds)
    if not resolved.seeds:
        raise EmptyCorpusError("none of the selected seed packages could be resolved")
    LOGGER.info(
        "resolved %d packages from %d seeds (%d dependency gaps)",
        len(resolved),
        len(resolved.seeds),
        len(resolved.gaps),
    )
    return resolved


def acquire_corpus(
    config: Config,
    *,
    index: RegistryIndex | None = None,
    transport: Transport | None = None,
    stop_event: Event | None = None,
    progress: StageProgress | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> AcquisitionResult:
    """Run stage A: select, resolve, fetch and unpack.

    Per-package fetch and unpack failures are recorded as
    :class:`SkippedPackage` values. Only an unusable snapshot or an empty
    seed selection raises.

    Args:
        config: Run configuration.
        index: Pre-built index, loaded from ``config.registry.snapshot``
            when omitted.
        transport: HTTP transport override.
        stop_event: Global stop signal.
        progress: Progress display for the download stage.
        sleep: Sleep function used for retry backoff.

    Returns:
        AcquisitionResult: Resolved set, fetch results, entries and skips.
    """

    index = index or load_index(config)
    resolved = resolve_corpus(index, config)
    store = CorpusStore(config.corpus.root)
    store.ensure_layout()
    downloader = Downloader(
        store,
        config=config.download,
        transport=transport,
        checksums=index.checksum,
        stop_event=stop_event,
        sleep=sleep,
    )
    progress = progress or disabled_progress()
    entries: list[CorpusEntry] = []
    skipped: list[SkippedPackage] = []

    def _handle(result: FetchResult) -> None:
        progress.advance(str(result.package))
        if not result.ok:
            skipped.append(
                SkippedPackage(
                    package=result.package,
                    stage=SkipStage.FETCH,
                    reason=result.reason or "fetch failed",
                    attempts=result.attempts,
                ),
            )
            return
        try:
            entry = store.materialize(result)
        except UnpackError as exc:
            LOGGER.warning("%s", exc)
            store.discard_archive(result.package)
            skipped.append(
                SkippedPackage(
                    package=result.package,
                    stage=SkipStage.UNPACK,
                    reason=exc.reason,
                    attempts=result.attempts,
                ),
            )
            return
        if entry is not None:
            entries.append(entry)

    progress.start(len(resolved.packages))
    try:
        fetched = downloader.fetch(resolved.packages, on_result=_handle)
    finally:
        progress.stop()
    manifest = store.write_manifest(entries, skipped)
    return AcquisitionResult(
        resolved=resolved,
        fetched=tuple(fetched),
        entries=tuple(sorted(entries, key=lambda entry: entry.package.sort_key())),
        skipped=tuple(sorted(skipped, key=lambda item: item.package.sort_key())),
        manifest=manifest,
    )


def discover_corpus(config: Config) -> tuple[list[CorpusEntry], list[SkippedPackage]]:
    """Return the entries and recorded skips of an existing corpus."""

    store = CorpusStore(config.corpus.root)
    entries = store.entries(latest_only=config.corpus.latest_only)
    manifest = store.read_manifest()
    skipped = list(manifest.skipped) if manifest is not None else []
    return entries, skipped


def lint_corpus(
    config: Config,
    linter: LinterCommand,
    *,
    entries: Sequence[CorpusEntry] | None = None,
    skipped: Sequence[SkippedPackage] = (),
    runner: CommandRunner = run_command,
    stop_event: Event | None = None,
    progress: StageProgress | None = None,
    on_outcome: Callable[[LintOutcome], None] | None = None,
) -> LintRunResult:
    """Run stage B: lint every corpus entry and aggregate the results.

    Args:
        config: Run configuration.
        linter: How to invoke the linter.
        entries: Entries to lint. Discovered under ``config.corpus.root``
            (with the skips recorded in its manifest) when omitted.
        skipped: Packages that never reached the linter.
        runner: Subprocess runner used for every linter invocation.
        stop_event: Global stop signal; no new run starts once it is set.
        progress: Progress display for the lint stage.
        on_outcome: Called from the calling thread for each finished package.

    Returns:
        LintRunResult: Finalised aggregate and run metadata.

    Raises:
        EmptyCorpusError: If there is nothing to lint and nothing was skipped.
    """

    if entries is None:
        discovered, recorded = discover_corpus(config)
        entries, skipped = discovered, [*skipped, *recorded]
    elif config.corpus.latest_only:
        entries = latest_versions(entries)
    if not entries and not skipped:
        raise EmptyCorpusError(f"no packages found in corpus {config.corpus.root}")

    stop = stop_event or Event()
    lint_config = config.lint
    prefix = lint_config.lint_prefix or None
    lints = normalize_lints(lint_config.lints, lint_config.lint_prefix)
    aggregator = DiagnosticAggregator(lints, lint_prefix=prefix)
    for item in skipped:
        aggregator.record_skipped(item)

    started = datetime.now(UTC)
    pool = TargetDirPool(lint_config.target_dir, reset_interval=lint_config.target_dir_reset_interval)
    scratch_root = lint_config.target_dir / "scratch"
    owns_scratch = not scratch_root.exists()
    lint_runner = LintRunner(
        linter,
        timeout=lint_config.timeout,
        target_pool=pool,
        scratch_root=scratch_root,
        runner=runner,
    )
    progress = progress or disabled_progress()
    not_started: list[PackageId] = []

    def _work(entry: CorpusEntry) -> LintOutcome | None:
        if stop.is_set():
            return None
        return lint_runner.run(entry, lints)

    progress.start(len(entries))
    try:
        workers = max(1, min(lint_config.concurrency, len(entries)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="lint") as executor:
            future_map = {executor.submit(_work, entry): entry for entry in entries}
            for future in as_completed(future_map):
                entry = future_map[future]
                outcome = future.result()
                progress.advance(str(entry.package))
                if outcome is None:
                    not_started.append(entry.package)
                    continue
                aggregator.record(outcome)
                if on_outcome is not None:
                    on_outcome(outcome)
    finally:
        progress.stop()
        if owns_scratch:
            shutil.rmtree(scratch_root, ignore_errors=True)
        pool.cleanup()

    not_started.sort(key=PackageId.sort_key)
    if not_started:
        LOGGER.warning("stop requested: %d package(s) were not linted", len(not_started))
    metadata = RunMetadata(
        linter=linter.identity,
        lints=tuple(sorted(lints)),
        lint_prefix=prefix,
        started=started,
        finished=datetime.now(UTC),
        corpus_root=config.corpus.root,
        not_linted=tuple(not_started),
    )
    return LintRunResult(
        report=aggregator.finalize(),
        metadata=metadata,
        not_started=tuple(not_started),
    )


__all__ = [
    "AcquisitionResult",
    "LintRunResult",
    "acquire_corpus",
    "discover_corpus",
    "lint_corpus",
    "load_index",
    "resolve_corpus",
]
