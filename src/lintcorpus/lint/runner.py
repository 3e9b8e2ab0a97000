# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Run the linter against one corpus entry and classify the result."""

from __future__ import annotations

import logging
import tempfile
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Final

from ..models import CorpusEntry, Diagnostic, LintOutcome, LintStatus, PackageId
from ..process_utils import CommandResult, CommandRunner, run_command
from ..severity import Severity
from .messages import MessageStream, parse_message_stream
from .toolchain import LinterCommand
from .workspace import TargetDirPool, prepare_workspace

LOGGER = logging.getLogger(__name__)

_DETAIL_LIMIT: Final[int] = 4000


def _tail(text: str, limit: int = _DETAIL_LIMIT) -> str:
    text = text.strip()
    return text if len(text) <= limit else "..." + text[-limit:]


class LintRunner:
    """Invoke the linter on corpus entries under a per-package timeout.

    Runs share nothing but the read-only corpus: each one lints a private
    scratch copy and holds its own target directory for its duration, so
    :meth:`run` may be called from many threads at once.
    """

    def __init__(
        self,
        linter: LinterCommand,
        *,
        timeout: float,
        target_pool: TargetDirPool,
        scratch_root: Path | None = None,
        runner: CommandRunner = run_command,
    ) -> None:
        """Initialise the runner.

        Args:
            linter: How to invoke the linter.
            timeout: Wall-clock limit per package in seconds.
            target_pool: Source of cargo target directories.
            scratch_root: Parent for scratch copies, the system temp dir
                when ``None``.
            runner: Subprocess runner returning :class:`CommandResult`.
        """

        self._linter = linter
        self._timeout = timeout
        self._targets = target_pool
        self._scratch_root = scratch_root
        self._runner = runner

    def run(self, entry: CorpusEntry, lints: Iterable[str]) -> LintOutcome:
        """Lint ``entry`` and return its outcome.

        Args:
            entry: Unpacked package to lint.
            lints: Normalised lint names to enable. Empty means the linter's
                defaults.

        Returns:
            LintOutcome: Status, diagnostics and duration. Never raises for
            failures tied to this package.
        """

        package = entry.package
        selected = frozenset(lints)
        started = time.monotonic()
        if self._scratch_root is not None:
            self._scratch_root.mkdir(parents=True, exist_ok=True)
        with (
            tempfile.TemporaryDirectory(
                prefix="lintcorpus-", dir=self._scratch_root, ignore_cleanup_errors=True
            ) as scratch,
            self._targets.acquire() as target_dir,
        ):
            try:
                manifest = prepare_workspace(entry.path, Path(scratch) / package.dir_name)
            except OSError as exc:
                return LintOutcome(
                    package=package,
                    status=LintStatus.BUILD_FAILED,
                    duration=time.monotonic() - started,
                    detail=f"cannot prepare workspace: {exc}",
                )
            args = self._linter.invocation(manifest, target_dir, selected)
            LOGGER.debug("linting %s: %s", package, " ".join(args))
            try:
                result = self._runner(args, cwd=manifest.parent, timeout=self._timeout)
            except (OSError, ValueError) as exc:
                return LintOutcome(
                    package=package,
                    status=LintStatus.CRASHED_TOOL,
                    duration=time.monotonic() - started,
                    detail=f"cannot run linter: {exc}",
                )
        outcome = classify(package, result, duration=time.monotonic() - started)
        if not outcome.ok:
            LOGGER.warning("%s: %s", package, outcome.status.value)
        return outcome


def classify(package: PackageId, result: CommandResult, *, duration: float) -> LintOutcome:
    """Map a finished linter process onto a :class:`LintOutcome`.

    A non-zero exit alone is not a failure: the linter may exit non-zero
    because it reported diagnostics. Only compiler errors, an unsuccessful
    build verdict, or a failing exit with no diagnostics at all count as a
    build failure.
    """

    if result.timed_out:
        return LintOutcome(
            package=package,
            status=LintStatus.TIMED_OUT,
            duration=duration,
            returncode=result.returncode,
            detail=_tail(result.stderr) or None,
        )
    if result.returncode < 0:
        return LintOutcome(
            package=package,
            status=LintStatus.CRASHED_TOOL,
            duration=duration,
            returncode=result.returncode,
            detail=f"terminated by signal {-result.returncode}\n{_tail(result.stderr)}".strip(),
        )

    stream = parse_message_stream(result.stdout)
    diagnostics = stream.diagnostics
    if stream.invalid_lines:
        return _outcome(
            package,
            LintStatus.CRASHED_TOOL,
            result,
            duration,
            diagnostics,
            f"unparsable linter output: {stream.invalid_lines[0][:200]}",
        )
    if any(diagnostic.severity is Severity.ICE for diagnostic in diagnostics):
        return _outcome(
            package,
            LintStatus.CRASHED_TOOL,
            result,
            duration,
            diagnostics,
            _failure_detail(stream, result),
        )
    if stream.has_failure or stream.build_success is False:
        return _outcome(
            package,
            LintStatus.BUILD_FAILED,
            result,
            duration,
            diagnostics,
            _failure_detail(stream, result),
        )
    if result.returncode != 0 and not diagnostics:
        return _outcome(
            package,
            LintStatus.BUILD_FAILED,
            result,
            duration,
            diagnostics,
            f"linter exited with status {result.returncode}\n{_tail(result.stderr)}".strip(),
        )
    return _outcome(package, LintStatus.COMPLETED, result, duration, diagnostics, None)


def _failure_detail(stream: MessageStream, result: CommandResult) -> str:
    parts = [*stream.failure_texts(), result.stderr]
    return _tail("\n".join(part.strip() for part in parts if part.strip()))


def _outcome(
    package: PackageId,
    status: LintStatus,
    result: CommandResult,
    duration: float,
    diagnostics: tuple[Diagnostic, ...],
    detail: str | None,
) -> LintOutcome:
    return LintOutcome(
        package=package,
        status=status,
        diagnostics=diagnostics,
        duration=duration,
        returncode=result.returncode,
        detail=detail,
    )


__all__ = ["LintRunner", "classify"]
