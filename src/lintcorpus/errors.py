# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Exception taxonomy shared by both pipeline stages.

Only errors that leave the corpus itself unusable are raised out of the
pipeline. Failures tied to a single package are recorded against that
package and the run continues.
"""

from __future__ import annotations

from pathlib import Path


class LintCorpusError(Exception):
    """Base class for every error raised by :mod:`lintcorpus`."""


class CorruptSnapshot(LintCorpusError):
    """Raised when a registry snapshot lacks required tables or fields."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        """Initialise the error with a description and the offending path.

        Args:
            message: Human-readable description of the defect.
            path: Snapshot file that failed validation, when known.
        """

        detail = f"{path}: {message}" if path is not None else message
        super().__init__(detail)
        self.path = path


class UnknownPackage(LintCorpusError):
    """Raised when a package name is absent from the registry index."""

    def __init__(self, name: str) -> None:
        super().__init__(f"unknown package '{name}'")
        self.name = name


class EmptyCorpusError(LintCorpusError):
    """Raised when no seed package could be resolved."""


class UnpackError(LintCorpusError):
    """Raised when a fetched archive cannot be unpacked."""

    def __init__(self, archive: Path, reason: str) -> None:
        super().__init__(f"error unpacking '{archive}': {reason}")
        self.archive = archive
        self.reason = reason


class LinterBuildError(LintCorpusError):
    """Raised when the linter source tree fails to build."""


class ReportWriteError(LintCorpusError):
    """Raised when a report artifact cannot be written."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"error writing report '{path}': {reason}")
        self.path = path
        self.reason = reason


__all__ = [
    "CorruptSnapshot",
    "EmptyCorpusError",
    "LintCorpusError",
    "LinterBuildError",
    "ReportWriteError",
    "UnknownPackage",
    "UnpackError",
]
