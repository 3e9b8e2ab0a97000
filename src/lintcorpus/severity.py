# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Severity related types and helpers."""

from __future__ import annotations

from enum import Enum
from typing import Final


class Severity(str, Enum):
    """Severity levels normalising the compiler's diagnostic vocabulary."""

    ICE = "ice"
    ERROR = "error"
    WARNING = "warning"
    NOTE = "note"
    HELP = "help"


ICE_LEVEL: Final[str] = "error: internal compiler error"

_LEVEL_TO_SEVERITY: Final[dict[str, Severity]] = {
    ICE_LEVEL: Severity.ICE,
    "error": Severity.ERROR,
    "warning": Severity.WARNING,
    "note": Severity.NOTE,
    "help": Severity.HELP,
    "failure-note": Severity.NOTE,
}


def severity_from_level(level: str | None, default: Severity = Severity.WARNING) -> Severity:
    """Map a rustc ``level`` string onto :class:`Severity`.

    Args:
        level: Level reported in the compiler message, e.g. ``"warning"``.
        default: Severity used for unknown or missing levels.

    Returns:
        Severity: Normalised severity.
    """

    if not level:
        return default
    return _LEVEL_TO_SEVERITY.get(level.strip().lower(), default)


def is_failure(severity: Severity) -> bool:
    """Return ``True`` when ``severity`` means the build did not succeed."""

    return severity in {Severity.ERROR, Severity.ICE}


__all__ = ["ICE_LEVEL", "Severity", "is_failure", "severity_from_level"]
