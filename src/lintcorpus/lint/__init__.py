# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Linter invocation and output parsing."""

from __future__ import annotations

from .messages import MessageStream, parse_message_stream
from .runner import LintRunner, classify
from .toolchain import LinterCommand, build_linter, default_report_name, explicit_linter, normalize_lints
from .workspace import TargetDirPool, prepare_manifest, prepare_workspace

__all__ = [
    "LintRunner",
    "LinterCommand",
    "MessageStream",
    "TargetDirPool",
    "build_linter",
    "classify",
    "default_report_name",
    "explicit_linter",
    "normalize_lints",
    "parse_message_stream",
    "prepare_manifest",
    "prepare_workspace",
]
