# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Reporting helpers for lintcorpus."""

from __future__ import annotations

from .console import render_summary
from .emitters import report_payload, write_json_report
from .text import ReportWriter, RunMetadata, render_text_report

__all__ = [
    "ReportWriter",
    "RunMetadata",
    "render_summary",
    "render_text_report",
    "report_payload",
    "write_json_report",
]
