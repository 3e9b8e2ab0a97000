# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Emit machine-readable reports for a finished run."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from ..aggregate import AggregateReport
from .text import RunMetadata, write_report_text


def report_payload(report: AggregateReport, metadata: RunMetadata) -> dict[str, Any]:
    """Return the JSON document describing ``report``."""

    counters = report.counters
    return {
        "metadata": metadata.model_dump(mode="json"),
        "counters": {
            **counters.model_dump(mode="json"),
            "failed": counters.failed,
            "skipped": counters.skipped,
        },
        "summary": [
            {
                "lint": item.lint,
                "count": item.count,
                "packages": [str(package) for package in item.packages],
            }
            for item in report.summary
        ],
        "report": report.model_dump(mode="json"),
    }


def write_json_report(report: AggregateReport, metadata: RunMetadata, path: Path) -> Path:
    """Write a JSON report summarising the run.

    Raises:
        ReportWriteError: If the file cannot be written.
    """

    payload = report_payload(report, metadata)
    return write_report_text(path, json.dumps(payload, indent=2) + "\n")


__all__ = ["report_payload", "write_json_report"]
