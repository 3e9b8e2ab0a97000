# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Parser for cargo's ``--message-format=json`` stream."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Final

from ..models import Diagnostic, SourceSpan
from ..severity import severity_from_level

REASON_COMPILER_MESSAGE: Final[str] = "compiler-message"
REASON_BUILD_FINISHED: Final[str] = "build-finished"


@dataclass(frozen=True, slots=True)
class MessageStream:
    """Everything of interest extracted from one cargo run."""

    diagnostics: tuple[Diagnostic, ...]
    build_success: bool | None
    invalid_lines: tuple[str, ...]

    @property
    def has_failure(self) -> bool:
        return any(diagnostic.is_failure for diagnostic in self.diagnostics)

    def failure_texts(self) -> list[str]:
        """Return rendered text of error and ICE diagnostics."""

        return [diag.rendered or diag.message for diag in self.diagnostics if diag.is_failure]


def _primary_span(spans: Any) -> SourceSpan | None:
    if not isinstance(spans, list):
        return None
    candidates = [span for span in spans if isinstance(span, Mapping)]
    primary = next((span for span in candidates if span.get("is_primary")), None)
    span = primary or (candidates[0] if candidates else None)
    if span is None:
        return None
    try:
        return SourceSpan(
            file=str(span["file_name"]),
            line=int(span.get("line_start") or 0),
            column=int(span.get("column_start") or 0),
        )
    except (KeyError, TypeError, ValueError):
        return None


def parse_diagnostic(message: Mapping[str, Any]) -> Diagnostic | None:
    """Convert the ``message`` object of a compiler message into a diagnostic.

    The lint name is the diagnostic code (``clippy::needless_return``,
    ``unused_variables``, ``E0308``) or empty when the compiler reported none.
    """

    text = message.get("message")
    if not isinstance(text, str):
        return None
    code = message.get("code")
    lint = ""
    if isinstance(code, Mapping) and isinstance(code.get("code"), str):
        lint = code["code"]
    rendered = message.get("rendered")
    return Diagnostic(
        lint=lint,
        severity=severity_from_level(message.get("level")),
        message=text,
        rendered=rendered if isinstance(rendered, str) else None,
        span=_primary_span(message.get("spans")),
    )


def parse_message_stream(lines: str | Iterable[str]) -> MessageStream:
    """Parse cargo's JSON message stream.

    Args:
        lines: Captured stdout, either whole or as an iterable of lines.

    Returns:
        MessageStream: Compiler diagnostics in emission order, the
        ``build-finished`` verdict when present, and lines that were not
        valid JSON objects.
    """

    if isinstance(lines, str):
        lines = lines.splitlines()
    diagnostics: list[Diagnostic] = []
    invalid: list[str] = []
    build_success: bool | None = None
    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        try:
            payload = json.loads(line)
        except json.JSONDecodeError:
            invalid.append(line)
            continue
        if not isinstance(payload, Mapping):
            invalid.append(line)
            continue
        reason = payload.get("reason")
        if reason == REASON_COMPILER_MESSAGE:
            message = payload.get("message")
            if isinstance(message, Mapping) and (diagnostic := parse_diagnostic(message)) is not None:
                diagnostics.append(diagnostic)
        elif reason == REASON_BUILD_FINISHED:
            build_success = bool(payload.get("success"))
    return MessageStream(
        diagnostics=tuple(diagnostics),
        build_success=build_success,
        invalid_lines=tuple(invalid),
    )


__all__ = ["MessageStream", "parse_diagnostic", "parse_message_stream"]
