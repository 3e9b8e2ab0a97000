# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Shared CLI helpers: errors, console logging and interrupt handling."""

from __future__ import annotations

import signal
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Event
from types import FrameType

from rich.console import Console

from ..logging import fail as core_fail
from ..logging import get_console_manager
from ..logging import info as core_info
from ..logging import ok as core_ok
from ..logging import section as core_section
from ..logging import warn as core_warn


class CLIError(RuntimeError):
    """Error raised when a CLI command fails and should exit with a status code."""

    def __init__(self, message: str, *, exit_code: int = 1) -> None:
        """Initialise the error with a message and exit code.

        Args:
            message: Human-readable error message shown to the user.
            exit_code: Exit status associated with the failure.
        """

        super().__init__(message)
        self.exit_code = exit_code


@dataclass(slots=True)
class CLILogger:
    """Adapter around project logging helpers respecting CLI output settings."""

    console: Console
    use_emoji: bool
    use_color: bool
    quiet: bool = False

    def section(self, title: str) -> None:
        if not self.quiet:
            core_section(title, use_color=self.use_color)

    def info(self, message: str) -> None:
        if not self.quiet:
            core_info(message, use_emoji=self.use_emoji, use_color=self.use_color)

    def ok(self, message: str) -> None:
        if not self.quiet:
            core_ok(message, use_emoji=self.use_emoji, use_color=self.use_color)

    def warn(self, message: str) -> None:
        """Log a warning message, shown even in quiet mode."""

        core_warn(message, use_emoji=self.use_emoji, use_color=self.use_color)

    def fail(self, message: str) -> None:
        """Log a failure message, shown even in quiet mode."""

        core_fail(message, use_emoji=self.use_emoji, use_color=self.use_color)


def build_cli_logger(*, emoji: bool, color: bool, quiet: bool = False) -> CLILogger:
    """Return a :class:`CLILogger` bound to the shared Rich console."""

    console = get_console_manager().get(color=color, emoji=emoji)
    return CLILogger(console=console, use_emoji=emoji, use_color=color, quiet=quiet)


@dataclass(slots=True)
class InterruptState:
    """Stop signal shared with the pipeline while a command runs."""

    stop_event: Event = field(default_factory=Event)
    logger: CLILogger | None = None

    def handle(self, signum: int, frame: FrameType | None) -> None:
        if self.stop_event.is_set():
            raise KeyboardInterrupt
        self.stop_event.set()
        if self.logger is not None:
            self.logger.warn("Stopping: in-flight work will finish, press Ctrl-C again to abort")


@contextmanager
def interrupt_guard(logger: CLILogger | None = None) -> Iterator[Event]:
    """Turn the first SIGINT into a stop request for the block's duration.

    A second SIGINT raises :class:`KeyboardInterrupt` as usual.

    Yields:
        Event: Set once a stop was requested.
    """

    state = InterruptState(logger=logger)
    try:
        previous = signal.signal(signal.SIGINT, state.handle)
    except ValueError:
        # Not the main thread; signals cannot be intercepted here.
        yield state.stop_event
        return
    try:
        yield state.stop_event
    finally:
        signal.signal(signal.SIGINT, previous)


__all__ = ["CLIError", "CLILogger", "InterruptState", "build_cli_logger", "interrupt_guard"]
