# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Safe wrappers around ``subprocess`` execution."""

from __future__ import annotations

import os
import shutil
import signal

# Bandit: subprocess usage is intentional. Arguments are passed as lists and
# ``shell=True`` is never used.
import subprocess  # nosec B404
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

TIMEOUT_RETURNCODE = 124


class SubprocessExecutionError(RuntimeError):
    """Raised when a subprocess exits with a non-zero status while ``check`` is true."""

    def __init__(
        self,
        command: Sequence[str],
        returncode: int,
        stdout: str | None,
        stderr: str | None,
    ) -> None:
        super().__init__(
            f"Command '{command[0]}' exited with status {returncode}. stderr: {stderr or '<none>'}",
        )
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Captured outcome of one subprocess invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False
    duration: float = 0.0


CommandRunner = Callable[..., CommandResult]


def _normalize_args(args: Sequence[str]) -> list[str]:
    if not args:
        msg = "subprocess command requires at least one argument"
        raise ValueError(msg)

    head, *rest = args
    head_path = Path(head)
    if head_path.is_absolute():
        return [str(head_path), *rest]

    resolved = shutil.which(head)
    if resolved is None:
        msg = f"Executable '{head}' was not found on PATH"
        raise FileNotFoundError(msg)
    return [resolved, *rest]


def _kill_group(process: subprocess.Popen[str]) -> None:
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        process.kill()


def run_command(
    args: Sequence[str],
    *,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    check: bool = False,
    timeout: float | None = None,
) -> CommandResult:
    """Execute *args* and capture its output.

    The child runs in its own session so a timeout can kill the whole process
    group, including compilers the linter spawned. A timed out command reports
    return code ``124`` and ``timed_out=True``.

    Args:
        args: Command and arguments.
        cwd: Working directory for the child.
        env: Full environment for the child, inherited when ``None``.
        check: Raise :class:`SubprocessExecutionError` on a non-zero exit.
        timeout: Wall-clock limit in seconds.

    Returns:
        CommandResult: Captured output and status.
    """

    normalized = _normalize_args(args)
    started = time.monotonic()
    # Bandit: argument lists come from configuration, no shell expansion.
    process = subprocess.Popen(  # nosec B603
        normalized,
        cwd=str(cwd) if cwd is not None else None,
        env=dict(env) if env is not None else None,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        errors="replace",
        start_new_session=True,
    )
    timed_out = False
    try:
        stdout, stderr = process.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        timed_out = True
        _kill_group(process)
        stdout, stderr = process.communicate()
        timeout_msg = f"Command timed out after {timeout:.1f}s"
        stderr = f"{stderr}\n{timeout_msg}" if stderr else timeout_msg
    except BaseException:
        _kill_group(process)
        process.wait()
        raise
    result = CommandResult(
        args=tuple(normalized),
        returncode=TIMEOUT_RETURNCODE if timed_out else process.returncode,
        stdout=stdout or "",
        stderr=stderr or "",
        timed_out=timed_out,
        duration=time.monotonic() - started,
    )
    if check and result.returncode != 0:
        raise SubprocessExecutionError(normalized, result.returncode, result.stdout, result.stderr)
    return result


__all__ = [
    "TIMEOUT_RETURNCODE",
    "CommandResult",
    "CommandRunner",
    "SubprocessExecutionError",
    "run_command",
]
