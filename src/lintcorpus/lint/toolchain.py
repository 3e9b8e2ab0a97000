# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Locate, build and describe the linter binary."""

from __future__ import annotations

import logging
import shlex
import tomllib
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Final

from ..config import DEFAULT_LINT_PREFIX
from ..errors import LinterBuildError
from ..process_utils import CommandRunner, run_command

LOGGER = logging.getLogger(__name__)

TOOLCHAIN_FILES: Final[tuple[str, ...]] = ("rust-toolchain", "rust-toolchain.toml")
LINTER_BIN: Final[str] = "cargo-clippy"
BUILD_TIMEOUT: Final[float] = 3600.0
PROBE_TIMEOUT: Final[float] = 120.0


def normalize_lint(name: str, prefix: str = DEFAULT_LINT_PREFIX) -> str:
    """Return ``name`` in the form the linter reports it.

    Example:
        >>> normalize_lint("needless-return")
        'clippy::needless_return'
    """

    cleaned = name.strip().replace("-", "_")
    if prefix and not cleaned.startswith(prefix):
        cleaned = f"{prefix}{cleaned}"
    return cleaned


def normalize_lints(names: Iterable[str], prefix: str = DEFAULT_LINT_PREFIX) -> frozenset[str]:
    """Normalise every non-blank lint name in ``names``."""

    return frozenset(normalize_lint(name, prefix) for name in names if name.strip())


@dataclass(frozen=True, slots=True)
class LinterCommand:
    """Command prefix that runs the linter on one manifest."""

    prefix: tuple[str, ...]
    identity: str
    source_dir: Path | None = None
    lint_prefix: str = DEFAULT_LINT_PREFIX

    def invocation(self, manifest_path: Path, target_dir: Path, lints: Iterable[str]) -> list[str]:
        """Return the full argument list for linting ``manifest_path``.

        Lints are capped at warning level so errors only come from the
        compiler. With a non-empty selection every lint in the linter's
        namespace is silenced except the requested ones.
        """

        args = [
            *self.prefix,
            "--manifest-path",
            str(manifest_path),
            "--quiet",
            "--message-format=json",
            "--target-dir",
            str(target_dir),
            "--",
            "--cap-lints",
            "warn",
        ]
        selected = sorted(lints)
        if selected:
            args.extend(["--allow", f"{self.lint_prefix}all"])
            for lint in selected:
                args.extend(["--warn", lint])
        args.extend(["-C", "incremental=false"])
        return args


def read_toolchain_channel(source_dir: Path) -> str:
    """Return the toolchain channel pinned by the linter source tree.

    Raises:
        LinterBuildError: If no toolchain file exists or it names no channel.
    """

    for name in TOOLCHAIN_FILES:
        path = source_dir / name
        if not path.is_file():
            continue
        text = path.read_text(encoding="utf-8")
        try:
            document = tomllib.loads(text)
        except tomllib.TOMLDecodeError:
            # Legacy toolchain files hold a bare channel name.
            channel = text.strip()
            if channel and "\n" not in channel:
                return channel
            raise LinterBuildError(f"error parsing '{path}': not TOML and not a channel name") from None
        toolchain = document.get("toolchain")
        if not isinstance(toolchain, dict):
            raise LinterBuildError(f"error parsing '{path}': missing table 'toolchain'")
        channel = toolchain.get("channel")
        if not isinstance(channel, str) or not channel:
            raise LinterBuildError(f"error parsing '{path}': missing field 'channel'")
        return channel
    raise LinterBuildError(f"no rust-toolchain file in '{source_dir}'")


def _probe_version(prefix: Sequence[str], runner: CommandRunner) -> str | None:
    try:
        result = runner([*prefix, "--version"], timeout=PROBE_TIMEOUT)
    except (OSError, ValueError) as exc:
        LOGGER.debug("linter version probe failed: %s", exc)
        return None
    if result.returncode != 0:
        return None
    line = result.stdout.strip().splitlines()
    return line[0] if line else None


def build_linter(
    source_dir: Path,
    *,
    lint_prefix: str = DEFAULT_LINT_PREFIX,
    runner: CommandRunner = run_command,
) -> LinterCommand:
    """Build the linter from ``source_dir`` and return how to run it.

    Args:
        source_dir: Linter source tree holding ``Cargo.toml`` and a
            ``rust-toolchain`` file.
        lint_prefix: Namespace of the linter's lints.
        runner: Subprocess runner.

    Returns:
        LinterCommand: Prefix running the freshly built binary via cargo.

    Raises:
        LinterBuildError: If the toolchain cannot be determined or the build fails.
    """

    source_dir = source_dir.resolve()
    manifest = source_dir / "Cargo.toml"
    if not manifest.is_file():
        raise LinterBuildError(f"'{source_dir}' has no Cargo.toml")
    channel = f"+{read_toolchain_channel(source_dir)}"
    manifest_arg = f"--manifest-path={manifest}"
    LOGGER.debug("building linter in %s with toolchain %s", source_dir, channel)
    try:
        result = runner(["cargo", channel, "build", manifest_arg, "--release"], timeout=BUILD_TIMEOUT)
    except (OSError, ValueError) as exc:
        raise LinterBuildError(f"error running cargo: {exc}") from exc
    if result.returncode != 0:
        raise LinterBuildError(f"failed to build the linter ({result.returncode}):\n{result.stderr}")
    # cargo-clippy skips its first argument, which cargo fills with the subcommand name.
    prefix = ("cargo", channel, "--quiet", "run", manifest_arg, "--release", "--bin", LINTER_BIN, "--", "--")
    identity = _probe_version(prefix, runner) or f"{LINTER_BIN} ({source_dir})"
    return LinterCommand(prefix=prefix, identity=identity, source_dir=source_dir, lint_prefix=lint_prefix)


def explicit_linter(
    command: Sequence[str] | str,
    *,
    lint_prefix: str = DEFAULT_LINT_PREFIX,
    runner: CommandRunner = run_command,
) -> LinterCommand:
    """Return a :class:`LinterCommand` for an already installed linter.

    Raises:
        LinterBuildError: If ``command`` is empty.
    """

    parts = tuple(shlex.split(command) if isinstance(command, str) else command)
    if not parts:
        raise LinterBuildError("linter command is empty")
    identity = _probe_version(parts, runner) or shlex.join(parts)
    return LinterCommand(prefix=parts, identity=identity, lint_prefix=lint_prefix)


def current_branch(source_dir: Path, *, runner: CommandRunner = run_command) -> str | None:
    """Return the checked out git branch of ``source_dir``, if any."""

    try:
        result = runner(["git", "branch", "--show-current"], cwd=source_dir, timeout=PROBE_TIMEOUT)
    except (OSError, ValueError):
        return None
    branch = result.stdout.strip()
    if result.returncode != 0 or not branch:
        return None
    return branch.replace("/", "-")


def default_report_name(
    source_dir: Path | None,
    *,
    today: date | None = None,
    runner: CommandRunner = run_command,
) -> Path:
    """Return ``<branch>-<YYYY-MM-DD>.txt``, or ``<YYYY-MM-DD>.txt`` without a branch."""

    stamp = (today or date.today()).isoformat()
    branch = current_branch(source_dir, runner=runner) if source_dir is not None else None
    return Path(f"{branch}-{stamp}.txt" if branch else f"{stamp}.txt")


__all__ = [
    "LinterCommand",
    "build_linter",
    "current_branch",
    "default_report_name",
    "explicit_linter",
    "normalize_lint",
    "normalize_lints",
    "read_toolchain_channel",
]
