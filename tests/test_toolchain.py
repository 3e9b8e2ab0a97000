# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for linter discovery, building and invocation."""

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest
from support import FakeRunner, result

from lintcorpus.errors import LinterBuildError
from lintcorpus.lint import LinterCommand, build_linter, default_report_name, explicit_linter, normalize_lints
from lintcorpus.lint.toolchain import normalize_lint, read_toolchain_channel


def test_lint_names_are_normalised() -> None:
    assert normalize_lint("needless-return") == "clippy::needless_return"
    assert normalize_lint("clippy::needless_return") == "clippy::needless_return"
    assert normalize_lint("unused-variables", prefix="") == "unused_variables"
    assert normalize_lints(["a-b", " ", "clippy::a_b"]) == frozenset({"clippy::a_b"})


def test_invocation_without_selection_keeps_linter_defaults(tmp_path: Path) -> None:
    linter = LinterCommand(prefix=("cargo", "clippy"), identity="clippy 0.1")

    args = linter.invocation(tmp_path / "Cargo.toml", tmp_path / "target", [])

    assert args == [
        "cargo",
        "clippy",
        "--manifest-path",
        str(tmp_path / "Cargo.toml"),
        "--quiet",
        "--message-format=json",
        "--target-dir",
        str(tmp_path / "target"),
        "--",
        "--cap-lints",
        "warn",
        "-C",
        "incremental=false",
    ]


def test_invocation_with_selection_silences_everything_else(tmp_path: Path) -> None:
    linter = LinterCommand(prefix=("cargo", "clippy"), identity="clippy 0.1")

    args = linter.invocation(tmp_path / "Cargo.toml", tmp_path / "target", {"clippy::b", "clippy::a"})

    tail = args[args.index("--") + 1 :]
    assert tail == [
        "--cap-lints",
        "warn",
        "--allow",
        "clippy::all",
        "--warn",
        "clippy::a",
        "--warn",
        "clippy::b",
        "-C",
        "incremental=false",
    ]


@pytest.mark.parametrize(
    ("filename", "content", "expected"),
    [
        ("rust-toolchain", '[toolchain]\nchannel = "nightly-2024-05-02"\n', "nightly-2024-05-02"),
        ("rust-toolchain.toml", '[toolchain]\nchannel = "nightly"\ncomponents = ["rustc-dev"]\n', "nightly"),
        ("rust-toolchain", "nightly-2021-03-11\n", "nightly-2021-03-11"),
    ],
)
def test_toolchain_channel_is_read(tmp_path: Path, filename: str, content: str, expected: str) -> None:
    (tmp_path / filename).write_text(content, encoding="utf-8")

    assert read_toolchain_channel(tmp_path) == expected


def test_missing_toolchain_file_is_a_build_error(tmp_path: Path) -> None:
    with pytest.raises(LinterBuildError, match="no rust-toolchain"):
        read_toolchain_channel(tmp_path)


def test_toolchain_without_channel_is_a_build_error(tmp_path: Path) -> None:
    (tmp_path / "rust-toolchain.toml").write_text('[toolchain]\nprofile = "minimal"\n', encoding="utf-8")

    with pytest.raises(LinterBuildError, match="channel"):
        read_toolchain_channel(tmp_path)


def _linter_tree(root: Path) -> Path:
    root.mkdir()
    (root / "Cargo.toml").write_text('[package]\nname = "clippy"\nversion = "0.1.80"\n', encoding="utf-8")
    (root / "rust-toolchain").write_text('[toolchain]\nchannel = "nightly-2024-06-13"\n', encoding="utf-8")
    return root


def test_build_linter_builds_then_runs_via_cargo(tmp_path: Path) -> None:
    source = _linter_tree(tmp_path / "clippy")

    def respond(args: list[str]) -> object:
        if args[-1] == "--version":
            return result(args, "clippy 0.1.80 (abc123 2024-06-13)\n")
        return result(args)

    runner = FakeRunner(respond)  # type: ignore[arg-type]
    linter = build_linter(source, runner=runner)

    manifest_arg = f"--manifest-path={source.resolve() / 'Cargo.toml'}"
    build_args, _ = runner.calls[0]
    assert build_args == ["cargo", "+nightly-2024-06-13", "build", manifest_arg, "--release"]
    assert linter.prefix == (
        "cargo",
        "+nightly-2024-06-13",
        "--quiet",
        "run",
        manifest_arg,
        "--release",
        "--bin",
        "cargo-clippy",
        "--",
        "--",
    )
    assert linter.identity == "clippy 0.1.80 (abc123 2024-06-13)"
    assert linter.source_dir == source.resolve()


def test_built_linter_forwards_manifest_path_past_the_subcommand_slot(tmp_path: Path) -> None:
    source = _linter_tree(tmp_path / "clippy")
    linter = build_linter(source, runner=FakeRunner())

    args = linter.invocation(tmp_path / "pkg" / "Cargo.toml", tmp_path / "target", [])

    forwarded = args[args.index("--") + 1 :]
    # cargo-clippy drops argv[0] and the subcommand slot before parsing.
    assert forwarded[1:3] == ["--manifest-path", str(tmp_path / "pkg" / "Cargo.toml")]


def test_failed_build_raises(tmp_path: Path) -> None:
    source = _linter_tree(tmp_path / "clippy")
    runner = FakeRunner(lambda args: result(args, returncode=101, stderr="error[E0425]: cannot find value"))

    with pytest.raises(LinterBuildError, match="E0425"):
        build_linter(source, runner=runner)


def test_tree_without_manifest_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(LinterBuildError, match="Cargo.toml"):
        build_linter(tmp_path, runner=FakeRunner())


def test_explicit_linter_splits_command_and_probes_version() -> None:
    runner = FakeRunner(lambda args: result(args, "clippy 0.1.79\n"))

    linter = explicit_linter("cargo clippy", runner=runner)

    assert linter.prefix == ("cargo", "clippy")
    assert linter.identity == "clippy 0.1.79"
    assert runner.calls[0][0] == ["cargo", "clippy", "--version"]


def test_explicit_linter_falls_back_to_command_text() -> None:
    runner = FakeRunner(lambda args: result(args, returncode=1))

    assert explicit_linter(["cargo", "clippy"], runner=runner).identity == "cargo clippy"
    with pytest.raises(LinterBuildError):
        explicit_linter("  ", runner=runner)


def test_default_report_name_uses_branch_and_date(tmp_path: Path) -> None:
    runner = FakeRunner(lambda args: result(args, "feature/new-lint\n"))

    name = default_report_name(tmp_path, today=date(2024, 6, 13), runner=runner)

    assert name == Path("feature-new-lint-2024-06-13.txt")
    assert runner.calls[0][0] == ["git", "branch", "--show-current"]


def test_default_report_name_without_branch(tmp_path: Path) -> None:
    detached = FakeRunner(lambda args: result(args, ""))

    assert default_report_name(tmp_path, today=date(2024, 6, 13), runner=detached) == Path("2024-06-13.txt")
    assert default_report_name(None, today=date(2024, 6, 13)) == Path("2024-06-13.txt")
