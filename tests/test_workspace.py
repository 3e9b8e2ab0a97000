# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for scratch workspace preparation and target directory recycling."""

from __future__ import annotations

from pathlib import Path

import pytest
import toml

from lintcorpus.corpus.store import MARKER_FILE
from lintcorpus.lint import TargetDirPool, prepare_manifest, prepare_workspace

MANIFEST = """
[package]
name = "demo"
version = "0.3.0"

[workspace]
members = ["demo-derive"]

[[bench]]
name = "throughput"
harness = false

[dependencies]
serde = "1"
demo-derive = { path = "demo-derive", version = "0.3.0" }
helper = { path = "../helper" }

[dev-dependencies]
demo-test = { path = "test-utils" }

[target."cfg(unix)".dependencies]
demo-sys = { path = "sys" }
"""


def test_prepare_manifest_detaches_from_workspace(tmp_path: Path) -> None:
    manifest = tmp_path / "Cargo.toml"
    manifest.write_text(MANIFEST, encoding="utf-8")

    assert prepare_manifest(manifest)

    document = toml.load(manifest)
    assert "workspace" not in document
    assert "bench" not in document
    assert document["dependencies"]["serde"] == "1"
    assert document["dependencies"]["demo-derive"] == {"version": "0.3.0"}
    assert document["dependencies"]["helper"] == {"version": "*"}
    assert document["dev-dependencies"]["demo-test"] == {"version": "*"}
    assert document["target"]["cfg(unix)"]["dependencies"]["demo-sys"] == {"version": "*"}


def test_prepare_manifest_leaves_clean_manifest_alone(tmp_path: Path) -> None:
    manifest = tmp_path / "Cargo.toml"
    original = '[package]\nname = "plain"\nversion = "1.0.0"\n\n[dependencies]\nlog = "0.4"\n'
    manifest.write_text(original, encoding="utf-8")

    assert not prepare_manifest(manifest)
    assert manifest.read_text(encoding="utf-8") == original


def test_prepare_manifest_ignores_invalid_toml(tmp_path: Path) -> None:
    manifest = tmp_path / "Cargo.toml"
    manifest.write_text("[package\nname = ", encoding="utf-8")

    assert not prepare_manifest(manifest)


def test_prepare_workspace_copies_without_touching_corpus(tmp_path: Path) -> None:
    source = tmp_path / "corpus" / "demo-0.3.0"
    (source / ".cargo").mkdir(parents=True)
    (source / "src").mkdir()
    (source / "Cargo.toml").write_text(MANIFEST, encoding="utf-8")
    (source / "Cargo.lock").write_text("# lock\n", encoding="utf-8")
    (source / ".cargo" / "config").write_text("[build]\n", encoding="utf-8")
    (source / "src" / "lib.rs").write_text("", encoding="utf-8")
    (source / MARKER_FILE).write_text("{}", encoding="utf-8")

    manifest = prepare_workspace(source, tmp_path / "scratch" / "demo-0.3.0")

    copy = manifest.parent
    assert (copy / "src" / "lib.rs").is_file()
    assert not (copy / "Cargo.lock").exists()
    assert not (copy / ".cargo" / "config").exists()
    assert not (copy / MARKER_FILE).exists()
    assert "workspace" not in toml.load(manifest)
    assert (source / "Cargo.lock").exists()
    assert (source / "Cargo.toml").read_text(encoding="utf-8") == MANIFEST


def test_prepare_workspace_requires_manifest(tmp_path: Path) -> None:
    source = tmp_path / "empty-0.1.0"
    source.mkdir()

    with pytest.raises(FileNotFoundError):
        prepare_workspace(source, tmp_path / "scratch")


def test_target_dirs_are_recycled_after_interval(tmp_path: Path) -> None:
    pool = TargetDirPool(tmp_path / "target", reset_interval=2)

    with pool.acquire() as first:
        (first / "artefact").write_text("x", encoding="utf-8")
    with pool.acquire() as second:
        assert second == first
        assert (second / "artefact").exists()
    with pool.acquire() as third:
        assert third == first
        assert not (third / "artefact").exists()


def test_concurrent_holders_get_distinct_directories(tmp_path: Path) -> None:
    pool = TargetDirPool(tmp_path / "target")

    with pool.acquire() as first, pool.acquire() as second:
        assert first != second
        assert first.is_dir()
        assert second.is_dir()

    pool.cleanup()
    assert not (tmp_path / "target").exists()


def test_cleanup_keeps_foreign_content_of_shared_target_dir(tmp_path: Path) -> None:
    shared = tmp_path / "target"
    (shared / "release").mkdir(parents=True)
    (shared / "release" / "app").write_text("binary", encoding="utf-8")
    pool = TargetDirPool(shared)

    with pool.acquire() as slot:
        (slot / "artefact").write_text("x", encoding="utf-8")

    pool.cleanup()
    assert (shared / "release" / "app").read_text(encoding="utf-8") == "binary"
    assert not slot.exists()
    assert shared.is_dir()
