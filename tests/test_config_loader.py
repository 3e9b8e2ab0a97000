# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for layered configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from lintcorpus.config import DEFAULT_TOP_N, DEFAULT_URL_TEMPLATE, ConfigError
from lintcorpus.config_loader import ConfigLoader, TomlConfigSource, load_config


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def project(tmp_path: Path, isolated_home: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root


def test_defaults_without_any_file(project: Path) -> None:
    config = load_config(project)

    assert config.registry.top_n == DEFAULT_TOP_N
    assert config.registry.snapshot is None
    assert config.download.url_template == DEFAULT_URL_TEMPLATE
    assert config.corpus.root == project.resolve() / ".lintcorpus" / "corpus"
    assert config.lint.target_dir == project.resolve() / ".lintcorpus" / "target"
    assert config.lint.lints == []


def test_layers_apply_in_precedence_order(project: Path, isolated_home: Path, tmp_path: Path) -> None:
    _write(isolated_home / ".lintcorpus.toml", "[registry]\ntop_n = 10\n\n[download]\nretry_limit = 7\n")
    _write(project / ".lintcorpus.toml", "[registry]\ntop_n = 20\n\n[lint]\nlints = [\"clippy::needless_return\"]\n")
    extra = _write(tmp_path / "ci.toml", "[registry]\ntop_n = 30\n")

    result = ConfigLoader.for_root(project, extra_config=extra).load_with_trace()

    assert result.config.registry.top_n == 30
    assert result.config.download.retry_limit == 7
    assert result.config.lint.lints == ["clippy::needless_return"]
    assert [update.source for update in result.updates if update.field == "top_n"] == [
        str(isolated_home / ".lintcorpus.toml"),
        str(project.resolve() / ".lintcorpus.toml"),
        str(extra),
    ]


def test_pyproject_section_is_read(project: Path) -> None:
    _write(project / "pyproject.toml", '[project]\nname = "x"\n\n[tool.lintcorpus.corpus]\nlatest_only = false\n')

    assert load_config(project).corpus.latest_only is False


def test_relative_paths_resolve_against_project_root(project: Path) -> None:
    _write(project / ".lintcorpus.toml", '[registry]\nsnapshot = "dumps/db"\n\n[output]\nreport_file = "out/r.txt"\n')

    config = load_config(project)

    assert config.registry.snapshot == project.resolve() / "dumps" / "db"
    assert config.output.report_file == project.resolve() / "out" / "r.txt"


def test_includes_merge_before_the_including_file(project: Path) -> None:
    _write(project / "base.toml", "[download]\nconcurrency = 2\nretry_limit = 5\n")
    _write(project / ".lintcorpus.toml", 'include = ["base.toml"]\n\n[download]\nconcurrency = 4\n')

    config = load_config(project)

    assert config.download.concurrency == 4
    assert config.download.retry_limit == 5


def test_circular_include_is_rejected(project: Path) -> None:
    _write(project / "a.toml", 'include = "b.toml"\n')
    _write(project / "b.toml", 'include = "a.toml"\n')

    with pytest.raises(ConfigError, match="Circular include detected"):
        TomlConfigSource(project / "a.toml").load()


def test_environment_variables_are_expanded(project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CI_CONTACT", "ops@example.com")
    monkeypatch.delenv("UNSET_VAR", raising=False)
    _write(project / ".lintcorpus.toml", '[download]\nuser_agent = "bot (${CI_CONTACT}) $UNSET_VAR"\n')

    config = load_config(project)

    assert config.download.user_agent == "bot (ops@example.com) $UNSET_VAR"


def test_unknown_keys_warn_and_fail_in_strict_mode(project: Path) -> None:
    _write(project / ".lintcorpus.toml", "[registry]\ntop_n = 5\nmystery = 1\n\n[extras]\nx = 1\n")

    result = ConfigLoader.for_root(project).load_with_trace()

    assert result.config.registry.top_n == 5
    assert any("unknown key 'registry.mystery'" in warning for warning in result.warnings)
    assert any("unknown section 'extras'" in warning for warning in result.warnings)
    with pytest.raises(ConfigError, match="mystery"):
        load_config(project, strict=True)


@pytest.mark.parametrize(
    "text",
    [
        "[download]\nretry_limit = 0\n",
        "[registry]\ntop_n = \"many\"\n",
        "registry = 3\n",
        "[registry\n",
    ],
)
def test_invalid_configuration_raises(project: Path, text: str) -> None:
    _write(project / ".lintcorpus.toml", text)

    with pytest.raises(ConfigError):
        load_config(project)


def test_missing_explicit_config_raises(project: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_config(project, extra_config=project / "missing.toml")
