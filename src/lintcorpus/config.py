# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Configuration models for the corpus acquisition and lint stages."""

from __future__ import annotations

import math
import os
from pathlib import Path
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_TOP_N: Final[int] = 500
DEFAULT_URL_TEMPLATE: Final[str] = "https://static.crates.io/crates/{name}/{name}-{version}.crate"
DEFAULT_USER_AGENT: Final[str] = "lintcorpus/0.1 (corpus regression testing)"
DEFAULT_EXCLUDE_PREFIXES: Final[tuple[str, ...]] = ("rustc-ap", "fast-rustc-ap")
DEFAULT_LINT_PREFIX: Final[str] = "clippy::"


class ConfigError(Exception):
    """Raised when configuration input is invalid."""


def default_parallel_jobs() -> int:
    """Return 75% of available CPU cores (minimum of 1)."""
    cores = os.cpu_count() or 1
    return max(1, math.floor(cores * 0.75))


class RegistryConfig(BaseModel):
    """Where the registry snapshot lives and how seeds are chosen."""

    model_config = ConfigDict(validate_assignment=True)

    snapshot: Path | None = None
    top_n: int = Field(default=DEFAULT_TOP_N, ge=0)
    exclude_prefixes: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDE_PREFIXES))
    include_optional: bool = True


class DownloadConfig(BaseModel):
    """Network behaviour of the archive downloader."""

    model_config = ConfigDict(validate_assignment=True)

    concurrency: int = Field(default=8, ge=1)
    retry_limit: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=1.0, ge=0)
    max_backoff_seconds: float = Field(default=30.0, ge=0)
    request_timeout: float = Field(default=60.0, gt=0)
    min_request_interval: float = Field(default=0.05, ge=0)
    url_template: str = DEFAULT_URL_TEMPLATE
    user_agent: str = DEFAULT_USER_AGENT
    cache_reuse: bool = True

    @field_validator("url_template")
    @classmethod
    def _check_template(cls, value: str) -> str:
        if "{name}" not in value or "{version}" not in value:
            raise ValueError("url_template must contain {name} and {version} placeholders")
        return value


class CorpusConfig(BaseModel):
    """Location of the on-disk corpus."""

    model_config = ConfigDict(validate_assignment=True)

    root: Path = Field(default_factory=lambda: Path(".lintcorpus") / "corpus")
    latest_only: bool = True


class LintConfig(BaseModel):
    """Linter selection and execution limits."""

    model_config = ConfigDict(validate_assignment=True)

    lints: list[str] = Field(default_factory=list)
    linter_dir: Path | None = None
    command: list[str] = Field(default_factory=list)
    concurrency: int = Field(default_factory=default_parallel_jobs, ge=1)
    timeout: float = Field(default=600.0, gt=0)
    target_dir: Path = Field(default_factory=lambda: Path(".lintcorpus") / "target")
    target_dir_reset_interval: int = Field(default=256, ge=0)
    lint_prefix: str = DEFAULT_LINT_PREFIX


class OutputConfig(BaseModel):
    """Configuration for controlling console output and report artifacts."""

    model_config = ConfigDict(validate_assignment=True)

    report_file: Path | None = None
    json_report: Path | None = None
    max_samples: int = Field(default=10, ge=0)
    emoji: bool = True
    color: bool = True
    verbose: bool = False
    quiet: bool = False


class Config(BaseModel):
    """Top-level configuration object."""

    model_config = ConfigDict(validate_assignment=True)

    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    corpus: CorpusConfig = Field(default_factory=CorpusConfig)
    lint: LintConfig = Field(default_factory=LintConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-compatible dictionary of the configuration."""
        return self.model_dump(mode="json")


SECTION_NAMES: Final[tuple[str, ...]] = tuple(Config.model_fields)


__all__ = [
    "DEFAULT_LINT_PREFIX",
    "DEFAULT_TOP_N",
    "DEFAULT_URL_TEMPLATE",
    "SECTION_NAMES",
    "Config",
    "ConfigError",
    "CorpusConfig",
    "DownloadConfig",
    "LintConfig",
    "OutputConfig",
    "RegistryConfig",
    "default_parallel_jobs",
]
