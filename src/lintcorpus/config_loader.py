# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Config loading utilities with layered precedence and traceability."""

from __future__ import annotations

import copy
import logging
import os
import re
import tomllib
from collections.abc import Iterable, Mapping, MutableMapping, Sequence
from pathlib import Path
from typing import Any, Final, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import SECTION_NAMES, Config, ConfigError

DEFAULT_INCLUDE_KEY: Final[str] = "include"
PYPROJECT_TOOL_KEY: Final[str] = "tool"
PYPROJECT_SECTION_KEY: Final[str] = "lintcorpus"
CONFIG_FILENAME: Final[str] = ".lintcorpus.toml"

_ENV_VAR_PATTERN: Final[re.Pattern[str]] = re.compile(r"\$(\w+)|\$\{([^}]+)\}")
_PATH_FIELDS: Final[dict[str, tuple[str, ...]]] = {
    "registry": ("snapshot",),
    "corpus": ("root",),
    "lint": ("linter_dir", "target_dir"),
    "output": ("report_file", "json_report"),
}

LOGGER = logging.getLogger(__name__)

_TOML_CACHE: dict[tuple[Path, int], Mapping[str, Any]] = {}


class ConfigSource(Protocol):
    """Anything that can contribute a configuration fragment."""

    name: str

    def load(self) -> Mapping[str, Any]:
        """Return the raw configuration fragment."""
        ...


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], Mapping) and isinstance(value, Mapping):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _expand_env(data: Mapping[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    return {key: _expand_env_value(value, env) for key, value in data.items()}


def _expand_env_value(value: Any, env: Mapping[str, str]) -> Any:
    if isinstance(value, str):
        return _expand_env_string(value, env)
    if isinstance(value, Mapping):
        return {k: _expand_env_value(v, env) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env_value(v, env) for v in value]
    return value


def _expand_env_string(value: str, env: Mapping[str, str]) -> str:
    def _replace(match: re.Match[str]) -> str:
        key = match.group(1) or match.group(2)
        if key is None:
            return match.group(0)
        return env.get(key, match.group(0))

    return _ENV_VAR_PATTERN.sub(_replace, value)


class DefaultConfigSource:
    """Return the built-in defaults as a configuration fragment."""

    name = "defaults"

    def load(self) -> Mapping[str, Any]:
        return Config().to_dict()


class TomlConfigSource:
    """Load configuration data from a TOML document with include support."""

    def __init__(
        self,
        path: Path,
        *,
        name: str | None = None,
        include_key: str = DEFAULT_INCLUDE_KEY,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._root_path = path
        self.name = name or str(path)
        self._include_key = include_key
        self._env = env if env is not None else os.environ

    def load(self) -> Mapping[str, Any]:
        return self._load(self._root_path, ())

    def _load(self, path: Path, stack: tuple[Path, ...]) -> Mapping[str, Any]:
        if not path.exists():
            return {}
        if path in stack:
            include_chain = " -> ".join(str(entry) for entry in (*stack, path))
            raise ConfigError(f"Circular include detected: {include_chain}")
        resolved = path.resolve()
        cache_key = (resolved, resolved.stat().st_mtime_ns)
        if cached := _TOML_CACHE.get(cache_key):
            data = copy.deepcopy(cached)
        else:
            try:
                with resolved.open("rb") as handle:
                    data = tomllib.load(handle)
            except tomllib.TOMLDecodeError as exc:
                raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc
            _TOML_CACHE[cache_key] = copy.deepcopy(data)
        document: dict[str, Any] = dict(data)
        includes = document.pop(self._include_key, None)
        merged: dict[str, Any] = {}
        for include_path in self._coerce_includes(includes, path.parent):
            fragment = self._load(include_path, stack + (path,))
            merged = _deep_merge(merged, fragment)
        merged = _deep_merge(merged, document)
        return _expand_env(merged, self._env)

    def _coerce_includes(self, raw: Any, base_dir: Path) -> Iterable[Path]:
        if raw is None:
            return []
        if isinstance(raw, (str, Path)):
            return [self._resolve_path(Path(raw), base_dir)]
        if isinstance(raw, MutableMapping):
            return [self._resolve_path(Path(value), base_dir) for value in raw.values()]
        if isinstance(raw, Iterable):
            return [self._resolve_path(Path(item), base_dir) for item in raw]
        raise ConfigError(f"Unsupported include declaration: {raw!r}")

    @staticmethod
    def _resolve_path(path: Path, base_dir: Path) -> Path:
        return path if path.is_absolute() else (base_dir / path)


class PyProjectConfigSource(TomlConfigSource):
    """Read configuration from ``[tool.lintcorpus]`` within ``pyproject.toml``."""

    def __init__(self, path: Path) -> None:
        super().__init__(path, name=str(path))

    def load(self) -> Mapping[str, Any]:
        data = super().load()
        tool_section = data.get(PYPROJECT_TOOL_KEY)
        if not isinstance(tool_section, Mapping):
            return {}
        section = tool_section.get(PYPROJECT_SECTION_KEY)
        if not isinstance(section, Mapping):
            return {}
        return dict(section)


class FieldUpdate(BaseModel):
    """Description of a single configuration field mutation."""

    model_config = ConfigDict(validate_assignment=True)

    section: str
    field: str
    source: str
    value: Any


class ConfigLoadResult(BaseModel):
    """Container bundling a resolved config with provenance metadata."""

    model_config = ConfigDict(validate_assignment=True)

    config: Config
    updates: list[FieldUpdate] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ConfigLoader:
    """Apply layered configuration sources with predictable precedence."""

    def __init__(self, *, project_root: Path, sources: Sequence[ConfigSource]) -> None:
        """Initialise a loader that merges the supplied configuration sources.

        Args:
            project_root: Directory that anchors relative paths.
            sources: Ordered collection of configuration sources, lowest
                precedence first.
        """

        if not sources:
            raise ValueError("at least one configuration source is required")
        self._sources = list(sources)
        self._project_root = project_root.resolve()

    @classmethod
    def for_root(
        cls,
        project_root: Path,
        *,
        user_config: Path | None = None,
        project_config: Path | None = None,
        extra_config: Path | None = None,
    ) -> ConfigLoader:
        """Build a loader that respects user, project, and default sources.

        Args:
            project_root: Workspace root used to discover configuration files.
            user_config: Optional path to a user-level override.
            project_config: Optional project-level override path.
            extra_config: Explicit ``--config`` file applied last.

        Returns:
            ConfigLoader: Loader configured with default precedence ordering.
        """

        root = project_root.resolve()
        home_config = user_config if user_config is not None else Path.home() / CONFIG_FILENAME
        project_file = project_config if project_config is not None else root / CONFIG_FILENAME
        pyproject = root / "pyproject.toml"
        sources: list[ConfigSource] = [
            DefaultConfigSource(),
            TomlConfigSource(home_config, name=str(home_config)),
        ]
        if pyproject.exists():
            sources.append(PyProjectConfigSource(pyproject))
        sources.append(TomlConfigSource(project_file, name=str(project_file)))
        if extra_config is not None:
            if not extra_config.exists():
                raise ConfigError(f"Configuration file not found: {extra_config}")
            sources.append(TomlConfigSource(extra_config, name=str(extra_config)))
        return cls(project_root=root, sources=sources)

    def load(self, *, strict: bool = False) -> Config:
        """Return the resolved configuration without provenance metadata."""

        return self.load_with_trace(strict=strict).config

    def load_with_trace(self, *, strict: bool = False) -> ConfigLoadResult:
        """Return the resolved configuration with trace metadata.

        Args:
            strict: When ``True`` raise if warnings were emitted during merge.

        Returns:
            ConfigLoadResult: Resolved configuration and provenance details.

        Raises:
            ConfigError: If a source holds invalid values, or if ``strict``
                is set and unknown keys were seen.
        """

        merged: dict[str, Any] = {}
        updates: list[FieldUpdate] = []
        warnings: list[str] = []
        for source in self._sources:
            fragment = source.load()
            if not fragment:
                continue
            fragment = self._normalise(fragment, source.name, warnings)
            if source.name != DefaultConfigSource.name:
                updates.extend(
                    FieldUpdate(section=section, field=key, source=source.name, value=value)
                    for section, values in fragment.items()
                    for key, value in values.items()
                )
            merged = _deep_merge(merged, fragment)
        if strict and warnings:
            raise ConfigError("; ".join(warnings))
        try:
            config = Config.model_validate(merged)
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc
        return ConfigLoadResult(config=config, updates=updates, warnings=warnings)

    def _normalise(
        self,
        fragment: Mapping[str, Any],
        source: str,
        warnings: list[str],
    ) -> dict[str, dict[str, Any]]:
        result: dict[str, dict[str, Any]] = {}
        for section, values in fragment.items():
            if section not in SECTION_NAMES:
                warnings.append(f"{source}: unknown section '{section}'")
                continue
            if not isinstance(values, Mapping):
                raise ConfigError(f"{source}: section '{section}' must be a table")
            known = type(getattr(Config(), section)).model_fields
            cleaned: dict[str, Any] = {}
            for key, value in values.items():
                if key not in known:
                    warnings.append(f"{source}: unknown key '{section}.{key}'")
                    continue
                if key in _PATH_FIELDS.get(section, ()) and isinstance(value, str):
                    value = str(self._resolve_path(value))
                cleaned[key] = value
            result[section] = cleaned
        return result

    def _resolve_path(self, raw: str) -> Path:
        path = Path(raw).expanduser()
        return path if path.is_absolute() else self._project_root / path


def load_config(
    project_root: Path,
    *,
    extra_config: Path | None = None,
    strict: bool = False,
) -> Config:
    """Load configuration for ``project_root`` using the default precedence."""

    loader = ConfigLoader.for_root(project_root, extra_config=extra_config)
    result = loader.load_with_trace(strict=strict)
    for warning in result.warnings:
        LOGGER.warning("%s", warning)
    return result.config


__all__ = [
    "CONFIG_FILENAME",
    "ConfigLoadResult",
    "ConfigLoader",
    "ConfigSource",
    "DefaultConfigSource",
    "FieldUpdate",
    "PyProjectConfigSource",
    "TomlConfigSource",
    "load_config",
]
