# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Semantic versions and Cargo-style version requirements.

Versions order by SemVer 2.0 precedence: numeric ``major.minor.patch``, then
pre-release identifiers (numeric identifiers below alphanumeric ones, a
release above every pre-release of the same triple). Build metadata is kept
for display but never affects ordering or equality.

Requirements follow Cargo: a comma separated list of comparators, each with
an operator (``^`` when omitted, ``~``, ``=``, ``>``, ``>=``, ``<``, ``<=``)
or a wildcard (``*``, ``x``, ``X``) in place of a version component.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from functools import total_ordering
from typing import Final

_VERSION_RE: Final[re.Pattern[str]] = re.compile(
    r"^\s*v?(?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)"
    r"(?:-(?P<pre>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?\s*$",
)
_PARTIAL_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?P<major>\d+|[*xX])(?:\.(?P<minor>\d+|[*xX]))?(?:\.(?P<patch>\d+|[*xX]))?"
    r"(?:-(?P<pre>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$",
)
_COMPARATOR_RE: Final[re.Pattern[str]] = re.compile(r"^(?P<op>>=|<=|=|>|<|~|\^)?\s*(?P<version>\S+)$")
_WILDCARDS: Final[frozenset[str]] = frozenset({"*", "x", "X"})

PreRelease = tuple[int | str, ...]


class InvalidVersion(ValueError):
    """Raised when a string is not a valid semantic version."""


class InvalidRequirement(ValueError):
    """Raised when a version requirement cannot be parsed."""


def _parse_pre(raw: str | None) -> PreRelease:
    if not raw:
        return ()
    return tuple(int(part) if part.isdigit() else part for part in raw.split("."))


def _pre_key(pre: PreRelease) -> tuple[int, tuple[tuple[int, int, str], ...]]:
    """Return a sort key where a missing pre-release sorts above any pre-release."""

    if not pre:
        return (1, ())
    return (
        0,
        tuple((0, part, "") if isinstance(part, int) else (1, 0, part) for part in pre),
    )


@total_ordering
@dataclass(frozen=True, slots=True, eq=False)
class Version:
    """A fully specified semantic version."""

    major: int
    minor: int
    patch: int
    pre: PreRelease = ()
    build: str = ""

    @classmethod
    def parse(cls, text: str) -> Version:
        """Parse ``text`` into a :class:`Version`.

        Args:
            text: Version string such as ``"1.2.3-beta.1"``.

        Returns:
            Version: Parsed version.

        Raises:
            InvalidVersion: If ``text`` is not a semantic version.
        """

        match = _VERSION_RE.match(text)
        if match is None:
            raise InvalidVersion(f"invalid version '{text}'")
        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor")),
            patch=int(match.group("patch")),
            pre=_parse_pre(match.group("pre")),
            build=match.group("build") or "",
        )

    @property
    def is_prerelease(self) -> bool:
        """Return ``True`` when the version carries pre-release identifiers."""

        return bool(self.pre)

    @property
    def triple(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def sort_key(self) -> tuple[int, int, int, tuple[int, tuple[tuple[int, int, str], ...]]]:
        """Return the precedence key used for ordering and equality."""

        return (self.major, self.minor, self.patch, _pre_key(self.pre))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.sort_key() == other.sort_key()

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __hash__(self) -> int:
        return hash(self.sort_key())

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.pre:
            text += "-" + ".".join(str(part) for part in self.pre)
        if self.build:
            text += f"+{self.build}"
        return text


class Op(str, Enum):
    """Comparator operators understood by Cargo requirements."""

    EXACT = "="
    GREATER = ">"
    GREATER_EQ = ">="
    LESS = "<"
    LESS_EQ = "<="
    TILDE = "~"
    CARET = "^"
    WILDCARD = "*"


@dataclass(frozen=True, slots=True)
class Comparator:
    """One ``op version`` clause of a requirement; missing parts are ``None``."""

    op: Op
    major: int
    minor: int | None = None
    patch: int | None = None
    pre: PreRelease = ()

    def matches(self, version: Version) -> bool:
        """Return ``True`` when ``version`` satisfies this comparator."""

        if self.op in {Op.EXACT, Op.WILDCARD}:
            return self._matches_exact(version)
        if self.op is Op.GREATER:
            return self._matches_greater(version)
        if self.op is Op.GREATER_EQ:
            return self._matches_exact(version) or self._matches_greater(version)
        if self.op is Op.LESS:
            return self._matches_less(version)
        if self.op is Op.LESS_EQ:
            return self._matches_exact(version) or self._matches_less(version)
        if self.op is Op.TILDE:
            return self._matches_tilde(version)
        return self._matches_caret(version)

    def _matches_exact(self, version: Version) -> bool:
        if version.major != self.major:
            return False
        if self.minor is not None and version.minor != self.minor:
            return False
        if self.patch is not None and version.patch != self.patch:
            return False
        return version.pre == self.pre

    def _matches_greater(self, version: Version) -> bool:
        if version.major != self.major:
            return version.major > self.major
        if self.minor is None:
            return False
        if version.minor != self.minor:
            return version.minor > self.minor
        if self.patch is None:
            return False
        if version.patch != self.patch:
            return version.patch > self.patch
        return _pre_key(version.pre) > _pre_key(self.pre)

    def _matches_less(self, version: Version) -> bool:
        if version.major != self.major:
            return version.major < self.major
        if self.minor is None:
            return False
        if version.minor != self.minor:
            return version.minor < self.minor
        if self.patch is None:
            return False
        if version.patch != self.patch:
            return version.patch < self.patch
        return _pre_key(version.pre) < _pre_key(self.pre)

    def _matches_tilde(self, version: Version) -> bool:
        if version.major != self.major:
            return False
        if self.minor is not None and version.minor != self.minor:
            return False
        if self.patch is not None and version.patch != self.patch:
            return version.patch > self.patch
        return _pre_key(version.pre) >= _pre_key(self.pre)

    def _matches_caret(self, version: Version) -> bool:
        if version.major != self.major:
            return False
        if self.minor is None:
            return True
        if self.patch is None:
            if self.major > 0:
                return version.minor >= self.minor
            return version.minor == self.minor
        if self.major > 0:
            if version.minor != self.minor:
                return version.minor > self.minor
            if version.patch != self.patch:
                return version.patch > self.patch
        elif self.minor > 0:
            if version.minor != self.minor:
                return False
            if version.patch != self.patch:
                return version.patch > self.patch
        elif version.minor != self.minor or version.patch != self.patch:
            return False
        return _pre_key(version.pre) >= _pre_key(self.pre)

    def allows_prerelease_of(self, version: Version) -> bool:
        """Return ``True`` when this comparator opts into ``version``'s pre-releases."""

        return bool(self.pre) and (self.major, self.minor, self.patch) == version.triple


def _parse_component(raw: str | None) -> int | None:
    if raw is None or raw in _WILDCARDS:
        return None
    return int(raw)


def _parse_comparator(text: str) -> Comparator | None:
    """Parse one comparator; returns ``None`` for a bare ``*``."""

    match = _COMPARATOR_RE.match(text.strip())
    if match is None:
        raise InvalidRequirement(f"invalid comparator '{text}'")
    raw_op = match.group("op")
    partial = _PARTIAL_RE.match(match.group("version"))
    if partial is None:
        raise InvalidRequirement(f"invalid comparator '{text}'")
    if partial.group("major") in _WILDCARDS:
        if raw_op not in {None, "="} or partial.group("minor") is not None:
            raise InvalidRequirement(f"invalid wildcard comparator '{text}'")
        return None
    minor = _parse_component(partial.group("minor"))
    patch = _parse_component(partial.group("patch")) if minor is not None else None
    pre = _parse_pre(partial.group("pre"))
    if pre and patch is None:
        raise InvalidRequirement(f"pre-release requires a full version in '{text}'")
    has_wildcard = any(partial.group(part) in _WILDCARDS for part in ("minor", "patch"))
    if raw_op is None:
        op = Op.WILDCARD if has_wildcard else Op.CARET
    else:
        op = Op(raw_op)
    return Comparator(op=op, major=int(partial.group("major")), minor=minor, patch=patch, pre=pre)


@dataclass(frozen=True, slots=True)
class VersionReq:
    """A parsed Cargo version requirement."""

    raw: str
    comparators: tuple[Comparator, ...] = field(default_factory=tuple)

    @classmethod
    def parse(cls, text: str) -> VersionReq:
        """Parse a requirement such as ``"^1.2, <1.8"``.

        Args:
            text: Requirement string from a dependency declaration.

        Returns:
            VersionReq: Parsed requirement; ``*`` or an empty string match
            every release.

        Raises:
            InvalidRequirement: If any comparator is malformed.
        """

        stripped = text.strip()
        if not stripped:
            return cls(raw=text)
        comparators: list[Comparator] = []
        for chunk in stripped.split(","):
            if not chunk.strip():
                raise InvalidRequirement(f"empty comparator in '{text}'")
            comparator = _parse_comparator(chunk)
            if comparator is not None:
                comparators.append(comparator)
        return cls(raw=text, comparators=tuple(comparators))

    def matches(self, version: Version) -> bool:
        """Return ``True`` when ``version`` satisfies every comparator."""

        if not all(comparator.matches(version) for comparator in self.comparators):
            return False
        if not version.is_prerelease:
            return True
        return any(comparator.allows_prerelease_of(version) for comparator in self.comparators)

    def highest_match(self, candidates: Iterable[Version]) -> Version | None:
        """Return the newest candidate satisfying the requirement."""

        best: Version | None = None
        for candidate in candidates:
            if self.matches(candidate) and (best is None or candidate > best):
                best = candidate
        return best

    def __str__(self) -> str:
        return self.raw


__all__ = [
    "Comparator",
    "InvalidRequirement",
    "InvalidVersion",
    "Op",
    "Version",
    "VersionReq",
]
