# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Transitive dependency closure over the registry index.

Each requirement is resolved on its own to the newest non-yanked version that
satisfies it, so two dependents with incompatible requirements on the same
name contribute two versions. This mirrors Cargo, which keeps one version per
semver-compatible range rather than one version per name.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable

from .errors import UnknownPackage
from .models import DependencyEdge, DependencyGap, PackageId, ResolvedSet
from .registry import RegistryIndex
from .semver import InvalidRequirement, VersionReq

LOGGER = logging.getLogger(__name__)

GAP_UNKNOWN_PACKAGE = "unknown package"
GAP_NO_MATCH = "no published version satisfies the requirement"
GAP_INVALID_REQUIREMENT = "invalid version requirement"


class DependencyResolver:
    """Compute the closure of normal and build dependencies from seed packages."""

    def __init__(self, index: RegistryIndex, *, include_optional: bool = True) -> None:
        """Initialise the resolver.

        Args:
            index: Registry index queried for candidate versions.
            include_optional: Whether optional dependencies join the closure.
        """

        self._index = index
        self._include_optional = include_optional

    def resolve(self, seeds: Iterable[PackageId]) -> ResolvedSet:
        """Return the resolved set reachable from ``seeds``.

        The traversal is breadth-first with a visited set keyed by
        :class:`PackageId`, so cycles terminate and every package appears
        once. Unresolvable edges are recorded as :class:`DependencyGap`
        entries and skipped.

        Args:
            seeds: Seed packages in priority order.

        Returns:
            ResolvedSet: Selected packages in discovery order plus gaps.
        """

        visited: set[PackageId] = set()
        ordered: list[PackageId] = []
        accepted_seeds: list[PackageId] = []
        queue: deque[PackageId] = deque()
        for seed in seeds:
            if seed in visited:
                continue
            try:
                self._index.metadata(seed)
            except UnknownPackage:
                LOGGER.warning("seed %s is not in the registry; skipping", seed)
                continue
            visited.add(seed)
            ordered.append(seed)
            accepted_seeds.append(seed)
            queue.append(seed)

        gaps: list[DependencyGap] = []
        while queue:
            package = queue.popleft()
            for edge in self._index.metadata(package).dependencies:
                if not self._wants(edge):
                    continue
                target = self._resolve_edge(edge, gaps)
                if target is None or target in visited:
                    continue
                visited.add(target)
                ordered.append(target)
                queue.append(target)

        for gap in gaps:
            LOGGER.warning("dependency gap: %s", gap.describe())
        return ResolvedSet(seeds=tuple(accepted_seeds), packages=tuple(ordered), gaps=tuple(gaps))

    def _wants(self, edge: DependencyEdge) -> bool:
        if not edge.kind.needed_for_lint:
            return False
        return self._include_optional or not edge.optional

    def _resolve_edge(self, edge: DependencyEdge, gaps: list[DependencyGap]) -> PackageId | None:
        """Return the package satisfying ``edge`` or record exactly one gap."""

        try:
            requirement = VersionReq.parse(edge.requirement)
        except InvalidRequirement as exc:
            gaps.append(DependencyGap(edge=edge, reason=f"{GAP_INVALID_REQUIREMENT}: {exc}"))
            return None
        try:
            target = self._index.highest_matching(edge.required_name, requirement)
        except UnknownPackage:
            gaps.append(DependencyGap(edge=edge, reason=GAP_UNKNOWN_PACKAGE))
            return None
        if target is None:
            gaps.append(DependencyGap(edge=edge, reason=GAP_NO_MATCH))
        return target


__all__ = [
    "GAP_INVALID_REQUIREMENT",
    "GAP_NO_MATCH",
    "GAP_UNKNOWN_PACKAGE",
    "DependencyResolver",
]
