# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Registry snapshot loading and indexing."""

from __future__ import annotations

from .index import RegistryIndex
from .snapshot import SnapshotTables, locate_tables

__all__ = ["RegistryIndex", "SnapshotTables", "locate_tables"]
