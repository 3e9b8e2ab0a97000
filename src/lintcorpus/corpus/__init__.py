# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Corpus storage."""

from __future__ import annotations

from .store import CorpusManifest, CorpusStore, latest_versions, sha256_file

__all__ = ["CorpusManifest", "CorpusStore", "latest_versions", "sha256_file"]
