# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest
from support import write_snapshot


@pytest.fixture
def snapshot_dir(tmp_path: Path) -> Path:
    """Return a sample registry dump."""

    return write_snapshot(tmp_path / "dump")


@pytest.fixture
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point ``Path.home`` at an empty directory so user config is ignored."""

    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setattr(Path, "home", lambda: home)
    return home
