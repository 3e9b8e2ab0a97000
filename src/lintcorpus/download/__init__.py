# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Archive download support."""

from __future__ import annotations

from .downloader import Downloader
from .http import Transport, TransportError, UrllibTransport
from .rate_limit import HostRateLimiter

__all__ = ["Downloader", "HostRateLimiter", "Transport", "TransportError", "UrllibTransport"]
