# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Process-wide minimum spacing between requests to the same host."""

from __future__ import annotations

import time
from collections.abc import Callable
from threading import Lock
from urllib.parse import urlsplit


class HostRateLimiter:
    """Hand out request slots per host at least ``min_interval`` seconds apart.

    Slots are reserved under a lock and the caller sleeps outside it, so a
    waiting worker never blocks workers talking to other hosts.
    """

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._min_interval = max(0.0, min_interval)
        self._clock = clock
        self._sleep = sleep
        self._lock = Lock()
        self._next_slot: dict[str, float] = {}

    @property
    def min_interval(self) -> float:
        return self._min_interval

    def wait(self, url: str) -> float:
        """Block until a request to the host of ``url`` may be issued.

        Returns:
            float: Seconds spent waiting.
        """

        if self._min_interval <= 0:
            return 0.0
        host = urlsplit(url).netloc.lower()
        with self._lock:
            now = self._clock()
            slot = max(now, self._next_slot.get(host, now))
            self._next_slot[host] = slot + self._min_interval
        delay = slot - now
        if delay > 0:
            self._sleep(delay)
        return delay


__all__ = ["HostRateLimiter"]
