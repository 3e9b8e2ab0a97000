# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Concurrent archive downloader with retry, backoff and de-duplication."""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
import time
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from pathlib import Path
from threading import Event, Lock
from typing import BinaryIO

from ..config import DownloadConfig
from ..corpus import CorpusStore
from ..models import FetchFailureKind, FetchResult, PackageId
from .http import Transport, TransportError, UrllibTransport
from .rate_limit import HostRateLimiter

LOGGER = logging.getLogger(__name__)

ChecksumLookup = Callable[[PackageId], str | None]
ResultCallback = Callable[[FetchResult], None]


class _IntegrityError(Exception):
    """Downloaded bytes do not match what the registry promised."""


class _HashingWriter:
    """File sink that hashes and counts everything written through it."""

    def __init__(self, handle: BinaryIO) -> None:
        self._handle = handle
        self.hasher = hashlib.sha256()
        self.size = 0

    def write(self, data: bytes) -> int:
        self.hasher.update(data)
        self.size += len(data)
        return self._handle.write(data)


def _no_checksum(_package: PackageId) -> str | None:
    return None


class Downloader:
    """Fetch package archives into a :class:`CorpusStore`.

    Every package is fetched at most once per downloader: the first caller
    owns the transfer and later callers, concurrent or not, receive the same
    :class:`FetchResult`. Cancelled fetches are not memoised.
    """

    def __init__(
        self,
        store: CorpusStore,
        *,
        config: DownloadConfig | None = None,
        transport: Transport | None = None,
        checksums: ChecksumLookup | None = None,
        rate_limiter: HostRateLimiter | None = None,
        stop_event: Event | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialise the downloader.

        Args:
            store: Corpus the archives are written into.
            config: Network settings, defaults when omitted.
            transport: HTTP transport, :class:`UrllibTransport` when omitted.
            checksums: Returns the registry checksum for a package, if known.
            rate_limiter: Shared per-host limiter. One is built from
                ``config.min_request_interval`` when omitted.
            stop_event: Global stop signal. Once set no new fetch or retry
                starts.
            sleep: Sleep function used for backoff.
        """

        self._store = store
        self._config = config or DownloadConfig()
        self._transport = transport or UrllibTransport(user_agent=self._config.user_agent)
        self._checksums = checksums or _no_checksum
        self._limiter = rate_limiter or HostRateLimiter(self._config.min_request_interval)
        self._stop = stop_event or Event()
        self._sleep = sleep
        self._lock = Lock()
        self._inflight: dict[PackageId, Future[FetchResult]] = {}

    def url_for(self, package: PackageId) -> str:
        """Return the archive URL for ``package``."""

        return self._config.url_template.format(name=package.name, version=package.version)

    def fetch(
        self,
        ids: Iterable[PackageId],
        *,
        on_result: ResultCallback | None = None,
    ) -> list[FetchResult]:
        """Fetch every package in ``ids`` with a bounded worker pool.

        Args:
            ids: Packages to fetch. Duplicates are fetched once.
            on_result: Called from the calling thread as each result arrives.

        Returns:
            list[FetchResult]: One result per distinct package, in input order.
        """

        unique = list(dict.fromkeys(ids))
        if not unique:
            return []
        results: dict[PackageId, FetchResult] = {}
        workers = max(1, min(self._config.concurrency, len(unique)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fetch") as executor:
            future_map = {executor.submit(self.fetch_one, package): package for package in unique}
            for future in as_completed(future_map):
                result = future.result()
                results[future_map[future]] = result
                if on_result is not None:
                    on_result(result)
        return [results[package] for package in unique]

    def fetch_one(self, package: PackageId) -> FetchResult:
        """Fetch a single package, sharing the transfer with concurrent callers."""

        with self._lock:
            future = self._inflight.get(package)
            owner = future is None
            if future is None:
                future = Future()
                self._inflight[package] = future
        if not owner:
            return future.result()

        try:
            result = self._fetch(package)
        except BaseException as exc:
            with self._lock:
                self._inflight.pop(package, None)
            future.set_exception(exc)
            raise
        if result.failure_kind is FetchFailureKind.CANCELLED:
            with self._lock:
                self._inflight.pop(package, None)
        future.set_result(result)
        return result

    def _fetch(self, package: PackageId) -> FetchResult:
        if self._stop.is_set():
            return FetchResult.failure(package, "cancelled before start", kind=FetchFailureKind.CANCELLED, attempts=0)

        expected = self._checksums(package)
        if self._config.cache_reuse:
            cached = self._store.cached_archive(package, expected)
            if cached is not None:
                path, checksum = cached
                LOGGER.debug("reusing cached archive for %s", package)
                return FetchResult.success(package, path, checksum, attempts=0, cached=True)
            entry = self._store.unpacked_match(package, expected)
            if entry is not None:
                LOGGER.debug("reusing unpacked %s, archive not cached", package)
                return FetchResult.success(package, entry.path, entry.checksum, attempts=0, cached=True)

        url = self.url_for(package)
        destination = self._store.archive_path(package)
        backoff = self._config.backoff_seconds
        limit = self._config.retry_limit
        reason = "no attempt made"
        for attempt in range(1, limit + 1):
            if attempt > 1 and self._stop.is_set():
                return FetchResult.failure(
                    package,
                    f"cancelled after {attempt - 1} attempt(s): {reason}",
                    kind=FetchFailureKind.CANCELLED,
                    attempts=attempt - 1,
                )
            self._limiter.wait(url)
            try:
                checksum = self._download(url, destination, expected)
            except TransportError as exc:
                reason = str(exc)
                if not exc.transient:
                    LOGGER.warning("fetch of %s failed permanently: %s", package, reason)
                    return FetchResult.failure(package, reason, kind=FetchFailureKind.PERMANENT, attempts=attempt)
            except _IntegrityError as exc:
                reason = str(exc)
            except OSError as exc:
                reason = f"local I/O error: {exc}"
            else:
                return FetchResult.success(package, destination, checksum, attempts=attempt)
            if attempt < limit:
                delay = min(backoff, self._config.max_backoff_seconds)
                LOGGER.warning(
                    "fetch of %s failed (%s), retrying in %.1f seconds (attempt %d/%d)",
                    package,
                    reason,
                    delay,
                    attempt,
                    limit,
                )
                self._sleep(delay)
                backoff *= 2
        LOGGER.warning("giving up on %s after %d attempt(s): %s", package, limit, reason)
        return FetchResult.failure(
            package,
            f"giving up after {limit} attempt(s): {reason}",
            kind=FetchFailureKind.TRANSIENT,
            attempts=limit,
        )

    def _download(self, url: str, destination: Path, expected: str | None) -> str:
        """Stream ``url`` to ``destination`` and return the SHA-256 of the bytes.

        The body lands in a temporary file that is renamed into place only
        once it is complete and verified.
        """

        destination.parent.mkdir(parents=True, exist_ok=True)
        handle = tempfile.NamedTemporaryFile(
            mode="wb",
            dir=destination.parent,
            prefix=f".{destination.name}.",
            suffix=".part",
            delete=False,
        )
        tmp_path = Path(handle.name)
        try:
            with handle:
                writer = _HashingWriter(handle)
                self._transport.fetch(url, writer, timeout=self._config.request_timeout)
            if writer.size == 0:
                raise _IntegrityError("empty response body")
            digest = writer.hasher.hexdigest()
            if expected is not None and digest != expected.lower():
                raise _IntegrityError(f"checksum mismatch: expected {expected}, got {digest}")
            os.replace(tmp_path, destination)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
        return digest


__all__ = ["Downloader"]
