# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for the archive downloader."""

from __future__ import annotations

import hashlib
from pathlib import Path
from threading import Event

import pytest
from support import FakeTransport, crate_bytes, pkg

from lintcorpus.config import DownloadConfig
from lintcorpus.corpus import CorpusStore
from lintcorpus.download import Downloader, HostRateLimiter, TransportError
from lintcorpus.models import FetchFailureKind, PackageId

BODY = b"crate archive bytes"


def _url(package: PackageId) -> str:
    return DownloadConfig().url_template.format(name=package.name, version=package.version)


@pytest.fixture
def store(tmp_path: Path) -> CorpusStore:
    corpus = CorpusStore(tmp_path / "corpus")
    corpus.ensure_layout()
    return corpus


def _downloader(
    store: CorpusStore,
    transport: FakeTransport,
    sleeps: list[float],
    **overrides: object,
) -> Downloader:
    checksums = overrides.pop("checksums", None)
    stop_event = overrides.pop("stop_event", None)
    config = DownloadConfig(**overrides)
    return Downloader(
        store,
        config=config,
        transport=transport,
        checksums=checksums,  # type: ignore[arg-type]
        rate_limiter=HostRateLimiter(0),
        stop_event=stop_event,  # type: ignore[arg-type]
        sleep=sleeps.append,
    )


def test_successful_fetch_writes_archive(store: CorpusStore) -> None:
    package = pkg("serde", "1.0.0")
    transport = FakeTransport({_url(package): [BODY]})
    sleeps: list[float] = []

    result = _downloader(store, transport, sleeps).fetch_one(package)

    assert result.ok
    assert result.attempts == 1
    assert not result.cached
    assert result.path == store.archive_path(package)
    assert result.path.read_bytes() == BODY
    assert result.checksum == hashlib.sha256(BODY).hexdigest()
    assert sleeps == []


def test_transient_failures_are_retried_with_backoff(store: CorpusStore) -> None:
    package = pkg("serde", "1.0.0")
    flaky = TransportError("HTTP 503", transient=True, status=503)
    transport = FakeTransport({_url(package): [flaky, flaky, BODY]})
    sleeps: list[float] = []

    result = _downloader(store, transport, sleeps, retry_limit=3, backoff_seconds=0.5).fetch_one(package)

    assert result.ok
    assert result.attempts == 3
    assert sleeps == [0.5, 1.0]


def test_backoff_is_capped(store: CorpusStore) -> None:
    package = pkg("serde", "1.0.0")
    flaky = TransportError("timed out", transient=True)
    transport = FakeTransport({_url(package): [flaky]})
    sleeps: list[float] = []

    downloader = _downloader(
        store,
        transport,
        sleeps,
        retry_limit=4,
        backoff_seconds=2.0,
        max_backoff_seconds=3.0,
    )
    result = downloader.fetch_one(package)

    assert not result.ok
    assert sleeps == [2.0, 3.0, 3.0]


def test_exhausted_retries_fail_transiently(store: CorpusStore) -> None:
    package = pkg("serde", "1.0.0")
    transport = FakeTransport({_url(package): [TransportError("connection reset", transient=True)]})
    sleeps: list[float] = []

    result = _downloader(store, transport, sleeps, retry_limit=2).fetch_one(package)

    assert not result.ok
    assert result.failure_kind is FetchFailureKind.TRANSIENT
    assert result.attempts == 2
    assert result.reason == "giving up after 2 attempt(s): connection reset"
    assert transport.count(_url(package)) == 2
    assert not store.archive_path(package).exists()


def test_not_found_fails_without_retry(store: CorpusStore) -> None:
    package = pkg("gone", "0.1.0")
    transport = FakeTransport()
    sleeps: list[float] = []

    result = _downloader(store, transport, sleeps, retry_limit=5).fetch_one(package)

    assert result.failure_kind is FetchFailureKind.PERMANENT
    assert result.attempts == 1
    assert sleeps == []


def test_checksum_mismatch_is_retried_then_reported(store: CorpusStore) -> None:
    package = pkg("serde", "1.0.0")
    transport = FakeTransport({_url(package): [BODY]})
    sleeps: list[float] = []

    downloader = _downloader(store, transport, sleeps, retry_limit=2, checksums=lambda _pkg: "00" * 32)
    result = downloader.fetch_one(package)

    assert not result.ok
    assert "checksum mismatch" in (result.reason or "")
    assert not store.archive_path(package).exists()
    assert list(store.archives_dir.iterdir()) == []


def test_empty_body_is_an_integrity_failure(store: CorpusStore) -> None:
    package = pkg("serde", "1.0.0")
    transport = FakeTransport({_url(package): [b"", BODY]})
    sleeps: list[float] = []

    result = _downloader(store, transport, sleeps).fetch_one(package)

    assert result.ok
    assert result.attempts == 2


def test_duplicate_requests_share_one_transfer(store: CorpusStore) -> None:
    first = pkg("serde", "1.0.0")
    second = pkg("syn", "2.0.0")
    transport = FakeTransport({_url(first): [BODY], _url(second): [BODY + b"!"]})
    downloader = _downloader(store, transport, [])

    results = downloader.fetch([first, second, first])
    again = downloader.fetch_one(first)

    assert [item.package for item in results] == [first, second]
    assert again == results[0]
    assert transport.count(_url(first)) == 1


def test_verified_cache_is_reused_without_requests(store: CorpusStore) -> None:
    package = pkg("serde", "1.0.0")
    store.archive_path(package).write_bytes(BODY)
    transport = FakeTransport({_url(package): [BODY]})
    digest = hashlib.sha256(BODY).hexdigest()

    result = _downloader(store, transport, [], checksums=lambda _pkg: digest).fetch_one(package)

    assert result.ok
    assert result.cached
    assert result.attempts == 0
    assert transport.calls == []


def test_stale_cache_is_refetched(store: CorpusStore) -> None:
    package = pkg("serde", "1.0.0")
    store.archive_path(package).write_bytes(b"stale")
    transport = FakeTransport({_url(package): [BODY]})
    digest = hashlib.sha256(BODY).hexdigest()

    result = _downloader(store, transport, [], checksums=lambda _pkg: digest).fetch_one(package)

    assert result.ok
    assert not result.cached
    assert store.archive_path(package).read_bytes() == BODY


def test_unpacked_entry_is_reused_when_archive_is_gone(store: CorpusStore) -> None:
    package = pkg("serde", "1.0.0")
    body = crate_bytes("serde", "1.0.0")
    digest = hashlib.sha256(body).hexdigest()
    first = _downloader(store, FakeTransport({_url(package): [body]}), [], checksums=lambda _pkg: digest)
    entry = store.materialize(first.fetch_one(package))
    assert entry is not None
    store.discard_archive(package)
    transport = FakeTransport({_url(package): [body]})

    result = _downloader(store, transport, [], checksums=lambda _pkg: digest).fetch_one(package)

    assert result.cached
    assert transport.calls == []
    assert store.materialize(result) == entry


def test_unpacked_entry_with_other_checksum_is_refetched(store: CorpusStore) -> None:
    package = pkg("serde", "1.0.0")
    old = crate_bytes("serde", "1.0.0", {"src/lib.rs": "// old\n"})
    body = crate_bytes("serde", "1.0.0")
    store.materialize(_downloader(store, FakeTransport({_url(package): [old]}), []).fetch_one(package))
    store.discard_archive(package)
    transport = FakeTransport({_url(package): [body]})
    digest = hashlib.sha256(body).hexdigest()

    result = _downloader(store, transport, [], checksums=lambda _pkg: digest).fetch_one(package)

    assert not result.cached
    assert transport.count(_url(package)) == 1


def test_cache_reuse_can_be_disabled(store: CorpusStore) -> None:
    package = pkg("serde", "1.0.0")
    store.archive_path(package).write_bytes(BODY)
    transport = FakeTransport({_url(package): [BODY]})

    result = _downloader(store, transport, [], cache_reuse=False).fetch_one(package)

    assert not result.cached
    assert transport.count(_url(package)) == 1


def test_stop_signal_cancels_without_memoising(store: CorpusStore) -> None:
    package = pkg("serde", "1.0.0")
    transport = FakeTransport({_url(package): [BODY]})
    stop = Event()
    stop.set()
    downloader = _downloader(store, transport, [], stop_event=stop)

    cancelled = downloader.fetch_one(package)
    stop.clear()
    retried = downloader.fetch_one(package)

    assert cancelled.failure_kind is FetchFailureKind.CANCELLED
    assert cancelled.attempts == 0
    assert retried.ok


def test_on_result_sees_every_package(store: CorpusStore) -> None:
    packages = [pkg(f"crate{index}", "1.0.0") for index in range(6)]
    transport = FakeTransport({_url(item): [BODY] for item in packages})
    seen: list[PackageId] = []

    _downloader(store, transport, [], concurrency=3).fetch(packages, on_result=lambda res: seen.append(res.package))

    assert sorted(seen, key=PackageId.sort_key) == packages


def test_url_template_is_configurable(store: CorpusStore) -> None:
    downloader = _downloader(store, FakeTransport(), [], url_template="https://mirror.test/{name}/{version}/dl")

    assert downloader.url_for(pkg("serde", "1.0.0")) == "https://mirror.test/serde/1.0.0/dl"


def test_rate_limiter_spaces_requests_per_host() -> None:
    now = [0.0]
    sleeps: list[float] = []
    limiter = HostRateLimiter(1.0, clock=lambda: now[0], sleep=sleeps.append)

    assert limiter.wait("https://static.example/a") == 0.0
    now[0] = 0.25
    assert limiter.wait("https://static.example/b") == pytest.approx(0.75)
    assert limiter.wait("https://other.example/a") == 0.0
    assert sleeps == [pytest.approx(0.75)]


def test_rate_limiter_disabled_with_zero_interval() -> None:
    limiter = HostRateLimiter(0, clock=lambda: 0.0, sleep=lambda _delay: pytest.fail("slept"))

    assert limiter.wait("https://static.example/a") == 0.0
    assert limiter.wait("https://static.example/a") == 0.0
