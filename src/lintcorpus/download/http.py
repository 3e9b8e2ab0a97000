# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""HTTP transport used to fetch package archives."""

from __future__ import annotations

import ssl
from http.client import HTTPException
from typing import BinaryIO, Final, Protocol
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

_CHUNK_SIZE: Final[int] = 64 * 1024
# Client errors worth retrying; every other 4xx means the archive is absent.
_RETRYABLE_CLIENT_STATUS: Final[frozenset[int]] = frozenset({408, 425, 429})


class TransportError(Exception):
    """Raised by a transport when a request does not yield the archive."""

    def __init__(self, message: str, *, transient: bool, status: int | None = None) -> None:
        super().__init__(message)
        self.transient = transient
        self.status = status


class Transport(Protocol):
    """Streams the body behind a URL into a writable sink."""

    def fetch(self, url: str, sink: BinaryIO, *, timeout: float) -> None:
        """Write the response body for ``url`` into ``sink``.

        Raises:
            TransportError: On any failure, flagged transient or permanent.
        """
        ...


def is_transient_status(status: int) -> bool:
    """Return ``True`` when an HTTP status warrants another attempt."""

    return status >= 500 or status in _RETRYABLE_CLIENT_STATUS


class UrllibTransport:
    """Transport backed by :mod:`urllib.request`."""

    def __init__(self, *, user_agent: str, context: ssl.SSLContext | None = None) -> None:
        self._headers = {"User-Agent": user_agent, "Accept": "application/octet-stream"}
        self._context = context or ssl.create_default_context()

    def fetch(self, url: str, sink: BinaryIO, *, timeout: float) -> None:
        request = Request(url, headers=self._headers, method="GET")
        try:
            with urlopen(request, timeout=timeout, context=self._context) as response:  # nosec B310
                while chunk := response.read(_CHUNK_SIZE):
                    sink.write(chunk)
        except HTTPError as exc:
            raise TransportError(
                f"HTTP {exc.code} {exc.reason}",
                transient=is_transient_status(exc.code),
                status=exc.code,
            ) from exc
        except URLError as exc:
            raise TransportError(f"network error: {exc.reason}", transient=True) from exc
        except (TimeoutError, ConnectionError, HTTPException) as exc:
            raise TransportError(f"network error: {exc}", transient=True) from exc


__all__ = ["Transport", "TransportError", "UrllibTransport", "is_transient_status"]
