from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

import httpx

from sai_client.errors import TransportError
from sai_client.utils.log import logger


@dataclass(frozen=True, slots=True)
class HttpRequest:
    """
    One outbound request, as handed to a Transport.

    Immutable; retries are built with `with_headers`, never by editing in place.
    Header names are matched case-insensitively.
    """

    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes | None = None

    def header(self, name: str) -> str | None:
        want = name.lower()
        for k, v in self.headers.items():
            if k.lower() == want:
                return v
        return None

    def with_headers(self, overrides: Mapping[str, str]) -> HttpRequest:
        """
        Copy of this request with every header in `overrides` replacing any existing
        header of the same name.
        """
        drop = {k.lower() for k in overrides}
        merged = {k: v for k, v in self.headers.items() if k.lower() not in drop}
        merged.update(overrides)
        return HttpRequest(method=self.method, url=self.url, headers=merged, body=self.body)


@runtime_checkable
class Transport(Protocol):
    """Issues a single HTTP request. Raises TransportError on I/O failure only."""

    def send(self, request: HttpRequest) -> httpx.Response: ...


class HttpxTransport:
    """
    Transport over a synchronous `httpx.Client`.

    Every status code (401 included) comes back as a response. Any httpx failure
    to produce one (connection, protocol, decoding, malformed URL) raises
    TransportError.
    """

    def __init__(self, client: httpx.Client) -> None:
        self._client = client

    @property
    def client(self) -> httpx.Client:
        return self._client

    def send(self, request: HttpRequest) -> httpx.Response:
        try:
            return self._client.request(
                request.method,
                request.url,
                headers=dict(request.headers),
                content=request.body,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as ex:
            logger.warning(
                "transport_failed",
                method=request.method,
                url=request.url,
                error=type(ex).__name__,
            )
            raise TransportError(f"{request.method} {request.url} failed: {ex}") from ex

    def close(self) -> None:
        self._client.close()
