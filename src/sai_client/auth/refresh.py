"""
Authenticated requests with transparent credential refresh.

One logical request goes through at most two sends:

  1. send with the caller's credential headers
  2. on 401 only: trace the token actually sent back to its session, take the
     store's canonical credential for that identity (refreshing it unless a
     concurrent request already did), and send once more with its headers

Every authentication-side failure along the way ends the attempt with the
original 401 response. Only transport faults raise.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from typing import Any

import httpx

from sai_client.auth.credentials import Credential
from sai_client.auth.store import CredentialStore, Found, StoreFailure
from sai_client.config import get_settings
from sai_client.errors import AuthHeaderError
from sai_client.http.headers import HttpHeader
from sai_client.http.transport import HttpRequest, Transport
from sai_client.utils.log import logger

UNAUTHORIZED = 401


class RefreshCoordinator:
    def __init__(
        self,
        store: CredentialStore,
        transport: Transport,
        *,
        scheme: str | None = None,
    ) -> None:
        self._store = store
        self._transport = transport
        self._scheme = str(scheme or get_settings().auth_scheme)

    @property
    def store(self) -> CredentialStore:
        return self._store

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def scheme(self) -> str:
        return self._scheme

    def execute(self, request: HttpRequest, credential: Credential | None = None) -> httpx.Response:
        """
        Send `request`, authenticated with `credential` when given.

        Raises TransportError on I/O failure and AuthHeaderError when `credential`
        cannot render headers for the first send. Any other outcome is a response.
        """
        sent = request
        if credential is not None:
            sent = request.with_headers(credential.headers(request.method, request.url))

        response = self._transport.send(sent)
        if response.status_code != UNAUTHORIZED:
            return response

        scheme = credential.scheme if credential is not None else None
        retry_headers = self.recover(sent, scheme=scheme)
        if retry_headers is None:
            return response

        logger.debug("request_retry", method=sent.method, url=sent.url)
        return self._transport.send(sent.with_headers(retry_headers))

    def extract_token(self, authorization: str | None, scheme: str | None = None) -> str | None:
        prefix = f"{scheme or self._scheme} "
        if not authorization or not authorization.startswith(prefix):
            return None
        token = authorization[len(prefix) :].strip()
        return token or None

    def recover(self, sent: HttpRequest, *, scheme: str | None = None) -> dict[str, str] | None:
        """
        Headers to retry a request that was answered 401, or None when it cannot be
        retried (unauthenticated, unmanaged or revoked session, failed refresh).

        `scheme` is the scheme of the credential that authenticated `sent`; without
        one, the coordinator's configured scheme is expected.
        """
        token = self.extract_token(sent.header(HttpHeader.AUTHORIZATION.value), scheme)
        if token is None:
            logger.debug("refresh_skipped", reason="no_matching_authorization", url=sent.url)
            return None

        used = self._resolve("find_by_token", self._store.find_by_token, token)
        if used is None:
            return None

        canonical = self._resolve("find_by_identity", self._store.find_by_identity, used.identity)
        if canonical is None:
            return None

        if canonical.token != used.token:
            # Another request already refreshed this identity; reuse its result.
            logger.debug("refresh_already_done", subject_id=used.identity.subject_id)
            current = canonical
        else:
            refreshed = self._resolve("refresh", self._store.refresh, canonical)
            if refreshed is None:
                return None
            current = refreshed

        try:
            return current.headers(sent.method, sent.url)
        except AuthHeaderError as ex:
            logger.warning(
                "refresh_headers_failed",
                subject_id=current.identity.subject_id,
                error=str(ex),
            )
            return None

    def _resolve(self, step: str, call: Callable[[Any], Any], arg: Any) -> Credential | None:
        # Store errors count as "not found": the caller gets its 401 back.
        try:
            result = call(arg)
        except Exception as ex:
            logger.warning("credential_store_error", step=step, error=type(ex).__name__)
            return None
        if isinstance(result, Found):
            return result.credential
        if isinstance(result, StoreFailure):
            logger.warning("refresh_unavailable", step=step, error=result.error)
        else:
            logger.info("refresh_unavailable", step=step, reason=getattr(result, "reason", ""))
        return None


class RefreshingAuth(httpx.Auth):
    """
    The same protocol as an `httpx.Auth` flow, for callers driving a plain httpx.Client.
    """

    requires_request_body = True

    def __init__(self, coordinator: RefreshCoordinator, credential: Credential) -> None:
        self._coordinator = coordinator
        self._credential = credential

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        url = str(request.url)
        request.headers.update(self._credential.headers(request.method, url))
        response = yield request
        if response.status_code != UNAUTHORIZED:
            return

        sent = HttpRequest(method=request.method, url=url, headers=dict(request.headers))
        retry_headers = self._coordinator.recover(sent, scheme=self._credential.scheme)
        if retry_headers is None:
            return
        for name, value in retry_headers.items():
            request.headers[name] = value
        yield request
