from __future__ import annotations

import secrets
import threading
from collections.abc import Mapping

import httpx

from sai_client.auth.credentials import Credential
from sai_client.auth.refresh import RefreshCoordinator
from sai_client.auth.store import CredentialStore
from sai_client.config import get_settings
from sai_client.http.transport import HttpRequest, HttpxTransport
from sai_client.utils.log import log_context, logger


class HttpClientFactory:
    """
    Hands out one shared `httpx.Client` per SSL validation mode.

    Clients are created on first use and reused until `reset()`.
    """

    def __init__(
        self,
        *,
        validate_ssl: bool | None = None,
        timeout_s: float | None = None,
        user_agent: str | None = None,
    ) -> None:
        s = get_settings()
        self.validate_ssl = bool(s.validate_ssl) if validate_ssl is None else bool(validate_ssl)
        self.timeout_s = float(s.http_timeout_s) if timeout_s is None else float(timeout_s)
        self.user_agent = str(user_agent or s.user_agent)
        self._clients: dict[bool, httpx.Client] = {}
        self._lock = threading.Lock()

    def get(self, validate_ssl: bool | None = None) -> httpx.Client:
        verify = self.validate_ssl if validate_ssl is None else bool(validate_ssl)
        with self._lock:
            client = self._clients.get(verify)
            if client is None:
                if not verify:
                    logger.warning("ssl_validation_disabled")
                client = httpx.Client(
                    timeout=self.timeout_s,
                    verify=verify,
                    headers={"User-Agent": self.user_agent},
                )
                self._clients[verify] = client
            return client

    def reset(self) -> None:
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            client.close()

    def is_empty(self) -> bool:
        with self._lock:
            return not self._clients


class AuthorizedClient:
    """
    HTTP verbs routed through the refresh protocol.

    `credential` is the default session; a credential passed to a single call
    takes precedence. With neither, requests go out unauthenticated.
    """

    def __init__(self, coordinator: RefreshCoordinator, credential: Credential | None = None) -> None:
        self._coordinator = coordinator
        self._credential = credential

    @property
    def coordinator(self) -> RefreshCoordinator:
        return self._coordinator

    @property
    def credential(self) -> Credential | None:
        return self._credential

    def with_credential(self, credential: Credential | None) -> AuthorizedClient:
        return AuthorizedClient(self._coordinator, credential)

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        content: bytes | str | None = None,
        credential: Credential | None = None,
    ) -> httpx.Response:
        body = content.encode("utf-8") if isinstance(content, str) else content
        req = HttpRequest(method=method.upper(), url=url, headers=dict(headers or {}), body=body)
        cred = credential or self._credential
        subject = cred.identity.subject_id if cred is not None else None
        with log_context(request_id=secrets.token_hex(8), subject_id=subject):
            return self._coordinator.execute(req, cred)

    def get(self, url: str, **kwargs) -> httpx.Response:
        return self.request("GET", url, **kwargs)

    def head(self, url: str, **kwargs) -> httpx.Response:
        return self.request("HEAD", url, **kwargs)

    def put(self, url: str, **kwargs) -> httpx.Response:
        return self.request("PUT", url, **kwargs)

    def post(self, url: str, **kwargs) -> httpx.Response:
        return self.request("POST", url, **kwargs)

    def patch(self, url: str, **kwargs) -> httpx.Response:
        return self.request("PATCH", url, **kwargs)

    def delete(self, url: str, **kwargs) -> httpx.Response:
        return self.request("DELETE", url, **kwargs)


def build_authorized_client(
    store: CredentialStore,
    credential: Credential | None = None,
    *,
    factory: HttpClientFactory | None = None,
    scheme: str | None = None,
) -> AuthorizedClient:
    """
    Wire client factory -> transport -> refresh coordinator -> client.

    The scheme defaults to the credential's own, then to SAI_AUTH_SCHEME.
    """
    factory = factory or HttpClientFactory()
    transport = HttpxTransport(factory.get())
    if scheme is None and credential is not None:
        scheme = credential.scheme
    coordinator = RefreshCoordinator(store, transport, scheme=scheme)
    return AuthorizedClient(coordinator, credential)
