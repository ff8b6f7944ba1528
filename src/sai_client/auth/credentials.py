"""
Credentials: one authenticated session each.

A credential is an immutable value. `refresh()` performs the out-of-band token
exchange and returns a *new* credential carrying the new token and the same
identity; the original is never touched. Installing the result as the canonical
session is the credential store's job, not the caller's.

Expiry is never predicted here: `headers()` happily renders an expired token and
the 401 it earns is handled by the refresh protocol.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import ClassVar, Protocol, runtime_checkable

import httpx

from sai_client.auth.dpop import DPoPProofFactory
from sai_client.auth.identity import Identity
from sai_client.auth.oidc import TokenResponse, request_tokens
from sai_client.errors import AuthHeaderError, OidcError, RefreshError
from sai_client.http.headers import HttpHeader
from sai_client.utils.log import logger


@runtime_checkable
class Credential(Protocol):
    @property
    def token(self) -> str: ...

    @property
    def identity(self) -> Identity: ...

    @property
    def scheme(self) -> str: ...

    def headers(self, method: str, uri: str) -> dict[str, str]:
        """Authorization headers for one request. Raises AuthHeaderError."""
        ...

    def refresh(self) -> Credential:
        """New credential with a fresh token and the same identity. Raises RefreshError."""
        ...


def authorization_value(scheme: str, token: str) -> str:
    tok = str(token or "")
    if not tok.strip() or any(c.isspace() for c in tok):
        raise AuthHeaderError(f"Cannot generate {scheme} authorization for a malformed access token")
    return f"{scheme} {tok}"


def _exchange(
    token_endpoint: str | None,
    form: dict[str, str],
    *,
    identity: Identity,
    client_auth: tuple[str, str] | None = None,
    headers: dict[str, str] | None = None,
    http: httpx.Client | None = None,
) -> TokenResponse:
    if not token_endpoint:
        raise RefreshError("Unable to refresh a session without a token endpoint")
    try:
        tokens = request_tokens(
            token_endpoint, form, client_auth=client_auth, headers=headers, http=http
        )
    except OidcError as ex:
        raise RefreshError(f"Refresh failed for {identity}: {ex}") from ex
    logger.info(
        "credential_refreshed",
        subject_id=identity.subject_id,
        client_id=identity.client_id,
        issuer_id=identity.issuer_id,
        grant_type=form.get("grant_type"),
    )
    return tokens


@dataclass(frozen=True, slots=True)
class BearerCredential:
    """
    Plain OAuth2 bearer token, optionally refreshable with a refresh token grant.
    """

    scheme: ClassVar[str] = "Bearer"

    token: str = field(repr=False)
    identity: Identity
    refresh_token: str | None = field(default=None, repr=False)
    token_endpoint: str | None = None
    client_secret: str | None = field(default=None, repr=False)
    http: httpx.Client | None = field(default=None, repr=False, compare=False)

    def headers(self, method: str, uri: str) -> dict[str, str]:
        return {HttpHeader.AUTHORIZATION.value: authorization_value(self.scheme, self.token)}

    def refresh(self) -> BearerCredential:
        if not self.refresh_token:
            raise RefreshError("Unable to refresh a session without a refresh token")
        form = {"grant_type": "refresh_token", "refresh_token": self.refresh_token}
        client_auth = None
        if self.client_secret:
            client_auth = (self.identity.client_id, self.client_secret)
        else:
            form["client_id"] = self.identity.client_id
        tokens = _exchange(
            self.token_endpoint,
            form,
            identity=self.identity,
            client_auth=client_auth,
            http=self.http,
        )
        # Issuers may or may not rotate the refresh token.
        return replace(
            self,
            token=tokens.access_token,
            refresh_token=tokens.refresh_token or self.refresh_token,
        )


@dataclass(frozen=True, slots=True)
class ClientCredentialsCredential:
    """
    Application-only session from the client credentials grant.

    There is no refresh token; refreshing simply runs the grant again.
    """

    scheme: ClassVar[str] = "Bearer"

    token: str = field(repr=False)
    identity: Identity
    client_secret: str = field(repr=False)
    token_endpoint: str
    scopes: tuple[str, ...] = ()
    http: httpx.Client | None = field(default=None, repr=False, compare=False)

    def headers(self, method: str, uri: str) -> dict[str, str]:
        return {HttpHeader.AUTHORIZATION.value: authorization_value(self.scheme, self.token)}

    def refresh(self) -> ClientCredentialsCredential:
        tokens = obtain_client_credentials_token(
            self.token_endpoint,
            client_id=self.identity.client_id,
            client_secret=self.client_secret,
            scopes=self.scopes,
            identity=self.identity,
            http=self.http,
        )
        return replace(self, token=tokens.access_token)


def obtain_client_credentials_token(
    token_endpoint: str,
    *,
    client_id: str,
    client_secret: str,
    scopes: tuple[str, ...] = (),
    identity: Identity,
    http: httpx.Client | None = None,
) -> TokenResponse:
    form = {"grant_type": "client_credentials"}
    if scopes:
        form["scope"] = " ".join(scopes)
    return _exchange(
        token_endpoint,
        form,
        identity=identity,
        client_auth=(client_id, client_secret),
        http=http,
    )


@dataclass(frozen=True, slots=True)
class DPoPCredential:
    """
    Solid-OIDC session: a DPoP-bound access token.

    Every `headers()` call signs a fresh proof for the given method and target.
    """

    scheme: ClassVar[str] = "DPoP"

    token: str = field(repr=False)
    identity: Identity
    proof_factory: DPoPProofFactory = field(repr=False)
    refresh_token: str | None = field(default=None, repr=False)
    token_endpoint: str | None = None
    http: httpx.Client | None = field(default=None, repr=False, compare=False)

    def headers(self, method: str, uri: str) -> dict[str, str]:
        authz = authorization_value(self.scheme, self.token)
        proof = self.proof_factory.create_proof(method, uri, access_token=self.token)
        return {HttpHeader.AUTHORIZATION.value: authz, HttpHeader.DPOP.value: proof}

    def refresh(self) -> DPoPCredential:
        if not self.refresh_token:
            raise RefreshError("Unable to refresh a session without a refresh token")
        if not self.token_endpoint:
            raise RefreshError("Unable to refresh a session without a token endpoint")
        try:
            proof = self.proof_factory.create_proof("POST", self.token_endpoint)
        except AuthHeaderError as ex:
            raise RefreshError(f"Unable to create DPoP proof for refresh: {ex}") from ex
        tokens = _exchange(
            self.token_endpoint,
            {
                "grant_type": "refresh_token",
                "refresh_token": self.refresh_token,
                "client_id": self.identity.client_id,
            },
            identity=self.identity,
            headers={HttpHeader.DPOP.value: proof},
            http=self.http,
        )
        if not tokens.is_dpop:
            raise RefreshError(f"Access token is not DPoP (token_type={tokens.token_type!r})")
        return replace(
            self,
            token=tokens.access_token,
            refresh_token=tokens.refresh_token or self.refresh_token,
        )
