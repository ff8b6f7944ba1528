"""
OAuth2 / OpenID Connect plumbing shared by credential refresh and session login.

Token endpoint exchanges, provider discovery and PKCE parameters. Nothing here
keeps state between calls.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from sai_client.config import get_settings
from sai_client.errors import OidcError
from sai_client.utils.log import logger

WELL_KNOWN_OIDC = "/.well-known/openid-configuration"


class TokenResponse(BaseModel):
    """Successful token endpoint response (RFC 6749 section 5.1)."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., min_length=1)
    token_type: str = "Bearer"
    expires_in: int | None = None
    refresh_token: str | None = None
    scope: str | None = None
    id_token: str | None = None

    @property
    def is_dpop(self) -> bool:
        return self.token_type.strip().lower() == "dpop"


class ProviderMetadata(BaseModel):
    """Subset of OpenID Provider metadata this client relies on."""

    model_config = ConfigDict(extra="ignore")

    issuer: str
    token_endpoint: str
    authorization_endpoint: str | None = None
    jwks_uri: str | None = None
    scopes_supported: list[str] | None = None
    claims_supported: list[str] = Field(default_factory=list)
    dpop_signing_alg_values_supported: list[str] | None = None

    def supports_dpop(self) -> bool:
        return bool(self.dpop_signing_alg_values_supported)

    def supports_solid_oidc_claims(self) -> bool:
        return "webid" in self.claims_supported and "client_id" in self.claims_supported


class PkceParameters(BaseModel):
    """PKCE (Proof Key for Code Exchange) parameters."""

    code_verifier: str = Field(..., min_length=43, max_length=128)
    code_challenge: str = Field(..., min_length=43, max_length=128)
    code_challenge_method: Literal["S256"] = "S256"

    @classmethod
    def generate(cls) -> PkceParameters:
        code_verifier = secrets.token_urlsafe(64)
        digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
        code_challenge = base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
        return cls(code_verifier=code_verifier, code_challenge=code_challenge)


@contextmanager
def http_client(http: httpx.Client | None = None) -> Iterator[httpx.Client]:
    """
    Yield `http` when given; otherwise a short-lived client configured from settings.
    """
    if http is not None:
        yield http
        return
    s = get_settings()
    with httpx.Client(
        timeout=float(s.http_timeout_s),
        verify=bool(s.validate_ssl),
        headers={"User-Agent": str(s.user_agent)},
    ) as client:
        yield client


def _error_text(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(data, dict) and data.get("error"):
        desc = data.get("error_description")
        return f"{data['error']}: {desc}" if desc else str(data["error"])
    return resp.text[:200]


def request_tokens(
    token_endpoint: str,
    form: Mapping[str, str],
    *,
    client_auth: tuple[str, str] | None = None,
    headers: Mapping[str, str] | None = None,
    http: httpx.Client | None = None,
) -> TokenResponse:
    """
    POST a grant to a token endpoint and parse the JSON answer.

    `client_auth` (client_id, client_secret) authenticates with HTTP Basic.
    Every failure (transport, non-2xx, malformed body) raises OidcError.
    """
    req_headers = {"Accept": "application/json"}
    req_headers.update(headers or {})
    grant = form.get("grant_type", "")
    auth = httpx.BasicAuth(*client_auth) if client_auth else None
    try:
        with http_client(http) as client:
            resp = client.post(token_endpoint, data=dict(form), headers=req_headers, auth=auth)
    except httpx.TransportError as ex:
        raise OidcError(f"Request failed to token endpoint {token_endpoint}: {ex}") from ex

    if not resp.is_success:
        logger.warning(
            "token_request_rejected",
            token_endpoint=token_endpoint,
            grant_type=grant,
            status=resp.status_code,
        )
        raise OidcError(
            f"Token endpoint {token_endpoint} answered {resp.status_code}: {_error_text(resp)}"
        )
    try:
        tokens = TokenResponse.model_validate(resp.json())
    except (ValueError, ValidationError) as ex:
        raise OidcError(f"Invalid token response from {token_endpoint}: {ex}") from ex
    logger.debug("token_request_ok", token_endpoint=token_endpoint, grant_type=grant)
    return tokens


def discover_provider(issuer: str, *, http: httpx.Client | None = None) -> ProviderMetadata:
    url = issuer.rstrip("/") + WELL_KNOWN_OIDC
    try:
        with http_client(http) as client:
            resp = client.get(url, headers={"Accept": "application/json"})
    except httpx.TransportError as ex:
        raise OidcError(f"Failed to fetch provider configuration from {url}: {ex}") from ex
    if not resp.is_success:
        raise OidcError(f"Provider configuration at {url} answered {resp.status_code}")
    try:
        return ProviderMetadata.model_validate(resp.json())
    except (ValueError, ValidationError) as ex:
        raise OidcError(f"Invalid provider configuration at {url}: {ex}") from ex
