"""
Establishing sessions: Solid-OIDC authorization code flow and client credentials.

The result of a successful login is a credential; putting it into a credential
store is up to the application.
"""

from __future__ import annotations

import secrets
from collections.abc import Sequence
from urllib.parse import parse_qs, urlencode, urlsplit

import httpx
from rdflib import Graph, Namespace, URIRef

from sai_client.auth.credentials import (
    ClientCredentialsCredential,
    DPoPCredential,
    obtain_client_credentials_token,
)
from sai_client.auth.dpop import DPoPProofFactory
from sai_client.auth.identity import Identity
from sai_client.auth.oidc import (
    PkceParameters,
    ProviderMetadata,
    TokenResponse,
    discover_provider,
    http_client,
    request_tokens,
)
from sai_client.errors import AuthHeaderError, OidcError, RefreshError
from sai_client.http.headers import RDF_FORMATS, ContentType, HttpHeader, media_type
from sai_client.utils.log import logger

SOLID = Namespace("http://www.w3.org/ns/solid/terms#")


def get_oidc_issuer_for_social_agent(social_agent_id: str, *, http: httpx.Client | None = None) -> str:
    """
    Dereference a WebID profile and return the OIDC issuer it trusts (`solid:oidcIssuer`).
    """
    try:
        with http_client(http) as client:
            resp = client.get(
                social_agent_id, headers={HttpHeader.ACCEPT.value: ContentType.TEXT_TURTLE.value}
            )
    except httpx.TransportError as ex:
        raise OidcError(f"Failed to fetch social agent profile {social_agent_id}: {ex}") from ex
    if not resp.is_success:
        raise OidcError(f"Social agent profile {social_agent_id} answered {resp.status_code}")

    fmt = RDF_FORMATS.get(media_type(resp.headers.get(HttpHeader.CONTENT_TYPE.value)), "turtle")
    graph = Graph()
    try:
        graph.parse(data=resp.text, format=fmt, publicID=social_agent_id)
    except Exception as ex:  # rdflib raises parser-specific exception types
        raise OidcError(f"Unable to parse social agent profile {social_agent_id}: {ex}") from ex

    issuers = sorted(str(o) for o in graph.objects(URIRef(social_agent_id), SOLID.oidcIssuer))
    if not issuers:
        raise OidcError(f"No OIDC issuer found for social agent {social_agent_id}")
    return issuers[0]


class SolidOidcLogin:
    """
    Authorization code flow with PKCE and DPoP-bound tokens, in the order:

        login = SolidOidcLogin.for_social_agent(webid, app_id, redirect_uri)
        url = login.prepare_code_request()     # send the user here
        login.process_code_response(callback)  # the redirect they come back with
        login.request_tokens()
        credential = login.build()
    """

    def __init__(
        self,
        *,
        social_agent_id: str,
        application_id: str,
        redirect_uri: str,
        provider: ProviderMetadata,
        scopes: Sequence[str] = ("openid", "webid", "offline_access"),
        prompt: str | None = None,
        http: httpx.Client | None = None,
    ) -> None:
        if not provider.supports_dpop():
            raise OidcError(f"OpenID Provider {provider.issuer} does not support DPoP")
        if not provider.supports_solid_oidc_claims():
            raise OidcError(
                f"OpenID Provider {provider.issuer} does not support the necessary claims for solid-oidc"
            )
        if not provider.authorization_endpoint:
            raise OidcError(f"OpenID Provider {provider.issuer} has no authorization endpoint")
        self.social_agent_id = social_agent_id
        self.application_id = application_id
        self.redirect_uri = redirect_uri
        self.provider = provider
        self.scopes = tuple(scopes)
        self.prompt = prompt
        self._http = http
        self._state: str | None = None
        self._pkce: PkceParameters | None = None
        self._code: str | None = None
        self._tokens: TokenResponse | None = None
        self._proof_factory: DPoPProofFactory | None = None

    @classmethod
    def for_social_agent(
        cls,
        social_agent_id: str,
        application_id: str,
        redirect_uri: str,
        *,
        scopes: Sequence[str] = ("openid", "webid", "offline_access"),
        prompt: str | None = None,
        http: httpx.Client | None = None,
    ) -> SolidOidcLogin:
        issuer = get_oidc_issuer_for_social_agent(social_agent_id, http=http)
        provider = discover_provider(issuer, http=http)
        return cls(
            social_agent_id=social_agent_id,
            application_id=application_id,
            redirect_uri=redirect_uri,
            provider=provider,
            scopes=scopes,
            prompt=prompt,
            http=http,
        )

    def prepare_code_request(self) -> str:
        self._state = secrets.token_urlsafe(32)
        self._pkce = PkceParameters.generate()
        params = {
            "response_type": "code",
            "client_id": self.application_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.scopes),
            "state": self._state,
            "code_challenge": self._pkce.code_challenge,
            "code_challenge_method": self._pkce.code_challenge_method,
        }
        if self.prompt:
            params["prompt"] = self.prompt
        return f"{self.provider.authorization_endpoint}?{urlencode(params)}"

    def process_code_response(self, redirect_response: str) -> None:
        if self._state is None:
            raise OidcError("Cannot process a code response before the code request is prepared")
        query = parse_qs(urlsplit(redirect_response).query)
        state = (query.get("state") or [""])[0]
        if state != self._state:
            raise OidcError("Unexpected or tampered contents detected in authorization response")
        error = (query.get("error") or [""])[0]
        if error:
            desc = (query.get("error_description") or [""])[0]
            raise OidcError(f"Authorization request failed: {error} {desc}".strip())
        code = (query.get("code") or [""])[0]
        if not code:
            raise OidcError("Authorization response carries no code")
        self._code = code

    def request_tokens(self) -> TokenResponse:
        if self._code is None or self._pkce is None:
            raise OidcError("Cannot request tokens without an authorization code")
        self._proof_factory = DPoPProofFactory.generate()
        token_endpoint = self.provider.token_endpoint
        try:
            proof = self._proof_factory.create_proof("POST", token_endpoint)
        except AuthHeaderError as ex:
            raise OidcError(f"Failed to create DPoP proof for token request: {ex}") from ex
        tokens = request_tokens(
            token_endpoint,
            {
                "grant_type": "authorization_code",
                "code": self._code,
                "redirect_uri": self.redirect_uri,
                "client_id": self.application_id,
                "code_verifier": self._pkce.code_verifier,
            },
            headers={HttpHeader.DPOP.value: proof},
            http=self._http,
        )
        if not tokens.is_dpop:
            raise OidcError(f"Access token is not DPoP (token_type={tokens.token_type!r})")
        self._tokens = tokens
        return tokens

    def build(self) -> DPoPCredential:
        if self._tokens is None or self._proof_factory is None:
            raise OidcError("Cannot build a Solid-OIDC session before tokens are issued")
        identity = Identity(self.social_agent_id, self.application_id, self.provider.issuer)
        logger.info(
            "session_established",
            subject_id=identity.subject_id,
            client_id=identity.client_id,
            issuer_id=identity.issuer_id,
            refreshable=bool(self._tokens.refresh_token),
        )
        return DPoPCredential(
            token=self._tokens.access_token,
            identity=identity,
            proof_factory=self._proof_factory,
            refresh_token=self._tokens.refresh_token,
            token_endpoint=self.provider.token_endpoint,
            http=self._http,
        )


def client_credentials_login(
    issuer: str,
    client_id: str,
    client_secret: str,
    *,
    scopes: Sequence[str] = (),
    provider: ProviderMetadata | None = None,
    http: httpx.Client | None = None,
) -> ClientCredentialsCredential:
    provider = provider or discover_provider(issuer, http=http)
    identity = Identity(client_id, client_id, provider.issuer)
    try:
        tokens = obtain_client_credentials_token(
            provider.token_endpoint,
            client_id=client_id,
            client_secret=client_secret,
            scopes=tuple(scopes),
            identity=identity,
            http=http,
        )
    except RefreshError as ex:
        raise OidcError(str(ex)) from ex
    return ClientCredentialsCredential(
        token=tokens.access_token,
        identity=identity,
        client_secret=client_secret,
        token_endpoint=provider.token_endpoint,
        scopes=tuple(scopes),
        http=http,
    )
