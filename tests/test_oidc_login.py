from __future__ import annotations

import base64
import hashlib
from urllib.parse import parse_qs, urlsplit

import httpx
import jwt
import pytest

from sai_client.auth.credentials import DPoPCredential
from sai_client.auth.login import (
    SolidOidcLogin,
    client_credentials_login,
    get_oidc_issuer_for_social_agent,
)
from sai_client.auth.oidc import PkceParameters, ProviderMetadata, discover_provider
from sai_client.errors import OidcError

ISSUER = "https://idp.example"
WEBID = "https://alice.example/profile#me"
APP_ID = "https://app.example/id"
REDIRECT = "https://app.example/callback"

PROVIDER = {
    "issuer": ISSUER,
    "authorization_endpoint": f"{ISSUER}/auth",
    "token_endpoint": f"{ISSUER}/token",
    "jwks_uri": f"{ISSUER}/jwks",
    "claims_supported": ["sub", "webid", "client_id"],
    "dpop_signing_alg_values_supported": ["ES256"],
}

PROFILE = f"""
@prefix solid: <http://www.w3.org/ns/solid/terms#> .
<{WEBID}> solid:oidcIssuer <{ISSUER}> .
"""


class FakeIdp:
    def __init__(self, *, provider: dict | None = None, token_type: str = "DPoP") -> None:
        self.provider = provider or PROVIDER
        self.token_type = token_type
        self.token_requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url.startswith("https://alice.example/profile"):
            return httpx.Response(200, text=PROFILE, headers={"Content-Type": "text/turtle"})
        if url == f"{ISSUER}/.well-known/openid-configuration":
            return httpx.Response(200, json=self.provider)
        if url == f"{ISSUER}/token":
            self.token_requests.append(request)
            return httpx.Response(
                200,
                json={"access_token": "at-1", "refresh_token": "rt-1", "token_type": self.token_type},
            )
        return httpx.Response(404)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self))


def _query(url: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


def test_discover_provider_reads_well_known_document() -> None:
    meta = discover_provider(ISSUER + "/", http=FakeIdp().client())
    assert meta.token_endpoint == f"{ISSUER}/token"
    assert meta.supports_dpop()
    assert meta.supports_solid_oidc_claims()


def test_discover_provider_failure_raises() -> None:
    http = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
    with pytest.raises(OidcError):
        discover_provider(ISSUER, http=http)


def test_issuer_is_read_from_webid_profile() -> None:
    assert get_oidc_issuer_for_social_agent(WEBID, http=FakeIdp().client()) == ISSUER


def test_profile_without_issuer_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="", headers={"Content-Type": "text/turtle"})

    with pytest.raises(OidcError, match="No OIDC issuer"):
        get_oidc_issuer_for_social_agent(WEBID, http=httpx.Client(transport=httpx.MockTransport(handler)))


def test_pkce_challenge_is_s256_of_verifier() -> None:
    p = PkceParameters.generate()
    digest = hashlib.sha256(p.code_verifier.encode("ascii")).digest()
    assert p.code_challenge == base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def test_full_authorization_code_login() -> None:
    idp = FakeIdp()
    login = SolidOidcLogin.for_social_agent(WEBID, APP_ID, REDIRECT, prompt="consent", http=idp.client())

    auth_url = login.prepare_code_request()
    params = _query(auth_url)
    assert auth_url.startswith(f"{ISSUER}/auth?")
    assert params["client_id"] == APP_ID
    assert params["code_challenge_method"] == "S256"
    assert params["scope"] == "openid webid offline_access"
    assert params["prompt"] == "consent"

    login.process_code_response(f"{REDIRECT}?code=abc&state={params['state']}")
    tokens = login.request_tokens()
    credential = login.build()

    assert tokens.is_dpop
    assert isinstance(credential, DPoPCredential)
    assert credential.token == "at-1"
    assert credential.refresh_token == "rt-1"
    assert (credential.identity.subject_id, credential.identity.issuer_id) == (WEBID, ISSUER)

    req = idp.token_requests[0]
    form = {k: v[0] for k, v in parse_qs(req.content.decode("utf-8")).items()}
    assert form["grant_type"] == "authorization_code"
    assert form["code"] == "abc"
    digest = hashlib.sha256(form["code_verifier"].encode("ascii")).digest()
    assert base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=") == params["code_challenge"]
    header = jwt.get_unverified_header(req.headers["dpop"])
    assert header["jwk"] == credential.proof_factory.public_jwk()


def test_tampered_state_is_rejected() -> None:
    login = SolidOidcLogin(
        social_agent_id=WEBID,
        application_id=APP_ID,
        redirect_uri=REDIRECT,
        provider=ProviderMetadata.model_validate(PROVIDER),
    )
    login.prepare_code_request()
    with pytest.raises(OidcError, match="tampered"):
        login.process_code_response(f"{REDIRECT}?code=abc&state=forged")


def test_authorization_error_is_reported() -> None:
    login = SolidOidcLogin(
        social_agent_id=WEBID,
        application_id=APP_ID,
        redirect_uri=REDIRECT,
        provider=ProviderMetadata.model_validate(PROVIDER),
    )
    state = _query(login.prepare_code_request())["state"]
    with pytest.raises(OidcError, match="access_denied"):
        login.process_code_response(f"{REDIRECT}?error=access_denied&state={state}")


def test_steps_must_run_in_order() -> None:
    login = SolidOidcLogin(
        social_agent_id=WEBID,
        application_id=APP_ID,
        redirect_uri=REDIRECT,
        provider=ProviderMetadata.model_validate(PROVIDER),
    )
    with pytest.raises(OidcError):
        login.process_code_response(f"{REDIRECT}?code=abc&state=x")
    with pytest.raises(OidcError):
        login.request_tokens()
    with pytest.raises(OidcError):
        login.build()


@pytest.mark.parametrize(
    "missing", ["dpop_signing_alg_values_supported", "claims_supported", "authorization_endpoint"]
)
def test_provider_without_solid_oidc_support_is_rejected(missing: str) -> None:
    provider = {k: v for k, v in PROVIDER.items() if k != missing}
    with pytest.raises(OidcError):
        SolidOidcLogin(
            social_agent_id=WEBID,
            application_id=APP_ID,
            redirect_uri=REDIRECT,
            provider=ProviderMetadata.model_validate(provider),
        )


def test_bearer_token_from_login_is_rejected() -> None:
    idp = FakeIdp(token_type="Bearer")
    login = SolidOidcLogin.for_social_agent(WEBID, APP_ID, REDIRECT, http=idp.client())
    state = _query(login.prepare_code_request())["state"]
    login.process_code_response(f"{REDIRECT}?code=abc&state={state}")
    with pytest.raises(OidcError, match="not DPoP"):
        login.request_tokens()


def test_client_credentials_login() -> None:
    idp = FakeIdp(token_type="Bearer")

    cred = client_credentials_login(ISSUER, "svc", "svc-secret", scopes=["read"], http=idp.client())

    assert cred.token == "at-1"
    assert cred.identity.subject_id == "svc"
    assert cred.identity.issuer_id == ISSUER
    assert cred.token_endpoint == f"{ISSUER}/token"
    body = parse_qs(idp.token_requests[0].content.decode("utf-8"))
    assert body["grant_type"] == ["client_credentials"]
    assert cred.scopes == ("read",)
