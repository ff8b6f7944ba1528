from __future__ import annotations

import base64
from urllib.parse import parse_qs

import httpx
import jwt
import pytest

from sai_client.auth.credentials import (
    BearerCredential,
    ClientCredentialsCredential,
    Credential,
    DPoPCredential,
    authorization_value,
)
from sai_client.auth.dpop import DPoPProofFactory
from sai_client.errors import AuthHeaderError, RefreshError
from tests._helpers.fakes import ALICE, token_endpoint_handler

TOKEN_ENDPOINT = "https://idp.example/token"


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def _form(request: httpx.Request) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode("utf-8")).items()}


def test_authorization_value_rejects_malformed_tokens() -> None:
    assert authorization_value("Bearer", "abc") == "Bearer abc"
    for bad in ("", "   ", "two words", "line\nbreak"):
        with pytest.raises(AuthHeaderError):
            authorization_value("Bearer", bad)


def test_credentials_satisfy_protocol() -> None:
    cred = BearerCredential(token="t", identity=ALICE)
    assert isinstance(cred, Credential)
    assert cred.headers("GET", "https://pod.example/") == {"Authorization": "Bearer t"}


def test_repr_hides_tokens() -> None:
    cred = BearerCredential(token="secret-access", identity=ALICE, refresh_token="secret-refresh")
    assert "secret" not in repr(cred)


def test_bearer_refresh_uses_refresh_token_grant() -> None:
    seen: list[httpx.Request] = []
    http = _client(token_endpoint_handler([{"access_token": "t1", "refresh_token": "r1"}], seen=seen))
    cred = BearerCredential(
        token="t0", identity=ALICE, refresh_token="r0", token_endpoint=TOKEN_ENDPOINT, http=http
    )

    new = cred.refresh()

    assert (new.token, new.refresh_token) == ("t1", "r1")
    assert new.identity == ALICE
    assert cred.token == "t0"
    form = _form(seen[0])
    assert form == {"grant_type": "refresh_token", "refresh_token": "r0", "client_id": ALICE.client_id}
    assert "authorization" not in seen[0].headers


def test_bearer_refresh_keeps_refresh_token_when_not_rotated() -> None:
    http = _client(token_endpoint_handler([{"access_token": "t1"}]))
    cred = BearerCredential(
        token="t0", identity=ALICE, refresh_token="r0", token_endpoint=TOKEN_ENDPOINT, http=http
    )
    assert cred.refresh().refresh_token == "r0"


def test_bearer_refresh_with_client_secret_uses_basic_auth() -> None:
    seen: list[httpx.Request] = []
    http = _client(token_endpoint_handler([{"access_token": "t1"}], seen=seen))
    cred = BearerCredential(
        token="t0",
        identity=ALICE,
        refresh_token="r0",
        token_endpoint=TOKEN_ENDPOINT,
        client_secret="s3cret",
        http=http,
    )

    cred.refresh()

    expected = base64.b64encode(f"{ALICE.client_id}:s3cret".encode()).decode()
    assert seen[0].headers["authorization"] == f"Basic {expected}"
    assert "client_id" not in _form(seen[0])


@pytest.mark.parametrize(
    "kwargs",
    [
        {"refresh_token": None, "token_endpoint": TOKEN_ENDPOINT},
        {"refresh_token": "r0", "token_endpoint": None},
    ],
)
def test_bearer_refresh_requires_grant_material(kwargs) -> None:
    with pytest.raises(RefreshError):
        BearerCredential(token="t0", identity=ALICE, **kwargs).refresh()


def test_rejected_refresh_raises_refresh_error() -> None:
    http = _client(token_endpoint_handler([], status=400))
    cred = BearerCredential(
        token="t0", identity=ALICE, refresh_token="r0", token_endpoint=TOKEN_ENDPOINT, http=http
    )
    with pytest.raises(RefreshError, match="invalid_grant"):
        cred.refresh()


def test_malformed_token_response_raises_refresh_error() -> None:
    http = _client(token_endpoint_handler([{"token_type": "Bearer"}]))
    cred = BearerCredential(
        token="t0", identity=ALICE, refresh_token="r0", token_endpoint=TOKEN_ENDPOINT, http=http
    )
    with pytest.raises(RefreshError):
        cred.refresh()


def test_unreachable_token_endpoint_raises_refresh_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    cred = BearerCredential(
        token="t0",
        identity=ALICE,
        refresh_token="r0",
        token_endpoint=TOKEN_ENDPOINT,
        http=_client(handler),
    )
    with pytest.raises(RefreshError):
        cred.refresh()


def test_client_credentials_refresh_reruns_grant() -> None:
    seen: list[httpx.Request] = []
    http = _client(token_endpoint_handler([{"access_token": "c1"}], seen=seen))
    cred = ClientCredentialsCredential(
        token="c0",
        identity=ALICE,
        client_secret="s3cret",
        token_endpoint=TOKEN_ENDPOINT,
        scopes=("read", "write"),
        http=http,
    )

    new = cred.refresh()

    assert new.token == "c1"
    assert _form(seen[0]) == {"grant_type": "client_credentials", "scope": "read write"}
    assert seen[0].headers["authorization"].startswith("Basic ")


def test_dpop_headers_carry_bound_proof() -> None:
    factory = DPoPProofFactory.generate()
    cred = DPoPCredential(token="d0", identity=ALICE, proof_factory=factory)

    headers = cred.headers("get", "https://pod.example/data/?x=1#frag")

    assert headers["Authorization"] == "DPoP d0"
    claims = jwt.decode(headers["DPoP"], factory.private_key.public_key(), algorithms=["ES256"])
    assert claims["htm"] == "GET"
    assert claims["htu"] == "https://pod.example/data/"
    assert "ath" in claims


def test_dpop_refresh_sends_proof_and_keeps_key() -> None:
    seen: list[httpx.Request] = []
    http = _client(
        token_endpoint_handler([{"access_token": "d1", "token_type": "DPoP"}], seen=seen)
    )
    factory = DPoPProofFactory.generate()
    cred = DPoPCredential(
        token="d0",
        identity=ALICE,
        proof_factory=factory,
        refresh_token="r0",
        token_endpoint=TOKEN_ENDPOINT,
        http=http,
    )

    new = cred.refresh()

    assert new.token == "d1"
    assert new.refresh_token == "r0"
    assert new.proof_factory is factory
    proof = seen[0].headers["dpop"]
    claims = jwt.decode(proof, factory.private_key.public_key(), algorithms=["ES256"])
    assert (claims["htm"], claims["htu"]) == ("POST", TOKEN_ENDPOINT)
    assert "ath" not in claims


def test_dpop_refresh_rejects_bearer_token_type() -> None:
    http = _client(token_endpoint_handler([{"access_token": "d1", "token_type": "Bearer"}]))
    cred = DPoPCredential(
        token="d0",
        identity=ALICE,
        proof_factory=DPoPProofFactory.generate(),
        refresh_token="r0",
        token_endpoint=TOKEN_ENDPOINT,
        http=http,
    )
    with pytest.raises(RefreshError, match="not DPoP"):
        cred.refresh()
