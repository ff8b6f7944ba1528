"""
DPoP (Demonstrating Proof-of-Possession) proofs.

A proof is a compact JWS signed with a key the client holds. The public half of
the key travels in the protected header, and the claims bind the proof to one
request (`htm`, `htu`) and, for resource requests, to one access token (`ath`).
"""

from __future__ import annotations

import base64
import hashlib
import json
import secrets
import time
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import jwt
from cryptography.hazmat.primitives.asymmetric import ec
from jwt.algorithms import ECAlgorithm

from sai_client.errors import AuthHeaderError

DPOP_JWT_TYPE = "dpop+jwt"
DPOP_ALGORITHM = "ES256"


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def access_token_hash(access_token: str) -> str:
    return _b64url(hashlib.sha256(access_token.encode("utf-8")).digest())


def htu_for(uri: str) -> str:
    """Target URI as it appears in the `htu` claim: no query, no fragment."""
    parts = urlsplit(uri)
    if not parts.scheme or not parts.netloc:
        raise AuthHeaderError(f"Cannot create DPoP proof for non-absolute URI {uri!r}")
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


@dataclass(frozen=True, slots=True)
class DPoPProofFactory:
    """
    Signs DPoP proofs with one EC P-256 key.

    Shared between a credential and every credential refreshed from it, so the
    access token stays bound to the same key across refreshes.
    """

    private_key: ec.EllipticCurvePrivateKey = field(repr=False)
    key_id: str = "1"

    @classmethod
    def generate(cls, key_id: str = "1") -> DPoPProofFactory:
        return cls(private_key=ec.generate_private_key(ec.SECP256R1()), key_id=key_id)

    def public_jwk(self) -> dict[str, Any]:
        jwk = json.loads(ECAlgorithm.to_jwk(self.private_key.public_key()))
        jwk["kid"] = self.key_id
        return jwk

    def thumbprint(self) -> str:
        """RFC 7638 JWK thumbprint (SHA-256) of the public key."""
        jwk = self.public_jwk()
        canonical = json.dumps(
            {k: jwk[k] for k in ("crv", "kty", "x", "y")}, separators=(",", ":"), sort_keys=True
        )
        return _b64url(hashlib.sha256(canonical.encode("utf-8")).digest())

    def create_proof(self, method: str, uri: str, *, access_token: str | None = None) -> str:
        claims: dict[str, Any] = {
            "htm": str(method).upper(),
            "htu": htu_for(uri),
            "iat": int(time.time()),
            "jti": secrets.token_urlsafe(16),
        }
        if access_token is not None:
            claims["ath"] = access_token_hash(access_token)
        try:
            return jwt.encode(
                claims,
                self.private_key,
                algorithm=DPOP_ALGORITHM,
                headers={"typ": DPOP_JWT_TYPE, "jwk": self.public_jwk()},
            )
        except (jwt.PyJWTError, ValueError, TypeError) as ex:
            raise AuthHeaderError(f"Unable to create DPoP proof: {ex}") from ex
