from __future__ import annotations

from .credentials import (
    BearerCredential,
    ClientCredentialsCredential,
    Credential,
    DPoPCredential,
)
from .dpop import DPoPProofFactory
from .identity import Identity
from .refresh import RefreshCoordinator, RefreshingAuth
from .store import (
    CredentialStore,
    Found,
    InMemoryCredentialStore,
    LookupResult,
    NotFound,
    StoreFailure,
)

__all__ = [
    "BearerCredential",
    "ClientCredentialsCredential",
    "Credential",
    "CredentialStore",
    "DPoPCredential",
    "DPoPProofFactory",
    "Found",
    "Identity",
    "InMemoryCredentialStore",
    "LookupResult",
    "NotFound",
    "RefreshCoordinator",
    "RefreshingAuth",
    "StoreFailure",
]
