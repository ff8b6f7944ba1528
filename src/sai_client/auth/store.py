"""
Credential store: the one piece of shared mutable state in the refresh protocol.

Lookups return an explicit result variant (`Found`, `NotFound`, `StoreFailure`)
instead of raising, so callers branch exhaustively on what happened.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from sai_client.auth.credentials import Credential
from sai_client.auth.identity import Identity
from sai_client.errors import LookupFailure, RefreshError
from sai_client.utils.log import logger


@dataclass(frozen=True, slots=True)
class Found:
    credential: Credential


@dataclass(frozen=True, slots=True)
class NotFound:
    reason: str = ""


@dataclass(frozen=True, slots=True)
class StoreFailure:
    error: str


LookupResult = Found | NotFound | StoreFailure


@runtime_checkable
class CredentialStore(Protocol):
    """
    Lookup, refresh and persistence of credentials, keyed by token and by identity.

    Mutations must be visible to every subsequent `find_by_identity` call from any
    thread as soon as they return.
    """

    def find_by_token(self, token: str) -> LookupResult: ...

    def find_by_identity(self, identity: Identity) -> LookupResult: ...

    def refresh(self, credential: Credential) -> LookupResult:
        """
        Refresh the canonical credential for `credential.identity`, install and return it.
        NotFound when the identity is no longer tracked.
        """
        ...

    def store(self, credential: Credential) -> None: ...


class InMemoryCredentialStore:
    """
    Thread-safe in-memory store.

    Keeps the canonical credential per identity plus an index of the last
    `token_history` token values seen for each identity, so a request that failed
    with an already-superseded token can still be traced back to its session.
    """

    def __init__(self, *, token_history: int = 8) -> None:
        if token_history < 1:
            raise ValueError("token_history must be >= 1")
        self._lock = threading.RLock()
        self._token_history = int(token_history)
        self._by_identity: dict[Identity, Credential] = {}
        self._by_token: dict[str, Credential] = {}
        self._tokens: dict[Identity, deque[str]] = {}
        self._refresh_locks: dict[Identity, threading.Lock] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_identity)

    def identities(self) -> list[Identity]:
        with self._lock:
            return list(self._by_identity)

    def find_by_token(self, token: str) -> LookupResult:
        with self._lock:
            cred = self._by_token.get(token)
        if cred is None:
            return NotFound("unknown token")
        return Found(cred)

    def find_by_identity(self, identity: Identity) -> LookupResult:
        with self._lock:
            cred = self._by_identity.get(identity)
        if cred is None:
            return NotFound("identity not tracked")
        return Found(cred)

    def store(self, credential: Credential) -> None:
        with self._lock:
            self._install(credential)

    def require(self, identity: Identity) -> Credential:
        """Current credential of a session; raises LookupFailure when it is not tracked."""
        result = self.find_by_identity(identity)
        if not isinstance(result, Found):
            raise LookupFailure(f"No session tracked for {identity}")
        return result.credential

    def remove(self, identity: Identity) -> bool:
        """Forget a session (e.g. logout). Its tokens stop resolving too."""
        with self._lock:
            cred = self._by_identity.pop(identity, None)
            for tok in self._tokens.pop(identity, ()):
                self._by_token.pop(tok, None)
            # The refresh lock stays: an exchange in flight may still hold it.
        if cred is not None:
            logger.info("credential_removed", subject_id=identity.subject_id)
        return cred is not None

    def refresh(self, credential: Credential) -> LookupResult:
        identity = credential.identity
        with self._refresh_lock(identity):
            with self._lock:
                canonical = self._by_identity.get(identity)
            if canonical is None:
                return NotFound("identity not tracked")
            if canonical.token != credential.token:
                # Someone else refreshed while we waited for the lock.
                return Found(canonical)
            try:
                refreshed = canonical.refresh()
            except RefreshError as ex:
                logger.warning(
                    "credential_refresh_failed",
                    subject_id=identity.subject_id,
                    issuer_id=identity.issuer_id,
                    error=str(ex),
                )
                return StoreFailure(str(ex))
            with self._lock:
                if identity not in self._by_identity:
                    # Removed during the exchange; do not resurrect it.
                    return NotFound("identity removed during refresh")
                self._install(refreshed)
            return Found(refreshed)

    def _refresh_lock(self, identity: Identity) -> threading.Lock:
        with self._lock:
            lock = self._refresh_locks.get(identity)
            if lock is None:
                lock = threading.Lock()
                self._refresh_locks[identity] = lock
            return lock

    def _install(self, credential: Credential) -> None:
        # caller holds self._lock
        identity = credential.identity
        self._by_identity[identity] = credential
        history = self._tokens.setdefault(identity, deque())
        if credential.token in history:
            history.remove(credential.token)
        history.append(credential.token)
        self._by_token[credential.token] = credential
        while len(history) > self._token_history:
            self._by_token.pop(history.popleft(), None)
