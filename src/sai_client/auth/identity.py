from __future__ import annotations

import hashlib
from dataclasses import dataclass

from sai_client.errors import SaiError


@dataclass(frozen=True, slots=True)
class Identity:
    """
    Stable key naming a logical session.

    The token of a session changes on every refresh; its identity does not.
    Comparison is exact string equality on all three parts (no normalization).
    """

    subject_id: str
    client_id: str
    issuer_id: str

    def digest(self, algorithm: str = "sha256") -> str:
        """
        Hex identifier for the session, scoped to subject, client and issuer.
        """
        combined = f"{self.subject_id}{self.client_id}{self.issuer_id}"
        try:
            h = hashlib.new(algorithm)
        except (ValueError, TypeError) as ex:
            raise SaiError(f"Failed to generate identifier for session: {ex}") from ex
        h.update(combined.encode("utf-8"))
        return h.hexdigest()

    def __str__(self) -> str:
        return f"{self.subject_id}|{self.client_id}|{self.issuer_id}"
