from __future__ import annotations


class SaiError(RuntimeError):
    """Base class for every error raised by sai_client."""


class AuthHeaderError(SaiError):
    """A credential could not render authorization headers."""


class RefreshError(SaiError):
    """The refresh exchange with the token issuer failed."""


class LookupFailure(SaiError):
    """A session is not (or no longer) tracked by the credential store."""


class TransportError(SaiError):
    """I/O failure while issuing a request. Never an authentication failure."""


class NotFoundError(SaiError):
    """A required remote resource does not exist."""


class ResourceError(SaiError):
    """A remote resource operation returned an unexpected response."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class OidcError(SaiError):
    """Discovery, authorization or token endpoint failure while establishing a session."""
