from __future__ import annotations

# `client` and `resources` depend on `sai_client.auth`; import them from their modules.
from .transport import HttpRequest, HttpxTransport, Transport

__all__ = [
    "HttpRequest",
    "HttpxTransport",
    "Transport",
]
