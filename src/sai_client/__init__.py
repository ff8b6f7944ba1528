"""
Client library for access-controlled RDF resources (Solid Application Interoperability).

Requests are authorized with a credential and transparently retried once with a
refreshed credential when the server answers 401.
"""

from __future__ import annotations

__version__ = "0.1.0"
