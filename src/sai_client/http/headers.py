from __future__ import annotations

from collections.abc import Mapping
from enum import Enum

import httpx


class HttpHeader(str, Enum):
    ACCEPT = "Accept"
    AUTHORIZATION = "Authorization"
    CONTENT_TYPE = "Content-Type"
    DPOP = "DPoP"
    IF_NONE_MATCH = "If-None-Match"
    LINK = "Link"
    LOCATION = "Location"
    SLUG = "Slug"


class ContentType(str, Enum):
    TEXT_TURTLE = "text/turtle"
    RDF_XML = "application/rdf+xml"
    N_TRIPLES = "application/n-triples"
    LD_JSON = "application/ld+json"
    SPARQL_UPDATE = "application/sparql-update"
    JSON = "application/json"
    TEXT_PLAIN = "text/plain"
    TEXT_HTML = "text/html"
    OCTET_STREAM = "application/octet-stream"
    FORM_URLENCODED = "application/x-www-form-urlencoded"


# rdflib parser format for each RDF media type we accept
RDF_FORMATS: dict[str, str] = {
    ContentType.TEXT_TURTLE.value: "turtle",
    ContentType.RDF_XML.value: "xml",
    ContentType.N_TRIPLES.value: "nt",
    ContentType.LD_JSON.value: "json-ld",
}


class LinkRelation(str, Enum):
    TYPE = "type"
    ACL = "acl"
    DESCRIBED_BY = "describedby"
    MANAGED_BY = "http://www.w3.org/ns/shapetrees#managedBy"
    MANAGES = "http://www.w3.org/ns/shapetrees#manages"


LDP_BASIC_CONTAINER = "http://www.w3.org/ns/ldp#BasicContainer"
LDP_RESOURCE = "http://www.w3.org/ns/ldp#Resource"


def link_header(target: str, rel: LinkRelation | str) -> str:
    rel_value = rel.value if isinstance(rel, LinkRelation) else str(rel)
    return f'<{target}>; rel="{rel_value}"'


def add_link_relation(
    rel: LinkRelation | str, target: str, headers: Mapping[str, str] | None = None
) -> httpx.Headers:
    """
    Return a copy of `headers` with an extra Link header; existing Link values are kept.
    """
    existing = httpx.Headers(headers or {}).multi_items()
    return httpx.Headers([*existing, (HttpHeader.LINK.value, link_header(target, rel))])


def set_header(
    name: HttpHeader | str, value: str, headers: Mapping[str, str] | None = None
) -> httpx.Headers:
    """
    Return a copy of `headers` with `name` set to exactly `value` (replacing any existing values).
    """
    key = name.value if isinstance(name, HttpHeader) else str(name)
    out = httpx.Headers(headers or {})
    out[key] = value
    return out


def media_type(value: str | None) -> str:
    """Strip parameters (charset etc.) from a Content-Type value."""
    return str(value or "").split(";", 1)[0].strip().lower()
