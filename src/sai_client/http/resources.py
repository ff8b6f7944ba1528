"""
Resource-level helpers on top of AuthorizedClient.

Plain bodies go through get/put/delete; RDF resources are exchanged as rdflib
Graphs serialized to and from Turtle.
"""

from __future__ import annotations

from collections.abc import Mapping

import httpx
from rdflib import Graph

from sai_client.errors import NotFoundError, ResourceError
from sai_client.http.client import AuthorizedClient
from sai_client.http.headers import (
    LDP_BASIC_CONTAINER,
    RDF_FORMATS,
    ContentType,
    HttpHeader,
    LinkRelation,
    add_link_relation,
    media_type,
    set_header,
)


def _check_success(resp: httpx.Response, method: str, url: str) -> httpx.Response:
    if resp.status_code == 404:
        raise NotFoundError(f"No resource found at {url}")
    if not resp.is_success:
        raise ResourceError(
            f"HTTP {method} operation failed on {url} with {resp.status_code}",
            status_code=resp.status_code,
        )
    return resp


def get_resource(
    client: AuthorizedClient, url: str, headers: Mapping[str, str] | None = None
) -> httpx.Response:
    return client.get(url, headers=headers)


def get_required_resource(
    client: AuthorizedClient, url: str, headers: Mapping[str, str] | None = None
) -> httpx.Response:
    """GET that must succeed: 404 -> NotFoundError, any other non-2xx -> ResourceError."""
    return _check_success(client.get(url, headers=headers), "GET", url)


def put_resource(
    client: AuthorizedClient,
    url: str,
    body: bytes | str,
    content_type: ContentType | str,
    headers: Mapping[str, str] | None = None,
) -> httpx.Response:
    ctype = content_type.value if isinstance(content_type, ContentType) else str(content_type)
    return client.put(
        url, headers=set_header(HttpHeader.CONTENT_TYPE, ctype, headers), content=body
    )


def delete_resource(
    client: AuthorizedClient, url: str, headers: Mapping[str, str] | None = None
) -> httpx.Response:
    return client.delete(url, headers=headers)


def rdf_format_for(resp: httpx.Response) -> str:
    raw = resp.headers.get(HttpHeader.CONTENT_TYPE.value)
    if not raw:
        raise ResourceError("Content-type header is missing", status_code=resp.status_code)
    fmt = RDF_FORMATS.get(media_type(raw))
    if fmt is None:
        raise ResourceError(f"Invalid Content-Type for RDF resource: {raw}", status_code=resp.status_code)
    return fmt


def graph_from_response(resp: httpx.Response, base: str | None = None) -> Graph:
    fmt = rdf_format_for(resp)
    graph = Graph()
    try:
        graph.parse(data=resp.text, format=fmt, publicID=base or str(resp.url))
    except Exception as ex:  # rdflib raises parser-specific exception types
        raise ResourceError(f"Unable to parse RDF resource {base or resp.url}: {ex}") from ex
    return graph


def get_rdf_graph(client: AuthorizedClient, url: str) -> Graph:
    """Fetch a required RDF resource as Turtle and parse it."""
    headers = {HttpHeader.ACCEPT.value: ContentType.TEXT_TURTLE.value}
    resp = get_required_resource(client, url, headers)
    return graph_from_response(resp, base=url)


def put_rdf_graph(
    client: AuthorizedClient,
    url: str,
    graph: Graph,
    headers: Mapping[str, str] | None = None,
) -> httpx.Response:
    body = graph.serialize(format="turtle", base=url)
    return put_resource(client, url, body, ContentType.TEXT_TURTLE, headers)


def put_rdf_container(client: AuthorizedClient, url: str, graph: Graph) -> httpx.Response:
    headers = add_link_relation(LinkRelation.TYPE, LDP_BASIC_CONTAINER)
    return put_rdf_graph(client, url, graph, headers)
