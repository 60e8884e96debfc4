"""Header policies for outbound requests and proxied responses.

Headers are handled as ordered `httpx.Headers` mappings. Every policy is a
pure function returning a new mapping; inputs are never mutated.
"""

from typing import Iterable, Mapping, Optional, Union

import httpx

HeaderSource = Union[httpx.Headers, Mapping[str, str]]

# Headers forwarded to the token service. Never Authorization or Cookie.
AUTH_PASSTHROUGH = (
    "user-agent",
    "accept",
    "accept-language",
    "accept-encoding",
)

# Headers forwarded to registry upstreams.
UPSTREAM_PASSTHROUGH = AUTH_PASSTHROUGH + (
    "connection",
    "cache-control",
    "x-amz-content-sha256",
)

# Request body framing, forwarded whenever a body is streamed upstream.
BODY_HEADERS = (
    "content-type",
    "content-length",
    "docker-content-digest",
)

# Response headers never returned to the client.
STRIPPED_RESPONSE_HEADERS = (
    "content-security-policy",
    "content-security-policy-report-only",
    "clear-site-data",
    "x-frame-options",
)

HOP_BY_HOP_HEADERS = (
    "connection",
    "keep-alive",
    "transfer-encoding",
)

DEFAULT_OUTBOUND = {
    "accept": "*/*",
}


def pick(source: HeaderSource, names: Iterable[str]) -> httpx.Headers:
    """Allow-list: keep only `names`, in the order they appear in `source`."""
    allowed = {name.lower() for name in names}
    return httpx.Headers(
        [(key, value) for key, value in _items(source) if key.lower() in allowed]
    )


def drop(source: HeaderSource, names: Iterable[str]) -> httpx.Headers:
    """Deny-list: remove every header named in `names`."""
    denied = {name.lower() for name in names}
    return httpx.Headers(
        [(key, value) for key, value in _items(source) if key.lower() not in denied]
    )


def merge(base: HeaderSource, overrides: HeaderSource) -> httpx.Headers:
    """Return `base` with every header of `overrides` replacing its namesakes."""
    override_headers = httpx.Headers(overrides)
    kept = drop(base, override_headers.keys())
    return httpx.Headers(
        list(kept.multi_items()) + list(override_headers.multi_items())
    )


def with_defaults(source: HeaderSource, defaults: HeaderSource) -> httpx.Headers:
    """Add each header of `defaults` that `source` does not already carry."""
    headers = httpx.Headers(source)
    return httpx.Headers(
        list(headers.multi_items()) + _missing(headers, httpx.Headers(defaults))
    )


def build_outbound_headers(
    inbound: HeaderSource,
    upstream_host: str,
    *,
    names: Iterable[str] = UPSTREAM_PASSTHROUGH,
    authorization: Optional[str] = None,
    with_body: bool = False,
) -> httpx.Headers:
    """Build the headers for a request sent to `upstream_host`.

    Args:
        inbound: Headers of the client request
        upstream_host: Value for the Host header
        names: Allow-list of client headers to forward
        authorization: Authorization value to send, if any
        with_body: Whether body framing headers are forwarded too

    Returns:
        Ordered outbound headers
    """
    allowed = tuple(names) + (BODY_HEADERS if with_body else ())
    headers = with_defaults(pick(inbound, allowed), DEFAULT_OUTBOUND)

    overrides = {"host": upstream_host}
    if authorization:
        overrides["authorization"] = authorization
    return merge(headers, overrides)


def _items(source: HeaderSource) -> list[tuple[str, str]]:
    if isinstance(source, httpx.Headers):
        return list(source.multi_items())
    return list(source.items())


def _missing(headers: httpx.Headers, extra: httpx.Headers) -> list[tuple[str, str]]:
    return [(key, value) for key, value in extra.multi_items() if key not in headers]
