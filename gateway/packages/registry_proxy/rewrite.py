"""Response header rewriting.

Points auth challenges and same-upstream redirects back at the gateway,
applies CORS and caching policy, and strips headers that would break browser
callers.
"""

from typing import Optional

import httpx

from .headers import HOP_BY_HOP_HEADERS, STRIPPED_RESPONSE_HEADERS, HeaderSource, drop, merge
from .types import GatewayConfig

ALLOWED_METHODS = "GET,POST,PUT,PATCH,TRACE,DELETE,HEAD,OPTIONS"
PREFLIGHT_MAX_AGE = "1728000"


def gateway_origin(config: GatewayConfig, request_host: str) -> str:
    """Public origin clients use to reach the gateway."""
    if config.public_url:
        return config.public_url.rstrip("/")
    return f"https://{request_host}"


def rewrite_location(location: str, upstream_host: str, origin: str) -> str:
    """Point an absolute same-upstream Location at the gateway.

    Relative locations and locations on other hosts are returned unchanged.
    """
    try:
        url = httpx.URL(location)
    except httpx.InvalidURL:
        return location
    if not url.is_absolute_url or url.host != upstream_host:
        return location
    return origin + url.raw_path.decode("ascii")


def cors_headers(
    request_origin: Optional[str] = None,
    credentialed: bool = False,
) -> dict[str, str]:
    """CORS headers for a response.

    Credentialed browser requests get their Origin echoed back, since the
    wildcard is not honoured for them.
    """
    if credentialed and request_origin:
        return {
            "access-control-allow-origin": request_origin,
            "access-control-allow-credentials": "true",
            "access-control-expose-headers": "*",
        }
    return {
        "access-control-allow-origin": "*",
        "access-control-expose-headers": "*",
    }


def preflight_headers(requested_headers: Optional[str] = None) -> dict[str, str]:
    headers = {
        "access-control-allow-origin": "*",
        "access-control-allow-methods": ALLOWED_METHODS,
        "access-control-max-age": PREFLIGHT_MAX_AGE,
    }
    if requested_headers:
        headers["access-control-allow-headers"] = requested_headers
    return headers


def rewrite_response_headers(
    headers: HeaderSource,
    config: GatewayConfig,
    *,
    origin: str,
    upstream_host: str,
    request_origin: Optional[str] = None,
    credentialed: bool = False,
    cacheable: bool = True,
) -> httpx.Headers:
    """Rewrite upstream response headers for the client.

    Args:
        headers: Upstream response headers
        config: Gateway configuration
        origin: Public gateway origin (e.g., "https://hub.example.com")
        upstream_host: Host that produced the response
        request_origin: Origin header of the client request, if any
        credentialed: Whether the client request carried credentials
        cacheable: Whether the public Cache-Control policy applies

    Returns:
        Headers to send to the client
    """
    kept = drop(headers, STRIPPED_RESPONSE_HEADERS + HOP_BY_HOP_HEADERS)

    rewritten = []
    for key, value in kept.multi_items():
        name = key.lower()
        if name == "www-authenticate":
            value = value.replace(config.auth_url, origin)
        elif name == "location":
            value = rewrite_location(value, upstream_host, origin)
        rewritten.append((key, value))

    overrides = cors_headers(request_origin, credentialed)
    if cacheable:
        overrides["cache-control"] = f"public, max-age={config.cache_max_age}"

    if credentialed and request_origin:
        vary = [kept.get("vary"), "Origin"]
        overrides["vary"] = ", ".join(part for part in vary if part)

    return merge(httpx.Headers(rewritten), overrides)
