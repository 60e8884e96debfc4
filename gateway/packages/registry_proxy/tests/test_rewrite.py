import httpx

from gateway.packages.registry_proxy import (
    gateway_origin,
    preflight_headers,
    rewrite_response_headers,
)
from gateway.packages.registry_proxy.rewrite import ALLOWED_METHODS, rewrite_location
from gateway.tests.fixtures_clients import make_config

ORIGIN = "https://hub.example.com"

UPSTREAM_HEADERS = httpx.Headers(
    [
        ("Content-Type", "application/json"),
        ("Content-Security-Policy", "default-src 'none'"),
        ("Content-Security-Policy-Report-Only", "default-src 'self'"),
        ("Clear-Site-Data", '"cache"'),
        ("X-Frame-Options", "DENY"),
        ("Connection", "keep-alive"),
        ("Transfer-Encoding", "chunked"),
        ("Cache-Control", "no-store"),
        ("Docker-Content-Digest", "sha256:abc"),
        ("Www-Authenticate", 'Bearer realm="https://auth.docker.io/token",service="registry.docker.io"'),
    ]
)


def _rewrite(headers=UPSTREAM_HEADERS, **kwargs):
    kwargs.setdefault("origin", ORIGIN)
    kwargs.setdefault("upstream_host", "registry-1.docker.io")
    return rewrite_response_headers(headers, make_config(), **kwargs)


def test_gateway_origin_from_request_host():
    assert gateway_origin(make_config(), "hub.example.com") == "https://hub.example.com"


def test_gateway_origin_from_public_url():
    config = make_config(public_url="https://mirror.example.org/")
    assert gateway_origin(config, "10.0.0.1:8000") == "https://mirror.example.org"


def test_strips_security_and_hop_by_hop_headers():
    headers = _rewrite()

    for name in (
        "content-security-policy",
        "content-security-policy-report-only",
        "clear-site-data",
        "x-frame-options",
        "connection",
        "transfer-encoding",
    ):
        assert name not in headers
    assert headers["docker-content-digest"] == "sha256:abc"


def test_rewrites_auth_challenge_realm():
    headers = _rewrite()

    assert headers["www-authenticate"] == (
        'Bearer realm="https://hub.example.com/token",service="registry.docker.io"'
    )


def test_applies_cors_and_cache_policy():
    headers = _rewrite()

    assert headers["access-control-allow-origin"] == "*"
    assert headers["access-control-expose-headers"] == "*"
    assert headers.get_list("cache-control") == ["public, max-age=1500"]


def test_keeps_upstream_cache_control_when_not_cacheable():
    headers = _rewrite(cacheable=False)
    assert headers["cache-control"] == "no-store"


def test_credentialed_request_echoes_origin():
    headers = _rewrite(request_origin="https://app.example.net", credentialed=True)

    assert headers["access-control-allow-origin"] == "https://app.example.net"
    assert headers["access-control-allow-credentials"] == "true"
    assert headers["vary"] == "Origin"


def test_credentialed_request_extends_vary():
    upstream = httpx.Headers({"vary": "Accept"})
    headers = _rewrite(upstream, request_origin="https://app.example.net", credentialed=True)
    assert headers["vary"] == "Accept, Origin"


def test_rewrites_same_upstream_location():
    upstream = httpx.Headers(
        {"location": "https://registry-1.docker.io/v2/library/nginx/blobs/uploads/1?_state=x"}
    )
    headers = _rewrite(upstream)

    assert headers["location"] == (
        "https://hub.example.com/v2/library/nginx/blobs/uploads/1?_state=x"
    )


def test_keeps_foreign_and_relative_location():
    assert (
        rewrite_location("https://cdn.example/blob", "registry-1.docker.io", ORIGIN)
        == "https://cdn.example/blob"
    )
    assert rewrite_location("/v2/x", "registry-1.docker.io", ORIGIN) == "/v2/x"


def test_keeps_duplicate_headers():
    upstream = httpx.Headers([("link", "<a>; rel=next"), ("link", "<b>; rel=last")])
    headers = _rewrite(upstream)
    assert headers.get_list("link") == ["<a>; rel=next", "<b>; rel=last"]


def test_preflight_headers():
    headers = preflight_headers("authorization,content-type")

    assert headers["access-control-allow-origin"] == "*"
    assert headers["access-control-allow-methods"] == ALLOWED_METHODS
    assert headers["access-control-max-age"] == "1728000"
    assert headers["access-control-allow-headers"] == "authorization,content-type"
