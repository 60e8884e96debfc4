import httpx
import pytest

from gateway.packages.registry_proxy import (
    OutboundRequest,
    ProxyExecutor,
    ProxyLoopError,
    UpstreamConnectError,
    UpstreamTimeoutError,
)
from gateway.packages.registry_proxy.proxy import (
    is_external_redirect,
    redirect_headers,
    redirect_method,
)
from gateway.tests.fixtures_clients import make_config

BLOB_URL = httpx.URL("https://registry-1.docker.io/v2/library/nginx/blobs/sha256:abc")
BLOB_BYTES = b"\x1f\x8b\x08\x00layer-bytes"


def _blob_request(method: str = "GET") -> OutboundRequest:
    return OutboundRequest(
        method=method,
        url=BLOB_URL,
        headers=httpx.Headers(
            {
                "host": "registry-1.docker.io",
                "authorization": "Bearer tok-1",
                "x-amz-content-sha256": "UNSIGNED-PAYLOAD",
            }
        ),
    )


def _upload_request(method: str) -> OutboundRequest:
    async def body():
        yield BLOB_BYTES

    return OutboundRequest(
        method=method,
        url=BLOB_URL,
        headers=httpx.Headers(
            {
                "host": "registry-1.docker.io",
                "content-type": "application/octet-stream",
                "content-length": str(len(BLOB_BYTES)),
                "docker-content-digest": "sha256:abc",
            }
        ),
        body=body(),
    )


async def _read(outcome) -> bytes:
    return b"".join([chunk async for chunk in outcome.body_stream])


@pytest.mark.parametrize(
    "location,expected",
    [
        ("https://cdn.example/blob", True),
        ("https://registry-1.docker.io/v2/other", False),
        ("/v2/library/nginx/blobs/uploads/1", False),
        ("", False),
        (None, False),
    ],
)
def test_is_external_redirect(location, expected):
    assert is_external_redirect(BLOB_URL, location) is expected


def test_redirect_headers_drop_credentials():
    headers = redirect_headers(
        httpx.Headers(
            {
                "host": "registry-1.docker.io",
                "authorization": "Bearer tok-1",
                "cookie": "a=b",
                "accept": "*/*",
            }
        ),
        httpx.URL("https://cdn.example:8443/blob"),
    )

    assert "authorization" not in headers
    assert "cookie" not in headers
    assert headers["host"] == "cdn.example:8443"
    assert headers["accept"] == "*/*"


def test_redirect_headers_drop_body_headers():
    headers = redirect_headers(
        httpx.Headers(
            {
                "content-type": "application/octet-stream",
                "content-length": "18",
                "docker-content-digest": "sha256:abc",
                "user-agent": "docker/27.0.3",
            }
        ),
        httpx.URL("https://cdn.example/blob"),
    )

    assert "content-type" not in headers
    assert "content-length" not in headers
    assert "docker-content-digest" not in headers
    assert headers["user-agent"] == "docker/27.0.3"


@pytest.mark.parametrize(
    "method,status_code,expected",
    [
        ("POST", 303, "GET"),
        ("HEAD", 303, "HEAD"),
        ("POST", 302, "GET"),
        ("POST", 301, "GET"),
        ("PUT", 302, "PUT"),
        ("GET", 307, "GET"),
    ],
)
def test_redirect_method(method, status_code, expected):
    assert redirect_method(method, status_code) == expected


async def test_forward_streams_response(upstream, http_client):
    upstream.get(str(BLOB_URL)).mock(
        return_value=httpx.Response(
            200, content=BLOB_BYTES, headers={"docker-content-digest": "sha256:abc"}
        )
    )
    executor = ProxyExecutor(http_client, make_config())

    outcome = await executor.forward(_blob_request())

    assert outcome.status == 200
    assert outcome.headers["docker-content-digest"] == "sha256:abc"
    assert outcome.url == BLOB_URL
    assert await _read(outcome) == BLOB_BYTES


async def test_forward_follows_cdn_redirect(upstream, http_client):
    registry = upstream.get(str(BLOB_URL)).mock(
        return_value=httpx.Response(
            307, headers={"location": "https://cdn.example/blobs/abc?sig=1"}
        )
    )
    cdn = upstream.get(host="cdn.example", path="/blobs/abc").mock(
        return_value=httpx.Response(200, content=BLOB_BYTES)
    )
    executor = ProxyExecutor(http_client, make_config())

    outcome = await executor.forward(_blob_request())

    assert outcome.status == 200
    assert outcome.url.host == "cdn.example"
    assert await _read(outcome) == BLOB_BYTES
    assert registry.calls.last.request.headers["authorization"] == "Bearer tok-1"

    cdn_request = cdn.calls.last.request
    assert "authorization" not in cdn_request.headers
    assert cdn_request.headers["host"] == "cdn.example"
    assert cdn_request.headers["x-amz-content-sha256"] == "UNSIGNED-PAYLOAD"
    assert cdn_request.url.params["sig"] == "1"


async def test_forward_follows_redirect_chain_within_bound(upstream, http_client):
    upstream.get(str(BLOB_URL)).mock(
        return_value=httpx.Response(302, headers={"location": "https://cdn.example/hop1"})
    )
    for hop in range(1, 5):
        upstream.get(host="cdn.example", path=f"/hop{hop}").mock(
            return_value=httpx.Response(
                302, headers={"location": f"https://cdn.example/hop{hop + 1}"}
            )
        )
    upstream.get(host="cdn.example", path="/hop5").mock(
        return_value=httpx.Response(200, content=BLOB_BYTES)
    )
    executor = ProxyExecutor(http_client, make_config(max_redirects=5))

    outcome = await executor.forward(_blob_request())

    assert outcome.status == 200
    assert await _read(outcome) == BLOB_BYTES


async def test_forward_redirect_loop(upstream, http_client):
    upstream.get(str(BLOB_URL)).mock(
        return_value=httpx.Response(302, headers={"location": "https://cdn.example/hop1"})
    )
    for hop in range(1, 6):
        upstream.get(host="cdn.example", path=f"/hop{hop}").mock(
            return_value=httpx.Response(
                302, headers={"location": f"https://cdn.example/hop{hop + 1}"}
            )
        )
    last = upstream.get(host="cdn.example", path="/hop6").mock(
        return_value=httpx.Response(200, content=BLOB_BYTES)
    )
    executor = ProxyExecutor(http_client, make_config(max_redirects=5))

    with pytest.raises(ProxyLoopError) as exc_info:
        await executor.forward(_blob_request())

    assert exc_info.value.status_code == 508
    assert not last.called


async def test_forward_returns_same_host_redirect(upstream, http_client):
    upstream.get(str(BLOB_URL)).mock(
        return_value=httpx.Response(
            307,
            headers={"location": "https://registry-1.docker.io/v2/library/nginx/blobs/sha256:def"},
        )
    )
    executor = ProxyExecutor(http_client, make_config())

    outcome = await executor.forward(_blob_request())

    assert outcome.status == 307
    assert outcome.headers["location"].endswith("/blobs/sha256:def")
    await outcome.aclose()


async def test_forward_returns_relative_redirect(upstream, http_client):
    upstream.get(str(BLOB_URL)).mock(
        return_value=httpx.Response(302, headers={"location": "/v2/elsewhere"})
    )
    executor = ProxyExecutor(http_client, make_config())

    outcome = await executor.forward(_blob_request())

    assert outcome.status == 302
    assert outcome.headers["location"] == "/v2/elsewhere"
    await outcome.aclose()


async def test_forward_see_other_switches_to_get(upstream, http_client):
    upstream.post(str(BLOB_URL)).mock(
        return_value=httpx.Response(303, headers={"location": "https://cdn.example/result"})
    )
    result = upstream.get(host="cdn.example", path="/result").mock(
        return_value=httpx.Response(200, content=b"ok")
    )
    executor = ProxyExecutor(http_client, make_config())

    outcome = await executor.forward(_blob_request("POST"))

    assert outcome.status == 200
    assert result.called
    assert await _read(outcome) == b"ok"


async def test_forward_timeout(upstream, http_client):
    upstream.get(str(BLOB_URL)).mock(side_effect=httpx.ConnectTimeout)
    executor = ProxyExecutor(http_client, make_config())

    with pytest.raises(UpstreamTimeoutError) as exc_info:
        await executor.forward(_blob_request())

    assert exc_info.value.status_code == 504


async def test_forward_unreachable(upstream, http_client):
    upstream.get(str(BLOB_URL)).mock(side_effect=httpx.ConnectError)
    executor = ProxyExecutor(http_client, make_config())

    with pytest.raises(UpstreamConnectError) as exc_info:
        await executor.forward(_blob_request())

    assert exc_info.value.status_code == 502


@pytest.mark.parametrize("status_code", [307, 308])
async def test_forward_returns_body_preserving_redirect(upstream, http_client, status_code):
    registry = upstream.put(str(BLOB_URL)).mock(
        return_value=httpx.Response(
            status_code, headers={"location": "https://storage.example/part-1"}
        )
    )
    storage = upstream.put(host="storage.example").mock(return_value=httpx.Response(201))
    executor = ProxyExecutor(http_client, make_config())

    outcome = await executor.forward(_upload_request("PUT"))

    assert outcome.status == status_code
    assert outcome.headers["location"] == "https://storage.example/part-1"
    assert registry.calls.last.request.content == BLOB_BYTES
    assert not storage.called
    await outcome.aclose()


async def test_forward_found_after_upload_drops_body(upstream, http_client):
    upstream.post(str(BLOB_URL)).mock(
        return_value=httpx.Response(302, headers={"location": "https://cdn.example/result"})
    )
    result = upstream.get(host="cdn.example", path="/result").mock(
        return_value=httpx.Response(200, content=b"ok")
    )
    executor = ProxyExecutor(http_client, make_config())

    outcome = await executor.forward(_upload_request("POST"))

    assert outcome.status == 200
    assert await _read(outcome) == b"ok"
    follow_up = result.calls.last.request
    assert follow_up.method == "GET"
    assert follow_up.content == b""
    assert "content-length" not in follow_up.headers
    assert "content-type" not in follow_up.headers
    assert "docker-content-digest" not in follow_up.headers
