"""Generic HTTP proxy utilities for Docker Registry API.

This module forwards rewritten requests upstream with streaming in both
directions. Redirects to other hosts (blob downloads handed off to object
storage or a CDN) are followed here instead of being returned to the client.
"""

from typing import AsyncIterator, Optional

import httpx
import structlog

from .errors import ProxyLoopError, UpstreamConnectError, UpstreamTimeoutError
from .headers import BODY_HEADERS, drop, merge
from .types import GatewayConfig, OutboundRequest, ProxyOutcome

logger = structlog.stdlib.get_logger(__name__)

# Never carried over to a redirect target on another host.
REDIRECT_DROPPED_HEADERS = ("authorization", "cookie", "host")

# Redirects that must repeat the request body. The body stream is consumed by
# the first send, so these go back to the client when a body was sent.
BODY_PRESERVING_REDIRECTS = (307, 308)


def is_external_redirect(origin: httpx.URL, location: Optional[str]) -> bool:
    """Whether `location` is an absolute URL on a host other than `origin`'s."""
    if not location:
        return False
    try:
        target = httpx.URL(location)
    except httpx.InvalidURL:
        return False
    return target.is_absolute_url and target.host != origin.host


def redirect_headers(headers: httpx.Headers, target: httpx.URL) -> httpx.Headers:
    """Headers for following a redirect: no credentials, no body, Host of the target."""
    return merge(
        drop(headers, REDIRECT_DROPPED_HEADERS + BODY_HEADERS),
        {"host": target.netloc.decode("ascii")},
    )


def redirect_method(method: str, status_code: int) -> str:
    """Method for the follow-up request, as browsers and httpx pick it."""
    if status_code == 303 and method != "HEAD":
        return "GET"
    if status_code in (301, 302) and method == "POST":
        return "GET"
    return method


class ProxyExecutor:
    """Forwards requests upstream and follows external redirects.

    Args:
        client: HTTP client used for all upstream requests
        config: Gateway configuration (redirect bound and timeouts)
    """

    def __init__(self, client: httpx.AsyncClient, config: GatewayConfig):
        self.client = client
        self.config = config

    async def forward(self, request: OutboundRequest) -> ProxyOutcome:
        """Send `request` upstream and return the unread response.

        Args:
            request: The rewritten outbound request

        Returns:
            ProxyOutcome whose body has not been consumed yet

        Raises:
            ProxyLoopError: If more than `max_redirects` redirects are followed
            UpstreamTimeoutError: If an upstream does not answer in time
            UpstreamConnectError: If an upstream cannot be reached
        """
        method = request.method
        url = request.url
        headers = request.headers
        body = request.body
        hops = 0

        while True:
            response = await self._send(method, url, headers, body)
            location = response.headers.get("location")

            follow = response.is_redirect and is_external_redirect(request.url, location)
            if follow and body is not None and response.status_code in BODY_PRESERVING_REDIRECTS:
                logger.info(
                    "Returning body-preserving redirect to client",
                    status_code=response.status_code,
                    location=location,
                )
                follow = False

            if not follow:
                logger.info(
                    "Proxy response received",
                    status_code=response.status_code,
                    target_url=str(url),
                    hops=hops,
                )
                return self._outcome(response, url)

            await response.aclose()
            hops += 1
            if hops > self.config.max_redirects:
                logger.error(
                    "Too many upstream redirects",
                    max_redirects=self.config.max_redirects,
                    last_location=location,
                )
                raise ProxyLoopError(
                    f"exceeded {self.config.max_redirects} upstream redirects"
                )

            target = httpx.URL(location)
            logger.info("Following upstream redirect", location=str(target), hop=hops)

            method = redirect_method(method, response.status_code)
            headers = redirect_headers(headers, target)
            body = None
            url = target

    async def _send(
        self,
        method: str,
        url: httpx.URL,
        headers: httpx.Headers,
        body: Optional[AsyncIterator[bytes]],
    ) -> httpx.Response:
        logger.debug("Proxying request", method=method, target_url=str(url))

        upstream_request = self.client.build_request(
            method,
            url,
            headers=headers,
            content=body,
            timeout=self.config.timeout,
        )

        try:
            return await self.client.send(
                upstream_request, stream=True, follow_redirects=False
            )
        except httpx.TimeoutException as e:
            logger.error(
                "Timeout while proxying request",
                error=str(e),
                target_url=str(url),
            )
            raise UpstreamTimeoutError(f"upstream {url.host} timed out") from e
        except httpx.HTTPError as e:
            logger.error(
                "HTTP error while proxying request",
                error=str(e),
                target_url=str(url),
            )
            raise UpstreamConnectError(f"upstream {url.host} is unreachable") from e

    def _outcome(self, response: httpx.Response, url: httpx.URL) -> ProxyOutcome:
        async def body_stream() -> AsyncIterator[bytes]:
            try:
                async for chunk in response.aiter_raw():
                    yield chunk
            except httpx.HTTPError as e:
                logger.error(
                    "Upstream body stream failed",
                    error=str(e),
                    target_url=str(url),
                )
                raise
            finally:
                await response.aclose()

        return ProxyOutcome(
            status=response.status_code,
            headers=response.headers,
            body_stream=body_stream(),
            aclose=response.aclose,
            url=url,
        )
