"""Gateway request handling.

This service takes one inbound request through the whole pipeline: user agent
filtering, upstream resolution, path rewriting, token brokering, forwarding and
response header rewriting.
"""

from typing import AsyncIterator, Optional

import httpx
import structlog
from fastapi import Request, Response
from fastapi.responses import RedirectResponse

from gateway.packages.registry_proxy import (
    GatewayConfig,
    InvalidUpstreamError,
    OutboundRequest,
    ProxyExecutor,
    RequestKind,
    RewrittenRequest,
    TokenBroker,
    TokenCache,
    gateway_origin,
    preflight_headers,
    resolve_upstream,
    rewrite_request,
    rewrite_response_headers,
)
from gateway.packages.registry_proxy.headers import (
    AUTH_PASSTHROUGH,
    UPSTREAM_PASSTHROUGH,
    build_outbound_headers,
)
from gateway.services.landing_pages import render_landing_page
from gateway.services.ua_filter import should_block
from gateway.utils.response_helpers import UpstreamStreamingResponse, html_response

logger = structlog.stdlib.get_logger(__name__)

# Query parameters consumed by the gateway itself.
GATEWAY_QUERY_PARAMS = ("ns", "hubhost")

# Request kinds that carry the client's own Authorization upstream. Other
# hosts (the Docker Hub website) never see registry credentials.
CLIENT_AUTH_KINDS = (RequestKind.REGISTRY_API, RequestKind.INDEX, RequestKind.GENERIC)


def request_host(request: Request) -> str:
    return request.headers.get("host") or request.url.netloc


def request_path(request: Request) -> str:
    """Path as sent by the client, percent-escapes intact."""
    raw_path = request.scope.get("raw_path")
    if not raw_path:
        return request.url.path
    return raw_path.split(b"?", 1)[0].decode("latin-1")


def has_body(request: Request) -> bool:
    content_length = request.headers.get("content-length")
    if content_length is not None:
        return content_length.strip() not in ("", "0")
    return "transfer-encoding" in request.headers


async def stream_request_body(request: Request) -> AsyncIterator[bytes]:
    """Stream request body from client in chunks.

    Args:
        request: FastAPI request object

    Yields:
        Chunks of request body data
    """
    async for chunk in request.stream():
        if chunk:
            yield chunk


class GatewayService:
    """Handles a single inbound request.

    Args:
        config: Gateway configuration
        client: HTTP client for all outbound requests
        token_cache: Optional cache for registry tokens
    """

    def __init__(
        self,
        config: GatewayConfig,
        client: httpx.AsyncClient,
        token_cache: Optional[TokenCache] = None,
    ):
        self.config = config
        self.executor = ProxyExecutor(client, config)
        self.broker = TokenBroker(
            client, config, cache=token_cache, cache_ttl=config.token_cache_ttl
        )

    async def handle(self, request: Request) -> Response:
        """Serve `request`.

        Raises:
            GatewayError: For every failure surfaced to the client
        """
        user_agent = request.headers.get("user-agent", "")

        if request.method == "OPTIONS" and "access-control-request-headers" in request.headers:
            return Response(
                status_code=200,
                headers=preflight_headers(
                    request.headers.get("access-control-request-headers")
                ),
            )

        if should_block(user_agent, self.config.blocked_user_agents):
            logger.info("Blocked user agent", user_agent=user_agent)
            return html_response(render_landing_page("nginx"))

        route = resolve_upstream(
            self.config,
            request_host(request),
            ns=request.query_params.get("ns"),
            hubhost=request.query_params.get("hubhost"),
        )
        structlog.contextvars.bind_contextvars(
            upstream_host=route.upstream_host,
            display_mode=route.display_mode.value,
        )

        query = [
            (key, value)
            for key, value in request.query_params.multi_items()
            if key not in GATEWAY_QUERY_PARAMS
        ]
        rewritten = rewrite_request(
            self.config, route, request_path(request), query, user_agent
        )
        logger.debug(
            "Rewrote request",
            kind=rewritten.kind.value,
            target_host=rewritten.upstream_host,
            path=rewritten.path,
        )

        if rewritten.kind == RequestKind.LANDING:
            return await self._landing(request)

        outbound = await self._outbound_request(request, rewritten)
        return await self._forward(request, outbound, rewritten.kind)

    async def _outbound_request(
        self, request: Request, rewritten: RewrittenRequest
    ) -> OutboundRequest:
        with_body = has_body(request)
        try:
            url = rewritten.url
        except httpx.InvalidURL as e:
            logger.warning(
                "Invalid upstream URL",
                target_host=rewritten.upstream_host,
                error=str(e),
            )
            raise InvalidUpstreamError(
                f"invalid upstream host {rewritten.upstream_host!r}"
            ) from e

        if rewritten.kind == RequestKind.TOKEN:
            headers = build_outbound_headers(
                request.headers, rewritten.upstream_host, names=AUTH_PASSTHROUGH
            )
        elif rewritten.kind == RequestKind.REGISTRY_API and self.config.brokers_tokens_for(
            rewritten.upstream_host
        ):
            grant = await self.broker.acquire_token(
                rewritten.registry_path.repository, request.headers
            )
            headers = build_outbound_headers(
                request.headers,
                rewritten.upstream_host,
                names=UPSTREAM_PASSTHROUGH,
                authorization=f"Bearer {grant.token}",
                with_body=with_body,
            )
        else:
            authorization = None
            if rewritten.kind in CLIENT_AUTH_KINDS:
                authorization = request.headers.get("authorization")
            headers = build_outbound_headers(
                request.headers,
                rewritten.upstream_host,
                names=UPSTREAM_PASSTHROUGH,
                authorization=authorization,
                with_body=with_body,
            )

        return OutboundRequest(
            method=request.method,
            url=url,
            headers=headers,
            body=stream_request_body(request) if with_body else None,
        )

    async def _forward(
        self,
        request: Request,
        outbound: OutboundRequest,
        kind: RequestKind,
    ) -> Response:
        logger.info(
            "Proxying request",
            method=outbound.method,
            target_url=str(outbound.url),
            kind=kind.value,
        )

        outcome = await self.executor.forward(outbound)

        request_origin = request.headers.get("origin")
        credentialed = bool(
            request_origin
            and ("cookie" in request.headers or "authorization" in request.headers)
        )
        headers = rewrite_response_headers(
            outcome.headers,
            self.config,
            origin=gateway_origin(self.config, request_host(request)),
            upstream_host=outcome.url.host if outcome.url else outbound.url.host,
            request_origin=request_origin,
            credentialed=credentialed,
            cacheable=kind != RequestKind.TOKEN,
        )

        return UpstreamStreamingResponse(
            content=outcome.body_stream,
            status_code=outcome.status,
            headers=headers,
            aclose=outcome.aclose,
        )

    async def _landing(self, request: Request) -> Response:
        if self.config.home_redirect_url:
            return RedirectResponse(self.config.home_redirect_url, status_code=302)

        if self.config.static_home_page:
            return html_response(render_landing_page("nginx"))

        if self.config.home_page:
            # Unrelated host: never forward client credentials to it
            home_url = httpx.URL(self.config.home_page)
            outbound = OutboundRequest(
                method="GET",
                url=home_url,
                headers=build_outbound_headers(
                    request.headers, home_url.netloc.decode("ascii")
                ),
            )
            return await self._forward(request, outbound, RequestKind.GENERIC)

        return html_response(render_landing_page("search"))
