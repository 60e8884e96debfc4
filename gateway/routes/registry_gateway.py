"""Docker Registry gateway route.

Every path not claimed by another router is handled here and proxied to the
registry upstream picked for the request.

See: https://docs.docker.com/registry/spec/api/
"""

import structlog
from fastapi import APIRouter, Request, Response
from starlette.requests import ClientDisconnect

from gateway.deps.gateway import GatewayServiceDep
from gateway.services.gateway_service import has_body
from gateway.utils.cancellation import cancel_on_disconnect

logger = structlog.stdlib.get_logger(__name__)

router = APIRouter(tags=["Registry Gateway"])

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "TRACE"]

# Non-standard status used for requests abandoned by the client
CLIENT_CLOSED_REQUEST = 499


@router.api_route("/{path:path}", methods=PROXY_METHODS, include_in_schema=False)
async def proxy(request: Request, service: GatewayServiceDep) -> Response:
    """Proxy any request through the gateway.

    Body-less requests are cancelled, including pending token and upstream
    fetches, as soon as the client disconnects. Requests with a body notice
    the disconnect while their body is streamed upstream.
    """
    if has_body(request):
        return await service.handle(request)

    try:
        return await cancel_on_disconnect(request, lambda: service.handle(request))
    except ClientDisconnect:
        logger.info("Request abandoned by client", path=request.url.path)
        return Response(status_code=CLIENT_CLOSED_REQUEST)
