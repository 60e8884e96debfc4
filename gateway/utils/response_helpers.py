from typing import AsyncIterator, Awaitable, Callable, Optional

import anyio
import httpx
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from starlette.types import Receive, Scope, Send

from gateway.packages.registry_proxy.rewrite import cors_headers


def docker_error_response(
    status_code: int,
    error_code: str,
    message: str,
    detail: Optional[str] = None,
) -> JSONResponse:
    """Create a Docker Registry v2 API compliant error response.

    CORS headers are included so browser callers can read the error.
    See: https://docs.docker.com/registry/spec/api/#errors
    """
    error_obj = {
        "code": error_code,
        "message": message,
    }
    if detail:
        error_obj["detail"] = detail

    return JSONResponse(
        status_code=status_code,
        content={"errors": [error_obj]},
        headers={
            "Docker-Distribution-API-Version": "registry/2.0",
            **cors_headers(),
        },
    )


def html_response(content: str, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(
        content=content,
        status_code=status_code,
        headers=cors_headers(),
    )


class UpstreamStreamingResponse(StreamingResponse):
    """Streams an upstream body and always releases the upstream response.

    Headers are sent exactly as given, duplicates included.
    """

    def __init__(
        self,
        content: AsyncIterator[bytes],
        status_code: int,
        headers: httpx.Headers,
        aclose: Callable[[], Awaitable[None]],
    ):
        super().__init__(content=content, status_code=status_code)
        self.raw_headers = [
            (key.encode("latin-1"), value.encode("latin-1"))
            for key, value in headers.multi_items()
        ]
        self._aclose = aclose

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            with anyio.CancelScope(shield=True):
                await self._aclose()
