from typing import Awaitable, Callable, Optional, TypeVar

import anyio
import structlog
from starlette.requests import ClientDisconnect, Request
from starlette.types import Receive

logger = structlog.stdlib.get_logger(__name__)

T = TypeVar("T")


async def _wait_for_disconnect(receive: Receive) -> None:
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            return


async def cancel_on_disconnect(request: Request, func: Callable[[], Awaitable[T]]) -> T:
    """Run `func`, cancelling it if the client disconnects first.

    Only for requests without a body: the watcher consumes ASGI receive
    messages, which would otherwise carry the body.

    Raises:
        ClientDisconnect: If the client went away before `func` finished
    """
    result: Optional[T] = None
    error: Optional[Exception] = None
    finished = False

    async with anyio.create_task_group() as task_group:

        async def watch() -> None:
            await _wait_for_disconnect(request.receive)
            logger.info("Client disconnected, cancelling upstream requests")
            task_group.cancel_scope.cancel()

        task_group.start_soon(watch)
        try:
            result = await func()
            finished = True
        except Exception as e:
            # Re-raised below so it does not surface as an exception group
            error = e
        task_group.cancel_scope.cancel()

    if error is not None:
        raise error
    if not finished:
        raise ClientDisconnect()
    return result  # type: ignore[return-value]
