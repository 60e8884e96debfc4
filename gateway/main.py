from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from gateway.factories import http_client_factory
from gateway.packages.registry_proxy import GatewayError
from gateway.routes import health, registry_gateway
from gateway.utils.logging_utils import setup_logger
from gateway.utils.response_helpers import docker_error_response
from gateway.utils.sentry import init_sentry

logger = structlog.stdlib.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield

    if http_client_factory.cache_info().currsize:
        await http_client_factory().aclose()


init_sentry()
# The gateway owns every path, so no docs or OpenAPI routes are mounted.
app = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)
setup_logger(app)


@app.exception_handler(GatewayError)
async def gateway_exception_handler(request: Request, exc: GatewayError) -> JSONResponse:
    logger.warning(
        "Gateway request failed",
        error_code=exc.error_code,
        status_code=exc.status_code,
        error=exc.message,
        path=request.url.path,
    )
    return docker_error_response(
        status_code=exc.status_code,
        error_code=exc.error_code,
        message=exc.message,
    )


app.include_router(health.router)
# Catch-all, must stay last
app.include_router(registry_gateway.router)
