import logging
import re
import time
from enum import Enum
from typing import Any

import structlog
from asgi_correlation_id import CorrelationIdMiddleware
from asgi_correlation_id.context import correlation_id
from fastapi import FastAPI, Request, Response
from pydantic_settings import BaseSettings
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from structlog.typing import EventDict, Processor, WrappedLogger
from uvicorn.protocols.utils import get_path_with_query_string

# Event keys whose values are credentials.
SENSITIVE_KEYS = frozenset({"authorization", "cookie", "token", "access_token"})
_BEARER_RE = re.compile(r"(Bearer|Basic)\s+[A-Za-z0-9._~+/=-]+", re.IGNORECASE)

# Probed every few seconds by the orchestrator
QUIET_PATHS = ("/health",)


class LogFormats(str, Enum):
    JSON = "json"
    CONSOLE = "console"


class LogSettings(BaseSettings):
    log_format: LogFormats = LogFormats.JSON
    log_level: str = "INFO"
    log_access: bool = True


def redact_credentials(
    _logger: WrappedLogger, _method_name: str, event_dict: EventDict
) -> EventDict:
    """Keep registry tokens and client credentials out of the logs."""
    for key, value in event_dict.items():
        if key in SENSITIVE_KEYS and value:
            event_dict[key] = "[redacted]"
        elif isinstance(value, str) and _BEARER_RE.search(value):
            event_dict[key] = _BEARER_RE.sub(r"\1 [redacted]", value)
    return event_dict


def _shared_processors(log_format: LogFormats) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.stdlib.ExtraAdder(),
        structlog.processors.CallsiteParameterAdder(
            [
                structlog.processors.CallsiteParameter.PATHNAME,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ],
        ),
        redact_credentials,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if log_format == LogFormats.JSON:
        processors.append(structlog.processors.format_exc_info)
    return processors


def setup_logger(app: FastAPI):
    settings = LogSettings()

    log_renderer: Processor
    if settings.log_format == LogFormats.CONSOLE:
        log_renderer = structlog.dev.ConsoleRenderer()
    else:
        log_renderer = structlog.processors.JSONRenderer()

    processors = _shared_processors(settings.log_format)

    structlog.configure(
        processors=processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            log_renderer,
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(settings.log_level.upper())

    for name in ("uvicorn", "uvicorn.error"):
        logging.getLogger(name).handlers.clear()
        logging.getLogger(name).propagate = True

    # Upstream traffic is logged by the proxy with its own fields
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)

    # Replaced by the gateway access log
    logging.getLogger("uvicorn.access").handlers.clear()
    logging.getLogger("uvicorn.access").propagate = False

    app.add_middleware(RequestContextMiddleware, log_access=settings.log_access)
    # Ingress ids are not always UUIDs, so any incoming value is kept
    app.add_middleware(CorrelationIdMiddleware, validator=None)


access_logger = structlog.stdlib.get_logger("gateway.access")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds a request id to the log context and writes the access log.

    The id comes from CorrelationIdMiddleware, which reads or generates the
    X-Request-ID header and echoes it on the response. Access log lines also
    carry the upstream the request was routed to, bound later by the gateway
    service.
    """

    def __init__(self, app: Any, log_access: bool = True):
        super().__init__(app)
        self.log_access = log_access

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        structlog.contextvars.clear_contextvars()
        request_id = correlation_id.get()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start_time = time.perf_counter()
        response = Response(status_code=500)
        try:
            response = await call_next(request)
        except Exception:
            structlog.stdlib.get_logger("gateway.error").exception("Uncaught exception")
            raise
        finally:
            if self.log_access:
                self._access_log(request, response.status_code, start_time)

        return response

    def _access_log(self, request: Request, status_code: int, start_time: float) -> None:
        url = get_path_with_query_string(request.scope)  # type: ignore
        http_version = request.scope["http_version"]
        log = access_logger.debug if request.url.path in QUIET_PATHS else access_logger.info
        log(
            f'"{request.method} {url} HTTP/{http_version}" {status_code}',
            http={
                "method": request.method,
                "host": request.headers.get("host"),
                "status_code": status_code,
                "version": http_version,
                "user_agent": request.headers.get("user-agent"),
            },
            duration=time.perf_counter() - start_time,
        )
