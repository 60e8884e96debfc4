"""Registry proxy package for Docker Registry v2 API.

This package provides the building blocks of the gateway: upstream
resolution, path rewriting, token brokering, request forwarding and
response header rewriting.
"""

from .errors import (
    AuthUpstreamError,
    GatewayError,
    InvalidPathError,
    InvalidUpstreamError,
    ProxyLoopError,
    UpstreamConnectError,
    UpstreamNotAllowedError,
    UpstreamTimeoutError,
)
from .proxy import ProxyExecutor
from .resolver import resolve_upstream
from .paths import parse_registry_path, rewrite_request
from .rewrite import gateway_origin, preflight_headers, rewrite_response_headers
from .tokens import InMemoryTokenCache, TokenBroker, TokenCache, pull_scope
from .types import (
    DisplayMode,
    GatewayConfig,
    OutboundRequest,
    ProxyOutcome,
    RegistryPath,
    RequestKind,
    RewrittenRequest,
    RouteDecision,
    TokenGrant,
)

__all__ = [
    # Errors
    "GatewayError",
    "InvalidPathError",
    "InvalidUpstreamError",
    "UpstreamNotAllowedError",
    "AuthUpstreamError",
    "UpstreamConnectError",
    "UpstreamTimeoutError",
    "ProxyLoopError",
    # Components
    "ProxyExecutor",
    "TokenBroker",
    "TokenCache",
    "InMemoryTokenCache",
    # Types
    "DisplayMode",
    "GatewayConfig",
    "OutboundRequest",
    "ProxyOutcome",
    "RegistryPath",
    "RequestKind",
    "RewrittenRequest",
    "RouteDecision",
    "TokenGrant",
    # Utilities
    "gateway_origin",
    "parse_registry_path",
    "preflight_headers",
    "pull_scope",
    "resolve_upstream",
    "rewrite_request",
    "rewrite_response_headers",
]
