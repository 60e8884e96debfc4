"""Gateway error taxonomy.

Each error carries the HTTP status it is surfaced with and a Docker Registry
style error code. See: https://docs.docker.com/registry/spec/api/#errors
"""


class GatewayError(Exception):
    status_code: int = 502
    error_code: str = "UNKNOWN"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidPathError(GatewayError):
    """Required repository segment missing from a registry path."""

    status_code = 400
    error_code = "NAME_INVALID"


class UpstreamNotAllowedError(GatewayError):
    """`ns` named an upstream host outside the allowlist."""

    status_code = 403
    error_code = "DENIED"


class InvalidUpstreamError(GatewayError):
    """Upstream host does not form a valid URL (e.g. a malformed port)."""

    status_code = 400
    error_code = "NAME_INVALID"


class AuthUpstreamError(GatewayError):
    """Token service unreachable, non-2xx or returned an unusable body."""

    status_code = 500
    error_code = "UNAUTHORIZED_UPSTREAM"


class UpstreamConnectError(GatewayError):
    status_code = 502
    error_code = "UPSTREAM_UNAVAILABLE"


class UpstreamTimeoutError(GatewayError):
    status_code = 504
    error_code = "UPSTREAM_TIMEOUT"


class ProxyLoopError(GatewayError):
    """Redirect chain exceeded the configured hop bound."""

    status_code = 508
    error_code = "REDIRECT_LOOP"
