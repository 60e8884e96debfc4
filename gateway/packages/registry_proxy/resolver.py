"""Upstream resolution.

Maps the request host and the `ns`/`hubhost` query hints to the registry
upstream a request is proxied to.
"""

from typing import Optional

import structlog

from .errors import UpstreamNotAllowedError
from .types import (
    DOCKER_HUB_ALIAS,
    DisplayMode,
    GatewayConfig,
    NamespaceSource,
    RouteDecision,
)

logger = structlog.stdlib.get_logger(__name__)


def host_prefix(host: str) -> str:
    """Return the lowercase first label of `host`, without any port."""
    hostname = host.strip().lower()
    if hostname.startswith("["):
        # IPv6 literal, no label to speak of
        return hostname
    hostname = hostname.split(":", 1)[0]
    return hostname.split(".", 1)[0]


def resolve_upstream(
    config: GatewayConfig,
    request_host: str,
    ns: Optional[str] = None,
    hubhost: Optional[str] = None,
) -> RouteDecision:
    """Pick the upstream registry for a request.

    Args:
        config: Gateway configuration
        request_host: Host the client addressed (e.g., "k8s.example.com")
        ns: Explicit upstream override from the `ns` query parameter
        hubhost: Host override from the `hubhost` query parameter

    Returns:
        The routing decision for this request

    Raises:
        UpstreamNotAllowedError: If `ns` names a host outside the allowlist
    """
    if ns:
        upstream_host = (
            config.default_registry_host if ns == DOCKER_HUB_ALIAS else ns
        )
        if not config.allow_any_ns and upstream_host not in config.allowed_ns_hosts:
            logger.warning("Rejected upstream override", ns=ns)
            raise UpstreamNotAllowedError(f"upstream {ns!r} is not allowed")

        return RouteDecision(
            upstream_host=upstream_host,
            display_mode=DisplayMode.PASSTHROUGH_API,
            namespace_source=NamespaceSource.QUERY_NS,
        )

    effective_host = hubhost or request_host
    aliased_host = config.registry_aliases.get(host_prefix(effective_host))

    if aliased_host:
        source = NamespaceSource.QUERY_HUBHOST if hubhost else NamespaceSource.HOST_PREFIX
        upstream_host = aliased_host
    else:
        source = NamespaceSource.DEFAULT
        upstream_host = config.default_registry_host

    display_mode = (
        DisplayMode.DECOY_STATIC if config.static_home_page else DisplayMode.DECOY_SEARCH
    )

    return RouteDecision(
        upstream_host=upstream_host,
        display_mode=display_mode,
        namespace_source=source,
    )
