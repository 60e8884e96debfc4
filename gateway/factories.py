from functools import lru_cache
from types import MappingProxyType
from typing import Optional

import httpx

from gateway.packages.registry_proxy import (
    GatewayConfig,
    InMemoryTokenCache,
    TokenCache,
)
from gateway.services.ua_filter import parse_blocklist
from gateway.settings import settings


@lru_cache
def gateway_config_factory() -> GatewayConfig:
    """Build the immutable gateway configuration from settings.

    Returns:
        GatewayConfig shared by every request of this worker process
    """
    return GatewayConfig(
        default_registry_host=settings.DEFAULT_REGISTRY_HOST,
        auth_url=settings.AUTH_URL.rstrip("/"),
        auth_service=settings.AUTH_SERVICE,
        index_host=settings.INDEX_HOST,
        hub_web_host=settings.HUB_WEB_HOST,
        registry_aliases=MappingProxyType(
            {key.lower(): host for key, host in settings.REGISTRY_ALIASES.items()}
        ),
        allow_any_ns=settings.ALLOW_ANY_NS,
        extra_ns_hosts=frozenset(settings.EXTRA_NS_HOSTS),
        max_redirects=settings.MAX_REDIRECTS,
        cache_max_age=settings.CACHE_MAX_AGE,
        timeout=httpx.Timeout(
            connect=settings.CONNECT_TIMEOUT,
            read=settings.READ_TIMEOUT,
            write=settings.WRITE_TIMEOUT,
            pool=settings.POOL_TIMEOUT,
        ),
        token_cache_ttl=settings.TOKEN_CACHE_TTL,
        blocked_user_agents=parse_blocklist(settings.UA),
        home_redirect_url=settings.URL302,
        home_page=settings.URL,
        public_url=settings.PUBLIC_URL,
    )


@lru_cache
def token_cache_factory() -> Optional[TokenCache]:
    """Process-wide token cache, or None when token caching is disabled."""
    if not settings.TOKEN_CACHE_ENABLED:
        return None
    return InMemoryTokenCache(maxsize=settings.TOKEN_CACHE_SIZE)


@lru_cache
def http_client_factory() -> httpx.AsyncClient:
    """Pooled HTTP client for all outbound requests.

    Note:
        Redirects are never followed by the client itself; the proxy executor
        follows them explicitly. Closed on application shutdown.
    """
    config = gateway_config_factory()
    return httpx.AsyncClient(
        timeout=config.timeout,
        follow_redirects=False,
    )
