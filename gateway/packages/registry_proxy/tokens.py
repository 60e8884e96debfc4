"""Bearer token brokering for protected registry API calls.

Tokens are always pull-scoped to a single repository. They can be cached
for a short time through a `TokenCache`; concurrent misses may fetch the same
token twice, which is harmless.
"""

import time
from typing import Callable, Optional, Protocol

import httpx
import structlog
from cachetools import TLRUCache

from .errors import AuthUpstreamError, UpstreamTimeoutError
from .headers import AUTH_PASSTHROUGH, HeaderSource, build_outbound_headers
from .types import GatewayConfig, TokenGrant

logger = structlog.stdlib.get_logger(__name__)

# Seconds shaved off the token service's `expires_in` before caching.
EXPIRY_MARGIN = 30

CacheKey = tuple[str, str]


def pull_scope(repository: str) -> str:
    return f"repository:{repository}:pull"


class TokenCache(Protocol):
    """Key-value store for token grants, keyed by (repository, scope)."""

    def get(self, key: CacheKey) -> Optional[TokenGrant]: ...

    def put(self, key: CacheKey, grant: TokenGrant, ttl: float) -> None: ...


def _time_to_use(_key: CacheKey, value: tuple[TokenGrant, float], now: float) -> float:
    return now + value[1]


class InMemoryTokenCache:
    """Process-local token cache with a per-entry TTL."""

    def __init__(
        self,
        maxsize: int = 1024,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._cache: TLRUCache = TLRUCache(
            maxsize=maxsize, ttu=_time_to_use, timer=timer
        )

    def get(self, key: CacheKey) -> Optional[TokenGrant]:
        entry = self._cache.get(key)
        return entry[0] if entry else None

    def put(self, key: CacheKey, grant: TokenGrant, ttl: float) -> None:
        if ttl <= 0:
            return
        self._cache[key] = (grant, ttl)

    def __len__(self) -> int:
        return len(self._cache)


class TokenBroker:
    """Acquires pull tokens from the registry token service.

    Args:
        client: HTTP client used for token requests
        config: Gateway configuration (token service origin and timeouts)
        cache: Optional token cache
        cache_ttl: Upper bound on how long a token stays cached, in seconds
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: GatewayConfig,
        cache: Optional[TokenCache] = None,
        cache_ttl: float = 240,
    ):
        self.client = client
        self.config = config
        self.cache = cache
        self.cache_ttl = cache_ttl

    async def acquire_token(
        self,
        repository: str,
        passthrough_headers: HeaderSource,
    ) -> TokenGrant:
        """Get a pull token for `repository`.

        Args:
            repository: Full repository name (e.g., "library/nginx")
            passthrough_headers: Client headers; only User-Agent and Accept*
                are forwarded to the token service

        Returns:
            Token grant scoped to `repository:<repository>:pull`

        Raises:
            AuthUpstreamError: If the token service fails or returns no token
            UpstreamTimeoutError: If the token service does not answer in time
        """
        scope = pull_scope(repository)
        key = (repository, scope)

        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Using cached registry token", repository=repository)
                return cached

        grant, expires_in = await self._fetch_token(
            repository, scope, passthrough_headers
        )

        if self.cache is not None:
            ttl = self.cache_ttl
            if expires_in is not None:
                ttl = min(ttl, expires_in - EXPIRY_MARGIN)
            self.cache.put(key, grant, ttl)

        return grant

    async def _fetch_token(
        self,
        repository: str,
        scope: str,
        passthrough_headers: HeaderSource,
    ) -> tuple[TokenGrant, Optional[float]]:
        token_url = f"{self.config.auth_url.rstrip('/')}/token"
        headers = build_outbound_headers(
            passthrough_headers, self.config.auth_host, names=AUTH_PASSTHROUGH
        )

        logger.info("Fetching registry token", repository=repository, scope=scope)

        try:
            response = await self.client.get(
                token_url,
                params={"service": self.config.auth_service, "scope": scope},
                headers=headers,
                timeout=self.config.timeout,
            )
        except httpx.TimeoutException as e:
            logger.error("Timeout fetching registry token", error=str(e), scope=scope)
            raise UpstreamTimeoutError("token service timed out") from e
        except httpx.HTTPError as e:
            logger.error("Failed to reach token service", error=str(e), scope=scope)
            raise AuthUpstreamError("Failed to obtain authentication token") from e

        if not response.is_success:
            logger.error(
                "Token service returned an error",
                status_code=response.status_code,
                scope=scope,
            )
            raise AuthUpstreamError(
                f"Failed to obtain authentication token: {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as e:
            logger.error("Token service returned invalid JSON", scope=scope)
            raise AuthUpstreamError("Failed to obtain authentication token") from e

        token = None
        expires_in = None
        if isinstance(data, dict):
            token = data.get("token") or data.get("access_token")
            if isinstance(data.get("expires_in"), (int, float)):
                expires_in = float(data["expires_in"])

        if not isinstance(token, str) or not token:
            logger.error("Token service response carries no token", scope=scope)
            raise AuthUpstreamError("Failed to obtain authentication token")

        grant = TokenGrant(
            repository=repository,
            scope=scope,
            token=token,
            issued_at=time.time(),
        )
        return grant, expires_in
