"""Registry proxy types and data structures.

This module contains shared types used across the registry proxy package.
No dependencies on gateway.* modules outside this package to maintain
independence.
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

import httpx

DOCKER_HUB_HOST = "registry-1.docker.io"
DOCKER_HUB_ALIAS = "docker.io"


class DisplayMode(str, Enum):
    PASSTHROUGH_API = "passthrough_api"
    DECOY_SEARCH = "decoy_search"
    DECOY_STATIC = "decoy_static"


class NamespaceSource(str, Enum):
    QUERY_NS = "query-ns"
    QUERY_HUBHOST = "query-hubhost"
    HOST_PREFIX = "host-prefix"
    DEFAULT = "default"


class ApiVersion(str, Enum):
    V1 = "v1"
    V2 = "v2"


class Resource(str, Enum):
    MANIFESTS = "manifests"
    BLOBS = "blobs"
    TAGS = "tags"
    TAGS_LIST = "tags_list"
    TOKEN = "token"
    OTHER = "other"


class RequestKind(str, Enum):
    """How a rewritten request is served."""

    LANDING = "landing"
    TOKEN = "token"
    REGISTRY_API = "registry_api"
    INDEX = "index"
    HUB_WEB = "hub_web"
    GENERIC = "generic"


@dataclass(frozen=True)
class GatewayConfig:
    """Immutable gateway configuration.

    Built once at startup and passed explicitly to every component.

    Attributes:
        default_registry_host: Upstream used when nothing else matches
        auth_url: Origin of the token service (e.g., "https://auth.docker.io")
        auth_service: `service` parameter sent to the token service
        index_host: Host serving the legacy v1 API
        hub_web_host: Host serving the Docker Hub website (search)
        registry_aliases: First host label -> upstream registry host
        allow_any_ns: Whether `ns` may name any upstream host
        extra_ns_hosts: Hosts accepted in `ns` on top of the alias table
        max_redirects: Bound on internally followed redirects
        cache_max_age: max-age advertised on proxied responses
        timeout: Timeout applied to every outbound fetch
        token_cache_ttl: Upper bound on how long a token stays cached
        blocked_user_agents: Lowercase user agent fragments to block
        home_redirect_url: Redirect target for the root page
        home_page: "nginx" or an external URL to serve as the root page
        public_url: Public gateway origin; derived from the request when empty
    """

    default_registry_host: str = DOCKER_HUB_HOST
    auth_url: str = "https://auth.docker.io"
    auth_service: str = "registry.docker.io"
    index_host: str = "index.docker.io"
    hub_web_host: str = "hub.docker.com"
    registry_aliases: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType({})
    )
    allow_any_ns: bool = False
    extra_ns_hosts: frozenset[str] = frozenset()
    max_redirects: int = 5
    cache_max_age: int = 1500
    timeout: httpx.Timeout = field(default_factory=lambda: httpx.Timeout(30.0))
    token_cache_ttl: float = 240
    blocked_user_agents: tuple[str, ...] = ()
    home_redirect_url: str = ""
    home_page: str = ""
    public_url: str = ""

    @property
    def auth_host(self) -> str:
        return httpx.URL(self.auth_url).host

    @property
    def allowed_ns_hosts(self) -> frozenset[str]:
        return (
            frozenset(self.registry_aliases.values())
            | self.extra_ns_hosts
            | {self.default_registry_host}
        )

    @property
    def static_home_page(self) -> bool:
        return self.home_page.lower() == "nginx"

    def brokers_tokens_for(self, upstream_host: str) -> bool:
        """Whether the token service issues tokens for `upstream_host`."""
        return upstream_host in (DOCKER_HUB_HOST, self.default_registry_host)


@dataclass(frozen=True)
class RouteDecision:
    upstream_host: str
    display_mode: DisplayMode
    namespace_source: NamespaceSource

    @property
    def is_decoy(self) -> bool:
        return self.display_mode != DisplayMode.PASSTHROUGH_API


@dataclass(frozen=True)
class RegistryPath:
    api_version: ApiVersion
    repository: str
    resource: Resource
    reference: str = ""


@dataclass(frozen=True)
class RewrittenRequest:
    """Result of the path rewriting rules for one request.

    Attributes:
        kind: How the request is served
        upstream_host: Host the request is forwarded to
        path: Rewritten request path
        query: Rewritten query parameters, in order
        registry_path: Parsed registry path, if the path is a registry path
    """

    kind: RequestKind
    upstream_host: str
    path: str
    query: tuple[tuple[str, str], ...] = ()
    registry_path: Optional[RegistryPath] = None

    @property
    def url(self) -> httpx.URL:
        # upstream_host may carry a port, so it is parsed as an authority
        return httpx.URL(
            f"https://{self.upstream_host}",
            path=self.path,
            params=list(self.query),
        )


@dataclass(frozen=True)
class TokenGrant:
    repository: str
    scope: str
    token: str
    issued_at: float


@dataclass
class OutboundRequest:
    method: str
    url: httpx.URL
    headers: httpx.Headers
    body: Optional[AsyncIterator[bytes]] = None


@dataclass
class ProxyOutcome:
    """An upstream response whose body has not been read yet.

    `aclose` must be awaited once the body stream is done (or abandoned) to
    release the upstream connection.
    """

    status: int
    headers: httpx.Headers
    body_stream: AsyncIterator[bytes]
    aclose: Callable[[], Awaitable[None]]
    url: Optional[httpx.URL] = None
