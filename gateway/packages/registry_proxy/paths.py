"""Request path rewriting for Docker Registry API conventions.

Rules are applied in order:

1. The root page under a decoy display mode is served locally.
2. Anything containing "/token" goes to the token service.
3. "/v1/" paths (search, repositories and the rest) go to the index host.
4. Single-segment Docker Hub repositories get the implicit "library/" namespace.
5. Browser requests for non-API paths in search mode go to the Hub website.
6. "/v2/" manifest, blob and tag paths are protected registry API calls.
7. Everything else is passed through to the resolved upstream.

The `q` search parameter loses a leading "library/" on every forwarded request.
"""

import re
from typing import Iterable, Optional

import structlog

from .errors import InvalidPathError
from .types import (
    DOCKER_HUB_HOST,
    ApiVersion,
    DisplayMode,
    GatewayConfig,
    RegistryPath,
    RequestKind,
    Resource,
    RewrittenRequest,
    RouteDecision,
)

logger = structlog.stdlib.get_logger(__name__)

LIBRARY_NAMESPACE = "library/"
LEGACY_SEARCH_PREFIXES = ("/v1/search", "/v1/repositories")

_V2_RESOURCE_RE = re.compile(
    r"^/v2/(?:(?P<repository>.*?)/)?(?P<resource>manifests|blobs|tags)/(?P<reference>.*)$"
)
_UNQUALIFIED_RE = re.compile(
    r"^/v2/(?P<name>[^/]+)/(?P<resource>manifests|blobs|tags)/(?P<reference>[^/]+)$"
)
_V1_REPOSITORY_RE = re.compile(r"^/v1/repositories/(?P<repository>.+?)/(?:images|tags)")


def is_token_path(path: str) -> bool:
    return "/token" in path


def parse_registry_path(path: str) -> Optional[RegistryPath]:
    """Parse a registry API path.

    Args:
        path: Request path (e.g., "/v2/library/nginx/manifests/latest")

    Returns:
        The parsed path, or None when the path is not a registry API path
    """
    api_version = ApiVersion.V1 if path.startswith("/v1/") else ApiVersion.V2

    if is_token_path(path):
        return RegistryPath(api_version, "", Resource.TOKEN)

    if api_version == ApiVersion.V1:
        match = _V1_REPOSITORY_RE.match(path)
        repository = match.group("repository") if match else ""
        return RegistryPath(ApiVersion.V1, repository, Resource.OTHER)

    if not (path.startswith("/v2/") or path == "/v2"):
        return None

    match = _V2_RESOURCE_RE.match(path)
    if not match:
        return RegistryPath(ApiVersion.V2, "", Resource.OTHER)

    resource = Resource(match.group("resource"))
    reference = match.group("reference")
    if resource == Resource.TAGS and reference == "list":
        resource, reference = Resource.TAGS_LIST, ""

    return RegistryPath(
        ApiVersion.V2,
        match.group("repository") or "",
        resource,
        reference,
    )


def add_library_namespace(path: str) -> str:
    """Prefix single-segment repository names with "library/".

    "/v2/nginx/manifests/latest" becomes "/v2/library/nginx/manifests/latest";
    already namespaced names are returned unchanged.
    """
    match = _UNQUALIFIED_RE.match(path)
    if not match:
        return path
    return f"/v2/{LIBRARY_NAMESPACE}{match.group('name')}/{match.group('resource')}/{match.group('reference')}"


def strip_library_query(
    query: Iterable[tuple[str, str]],
) -> tuple[tuple[str, str], ...]:
    """Drop one leading "library/" from the `q` search parameter."""
    rewritten = []
    for key, value in query:
        if key == "q" and value.startswith(LIBRARY_NAMESPACE) and value != LIBRARY_NAMESPACE:
            value = value[len(LIBRARY_NAMESPACE) :]
        rewritten.append((key, value))
    return tuple(rewritten)


def is_browser(user_agent: str) -> bool:
    return "mozilla" in user_agent.lower()


def rewrite_request(
    config: GatewayConfig,
    route: RouteDecision,
    path: str,
    query: Iterable[tuple[str, str]] = (),
    user_agent: str = "",
) -> RewrittenRequest:
    """Apply the rewriting rules to an inbound request.

    Args:
        config: Gateway configuration
        route: Upstream routing decision for this request
        path: Inbound request path
        query: Inbound query parameters, in order
        user_agent: Inbound User-Agent header

    Returns:
        The rewritten request

    Raises:
        InvalidPathError: If a registry API path lacks a repository
    """
    query = tuple(query)

    if path == "/" and route.is_decoy:
        return RewrittenRequest(RequestKind.LANDING, route.upstream_host, path, query)

    if is_token_path(path):
        return RewrittenRequest(
            RequestKind.TOKEN,
            config.auth_host,
            path,
            query,
            parse_registry_path(path),
        )

    query = strip_library_query(query)

    if path.startswith("/v1/"):
        if path.startswith(LEGACY_SEARCH_PREFIXES):
            logger.debug("Routing legacy search to index", path=path)
        return RewrittenRequest(
            RequestKind.INDEX,
            config.index_host,
            path,
            query,
            parse_registry_path(path),
        )

    if route.upstream_host == DOCKER_HUB_HOST:
        rewritten_path = add_library_namespace(path)
        if rewritten_path != path:
            logger.debug("Added library namespace", original=path, rewritten=rewritten_path)
            path = rewritten_path

    is_v2 = path.startswith("/v2/") or path == "/v2"
    if (
        not is_v2
        and route.display_mode == DisplayMode.DECOY_SEARCH
        and is_browser(user_agent)
    ):
        return RewrittenRequest(RequestKind.HUB_WEB, config.hub_web_host, path, query)

    registry_path = parse_registry_path(path)
    if registry_path and registry_path.resource in (
        Resource.MANIFESTS,
        Resource.BLOBS,
        Resource.TAGS,
        Resource.TAGS_LIST,
    ):
        if not registry_path.repository:
            raise InvalidPathError("Invalid repository path")
        return RewrittenRequest(
            RequestKind.REGISTRY_API,
            route.upstream_host,
            path,
            query,
            registry_path,
        )

    return RewrittenRequest(
        RequestKind.GENERIC,
        route.upstream_host,
        path,
        query,
        registry_path,
    )
