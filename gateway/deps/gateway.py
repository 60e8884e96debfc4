"""Gateway dependencies.

Each dependency wraps a factory so tests can swap it through
`app.dependency_overrides`.
"""

from typing import Annotated, Optional

import httpx
from fastapi import Depends

from gateway.factories import (
    gateway_config_factory,
    http_client_factory,
    token_cache_factory,
)
from gateway.packages.registry_proxy import GatewayConfig, TokenCache
from gateway.services.gateway_service import GatewayService


def get_gateway_config() -> GatewayConfig:
    return gateway_config_factory()


def get_http_client() -> httpx.AsyncClient:
    return http_client_factory()


def get_token_cache() -> Optional[TokenCache]:
    return token_cache_factory()


def get_gateway_service(
    config: Annotated[GatewayConfig, Depends(get_gateway_config)],
    client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    token_cache: Annotated[Optional[TokenCache], Depends(get_token_cache)],
) -> GatewayService:
    return GatewayService(config=config, client=client, token_cache=token_cache)


GatewayServiceDep = Annotated[GatewayService, Depends(get_gateway_service)]
