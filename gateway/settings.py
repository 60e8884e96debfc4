from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from gateway.utils.settings_utils import DockerSecretsSettingsSource


class GeneralConfig(BaseSettings):
    PUBLIC_URL: str = ""
    """Public origin of the gateway (e.g. "https://hub.example.com").

    When empty the origin is derived per request from the Host header.
    """

    SENTRY_DSN: str = ""
    SENTRY_ENVIRONMENT: str = ""
    SENTRY_TRACES_SAMPLE_RATE: float = 0.01


class UpstreamConfig(BaseSettings):
    DEFAULT_REGISTRY_HOST: str = "registry-1.docker.io"
    AUTH_URL: str = "https://auth.docker.io"
    AUTH_SERVICE: str = "registry.docker.io"
    INDEX_HOST: str = "index.docker.io"
    HUB_WEB_HOST: str = "hub.docker.com"

    REGISTRY_ALIASES: dict[str, str] = Field(
        default_factory=lambda: {
            "quay": "quay.io",
            "gcr": "gcr.io",
            "k8s-gcr": "k8s.gcr.io",
            "k8s": "registry.k8s.io",
            "ghcr": "ghcr.io",
            "cloudsmith": "docker.cloudsmith.io",
            "nvcr": "nvcr.io",
            "test": "registry-1.docker.io",
        }
    )

    ALLOW_ANY_NS: bool = False
    """Accept any `ns` query value as the upstream host (open proxy)."""

    EXTRA_NS_HOSTS: list[str] = Field(default_factory=list)


class ProxyConfig(BaseSettings):
    MAX_REDIRECTS: int = 5
    CACHE_MAX_AGE: int = 1500

    CONNECT_TIMEOUT: float = 10.0
    READ_TIMEOUT: float = 300.0  # large blob transfers
    WRITE_TIMEOUT: float = 300.0
    POOL_TIMEOUT: float = 10.0

    TOKEN_CACHE_ENABLED: bool = True
    TOKEN_CACHE_TTL: int = 240
    TOKEN_CACHE_SIZE: int = 1024


class LandingConfig(BaseSettings):
    URL302: str = ""
    URL: str = ""
    """Alternate home page: "nginx" for the static page or an external URL."""

    UA: str = ""
    """Extra user agents to block, separated by commas, spaces or `|`."""


class Settings(
    GeneralConfig,
    UpstreamConfig,
    ProxyConfig,
    LandingConfig,
    BaseSettings,
):
    model_config = SettingsConfigDict(
        env_file=(".env", ".env.prod", ".env.test"),
        extra="allow",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """
        Define the priority order for settings sources.

        Priority (highest to lowest):
        1. Docker secrets from files (reads *_FILE env vars)
        2. Environment variables
        3. .env files
        4. Default values
        """
        return (
            init_settings,
            DockerSecretsSettingsSource(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )


settings = Settings()
