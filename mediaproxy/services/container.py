"""Dependency injection container for services."""

from dependency_injector import containers, providers

from mediaproxy.config import Settings
from mediaproxy.consts import UPSTREAM_FETCH_TIMEOUT_SECONDS
from mediaproxy.services.media_proxy_service import MediaProxyService
from mediaproxy.services.media_signer_service import MediaSignerService
from mediaproxy.utils.media_cipher import MediaCipher


class ServiceContainer(containers.DeclarativeContainer):
    """Container for service dependency injection."""

    # Configuration providers
    config = providers.Dependency(instance_of=Settings)

    # MediaCipher - Singleton, immutable once constructed
    media_cipher = providers.Singleton(
        MediaCipher,
        secret=config.provided.media_proxy_secret,
    )

    # MediaSignerService - Singleton, stateless apart from the secret
    media_signer_service = providers.Singleton(
        MediaSignerService,
        config=config,
        cipher=media_cipher,
    )

    # MediaProxyService - Factory creates new instance per request
    media_proxy_service = providers.Factory(
        MediaProxyService,
        signer=media_signer_service,
        cipher=media_cipher,
        fetch_timeout=UPSTREAM_FETCH_TIMEOUT_SECONDS,
    )
