"""
Dependency injection utilities for the SSO gateway API.

This module provides FastAPI dependencies for:
- The ephemeral state store (Redis or in-memory)
- The provider factory with its encryption service
- The store-salted password service
- The provider configuration lookup

Services are built once per process from settings and handed to routes
explicitly; tests override them with ``app.dependency_overrides``.

Security Considerations:
- A missing ENCRYPTION_KEY or PASSWORD_PEPPER stops startup; neither service
  is ever built without its secret
- Provider records are looked up per store; one store never sees another's
"""

import logging
from functools import lru_cache
from typing import Dict, Iterable, Optional, Protocol, Tuple

from sso_gateway.auth.errors import ConfigurationError
from sso_gateway.auth.sso import ProviderFactory
from sso_gateway.config import get_settings
from sso_gateway.services.encryption import EncryptionService
from sso_gateway.services.password import PasswordService
from sso_gateway.storage.state_store import SSOStateStore, StateBackend, create_state_backend
from sso_gateway.types.sso import ProviderRecord

logger = logging.getLogger(__name__)


# =============================================================================
# Provider Configuration Lookup
# =============================================================================


class ProviderConfigLookup(Protocol):
    """Source of store provider records (database, admin API, ...)."""

    async def get(self, store_id: str, provider_type: str) -> Optional[ProviderRecord]:
        """Return the store's record for ``provider_type``, or None."""
        ...


class InMemoryProviderConfigLookup:
    """Provider records held in process memory."""

    def __init__(self, records: Iterable[ProviderRecord] = ()):
        self._records: Dict[Tuple[str, str], ProviderRecord] = {}
        for record in records:
            self.add(record)

    def add(self, record: ProviderRecord) -> None:
        self._records[(record.store_id, record.provider_type.lower())] = record

    async def get(self, store_id: str, provider_type: str) -> Optional[ProviderRecord]:
        return self._records.get((store_id, provider_type.lower()))


_config_lookup: ProviderConfigLookup = InMemoryProviderConfigLookup()


def set_config_lookup(lookup: ProviderConfigLookup) -> None:
    """Install the lookup used by the SSO routes."""
    global _config_lookup
    _config_lookup = lookup


def get_config_lookup() -> ProviderConfigLookup:
    """Get the provider configuration lookup."""
    return _config_lookup


# =============================================================================
# Services
# =============================================================================


@lru_cache()
def get_state_backend() -> StateBackend:
    """Get the process-wide state backend."""
    settings = get_settings()
    return create_state_backend(
        settings.redis.redis_url,
        socket_timeout=settings.redis.redis_socket_timeout,
        connect_timeout=settings.redis.redis_connect_timeout,
    )


def get_state_store() -> SSOStateStore:
    """Get the SSO flow state store."""
    return SSOStateStore(get_state_backend())


@lru_cache()
def get_encryption_service() -> EncryptionService:
    """
    Get the config encryption service.

    Raises:
        ConfigurationError: If ENCRYPTION_KEY is not set
    """
    key = get_settings().security.encryption_key
    if key is None:
        logger.critical("ENCRYPTION_KEY is not set; provider configs cannot be decrypted")
        raise ConfigurationError("ENCRYPTION_KEY environment variable is required")
    return EncryptionService(key.get_secret_value())


@lru_cache()
def get_password_service() -> PasswordService:
    """
    Get the store-salted password service.

    Raises:
        ConfigurationError: If PASSWORD_PEPPER is not set
    """
    security = get_settings().security
    if security.password_pepper is None:
        logger.critical("PASSWORD_PEPPER is not set; store passwords cannot be derived")
        raise ConfigurationError("PASSWORD_PEPPER environment variable is required")
    return PasswordService(
        security.password_pepper.get_secret_value(),
        app_name=security.password_app_name,
    )


def get_provider_factory() -> ProviderFactory:
    """Get a provider factory wired to the configured services."""
    settings = get_settings()
    return ProviderFactory(
        encryption=get_encryption_service(),
        state_store=get_state_store(),
        callback_base_url=settings.oauth.callback_base_url,
        http_timeout=settings.oauth.sso_http_timeout,
    )
