"""
Provider registry: provider-type string -> engine class.

Each provider module registers its classes at import time; importing
``sso_gateway.auth.sso`` imports them all, so the table is complete before
any request is served. Lookups are case-insensitive.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Type

from sso_gateway.auth.errors import UnknownProviderError
from sso_gateway.auth.sso.base import BaseSSOProvider
from sso_gateway.storage.state_store import SSOStateStore
from sso_gateway.types.sso import SupportedProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Lookup table of provider engines."""

    def __init__(self) -> None:
        self._providers: Dict[str, Type[BaseSSOProvider]] = {}

    def register(self, provider_type: str, provider_class: Type[BaseSSOProvider]) -> None:
        """
        Register a provider class under a type string.

        Re-registering a type replaces the previous entry.

        Args:
            provider_type: Type key, e.g. ``google`` or ``okta``
            provider_class: Engine class (must extend BaseSSOProvider)
        """
        if not issubclass(provider_class, BaseSSOProvider):
            raise ValueError("Provider class must extend BaseSSOProvider")
        self._providers[provider_type.lower()] = provider_class
        logger.debug(f"Registered SSO provider: {provider_type.lower()}")

    def get(self, provider_type: str) -> Optional[Type[BaseSSOProvider]]:
        return self._providers.get(provider_type.lower())

    def has(self, provider_type: str) -> bool:
        return provider_type.lower() in self._providers

    def all_types(self) -> List[str]:
        return list(self._providers.keys())

    def create(
        self,
        provider_type: str,
        config: Mapping[str, Any],
        callback_url: str,
        store_id: str,
        provider_id: str,
        state_store: SSOStateStore,
        http_timeout: float = 10.0,
        **engine_kwargs: Any,
    ) -> BaseSSOProvider:
        """
        Instantiate the engine registered for ``provider_type``.

        Extra keyword arguments go to the engine constructor unchanged.

        Raises:
            UnknownProviderError: If no engine is registered for the type
        """
        provider_class = self.get(provider_type)
        if provider_class is None:
            raise UnknownProviderError(
                provider_type, details={"supported_types": self.all_types()}
            )
        return provider_class(
            config,
            callback_url,
            store_id,
            provider_id,
            state_store,
            http_timeout=http_timeout,
            **engine_kwargs,
        )


provider_registry = ProviderRegistry()


def get_supported_providers() -> List[SupportedProvider]:
    """Get all registered providers with their protocol and display name."""
    supported = []
    for provider_type in provider_registry.all_types():
        provider_class = provider_registry.get(provider_type)
        supported.append(
            SupportedProvider(
                type=provider_type,
                protocol=provider_class.protocol,
                name=provider_class.name,
            )
        )
    return supported


def is_provider_supported(provider_type: str) -> bool:
    """Check if a provider type is supported."""
    return provider_registry.has(provider_type)
