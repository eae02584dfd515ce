"""
Provider Factory.

Turns a stored provider record into a ready engine: decrypts the config,
derives the callback base URL and instantiates through the registry with the
injected services.

Security Considerations:
- Configs are decrypted in memory only and never logged
- A config that fails to decrypt raises DecryptionError; the provider stays
  unusable until an operator re-saves it

Usage:
    factory = ProviderFactory(encryption, state_store, settings.oauth.callback_base_url)
    provider = factory.create("google", record.encrypted_config, store_id, provider_id)
"""

import logging
from typing import Any, Dict, Mapping, Optional, Union

import httpx

from sso_gateway.auth.errors import ProviderConfigurationError
from sso_gateway.auth.sso.base import BaseSSOProvider
from sso_gateway.auth.sso.registry import ProviderRegistry, provider_registry
from sso_gateway.services.encryption import EncryptionService
from sso_gateway.storage.state_store import SSOStateStore
from sso_gateway.types.sso import SSOProtocol

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/api/auth"


class ProviderFactory:
    """
    Factory for creating SSO provider instances.

    Args:
        encryption: Service used to decrypt stored configs
        state_store: Ephemeral flow state store handed to every engine
        callback_base_url: Public base URL (OAUTH_CALLBACK_URL or SHOPIFY_APP_URL)
        http_timeout: Timeout in seconds for identity-provider calls
        transport: Optional httpx transport for OIDC engines
        registry: Registry to resolve provider types against
    """

    def __init__(
        self,
        encryption: EncryptionService,
        state_store: SSOStateStore,
        callback_base_url: Optional[str],
        http_timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        registry: ProviderRegistry = provider_registry,
    ):
        self.encryption = encryption
        self.state_store = state_store
        self.callback_base_url = callback_base_url
        self.http_timeout = http_timeout
        self.transport = transport
        self.registry = registry

    @property
    def callback_url(self) -> str:
        """Callback base handed to engines: ``<callback_base_url>/api/auth``."""
        if not self.callback_base_url:
            raise ProviderConfigurationError(
                "Callback base URL is not configured. Set OAUTH_CALLBACK_URL or SHOPIFY_APP_URL."
            )
        return f"{self.callback_base_url.rstrip('/')}{CALLBACK_PATH}"

    def _decrypt_config(self, config: Union[str, Mapping[str, Any]]) -> Dict[str, Any]:
        if isinstance(config, str):
            decrypted = self.encryption.decrypt(config)
            if not isinstance(decrypted, dict):
                raise ProviderConfigurationError("Stored provider config is not an object")
            return decrypted
        return dict(config)

    def create(
        self,
        provider_type: str,
        config: Union[str, Mapping[str, Any]],
        store_id: str,
        provider_id: str,
    ) -> BaseSSOProvider:
        """
        Create an SSO provider instance.

        Args:
            provider_type: Registered type, e.g. ``google`` or ``okta``
            config: Encrypted config token or an already-decrypted mapping
            store_id: Owning store
            provider_id: Provider record ID

        Returns:
            An initialized provider engine

        Raises:
            UnknownProviderError: If the type is not registered
            DecryptionError: If the stored config cannot be decrypted
            ProviderConfigurationError: If the callback base URL is unset
        """
        provider_class = self.registry.get(provider_type)
        engine_kwargs: Dict[str, Any] = {}
        if provider_class is not None and provider_class.protocol == SSOProtocol.OIDC:
            engine_kwargs["transport"] = self.transport

        callback_url = self.callback_url
        provider = self.registry.create(
            provider_type,
            self._decrypt_config(config),
            callback_url,
            store_id,
            provider_id,
            self.state_store,
            http_timeout=self.http_timeout,
            **engine_kwargs,
        )

        logger.info(
            f"Created {provider_type} provider for store {store_id}; "
            f"callback URL: {provider.build_callback_url()}",
            extra={
                "provider": provider_type,
                "store_id": store_id,
                "callback_base_url": self.callback_base_url,
            },
        )
        return provider
