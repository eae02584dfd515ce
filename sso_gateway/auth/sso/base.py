"""
SSO Provider Capability Contract.

Every identity-provider integration (OIDC or SAML) implements this interface.
Callers only go through it: a new provider is added by subclassing one of the
protocol engines and registering it under a type string, with no change to
calling code.

Security Considerations:
- Ephemeral flow state is consumed exactly once per callback
- The store/provider captured at initiate must match the engine handling the
  callback (tenant isolation)
- Provider configs carry secrets and are never logged
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Optional

from sso_gateway.storage.state_store import SSOStateStore
from sso_gateway.types.sso import (
    AuthCallbackParams,
    AuthFlowState,
    AuthInitiateResult,
    AuthResult,
    SSOProtocol,
)

logger = logging.getLogger(__name__)

_DUPLICATE_SLASHES = re.compile(r"([^:]/)/+")


class BaseSSOProvider(ABC):
    """
    Abstract base class for SSO providers.

    Subclasses set ``name``, ``protocol`` and ``provider_type``.
    """

    name: str = ""
    protocol: SSOProtocol
    provider_type: str = ""

    def __init__(
        self,
        config: Mapping[str, Any],
        callback_url: str,
        store_id: str,
        provider_id: str,
        state_store: SSOStateStore,
        http_timeout: float = 10.0,
    ):
        """
        Initialize the provider.

        Args:
            config: Decrypted provider configuration (camelCase keys)
            callback_url: Base callback URL, e.g. ``https://app.example.com/api/auth``
            store_id: Store this provider instance belongs to
            provider_id: Configured provider record ID
            state_store: Ephemeral flow state store
            http_timeout: Timeout in seconds for calls to the identity provider
        """
        self.config = dict(config)
        self.callback_url = callback_url
        self.store_id = store_id
        self.provider_id = provider_id
        self.state_store = state_store
        self.http_timeout = http_timeout

    @abstractmethod
    async def initiate(self, return_to: Optional[str] = None) -> AuthInitiateResult:
        """
        Start the authentication flow.

        Persists the flow state and returns the IdP URL to redirect the user to.

        Raises:
            ProviderAuthError: If the request could not be built
            ProviderConfigurationError: If the configuration is unusable
            StateStoreUnavailableError: If state could not be persisted
        """

    @abstractmethod
    async def handle_callback(
        self,
        params: AuthCallbackParams,
        pre_consumed_state: Optional[AuthFlowState] = None,
    ) -> AuthResult:
        """
        Validate the IdP callback and return the normalized user.

        Args:
            params: Callback parameters from the IdP
            pre_consumed_state: Flow state already consumed by the caller

        Raises:
            ProviderAuthError: If the IdP reported an error or the exchange failed
            InvalidOidcTokenError / InvalidSamlResponseError: If validation failed
            StateStoreUnavailableError: If state could not be read
        """

    @abstractmethod
    def validate_config(self) -> bool:
        """Check that the configuration has everything this provider needs."""

    @abstractmethod
    def get_required_config_fields(self) -> List[str]:
        """Configuration keys this provider requires."""

    @abstractmethod
    def get_default_scopes(self) -> List[str]:
        """Scopes requested when the configuration does not set any."""

    def get_icon_url(self) -> str:
        """Path to the provider icon."""
        return f"/icons/providers/{self.provider_type}.svg"

    def get_display_name(self) -> str:
        """Human-readable provider name."""
        return self.name

    def build_callback_url(self) -> str:
        """
        Build this provider's callback URL.

        ``<base>/<protocol>/<provider_type>/callback`` with the base's trailing
        slash and any duplicate slashes removed. This exact value must be
        registered with the identity provider.
        """
        base = self.callback_url.rstrip("/")
        url = f"{base}/{self.protocol.value}/{self.provider_type}/callback"
        return _DUPLICATE_SLASHES.sub(r"\1", url)

    def _belongs_to_this_provider(self, state: AuthFlowState) -> bool:
        return state.store_id == self.store_id and state.provider_id == self.provider_id

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"store_id={self.store_id!r}, provider_id={self.provider_id!r})"
        )
