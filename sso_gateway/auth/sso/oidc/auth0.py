"""
Auth0 and generic OIDC providers.

Auth0 accepts either ``issuerUrl`` or its tenant ``domain``. The custom
providers cover any standards-compliant OIDC issuer.
"""

from typing import List, Optional

from sso_gateway.auth.sso.oidc.base import BaseOIDCProvider
from sso_gateway.auth.sso.registry import provider_registry


class Auth0Provider(BaseOIDCProvider):
    name = "Auth0"
    provider_type = "auth0"

    def get_required_config_fields(self) -> List[str]:
        return ["clientId", "clientSecret", "domain"]

    def _resolve_issuer_url(self) -> Optional[str]:
        if self.oidc_config.issuer_url:
            return self.oidc_config.issuer_url
        if self.oidc_config.domain:
            return f"https://{self.oidc_config.domain}/"
        return None


class CustomOIDCProvider(BaseOIDCProvider):
    """For any OIDC-compliant provider that isn't specifically supported."""

    name = "Custom OIDC"
    provider_type = "custom"


class CustomOAuthProvider(CustomOIDCProvider):
    """Generic OIDC registered under the ``custom_oauth`` type (own callback path)."""

    name = "Custom OAuth"
    provider_type = "custom_oauth"


provider_registry.register("auth0", Auth0Provider)
provider_registry.register("custom", CustomOIDCProvider)
provider_registry.register("custom_oauth", CustomOAuthProvider)
