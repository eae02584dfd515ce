"""
Google OIDC Provider.

Google Sign-In via OpenID Connect. ``hostedDomain`` restricts sign-in to a
Google Workspace domain and is sent as the ``hd`` parameter.
"""

from typing import Dict, List, Optional

from sso_gateway.auth.sso.oidc.base import BaseOIDCProvider
from sso_gateway.auth.sso.registry import provider_registry


class GoogleProvider(BaseOIDCProvider):
    name = "Google"
    provider_type = "google"
    default_issuer_url = "https://accounts.google.com"

    def get_default_scopes(self) -> List[str]:
        return ["openid", "email", "profile"]

    def get_required_config_fields(self) -> List[str]:
        return ["clientId", "clientSecret"]

    def _authorization_params(
        self,
        state: str,
        redirect_uri: str,
        nonce: Optional[str],
        code_challenge: Optional[str],
    ) -> Dict[str, str]:
        params = super()._authorization_params(state, redirect_uri, nonce, code_challenge)
        if self.oidc_config.hosted_domain:
            params["hd"] = self.oidc_config.hosted_domain
        return params


provider_registry.register("google", GoogleProvider)
