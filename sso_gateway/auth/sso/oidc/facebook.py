"""
Facebook Login Provider.

Facebook does not publish OIDC discovery for this flow, so endpoints are
built from the Graph API version (``apiVersion``, default v18.0). The flow
uses state only (no nonce or PKCE), requests comma-separated scopes and reads
the profile from the Graph ``/me`` endpoint instead of an ID token.
"""

from typing import Any, Dict, List, Optional

from sso_gateway.auth.sso.oidc.base import BaseOIDCProvider
from sso_gateway.auth.sso.registry import provider_registry
from sso_gateway.types.sso import AuthFlowState, UserProfile

DEFAULT_API_VERSION = "v18.0"
PROFILE_FIELDS = "id,email,first_name,last_name,name,picture"


class FacebookProvider(BaseOIDCProvider):
    name = "Facebook"
    provider_type = "facebook"
    use_pkce_and_nonce = False
    scope_separator = ","
    token_endpoint_auth_method = "client_secret_post"

    @property
    def api_version(self) -> str:
        return self.oidc_config.api_version or DEFAULT_API_VERSION

    def _resolve_issuer_url(self) -> Optional[str]:
        return "https://www.facebook.com"

    async def _fetch_discovery(self) -> Dict[str, Any]:
        return {
            "issuer": "https://www.facebook.com",
            "authorization_endpoint": f"https://www.facebook.com/{self.api_version}/dialog/oauth",
            "token_endpoint": f"https://graph.facebook.com/{self.api_version}/oauth/access_token",
            "userinfo_endpoint": f"https://graph.facebook.com/{self.api_version}/me",
        }

    def get_default_scopes(self) -> List[str]:
        return ["email", "public_profile"]

    def get_required_config_fields(self) -> List[str]:
        return ["clientId", "clientSecret"]

    def validate_config(self) -> bool:
        return bool(self.oidc_config.client_id and self.oidc_config.client_secret)

    async def _resolve_user(
        self,
        discovery: Dict[str, Any],
        token: Dict[str, Any],
        state_data: AuthFlowState,
    ) -> UserProfile:
        async with self._http_client() as client:
            response = await client.get(
                discovery["userinfo_endpoint"],
                params={"fields": PROFILE_FIELDS, "access_token": token["access_token"]},
            )
            response.raise_for_status()
            fb_user = response.json()

        picture = (fb_user.get("picture") or {}).get("data", {}).get("url")
        return UserProfile(
            id=str(fb_user["id"]),
            email=fb_user.get("email") or "",
            first_name=fb_user.get("first_name"),
            last_name=fb_user.get("last_name"),
            name=fb_user.get("name"),
            picture=picture,
            raw_profile=fb_user,
        )


provider_registry.register("facebook", FacebookProvider)
