"""
Microsoft OIDC Provider.

Microsoft Entra ID sign-in for personal and organizational accounts.
``tenantId`` may be ``common``, ``organizations``, ``consumers`` or a tenant
GUID; multi-tenant endpoints publish an issuer template containing
``{tenantid}``, which is filled from the token's ``tid`` claim.
"""

from typing import Any, Dict, List, Optional

from sso_gateway.auth.sso.oidc.base import BaseOIDCProvider
from sso_gateway.auth.sso.registry import provider_registry


class MicrosoftProvider(BaseOIDCProvider):
    name = "Microsoft"
    provider_type = "microsoft"

    def _resolve_issuer_url(self) -> Optional[str]:
        tenant_id = self.oidc_config.tenant_id or "common"
        return (
            self.oidc_config.issuer_url
            or f"https://login.microsoftonline.com/{tenant_id}/v2.0"
        )

    def _expected_issuer(self, discovery: Dict[str, Any], unverified_claims: Dict[str, Any]) -> str:
        issuer = discovery["issuer"]
        if "{tenantid}" in issuer and unverified_claims.get("tid"):
            issuer = issuer.replace("{tenantid}", str(unverified_claims["tid"]))
        return issuer

    def get_default_scopes(self) -> List[str]:
        return ["openid", "email", "profile", "User.Read"]

    def get_required_config_fields(self) -> List[str]:
        return ["clientId", "clientSecret"]


provider_registry.register("microsoft", MicrosoftProvider)
