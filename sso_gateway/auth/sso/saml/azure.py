"""
Azure AD (Entra ID) SAML provider.

Azure emits WS-Federation claim URIs; groups and roles use the Microsoft
claim namespace.
"""

from typing import Dict

from sso_gateway.auth.sso.registry import provider_registry
from sso_gateway.auth.sso.saml.base import BaseSAMLProvider

WS_CLAIMS = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims"
MS_CLAIMS = "http://schemas.microsoft.com/ws/2008/06/identity/claims"


class AzureADProvider(BaseSAMLProvider):
    name = "Azure AD"
    provider_type = "azure"

    def get_default_attribute_mapping(self) -> Dict[str, str]:
        return {
            "email": f"{WS_CLAIMS}/emailaddress",
            "firstName": f"{WS_CLAIMS}/givenname",
            "lastName": f"{WS_CLAIMS}/surname",
            "name": f"{WS_CLAIMS}/name",
            "upn": f"{WS_CLAIMS}/upn",
            "groups": f"{MS_CLAIMS}/groups",
            "roles": f"{MS_CLAIMS}/role",
        }


provider_registry.register("azure", AzureADProvider)
