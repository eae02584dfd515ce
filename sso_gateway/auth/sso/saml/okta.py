"""Okta SAML provider. Okta sends plain attribute names from the app's attribute statements."""

from typing import Dict

from sso_gateway.auth.sso.registry import provider_registry
from sso_gateway.auth.sso.saml.base import BaseSAMLProvider


class OktaProvider(BaseSAMLProvider):
    name = "Okta"
    provider_type = "okta"

    def get_default_attribute_mapping(self) -> Dict[str, str]:
        return {
            "email": "email",
            "firstName": "firstName",
            "lastName": "lastName",
            "name": "displayName",
            "groups": "groups",
        }


provider_registry.register("okta", OktaProvider)
