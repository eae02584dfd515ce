"""OneLogin SAML provider. OneLogin's default parameters use the ``User.`` prefix."""

from typing import Dict

from sso_gateway.auth.sso.registry import provider_registry
from sso_gateway.auth.sso.saml.base import BaseSAMLProvider


class OneLoginProvider(BaseSAMLProvider):
    name = "OneLogin"
    provider_type = "onelogin"

    def get_default_attribute_mapping(self) -> Dict[str, str]:
        return {
            "email": "User.email",
            "firstName": "User.FirstName",
            "lastName": "User.LastName",
            "name": "User.DisplayName",
            "phone": "User.phone",
            "department": "memberOf",
        }


provider_registry.register("onelogin", OneLoginProvider)
