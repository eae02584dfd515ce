"""Salesforce SAML provider."""

from typing import Dict

from sso_gateway.auth.sso.registry import provider_registry
from sso_gateway.auth.sso.saml.base import BaseSAMLProvider


class SalesforceProvider(BaseSAMLProvider):
    name = "Salesforce"
    provider_type = "salesforce"

    def get_default_attribute_mapping(self) -> Dict[str, str]:
        return {
            "email": "email",
            "firstName": "first_name",
            "lastName": "last_name",
            "name": "username",
            "userId": "user_id",
            "orgId": "organization_id",
            "profileId": "profile_id",
        }


provider_registry.register("salesforce", SalesforceProvider)
