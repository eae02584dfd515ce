"""SAML providers. Importing this package registers them."""

from .azure import AzureADProvider
from .base import BaseSAMLProvider, classify_saml_failure
from .okta import OktaProvider
from .onelogin import OneLoginProvider
from .salesforce import SalesforceProvider

__all__ = [
    "BaseSAMLProvider",
    "OktaProvider",
    "AzureADProvider",
    "SalesforceProvider",
    "OneLoginProvider",
    "classify_saml_failure",
]
