"""
SSO provider engines.

Importing this package registers every OIDC and SAML provider with
``provider_registry``.
"""

from .base import BaseSSOProvider
from .registry import (
    ProviderRegistry,
    get_supported_providers,
    is_provider_supported,
    provider_registry,
)
from . import oidc, saml  # noqa: F401  (registers providers)
from .factory import ProviderFactory
from .oidc import BaseOIDCProvider
from .saml import BaseSAMLProvider

__all__ = [
    "BaseSSOProvider",
    "BaseOIDCProvider",
    "BaseSAMLProvider",
    "ProviderRegistry",
    "ProviderFactory",
    "provider_registry",
    "get_supported_providers",
    "is_provider_supported",
]
