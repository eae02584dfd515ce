"""OIDC providers. Importing this package registers them."""

from .auth0 import Auth0Provider, CustomOAuthProvider, CustomOIDCProvider
from .base import BaseOIDCProvider, generate_nonce, generate_pkce_pair, generate_state
from .facebook import FacebookProvider
from .google import GoogleProvider
from .microsoft import MicrosoftProvider

__all__ = [
    "BaseOIDCProvider",
    "GoogleProvider",
    "MicrosoftProvider",
    "FacebookProvider",
    "Auth0Provider",
    "CustomOIDCProvider",
    "CustomOAuthProvider",
    "generate_pkce_pair",
    "generate_state",
    "generate_nonce",
]
