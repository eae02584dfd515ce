"""
Type definitions for the SSO gateway.
"""

from .sso import (
    AuthCallbackParams,
    AuthFlowState,
    AuthInitiateResult,
    AuthResult,
    AuthTokens,
    HandoffCredentials,
    OIDCProviderConfig,
    OTPRecord,
    ProviderRecord,
    SAMLProviderConfig,
    SSOProtocol,
    SupportedProvider,
    UserProfile,
)

__all__ = [
    "AuthCallbackParams",
    "AuthFlowState",
    "AuthInitiateResult",
    "AuthResult",
    "AuthTokens",
    "HandoffCredentials",
    "OIDCProviderConfig",
    "OTPRecord",
    "ProviderRecord",
    "SAMLProviderConfig",
    "SSOProtocol",
    "SupportedProvider",
    "UserProfile",
]
