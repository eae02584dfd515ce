"""
SSO Type Definitions.

Data models shared by the OIDC and SAML engines, the ephemeral state store
and the HTTP layer.

Provider configuration is stored as a camelCase JSON object (``clientId``,
``entryPoint``...). Models here use snake_case attributes with camelCase
aliases, so the same class reads stored records and produces API output.

Security Considerations:
- Provider configs contain secrets; never log a dumped config
- Flow state is ephemeral and lives only in the state store
"""

import time
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that accepts and emits camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_json_dict(self) -> Dict[str, Any]:
        """Dump with camelCase keys, omitting unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


# =============================================================================
# Enums
# =============================================================================


class SSOProtocol(str, Enum):
    """Supported SSO protocols."""

    OIDC = "oidc"
    SAML = "saml"


# =============================================================================
# Provider Configuration Models
# =============================================================================


class OIDCProviderConfig(CamelModel):
    """
    Decrypted OIDC provider configuration.

    Every field is optional here; ``validate_config()`` on the provider decides
    which ones are required for a given provider type.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    client_id: Optional[str] = Field(None, description="OAuth client ID")
    client_secret: Optional[str] = Field(None, description="OAuth client secret")
    issuer_url: Optional[str] = Field(None, description="OIDC issuer URL")
    scopes: Optional[List[str]] = Field(
        None,
        description="Requested scopes; provider defaults apply when unset",
    )
    tenant_id: Optional[str] = Field(None, description="Microsoft tenant")
    domain: Optional[str] = Field(None, description="Auth0 tenant domain")
    api_version: Optional[str] = Field(None, description="Facebook Graph API version")
    hosted_domain: Optional[str] = Field(
        None,
        description="Google Workspace domain restriction (sent as hd)",
    )


class SAMLProviderConfig(CamelModel):
    """Decrypted SAML provider configuration."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    entry_point: Optional[str] = Field(None, description="IdP SSO URL")
    issuer: Optional[str] = Field(None, description="SP entity ID")
    cert: Optional[str] = Field(None, description="IdP X.509 certificate (PEM)")
    private_key: Optional[str] = Field(None, description="SP private key (PEM)")
    signing_cert: Optional[str] = Field(None, description="SP certificate (PEM)")
    idp_issuer: Optional[str] = Field(
        None,
        description="IdP entity ID; defaults to the entry point",
    )
    signature_algorithm: Literal["sha256", "sha512"] = Field(
        default="sha256",
        description="Signature algorithm for signed AuthnRequests",
    )
    want_assertions_signed: bool = Field(default=True)
    want_authn_response_signed: bool = Field(default=True)
    attribute_mapping: Optional[Dict[str, str]] = Field(
        None,
        description="Logical field name -> assertion attribute name",
    )


# =============================================================================
# Flow Models
# =============================================================================


class AuthFlowState(CamelModel):
    """
    Ephemeral state persisted between initiate and callback.

    Keyed by the random ``state`` token (RelayState for SAML).
    """

    store_id: str
    provider_id: str
    return_to: Optional[str] = None
    created_at: int = Field(default_factory=now_ms)
    # OIDC
    nonce: Optional[str] = None
    code_verifier: Optional[str] = None
    # SAML
    request_id: Optional[str] = None


class AuthInitiateResult(CamelModel):
    """Result of starting an authentication flow."""

    redirect_url: str
    state: str
    nonce: Optional[str] = None


class AuthCallbackParams(CamelModel):
    """Parameters delivered by the IdP on the callback leg."""

    code: Optional[str] = None
    state: Optional[str] = None
    saml_response: Optional[str] = None
    relay_state: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None


class UserProfile(CamelModel):
    """
    Normalized user profile returned by every provider.

    ``id`` is the provider-side subject: ``sub`` for OIDC, ``nameID`` for SAML.
    """

    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    name: Optional[str] = None
    picture: Optional[str] = None
    email_verified: Optional[bool] = None
    locale: Optional[str] = None
    raw_profile: Dict[str, Any] = Field(default_factory=dict)


class AuthTokens(CamelModel):
    """Tokens issued by an OIDC provider."""

    access_token: str
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None
    expires_in: Optional[int] = None


class AuthResult(CamelModel):
    """Outcome of a successful callback. SAML flows carry no tokens."""

    user: UserProfile
    tokens: Optional[AuthTokens] = None


# =============================================================================
# One-time Records
# =============================================================================


class HandoffCredentials(CamelModel):
    """Native-login credentials handed to the storefront once."""

    email: str
    password: str
    return_to: str


class OTPRecord(CamelModel):
    """Pending email OTP verification."""

    otp: str
    store_id: str
    customer_id: Optional[str] = None
    return_to: Optional[str] = None
    created_at: int = Field(default_factory=now_ms)


# =============================================================================
# Registry / Configuration Lookup
# =============================================================================


class SupportedProvider(CamelModel):
    """Public description of a registered provider type."""

    type: str
    protocol: SSOProtocol
    name: str


class ProviderRecord(CamelModel):
    """
    A store's configured provider as returned by the configuration lookup.

    ``encrypted_config`` is the encrypted token produced by the encryption
    service, or an already-decrypted mapping.
    """

    store_id: str
    provider_id: str
    provider_type: str
    encrypted_config: Union[str, Dict[str, Any]]
