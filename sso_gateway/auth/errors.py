"""
Exception classes for the SSO gateway.

Every error raised across a provider boundary is one of these types. Library
exceptions (authlib, PyJWT, python3-saml, redis) are caught where they occur,
logged with full detail, and re-raised as one of the classes below with a
message that is safe to show to an end user.

Exception Hierarchy:
    SSOError (base)
    ├── ProviderAuthError (400)
    ├── InvalidOidcTokenError (400)
    ├── InvalidSamlResponseError (400)
    ├── ProviderConfigurationError (400)
    │   ├── UnknownProviderError (404)
    │   └── ProviderNotFoundError (404)
    ├── DecryptionError (500)
    ├── RateLimitExceededError (429)
    └── StateStoreUnavailableError (503)

    ConfigurationError (ValueError, raised at startup)
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes returned to API clients."""

    INTERNAL_ERROR = "internal_error"
    PROVIDER_AUTH_FAILED = "provider_auth_failed"
    INVALID_OIDC_TOKEN = "invalid_oidc_token"
    INVALID_SAML_RESPONSE = "invalid_saml_response"
    PROVIDER_NOT_CONFIGURED = "provider_not_configured"
    DECRYPTION_FAILED = "decryption_failed"
    SERVICE_UNAVAILABLE = "service_unavailable"
    RATE_LIMITED = "rate_limited"


class SSOError(Exception):
    """
    Base exception for all SSO gateway errors.

    Attributes:
        message: Human-readable message, safe for external display.
        error_code: Machine-readable error code.
        status_code: HTTP status code for API responses.
        details: Additional context for server-side logging.
    """

    status_code: int = 500
    default_error_code: ErrorCode = ErrorCode.INTERNAL_ERROR
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the public error body. Details are never included."""
        return {
            "error": self.error_code.value,
            "message": self.message,
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code.value!r}, "
            f"status_code={self.status_code})"
        )


class ProviderAuthError(SSOError):
    """The identity provider reported an error, or the exchange with it failed."""

    status_code = 400
    default_error_code = ErrorCode.PROVIDER_AUTH_FAILED
    default_message = "Authentication failed"


class InvalidOidcTokenError(SSOError):
    """OIDC callback state or token failed validation."""

    status_code = 400
    default_error_code = ErrorCode.INVALID_OIDC_TOKEN
    default_message = "Invalid OIDC token"


class InvalidSamlResponseError(SSOError):
    """SAML callback state or response failed validation."""

    status_code = 400
    default_error_code = ErrorCode.INVALID_SAML_RESPONSE
    default_message = "Invalid SAML response"


class ProviderConfigurationError(SSOError):
    """Provider configuration is missing, incomplete or invalid."""

    status_code = 400
    default_error_code = ErrorCode.PROVIDER_NOT_CONFIGURED
    default_message = "SSO provider is not configured"


class UnknownProviderError(ProviderConfigurationError):
    """No provider engine is registered for the requested type."""

    status_code = 404

    def __init__(self, provider_type: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"Unknown provider type: {provider_type}",
            details={"provider_type": provider_type, **(details or {})},
        )
        self.provider_type = provider_type


class ProviderNotFoundError(ProviderConfigurationError):
    """The store has no provider of the requested type configured."""

    status_code = 404

    def __init__(self, store_id: str, provider_type: str):
        super().__init__(
            f"No {provider_type} provider is configured for this store",
            details={"store_id": store_id, "provider_type": provider_type},
        )


class DecryptionError(SSOError):
    """Stored credentials could not be decrypted and must not be used."""

    status_code = 500
    default_error_code = ErrorCode.DECRYPTION_FAILED
    default_message = "Failed to decrypt data"


class StateStoreUnavailableError(SSOError):
    """The ephemeral state store could not be reached."""

    status_code = 503
    default_error_code = ErrorCode.SERVICE_UNAVAILABLE
    default_message = "Authentication service temporarily unavailable"


class RateLimitExceededError(SSOError):
    """The client sent too many requests within the rate limit window."""

    status_code = 429
    default_error_code = ErrorCode.RATE_LIMITED
    default_message = "Too many requests, please try again later"

    def __init__(
        self,
        retry_after: int,
        limit: int,
        reset_at: int,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(details={"limit": limit, **(details or {})})
        self.retry_after = retry_after
        self.headers = {
            "Retry-After": str(retry_after),
            "X-RateLimit-Limit": str(limit),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(reset_at),
        }


class ConfigurationError(ValueError):
    """A required secret or setting is missing or invalid at startup."""
