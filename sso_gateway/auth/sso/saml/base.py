"""
SAML 2.0 Protocol Engine.

SP-initiated SSO with the HTTP-Redirect binding for the AuthnRequest and the
HTTP-POST binding for the response, built on python3-saml in strict mode.
Concrete providers (Okta, Azure AD, Salesforce, OneLogin) only supply their
default attribute mapping.

Flow:
    initiate:        AuthnRequest with RelayState=state -> persist flow state
                     (10 min) and requestId -> storeId (5 min)
    handle_callback: IdP error? -> SAMLResponse present? -> consume RelayState
                     -> tenant check -> consume tracked request ID ->
                     validate response (signature, InResponseTo, expiry) ->
                     attribute mapping -> UserProfile

Security Considerations:
- Unsolicited responses and responses to unknown request IDs are rejected
- Each request ID validates at most one response
- Validation failures are classified (replay, expired, signature) for
  operators; raw library reasons are logged, never returned
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from sso_gateway.auth.errors import (
    InvalidSamlResponseError,
    ProviderAuthError,
    ProviderConfigurationError,
)
from sso_gateway.auth.sso.base import BaseSSOProvider
from sso_gateway.types.sso import (
    AuthCallbackParams,
    AuthFlowState,
    AuthInitiateResult,
    AuthResult,
    SAMLProviderConfig,
    SSOProtocol,
    UserProfile,
)
from sso_gateway.utils.security import generate_random_string

logger = logging.getLogger(__name__)

BINDING_HTTP_POST = "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-POST"
BINDING_HTTP_REDIRECT = "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-Redirect"
NAMEID_FORMAT_UNSPECIFIED = "urn:oasis:names:tc:SAML:1.1:nameid-format:unspecified"

SIGNATURE_ALGORITHMS = {
    "sha256": "http://www.w3.org/2001/04/xmldsig-more#rsa-sha256",
    "sha512": "http://www.w3.org/2001/04/xmldsig-more#rsa-sha512",
}
DIGEST_ALGORITHMS = {
    "sha256": "http://www.w3.org/2001/04/xmlenc#sha256",
    "sha512": "http://www.w3.org/2001/04/xmlenc#sha512",
}

REPLAY_MESSAGE = "SAML response replay detected"
EXPIRED_MESSAGE = "SAML response expired"
SIGNATURE_MESSAGE = "Invalid SAML signature"
GENERIC_MESSAGE = "SAML authentication failed"


def classify_saml_failure(reason: str) -> str:
    """Map a python3-saml failure reason to a user-facing message."""
    if "InResponseTo" in reason:
        return REPLAY_MESSAGE
    lowered = reason.lower()
    if "expired" in lowered or "NotOnOrAfter" in reason:
        return EXPIRED_MESSAGE
    if "signature" in lowered or "not signed" in lowered:
        return SIGNATURE_MESSAGE
    return GENERIC_MESSAGE


def _strip_pem_headers(pem: str) -> str:
    """Remove PEM headers and footers, return the raw base64 body."""
    return "".join(
        line.strip()
        for line in pem.strip().splitlines()
        if not line.startswith("-----")
    )


class BaseSAMLProvider(BaseSSOProvider):
    """SAML engine. Subclasses override ``get_default_attribute_mapping``."""

    protocol = SSOProtocol.SAML

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.saml_config = SAMLProviderConfig.model_validate(self.config)
        self._settings: Optional[Dict[str, Any]] = None

    # =========================================================================
    # Configuration
    # =========================================================================

    def get_default_attribute_mapping(self) -> Dict[str, str]:
        return {
            "email": "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/emailaddress",
            "firstName": "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/givenname",
            "lastName": "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/surname",
            "name": "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/name",
        }

    def get_default_scopes(self) -> List[str]:
        return []

    def get_required_config_fields(self) -> List[str]:
        return ["entryPoint", "issuer", "cert"]

    def validate_config(self) -> bool:
        return bool(
            self.saml_config.entry_point
            and self.saml_config.issuer
            and self.saml_config.cert
        )

    def build_saml_settings(self) -> Dict[str, Any]:
        """
        Build the python3-saml settings dictionary (cached per instance).

        Raises:
            ProviderConfigurationError: If required fields are missing
        """
        if self._settings is not None:
            return self._settings

        if not self.validate_config():
            raise ProviderConfigurationError(
                f"{self.get_display_name()} SAML provider is missing required configuration",
                details={"required_fields": self.get_required_config_fields()},
            )

        config = self.saml_config
        signs_requests = bool(config.private_key and config.signing_cert)

        sp: Dict[str, Any] = {
            "entityId": config.issuer,
            "assertionConsumerService": {
                "url": self.build_callback_url(),
                "binding": BINDING_HTTP_POST,
            },
            "NameIDFormat": NAMEID_FORMAT_UNSPECIFIED,
        }
        if config.signing_cert:
            sp["x509cert"] = _strip_pem_headers(config.signing_cert)
        if config.private_key:
            sp["privateKey"] = config.private_key

        self._settings = {
            "strict": True,
            "debug": False,
            "sp": sp,
            "idp": {
                "entityId": config.idp_issuer or config.entry_point,
                "singleSignOnService": {
                    "url": config.entry_point,
                    "binding": BINDING_HTTP_REDIRECT,
                },
                "x509cert": _strip_pem_headers(config.cert),
            },
            "security": {
                "authnRequestsSigned": signs_requests,
                "wantAssertionsSigned": config.want_assertions_signed,
                "wantMessagesSigned": config.want_authn_response_signed,
                "wantNameId": True,
                "wantAttributeStatement": False,
                "signMetadata": False,
                "signatureAlgorithm": SIGNATURE_ALGORITHMS[config.signature_algorithm],
                "digestAlgorithm": DIGEST_ALGORITHMS[config.signature_algorithm],
                "rejectUnsolicitedResponsesWithInResponseTo": True,
            },
        }
        return self._settings

    def build_request_data(
        self,
        post_data: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Build the python3-saml request description for the ACS URL.

        python3-saml compares the response Destination with this URL.
        """
        acs = urlparse(self.build_callback_url())
        https = acs.scheme == "https"
        return {
            "https": "on" if https else "off",
            "http_host": acs.hostname,
            "server_port": acs.port or (443 if https else 80),
            "script_name": acs.path,
            "get_data": {},
            "post_data": post_data or {},
        }

    def _build_auth(self, request_data: Dict[str, Any]):
        from onelogin.saml2.auth import OneLogin_Saml2_Auth

        return OneLogin_Saml2_Auth(request_data, self.build_saml_settings())

    def _load_settings(self):
        settings = self.build_saml_settings()

        from onelogin.saml2.settings import OneLogin_Saml2_Settings

        return OneLogin_Saml2_Settings(settings, sp_validation_only=True)

    # =========================================================================
    # Initiate
    # =========================================================================

    async def initiate(self, return_to: Optional[str] = None) -> AuthInitiateResult:
        self.build_saml_settings()
        state = generate_random_string(32)

        try:
            auth = self._build_auth(self.build_request_data())
            redirect_url = auth.login(return_to=state)
            request_id = auth.get_last_request_id()
        except Exception as e:
            logger.error(
                f"Failed to generate SAML request for {self.provider_type}: {e}",
                extra={"provider": self.provider_type},
                exc_info=True,
            )
            raise ProviderAuthError("Failed to initiate SAML authentication") from e

        await self.state_store.save_flow_state(
            state,
            AuthFlowState(
                store_id=self.store_id,
                provider_id=self.provider_id,
                request_id=request_id,
                return_to=return_to,
            ),
        )
        await self.state_store.track_request(request_id, self.store_id)

        logger.info(
            f"SAML auth initiated for {self.provider_type}",
            extra={"provider": self.provider_type, "request_id": request_id},
        )

        return AuthInitiateResult(redirect_url=redirect_url, state=state)

    # =========================================================================
    # Callback
    # =========================================================================

    async def handle_callback(
        self,
        params: AuthCallbackParams,
        pre_consumed_state: Optional[AuthFlowState] = None,
    ) -> AuthResult:
        if params.error:
            logger.warning(
                f"SAML callback error from {self.provider_type}: {params.error}",
                extra={
                    "provider": self.provider_type,
                    "error_description": params.error_description,
                },
            )
            raise ProviderAuthError(params.error_description or params.error)

        if not params.saml_response:
            raise InvalidSamlResponseError("Missing SAML response")

        state_data = pre_consumed_state
        if state_data is None and params.relay_state:
            state_data = await self.state_store.consume_flow_state(params.relay_state)
        if state_data is None:
            raise InvalidSamlResponseError("Invalid or expired state")

        if not self._belongs_to_this_provider(state_data):
            logger.warning(
                "SAML RelayState belongs to a different store or provider",
                extra={
                    "provider": self.provider_type,
                    "expected_store_id": self.store_id,
                    "state_store_id": state_data.store_id,
                },
            )
            raise InvalidSamlResponseError("State mismatch")

        request_id = state_data.request_id
        owner = await self.state_store.consume_request(request_id) if request_id else None
        if owner != self.store_id:
            logger.warning(
                "SAML request ID already used, expired or owned by another store",
                extra={"provider": self.provider_type, "request_id": request_id},
            )
            raise InvalidSamlResponseError(REPLAY_MESSAGE)

        request_data = self.build_request_data(
            post_data={
                "SAMLResponse": params.saml_response,
                "RelayState": params.relay_state or "",
            }
        )

        try:
            auth = self._build_auth(request_data)
            auth.process_response(request_id=request_id)
        except Exception as e:
            logger.error(
                f"SAML validation failed for {self.provider_type}: {e}",
                extra={"provider": self.provider_type},
                exc_info=True,
            )
            raise InvalidSamlResponseError(classify_saml_failure(str(e))) from e

        errors = auth.get_errors()
        if errors:
            reason = auth.get_last_error_reason() or ", ".join(errors)
            logger.error(
                f"SAML validation failed for {self.provider_type}: {reason}",
                extra={"provider": self.provider_type, "errors": errors},
            )
            raise InvalidSamlResponseError(classify_saml_failure(reason))

        if not auth.is_authenticated():
            logger.error(f"SAML authentication not confirmed for {self.provider_type}")
            raise InvalidSamlResponseError(GENERIC_MESSAGE)

        profile: Dict[str, Any] = {
            "nameID": auth.get_nameid(),
            "nameIDFormat": auth.get_nameid_format(),
            "sessionIndex": auth.get_session_index(),
        }
        profile.update(auth.get_attributes())

        user = self.extract_user_profile(profile)

        logger.info(
            f"SAML authentication successful for {self.provider_type}",
            extra={"provider": self.provider_type, "subject": user.id},
        )

        return AuthResult(user=user)

    def extract_user_profile(self, profile: Dict[str, Any]) -> UserProfile:
        """
        Map assertion attributes to a UserProfile.

        Multi-valued attributes use their first value. ``id`` and ``email``
        fall back to the NameID.
        """
        mapping = self.saml_config.attribute_mapping or self.get_default_attribute_mapping()

        def get_attribute(field: str) -> Optional[str]:
            value = profile.get(mapping.get(field, field))
            if isinstance(value, list):
                value = next((v for v in value if v), None)
            return value if isinstance(value, str) and value else None

        name_id = profile.get("nameID") or None
        user_id = name_id or get_attribute("id")
        if not user_id:
            raise InvalidSamlResponseError(GENERIC_MESSAGE)

        return UserProfile(
            id=user_id,
            email=get_attribute("email") or name_id or "",
            first_name=get_attribute("firstName"),
            last_name=get_attribute("lastName"),
            name=get_attribute("name"),
            raw_profile=profile,
        )

    # =========================================================================
    # Metadata
    # =========================================================================

    def generate_metadata(self) -> str:
        """
        Generate this SP's metadata XML for IdP administrators.

        Raises:
            ProviderConfigurationError: If the metadata cannot be built or fails validation
        """
        try:
            settings = self._load_settings()
            metadata = settings.get_sp_metadata()
            errors = settings.validate_metadata(metadata)
        except ProviderConfigurationError:
            raise
        except Exception as e:
            logger.error(
                f"SP metadata generation failed for {self.provider_type}: {e}",
                exc_info=True,
            )
            raise ProviderConfigurationError("Unable to generate SAML metadata") from e

        if errors:
            logger.error(
                f"Generated SP metadata is invalid for {self.provider_type}",
                extra={"errors": errors},
            )
            raise ProviderConfigurationError("Unable to generate SAML metadata")

        if isinstance(metadata, bytes):
            metadata = metadata.decode("utf-8")
        return metadata
