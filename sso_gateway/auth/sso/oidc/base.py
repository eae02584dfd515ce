"""
OpenID Connect (OIDC) Protocol Engine.

Authorization code flow with PKCE (S256) and nonce, shared by every OIDC
provider. Concrete providers only supply the issuer and defaults.

Flow:
    initiate:        discovery -> state, nonce, PKCE pair -> persist flow
                     state (10 min) -> authorization URL
    handle_callback: IdP error? -> code and state present? -> consume state ->
                     tenant check -> code exchange -> ID token validation ->
                     userinfo fallback -> UserProfile

Security Considerations:
- ID tokens are verified against the issuer's JWKS (signature, iss, aud,
  exp, iat) and the stored nonce
- The state token is consumed exactly once; a replayed callback fails
- Exchange/validation failures are logged in full and surfaced to the user
  only as "Authentication failed"

Dependencies:
- authlib: token exchange
- httpx: discovery, JWKS and userinfo
- PyJWT: ID token validation
"""

import asyncio
import base64
import hashlib
import logging
import secrets
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode, urlparse

import httpx
import jwt
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import AsyncOAuth2Client

from sso_gateway.auth.errors import (
    InvalidOidcTokenError,
    ProviderAuthError,
    ProviderConfigurationError,
)
from sso_gateway.auth.sso.base import BaseSSOProvider
from sso_gateway.types.sso import (
    AuthCallbackParams,
    AuthFlowState,
    AuthInitiateResult,
    AuthResult,
    AuthTokens,
    OIDCProviderConfig,
    SSOProtocol,
    UserProfile,
)
from sso_gateway.utils.logging import Timer

logger = logging.getLogger(__name__)

SIGNING_ALGORITHMS = ["RS256", "RS384", "RS512", "ES256", "ES384", "ES512"]
CLOCK_SKEW_SECONDS = 60
# JWK key type required by each JWS algorithm family
KEY_TYPE_BY_ALG_PREFIX = {"RS": "RSA", "ES": "EC"}

# Failures raised by the exchange and validation steps
EXCHANGE_ERRORS = (
    AuthlibBaseError,
    httpx.HTTPError,
    jwt.PyJWTError,
    InvalidOidcTokenError,
    ValueError,
    KeyError,
    TypeError,
)


def generate_pkce_pair() -> Tuple[str, str]:
    """
    Generate PKCE code verifier and S256 challenge.

    Returns:
        Tuple of (code_verifier, code_challenge)
    """
    code_verifier = secrets.token_urlsafe(64)
    digest = hashlib.sha256(code_verifier.encode()).digest()
    code_challenge = base64.urlsafe_b64encode(digest).decode().rstrip("=")
    return code_verifier, code_challenge


def generate_state() -> str:
    """Generate a cryptographically secure state parameter."""
    return secrets.token_urlsafe(32)


def generate_nonce() -> str:
    """Generate a cryptographically secure nonce."""
    return secrets.token_urlsafe(32)


class BaseOIDCProvider(BaseSSOProvider):
    """
    OIDC engine. Subclasses override ``default_issuer_url`` or
    ``_resolve_issuer_url`` and the scope/field defaults.

    Args:
        transport: Optional httpx transport used for every IdP call
    """

    protocol = SSOProtocol.OIDC
    default_issuer_url: Optional[str] = None
    use_pkce_and_nonce: bool = True
    scope_separator: str = " "
    token_endpoint_auth_method: str = "client_secret_basic"

    def __init__(self, *args, transport: Optional[httpx.AsyncBaseTransport] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.oidc_config = OIDCProviderConfig.model_validate(self.config)
        self.issuer_url = self._resolve_issuer_url()
        self._transport = transport
        self._discovery: Optional[Dict[str, Any]] = None
        self._discovery_lock = asyncio.Lock()

    # =========================================================================
    # Configuration
    # =========================================================================

    def _resolve_issuer_url(self) -> Optional[str]:
        return self.oidc_config.issuer_url or self.default_issuer_url

    def get_default_scopes(self) -> List[str]:
        return ["openid", "profile", "email"]

    def get_required_config_fields(self) -> List[str]:
        return ["clientId", "clientSecret", "issuerUrl"]

    def validate_config(self) -> bool:
        return bool(
            self.oidc_config.client_id
            and self.oidc_config.client_secret
            and self.issuer_url
        )

    def _ensure_configured(self) -> None:
        if not self.validate_config():
            raise ProviderConfigurationError(
                f"{self.get_display_name()} provider is missing required configuration",
                details={"required_fields": self.get_required_config_fields()},
            )

    def _redirect_uri(self) -> str:
        """Callback URL sent as redirect_uri; must byte-match the IdP registration."""
        redirect_uri = self.build_callback_url().rstrip("/")
        parsed = urlparse(redirect_uri)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            logger.error(
                "OIDC redirect URI is not an absolute http(s) URL",
                extra={"provider": self.provider_type, "redirect_uri": redirect_uri},
            )
            raise ProviderConfigurationError(
                f"Invalid redirect URI: {redirect_uri!r}. "
                "Set OAUTH_CALLBACK_URL to the public base URL of this service.",
                details={"redirect_uri": redirect_uri},
            )
        return redirect_uri

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.http_timeout, transport=self._transport)

    # =========================================================================
    # Discovery
    # =========================================================================

    async def get_discovery(self) -> Dict[str, Any]:
        """
        Return the issuer's discovery document, fetching it once per instance.

        Concurrent first callers wait on the lock and share a single fetch.
        """
        if self._discovery is not None:
            return self._discovery

        async with self._discovery_lock:
            if self._discovery is None:
                self._discovery = await self._fetch_discovery()
        return self._discovery

    async def _fetch_discovery(self) -> Dict[str, Any]:
        discovery_url = f"{self.issuer_url.rstrip('/')}/.well-known/openid-configuration"

        try:
            async with self._http_client() as client:
                response = await client.get(discovery_url, follow_redirects=True)
                response.raise_for_status()
                document = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                f"OIDC discovery failed for {self.provider_type}: {e}",
                extra={"provider": self.provider_type, "discovery_url": discovery_url},
                exc_info=True,
            )
            raise ProviderAuthError("Failed to initialize OIDC provider") from e

        missing = [
            field
            for field in ("issuer", "authorization_endpoint", "token_endpoint")
            if not document.get(field)
        ]
        if missing:
            logger.error(
                f"OIDC discovery document incomplete for {self.provider_type}",
                extra={"provider": self.provider_type, "missing": missing},
            )
            raise ProviderAuthError("Failed to initialize OIDC provider")

        logger.debug(
            f"Discovered OIDC configuration for {self.provider_type}",
            extra={"provider": self.provider_type, "issuer": document["issuer"]},
        )
        return document

    # =========================================================================
    # Initiate
    # =========================================================================

    def _authorization_params(
        self,
        state: str,
        redirect_uri: str,
        nonce: Optional[str],
        code_challenge: Optional[str],
    ) -> Dict[str, str]:
        scopes = self.oidc_config.scopes or self.get_default_scopes()
        params = {
            "client_id": self.oidc_config.client_id,
            "response_type": "code",
            "scope": self.scope_separator.join(scopes),
            "state": state,
            "redirect_uri": redirect_uri,
        }
        if nonce:
            params["nonce"] = nonce
        if code_challenge:
            params["code_challenge"] = code_challenge
            params["code_challenge_method"] = "S256"
        return params

    async def initiate(self, return_to: Optional[str] = None) -> AuthInitiateResult:
        self._ensure_configured()
        redirect_uri = self._redirect_uri()
        discovery = await self.get_discovery()

        state = generate_state()
        nonce = code_verifier = code_challenge = None
        if self.use_pkce_and_nonce:
            nonce = generate_nonce()
            code_verifier, code_challenge = generate_pkce_pair()

        await self.state_store.save_flow_state(
            state,
            AuthFlowState(
                store_id=self.store_id,
                provider_id=self.provider_id,
                nonce=nonce,
                code_verifier=code_verifier,
                return_to=return_to,
            ),
        )

        endpoint = discovery["authorization_endpoint"]
        separator = "&" if "?" in endpoint else "?"
        query = urlencode(self._authorization_params(state, redirect_uri, nonce, code_challenge))
        redirect_url = f"{endpoint}{separator}{query}"

        logger.info(
            f"OIDC authorization URL built for {self.provider_type}; "
            f"redirect_uri must match the provider registration exactly: {redirect_uri}",
            extra={
                "provider": self.provider_type,
                "redirect_uri": redirect_uri,
                "authorization_endpoint": endpoint,
            },
        )

        return AuthInitiateResult(redirect_url=redirect_url, state=state, nonce=nonce)

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
                f"OIDC callback error from {self.provider_type}: {params.error}",
                extra={
                    "provider": self.provider_type,
                    "error_description": params.error_description,
                },
            )
            raise ProviderAuthError(params.error_description or params.error)

        if not params.code or not params.state:
            raise InvalidOidcTokenError("Missing code or state in callback")

        state_data = pre_consumed_state
        if state_data is None:
            state_data = await self.state_store.consume_flow_state(params.state)
        if state_data is None:
            raise InvalidOidcTokenError("Invalid or expired state")

        if not self._belongs_to_this_provider(state_data):
            logger.warning(
                "OIDC state belongs to a different store or provider",
                extra={
                    "provider": self.provider_type,
                    "expected_store_id": self.store_id,
                    "state_store_id": state_data.store_id,
                },
            )
            raise InvalidOidcTokenError("State mismatch")

        discovery = await self.get_discovery()
        redirect_uri = self._redirect_uri()

        try:
            with Timer(f"{self.provider_type}_token_exchange", logger):
                token = await self._exchange_code(
                    discovery, params.code, redirect_uri, state_data.code_verifier
                )
            user = await self._resolve_user(discovery, token, state_data)
        except EXCHANGE_ERRORS as e:
            logger.error(
                f"OIDC callback failed for {self.provider_type}: {e}",
                extra={"provider": self.provider_type, "error_type": type(e).__name__},
                exc_info=True,
            )
            raise ProviderAuthError("Authentication failed") from e

        logger.info(
            f"OIDC authentication successful for {self.provider_type}",
            extra={"provider": self.provider_type, "subject": user.id},
        )

        return AuthResult(
            user=user,
            tokens=AuthTokens(
                access_token=token["access_token"],
                refresh_token=token.get("refresh_token"),
                id_token=token.get("id_token"),
                expires_in=token.get("expires_in"),
            ),
        )

    async def _exchange_code(
        self,
        discovery: Dict[str, Any],
        code: str,
        redirect_uri: str,
        code_verifier: Optional[str],
    ) -> Dict[str, Any]:
        """Exchange the authorization code at the token endpoint."""
        token_params: Dict[str, str] = {}
        if code_verifier:
            token_params["code_verifier"] = code_verifier

        async with AsyncOAuth2Client(
            client_id=self.oidc_config.client_id,
            client_secret=self.oidc_config.client_secret,
            redirect_uri=redirect_uri,
            token_endpoint_auth_method=self.token_endpoint_auth_method,
            timeout=self.http_timeout,
            transport=self._transport,
        ) as client:
            token = await client.fetch_token(
                discovery["token_endpoint"],
                code=code,
                **token_params,
            )

        if not token.get("access_token"):
            raise ValueError("Token response did not include an access token")
        return dict(token)

    async def _resolve_user(
        self,
        discovery: Dict[str, Any],
        token: Dict[str, Any],
        state_data: AuthFlowState,
    ) -> UserProfile:
        """Validate the ID token, fill in missing claims from userinfo and map them."""
        id_token = token.get("id_token")
        if not id_token:
            raise InvalidOidcTokenError("No ID token in response")

        claims = await self.validate_id_token(discovery, id_token, state_data.nonce)

        if not claims.get("email") and discovery.get("userinfo_endpoint"):
            userinfo = await self._fetch_userinfo(
                discovery["userinfo_endpoint"], token["access_token"]
            )
            if userinfo.get("sub") and userinfo["sub"] != claims["sub"]:
                raise InvalidOidcTokenError("Userinfo subject does not match ID token")
            claims = {**claims, **userinfo}

        return self.map_claims_to_user(claims)

    def _expected_issuer(self, discovery: Dict[str, Any], unverified_claims: Dict[str, Any]) -> str:
        return discovery["issuer"]

    async def validate_id_token(
        self,
        discovery: Dict[str, Any],
        id_token: str,
        nonce: Optional[str],
    ) -> Dict[str, Any]:
        """
        Validate and decode an ID token.

        Validations performed:
        - Signature against the issuer's JWKS
        - Issuer, audience (client ID), expiration and issued-at
        - Nonce equals the one stored at initiate

        Raises:
            jwt.PyJWTError: If any check fails
        """
        jwks_uri = discovery.get("jwks_uri")
        if not jwks_uri:
            raise jwt.InvalidTokenError("Discovery document has no jwks_uri")

        async with self._http_client() as client:
            response = await client.get(jwks_uri)
            response.raise_for_status()
            jwk_set = jwt.PyJWKSet.from_dict(response.json())

        header = jwt.get_unverified_header(id_token)
        kid = header.get("kid")
        key_type = KEY_TYPE_BY_ALG_PREFIX.get(str(header.get("alg", ""))[:2])
        candidates = [
            key
            for key in jwk_set.keys
            if (kid is None or key.key_id == kid)
            and key.public_key_use in (None, "sig")
            and (key_type is None or key.key_type == key_type)
        ]
        if not candidates:
            raise jwt.InvalidTokenError(f"No signing key found for kid {kid!r}")

        unverified = jwt.decode(id_token, options={"verify_signature": False})
        expected_issuer = self._expected_issuer(discovery, unverified)

        # Without a kid any published signing key may be the right one
        for index, candidate in enumerate(candidates):
            try:
                claims = jwt.decode(
                    id_token,
                    candidate.key,
                    algorithms=SIGNING_ALGORITHMS,
                    audience=self.oidc_config.client_id,
                    issuer=expected_issuer,
                    leeway=CLOCK_SKEW_SECONDS,
                    options={"require": ["exp", "iat", "sub", "iss", "aud"]},
                )
                break
            except jwt.InvalidSignatureError:
                if index == len(candidates) - 1:
                    raise

        if nonce is not None and claims.get("nonce") != nonce:
            raise jwt.InvalidTokenError("Nonce mismatch in ID token")

        return claims

    async def _fetch_userinfo(self, userinfo_endpoint: str, access_token: str) -> Dict[str, Any]:
        async with self._http_client() as client:
            response = await client.get(
                userinfo_endpoint,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            response.raise_for_status()
            return response.json()

    @staticmethod
    def map_claims_to_user(claims: Dict[str, Any]) -> UserProfile:
        """Map standard OIDC claims onto a UserProfile."""
        email = claims.get("email")
        if not email:
            raise ValueError("Identity provider returned no email claim")

        return UserProfile(
            id=str(claims["sub"]),
            email=email,
            first_name=claims.get("given_name"),
            last_name=claims.get("family_name"),
            name=claims.get("name"),
            picture=claims.get("picture"),
            email_verified=claims.get("email_verified"),
            locale=claims.get("locale"),
            raw_profile=dict(claims),
        )
