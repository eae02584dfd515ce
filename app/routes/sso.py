"""
SSO (Single Sign-On) API Endpoints.

This module provides the thin HTTP surface over the provider engines:
- Login: resolve the store's provider and redirect to the IdP
- OIDC callback (GET) and SAML ACS (POST)
- SAML SP metadata

User upsert, session creation and the final redirect are the caller's
concern; callbacks return the normalized AuthResult as JSON.

Security Considerations:
- Callback state is peeked only to find the owning store; the engine
  consumes it and re-checks store/provider ownership
- Provider configs are decrypted per request and never returned
- Error bodies carry only the error code and a safe message
- Every route is rate limited per client IP
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import JSONResponse, RedirectResponse

from app.dependencies import ProviderConfigLookup, get_config_lookup, get_provider_factory
from app.middleware.rate_limit import rate_limit
from sso_gateway.auth.errors import (
    InvalidOidcTokenError,
    InvalidSamlResponseError,
    ProviderAuthError,
    ProviderNotFoundError,
    UnknownProviderError,
)
from sso_gateway.auth.sso import BaseSAMLProvider, ProviderFactory, provider_registry
from sso_gateway.auth.sso.base import BaseSSOProvider
from sso_gateway.types.sso import AuthCallbackParams, SSOProtocol
from sso_gateway.utils.logging import set_flow_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["sso"], dependencies=[Depends(rate_limit)])


# =============================================================================
# Helper Functions
# =============================================================================


def _require_protocol(provider_type: str, protocol: SSOProtocol) -> None:
    provider_class = provider_registry.get(provider_type)
    if provider_class is None or provider_class.protocol != protocol:
        raise UnknownProviderError(provider_type)


async def _load_provider(
    store_id: str,
    provider_type: str,
    lookup: ProviderConfigLookup,
    factory: ProviderFactory,
) -> BaseSSOProvider:
    """Build the engine for a store's configured provider."""
    if not provider_registry.has(provider_type):
        raise UnknownProviderError(provider_type)

    record = await lookup.get(store_id, provider_type)
    if record is None:
        raise ProviderNotFoundError(store_id, provider_type)

    set_flow_context(store_id=store_id, provider_id=record.provider_id)
    return factory.create(
        provider_type,
        record.encrypted_config,
        store_id,
        record.provider_id,
    )


async def _complete_callback(
    provider_type: str,
    state_token: Optional[str],
    params: AuthCallbackParams,
    invalid_error: type,
    lookup: ProviderConfigLookup,
    factory: ProviderFactory,
) -> JSONResponse:
    """Find the flow's store from its state, then let the engine validate the callback."""
    if params.error:
        logger.warning(
            f"Identity provider returned an error for {provider_type}: {params.error}",
            extra={"provider": provider_type, "error_description": params.error_description},
        )
        raise ProviderAuthError(params.error_description or params.error)

    if not state_token:
        raise invalid_error("Invalid or expired state")

    flow_state = await factory.state_store.get_flow_state(state_token)
    if flow_state is None:
        raise invalid_error("Invalid or expired state")

    provider = await _load_provider(flow_state.store_id, provider_type, lookup, factory)
    result = await provider.handle_callback(params)

    logger.info(
        f"SSO callback completed for {provider_type}",
        extra={"provider": provider_type, "store_id": flow_state.store_id},
    )
    return JSONResponse(content=result.to_json_dict())


# =============================================================================
# Login
# =============================================================================


@router.get(
    "/{store_id}/{provider_type}/login",
    summary="Initiate SSO Login",
    description="Start the authentication flow by redirecting to the identity provider.",
)
async def sso_login(
    store_id: str,
    provider_type: str,
    return_to: Optional[str] = Query(None, alias="returnTo", description="URL to return to after login"),
    lookup: ProviderConfigLookup = Depends(get_config_lookup),
    factory: ProviderFactory = Depends(get_provider_factory),
) -> RedirectResponse:
    """Redirect the customer to the store's identity provider."""
    provider = await _load_provider(store_id, provider_type, lookup, factory)
    result = await provider.initiate(return_to)

    logger.info(
        f"SSO login initiated for store {store_id} via {provider_type}",
        extra={"provider": provider_type, "store_id": store_id},
    )

    return RedirectResponse(url=result.redirect_url, status_code=status.HTTP_302_FOUND)


# =============================================================================
# Callbacks
# =============================================================================


@router.get(
    "/oidc/{provider_type}/callback",
    summary="OIDC Callback",
    description="Handle the authorization response from an OIDC provider.",
)
async def oidc_callback(
    provider_type: str,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    lookup: ProviderConfigLookup = Depends(get_config_lookup),
    factory: ProviderFactory = Depends(get_provider_factory),
) -> JSONResponse:
    _require_protocol(provider_type, SSOProtocol.OIDC)
    params = AuthCallbackParams(
        code=code,
        state=state,
        error=error,
        error_description=error_description,
    )
    return await _complete_callback(
        provider_type, state, params, InvalidOidcTokenError, lookup, factory
    )


@router.post(
    "/saml/{provider_type}/callback",
    summary="SAML Assertion Consumer Service",
    description="Handle the SAML Response POSTed by the identity provider.",
)
async def saml_callback(
    provider_type: str,
    request: Request,
    lookup: ProviderConfigLookup = Depends(get_config_lookup),
    factory: ProviderFactory = Depends(get_provider_factory),
) -> JSONResponse:
    _require_protocol(provider_type, SSOProtocol.SAML)

    form_data = await request.form()
    relay_state = form_data.get("RelayState") or None
    params = AuthCallbackParams(
        saml_response=form_data.get("SAMLResponse") or None,
        relay_state=relay_state,
    )
    return await _complete_callback(
        provider_type, relay_state, params, InvalidSamlResponseError, lookup, factory
    )


# =============================================================================
# Metadata
# =============================================================================


@router.get(
    "/{store_id}/saml/{provider_type}/metadata",
    response_class=Response,
    summary="Get SAML SP Metadata",
    description="Return Service Provider metadata XML for IdP configuration.",
)
async def saml_metadata(
    store_id: str,
    provider_type: str,
    lookup: ProviderConfigLookup = Depends(get_config_lookup),
    factory: ProviderFactory = Depends(get_provider_factory),
) -> Response:
    _require_protocol(provider_type, SSOProtocol.SAML)
    provider = await _load_provider(store_id, provider_type, lookup, factory)
    if not isinstance(provider, BaseSAMLProvider):
        raise UnknownProviderError(provider_type)

    metadata = provider.generate_metadata()

    return Response(
        content=metadata,
        media_type="application/xml",
        headers={
            "Content-Disposition": f'attachment; filename="sp-metadata-{store_id}-{provider_type}.xml"'
        },
    )
