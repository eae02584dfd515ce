"""
Backend server for the SSO gateway.

This is the main entry point that assembles the modular components from the
app package: logging, Sentry, exception handlers and the SSO router.
"""

import logging
import sys
from contextlib import asynccontextmanager

import sentry_sdk
import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

# Configure structured logging FIRST, before other imports that use logging
from sso_gateway.utils.logging import setup_logging

logger = setup_logging(service_name="sso-gateway")

from sso_gateway.config import Settings, get_settings

# =============================================================================
# Configuration Validation
# =============================================================================

try:
    settings: Settings = get_settings()
    logger.info("Configuration loaded", extra=settings.get_config_summary())
except Exception as e:
    logger.critical(f"Configuration validation failed: {e}")
    logger.critical("Application cannot start due to configuration errors.")
    sys.exit(1)

if not settings.oauth.callback_base_url:
    logger.warning(
        "Neither OAUTH_CALLBACK_URL nor SHOPIFY_APP_URL is set; "
        "SSO logins will fail until one is configured"
    )

from app.dependencies import get_encryption_service, get_password_service, get_state_backend
from app.error_handlers import register_exception_handlers
from app.middleware import RequestIDMiddleware
from app.routes import sso_router
from sso_gateway.auth.errors import ConfigurationError


def check_required_services() -> None:
    """Build the secret-backed services so a missing secret stops startup."""
    try:
        get_encryption_service()
        get_password_service()
    except ConfigurationError as e:
        logger.critical(f"Required service unavailable: {e}")
        logger.critical("Application cannot start due to configuration errors.")
        sys.exit(1)


check_required_services()

# =============================================================================
# Sentry Error Tracking Configuration
# =============================================================================

if settings.is_sentry_configured:
    sentry_settings = settings.sentry
    sentry_sdk.init(
        dsn=sentry_settings.sentry_dsn,
        environment=sentry_settings.sentry_environment,
        sample_rate=1.0,
        traces_sample_rate=sentry_settings.sentry_traces_sample_rate,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
        # SSO requests carry codes, assertions and emails
        send_default_pii=False,
        attach_stacktrace=True,
        server_name=sentry_settings.server_name,
        release=sentry_settings.sentry_release,
    )
    logger.info(f"Sentry initialized for environment: {sentry_settings.sentry_environment}")
else:
    logger.info("Sentry DSN not configured, error tracking disabled")


# =============================================================================
# Initialize FastAPI App
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup/shutdown for shared resources."""
    yield
    try:
        await get_state_backend().close()
    except Exception as e:
        logger.warning("Failed to close state backend: %s", e)


app = FastAPI(
    title="SSO Gateway API",
    description="Multi-tenant OIDC and SAML single sign-on for e-commerce stores.",
    version=settings.app.app_version,
    lifespan=lifespan,
)

app.add_middleware(RequestIDMiddleware)
register_exception_handlers(app)
app.include_router(sso_router)


@app.get("/", include_in_schema=False)
async def root():
    return {"service": settings.app.app_name, "status": "ok"}


@app.get("/health", tags=["health"])
async def health():
    """Report service health including the state store backend."""
    state_store = await get_state_backend().health_check()
    healthy = state_store.get("status") == "healthy"
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "degraded",
            "version": settings.app.app_version,
            "state_store": state_store,
        },
    )


if __name__ == "__main__":
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=8000,
        log_config=None,
    )
