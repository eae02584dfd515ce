"""
FastAPI exception handlers for the SSO gateway.

This module provides centralized exception handling that:
- Maps SSO errors to their HTTP status codes
- Reports unexpected exceptions to Sentry
- Ensures consistent error response format
- Never leaks internal details (config, tokens, library messages)

All error responses follow the format:
{
    "error": "machine_readable_code",
    "message": "Human-readable message"
}
"""

import logging
import uuid
from typing import Any, Dict, Optional

import sentry_sdk
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sso_gateway.auth.errors import ErrorCode, SSOError

logger = logging.getLogger(__name__)


def create_error_response(
    status_code: int,
    error: str,
    message: str,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """
    Create a standardized error response.

    Args:
        status_code: HTTP status code.
        error: Machine-readable error code.
        message: Human-readable error message.
        headers: Optional response headers.
    """
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message},
        headers=headers,
    )


def report_to_sentry(
    exc: Exception,
    request: Optional[Request] = None,
    extra_context: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """
    Report an exception to Sentry with context.

    Query parameters are not attached; SSO callbacks carry codes and state.

    Returns:
        Sentry event ID if reported, None otherwise.
    """
    try:
        client = sentry_sdk.get_client()
        if not client.is_active():
            return None

        with sentry_sdk.new_scope() as scope:
            if request:
                scope.set_context("request", {
                    "method": request.method,
                    "path": request.url.path,
                })
                request_id = request.headers.get("X-Request-ID")
                if request_id:
                    scope.set_tag("request_id", request_id)

            if extra_context:
                scope.set_context("extra", extra_context)

            return sentry_sdk.capture_exception(exc)

    except Exception as e:
        logger.warning(f"Failed to report exception to Sentry: {e}")
        return None


# =============================================================================
# Exception Handlers
# =============================================================================

async def sso_exception_handler(request: Request, exc: SSOError) -> JSONResponse:
    """
    Handle SSOError and subclasses.

    The public body carries only the error code and safe message; details
    go to the log.
    """
    log_message = f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc.message}"

    if exc.status_code >= 500:
        logger.error(log_message, extra={"details": exc.details}, exc_info=True)
        report_to_sentry(exc, request)
    else:
        logger.warning(log_message, extra={"details": exc.details})

    body = exc.to_dict()
    return create_error_response(
        exc.status_code,
        body["error"],
        body["message"],
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Handle FastAPI request validation errors."""
    fields = [".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()]

    logger.warning(
        f"Validation error on {request.method} {request.url.path}: "
        f"{len(fields)} error(s)",
        extra={"fields": fields},
    )

    return create_error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "validation_error",
        "Invalid request parameters",
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Handle Starlette/FastAPI HTTPException (404 routes, 405 methods)."""
    detail = exc.detail if isinstance(exc.detail, str) else "Request failed"

    if exc.status_code >= 500:
        logger.error(f"HTTP {exc.status_code}: {detail}")
    else:
        logger.warning(f"HTTP {exc.status_code}: {detail}")

    error = "not_found" if exc.status_code == 404 else "http_error"
    return create_error_response(exc.status_code, error, detail, headers=exc.headers)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle any unhandled exceptions.

    Logs the full traceback, reports to Sentry and returns a generic 500.
    """
    error_reference = str(uuid.uuid4())[:8]

    logger.error(
        f"Unhandled exception [ref:{error_reference}] on "
        f"{request.method} {request.url.path}: {exc}",
        exc_info=True,
    )

    report_to_sentry(exc, request, extra_context={"error_reference": error_reference})

    return create_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        ErrorCode.INTERNAL_ERROR.value,
        f"An unexpected error occurred (ref: {error_reference})",
    )


# =============================================================================
# Handler Registration
# =============================================================================

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with the FastAPI application.

    Args:
        app: The FastAPI application instance.
    """
    app.add_exception_handler(SSOError, sso_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    logger.info("Exception handlers registered successfully")
