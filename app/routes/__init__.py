"""API routes for the SSO gateway."""

from .sso import router as sso_router

__all__ = [
    "sso_router",
]
