"""
SSO Gateway Application Package

This package contains the FastAPI application components: dependency
wiring, exception handlers and the SSO router.
"""

from .error_handlers import register_exception_handlers

__version__ = "1.0.0"

__all__ = [
    "register_exception_handlers",
]
