"""Utility modules for the SSO gateway."""

from .logging import (
    DevelopmentFormatter,
    FlowContextFilter,
    JSONFormatter,
    SensitiveDataFilter,
    Timer,
    clear_flow_context,
    redact_sensitive_data,
    set_flow_context,
    setup_logging,
)
from .security import (
    generate_otp,
    generate_random_string,
    generate_secure_otp,
)

__all__ = [
    # Logging utilities
    "setup_logging",
    "set_flow_context",
    "clear_flow_context",
    "Timer",
    "JSONFormatter",
    "DevelopmentFormatter",
    "FlowContextFilter",
    "SensitiveDataFilter",
    "redact_sensitive_data",
    # Security helpers
    "generate_random_string",
    "generate_otp",
    "generate_secure_otp",
]
