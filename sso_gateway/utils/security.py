"""
Random token and OTP helpers shared by the SSO flows.
"""

import secrets
import string

ALPHANUMERIC = string.ascii_uppercase + string.digits


def generate_random_string(length: int = 32) -> str:
    """Generate a URL-safe random string of exactly ``length`` characters."""
    return secrets.token_urlsafe(length)[:length]


def generate_otp() -> str:
    """Generate a 6-digit numeric one-time code."""
    return str(secrets.randbelow(900000) + 100000)


def generate_secure_otp(length: int = 8) -> str:
    """Generate an alphanumeric one-time code (uppercase letters and digits)."""
    return "".join(secrets.choice(ALPHANUMERIC) for _ in range(length))
