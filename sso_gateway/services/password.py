"""
Password derivation for platform-native customer sessions.

Two schemes with different goals:

- ``generate_password``: deterministic. The same store domain and IdP user ID
  always yield the same 20-character password, so the gateway can log an SSO
  user into the storefront's native session without storing a password.
- ``hash_password`` / ``verify_password``: salted verifier hashes for storage.

Both use a store-specific salt, HMAC-SHA256(pepper, lowercase(domain)), and
PBKDF2-HMAC-SHA256 with 100,000 iterations.
"""

import base64
import binascii
import hashlib
import hmac
import logging
import os
import secrets
import string

from sso_gateway.auth.errors import ConfigurationError

logger = logging.getLogger(__name__)

HASH_SCHEME = "persona"
HASH_VERSION = "v1"
RANDOM_PASSWORD_ALPHABET = string.ascii_letters + string.digits + "!@#$%"


class PasswordService:
    """
    Store-salted password derivation and hashing.

    Args:
        pepper: Server-side secret, at least 16 characters
        app_name: Discriminator mixed into derived passwords
    """

    ITERATIONS = 100000
    KEY_LENGTH = 32
    DERIVED_PASSWORD_LENGTH = 20

    def __init__(self, pepper: str, app_name: str = "persona-sso"):
        if not pepper or len(pepper) < 16:
            raise ConfigurationError("PASSWORD_PEPPER must be at least 16 characters")
        self._pepper = pepper
        self.app_name = app_name

    def _store_salt(self, store_domain: str) -> bytes:
        return hmac.new(
            self._pepper.encode("utf-8"),
            store_domain.lower().encode("utf-8"),
            hashlib.sha256,
        ).digest()

    def _pbkdf2(self, secret: str, salt: bytes, iterations: int) -> bytes:
        return hashlib.pbkdf2_hmac(
            "sha256", secret.encode("utf-8"), salt, iterations, self.KEY_LENGTH
        )

    def generate_password(self, store_domain: str, user_idp_id: str) -> str:
        """
        Derive the native password for an IdP user at a store.

        Args:
            store_domain: The store's domain, e.g. ``shop.myshopify.com``
            user_idp_id: Subject identifier from the identity provider

        Returns:
            A 20-character password, identical on every call with the same inputs
        """
        derived = self._pbkdf2(
            f"{user_idp_id}:{self._pepper}:{self.app_name}",
            self._store_salt(store_domain),
            self.ITERATIONS,
        )
        encoded = (
            base64.b64encode(derived)
            .decode("ascii")
            .replace("+", "A")
            .replace("/", "B")
            .replace("=", "")
        )
        return encoded[: self.DERIVED_PASSWORD_LENGTH]

    def hash_password(self, password: str, store_domain: str) -> str:
        """
        Hash a password for storage.

        Returns:
            ``$persona$v1$<iterations>$<b64 random salt>$<b64 hash>``
        """
        random_salt = os.urandom(16)
        digest = self._pbkdf2(
            password, random_salt + self._store_salt(store_domain), self.ITERATIONS
        )
        return "$".join(
            [
                "",
                HASH_SCHEME,
                HASH_VERSION,
                str(self.ITERATIONS),
                base64.b64encode(random_salt).decode("ascii"),
                base64.b64encode(digest).decode("ascii"),
            ]
        )

    def verify_password(self, password: str, password_hash: str, store_domain: str) -> bool:
        """Verify a password against a stored hash. Malformed hashes never verify."""
        parts = password_hash.split("$")
        if len(parts) != 6 or parts[1] != HASH_SCHEME or parts[2] != HASH_VERSION:
            return False

        try:
            iterations = int(parts[3])
            random_salt = base64.b64decode(parts[4], validate=True)
            stored = base64.b64decode(parts[5], validate=True)
        except (ValueError, binascii.Error):
            logger.warning("Password hash could not be parsed")
            return False

        if iterations <= 0:
            return False

        computed = self._pbkdf2(
            password, random_salt + self._store_salt(store_domain), iterations
        )
        return hmac.compare_digest(stored, computed)

    @staticmethod
    def generate_random_password(length: int = 16) -> str:
        """Generate a random password for recovery or admin-issued credentials."""
        return "".join(secrets.choice(RANDOM_PASSWORD_ALPHABET) for _ in range(length))
