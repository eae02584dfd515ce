"""
Shopify Multipass token generation.

Stores on the Plus plan accept an encrypted, signed customer token for
passwordless storefront login instead of the derived native password.

Key derivation: SHA-256(secret); the first 16 bytes are the AES-128-CBC key,
the last 16 bytes the HMAC-SHA256 signing key.
Token: urlsafe_base64(iv || ciphertext || hmac(iv || ciphertext)).
"""

import base64
import hashlib
import hmac
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from sso_gateway.auth.errors import ConfigurationError

logger = logging.getLogger(__name__)


class MultipassService:
    """
    Multipass token generator for one store.

    Args:
        multipass_secret: The store's Multipass secret from the Shopify admin
    """

    def __init__(self, multipass_secret: str):
        if not multipass_secret or len(multipass_secret) < 32:
            raise ConfigurationError("Invalid Multipass secret")

        key_material = hashlib.sha256(multipass_secret.encode("utf-8")).digest()
        self._encryption_key = key_material[:16]
        self._signature_key = key_material[16:32]

    def generate_token(self, customer: Dict[str, Any]) -> str:
        """
        Build a Multipass token for a customer.

        Args:
            customer: Customer data; ``email`` is required. ``created_at`` is
                added as the current ISO-8601 time when absent.

        Returns:
            URL-safe base64 token

        Raises:
            ValueError: If the customer has no email
        """
        if not customer.get("email"):
            raise ValueError("Email is required for Multipass token")

        data = dict(customer)
        data.setdefault(
            "created_at",
            datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        )
        plaintext = json.dumps(data).encode("utf-8")

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext) + padder.finalize()

        iv = os.urandom(16)
        encryptor = Cipher(algorithms.AES(self._encryption_key), modes.CBC(iv)).encryptor()
        ciphertext = iv + encryptor.update(padded) + encryptor.finalize()

        signature = hmac.new(self._signature_key, ciphertext, hashlib.sha256).digest()
        return base64.urlsafe_b64encode(ciphertext + signature).decode("ascii")

    def generate_login_url(self, store_domain: str, customer: Dict[str, Any]) -> str:
        """
        Build the storefront Multipass login URL.

        Args:
            store_domain: ``<shop>`` or ``<shop>.myshopify.com``
            customer: Customer data passed to ``generate_token``
        """
        token = self.generate_token(customer)
        shop = store_domain.replace(".myshopify.com", "")
        logger.debug(f"Multipass login URL generated for {shop}")
        return f"https://{shop}.myshopify.com/account/login/multipass/{token}"
