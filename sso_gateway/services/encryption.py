"""
AES-256-GCM encryption for provider configs and store credentials at rest.

Token format:
    v1:<base64 iv>:<base64 auth tag>:<base64 ciphertext>

The version prefix keeps old tokens decodable if the algorithm changes.
Any decryption failure raises DecryptionError; a failed decrypt is never
partially trusted.
"""

import base64
import binascii
import json
import logging
import os
import re
from typing import Any, Dict, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from sso_gateway.auth.errors import ConfigurationError, DecryptionError

logger = logging.getLogger(__name__)

HEX_KEY_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")


def _b64decode_strict(segment: str) -> bytes:
    """Decode standard base64, rejecting anything that does not re-encode identically."""
    raw = base64.b64decode(segment, validate=True)
    if base64.b64encode(raw).decode("ascii") != segment:
        raise ValueError("Non-canonical base64 segment")
    return raw


class EncryptionService:
    """
    Authenticated symmetric encryption with a random IV per call.

    Args:
        key_hex: 32-byte key as 64 hex characters
    """

    VERSION = "v1"
    IV_LENGTH = 16
    TAG_LENGTH = 16

    def __init__(self, key_hex: str):
        if not key_hex or not HEX_KEY_PATTERN.match(key_hex):
            raise ConfigurationError("ENCRYPTION_KEY must be 64 hex characters (32 bytes)")
        self._aesgcm = AESGCM(bytes.fromhex(key_hex))

    def encrypt(self, data: Union[str, Dict[str, Any]]) -> str:
        """
        Encrypt a string or a JSON-serializable mapping.

        Args:
            data: Plaintext string, or a mapping that is JSON-encoded first

        Returns:
            Versioned token ``v1:iv:tag:ciphertext``
        """
        plaintext = data if isinstance(data, str) else json.dumps(data)
        iv = os.urandom(self.IV_LENGTH)
        sealed = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[: -self.TAG_LENGTH], sealed[-self.TAG_LENGTH:]

        return ":".join(
            [
                self.VERSION,
                base64.b64encode(iv).decode("ascii"),
                base64.b64encode(tag).decode("ascii"),
                base64.b64encode(ciphertext).decode("ascii"),
            ]
        )

    def decrypt(self, token: str) -> Any:
        """
        Decrypt a token produced by ``encrypt``.

        Returns:
            Parsed JSON when the plaintext is JSON, the plain string otherwise.

        Raises:
            DecryptionError: Malformed token, unsupported version or bad tag
        """
        try:
            parts = token.split(":")
            if len(parts) != 4:
                raise ValueError("Invalid encrypted data format")

            version, iv_b64, tag_b64, ciphertext_b64 = parts
            if version != self.VERSION:
                raise ValueError(f"Unsupported encryption version: {version}")

            iv = _b64decode_strict(iv_b64)
            tag = _b64decode_strict(tag_b64)
            ciphertext = _b64decode_strict(ciphertext_b64)
            if len(iv) != self.IV_LENGTH or len(tag) != self.TAG_LENGTH:
                raise ValueError("Invalid IV or auth tag length")

            plaintext = self._aesgcm.decrypt(iv, ciphertext + tag, None).decode("utf-8")
        except (ValueError, binascii.Error, InvalidTag, AttributeError) as e:
            logger.error(f"Decryption failed: {type(e).__name__}")
            raise DecryptionError() from e

        try:
            return json.loads(plaintext)
        except json.JSONDecodeError:
            return plaintext

    def is_encrypted(self, value: Any) -> bool:
        """Check whether a value looks like a token from this service."""
        if not value or not isinstance(value, str):
            return False
        parts = value.split(":")
        return len(parts) == 4 and parts[0] == self.VERSION

    @staticmethod
    def generate_key() -> str:
        """Generate a new random key as 64 hex characters."""
        return os.urandom(32).hex()
