"""
Tests for Shopify Multipass token generation.

Tokens are verified by reversing the construction with the derived keys.
"""

import base64
import hashlib
import hmac
import json

import pytest
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from sso_gateway.auth.errors import ConfigurationError
from sso_gateway.services.multipass import MultipassService

SECRET = "a" * 40


def decode_token(token: str, secret: str = SECRET) -> dict:
    keys = hashlib.sha256(secret.encode()).digest()
    encryption_key, signature_key = keys[:16], keys[16:]
    raw = base64.urlsafe_b64decode(token)
    ciphertext, signature = raw[:-32], raw[-32:]

    expected = hmac.new(signature_key, ciphertext, hashlib.sha256).digest()
    assert hmac.compare_digest(signature, expected)

    iv, body = ciphertext[:16], ciphertext[16:]
    decryptor = Cipher(algorithms.AES(encryption_key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(body) + decryptor.finalize()
    unpadder = padding.PKCS7(128).unpadder()
    return json.loads(unpadder.update(padded) + unpadder.finalize())


class TestMultipassService:
    """Tests for Multipass tokens and login URLs."""

    def test_token_decrypts_and_verifies(self):
        token = MultipassService(SECRET).generate_token(
            {"email": "jane@example.com", "first_name": "Jane"}
        )
        data = decode_token(token)
        assert data["email"] == "jane@example.com"
        assert data["first_name"] == "Jane"
        assert data["created_at"].endswith("Z")

    def test_keeps_supplied_created_at(self):
        token = MultipassService(SECRET).generate_token(
            {"email": "a@b.com", "created_at": "2024-01-01T00:00:00Z"}
        )
        assert decode_token(token)["created_at"] == "2024-01-01T00:00:00Z"

    def test_token_is_url_safe(self):
        token = MultipassService(SECRET).generate_token({"email": "a@b.com"})
        assert "+" not in token and "/" not in token

    def test_wrong_secret_fails_signature(self):
        token = MultipassService(SECRET).generate_token({"email": "a@b.com"})
        with pytest.raises(AssertionError):
            decode_token(token, secret="b" * 40)

    def test_email_required(self):
        with pytest.raises(ValueError):
            MultipassService(SECRET).generate_token({"first_name": "Jane"})

    @pytest.mark.parametrize("secret", ["", "x" * 31])
    def test_short_secret_rejected(self, secret):
        with pytest.raises(ConfigurationError):
            MultipassService(secret)

    @pytest.mark.parametrize("domain", ["shop", "shop.myshopify.com"])
    def test_login_url(self, domain):
        url = MultipassService(SECRET).generate_login_url(domain, {"email": "a@b.com"})
        prefix = "https://shop.myshopify.com/account/login/multipass/"
        assert url.startswith(prefix)
        assert decode_token(url[len(prefix):])["email"] == "a@b.com"
