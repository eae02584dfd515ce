"""
Tests for store-salted password derivation and hashing.
"""

import base64
import hashlib
import hmac

import pytest

from sso_gateway.auth.errors import ConfigurationError
from sso_gateway.services.password import PasswordService

PEPPER = "test-pepper-0123456789"


@pytest.fixture
def passwords():
    return PasswordService(PEPPER)


class TestGeneratePassword:
    """Tests for the deterministic native password."""

    def test_deterministic(self, passwords):
        first = passwords.generate_password("shop.myshopify.com", "user-1")
        second = passwords.generate_password("shop.myshopify.com", "user-1")
        assert first == second
        assert len(first) == 20

    def test_matches_reference_derivation(self, passwords):
        store_salt = hmac.new(PEPPER.encode(), b"shop.myshopify.com", hashlib.sha256).digest()
        derived = hashlib.pbkdf2_hmac(
            "sha256", f"user-1:{PEPPER}:persona-sso".encode(), store_salt, 100000, 32
        )
        expected = (
            base64.b64encode(derived).decode()
            .replace("+", "A").replace("/", "B").replace("=", "")[:20]
        )
        assert passwords.generate_password("shop.myshopify.com", "user-1") == expected

    def test_domain_is_case_insensitive(self, passwords):
        assert passwords.generate_password("Shop.MyShopify.com", "u") == passwords.generate_password(
            "shop.myshopify.com", "u"
        )

    def test_differs_per_store_and_user(self, passwords):
        base = passwords.generate_password("a.myshopify.com", "u")
        assert base != passwords.generate_password("b.myshopify.com", "u")
        assert base != passwords.generate_password("a.myshopify.com", "v")

    def test_differs_per_app_name(self):
        a = PasswordService(PEPPER, app_name="app-a").generate_password("s.com", "u")
        b = PasswordService(PEPPER, app_name="app-b").generate_password("s.com", "u")
        assert a != b

    def test_no_base64_symbols(self, passwords):
        for i in range(20):
            password = passwords.generate_password("shop.com", f"user-{i}")
            assert "+" not in password and "/" not in password and "=" not in password


class TestHashPassword:
    """Tests for salted verifier hashes."""

    def test_hash_and_verify(self, passwords):
        stored = passwords.hash_password("hunter2", "shop.com")
        assert stored.startswith("$persona$v1$100000$")
        assert passwords.verify_password("hunter2", stored, "shop.com")

    def test_wrong_password(self, passwords):
        stored = passwords.hash_password("hunter2", "shop.com")
        assert not passwords.verify_password("hunter3", stored, "shop.com")

    def test_wrong_store(self, passwords):
        stored = passwords.hash_password("hunter2", "shop.com")
        assert not passwords.verify_password("hunter2", stored, "other.com")

    def test_random_salt(self, passwords):
        assert passwords.hash_password("pw", "s.com") != passwords.hash_password("pw", "s.com")

    def test_uses_stored_iteration_count(self, passwords):
        stored = passwords.hash_password("pw", "s.com")
        parts = stored.split("$")
        salt = base64.b64decode(parts[4])
        store_salt = hmac.new(PEPPER.encode(), b"s.com", hashlib.sha256).digest()
        digest = hashlib.pbkdf2_hmac("sha256", b"pw", salt + store_salt, 1000, 32)
        parts[3] = "1000"
        parts[5] = base64.b64encode(digest).decode()
        assert passwords.verify_password("pw", "$".join(parts), "s.com")

    @pytest.mark.parametrize(
        "stored",
        [
            "",
            "plain",
            "$bcrypt$v1$100000$AAAA$AAAA",
            "$persona$v2$100000$AAAA$AAAA",
            "$persona$v1$abc$AAAA$AAAA",
            "$persona$v1$0$AAAA$AAAA",
            "$persona$v1$100000$!!!$AAAA",
        ],
    )
    def test_malformed_hash_returns_false(self, passwords, stored):
        assert passwords.verify_password("pw", stored, "s.com") is False


class TestPasswordServiceConfig:
    @pytest.mark.parametrize("pepper", ["", "short", "x" * 15])
    def test_short_pepper_rejected(self, pepper):
        with pytest.raises(ConfigurationError):
            PasswordService(pepper)

    def test_random_password(self):
        password = PasswordService.generate_random_password(24)
        assert len(password) == 24
        assert PasswordService.generate_random_password() != PasswordService.generate_random_password()
