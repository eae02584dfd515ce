"""
Tests for random token and OTP helpers.
"""

import string

from sso_gateway.utils.security import (
    generate_otp,
    generate_random_string,
    generate_secure_otp,
)


class TestGenerateRandomString:
    def test_exact_length(self):
        for length in (8, 32, 64):
            assert len(generate_random_string(length)) == length

    def test_url_safe(self):
        allowed = set(string.ascii_letters + string.digits + "-_")
        assert set(generate_random_string(64)) <= allowed

    def test_unique(self):
        assert len({generate_random_string() for _ in range(50)}) == 50


class TestOTP:
    def test_numeric_six_digits(self):
        for _ in range(100):
            otp = generate_otp()
            assert len(otp) == 6
            assert otp.isdigit()
            assert otp[0] != "0"

    def test_secure_otp_alphabet(self):
        otp = generate_secure_otp()
        assert len(otp) == 8
        assert set(otp) <= set(string.ascii_uppercase + string.digits)

    def test_secure_otp_length(self):
        assert len(generate_secure_otp(12)) == 12
